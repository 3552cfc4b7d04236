"""
memcluster Configuration Settings

This module contains the process-wide defaults used by every client.
Per-client behaviour (servers, hash, distribution, flags) lives in
ClientConfig; these values only tune the transport and ring layout.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Client configuration settings."""

    # Network settings
    DEFAULT_PORT: int = 11211
    CONNECT_TIMEOUT: float = float(os.environ.get("MEMCLUSTER_CONNECT_TIMEOUT", "4.0"))
    IO_TIMEOUT: float = float(os.environ.get("MEMCLUSTER_IO_TIMEOUT", "4.0"))
    READ_BUFFER_SIZE: int = 4096

    # Key settings
    MAX_KEY_LENGTH: int = 250

    # Consistent ring settings
    POINTS_PER_SERVER: int = int(os.environ.get("MEMCLUSTER_POINTS_PER_SERVER", "100"))

    # Logging settings
    DEBUG: bool = os.environ.get("MEMCLUSTER_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("MEMCLUSTER_LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
