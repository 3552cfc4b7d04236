"""Configuration module for memcluster."""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
