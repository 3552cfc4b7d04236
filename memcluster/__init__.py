"""
memcluster: Memcached Cluster Client

A client for a cluster of memcached servers speaking the text protocol:
keys are spread over the servers with modula or consistent hashing,
server replies are classified into a small set of typed outcomes, and
multi-gets can be driven without blocking the caller.
"""

from .client import MemcacheClient
from .errors import (
    ArgumentError,
    ClientError,
    ConnectionFailure,
    MemcachedError,
    NotFound,
    NotStored,
    Outcome,
    ProtocolError,
    ServerError,
)
from .multiget import MultiGetSession, SessionState

__version__ = "1.0.0"

__all__ = [
    "MemcacheClient",
    "MultiGetSession",
    "SessionState",
    "Outcome",
    "MemcachedError",
    "ArgumentError",
    "ClientError",
    "ConnectionFailure",
    "NotFound",
    "NotStored",
    "ProtocolError",
    "ServerError",
]
