"""Network module for memcluster."""

from .connection_set import ConnectionSet
from .transport import ServerConnection, SocketTransport

__all__ = ["ConnectionSet", "ServerConnection", "SocketTransport"]
