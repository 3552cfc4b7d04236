"""
Socket Transport Module

The byte-level collaborator underneath the connection set: it opens and
closes TCP connections, writes request bytes, reads reply records and
reports socket readiness. It never raises for I/O failures; instead it
returns the raw ReturnCode (or a failure Record) so the layer above can
classify the failure and reset the connection.

Each ServerConnection buffers data read from its socket, so the socket
must never be read directly by anything else.
"""

import logging
import select
import socket
from typing import Iterable, List, Optional, Tuple

from ..config.settings import settings
from ..protocol.commands import Record, ReturnCode
from ..protocol.parser import ProtocolParser

logger = logging.getLogger(__name__)


class ServerConnection:
    """
    An open connection to one cache server.

    Instances are the pollable handles handed to callers of the
    multi-get engine: they implement fileno(), so they can be passed
    straight to select.select() or an event loop.

    Attributes:
        endpoint: The ServerEndpoint this connection talks to
        sock: The connected socket
        read_buffer: Received bytes not yet parsed into records
        write_buffer: Request bytes not yet written to the socket
    """

    def __init__(self, endpoint, sock: socket.socket):
        self.endpoint = endpoint
        self.sock = sock
        self.read_buffer = bytearray()
        self.write_buffer = bytearray()

    def fileno(self) -> int:
        return self.sock.fileno()

    def __repr__(self) -> str:
        return f"<ServerConnection to {self.endpoint}>"


class SocketTransport:
    """
    TCP transport for the memcached text protocol.

    Blocking calls honour settings.IO_TIMEOUT; the *_available calls never
    block and move only what the socket accepts or already holds.
    """

    def __init__(self, connect_timeout: float = None, io_timeout: float = None):
        self.connect_timeout = (
            connect_timeout if connect_timeout is not None else settings.CONNECT_TIMEOUT
        )
        self.io_timeout = io_timeout if io_timeout is not None else settings.IO_TIMEOUT
        self.parser = ProtocolParser()

    def open_connection(self, endpoint, tcp_nodelay: bool = False) -> Tuple[Optional[ServerConnection], ReturnCode]:
        """
        Connect to a server.

        Returns:
            (handle, SUCCESS) or (None, failure code)
        """
        try:
            sock = socket.create_connection(
                (endpoint.host, endpoint.port), timeout=self.connect_timeout
            )
        except socket.timeout:
            logger.warning(f"Timeout connecting to {endpoint}")
            return None, ReturnCode.TIMEOUT
        except OSError as e:
            logger.warning(f"Error connecting to {endpoint}: {e}")
            return None, ReturnCode.CONNECTION_FAILURE

        sock.settimeout(self.io_timeout)
        if tcp_nodelay:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        logger.debug(f"Connected to {endpoint}")
        return ServerConnection(endpoint, sock), ReturnCode.SUCCESS

    def close_connection(self, handle: ServerConnection) -> None:
        """Close the socket and drop anything buffered."""
        handle.read_buffer.clear()
        handle.write_buffer.clear()
        try:
            handle.sock.close()
        except OSError as e:
            logger.debug(f"Error closing connection to {handle.endpoint}: {e}")

    def send_bytes(self, handle: ServerConnection, data: bytes) -> ReturnCode:
        """Write `data` (after anything already queued) and wait until it is sent."""
        payload = bytes(handle.write_buffer) + data
        handle.write_buffer.clear()
        try:
            handle.sock.sendall(payload)
        except socket.timeout:
            logger.warning(f"Timeout writing to {handle.endpoint}")
            return ReturnCode.TIMEOUT
        except OSError as e:
            logger.warning(f"Error writing to {handle.endpoint}: {e}")
            return ReturnCode.WRITE_FAILURE
        return ReturnCode.SUCCESS

    def send_available(self, handle: ServerConnection) -> ReturnCode:
        """Write as much of the queued bytes as the socket takes right now."""
        if not handle.write_buffer:
            return ReturnCode.SUCCESS
        _, writable = self.poll_readiness([], [handle], timeout=0)
        if not writable:
            return ReturnCode.SUCCESS
        try:
            sent = handle.sock.send(handle.write_buffer)
        except (BlockingIOError, InterruptedError):
            return ReturnCode.SUCCESS
        except OSError as e:
            logger.warning(f"Error writing to {handle.endpoint}: {e}")
            return ReturnCode.WRITE_FAILURE
        del handle.write_buffer[:sent]
        return ReturnCode.SUCCESS

    def receive_record(self, handle: ServerConnection) -> Record:
        """Block until one complete record has arrived and return it."""
        while True:
            record = self.parser.parse_record(handle.read_buffer)
            if record is not None:
                return record
            failure = self._read_into_buffer(handle)
            if failure is not None:
                return Record.status(failure, f"read from {handle.endpoint} failed")

    def receive_available(self, handle: ServerConnection) -> Optional[Record]:
        """
        Return the next record if it can be had without blocking.

        Returns:
            A Record, a failure Record if the connection broke, or None
            when the next record has not fully arrived yet.
        """
        record = self.parser.parse_record(handle.read_buffer)
        if record is not None:
            return record

        readable, _ = self.poll_readiness([handle], [], timeout=0)
        if not readable:
            return None

        failure = self._read_into_buffer(handle)
        if failure is not None:
            return Record.status(failure, f"read from {handle.endpoint} failed")
        return self.parser.parse_record(handle.read_buffer)

    def poll_readiness(
            self,
            readers: Iterable[ServerConnection],
            writers: Iterable[ServerConnection] = (),
            timeout: Optional[float] = None,
    ) -> Tuple[List[ServerConnection], List[ServerConnection]]:
        """
        Wait until some handles are readable or writable.

        Args:
            readers: Handles to watch for incoming data
            writers: Handles to watch for send space
            timeout: Seconds to wait; None waits indefinitely, 0 polls

        Returns:
            (readable subset, writable subset)
        """
        readers, writers = list(readers), list(writers)
        if not readers and not writers:
            return [], []
        readable, writable, _ = select.select(readers, writers, [], timeout)
        return readable, writable

    def _read_into_buffer(self, handle: ServerConnection) -> Optional[ReturnCode]:
        """Do one recv() into the read buffer; return a failure code or None."""
        try:
            data = handle.sock.recv(settings.READ_BUFFER_SIZE)
        except socket.timeout:
            logger.warning(f"Timeout reading from {handle.endpoint}")
            return ReturnCode.TIMEOUT
        except OSError as e:
            logger.warning(f"Error reading from {handle.endpoint}: {e}")
            return ReturnCode.READ_FAILURE
        if not data:
            logger.warning(f"Connection closed by {handle.endpoint}")
            return ReturnCode.UNKNOWN_READ_FAILURE
        handle.read_buffer.extend(data)
        return None
