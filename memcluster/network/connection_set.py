"""
Connection Set Module

Owns one logical connection per configured server and is the only
place socket failures turn into exceptions. Connections open lazily on
first use; any I/O failure closes the connection (so no half-read reply
can leak into the next operation) and raises ConnectionFailure.

A connection that still carries an unfinished multi-get is "claimed" by
that session. Before anything else is sent on it, the session is asked
to settle: it drains its remaining replies from that connection, so the
next operation always starts on a clean stream.
"""

import logging
from typing import Dict, List, Optional

from ..cluster.config import ClientConfig
from ..errors import ClientError, Outcome, classify, error_for
from ..protocol.commands import Record, ReturnCode
from .transport import ServerConnection, SocketTransport

logger = logging.getLogger(__name__)


class ConnectionSet:
    """
    Per-server connections for one client.

    Not thread safe: one in-flight operation owns a connection at a time.

    Attributes:
        config: The client configuration (servers and flags)
        transport: The byte-level transport collaborator
    """

    def __init__(self, config: ClientConfig, transport: SocketTransport = None):
        self.config = config
        self.transport = transport if transport is not None else SocketTransport()
        self._endpoints = list(config.servers)
        self._handles: List[Optional[ServerConnection]] = [None] * len(self._endpoints)
        self._owners: Dict[int, object] = {}
        self._closed = False

    def __len__(self) -> int:
        return len(self._endpoints)

    @property
    def endpoints(self) -> list:
        return list(self._endpoints)

    def connection(self, index: int) -> ServerConnection:
        """
        Return the open connection for a server, connecting if needed.

        Raises:
            ConnectionFailure: If the server cannot be reached
        """
        if self._closed:
            raise ClientError("Connection set has been closed", code=ReturnCode.CLIENT_ERROR)

        handle = self._handles[index]
        if handle is not None:
            return handle

        endpoint = self._endpoints[index]
        handle, code = self.transport.open_connection(endpoint, tcp_nodelay=self.config.tcp_nodelay)
        if handle is None:
            raise error_for(code, f"could not connect to {endpoint}")
        self._handles[index] = handle
        return handle

    def send(self, index: int, request: bytes) -> None:
        """
        Send request bytes to a server.

        With buffer_requests the bytes are only queued; they reach the
        server on the next read, flush or teardown.
        """
        self.settle(index)
        handle = self.connection(index)
        if self.config.buffer_requests:
            handle.write_buffer.extend(request)
            return
        self._check(index, self.transport.send_bytes(handle, request))

    def queue(self, index: int, request: bytes) -> ServerConnection:
        """Queue request bytes without writing them; used by multi-get."""
        self.settle(index)
        handle = self.connection(index)
        handle.write_buffer.extend(request)
        return handle

    def flush(self, index: int) -> None:
        """Write every queued byte for a server, blocking if needed."""
        handle = self._handles[index]
        if handle is None or not handle.write_buffer:
            return
        self._check(index, self.transport.send_bytes(handle, b""))

    def flush_available(self, index: int) -> bool:
        """
        Write what the socket takes without blocking.

        Returns:
            True once nothing is left queued
        """
        handle = self.connection(index)
        self._check(index, self.transport.send_available(handle))
        return not handle.write_buffer

    def receive(self, index: int) -> Record:
        """
        Read the next record from a server, flushing queued sends first.

        Raises:
            ConnectionFailure: If the connection broke; it is reset
        """
        self.flush(index)
        handle = self.connection(index)
        record = self.transport.receive_record(handle)
        if classify(record.code) == Outcome.CONNECTION_FAILURE:
            self.reset(index)
            raise error_for(record.code, record.message)
        return record

    def receive_available(self, index: int) -> Optional[Record]:
        """
        Read the next record only if it is already available.

        Raises:
            ConnectionFailure: If the connection broke; it is reset
        """
        handle = self.connection(index)
        record = self.transport.receive_available(handle)
        if record is not None and classify(record.code) == Outcome.CONNECTION_FAILURE:
            self.reset(index)
            raise error_for(record.code, record.message)
        return record

    def readiness_handle(self, index: int) -> ServerConnection:
        """The pollable handle (it has fileno()) for a server's connection."""
        return self.connection(index)

    def is_writable(self, index: int) -> bool:
        """True if the server's socket can take more bytes right now."""
        handle = self.connection(index)
        _, writable = self.transport.poll_readiness([], [handle], timeout=0)
        return bool(writable)

    def claim(self, index: int, session) -> None:
        """Mark a connection as carrying `session`'s pipelined replies."""
        self._owners[index] = session

    def release(self, index: int, session) -> None:
        """Drop `session`'s claim on a connection, if it still holds one."""
        if self._owners.get(index) is session:
            del self._owners[index]

    def settle(self, index: int) -> None:
        """Let the session that claims a connection drain it."""
        session = self._owners.pop(index, None)
        if session is not None:
            logger.debug(f"Settling unfinished multi-get on {self._endpoints[index]}")
            session.settle(index)

    def reset(self, index: int) -> None:
        """Close one connection; it reopens on next use."""
        self._owners.pop(index, None)
        handle = self._handles[index]
        if handle is not None:
            logger.warning(f"Resetting connection to {handle.endpoint}")
            self.transport.close_connection(handle)
            self._handles[index] = None

    def close(self) -> None:
        """Flush buffered sends and close every connection."""
        if self._closed:
            return
        for index, handle in enumerate(self._handles):
            if handle is None:
                continue
            if handle.write_buffer:
                code = self.transport.send_bytes(handle, b"")
                if code != ReturnCode.SUCCESS:
                    logger.warning(f"Dropped buffered requests for {handle.endpoint}: {code.name}")
            self.transport.close_connection(handle)
            self._handles[index] = None
        self._owners.clear()
        self._closed = True

    def _check(self, index: int, code: ReturnCode) -> None:
        if code != ReturnCode.SUCCESS:
            self.reset(index)
            raise error_for(code, f"write to {self._endpoints[index]} failed")
