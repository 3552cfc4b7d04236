"""
Memcache Client Module

MemcacheClient maps each key to a server, sends the request through the
connection set and turns the reply into a typed result or exception.

Usage:
    client = MemcacheClient(["127.0.0.1:11211", "127.0.0.1:11212"], namespace="app:")
    client.set("user:1", {"name": "alice"})
    client.get("user:1")                      # {'name': 'alice'}
    client.set("hits", 0, raw=True)
    client.increment("hits")                  # 1
    client.get(["user:1", "missing"])         # {'user:1': {'name': 'alice'}}
    client.destroy()

Please note that when no_block or buffer_requests is enabled, mutating
methods do not raise on key-level errors: the command is sent without
waiting for the server, so there is no reply to raise from. They report
Outcome.ACTION_QUEUED instead.
"""

import copy
import logging
import re
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .cluster.config import ClientConfig
from .cluster.distribution import build_distribution
from .config.settings import settings
from .errors import ClientError, Outcome, ProtocolError, check_return_code
from .multiget import MultiGetSession, partition_keys
from .network.connection_set import ConnectionSet
from .network.transport import SocketTransport
from .protocol.commands import Command, CommandType, Record, ReturnCode
from .protocol.parser import ProtocolParser
from .serializer import PickleSerializer, to_raw

logger = logging.getLogger(__name__)

Key = Union[str, bytes]

_INTEGER = re.compile(r"^\d+$")
_FLOAT = re.compile(r"^\d+\.\d+$")

REQUIRES_EXISTING = frozenset({CommandType.REPLACE, CommandType.APPEND, CommandType.PREPEND})


class ClientState(Enum):
    """Lifecycle of a client instance."""
    ACTIVE = "active"
    RELEASED = "released"


class MemcacheClient:
    """
    Client for a cluster of memcached servers.

    A client owns one connection per server and must not be shared
    between threads; use clone() to get an independent copy for another
    thread. Call destroy() (or use the client as a context manager) to
    close its connections. Every method of a destroyed client raises
    ClientError.

    Attributes:
        config: The validated, immutable ClientConfig
        serializer: Object with serialize()/deserialize() for non-raw values
    """

    FLAGS = 0

    def __init__(
            self,
            servers: Union[str, Sequence[str]],
            serializer=None,
            transport: SocketTransport = None,
            **options,
    ):
        """
        Create a client.

        Args:
            servers: A single "ip:port" string or a list of them.
                     Hostnames are not resolved; use IP addresses.
            serializer: Value serializer (default: pickle)
            transport: Transport collaborator (default: TCP sockets)
            **options: hash, distribution, no_block, buffer_requests,
                       support_cas, tcp_nodelay, namespace

        Raises:
            ArgumentError: On a malformed server string, namespace or option
        """
        self.config = ClientConfig.from_options(servers, **options)
        self.serializer = serializer if serializer is not None else PickleSerializer()
        self.parser = ProtocolParser()
        self._transport = transport
        self._distribution = build_distribution(
            self.config.distribution, self.config.hash, self.config.labels
        )
        self._connections = ConnectionSet(self.config, transport)
        self._session: Optional[MultiGetSession] = None
        self._state = ClientState.ACTIVE

    @property
    def options(self) -> Dict[str, Any]:
        """The options this client was configured with."""
        return self.config.options()

    @property
    def released(self) -> bool:
        return self._state == ClientState.RELEASED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def servers(self) -> List[str]:
        """Return the "ip:port" strings of the configured servers, in order."""
        self._check_active()
        return [str(endpoint) for endpoint in self._connections.endpoints]

    def clone(self) -> "MemcacheClient":
        """
        Copy this client for use in another thread.

        The copy has the same configuration, its own connections and its
        own deep copies of the serializer and transport, so it shares no
        mutable state with this client. It must be destroyed separately.
        """
        self._check_active()
        transport = copy.deepcopy(self._transport) if self._transport is not None else None
        return MemcacheClient(
            self.config.labels,
            serializer=copy.deepcopy(self.serializer),
            transport=transport,
            **self.config.options(),
        )

    def reset(self) -> None:
        """Replace every connection with a fresh one, dropping unread replies."""
        self._check_active()
        self._connections.close()
        self._connections = ConnectionSet(self.config, self._transport)
        self._session = None

    def destroy(self) -> None:
        """
        Close every connection and release the client.

        Raises:
            ClientError: If the client was already destroyed
        """
        self._check_active()
        self._connections.close()
        self._session = None
        self._state = ClientState.RELEASED
        logger.debug("Client destroyed")

    def __enter__(self) -> "MemcacheClient":
        self._check_active()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self.released:
            self.destroy()

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set(self, key: Key, value: Any, ttl: int = 0, raw: bool = False) -> Outcome:
        """
        Store a value, overwriting any existing value.

        Args:
            key: The key (no whitespace or control characters)
            value: Any object, or bytes/str/int with raw=True
            ttl: Lifetime in seconds; 0 means no expiry
            raw: Store the value as-is instead of serializing it

        Returns:
            Outcome.SUCCESS, or Outcome.ACTION_QUEUED when not acknowledged
        """
        return self._store(CommandType.SET, key, value, ttl, raw)

    def add(self, key: Key, value: Any, ttl: int = 0, raw: bool = False) -> Outcome:
        """Store a value only if the key does not exist. Raises NotStored otherwise."""
        return self._store(CommandType.ADD, key, value, ttl, raw)

    def replace(self, key: Key, value: Any, ttl: int = 0, raw: bool = False) -> Outcome:
        """Store a value only if the key already exists. Raises NotFound otherwise."""
        return self._store(CommandType.REPLACE, key, value, ttl, raw)

    def append(self, key: Key, value: Union[bytes, str, int]) -> Outcome:
        """
        Append raw bytes to an existing value. Raises NotFound if the key
        does not exist.

        The stored value must have been written with raw=True; the delta
        is never serialized.
        """
        return self._store(CommandType.APPEND, key, value, 0, raw=True)

    def prepend(self, key: Key, value: Union[bytes, str, int]) -> Outcome:
        """Prepend raw bytes to an existing value. Same rules as append()."""
        return self._store(CommandType.PREPEND, key, value, 0, raw=True)

    def increment(self, key: Key, offset: int = 1) -> Optional[int]:
        """
        Increment a counter. Raises NotFound if the key does not exist.

        The key must hold a decimal integer written with raw=True.

        Returns:
            The new value, or None when the command was only queued
        """
        return self._counter(CommandType.INCR, key, offset)

    def decrement(self, key: Key, offset: int = 1) -> Optional[int]:
        """Decrement a counter. Same rules as increment(); stops at zero."""
        return self._counter(CommandType.DECR, key, offset)

    incr = increment
    decr = decrement

    def cas(self, key: Key, update: Callable[[Any], Any], ttl: int = 0, raw: bool = False) -> Outcome:
        """
        Read-modify-write a key with compare-and-swap.

        Reads the value and its CAS token, calls `update(value)`, and
        writes the result back only if nobody changed the key meanwhile.

        Raises:
            ClientError: If support_cas is not enabled (before any I/O)
            NotFound: If the key does not exist, or vanished meanwhile
            NotStored: If the key was changed by someone else meanwhile
        """
        self._check_active()
        self._require_cas()
        value, token = self.gets(key, raw=raw)
        new_value = update(value)
        return self._store(CommandType.CAS, key, new_value, ttl, raw, cas=token)

    # ------------------------------------------------------------------
    # Deleters
    # ------------------------------------------------------------------

    def delete(self, key: Key) -> Outcome:
        """Delete a key. Raises NotFound if it does not exist."""
        self._check_active()
        wire_key = self._wire_key(key)
        command = Command(
            type=CommandType.DELETE,
            keys=[wire_key],
            noreply=self.config.queues_mutations,
        )
        record = self._execute(command)
        return check_return_code(record.code, record.message, key=self._text(key))

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    def get(self, keys: Union[Key, Sequence[Key]], raw: bool = False) -> Any:
        """
        Fetch one key, or several.

        With a single key, returns its value or raises NotFound. With a
        list of keys, performs a multi-get and returns a dict holding
        only the keys that were found.

        Args:
            keys: A key, or a list/tuple of keys
            raw: Return stored bytes instead of deserializing them
        """
        if isinstance(keys, (list, tuple)):
            return self.get_multi(keys, raw=raw)
        value, _ = self._get_one(CommandType.GET, keys, raw)
        return value

    def gets(self, key: Key, raw: bool = False) -> Tuple[Any, int]:
        """
        Fetch one key together with its CAS token.

        Raises:
            ClientError: If support_cas is not enabled
            NotFound: If the key does not exist
        """
        self._check_active()
        self._require_cas()
        return self._get_one(CommandType.GETS, key, raw)

    def get_multi(self, keys: Sequence[Key], raw: bool = False) -> Dict[Any, Any]:
        """
        Fetch many keys, blocking until every server has answered.

        Missing keys are left out of the result. Keys on a server that
        fails are left out too, and this method never raises for it:
        even when every server is unreachable it returns {}. Failures
        are only logged as warnings; use begin_get_multi() and read
        session.errors to tell a missing key from a failed one.
        """
        session = self.begin_get_multi(keys, raw=raw)
        transport = self._connections.transport
        while True:
            results, readers, writers = self.continue_get_multi(session)
            if not readers and not writers:
                break
            readable, writable = transport.poll_readiness(readers, writers, timeout=settings.IO_TIMEOUT)
            if not readable and not writable:
                session.fail_active(ReturnCode.TIMEOUT, "multi-get timed out")

        for key, error in session.errors.items():
            logger.warning(f"Multi-get skipped {key!r}: {error.message}")
        return results

    def begin_get_multi(self, keys: Sequence[Key], raw: bool = False) -> MultiGetSession:
        """
        Start a non-blocking multi-get.

        Every key is validated before anything is sent. One pipelined
        request goes to each server owning at least one key.

        Returns:
            The session to pass to continue_get_multi()
        """
        self._check_active()
        by_server = partition_keys(keys, self._wire_key, self._select_server)
        command_type = CommandType.GETS if self.config.support_cas else CommandType.GET
        session = MultiGetSession(
            self._connections,
            by_server,
            decode=lambda data: self._decode(data, raw),
            namespace_length=len(self.config.namespace_bytes),
            command_type=command_type,
        )
        session.dispatch()
        self._session = session
        return session

    def continue_get_multi(self, session: MultiGetSession = None):
        """
        Advance a multi-get without blocking.

        Args:
            session: The session from begin_get_multi(); defaults to the
                     most recent one started on this client

        Returns:
            (results so far, readers, writers). Wait until a reader is
            readable or a writer is writable (e.g. with select.select)
            before calling again. The session is complete when both
            lists are empty; results then hold every key found.
        """
        self._check_active()
        if session is None:
            session = self._session
        if session is None:
            raise ClientError("No multi-get in progress", code=ReturnCode.CLIENT_ERROR)
        return session.advance()

    # ------------------------------------------------------------------
    # Information
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, List[Any]]:
        """
        Return statistics from every server.

        Each statistic maps to a list with one value per server, in
        configured server order (None where a server does not report
        it). Numeric values are converted to int or float.
        """
        self._check_active()
        per_server = []
        request = self.parser.format_request(Command(type=CommandType.STATS))
        for index in range(len(self._connections)):
            self._connections.send(index, request)
            server_stats = {}
            while True:
                record = self._connections.receive(index)
                if record.is_end:
                    break
                if record.code != ReturnCode.STAT:
                    check_return_code(record.code, record.message)
                    self._connections.reset(index)
                    break
                server_stats[record.key.decode()] = _coerce_stat(record.value.decode())
            per_server.append(server_stats)

        names: List[str] = []
        for server_stats in per_server:
            names.extend(name for name in server_stats if name not in names)
        return {
            name: [server_stats.get(name) for server_stats in per_server]
            for name in names
        }

    def server_for_key(self, key: Key) -> int:
        """Index (into servers()) of the server that owns `key`."""
        self._check_active()
        return self._select_server(self._wire_key(key))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_active(self) -> None:
        if self._state != ClientState.ACTIVE:
            raise ClientError("Instance has been explicitly destroyed", code=ReturnCode.CLIENT_ERROR)

    def _require_cas(self) -> None:
        if not self.config.support_cas:
            raise ClientError("CAS not enabled for this client", code=ReturnCode.NOT_SUPPORTED)

    def _wire_key(self, key: Key) -> bytes:
        """Return the namespaced key bytes, or raise ClientError if invalid."""
        if isinstance(key, str):
            raw_key = key.encode("utf-8")
        elif isinstance(key, bytes):
            raw_key = key
        else:
            raise ClientError(f"Invalid key {key!r}", code=ReturnCode.BAD_KEY_PROVIDED)
        if not raw_key:
            raise ClientError("Empty key", code=ReturnCode.NO_KEY_PROVIDED)
        wire_key = self.config.namespace_bytes + raw_key
        if not self.parser.is_valid_key(wire_key):
            raise ClientError(f"Invalid key {key!r}", code=ReturnCode.BAD_KEY_PROVIDED)
        return wire_key

    def _select_server(self, wire_key: bytes) -> int:
        return self._distribution.select_server(wire_key, len(self._connections))

    def _execute(self, command: Command) -> Record:
        """Send a one-key command to its server and read the reply."""
        index = self._select_server(command.key)
        logger.debug(f"{command.type.name} {command.key!r} -> server {index}")
        self._connections.send(index, self.parser.format_request(command))
        if command.noreply:
            return Record.queued()
        return self._connections.receive(index)

    def _store(
            self,
            command_type: CommandType,
            key: Key,
            value: Any,
            ttl: int,
            raw: bool,
            cas: Optional[int] = None,
    ) -> Outcome:
        self._check_active()
        _check_ttl(ttl)
        wire_key = self._wire_key(key)
        try:
            payload = to_raw(value) if raw else self.serializer.serialize(value)
        except TypeError as e:
            raise ClientError(str(e), code=ReturnCode.CLIENT_ERROR, key=self._text(key)) from e

        command = Command(
            type=command_type,
            keys=[wire_key],
            value=payload,
            flags=self.FLAGS,
            ttl=ttl,
            cas=cas,
            noreply=self.config.queues_mutations,
        )
        record = self._execute(command)
        code = record.code
        if command_type in REQUIRES_EXISTING and code == ReturnCode.NOTSTORED:
            # Servers answer NOT_STORED when the key to replace is absent
            code = ReturnCode.NOTFOUND
        return check_return_code(code, record.message, key=self._text(key))

    def _counter(self, command_type: CommandType, key: Key, offset: int) -> Optional[int]:
        self._check_active()
        if not isinstance(offset, int) or isinstance(offset, bool) or offset < 0:
            raise ClientError(f"Invalid offset {offset!r}", code=ReturnCode.CLIENT_ERROR)
        command = Command(
            type=command_type,
            keys=[self._wire_key(key)],
            delta=offset,
            noreply=self.config.queues_mutations,
        )
        record = self._execute(command)
        check_return_code(record.code, record.message, key=self._text(key))
        if record.code == ReturnCode.ACTION_QUEUED:
            return None
        if record.value is None or not record.value.isdigit():
            raise ProtocolError("expected a number", code=record.code, key=self._text(key))
        return int(record.value)

    def _get_one(self, command_type: CommandType, key: Key, raw: bool) -> Tuple[Any, Optional[int]]:
        self._check_active()
        wire_key = self._wire_key(key)
        index = self._select_server(wire_key)
        record = self._execute(Command(type=command_type, keys=[wire_key]))
        if record.code != ReturnCode.VALUE:
            check_return_code(record.code, record.message, key=self._text(key))
            # Anything but VALUE or END here means the stream is out of sync
            self._connections.reset(index)
            raise ProtocolError("unexpected reply to get", code=record.code, key=self._text(key))

        trailer = self._connections.receive(index)
        if not trailer.is_end:
            self._connections.reset(index)
            raise ProtocolError("expected END after value", code=trailer.code, key=self._text(key))
        return self._decode(record.value, raw), record.cas

    def _decode(self, data: bytes, raw: bool) -> Any:
        return data if raw else self.serializer.deserialize(data)

    @staticmethod
    def _text(key: Key) -> str:
        return key.decode("utf-8", errors="replace") if isinstance(key, bytes) else key

    def __repr__(self) -> str:
        return f"MemcacheClient(servers={list(self.config.labels)}, state={self._state.value})"


def _check_ttl(ttl: int) -> None:
    if not isinstance(ttl, int) or isinstance(ttl, bool) or ttl < 0:
        raise ClientError(f"Invalid ttl {ttl!r}", code=ReturnCode.CLIENT_ERROR)


def _coerce_stat(value: str) -> Any:
    if _INTEGER.match(value):
        return int(value)
    if _FLOAT.match(value):
        return float(value)
    return value
