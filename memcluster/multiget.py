"""
Multi-Get Engine

Fetches many keys across several servers without blocking the caller.
The client partitions the keys by server and hands them to a
MultiGetSession, which pipelines one get request per server and then
advances in small non-blocking steps:

    session = client.begin_get_multi(["foo", "another"])
    while True:
        results, readers, writers = client.continue_get_multi(session)
        if not readers and not writers:
            break
        select.select(readers, writers, [])

Each server connection moves through IDLE -> DISPATCHING (request bytes
still being written) -> DRAINING (reading VALUE records) -> COMPLETE
(END seen, or the server failed). The session is complete once every
touched server is.

Results only ever grow: a key is added once and never replaced or
removed. Failures are per server: the keys still pending on a failed
server are recorded in `errors`, every other key is unaffected.

A session can be dropped at any time. The connections it claimed are
drained by settle() before they are used for anything else, so stale
pipelined replies never reach an unrelated operation.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .errors import MemcachedError, ProtocolError, error_for
from .network.connection_set import ConnectionSet
from .network.transport import ServerConnection
from .protocol.commands import Command, CommandType, Record, ReturnCode
from .protocol.parser import ProtocolParser

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Enumeration of multi-get states, per server and per session."""
    IDLE = "idle"
    DISPATCHING = "dispatching"
    DRAINING = "draining"
    COMPLETE = "complete"


class MultiGetSession:
    """
    State of one in-flight multi-get.

    Owned by the caller; not safe to share between threads.

    Attributes:
        results: Values found so far, keyed by the caller's key
        errors: Per-key failures, keyed by the caller's key
        cas_tokens: CAS tokens of found keys (when fetched with gets)
        states: Per-server SessionState, keyed by server index
        pending_keys: Keys each server has not answered yet
    """

    def __init__(
            self,
            connections: ConnectionSet,
            keys_by_server: Dict[int, List[Tuple[Any, bytes]]],
            decode: Callable[[bytes], Any],
            namespace_length: int = 0,
            command_type: CommandType = CommandType.GET,
    ):
        self.connections = connections
        self.parser = ProtocolParser()
        self.decode = decode
        self.namespace_length = namespace_length
        self.command_type = command_type

        self.results: Dict[Any, Any] = {}
        self.errors: Dict[Any, MemcachedError] = {}
        self.cas_tokens: Dict[Any, int] = {}
        self.states: Dict[int, SessionState] = {}
        self.pending_keys: Dict[int, List[Any]] = {}

        self._wire_keys: Dict[int, List[bytes]] = {}
        self._originals: Dict[bytes, Any] = {}
        for index, pairs in keys_by_server.items():
            self.states[index] = SessionState.IDLE
            self.pending_keys[index] = [key for key, _ in pairs]
            self._wire_keys[index] = [wire_key for _, wire_key in pairs]
            for key, wire_key in pairs:
                self._originals[wire_key[namespace_length:]] = key

    @property
    def state(self) -> SessionState:
        """Overall state: the least advanced state of any active server."""
        states = set(self.states.values())
        for state in (SessionState.IDLE, SessionState.DISPATCHING, SessionState.DRAINING):
            if state in states:
                return state
        return SessionState.COMPLETE

    @property
    def active(self) -> List[int]:
        """Indexes of servers still producing results."""
        return [
            index for index, state in self.states.items()
            if state != SessionState.COMPLETE
        ]

    @property
    def complete(self) -> bool:
        return not self.active

    def dispatch(self) -> None:
        """Queue one pipelined request per server and try a first write."""
        for index, wire_keys in self._wire_keys.items():
            if self.states[index] != SessionState.IDLE:
                continue
            request = self.parser.format_request(Command(type=self.command_type, keys=wire_keys))
            try:
                self.connections.queue(index, request)
                self.connections.claim(index, self)
                self.states[index] = SessionState.DISPATCHING
                logger.debug(f"Dispatched {len(wire_keys)} keys to server {index}")
                self._write(index)
            except MemcachedError as e:
                self._fail_server(index, e)

    def advance(self) -> Tuple[Dict[Any, Any], List[ServerConnection], List[ServerConnection]]:
        """
        Make as much progress as possible without blocking.

        Returns:
            (results so far, handles to wait on for reading,
             handles to wait on for writing)
        """
        for index in self.active:
            try:
                if self.states[index] == SessionState.DISPATCHING:
                    self._write(index)
                if self.states[index] == SessionState.DRAINING:
                    self._drain(index, blocking=False)
            except MemcachedError as e:
                self._fail_server(index, e)

        readers, writers = self.wait_sets()
        return dict(self.results), readers, writers

    def wait_sets(self) -> Tuple[List[ServerConnection], List[ServerConnection]]:
        """The handles the caller must wait on before advancing again."""
        readers, writers = [], []
        for index in self.active:
            handle = self.connections.readiness_handle(index)
            if self.states[index] == SessionState.DISPATCHING:
                writers.append(handle)
            else:
                readers.append(handle)
        return readers, writers

    def settle(self, index: int) -> None:
        """Finish one server synchronously, collecting its remaining records."""
        if self.states.get(index) not in (SessionState.DISPATCHING, SessionState.DRAINING):
            return
        try:
            self.connections.flush(index)
            self.states[index] = SessionState.DRAINING
            self._drain(index, blocking=True)
        except MemcachedError as e:
            self._fail_server(index, e)

    def abandon(self) -> None:
        """Drain every touched connection now, leaving them ready for reuse."""
        for index in self.active:
            if self.states[index] == SessionState.IDLE:
                self.states[index] = SessionState.COMPLETE
                continue
            self.connections.release(index, self)
            self.settle(index)

    def fail_active(self, code: ReturnCode, message: str = "") -> None:
        """Give up on every server still active, e.g. after a timeout."""
        for index in self.active:
            self._fail_server(index, error_for(code, message))

    def _write(self, index: int) -> None:
        if self.connections.flush_available(index):
            self.states[index] = SessionState.DRAINING

    def _drain(self, index: int, blocking: bool) -> None:
        while self.states[index] == SessionState.DRAINING:
            if blocking:
                record = self.connections.receive(index)
            else:
                record = self.connections.receive_available(index)
            if record is None:
                return
            self._consume(index, record)

    def _consume(self, index: int, record: Record) -> None:
        if record.is_end:
            self.states[index] = SessionState.COMPLETE
            self.connections.release(index, self)
            logger.debug(f"Server {index} finished multi-get")
            return

        if record.code != ReturnCode.VALUE:
            self._fail_server(index, error_for(record.code, record.message))
            return

        key = self._original_key(record.key)
        if key in self.pending_keys[index]:
            self.pending_keys[index].remove(key)
        if key in self.results or key in self.errors:
            return

        try:
            self.results[key] = self.decode(record.value)
        except Exception as e:
            logger.warning(f"Could not decode value for {key!r}: {e}")
            self.errors[key] = ProtocolError(f"could not decode value: {e}", key=key)
            return
        if record.cas is not None:
            self.cas_tokens[key] = record.cas

    def _original_key(self, wire_key: Optional[bytes]) -> Any:
        stripped = (wire_key or b"")[self.namespace_length:]
        return self._originals.get(stripped, stripped.decode("utf-8", errors="replace"))

    def _fail_server(self, index: int, error: MemcachedError) -> None:
        logger.warning(f"Multi-get failed on server {index}: {error.message}")
        for key in self.pending_keys.get(index, []):
            self.errors.setdefault(key, type(error)(error.message, code=error.code, key=key))
        self.pending_keys[index] = []
        was_active = self.states.get(index) in (SessionState.DISPATCHING, SessionState.DRAINING)
        self.states[index] = SessionState.COMPLETE
        self.connections.release(index, self)
        if was_active:
            # The stream position is unknown after a failure mid-reply
            self.connections.reset(index)

    def __repr__(self) -> str:
        return (f"MultiGetSession(state={self.state.value}, "
                f"results={len(self.results)}, errors={len(self.errors)})")


def partition_keys(
        keys: Sequence[Any],
        encode: Callable[[Any], bytes],
        select_server: Callable[[bytes], int],
) -> Dict[int, List[Tuple[Any, bytes]]]:
    """
    Group keys by owning server, preserving order and dropping duplicates.

    Args:
        keys: The caller's keys
        encode: Turns a caller key into its namespaced wire form
        select_server: Maps a wire key to a server index

    Returns:
        server index -> [(caller key, wire key), ...]
    """
    by_server: Dict[int, List[Tuple[Any, bytes]]] = {}
    seen = set()
    for key in keys:
        wire_key = encode(key)
        if wire_key in seen:
            continue
        seen.add(wire_key)
        by_server.setdefault(select_server(wire_key), []).append((key, wire_key))
    return by_server
