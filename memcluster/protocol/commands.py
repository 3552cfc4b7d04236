"""
Protocol Command and Record Definitions

This module defines the data structures exchanged with a cache server:
the commands the client sends, the raw return codes a reply maps to, and
the records parsed out of the response stream.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto
from typing import List, Optional


class CommandType(Enum):
    """Enumeration of supported command types."""
    SET = auto()
    ADD = auto()
    REPLACE = auto()
    APPEND = auto()
    PREPEND = auto()
    CAS = auto()
    INCR = auto()
    DECR = auto()
    DELETE = auto()
    GET = auto()
    GETS = auto()
    STATS = auto()

    @property
    def verb(self) -> bytes:
        """Wire name of the command."""
        return self.name.lower().encode()

    @property
    def is_storage(self) -> bool:
        return self in STORAGE_COMMANDS


STORAGE_COMMANDS = frozenset({
    CommandType.SET,
    CommandType.ADD,
    CommandType.REPLACE,
    CommandType.APPEND,
    CommandType.PREPEND,
    CommandType.CAS,
})


class ReturnCode(IntEnum):
    """
    Raw result codes.

    Every reply line (and every transport failure) is reduced to one of
    these before it is classified into an Outcome.
    """
    SUCCESS = 0
    FAILURE = 1
    HOST_LOOKUP_FAILURE = 2
    CONNECTION_FAILURE = 3
    CONNECTION_BIND_FAILURE = 4
    WRITE_FAILURE = 5
    READ_FAILURE = 6
    UNKNOWN_READ_FAILURE = 7
    PROTOCOL_ERROR = 8
    CLIENT_ERROR = 9
    SERVER_ERROR = 10
    CONNECTION_SOCKET_CREATE_FAILURE = 11
    DATA_EXISTS = 12
    DATA_DOES_NOT_EXIST = 13
    NOTSTORED = 14
    STORED = 15
    NOTFOUND = 16
    MEMORY_ALLOCATION_FAILURE = 17
    PARTIAL_READ = 18
    SOME_ERRORS = 19
    NO_SERVERS = 20
    END = 21
    DELETED = 22
    VALUE = 23
    STAT = 24
    ERRNO = 25
    FAIL_UNIX_SOCKET = 26
    NOT_SUPPORTED = 27
    NO_KEY_PROVIDED = 28
    FETCH_NOTFINISHED = 29
    TIMEOUT = 30
    ACTION_QUEUED = 31
    BAD_KEY_PROVIDED = 32


@dataclass
class Command:
    """
    Represents a request to a single server.

    Attributes:
        type: The type of command
        keys: Namespaced key bytes (several for GET/GETS, none for STATS)
        value: Payload for storage commands
        flags: Opaque client flags stored with the value
        ttl: Expiration in seconds (0 = no expiration)
        delta: Offset for INCR/DECR
        cas: CAS token for CAS commands
        noreply: Ask the server not to acknowledge the command
    """
    type: CommandType
    keys: List[bytes] = field(default_factory=list)
    value: bytes = b""
    flags: int = 0
    ttl: int = 0
    delta: int = 0
    cas: Optional[int] = None
    noreply: bool = False

    @property
    def key(self) -> bytes:
        """The single key of a one-key command."""
        return self.keys[0] if self.keys else b""

    @property
    def is_valid(self) -> bool:
        """Check if the command carries what its type needs."""
        if self.type == CommandType.STATS:
            return not self.keys
        if not self.keys:
            return False
        if self.type in (CommandType.GET, CommandType.GETS):
            return True
        if len(self.keys) != 1:
            return False
        if self.type == CommandType.CAS:
            return self.cas is not None
        return True


@dataclass
class Record:
    """
    Represents one parsed record from a server reply.

    Attributes:
        code: Raw return code for this record
        key: Key of a VALUE record, or the name of a STAT record
        value: Payload of a VALUE record, the number of an INCR/DECR
               reply, or the value of a STAT record
        flags: Client flags of a VALUE record
        cas: CAS token of a VALUE record read with GETS
        message: Error text sent with CLIENT_ERROR / SERVER_ERROR
    """
    code: ReturnCode
    key: Optional[bytes] = None
    value: Optional[bytes] = None
    flags: int = 0
    cas: Optional[int] = None
    message: str = ""

    @classmethod
    def status(cls, code: ReturnCode, message: str = "") -> "Record":
        """Create a record that only carries a status."""
        return cls(code=code, message=message)

    @classmethod
    def queued(cls) -> "Record":
        """Create the record reported for an unacknowledged command."""
        return cls(code=ReturnCode.ACTION_QUEUED)

    @classmethod
    def item(cls, key: bytes, value: bytes, flags: int = 0, cas: Optional[int] = None) -> "Record":
        """Create a VALUE record."""
        return cls(code=ReturnCode.VALUE, key=key, value=value, flags=flags, cas=cas)

    @classmethod
    def number(cls, value: bytes) -> "Record":
        """Create an INCR/DECR reply record."""
        return cls(code=ReturnCode.SUCCESS, value=value)

    @classmethod
    def stat(cls, name: bytes, value: bytes) -> "Record":
        """Create a STAT record."""
        return cls(code=ReturnCode.STAT, key=name, value=value)

    @property
    def is_end(self) -> bool:
        return self.code == ReturnCode.END
