"""
Error Taxonomy Module

Raw return codes are reduced to a small set of Outcomes through a total
lookup table. Every failing Outcome has an exception class; callers
catch the class, or MemcachedError for all of them.

Codes missing from the table classify as SERVER_ERROR, so an
unrecognised reply can never pass for success.
"""

from enum import Enum
from typing import Dict, Optional, Type

from .protocol.commands import ReturnCode


class Outcome(Enum):
    """Enumeration of classified operation outcomes."""
    SUCCESS = "success"
    ACTION_QUEUED = "action_queued"
    NOT_FOUND = "not_found"
    NOT_STORED = "not_stored"
    CONNECTION_FAILURE = "connection_failure"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    PROTOCOL_ERROR = "protocol_error"

    @property
    def is_success(self) -> bool:
        return self in (Outcome.SUCCESS, Outcome.ACTION_QUEUED)


class MemcachedError(Exception):
    """
    Base class for every error raised by memcluster.

    Attributes:
        message: Human readable description
        code: Raw return code that produced the error, if any
        key: Application key the error belongs to, if any
    """

    outcome: Optional[Outcome] = None

    def __init__(self, message: str = "", code: Optional[ReturnCode] = None, key: Optional[str] = None):
        self.message = message
        self.code = code
        self.key = key
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r}, key={self.key!r})"


class ArgumentError(MemcachedError, ValueError):
    """Malformed construction input: a server string or the namespace."""


class NotFound(MemcachedError):
    """The key does not exist on its server."""
    outcome = Outcome.NOT_FOUND


class NotStored(MemcachedError):
    """A conditional write did not happen (add on an existing key, stale CAS)."""
    outcome = Outcome.NOT_STORED


class ConnectionFailure(MemcachedError):
    """The server could not be reached or the connection broke."""
    outcome = Outcome.CONNECTION_FAILURE


class ServerError(MemcachedError):
    """The server reported an error, or the reply code is unknown."""
    outcome = Outcome.SERVER_ERROR


class ClientError(MemcachedError):
    """The API was misused (bad key, CAS disabled, released client)."""
    outcome = Outcome.CLIENT_ERROR


class ProtocolError(MemcachedError):
    """The server sent something the protocol does not allow."""
    outcome = Outcome.PROTOCOL_ERROR


OUTCOMES: Dict[ReturnCode, Outcome] = {
    ReturnCode.SUCCESS: Outcome.SUCCESS,
    ReturnCode.STORED: Outcome.SUCCESS,
    ReturnCode.DELETED: Outcome.SUCCESS,
    ReturnCode.VALUE: Outcome.SUCCESS,
    ReturnCode.STAT: Outcome.SUCCESS,
    ReturnCode.ACTION_QUEUED: Outcome.ACTION_QUEUED,
    ReturnCode.NOTFOUND: Outcome.NOT_FOUND,
    ReturnCode.DATA_DOES_NOT_EXIST: Outcome.NOT_FOUND,
    ReturnCode.END: Outcome.NOT_FOUND,
    ReturnCode.NOTSTORED: Outcome.NOT_STORED,
    ReturnCode.DATA_EXISTS: Outcome.NOT_STORED,
    ReturnCode.HOST_LOOKUP_FAILURE: Outcome.CONNECTION_FAILURE,
    ReturnCode.CONNECTION_FAILURE: Outcome.CONNECTION_FAILURE,
    ReturnCode.CONNECTION_BIND_FAILURE: Outcome.CONNECTION_FAILURE,
    ReturnCode.CONNECTION_SOCKET_CREATE_FAILURE: Outcome.CONNECTION_FAILURE,
    ReturnCode.WRITE_FAILURE: Outcome.CONNECTION_FAILURE,
    ReturnCode.READ_FAILURE: Outcome.CONNECTION_FAILURE,
    ReturnCode.UNKNOWN_READ_FAILURE: Outcome.CONNECTION_FAILURE,
    ReturnCode.PARTIAL_READ: Outcome.CONNECTION_FAILURE,
    ReturnCode.ERRNO: Outcome.CONNECTION_FAILURE,
    ReturnCode.FAIL_UNIX_SOCKET: Outcome.CONNECTION_FAILURE,
    ReturnCode.TIMEOUT: Outcome.CONNECTION_FAILURE,
    ReturnCode.NO_SERVERS: Outcome.CONNECTION_FAILURE,
    ReturnCode.PROTOCOL_ERROR: Outcome.PROTOCOL_ERROR,
    ReturnCode.CLIENT_ERROR: Outcome.CLIENT_ERROR,
    ReturnCode.NO_KEY_PROVIDED: Outcome.CLIENT_ERROR,
    ReturnCode.BAD_KEY_PROVIDED: Outcome.CLIENT_ERROR,
    ReturnCode.NOT_SUPPORTED: Outcome.CLIENT_ERROR,
    ReturnCode.SERVER_ERROR: Outcome.SERVER_ERROR,
    ReturnCode.FAILURE: Outcome.SERVER_ERROR,
    ReturnCode.MEMORY_ALLOCATION_FAILURE: Outcome.SERVER_ERROR,
    ReturnCode.SOME_ERRORS: Outcome.SERVER_ERROR,
}

EXCEPTIONS: Dict[Outcome, Type[MemcachedError]] = {
    Outcome.NOT_FOUND: NotFound,
    Outcome.NOT_STORED: NotStored,
    Outcome.CONNECTION_FAILURE: ConnectionFailure,
    Outcome.SERVER_ERROR: ServerError,
    Outcome.CLIENT_ERROR: ClientError,
    Outcome.PROTOCOL_ERROR: ProtocolError,
}


def classify(raw_code: int) -> Outcome:
    """
    Map a raw return code to its Outcome.

    Args:
        raw_code: A ReturnCode or plain integer

    Returns:
        The Outcome; SERVER_ERROR for codes outside the table
    """
    try:
        code = ReturnCode(raw_code)
    except ValueError:
        return Outcome.SERVER_ERROR
    return OUTCOMES.get(code, Outcome.SERVER_ERROR)


def error_for(raw_code: int, message: str = "", key: Optional[str] = None) -> MemcachedError:
    """Build the exception for a failing raw code without raising it."""
    outcome = classify(raw_code)
    exc_class = EXCEPTIONS.get(outcome, ServerError)
    try:
        code = ReturnCode(raw_code)
    except ValueError:
        code = None
    text = message or (code.name if code is not None else f"unknown return code {raw_code}")
    return exc_class(text, code=code, key=key)


def check_return_code(raw_code: int, message: str = "", key: Optional[str] = None) -> Outcome:
    """
    Pass successful codes through and raise on everything else.

    Returns:
        Outcome.SUCCESS or Outcome.ACTION_QUEUED

    Raises:
        MemcachedError: The subclass matching the classified outcome
    """
    outcome = classify(raw_code)
    if outcome.is_success:
        return outcome
    raise error_for(raw_code, message, key)
