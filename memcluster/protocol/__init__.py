"""Protocol module for memcluster."""

from .commands import Command, CommandType, Record, ReturnCode
from .parser import ProtocolParser

__all__ = [
    "Command",
    "CommandType",
    "Record",
    "ReturnCode",
    "ProtocolParser",
]
