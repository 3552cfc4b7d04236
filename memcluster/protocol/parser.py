"""
Protocol Parser Module

This module handles encoding of requests and incremental parsing of
server replies for the memcached text protocol.

Parsing works on a caller-owned bytearray: parse_record() consumes one
complete record from the front of the buffer, or leaves the buffer
untouched and returns None when the record has not fully arrived yet.
That lets the same parser serve blocking reads and the non-blocking
multi-get engine.
"""

import logging
import re
from typing import Optional

from ..config.settings import settings
from .commands import Command, CommandType, Record, ReturnCode

logger = logging.getLogger(__name__)

TERMINATOR = b"\r\n"

_KEY_FORBIDDEN = re.compile(rb"[\x00-\x20\x7f]")

STATUS_LINES = {
    b"STORED": ReturnCode.STORED,
    b"NOT_STORED": ReturnCode.NOTSTORED,
    b"EXISTS": ReturnCode.DATA_EXISTS,
    b"NOT_FOUND": ReturnCode.NOTFOUND,
    b"DELETED": ReturnCode.DELETED,
    b"END": ReturnCode.END,
    b"OK": ReturnCode.SUCCESS,
    b"ERROR": ReturnCode.PROTOCOL_ERROR,
}


class ProtocolParser:
    """
    Parser for the memcached text protocol.

    Protocol Format:
        Storage:   <cmd> <key> <flags> <ttl> <bytes> [cas] [noreply]\\r\\n<data>\\r\\n
                   -> STORED | NOT_STORED | EXISTS | NOT_FOUND
        Retrieval: get|gets <key>*\\r\\n
                   -> (VALUE <key> <flags> <bytes> [cas]\\r\\n<data>\\r\\n)* END
        Delete:    delete <key> [noreply]\\r\\n -> DELETED | NOT_FOUND
        Counter:   incr|decr <key> <delta> [noreply]\\r\\n -> <number> | NOT_FOUND
        Stats:     stats\\r\\n -> (STAT <name> <value>\\r\\n)* END

    Constraints:
        - Keys: max 250 bytes, no whitespace or control characters
    """

    def __init__(self):
        """Initialize the parser with constraints from settings."""
        self.max_key_length = settings.MAX_KEY_LENGTH

    def is_valid_key(self, key: bytes) -> bool:
        """Check a (namespaced) key against the protocol's key rules."""
        if not key or len(key) > self.max_key_length:
            return False
        return _KEY_FORBIDDEN.search(key) is None

    def format_request(self, command: Command) -> bytes:
        """
        Encode a Command for sending over the wire.

        Args:
            command: The command to encode

        Returns:
            Request bytes, including the trailing terminator (and the
            data block for storage commands)

        Raises:
            ValueError: If the command is not valid for its type
        """
        if not command.is_valid:
            raise ValueError(f"invalid {command.type.name} command")

        verb = command.type.verb
        noreply = b" noreply" if command.noreply else b""

        if command.type.is_storage:
            header = b"%s %s %d %d %d" % (
                verb, command.key, command.flags, command.ttl, len(command.value)
            )
            if command.type == CommandType.CAS:
                header += b" %d" % command.cas
            return header + noreply + TERMINATOR + command.value + TERMINATOR

        if command.type in (CommandType.INCR, CommandType.DECR):
            return b"%s %s %d%s\r\n" % (verb, command.key, command.delta, noreply)

        if command.type == CommandType.DELETE:
            return b"%s %s%s\r\n" % (verb, command.key, noreply)

        if command.type in (CommandType.GET, CommandType.GETS):
            return verb + b" " + b" ".join(command.keys) + TERMINATOR

        return verb + TERMINATOR

    def parse_record(self, buffer: bytearray) -> Optional[Record]:
        """
        Consume one complete record from the front of `buffer`.

        Args:
            buffer: Bytes received so far; consumed in place

        Returns:
            The parsed Record, or None if the buffer does not yet hold a
            complete record.
        """
        end = buffer.find(TERMINATOR)
        if end < 0:
            return None

        line = bytes(buffer[:end])
        line_length = end + len(TERMINATOR)

        if line.startswith(b"VALUE "):
            return self._parse_value(buffer, line, line_length)

        del buffer[:line_length]
        return self._parse_line(line)

    def _parse_value(self, buffer: bytearray, line: bytes, line_length: int) -> Optional[Record]:
        """
        Parse a VALUE header and its data block.

        Format: VALUE <key> <flags> <bytes> [cas]
        """
        parts = line.split()
        if len(parts) not in (4, 5):
            del buffer[:line_length]
            return Record.status(ReturnCode.PROTOCOL_ERROR, f"malformed header: {line[:40]!r}")

        try:
            flags = int(parts[2])
            length = int(parts[3])
            cas = int(parts[4]) if len(parts) == 5 else None
        except ValueError:
            del buffer[:line_length]
            return Record.status(ReturnCode.PROTOCOL_ERROR, f"malformed header: {line[:40]!r}")

        total = line_length + length + len(TERMINATOR)
        if len(buffer) < total:
            return None

        data = bytes(buffer[line_length:line_length + length])
        trailer = bytes(buffer[line_length + length:total])
        del buffer[:total]

        if trailer != TERMINATOR:
            return Record.status(ReturnCode.PROTOCOL_ERROR, "missing data terminator")
        return Record.item(parts[1], data, flags=flags, cas=cas)

    def _parse_line(self, line: bytes) -> Record:
        """Parse a single-line reply."""
        code = STATUS_LINES.get(line)
        if code is not None:
            return Record.status(code)

        if line.isdigit():
            return Record.number(line)

        if line.startswith(b"STAT "):
            parts = line.split(None, 2)
            if len(parts) == 3:
                return Record.stat(parts[1], parts[2])
            return Record.status(ReturnCode.PROTOCOL_ERROR, f"malformed stat: {line[:40]!r}")

        if line.startswith(b"CLIENT_ERROR"):
            return Record.status(ReturnCode.CLIENT_ERROR, line[13:].decode(errors="replace"))

        if line.startswith(b"SERVER_ERROR"):
            return Record.status(ReturnCode.SERVER_ERROR, line[13:].decode(errors="replace"))

        logger.error(f"Unknown reply from server: {line[:40]!r}")
        return Record.status(ReturnCode.PROTOCOL_ERROR, f"unknown reply: {line[:40]!r}")
