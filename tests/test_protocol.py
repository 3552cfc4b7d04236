"""
Tests for the protocol parser

These tests verify the ProtocolParser class:
- format_request(): Encode Command objects for the wire
- parse_record(): Incrementally parse reply records
- is_valid_key(): Key rules

Run with: python -m pytest tests/test_protocol.py -v
"""

import pytest

from memcluster.protocol.commands import Command, CommandType, Record, ReturnCode
from memcluster.protocol.parser import ProtocolParser


class TestFormatStorage:
    """Test encoding storage commands."""

    def test_format_set(self, parser: ProtocolParser):
        """Test basic set."""
        cmd = Command(type=CommandType.SET, keys=[b"foo"], value=b"bar", ttl=60)
        assert parser.format_request(cmd) == b"set foo 0 60 3\r\nbar\r\n"

    def test_format_add_with_flags(self, parser: ProtocolParser):
        """Test flags are written."""
        cmd = Command(type=CommandType.ADD, keys=[b"foo"], value=b"x", flags=5)
        assert parser.format_request(cmd) == b"add foo 5 0 1\r\nx\r\n"

    def test_format_noreply(self, parser: ProtocolParser):
        """Test noreply follows the byte count."""
        cmd = Command(type=CommandType.REPLACE, keys=[b"foo"], value=b"bar", noreply=True)
        assert parser.format_request(cmd) == b"replace foo 0 0 3 noreply\r\nbar\r\n"

    def test_format_cas(self, parser: ProtocolParser):
        """Test cas token follows the byte count."""
        cmd = Command(type=CommandType.CAS, keys=[b"foo"], value=b"bar", cas=42)
        assert parser.format_request(cmd) == b"cas foo 0 0 3 42\r\nbar\r\n"

    def test_format_binary_value(self, parser: ProtocolParser):
        """Test values may contain the terminator."""
        cmd = Command(type=CommandType.SET, keys=[b"foo"], value=b"a\r\nb")
        assert parser.format_request(cmd) == b"set foo 0 0 4\r\na\r\nb\r\n"

    def test_format_append_prepend(self, parser: ProtocolParser):
        """Test concatenation verbs."""
        assert parser.format_request(
            Command(type=CommandType.APPEND, keys=[b"k"], value=b"z")
        ) == b"append k 0 0 1\r\nz\r\n"
        assert parser.format_request(
            Command(type=CommandType.PREPEND, keys=[b"k"], value=b"z")
        ) == b"prepend k 0 0 1\r\nz\r\n"


class TestFormatOther:
    """Test encoding non-storage commands."""

    def test_format_get_multiple_keys(self, parser: ProtocolParser):
        """Test get with several keys."""
        cmd = Command(type=CommandType.GET, keys=[b"a", b"b", b"c"])
        assert parser.format_request(cmd) == b"get a b c\r\n"

    def test_format_gets(self, parser: ProtocolParser):
        """Test gets."""
        assert parser.format_request(Command(type=CommandType.GETS, keys=[b"a"])) == b"gets a\r\n"

    def test_format_incr_decr(self, parser: ProtocolParser):
        """Test counters carry their delta."""
        assert parser.format_request(
            Command(type=CommandType.INCR, keys=[b"n"], delta=5)
        ) == b"incr n 5\r\n"
        assert parser.format_request(
            Command(type=CommandType.DECR, keys=[b"n"], delta=1, noreply=True)
        ) == b"decr n 1 noreply\r\n"

    def test_format_delete(self, parser: ProtocolParser):
        """Test delete."""
        assert parser.format_request(Command(type=CommandType.DELETE, keys=[b"k"])) == b"delete k\r\n"

    def test_format_stats(self, parser: ProtocolParser):
        """Test stats has no arguments."""
        assert parser.format_request(Command(type=CommandType.STATS)) == b"stats\r\n"

    def test_invalid_commands_rejected(self, parser: ProtocolParser):
        """Test commands missing what their type needs."""
        with pytest.raises(ValueError):
            parser.format_request(Command(type=CommandType.GET))
        with pytest.raises(ValueError):
            parser.format_request(Command(type=CommandType.CAS, keys=[b"k"], value=b"v"))
        with pytest.raises(ValueError):
            parser.format_request(Command(type=CommandType.SET, keys=[b"a", b"b"]))


class TestParseStatusLines:
    """Test single-line replies."""

    @pytest.mark.parametrize("line,code", [
        (b"STORED", ReturnCode.STORED),
        (b"NOT_STORED", ReturnCode.NOTSTORED),
        (b"EXISTS", ReturnCode.DATA_EXISTS),
        (b"NOT_FOUND", ReturnCode.NOTFOUND),
        (b"DELETED", ReturnCode.DELETED),
        (b"END", ReturnCode.END),
        (b"ERROR", ReturnCode.PROTOCOL_ERROR),
    ])
    def test_status(self, parser: ProtocolParser, line, code):
        """Test each status line maps to its code."""
        buffer = bytearray(line + b"\r\n")
        record = parser.parse_record(buffer)
        assert record.code == code
        assert buffer == bytearray()

    def test_number(self, parser: ProtocolParser):
        """Test incr/decr replies."""
        record = parser.parse_record(bytearray(b"42\r\n"))
        assert record.code == ReturnCode.SUCCESS
        assert record.value == b"42"

    def test_stat(self, parser: ProtocolParser):
        """Test STAT lines keep name and value."""
        record = parser.parse_record(bytearray(b"STAT version 1.6.21\r\n"))
        assert record.code == ReturnCode.STAT
        assert record.key == b"version"
        assert record.value == b"1.6.21"

    def test_server_error_message(self, parser: ProtocolParser):
        """Test SERVER_ERROR keeps its message."""
        record = parser.parse_record(bytearray(b"SERVER_ERROR out of memory\r\n"))
        assert record.code == ReturnCode.SERVER_ERROR
        assert record.message == "out of memory"

    def test_client_error_message(self, parser: ProtocolParser):
        """Test CLIENT_ERROR keeps its message."""
        record = parser.parse_record(bytearray(b"CLIENT_ERROR bad data chunk\r\n"))
        assert record.code == ReturnCode.CLIENT_ERROR
        assert record.message == "bad data chunk"

    def test_unknown_line(self, parser: ProtocolParser):
        """Test unrecognised replies are protocol errors."""
        record = parser.parse_record(bytearray(b"WHATEVER\r\n"))
        assert record.code == ReturnCode.PROTOCOL_ERROR


class TestParseValues:
    """Test VALUE records."""

    def test_value(self, parser: ProtocolParser):
        """Test a complete VALUE record."""
        buffer = bytearray(b"VALUE foo 3 5\r\nhello\r\nEND\r\n")
        record = parser.parse_record(buffer)
        assert record == Record.item(b"foo", b"hello", flags=3)
        assert parser.parse_record(buffer).is_end
        assert buffer == bytearray()

    def test_value_with_cas(self, parser: ProtocolParser):
        """Test gets replies carry the CAS token."""
        record = parser.parse_record(bytearray(b"VALUE foo 0 1 99\r\nx\r\n"))
        assert record.cas == 99

    def test_value_containing_terminator(self, parser: ProtocolParser):
        """Test data is read by length, not by line."""
        record = parser.parse_record(bytearray(b"VALUE k 0 4\r\na\r\nb\r\n"))
        assert record.value == b"a\r\nb"

    def test_empty_value(self, parser: ProtocolParser):
        """Test zero-length data."""
        record = parser.parse_record(bytearray(b"VALUE k 0 0\r\n\r\n"))
        assert record.value == b""

    def test_incomplete_header(self, parser: ProtocolParser):
        """Test a partial line is left in the buffer."""
        buffer = bytearray(b"VALUE foo 0")
        assert parser.parse_record(buffer) is None
        assert buffer == bytearray(b"VALUE foo 0")

    def test_incomplete_data(self, parser: ProtocolParser):
        """Test a partial data block is left in the buffer."""
        buffer = bytearray(b"VALUE foo 0 10\r\nhell")
        assert parser.parse_record(buffer) is None
        buffer.extend(b"o worl")
        assert parser.parse_record(buffer) is None
        buffer.extend(b"\r\n")
        assert parser.parse_record(buffer).value == b"hello worl"

    def test_bad_data_terminator(self, parser: ProtocolParser):
        """Test data not followed by CRLF is a protocol error."""
        record = parser.parse_record(bytearray(b"VALUE k 0 1\r\nxyz"))
        assert record.code == ReturnCode.PROTOCOL_ERROR

    def test_malformed_header(self, parser: ProtocolParser):
        """Test a header with bad numbers is a protocol error."""
        record = parser.parse_record(bytearray(b"VALUE k zero 1\r\nx\r\n"))
        assert record.code == ReturnCode.PROTOCOL_ERROR

    def test_several_records(self, parser: ProtocolParser):
        """Test consecutive records are consumed one at a time."""
        buffer = bytearray(b"VALUE a 0 1\r\n1\r\nVALUE b 0 1\r\n2\r\nEND\r\n")
        keys = []
        while True:
            record = parser.parse_record(buffer)
            if record.is_end:
                break
            keys.append(record.key)
        assert keys == [b"a", b"b"]


class TestKeyValidation:
    """Test key rules."""

    def test_valid_keys(self, parser: ProtocolParser):
        """Test ordinary keys."""
        assert parser.is_valid_key(b"foo")
        assert parser.is_valid_key(b"user:1:profile")
        assert parser.is_valid_key(b"k" * 250)

    @pytest.mark.parametrize("key", [b"", b"has space", b"tab\tkey", b"new\nline", b"nul\x00", b"k" * 251])
    def test_invalid_keys(self, parser: ProtocolParser, key):
        """Test empty, too long, whitespace and control characters."""
        assert not parser.is_valid_key(key)
