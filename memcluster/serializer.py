"""
Value Serialization Module

Values are serialized with pickle by default. Any object with
serialize(value) -> bytes and deserialize(data) -> value can be passed
to the client instead.

Raw mode bypasses the serializer: bytes are stored unchanged, text is
UTF-8 encoded and integers are written as decimal text, which is the
form incr/decr/append/prepend expect.
"""

import pickle
from typing import Any


class PickleSerializer:
    """Default serializer backed by pickle."""

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL):
        self.protocol = protocol

    def serialize(self, value: Any) -> bytes:
        return pickle.dumps(value, protocol=self.protocol)

    def deserialize(self, data: bytes) -> Any:
        return pickle.loads(data)


def to_raw(value: Any) -> bytes:
    """
    Encode a value for raw storage.

    Raises:
        TypeError: For anything but bytes, str or int
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value).encode()
    raise TypeError(f"raw values must be bytes, str or int, not {type(value).__name__}")
