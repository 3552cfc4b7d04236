"""
Key Hashing Module

Hash functions used to place keys (and ring points) on the 32-bit hash
space. The hash function is chosen independently of the distribution
function, so any of these can drive either modula or consistent
distribution.

All functions take bytes and return an unsigned 32-bit integer. None of
them depend on Python's per-process hash seed, so two processes (or two
client libraries using the same algorithm) agree on key placement.
"""

import hashlib
import zlib
from enum import Enum
from typing import Callable, Dict

MASK_32 = 0xFFFFFFFF
MASK_64 = 0xFFFFFFFFFFFFFFFF

FNV_32_INIT = 2166136261
FNV_32_PRIME = 16777619
FNV_64_INIT = 0xCBF29CE484222325
FNV_64_PRIME = 0x100000001B3


class HashAlgorithm(Enum):
    """Enumeration of supported key hash functions."""
    DEFAULT = "default"
    CRC = "crc"
    FNV1_32 = "fnv1_32"
    FNV1_64 = "fnv1_64"
    FNV1A_32 = "fnv1a_32"
    FNV1A_64 = "fnv1a_64"
    HSIEH = "hsieh"
    MD5 = "md5"


def one_at_a_time(key: bytes) -> int:
    """Bob Jenkins' one-at-a-time hash, the fastest of the set."""
    value = 0
    for byte in key:
        value = (value + byte) & MASK_32
        value = (value + (value << 10)) & MASK_32
        value ^= value >> 6
    value = (value + (value << 3)) & MASK_32
    value ^= value >> 11
    value = (value + (value << 15)) & MASK_32
    return value


def crc(key: bytes) -> int:
    """CRC32 folded to 15 bits, compatible with the classic C client."""
    value = ((zlib.crc32(key) & MASK_32) >> 16) & 0x7FFF
    return value or 1


def fnv1_32(key: bytes) -> int:
    value = FNV_32_INIT
    for byte in key:
        value = (value * FNV_32_PRIME) & MASK_32
        value ^= byte
    return value


def fnv1a_32(key: bytes) -> int:
    value = FNV_32_INIT
    for byte in key:
        value ^= byte
        value = (value * FNV_32_PRIME) & MASK_32
    return value


def fnv1_64(key: bytes) -> int:
    """64-bit FNV-1, truncated to the low 32 bits."""
    value = FNV_64_INIT
    for byte in key:
        value = (value * FNV_64_PRIME) & MASK_64
        value ^= byte
    return value & MASK_32


def fnv1a_64(key: bytes) -> int:
    """64-bit FNV-1a, truncated to the low 32 bits."""
    value = FNV_64_INIT
    for byte in key:
        value ^= byte
        value = (value * FNV_64_PRIME) & MASK_64
    return value & MASK_32


def _get16bits(data: bytes, offset: int) -> int:
    return data[offset] | (data[offset + 1] << 8)


def hsieh(key: bytes) -> int:
    """
    Paul Hsieh's SuperFastHash.

    Consumes the key four bytes at a time, then mixes in the remaining
    one to three bytes before the final avalanche.
    """
    length = len(key)
    if not length:
        return 0

    value = 0
    remainder = length & 3
    offset = 0

    for _ in range(length >> 2):
        value = (value + _get16bits(key, offset)) & MASK_32
        tmp = ((_get16bits(key, offset + 2) << 11) ^ value) & MASK_32
        value = ((value << 16) & MASK_32) ^ tmp
        offset += 4
        value = (value + (value >> 11)) & MASK_32

    if remainder == 3:
        value = (value + _get16bits(key, offset)) & MASK_32
        value ^= (value << 16) & MASK_32
        value ^= (key[offset + 2] << 18) & MASK_32
        value = (value + (value >> 11)) & MASK_32
    elif remainder == 2:
        value = (value + _get16bits(key, offset)) & MASK_32
        value ^= (value << 11) & MASK_32
        value = (value + (value >> 17)) & MASK_32
    elif remainder == 1:
        value = (value + key[offset]) & MASK_32
        value ^= (value << 10) & MASK_32
        value = (value + (value >> 1)) & MASK_32

    # Force avalanching of the final bits
    value ^= (value << 3) & MASK_32
    value = (value + (value >> 5)) & MASK_32
    value ^= (value << 4) & MASK_32
    value = (value + (value >> 17)) & MASK_32
    value ^= (value << 25) & MASK_32
    value = (value + (value >> 6)) & MASK_32
    return value


def md5(key: bytes) -> int:
    """First four bytes of the MD5 digest, read little endian."""
    digest = hashlib.md5(key).digest()
    return int.from_bytes(digest[:4], byteorder="little")


HASH_FUNCTIONS: Dict[HashAlgorithm, Callable[[bytes], int]] = {
    HashAlgorithm.DEFAULT: one_at_a_time,
    HashAlgorithm.CRC: crc,
    HashAlgorithm.FNV1_32: fnv1_32,
    HashAlgorithm.FNV1_64: fnv1_64,
    HashAlgorithm.FNV1A_32: fnv1a_32,
    HashAlgorithm.FNV1A_64: fnv1a_64,
    HashAlgorithm.HSIEH: hsieh,
    HashAlgorithm.MD5: md5,
}


def get_hash_function(algorithm: HashAlgorithm) -> Callable[[bytes], int]:
    """Look up the hash function for an algorithm."""
    return HASH_FUNCTIONS[algorithm]


def hash_key(key: bytes, algorithm: HashAlgorithm = HashAlgorithm.DEFAULT) -> int:
    """
    Hash a key with the given algorithm.

    Args:
        key: The (already namespaced) key bytes
        algorithm: Which hash function to apply

    Returns:
        Unsigned 32-bit hash value
    """
    return HASH_FUNCTIONS[algorithm](key)
