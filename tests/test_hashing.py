"""
Tests for key hash functions

These tests verify the functions in memcluster.cluster.hashing:
- Known values for each algorithm
- Results always fit in 32 bits
- Results never depend on the process

Run with: python -m pytest tests/test_hashing.py -v
"""

import pytest

from memcluster.cluster.hashing import (
    HASH_FUNCTIONS,
    HashAlgorithm,
    crc,
    fnv1_32,
    fnv1_64,
    fnv1a_32,
    fnv1a_64,
    get_hash_function,
    hash_key,
    hsieh,
    md5,
    one_at_a_time,
)


class TestKnownValues:
    """Test each algorithm against published values."""

    def test_one_at_a_time(self):
        """Test Jenkins one-at-a-time."""
        assert one_at_a_time(b"a") == 0xCA2E9442

    def test_crc(self):
        """Test CRC32 folded to 15 bits."""
        assert crc(b"a") == 0x68B7

    def test_fnv1_32(self):
        """Test FNV-1 32-bit."""
        assert fnv1_32(b"a") == 0x050C5D7E

    def test_fnv1a_32(self):
        """Test FNV-1a 32-bit."""
        assert fnv1a_32(b"a") == 0xE40C292C

    def test_fnv1_64_truncated(self):
        """Test FNV-1 64-bit keeps the low 32 bits."""
        assert fnv1_64(b"a") == 0x8601B7BE

    def test_fnv1a_64_truncated(self):
        """Test FNV-1a 64-bit keeps the low 32 bits."""
        assert fnv1a_64(b"a") == 0x8601EC8C

    def test_hsieh(self):
        """Test SuperFastHash seeded with zero."""
        assert hsieh(b"hello") == 0x13842AC5
        assert hsieh(b"abcd") == 0x3AB452D8
        assert hsieh(b"a") == 0x93642E87

    def test_md5(self):
        """Test MD5 reads the first four digest bytes little endian."""
        # md5("a") = 0cc175b9...
        assert md5(b"a") == 0xB975C10C

    def test_fnv_empty_key_is_offset_basis(self):
        """Test empty input returns the FNV offset basis."""
        assert fnv1_32(b"") == 2166136261
        assert fnv1a_32(b"") == 2166136261


class TestHashProperties:
    """Test properties shared by every algorithm."""

    @pytest.mark.parametrize("algorithm", list(HashAlgorithm))
    def test_fits_in_32_bits(self, algorithm):
        """Test every result is an unsigned 32-bit integer."""
        for key in (b"a", b"foo", b"user:12345", b"x" * 250):
            value = hash_key(key, algorithm)
            assert 0 <= value <= 0xFFFFFFFF

    @pytest.mark.parametrize("algorithm", list(HashAlgorithm))
    def test_deterministic(self, algorithm):
        """Test the same key always hashes the same."""
        assert hash_key(b"stable-key", algorithm) == hash_key(b"stable-key", algorithm)

    @pytest.mark.parametrize("algorithm", list(HashAlgorithm))
    def test_spreads_keys(self, algorithm):
        """Test different keys do not all collide."""
        values = {hash_key(f"key-{i}".encode(), algorithm) for i in range(100)}
        assert len(values) > 50

    def test_crc_never_zero(self):
        """Test CRC hash is never zero."""
        assert all(crc(f"k{i}".encode()) > 0 for i in range(500))

    def test_hsieh_empty_key(self):
        """Test SuperFastHash of an empty key is zero."""
        assert hsieh(b"") == 0

    @pytest.mark.parametrize("length", [1, 2, 3, 4, 5, 6, 7, 8])
    def test_hsieh_all_tail_lengths(self, length):
        """Test SuperFastHash handles every remainder length."""
        value = hsieh(b"abcdefgh"[:length])
        assert 0 <= value <= 0xFFFFFFFF

    def test_every_algorithm_registered(self):
        """Test each enum member maps to a function."""
        assert set(HASH_FUNCTIONS) == set(HashAlgorithm)
        assert get_hash_function(HashAlgorithm.DEFAULT) is one_at_a_time

    def test_default_algorithm(self):
        """Test hash_key defaults to one-at-a-time."""
        assert hash_key(b"a") == one_at_a_time(b"a")
