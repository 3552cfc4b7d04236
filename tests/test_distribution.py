"""
Tests for key distribution

These tests verify the strategies in memcluster.cluster.distribution:
- Modula distribution
- Consistent (ring) distribution and its stability
- build_distribution()

Run with: python -m pytest tests/test_distribution.py -v
"""

from collections import Counter

import pytest

from memcluster.cluster.distribution import (
    ConsistentDistribution,
    DistributionType,
    ModulaDistribution,
    build_distribution,
)
from memcluster.cluster.hashing import HashAlgorithm, hash_key

LABELS = ["10.0.0.1:11211", "10.0.0.2:11211", "10.0.0.3:11211"]
KEYS = [f"key-{i}".encode() for i in range(2000)]


class TestModulaDistribution:
    """Test hash modulo server count."""

    def test_single_server_always_zero(self):
        """Test one server owns every key."""
        distribution = ModulaDistribution()
        assert all(distribution.select_server(key, 1) == 0 for key in KEYS[:50])

    def test_matches_hash_modulo(self):
        """Test index is hash % count."""
        distribution = ModulaDistribution(HashAlgorithm.FNV1A_32)
        for key in KEYS[:50]:
            assert distribution.select_server(key, 3) == hash_key(key, HashAlgorithm.FNV1A_32) % 3

    def test_rejects_empty_cluster(self):
        """Test zero servers is an error."""
        with pytest.raises(ValueError):
            ModulaDistribution().select_server(b"key", 0)

    def test_in_range(self):
        """Test indexes stay within the server list."""
        distribution = ModulaDistribution()
        assert {distribution.select_server(key, 4) for key in KEYS} <= {0, 1, 2, 3}


class TestConsistentDistribution:
    """Test ring-based distribution."""

    def test_single_server_always_zero(self):
        """Test one server owns every key."""
        distribution = ConsistentDistribution(LABELS[:1])
        assert all(distribution.select_server(key, 1) == 0 for key in KEYS[:50])

    def test_deterministic(self):
        """Test two rings from the same labels agree."""
        first = ConsistentDistribution(LABELS)
        second = ConsistentDistribution(LABELS)
        for key in KEYS[:200]:
            assert first.select_server(key, 3) == second.select_server(key, 3)

    def test_every_server_gets_keys(self):
        """Test keys are spread over all servers."""
        distribution = ConsistentDistribution(LABELS)
        counts = Counter(distribution.select_server(key, 3) for key in KEYS)
        assert set(counts) == {0, 1, 2}
        assert min(counts.values()) > len(KEYS) // 10

    def test_ring_size(self):
        """Test each server contributes its points."""
        distribution = ConsistentDistribution(LABELS, points_per_server=10)
        assert len(distribution._ring) == 30
        assert distribution._points == sorted(distribution._points)

    def test_removing_server_only_moves_its_keys(self):
        """Test keys on surviving servers stay put when one server leaves."""
        full = ConsistentDistribution(LABELS)
        reduced_labels = [LABELS[0], LABELS[2]]
        reduced = ConsistentDistribution(reduced_labels)

        moved = 0
        for key in KEYS:
            before = LABELS[full.select_server(key, 3)]
            after = reduced_labels[reduced.select_server(key, 2)]
            if before == LABELS[1]:
                moved += 1
                continue
            assert before == after, f"{key!r} moved from {before} to {after}"
        assert moved > 0

    def test_adding_server_only_takes_keys(self):
        """Test a new server only takes keys, never shuffles the others."""
        small = ConsistentDistribution(LABELS[:2])
        large = ConsistentDistribution(LABELS)
        for key in KEYS:
            after = LABELS[large.select_server(key, 3)]
            if after != LABELS[2]:
                assert after == LABELS[small.select_server(key, 2)]

    def test_wraps_around(self):
        """Test a key hashing past the last point maps to the first point."""
        distribution = ConsistentDistribution(LABELS, points_per_server=2)
        distribution.hash = lambda key: 0xFFFFFFFF if key == b"last" else hash_key(key)
        distribution.rebuild()
        assert distribution.select_server(b"last", 3) == distribution._ring[0][1]

    def test_server_count_mismatch(self):
        """Test asking with a different server count is an error."""
        distribution = ConsistentDistribution(LABELS)
        with pytest.raises(ValueError):
            distribution.select_server(b"key", 2)

    def test_requires_servers(self):
        """Test an empty label list is rejected."""
        with pytest.raises(ValueError):
            ConsistentDistribution([])

    @pytest.mark.parametrize("algorithm", list(HashAlgorithm))
    def test_any_hash_drives_the_ring(self, algorithm):
        """Test the ring works with every hash function."""
        distribution = ConsistentDistribution(LABELS, algorithm)
        assert {distribution.select_server(key, 3) for key in KEYS[:500]} <= {0, 1, 2}


class TestBuildDistribution:
    """Test build_distribution()."""

    def test_modula(self):
        """Test modula strategy is built."""
        distribution = build_distribution(DistributionType.MODULA, HashAlgorithm.MD5, LABELS)
        assert isinstance(distribution, ModulaDistribution)
        assert distribution.algorithm == HashAlgorithm.MD5

    def test_consistent(self):
        """Test consistent strategy is built from labels."""
        distribution = build_distribution(DistributionType.CONSISTENT, HashAlgorithm.CRC, LABELS)
        assert isinstance(distribution, ConsistentDistribution)
        assert distribution.labels == LABELS
