"""
Server Distribution Module

Maps a key to the index of the server that owns it. Two strategies are
available, both driven by any hash function from hashing.py:

- Modula: hash(key) % server_count. Adding or removing a server remaps
  nearly every key, so it only suits static clusters.
- Consistent: every server owns several points on the 32-bit ring and a
  key belongs to the first point at or after its hash, wrapping around.
  Removing a server only moves the keys that server owned.
"""

import logging
from bisect import bisect_left
from enum import Enum
from typing import List, Sequence, Tuple

from ..config.settings import settings
from .hashing import HashAlgorithm, get_hash_function

logger = logging.getLogger(__name__)


class DistributionType(Enum):
    """Enumeration of supported distribution strategies."""
    MODULA = "modula"
    CONSISTENT = "consistent"


class Distribution:
    """
    Base class for distribution strategies.

    Subclasses implement select_server(), which must return the same
    index for the same key for as long as the server list is unchanged.
    """

    type: DistributionType

    def __init__(self, algorithm: HashAlgorithm = HashAlgorithm.DEFAULT):
        self.algorithm = algorithm
        self.hash = get_hash_function(algorithm)

    def select_server(self, key: bytes, server_count: int) -> int:
        raise NotImplementedError("This class is only meant to be subclassed")


class ModulaDistribution(Distribution):
    """Server index is the key hash modulo the number of servers."""

    type = DistributionType.MODULA

    def select_server(self, key: bytes, server_count: int) -> int:
        if server_count < 1:
            raise ValueError("server_count must be positive")
        if server_count == 1:
            return 0
        return self.hash(key) % server_count


class ConsistentDistribution(Distribution):
    """
    Ring-based distribution.

    The ring is a sorted list of (point, server_index) pairs. Each server
    contributes `points_per_server` points placed at hash("host:port-i"),
    so the ring depends only on the server labels and never on the order
    keys arrive in.

    Attributes:
        labels: Server labels the ring was built from, in configured order
        points_per_server: Number of ring points per server
    """

    type = DistributionType.CONSISTENT

    def __init__(
            self,
            labels: Sequence[str],
            algorithm: HashAlgorithm = HashAlgorithm.DEFAULT,
            points_per_server: int = None,
    ):
        super().__init__(algorithm)
        if not labels:
            raise ValueError("consistent distribution needs at least one server")
        self.labels = list(labels)
        self.points_per_server = (
            points_per_server if points_per_server is not None else settings.POINTS_PER_SERVER
        )
        self._ring: List[Tuple[int, int]] = []
        self._points: List[int] = []
        self.rebuild()

    def rebuild(self) -> None:
        """Recompute the ring from the current labels."""
        ring = []
        for index, label in enumerate(self.labels):
            for point in range(self.points_per_server):
                ring.append((self.hash(f"{label}-{point}".encode()), index))
        ring.sort()
        self._ring = ring
        self._points = [point for point, _ in ring]
        logger.debug(f"Built ring with {len(ring)} points for {len(self.labels)} servers")

    def select_server(self, key: bytes, server_count: int) -> int:
        if server_count != len(self.labels):
            raise ValueError(
                f"ring was built for {len(self.labels)} servers, not {server_count}"
            )
        if server_count == 1:
            return 0

        position = bisect_left(self._points, self.hash(key))
        if position == len(self._points):
            # Wrap around to the first point on the ring
            position = 0
        return self._ring[position][1]


def build_distribution(
        kind: DistributionType,
        algorithm: HashAlgorithm,
        labels: Sequence[str],
) -> Distribution:
    """
    Create the distribution strategy for a server list.

    Args:
        kind: Modula or consistent
        algorithm: Hash function driving the strategy
        labels: "host:port" labels in configured order

    Returns:
        A Distribution ready to answer select_server()
    """
    if kind == DistributionType.MODULA:
        return ModulaDistribution(algorithm)
    return ConsistentDistribution(labels, algorithm)
