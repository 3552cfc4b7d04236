"""
Cluster module for memcluster.

This module provides key placement across a server list:
- Client configuration and server endpoints
- Key hash functions
- Modula and consistent distribution strategies
"""

from .config import ClientConfig, ServerEndpoint
from .distribution import (
    ConsistentDistribution,
    Distribution,
    DistributionType,
    ModulaDistribution,
    build_distribution,
)
from .hashing import HashAlgorithm, hash_key

__all__ = [
    'ClientConfig',
    'ServerEndpoint',
    'Distribution',
    'DistributionType',
    'ModulaDistribution',
    'ConsistentDistribution',
    'build_distribution',
    'HashAlgorithm',
    'hash_key',
]
