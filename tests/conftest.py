"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import socket
from contextlib import closing
from typing import Callable, Generator, List

import pytest

from memcluster.client import MemcacheClient
from memcluster.cluster.config import ClientConfig
from memcluster.network.connection_set import ConnectionSet
from memcluster.protocol.parser import ProtocolParser
from tests.fake_server import FakeMemcached


def find_free_port() -> int:
    """Find a port nothing is listening on."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('127.0.0.1', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# ============================================================================
# Protocol Fixtures
# ============================================================================

@pytest.fixture
def parser() -> ProtocolParser:
    """Create a ProtocolParser instance."""
    return ProtocolParser()


@pytest.fixture
def buffer() -> bytearray:
    """An empty receive buffer."""
    return bytearray()


# ============================================================================
# Server Fixtures
# ============================================================================

@pytest.fixture
def memcached() -> Generator[FakeMemcached, None, None]:
    """A single running fake memcached server."""
    server = FakeMemcached(name="single").start()
    yield server
    server.stop()


@pytest.fixture
def memcached_cluster() -> Generator[List[FakeMemcached], None, None]:
    """Three running fake memcached servers."""
    servers = [FakeMemcached(name=f"node{i}").start() for i in range(3)]
    yield servers
    for server in servers:
        server.stop()


@pytest.fixture
def dead_server() -> str:
    """Address of a port with no server behind it."""
    return f"127.0.0.1:{find_free_port()}"


# ============================================================================
# Client Fixtures
# ============================================================================

@pytest.fixture
def client_factory(memcached_cluster: List[FakeMemcached]):
    """
    Factory fixture to create clients for the fake cluster.

    Every client created is destroyed after the test.

    Usage:
        def test_something(client_factory):
            client = client_factory(support_cas=True)
    """
    created = []

    def factory(**options) -> MemcacheClient:
        client = MemcacheClient([server.address for server in memcached_cluster], **options)
        created.append(client)
        return client

    yield factory

    for client in created:
        if not client.released:
            client.destroy()


@pytest.fixture
def client(client_factory: Callable[..., MemcacheClient]) -> MemcacheClient:
    """A default client for the three-server fake cluster."""
    return client_factory()


@pytest.fixture
def single_client(memcached: FakeMemcached) -> Generator[MemcacheClient, None, None]:
    """A client for a single fake server."""
    client = MemcacheClient(memcached.address)
    yield client
    if not client.released:
        client.destroy()


@pytest.fixture
def connection_set(memcached: FakeMemcached) -> Generator[ConnectionSet, None, None]:
    """A ConnectionSet for a single fake server."""
    connections = ConnectionSet(ClientConfig.from_options([memcached.address]))
    yield connections
    connections.close()


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
