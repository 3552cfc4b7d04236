"""
Client Configuration Module

Defines the server list and behaviour flags a client is built from.
Configuration is validated once, at construction, and is immutable
afterwards; changing it means building a new client.

Recognised options:
- hash: default, crc, fnv1_32, fnv1_64, fnv1a_32, fnv1a_64, hsieh, md5
- distribution: modula, consistent
- no_block: send mutations without waiting for acknowledgement
- buffer_requests: coalesce sends until the next read
- support_cas: read CAS tokens and allow cas()
- tcp_nodelay: disable Nagle on server sockets
- namespace: prefix joined to every key (no whitespace)
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Tuple, Union

from ..errors import ArgumentError
from .distribution import DistributionType
from .hashing import HashAlgorithm

SERVER_PATTERN = re.compile(r"^(\d{1,3}\.){3}\d{1,3}:\d{1,5}$")

DEFAULTS: Dict[str, Any] = {
    "hash": HashAlgorithm.DEFAULT,
    "distribution": DistributionType.CONSISTENT,
    "no_block": False,
    "buffer_requests": False,
    "support_cas": False,
    "tcp_nodelay": False,
    "namespace": None,
}


@dataclass(frozen=True)
class ServerEndpoint:
    """A cache server address. Hostnames are not resolved; use an IP."""
    host: str
    port: int

    @classmethod
    def parse(cls, server: str) -> "ServerEndpoint":
        """
        Parse an "ip:port" string.

        Raises:
            ArgumentError: If the string is not in ip:port form
        """
        if not isinstance(server, str) or not SERVER_PATTERN.match(server):
            raise ArgumentError(
                f"Servers must be in the format ip:port (e.g., '127.0.0.1:11211'), got {server!r}"
            )
        host, port = server.split(":")
        return cls(host=host, port=int(port))

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def _enum_option(enum_class, name: str, value):
    if isinstance(value, enum_class):
        return value
    try:
        return enum_class(str(value).lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum_class)
        raise ArgumentError(f"Invalid {name} {value!r}; expected one of: {choices}") from None


@dataclass(frozen=True)
class ClientConfig:
    """
    Immutable client configuration.

    Attributes:
        servers: Endpoints in configured order; the index is the server id
        hash: Hash function for keys and ring points
        distribution: Modula or consistent key distribution
        no_block: Mutations are sent without waiting for a reply
        buffer_requests: Sends are buffered until the next read
        support_cas: CAS tokens are fetched and cas() is allowed
        tcp_nodelay: TCP_NODELAY is set on server sockets
        namespace: Prefix joined to every key
    """
    servers: Tuple[ServerEndpoint, ...]
    hash: HashAlgorithm = HashAlgorithm.DEFAULT
    distribution: DistributionType = DistributionType.CONSISTENT
    no_block: bool = False
    buffer_requests: bool = False
    support_cas: bool = False
    tcp_nodelay: bool = False
    namespace: str = ""
    namespace_bytes: bytes = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.servers:
            raise ArgumentError("At least one server is required")
        if re.search(r"\s", self.namespace):
            raise ArgumentError("Invalid namespace")
        object.__setattr__(self, "namespace_bytes", self.namespace.encode())

    @classmethod
    def from_options(cls, servers: Union[str, Iterable[str]], **options) -> "ClientConfig":
        """
        Build a configuration from server strings and option keywords.

        Args:
            servers: A single "ip:port" string or a sequence of them
            **options: Any of the recognised options; the rest default

        Raises:
            ArgumentError: On a malformed server, namespace or option
        """
        if isinstance(servers, str):
            servers = [servers]

        unknown = set(options) - set(DEFAULTS)
        if unknown:
            raise ArgumentError(f"Unknown options: {', '.join(sorted(unknown))}")

        merged = dict(DEFAULTS, **options)
        namespace = merged["namespace"]

        return cls(
            servers=tuple(ServerEndpoint.parse(server) for server in servers),
            hash=_enum_option(HashAlgorithm, "hash", merged["hash"]),
            distribution=_enum_option(DistributionType, "distribution", merged["distribution"]),
            no_block=bool(merged["no_block"]),
            buffer_requests=bool(merged["buffer_requests"]),
            support_cas=bool(merged["support_cas"]),
            tcp_nodelay=bool(merged["tcp_nodelay"]),
            namespace="" if namespace is None else str(namespace),
        )

    @property
    def labels(self) -> Tuple[str, ...]:
        """The "host:port" label of every server, in configured order."""
        return tuple(str(server) for server in self.servers)

    @property
    def queues_mutations(self) -> bool:
        """True when mutations are sent without waiting for acknowledgement."""
        return self.no_block or self.buffer_requests

    def options(self) -> Dict[str, Any]:
        """The option keywords this configuration was built from."""
        return {
            "hash": self.hash.value,
            "distribution": self.distribution.value,
            "no_block": self.no_block,
            "buffer_requests": self.buffer_requests,
            "support_cas": self.support_cas,
            "tcp_nodelay": self.tcp_nodelay,
            "namespace": self.namespace,
        }
