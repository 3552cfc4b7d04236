#!/usr/bin/env python3
"""
memcluster Command Line Entry Point

Talks to a memcached cluster from the shell. Values are read and
printed raw (as text), so they interoperate with incr/decr and other
memcached clients.

Usage:
    memcluster --servers 127.0.0.1:11211 set greeting hello
    memcluster --servers 127.0.0.1:11211,127.0.0.1:11212 get greeting
    memcluster mget a b c                       # one line per key found
    memcluster incr hits 5
    memcluster --namespace app: delete greeting
    memcluster stats                            # one column per server

Environment Variables:
    MEMCLUSTER_SERVERS          - Default server list (comma separated)
    MEMCLUSTER_CONNECT_TIMEOUT  - Connect timeout in seconds
    MEMCLUSTER_IO_TIMEOUT       - Read/write timeout in seconds
    MEMCLUSTER_DEBUG            - Enable debug logging (true/false)
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from .client import MemcacheClient
from .cluster.distribution import DistributionType
from .cluster.hashing import HashAlgorithm
from .config.settings import settings
from .errors import MemcachedError, NotFound

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="memcluster",
        description="memcluster: memcached cluster client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--servers",
        type=str,
        default=os.getenv("MEMCLUSTER_SERVERS", f"127.0.0.1:{settings.DEFAULT_PORT}"),
        help="Comma separated list of ip:port servers",
    )

    parser.add_argument(
        "--namespace",
        type=str,
        default="",
        help="Prefix added to every key",
    )

    parser.add_argument(
        "--hash",
        choices=[algorithm.value for algorithm in HashAlgorithm],
        default=HashAlgorithm.DEFAULT.value,
        help="Key hash function",
    )

    parser.add_argument(
        "--distribution",
        choices=[kind.value for kind in DistributionType],
        default=DistributionType.CONSISTENT.value,
        help="Key distribution over servers",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    get = commands.add_parser("get", help="Print the value of a key")
    get.add_argument("key")

    mget = commands.add_parser("mget", help="Print key/value lines for the keys found")
    mget.add_argument("keys", nargs="+")

    for name in ("set", "add", "replace"):
        store = commands.add_parser(name, help=f"{name.capitalize()} a value")
        store.add_argument("key")
        store.add_argument("value")
        store.add_argument("--ttl", type=int, default=0, help="Lifetime in seconds")

    for name in ("append", "prepend"):
        concat = commands.add_parser(name, help=f"{name.capitalize()} bytes to a value")
        concat.add_argument("key")
        concat.add_argument("value")

    for name in ("incr", "decr"):
        counter = commands.add_parser(name, help=f"{name.capitalize()}ement a counter")
        counter.add_argument("key")
        counter.add_argument("offset", type=int, nargs="?", default=1)

    delete = commands.add_parser("delete", help="Delete a key")
    delete.add_argument("key")

    commands.add_parser("stats", help="Print per-server statistics")

    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL, logging.WARNING)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stderr),
        ]
    )


def run_command(client: MemcacheClient, args: argparse.Namespace) -> None:
    """Execute one parsed sub-command and print its result."""
    command = args.command

    if command == "get":
        print(_text(client.get(args.key, raw=True)))
    elif command == "mget":
        values = client.get_multi(args.keys, raw=True)
        for key in args.keys:
            if key in values:
                print(f"{key} {_text(values[key])}")
    elif command in ("set", "add", "replace"):
        outcome = getattr(client, command)(args.key, args.value, ttl=args.ttl, raw=True)
        print(outcome.value.upper())
    elif command in ("append", "prepend"):
        outcome = getattr(client, command)(args.key, args.value)
        print(outcome.value.upper())
    elif command in ("incr", "decr"):
        print(getattr(client, command)(args.key, args.offset))
    elif command == "delete":
        print(client.delete(args.key).value.upper())
    elif command == "stats":
        servers = client.servers()
        print("\t".join(["stat"] + servers))
        for name, values in client.stats().items():
            print("\t".join([name] + ["-" if value is None else str(value) for value in values]))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the command line client."""
    args = parse_args(argv)

    setup_logging(debug=args.debug)
    logger.debug(f"Servers: {args.servers}")

    try:
        client = MemcacheClient(
            [server.strip() for server in args.servers.split(",") if server.strip()],
            hash=args.hash,
            distribution=args.distribution,
            namespace=args.namespace,
        )
    except MemcachedError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    with client:
        try:
            run_command(client, args)
        except NotFound:
            print("NOT_FOUND", file=sys.stderr)
            return 1
        except MemcachedError as e:
            logger.debug(f"{args.command} failed: {e!r}")
            print(f"error: {e}", file=sys.stderr)
            return 1
    return 0


def _text(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


if __name__ == "__main__":
    sys.exit(main())
