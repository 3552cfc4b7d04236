"""
Asyncio Multi-Get Driver

Runs a multi-get inside an asyncio event loop: the session's wait sets
are registered with loop.add_reader() / loop.add_writer(), so other
coroutines keep running while servers answer.

Usage:
    async def handler(client):
        values = await get_multi(client, ["user:1", "user:2"])

The client itself stays single threaded; only one coroutine may use a
given client at a time. If the awaiting task is cancelled, the session
is dropped and its connections are settled before their next use.
"""

import asyncio
import logging
from typing import Any, Dict, Sequence

from .config.settings import settings
from .protocol.commands import ReturnCode

logger = logging.getLogger(__name__)


async def get_multi(client, keys: Sequence[Any], raw: bool = False, timeout: float = None) -> Dict[Any, Any]:
    """
    Fetch many keys without blocking the event loop.

    Args:
        client: A MemcacheClient
        keys: Keys to fetch
        raw: Return stored bytes instead of deserializing them
        timeout: Seconds to wait for any server to make progress
                 (default: settings.IO_TIMEOUT)

    Returns:
        Dict of the keys that were found
    """
    loop = asyncio.get_running_loop()
    timeout = timeout if timeout is not None else settings.IO_TIMEOUT

    session = client.begin_get_multi(keys, raw=raw)
    while True:
        results, readers, writers = client.continue_get_multi(session)
        if not readers and not writers:
            break

        ready = loop.create_future()

        def wake() -> None:
            if not ready.done():
                ready.set_result(None)

        reader_fds = [handle.fileno() for handle in readers]
        writer_fds = [handle.fileno() for handle in writers]
        try:
            for fd in reader_fds:
                loop.add_reader(fd, wake)
            for fd in writer_fds:
                loop.add_writer(fd, wake)
            try:
                await asyncio.wait_for(ready, timeout)
            except asyncio.TimeoutError:
                session.fail_active(ReturnCode.TIMEOUT, "multi-get timed out")
        finally:
            for fd in reader_fds:
                loop.remove_reader(fd)
            for fd in writer_fds:
                loop.remove_writer(fd)

    for key, error in session.errors.items():
        logger.warning(f"Multi-get skipped {key!r}: {error.message}")
    return results
