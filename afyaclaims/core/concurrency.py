"""
Mutation Concurrency Helpers

Per-entity locks so that at most one mutation per entity id is in flight,
and a helper that lets a mutation finish even when its caller stops waiting.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Dict, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EntityLocks:
    """
    Registry of asyncio locks keyed by entity id.

    A second mutation on the same key waits for the first one to finish;
    mutations on different keys proceed independently. Locks are dropped
    once nobody holds or awaits them.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


# Strong references to mutations still running after their caller went away
_detached: Set[asyncio.Task] = set()


async def run_to_completion(operation: Awaitable[T]) -> T:
    """
    Run a mutation so that cancelling the caller does not cancel the mutation.

    The caller still sees CancelledError, but the operation keeps running
    and its audit and notification side effects still happen.
    """
    task = asyncio.ensure_future(operation)
    _detached.add(task)
    task.add_done_callback(_finished)
    return await asyncio.shield(task)


def _finished(task: asyncio.Task) -> None:
    _detached.discard(task)
    if not task.cancelled() and task.exception() is not None:
        # Already raised to the caller unless it stopped waiting
        logger.debug(f"Mutation finished with error: {task.exception()!r}")
