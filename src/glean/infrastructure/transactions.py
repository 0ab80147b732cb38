"""
Re-entrant, task-owned transaction scope shared by the repository adapters.

Only one asyncio task holds a transaction at a time; other tasks wait on the
lock. Nested `transaction()` calls from the owning task join the outer one, so
services can compose freely. Adapters supply begin/commit/rollback hooks.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class TransactionScope:
    def __init__(
        self,
        begin: Callable[[], Awaitable[None]],
        commit: Callable[[], Awaitable[None]],
        rollback: Callable[[], Awaitable[None]],
    ):
        self._begin = begin
        self._commit = commit
        self._rollback = rollback
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task | None = None
        self._depth = 0

    @property
    def active(self) -> bool:
        return self._owner is not None and self._owner is asyncio.current_task()

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[None]:
        if self.active:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        async with self._lock:
            await self._begin()
            self._owner = asyncio.current_task()
            self._depth = 1
            try:
                yield
            except BaseException:
                await self._rollback()
                logger.debug("Transaction rolled back")
                raise
            else:
                await self._commit()
            finally:
                self._owner = None
                self._depth = 0
