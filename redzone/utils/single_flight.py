"""
Single-Flight Guard
===================

Non-blocking in-process guard ensuring at most one batch of a given kind
runs at a time. A caller that finds the guard held is told so immediately
instead of waiting.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


class SingleFlightGuard:
    """Asyncio-based single-flight lock.

    Usage:
        async with guard.hold() as acquired:
            if not acquired:
                return None
            ...

    The busy check and the acquisition happen without an intervening await,
    so two coroutines on the same event loop cannot both win. The lock is
    released when the block exits, whether it returns or raises.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    @property
    def is_running(self) -> bool:
        """Whether the guard is currently held."""
        return self._lock is not None and self._lock.locked()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[bool]:
        """Hold the guard for the duration of the block if it is free.

        Yields:
            True if this block holds the guard, False if another one does
        """
        lock = self._get_lock()
        if lock.locked():
            logger.debug(f"Single-flight guard busy: {self.name}")
            yield False
            return

        async with lock:
            yield True
