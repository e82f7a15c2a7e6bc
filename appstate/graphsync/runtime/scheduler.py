"""
Schedulers for deferred reconciler flushes.

- ManualScheduler: callbacks wait until ``run_pending()`` (tests, headless)
- AsyncioScheduler: callbacks run on the event loop after the delay
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ManualScheduler:
    """Scheduler whose callbacks run only when asked to.

    Example:
        >>> scheduler = ManualScheduler()
        >>> scheduler.defer(lambda: print("flush"), 16)
        >>> scheduler.run_pending()
        flush
        1
    """

    def __init__(self) -> None:
        self._pending: List[Tuple[Callable[[], Any], int]] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    def defer(self, callback: Callable[[], Any], delay_ms: int = 0) -> None:
        self._pending.append((callback, delay_ms))

    def run_pending(self) -> int:
        """Run callbacks until none are left, including ones they defer.

        Returns:
            Number of callbacks run
        """
        count = 0
        while self._pending:
            batch, self._pending = self._pending, []
            for callback, _ in batch:
                callback()
                count += 1
        return count


class AsyncioScheduler:
    """Scheduler backed by ``loop.call_later``.

    Attributes:
        loop: Event loop to schedule on; defaults to the running loop at
            the time ``defer`` is called
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.loop = loop

    def defer(self, callback: Callable[[], Any], delay_ms: int = 0) -> None:
        loop = self.loop or asyncio.get_running_loop()
        loop.call_later(delay_ms / 1000.0, self._run, callback)

    @staticmethod
    def _run(callback: Callable[[], Any]) -> None:
        try:
            callback()
        except Exception as e:
            logger.error(f"Deferred flush failed: {e}", exc_info=True)
