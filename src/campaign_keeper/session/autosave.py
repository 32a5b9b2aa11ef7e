"""Cancellable periodic autosave task.

The task only schedules; the callback it drives is responsible for taking
the snapshot lock and re-checking that the session is still active before
writing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)


class AutoSaveTask:
    """Fires ``on_tick`` every ``interval`` seconds until stopped."""

    def __init__(
        self,
        interval: float,
        on_tick: Callable[[], Coroutine[Any, Any, Any]],
    ) -> None:
        if interval <= 0:
            raise ValueError(f"Autosave interval must be positive, got {interval}")
        self.interval = interval
        self._on_tick = on_tick
        self._task: asyncio.Task | None = None
        self._stopped = True
        self.tick_count = 0

    @property
    def is_running(self) -> bool:
        return not self._stopped and self._task is not None and not self._task.done()

    @property
    def stopped(self) -> bool:
        """True once ``stop()`` has been requested (checked by tick handlers)."""
        return self._stopped

    def start(self) -> None:
        """Schedule the loop on the running event loop.

        Raises:
            RuntimeError: If there is no running event loop.
        """
        if self.is_running:
            return
        loop = asyncio.get_running_loop()
        self._stopped = False
        self._task = loop.create_task(self._run())
        logger.debug("Autosave started (every %ss)", self.interval)

    def stop(self) -> None:
        """Stop synchronously; ticks that already fired see ``stopped`` and do nothing."""
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug("Autosave stopped")

    async def _run(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self.interval)
            if self._stopped:
                break
            try:
                await self._on_tick()
                self.tick_count += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Autosave tick failed")


__all__ = ["AutoSaveTask"]
