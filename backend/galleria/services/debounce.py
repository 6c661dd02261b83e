"""Per-key debouncing of deferred work.

Drive delivers bursts of notifications for a single user action (uploading
fifty photos fires fifty events). The debouncer collapses a burst on one
key into a single call made once the key has been quiet for ``delay``
seconds.

Pending work is process-local: each instance keeps its own map, so under
multi-instance deployment the same burst may be handled once per instance.
Callers depend only on ``schedule``/``cancel``/``shutdown`` so a shared
delayed-queue implementation can replace this one.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from galleria.core.logging import get_logger

logger = get_logger(__name__)

DebouncedCallback = Callable[[], Awaitable[object]]


class Debouncer:
    """Owns one cancellable scheduled task per key.

    Task lifetime is bound to the application lifespan: ``shutdown`` cancels
    whatever is still pending. Exceptions raised by callbacks are logged
    here since no caller is left to report to.
    """

    def __init__(self, delay: float = 2.0):
        """Initialize the debouncer.

        Args:
            delay: Quiet period in seconds measured from the last event on a key.
        """
        self.delay = delay
        self._pending: dict[str, asyncio.Task] = {}
        self._running: set[asyncio.Task] = set()
        self._closed = False
        self.scheduled_count = 0
        self.fired_count = 0
        self.failed_count = 0

    @property
    def pending_keys(self) -> set[str]:
        """Keys with work waiting for their quiet period."""
        return set(self._pending)

    def schedule(self, key: str, callback: DebouncedCallback) -> None:
        """Schedule ``callback`` for ``key``, replacing any pending call.

        Args:
            key: Debounce key (a folder id).
            callback: Coroutine factory to run once the key goes quiet.

        Raises:
            RuntimeError: If the debouncer was shut down.
        """
        if self._closed:
            raise RuntimeError("Debouncer is shut down")

        existing = self._pending.pop(key, None)
        if existing is not None and not existing.done():
            existing.cancel()
            logger.debug("debounce_rescheduled", key=key)

        task = asyncio.create_task(self._run(key, callback), name=f"debounce-{key}")
        self._pending[key] = task
        self.scheduled_count += 1

    def cancel(self, key: str) -> bool:
        """Cancel pending work for a key.

        Returns:
            True if something was pending.
        """
        task = self._pending.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    async def shutdown(self) -> None:
        """Cancel pending work and wait for in-flight callbacks to settle."""
        self._closed = True
        tasks = list(self._pending.values()) + list(self._running)
        self._pending.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("debouncer_shutdown", cancelled=len(tasks))

    async def _run(self, key: str, callback: DebouncedCallback) -> None:
        await asyncio.sleep(self.delay)

        # From here on a newer event schedules a fresh task instead of
        # cancelling this one mid-callback.
        task = asyncio.current_task()
        if self._pending.get(key) is task:
            del self._pending[key]
        if task is not None:
            self._running.add(task)

        try:
            await callback()
            self.fired_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failed_count += 1
            logger.error("debounced_task_failed", key=key, error=str(e), exc_info=True)
        finally:
            if task is not None:
                self._running.discard(task)
