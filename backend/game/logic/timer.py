"""
Client-side one-shot deadline timer.

Used for the hostless response window: when it fires, the owning client
attempts the timeout transition. Because every client runs its own timer,
the callback must be safe to run on several clients for the same deadline.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from game.logic.exceptions import GameCommandError
from shared.store import StoreError

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


class DeadlineTimer:
    """Run a coroutine callback once after a delay unless cancelled first."""

    def __init__(self) -> None:
        self._active_task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._active_task is not None and not self._active_task.done()

    def start(self, delay: float, on_timeout: Callable[[], Awaitable[None]]) -> None:
        """Start (or restart) the timer. A negative delay fires on the next loop iteration."""
        self.cancel()
        self._active_task = asyncio.create_task(self._run_timer(max(0.0, delay), on_timeout))

    def cancel(self) -> None:
        """
        Cancel the pending timer.

        A timer cancelled from inside its own callback is only forgotten, not
        cancelled, so the callback runs to completion.
        """
        task = self._active_task
        self._active_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run_timer(self, seconds: float, on_timeout: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.sleep(seconds)
            await on_timeout()
        except asyncio.CancelledError:
            pass
        except (GameCommandError, StoreError, RuntimeError, ValueError):  # fmt: skip
            logger.exception("timer callback failed")
