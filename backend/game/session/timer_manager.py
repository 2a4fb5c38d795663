"""Manage response-window timers for hostless games watched by this client."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from game.logic.enums import RoundPhase
from game.logic.timer import DeadlineTimer

if TYPE_CHECKING:
    from game.logic.models import Game

logger = structlog.get_logger()

# Callback type: (game_id, round_number) -> Awaitable[None]
TimeoutCallback = Callable[[str, int], Awaitable[None]]


@dataclass
class _ArmedWindow:
    timer: DeadlineTimer
    round_number: int
    deadline: float


class ResponseWindowManager:
    """Keep one response-window timer per game in step with the latest game snapshot.

    ``arm`` is fed every game snapshot. It starts a timer when a first
    responder has claimed, leaves a running timer alone when the snapshot
    describes the same window, and drops it once the round has moved on.
    Deadlines are measured against ``clock``, which must share a time base
    with the store's commit timestamps.
    """

    def __init__(self, on_timeout: TimeoutCallback, clock: Callable[[], float] = time.time) -> None:
        self._on_timeout = on_timeout
        self._clock = clock
        self._windows: dict[str, _ArmedWindow] = {}

    def has_timer(self, game_id: str) -> bool:
        return game_id in self._windows

    def armed_round(self, game_id: str) -> int | None:
        window = self._windows.get(game_id)
        return window.round_number if window else None

    def arm(self, game: Game) -> None:
        deadline = game.response_deadline
        if not game.is_active or game.round_phase is not RoundPhase.ANSWERING or deadline is None:
            self.disarm(game.id)
            return

        current = self._windows.get(game.id)
        if current is not None and current.round_number == game.round_number and current.deadline == deadline:
            return

        self.disarm(game.id)
        timer = DeadlineTimer()
        round_number = game.round_number
        timer.start(
            deadline - self._clock(),
            lambda gid=game.id, rnd=round_number: self._fire(gid, rnd),
        )
        self._windows[game.id] = _ArmedWindow(timer=timer, round_number=round_number, deadline=deadline)
        logger.debug("response window armed", game_id=game.id, round_number=round_number, deadline=deadline)

    def disarm(self, game_id: str) -> None:
        window = self._windows.pop(game_id, None)
        if window is not None:
            window.timer.cancel()

    def cleanup_all(self) -> None:
        for game_id in list(self._windows):
            self.disarm(game_id)

    async def _fire(self, game_id: str, round_number: int) -> None:
        window = self._windows.get(game_id)
        if window is not None and window.round_number == round_number:
            del self._windows[game_id]
        logger.info("response window expired", game_id=game_id, round_number=round_number)
        await self._on_timeout(game_id, round_number)
