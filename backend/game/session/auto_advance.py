"""
Cooperative response-window enforcement for a hostless game.

Every client watching a game runs one driver. When a first responder's
window runs out, each driver independently tries to move the game to the
next round. The advance is guarded by the round number the window belonged
to, so only the first attempt changes anything and the rest are no-ops.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from game.logic.exceptions import GameCommandError, InvalidTransitionError, NotFoundError, TransientStoreError
from game.session.timer_manager import ResponseWindowManager

if TYPE_CHECKING:
    from game.logic.hostless import HostlessGameService
    from game.logic.models import Game
    from game.session.watchers import GameWatchers
    from shared.store import Subscription

logger = structlog.get_logger()

# Returns the correct answer text for a round, or None if it is not known.
AnswerKey = Callable[[int], str | None]


class AutoAdvanceDriver:
    """Watch one hostless game and advance it when the response window expires.

    If ``answer_key`` is given, the round's answers are graded against it
    before advancing.
    """

    def __init__(
        self,
        service: HostlessGameService,
        watchers: GameWatchers,
        game_id: str,
        answer_key: AnswerKey | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._service = service
        self._watchers = watchers
        self._game_id = game_id
        self._answer_key = answer_key
        self._windows = ResponseWindowManager(self._handle_timeout, clock=clock)
        self._subscription: Subscription | None = None

    @property
    def running(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def windows(self) -> ResponseWindowManager:
        return self._windows

    def start(self) -> None:
        if self.running:
            return
        self._subscription = self._watchers.watch_game(self._game_id, self._on_game)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self._windows.cleanup_all()

    def _on_game(self, game: Game | None) -> None:
        if game is None:
            self._windows.disarm(self._game_id)
            return
        self._windows.arm(game)

    async def _handle_timeout(self, game_id: str, round_number: int) -> None:
        await self._grade(game_id, round_number)
        try:
            await self._service.advance_round(game_id, expected_round=round_number)
        except (InvalidTransitionError, NotFoundError) as exc:
            logger.debug("timeout advance skipped", game_id=game_id, round_number=round_number, reason=exc.reason)
        except TransientStoreError as exc:
            logger.warning("timeout advance failed", game_id=game_id, round_number=round_number, reason=exc.reason)

    async def _grade(self, game_id: str, round_number: int) -> None:
        """Grade the expiring round if the answer is known. A failure here never blocks the advance."""
        if self._answer_key is None:
            return
        correct = self._answer_key(round_number)
        if not correct:
            return
        try:
            await self._service.evaluate_answers(game_id, correct)
        except GameCommandError as exc:
            logger.warning(
                "timeout grading failed",
                game_id=game_id,
                round_number=round_number,
                code=exc.code,
                reason=exc.reason,
            )
