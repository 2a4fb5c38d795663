"""
Hosted game state machine.

One participant (the host) paces the game and judges each buzz by hand.
Round phases cycle waiting -> live -> closed -> waiting (next round).
Buzzes queue up in arrival order while the round is live; judging a buzz
incorrect locks that player out for the rest of the round, and the round
stays live so the next buzz in the queue can be judged.

Host-only commands are not checked against the game's owner: any caller
holding a game id may invoke them. The owner id is recorded for the
presentation layer to decide which controls to show.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from game.logic.base import BaseGameService
from game.logic.documents import BUZZES, expect, sub_collection
from game.logic.enums import GameVariant, RoundPhase
from game.logic.exceptions import InvalidTransitionError, translate_store_errors
from game.logic.models import Buzz, Game
from game.logic.validation import clean_display_name, require_identity, require_phase
from shared.store import document_path

if TYPE_CHECKING:
    from game.logic.models import Player

logger = structlog.get_logger()


class HostedGameService(BaseGameService):
    variant = GameVariant.HOSTED
    advance_from = (RoundPhase.CLOSED,)

    async def create(self, owner_identity: str, display_name: str) -> Game:
        """Create a hosted game owned by the caller. The host is not a player."""
        return await self._directory.create_game(self.variant, owner_identity, display_name)

    async def submit_buzz(self, game_id: str, identity: str, display_name: str) -> Buzz:
        """Queue a buzz for the current round.

        Every buzz is accepted while the round is live and the player is not
        locked out, including repeat buzzes from the same player.
        """
        identity = require_identity(identity, operation="submit_buzz")
        display_name = clean_display_name(display_name, operation="submit_buzz")
        game = await self._load_active_game(game_id, "submit_buzz")
        require_phase(game, (RoundPhase.LIVE,), operation="submit_buzz")

        player = await self._require_player(game_id, identity, "submit_buzz")
        if player.round_locked:
            raise InvalidTransitionError(
                f"{player.display_name} is locked out of round {game.round_number}",
                operation="submit_buzz",
                game_id=game_id,
            )

        buzz = Buzz(player_identity=identity, display_name=display_name, round_number=game.round_number)
        collection = sub_collection(self.variant, game_id, BUZZES)
        with translate_store_errors("submit_buzz", game_id):
            buzz_id = await self._store.add(collection, buzz.to_new_document())
            snapshot = await self._store.get(document_path(collection, buzz_id))

        logger.info("buzz submitted", game_id=game_id, identity=identity, round_number=game.round_number)
        return expect(Buzz, snapshot, "buzz", operation="submit_buzz")

    async def judge_correct(self, game_id: str, buzz_id: str, identity: str) -> Player:
        """+1 for the buzzing player. The host is expected to close the round right after."""
        return await self._ledger.judge_correct(game_id, buzz_id, identity)

    async def judge_incorrect(self, game_id: str, buzz_id: str, identity: str) -> Player:
        """-1 for the buzzing player and lock them out. The round stays live."""
        return await self._ledger.judge_incorrect(game_id, buzz_id, identity)

    async def close_round(self, game_id: str) -> Game:
        await self._close_round(game_id, (RoundPhase.LIVE,), operation="close_round")
        return await self.get_game(game_id, operation="close_round")
