"""Lifecycle commands common to hosted and hostless games."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar

import structlog

from game.logic.documents import (
    PLAYERS,
    document_fields,
    expect,
    find_player,
    game_path,
    players_query,
    sub_collection,
)
from game.logic.enums import Lifecycle, RoundPhase
from game.logic.exceptions import GameEndedError, NotFoundError, translate_store_errors
from game.logic.models import Game, Player
from game.logic.validation import clean_display_name, require_active, require_identity, require_phase
from shared.store import document_path

if TYPE_CHECKING:
    from game.logic.directory import GameDirectory
    from game.logic.enums import GameVariant
    from game.logic.scoring import ScoreLedger
    from shared.store import DocumentStore, Transaction

logger = structlog.get_logger()


class BaseGameService:
    """
    Commands shared by both state machines.

    The store is the only source of truth: every command reads what it
    needs, checks its preconditions and writes, returning the resulting
    entity. Nothing is cached between commands.
    """

    variant: ClassVar[GameVariant]
    advance_from: ClassVar[tuple[RoundPhase, ...]]

    def __init__(
        self,
        store: DocumentStore,
        directory: GameDirectory,
        ledger: ScoreLedger,
    ) -> None:
        self._store = store
        self._directory = directory
        self._ledger = ledger

    def _game_path(self, game_id: str) -> str:
        return game_path(self.variant, game_id)

    def _round_reset(self) -> dict[str, Any]:
        """Extra game attributes cleared whenever a round starts or the game moves to the next round."""
        return {}

    async def get_game(self, game_id: str, *, operation: str = "get_game") -> Game:
        with translate_store_errors(operation, game_id):
            snapshot = await self._store.get(self._game_path(game_id))
        return expect(Game, snapshot, f"game {game_id}", operation=operation)

    async def _load_active_game(self, game_id: str, operation: str) -> Game:
        game = await self.get_game(game_id, operation=operation)
        require_active(game, operation=operation)
        return game

    async def _require_player(self, game_id: str, identity: str, operation: str) -> Player:
        with translate_store_errors(operation, game_id):
            player = await find_player(self._store, self.variant, game_id, identity)
        if player is None:
            raise NotFoundError(f"player {identity} is not in this game", operation=operation, game_id=game_id)
        return player

    async def _player_paths(self, game_id: str, operation: str) -> list[str]:
        with translate_store_errors(operation, game_id):
            snapshots = await self._store.query(players_query(self.variant, game_id))
        return [snapshot.path for snapshot in snapshots]

    async def join(self, game_id: str, identity: str, display_name: str) -> Player:
        """Add a player to an active game. Joining again returns the existing record."""
        identity = require_identity(identity, operation="join")
        display_name = clean_display_name(display_name, operation="join")
        await self._load_active_game(game_id, "join")

        with translate_store_errors("join", game_id):
            existing = await find_player(self._store, self.variant, game_id, identity)
            if existing is not None:
                logger.debug("player rejoined", game_id=game_id, identity=identity)
                return existing
            player = Player(identity=identity, display_name=display_name)
            collection = sub_collection(self.variant, game_id, PLAYERS)
            player_id = await self._store.add(collection, player.to_new_document())
            snapshot = await self._store.get(document_path(collection, player_id))

        joined = expect(Player, snapshot, "player", operation="join")
        logger.info("player joined", game_id=game_id, identity=identity, player_id=player_id)
        return joined

    async def start_round(self, game_id: str) -> Game:
        """Open the waiting round and clear every player's round lock in one batch."""
        game = await self._load_active_game(game_id, "start_round")
        require_phase(game, (RoundPhase.WAITING,), operation="start_round")
        player_paths = await self._player_paths(game_id, "start_round")

        updates = {"round_phase": RoundPhase.LIVE, **self._round_reset()}
        batch = self._store.batch()
        batch.update(self._game_path(game_id), document_fields(updates))
        for path in player_paths:
            batch.update(path, {"roundLocked": False})
        with translate_store_errors("start_round", game_id):
            await batch.commit()

        logger.info("round started", game_id=game_id, round_number=game.round_number, players=len(player_paths))
        return game.model_copy(update=updates)

    async def advance_round(self, game_id: str, expected_round: int | None = None) -> Game:
        """Move to the next round's waiting phase and clear every round lock.

        When ``expected_round`` is given and the game is already past that
        round, nothing is written and the current game is returned. Several
        clients whose response-window timers fire together converge this way.
        """
        player_paths = await self._player_paths(game_id, "advance_round")

        async def _apply(tx: Transaction) -> tuple[Game, bool]:
            game = expect(Game, await tx.get(self._game_path(game_id)), f"game {game_id}", operation="advance_round")
            require_active(game, operation="advance_round")
            if expected_round is not None and game.round_number > expected_round:
                return game, False
            require_phase(game, self.advance_from, operation="advance_round")
            updates = {
                "round_number": game.round_number + 1,
                "round_phase": RoundPhase.WAITING,
                **self._round_reset(),
            }
            tx.update(self._game_path(game_id), document_fields(updates))
            for path in player_paths:
                tx.update(path, {"roundLocked": False})
            return game.model_copy(update=updates), True

        with translate_store_errors("advance_round", game_id):
            game, advanced = await self._store.run_transaction(_apply)
        if advanced:
            logger.info("round advanced", game_id=game_id, round_number=game.round_number)
        else:
            logger.debug("round already advanced", game_id=game_id, expected_round=expected_round)
        return game

    async def end_game(self, game_id: str) -> Game:
        """End the game. Ended is terminal; ending twice is rejected."""

        async def _apply(tx: Transaction) -> Game:
            game = expect(Game, await tx.get(self._game_path(game_id)), f"game {game_id}", operation="end_game")
            if game.lifecycle is Lifecycle.ENDED:
                raise GameEndedError("game has already ended", operation="end_game", game_id=game_id)
            tx.update(self._game_path(game_id), document_fields({"lifecycle": Lifecycle.ENDED}))
            return game.model_copy(update={"lifecycle": Lifecycle.ENDED})

        with translate_store_errors("end_game", game_id):
            game = await self._store.run_transaction(_apply)
        logger.info("game ended", game_id=game_id, round_number=game.round_number)
        return game

    async def _close_round(
        self,
        game_id: str,
        allowed: tuple[RoundPhase, ...],
        *,
        operation: str,
        round_number: int | None = None,
    ) -> bool:
        """Set the round phase to closed.

        With ``round_number`` the close is conditional: if the game has left
        that round or its phase no longer allows closing, nothing is written
        and False is returned. Without it, a disallowed phase is rejected.
        """

        async def _apply(tx: Transaction) -> bool:
            game = expect(Game, await tx.get(self._game_path(game_id)), f"game {game_id}", operation=operation)
            require_active(game, operation=operation)
            if round_number is not None and (game.round_number != round_number or game.round_phase not in allowed):
                return False
            require_phase(game, allowed, operation=operation)
            tx.update(self._game_path(game_id), document_fields({"round_phase": RoundPhase.CLOSED}))
            return True

        with translate_store_errors(operation, game_id):
            closed = await self._store.run_transaction(_apply)
        if closed:
            logger.info("round closed", game_id=game_id, trigger=operation)
        return closed

