"""
Live views of game state for the presentation layer.

Each watch call registers one store subscription and returns its handle;
closing the handle stops delivery. Callbacks receive parsed models. A read
error or an unparseable document never ends the stream: it is logged and
the callback receives a safe default (None or an empty list) instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

import structlog
from pydantic import ValidationError

from game.logic.documents import (
    answers_query,
    game_path,
    pending_buzzes_query,
    player_query,
    players_query,
    skip_votes_query,
)
from game.logic.models import Answer, Buzz, Game, Player, SkipVote

if TYPE_CHECKING:
    from collections.abc import Callable

    from game.logic.enums import GameVariant
    from game.logic.models import _DocumentModel
    from shared.store import DocumentSnapshot, DocumentStore, Query, Subscription

logger = structlog.get_logger()

M = TypeVar("M", bound="_DocumentModel")


def _parse_one(model: type[M], snapshot: DocumentSnapshot, stream: str) -> M | None:
    try:
        return model.from_snapshot(snapshot)
    except ValidationError as exc:
        logger.warning("unreadable document in stream", stream=stream, path=snapshot.path, error=str(exc))
        return None


def _parse_many(model: type[M], snapshots: list[DocumentSnapshot], stream: str) -> list[M]:
    parsed = (_parse_one(model, snapshot, stream) for snapshot in snapshots)
    return [item for item in parsed if item is not None]


class GameWatchers:
    """Subscription surface for one game variant."""

    def __init__(self, store: DocumentStore, variant: GameVariant) -> None:
        self._store = store
        self._variant = variant

    @property
    def variant(self) -> GameVariant:
        return self._variant

    def watch_game(self, game_id: str, on_change: Callable[[Game | None], None]) -> Subscription:
        stream = f"game {game_id}"

        def _on_error(exc: Exception) -> None:
            logger.warning("game stream read failed", game_id=game_id, error=str(exc))
            on_change(None)

        return self._store.watch_document(
            game_path(self._variant, game_id),
            lambda snapshot: on_change(_parse_one(Game, snapshot, stream)),
            _on_error,
        )

    def watch_players(self, game_id: str, on_change: Callable[[list[Player]], None]) -> Subscription:
        """Players in join order."""
        return self._watch_list(players_query(self._variant, game_id), Player, on_change, f"players {game_id}")

    def watch_player(self, game_id: str, identity: str, on_change: Callable[[Player | None], None]) -> Subscription:
        query = player_query(self._variant, game_id, identity).order("createdAt")
        return self._watch_list(
            query,
            Player,
            lambda players: on_change(players[0] if players else None),
            f"player {identity} in {game_id}",
        )

    def watch_buzzes(self, game_id: str, round_number: int, on_change: Callable[[list[Buzz]], None]) -> Subscription:
        """Unresolved buzzes of one round, oldest first."""
        return self._watch_list(pending_buzzes_query(game_id, round_number), Buzz, on_change, f"buzzes {game_id}")

    def watch_answers(self, game_id: str, round_number: int, on_change: Callable[[list[Answer]], None]) -> Subscription:
        return self._watch_list(answers_query(game_id, round_number), Answer, on_change, f"answers {game_id}")

    def watch_skip_votes(
        self,
        game_id: str,
        round_number: int,
        on_change: Callable[[list[SkipVote]], None],
    ) -> Subscription:
        return self._watch_list(skip_votes_query(game_id, round_number), SkipVote, on_change, f"skip votes {game_id}")

    def _watch_list(
        self,
        query: Query,
        model: type[M],
        on_change: Callable[[list[M]], None],
        stream: str,
    ) -> Subscription:
        def _on_error(exc: Exception) -> None:
            logger.warning("list stream read failed", stream=stream, error=str(exc))
            on_change([])

        return self._store.watch_query(
            query,
            lambda snapshots: on_change(_parse_many(model, snapshots, stream)),
            _on_error,
        )
