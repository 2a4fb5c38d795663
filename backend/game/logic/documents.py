"""Where game entities live in the document store, and typed reads of them."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic.alias_generators import to_camel

from game.logic.enums import GameVariant, Lifecycle
from game.logic.exceptions import NotFoundError
from game.logic.models import Player
from shared.store import Query, join_path

if TYPE_CHECKING:
    from collections.abc import Mapping

    from game.logic.models import _DocumentModel
    from shared.store import DocumentSnapshot, DocumentStore

M = TypeVar("M", bound="_DocumentModel")

PLAYERS = "players"
BUZZES = "buzzes"
ANSWERS = "answers"
SKIP_VOTES = "skipVotes"


def game_path(variant: GameVariant, game_id: str) -> str:
    return join_path(variant.collection, game_id)


def sub_collection(variant: GameVariant, game_id: str, name: str) -> str:
    return join_path(variant.collection, game_id, name)


def active_code_query(variant: GameVariant, code: str) -> Query:
    return Query(variant.collection).where("joinCode", code).where("lifecycle", Lifecycle.ACTIVE.value)


def players_query(variant: GameVariant, game_id: str) -> Query:
    """All players of a game in join order."""
    return Query(sub_collection(variant, game_id, PLAYERS)).order("createdAt")


def player_query(variant: GameVariant, game_id: str, identity: str) -> Query:
    return Query(sub_collection(variant, game_id, PLAYERS)).where("identity", identity)


def pending_buzzes_query(game_id: str, round_number: int) -> Query:
    """Unresolved buzzes of one round, oldest first."""
    return (
        Query(sub_collection(GameVariant.HOSTED, game_id, BUZZES))
        .where("roundNumber", round_number)
        .where("resolved", False)  # noqa: FBT003
        .order("createdAt")
    )


def answers_query(game_id: str, round_number: int, identity: str | None = None) -> Query:
    query = Query(sub_collection(GameVariant.HOSTLESS, game_id, ANSWERS)).where("roundNumber", round_number)
    if identity is not None:
        query = query.where("playerIdentity", identity)
    return query.order("createdAt")


def skip_votes_query(game_id: str, round_number: int, identity: str | None = None) -> Query:
    query = Query(sub_collection(GameVariant.HOSTLESS, game_id, SKIP_VOTES)).where("roundNumber", round_number)
    if identity is not None:
        query = query.where("playerIdentity", identity)
    return query.order("createdAt")


def document_fields(updates: Mapping[str, Any]) -> dict[str, Any]:
    """Translate a model attribute update into stored field names and JSON values."""
    return {to_camel(name): value.value if isinstance(value, Enum) else value for name, value in updates.items()}


def expect(model: type[M], snapshot: DocumentSnapshot, description: str, *, operation: str) -> M:
    """Parse a snapshot that must exist; a missing document is a NotFoundError."""
    parsed = model.from_snapshot(snapshot)
    if parsed is None:
        raise NotFoundError(f"{description} not found", operation=operation)
    return parsed


async def find_player(store: DocumentStore, variant: GameVariant, game_id: str, identity: str) -> Player | None:
    """The player record for ``identity`` in a game; the oldest one if a join race duplicated it."""
    snapshots = await store.query(player_query(variant, game_id, identity).order("createdAt").limited(1))
    if not snapshots:
        return None
    return Player.from_snapshot(snapshots[0])
