"""Game entities and their document representation.

Attributes are snake_case in Python and camelCase in stored documents.
The document id is not part of the stored data; it is filled in from the
snapshot path when a model is read back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from game.logic.enums import DEFAULT_RESPONSE_WINDOW_SECONDS, GameVariant, Lifecycle, RoundPhase
from shared.store import SERVER_TIMESTAMP

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shared.store import DocumentSnapshot


class _DocumentModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = ""
    created_at: float | None = None

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> Self | None:
        """Build the model from a snapshot, or None if the document does not exist."""
        if snapshot.data is None:
            return None
        return cls.model_validate({**snapshot.data, "id": snapshot.id})

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})

    def to_new_document(self) -> dict[str, Any]:
        """Document data for a fresh insert, stamped with the store's commit time."""
        return {**self.to_document(), "createdAt": SERVER_TIMESTAMP}


class FirstResponder(BaseModel):
    """Holder of the exclusive right to answer first in a hostless round."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    identity: str
    display_name: str
    claimed_at: float


class Game(_DocumentModel):
    variant: GameVariant
    join_code: str
    owner_id: str
    owner_name: str = ""
    lifecycle: Lifecycle = Lifecycle.ACTIVE
    round_number: int = Field(default=1, ge=1)
    round_phase: RoundPhase = RoundPhase.WAITING
    first_responder: FirstResponder | None = None
    response_window_seconds: int = Field(default=DEFAULT_RESPONSE_WINDOW_SECONDS, ge=1)

    @model_validator(mode="after")
    def _check_variant_fields(self) -> Game:
        if self.variant is GameVariant.HOSTED:
            if self.round_phase is RoundPhase.ANSWERING:
                raise ValueError("hosted games have no answering phase")
            if self.first_responder is not None:
                raise ValueError("hosted games have no first responder")
        return self

    @property
    def is_active(self) -> bool:
        return self.lifecycle is Lifecycle.ACTIVE

    @property
    def response_deadline(self) -> float | None:
        """Store time at which the first responder's window closes, if someone has claimed."""
        if self.first_responder is None:
            return None
        return self.first_responder.claimed_at + self.response_window_seconds

    def seconds_remaining(self, now: float) -> float | None:
        deadline = self.response_deadline
        if deadline is None:
            return None
        return max(0.0, deadline - now)


class Player(_DocumentModel):
    identity: str
    display_name: str
    score: int = 0
    round_locked: bool = False


class Buzz(_DocumentModel):
    player_identity: str
    display_name: str
    round_number: int = Field(ge=1)
    resolved: bool = False


class Answer(_DocumentModel):
    player_identity: str
    display_name: str
    submitted_text: str
    round_number: int = Field(ge=1)
    graded: bool = False
    is_correct: bool = False
    points_awarded: int = 0


class SkipVote(_DocumentModel):
    player_identity: str
    round_number: int = Field(ge=1)


def rank_players(players: Iterable[Player]) -> list[Player]:
    """Scoreboard order: highest score first, ties broken by who joined first."""
    return sorted(
        players,
        key=lambda p: (-p.score, p.created_at if p.created_at is not None else float("inf")),
    )


@dataclass(frozen=True)
class SkipVoteResult:
    """Outcome of a skip vote: the stored vote and whether it closed the round."""

    vote: SkipVote
    votes_cast: int
    player_count: int
    round_closed: bool


@dataclass(frozen=True)
class RoundEvaluation:
    """Answers graded by one evaluation pass and the resulting player scores."""

    round_number: int
    answers: tuple[Answer, ...]
    scores: dict[str, int]
