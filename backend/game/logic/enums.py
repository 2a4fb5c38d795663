"""
String enum definitions for game and round state.
"""

from enum import StrEnum

DEFAULT_RESPONSE_WINDOW_SECONDS = 20


class GameVariant(StrEnum):
    """Which state machine drives a game. Each variant has its own collection."""

    HOSTED = "hosted"
    HOSTLESS = "hostless"

    @property
    def collection(self) -> str:
        return "games" if self is GameVariant.HOSTED else "hostlessGames"


class Lifecycle(StrEnum):
    """Game lifecycle. Monotonic: active -> ended, and ended is terminal."""

    ACTIVE = "active"
    ENDED = "ended"


class RoundPhase(StrEnum):
    """Phase of the current round.

    Hosted games cycle waiting -> live -> closed. Hostless games add
    answering between live and closed once a first responder has claimed.
    """

    WAITING = "waiting"
    LIVE = "live"
    ANSWERING = "answering"
    CLOSED = "closed"


class GameErrorCode(StrEnum):
    """Failure kinds surfaced to callers of game commands."""

    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    DUPLICATE_SUBMISSION = "duplicate_submission"
    TRANSIENT_STORE_FAILURE = "transient_store_failure"
    INVALID_INPUT = "invalid_input"
