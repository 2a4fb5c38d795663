"""Typed failures for game commands.

Every command either returns its result or raises a GameCommandError
subclass. The ``code`` attribute names the failure kind so a caller can
branch on it without matching on class names, and ``reason`` is a short
human-readable explanation suitable for showing to a player.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, ClassVar

from game.logic.enums import GameErrorCode
from shared.store import DocumentNotFoundError, StoreError

if TYPE_CHECKING:
    from collections.abc import Iterator


class GameCommandError(Exception):
    """Base class for rejected game commands.

    Attributes:
        code: Failure kind.
        reason: Human-readable explanation.
        operation: Command that was rejected (e.g. "start_round"), if known.
        game_id: Game the command targeted, if known.

    """

    code: ClassVar[GameErrorCode]

    def __init__(self, reason: str, *, operation: str | None = None, game_id: str | None = None) -> None:
        self.reason = reason
        self.operation = operation
        self.game_id = game_id
        super().__init__(f"{operation}: {reason}" if operation else reason)


class NotFoundError(GameCommandError):
    """A game, player, buzz or answer referenced by a command does not exist."""

    code = GameErrorCode.NOT_FOUND


class GameEndedError(NotFoundError):
    """The game has ended; no further transitions are accepted."""


class InvalidTransitionError(GameCommandError):
    """Command issued from a phase that does not allow it."""

    code = GameErrorCode.INVALID_TRANSITION


class FirstResponseTakenError(InvalidTransitionError):
    """Someone else already holds the first-response claim for this round.

    This is the normal outcome for every loser of a claim race.
    """


class DuplicateSubmissionError(GameCommandError):
    """A second answer or skip vote for the same player and round."""

    code = GameErrorCode.DUPLICATE_SUBMISSION


class TransientStoreError(GameCommandError):
    """The document store failed or gave up; the caller may retry the whole command."""

    code = GameErrorCode.TRANSIENT_STORE_FAILURE


class InvalidInputError(GameCommandError):
    """Malformed command arguments: blank names or text, bad join codes, mismatched identities."""

    code = GameErrorCode.INVALID_INPUT


@contextlib.contextmanager
def translate_store_errors(operation: str, game_id: str | None = None) -> Iterator[None]:
    """Re-raise store failures from the wrapped block as game command errors."""
    try:
        yield
    except DocumentNotFoundError as exc:
        raise NotFoundError("document no longer exists", operation=operation, game_id=game_id) from exc
    except StoreError as exc:
        raise TransientStoreError(str(exc) or "store failure", operation=operation, game_id=game_id) from exc
