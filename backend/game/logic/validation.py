"""Argument cleanup and state guards shared by every game command."""

from __future__ import annotations

from typing import TYPE_CHECKING

from game.logic.exceptions import GameEndedError, InvalidInputError, InvalidTransitionError

if TYPE_CHECKING:
    from collections.abc import Collection

    from game.logic.enums import RoundPhase
    from game.logic.models import Game

MAX_DISPLAY_NAME_LENGTH = 40
MAX_ANSWER_LENGTH = 200


def require_identity(identity: str, *, operation: str) -> str:
    cleaned = identity.strip()
    if not cleaned:
        raise InvalidInputError("identity is required", operation=operation)
    return cleaned


def clean_display_name(display_name: str, *, operation: str) -> str:
    cleaned = display_name.strip()
    if not cleaned:
        raise InvalidInputError("display name cannot be blank", operation=operation)
    if len(cleaned) > MAX_DISPLAY_NAME_LENGTH:
        raise InvalidInputError(
            f"display name is longer than {MAX_DISPLAY_NAME_LENGTH} characters",
            operation=operation,
        )
    return cleaned


def require_text(text: str, *, operation: str) -> str:
    cleaned = text.strip()
    if not cleaned:
        raise InvalidInputError("answer cannot be blank", operation=operation)
    if len(cleaned) > MAX_ANSWER_LENGTH:
        raise InvalidInputError(f"answer is longer than {MAX_ANSWER_LENGTH} characters", operation=operation)
    return cleaned


def normalize_join_code(code: str, *, length: int, alphabet: str) -> str:
    """Trim and uppercase a join code typed by a player, rejecting anything malformed."""
    normalized = code.strip().upper()
    if len(normalized) != length or any(ch not in alphabet for ch in normalized):
        raise InvalidInputError(f"join code must be {length} letters or digits", operation="resolve_code")
    return normalized


def require_active(game: Game, *, operation: str) -> None:
    if not game.is_active:
        raise GameEndedError("game has ended", operation=operation, game_id=game.id)


def require_phase(game: Game, allowed: Collection[RoundPhase], *, operation: str) -> None:
    """Reject a command unless the game is active and in one of the allowed phases."""
    require_active(game, operation=operation)
    if game.round_phase not in allowed:
        expected = " or ".join(phase.value for phase in allowed)
        raise InvalidTransitionError(
            f"round is {game.round_phase.value}, expected {expected}",
            operation=operation,
            game_id=game.id,
        )
