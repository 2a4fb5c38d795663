"""Game rules shared by the directory and both state machines."""

from __future__ import annotations

import string
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from game.logic.enums import DEFAULT_RESPONSE_WINDOW_SECONDS

if TYPE_CHECKING:
    from game.client.settings import ClientSettings

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


class GameRules(BaseModel):
    """
    Configuration that travels with every game.

    The response window is copied into each game document at creation,
    so every client counts down against the same value.
    """

    model_config = ConfigDict(frozen=True)

    join_code_length: int = Field(default=6, ge=4)
    join_code_alphabet: str = Field(default=JOIN_CODE_ALPHABET, min_length=2)
    response_window_seconds: int = Field(default=DEFAULT_RESPONSE_WINDOW_SECONDS, ge=1)
    max_code_attempts: int = Field(default=100, ge=1)

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> GameRules:
        """Build GameRules from ClientSettings."""
        return cls(
            join_code_length=settings.join_code_length,
            response_window_seconds=settings.response_window_seconds,
        )
