"""Game client configuration via environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings

from game.logic.enums import DEFAULT_RESPONSE_WINDOW_SECONDS


class ClientSettings(BaseSettings):
    model_config = {"env_prefix": "GAME_"}

    log_dir: str | None = None
    identity_path: str | None = None  # unset: identity lives only for the process lifetime
    response_window_seconds: int = Field(default=DEFAULT_RESPONSE_WINDOW_SECONDS, ge=1)
    join_code_length: int = Field(default=6, ge=4)
    store_latency_seconds: float = Field(default=0.0, ge=0)
    transaction_max_attempts: int = Field(default=5, ge=1)
