"""
Join-code issuance and lookup.

Codes only need to be unique among active games of one variant. Issuance
checks for a clash with a query and redraws on collision; two creators
drawing the same code at the same instant is not prevented; the code
space is large enough that this is accepted. Resolution is deterministic
even if that happens: the oldest matching game wins.
"""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

import structlog

from game.logic.documents import active_code_query, expect, game_path
from game.logic.enums import GameVariant
from game.logic.exceptions import NotFoundError, TransientStoreError, translate_store_errors
from game.logic.models import Game
from game.logic.settings import GameRules
from game.logic.validation import clean_display_name, normalize_join_code, require_identity

if TYPE_CHECKING:
    from shared.store import DocumentStore

logger = structlog.get_logger()


class GameDirectory:
    def __init__(self, store: DocumentStore, rules: GameRules | None = None, rng: random.Random | None = None) -> None:
        self._store = store
        self._rules = rules or GameRules()
        self._rng = rng or random.SystemRandom()

    @property
    def rules(self) -> GameRules:
        return self._rules

    def _draw_code(self) -> str:
        alphabet = self._rules.join_code_alphabet
        return "".join(self._rng.choice(alphabet) for _ in range(self._rules.join_code_length))

    async def create_code(self, variant: GameVariant) -> str:
        """Draw a join code not held by any active game of ``variant``."""
        for attempt in range(1, self._rules.max_code_attempts + 1):
            code = self._draw_code()
            with translate_store_errors("create_code"):
                clashes = await self._store.query(active_code_query(variant, code).limited(1))
            if not clashes:
                return code
            logger.info("join code collision, redrawing", variant=variant, attempt=attempt)
        raise TransientStoreError(
            f"no free join code after {self._rules.max_code_attempts} attempts",
            operation="create_code",
        )

    async def create_game(self, variant: GameVariant, owner_id: str, owner_name: str) -> Game:
        """Insert a new active game in round 1, waiting phase, under a fresh join code."""
        owner_id = require_identity(owner_id, operation="create")
        owner_name = clean_display_name(owner_name, operation="create")
        code = await self.create_code(variant)
        game = Game(
            variant=variant,
            join_code=code,
            owner_id=owner_id,
            owner_name=owner_name,
            response_window_seconds=self._rules.response_window_seconds,
        )
        with translate_store_errors("create"):
            game_id = await self._store.add(variant.collection, game.to_new_document())
            snapshot = await self._store.get(game_path(variant, game_id))
        created = expect(Game, snapshot, "game", operation="create")
        logger.info("game created", game_id=game_id, variant=variant, join_code=code, owner=owner_id)
        return created

    async def resolve_code(self, code: str, variant: GameVariant | None = None) -> Game:
        """Find the active game behind a join code.

        Without a variant, hosted games are searched before hostless ones.
        """
        code = normalize_join_code(
            code,
            length=self._rules.join_code_length,
            alphabet=self._rules.join_code_alphabet,
        )
        variants = (variant,) if variant is not None else (GameVariant.HOSTED, GameVariant.HOSTLESS)
        for candidate in variants:
            with translate_store_errors("resolve_code"):
                snapshots = await self._store.query(active_code_query(candidate, code))
            games = [game for game in map(Game.from_snapshot, snapshots) if game is not None]
            if not games:
                continue
            games.sort(key=lambda g: (g.created_at is None, g.created_at or 0.0, g.id))
            if len(games) > 1:
                logger.warning(
                    "join code shared by several active games, using the oldest",
                    join_code=code,
                    variant=candidate,
                    game_ids=[g.id for g in games],
                )
            return games[0]
        raise NotFoundError(f"no active game with code {code}", operation="resolve_code")
