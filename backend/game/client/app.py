"""Composition root: wire store, identity, directory, state machines and watchers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from game.client.settings import ClientSettings
from game.logic.directory import GameDirectory
from game.logic.enums import GameVariant
from game.logic.hosted import HostedGameService
from game.logic.hostless import HostlessGameService
from game.logic.scoring import ScoreLedger
from game.logic.settings import GameRules
from game.session.auto_advance import AutoAdvanceDriver
from game.session.watchers import GameWatchers
from shared.identity import LocalIdentityProvider
from shared.logging import setup_logging
from shared.store import InMemoryDocumentStore

if TYPE_CHECKING:
    from game.logic.models import Game, Player
    from game.session.auto_advance import AnswerKey
    from shared.identity import IdentityProvider
    from shared.store import DocumentStore

logger = structlog.get_logger()


@dataclass
class GameClient:
    """Everything the presentation layer needs to play, behind one handle."""

    settings: ClientSettings
    store: DocumentStore
    identity_provider: IdentityProvider
    directory: GameDirectory
    hosted: HostedGameService
    hostless: HostlessGameService
    hosted_watchers: GameWatchers
    hostless_watchers: GameWatchers
    _drivers: list[AutoAdvanceDriver] = field(default_factory=list)

    async def identity(self) -> str:
        return await self.identity_provider.get_identity()

    async def join_by_code(self, code: str, display_name: str) -> tuple[Game, Player]:
        """Resolve a join code in either variant and join that game as this device."""
        game = await self.directory.resolve_code(code)
        service = self.hosted if game.variant is GameVariant.HOSTED else self.hostless
        player = await service.join(game.id, await self.identity(), display_name)
        return game, player

    def auto_advance(self, game_id: str, answer_key: AnswerKey | None = None) -> AutoAdvanceDriver:
        """Start enforcing the response window of a hostless game from this client."""
        driver = AutoAdvanceDriver(self.hostless, self.hostless_watchers, game_id, answer_key=answer_key)
        driver.start()
        self._drivers.append(driver)
        return driver

    def close(self) -> None:
        for driver in self._drivers:
            driver.close()
        self._drivers.clear()


def create_client(
    settings: ClientSettings | None = None,
    store: DocumentStore | None = None,
    identity_provider: IdentityProvider | None = None,
) -> GameClient:
    if settings is None:
        settings = ClientSettings()

    if store is None:
        store = InMemoryDocumentStore(
            latency_seconds=settings.store_latency_seconds,
            max_attempts=settings.transaction_max_attempts,
        )
    if identity_provider is None:
        identity_provider = LocalIdentityProvider(settings.identity_path)

    rules = GameRules.from_settings(settings)
    directory = GameDirectory(store, rules)
    ledger = ScoreLedger(store)
    return GameClient(
        settings=settings,
        store=store,
        identity_provider=identity_provider,
        directory=directory,
        hosted=HostedGameService(store, directory, ledger),
        hostless=HostlessGameService(store, directory, ledger),
        hosted_watchers=GameWatchers(store, GameVariant.HOSTED),
        hostless_watchers=GameWatchers(store, GameVariant.HOSTLESS),
    )


async def get_client() -> GameClient:  # pragma: no cover
    """Client factory for production use: configures logging and resolves this device's identity."""
    settings = ClientSettings()
    client = create_client(settings=settings)
    identity = await client.identity()
    setup_logging(settings.log_dir, device=identity)
    logger.info("game client ready", identity=identity)
    return client
