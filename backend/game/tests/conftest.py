import random

import pytest

from game.logic.directory import GameDirectory
from game.logic.hosted import HostedGameService
from game.logic.hostless import HostlessGameService
from game.logic.scoring import ScoreLedger
from game.logic.settings import GameRules
from game.tests.helpers.doubles import SteppingClock
from shared.store import InMemoryDocumentStore


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def store(clock):
    return InMemoryDocumentStore(clock=clock, max_attempts=20)


@pytest.fixture
def rules():
    return GameRules()


@pytest.fixture
def directory(store, rules):
    return GameDirectory(store, rules, rng=random.Random(1234))


@pytest.fixture
def ledger(store):
    return ScoreLedger(store)


@pytest.fixture
def hosted(store, directory, ledger):
    return HostedGameService(store, directory, ledger)


@pytest.fixture
def hostless(store, directory, ledger):
    return HostlessGameService(store, directory, ledger)


@pytest.fixture
async def hosted_game(hosted):
    """A hosted game with two players, Ana (u1) and Ben (u2)."""
    game = await hosted.create("host", "Host")
    await hosted.join(game.id, "u1", "Ana")
    await hosted.join(game.id, "u2", "Ben")
    return game


@pytest.fixture
async def hostless_game(hostless):
    """A hostless game created by Ana (u1), joined by Ben (u2) and Cleo (u3)."""
    game, _ = await hostless.create("u1", "Ana")
    await hostless.join(game.id, "u2", "Ben")
    await hostless.join(game.id, "u3", "Cleo")
    return game
