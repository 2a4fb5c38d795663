"""Deterministic clock and random sources for game tests."""

import itertools
import random

STORE_EPOCH = 1_700_000_000.0


class SteppingClock:
    """Deterministic clock: each read advances by ``step`` seconds, plus whatever ``advance`` adds."""

    def __init__(self, start: float = STORE_EPOCH, step: float = 0.001) -> None:
        self._counter = itertools.count()
        self._start = start
        self._step = step
        self._offset = 0.0

    def advance(self, seconds: float) -> None:
        self._offset += seconds

    def __call__(self) -> float:
        return self._start + self._offset + next(self._counter) * self._step


class ScriptedRandom(random.Random):
    """Random source whose ``choice`` replays a fixed script of join codes, one character at a time."""

    def __init__(self, *codes: str) -> None:
        super().__init__(0)
        self._chars = iter("".join(codes))

    def choice(self, seq):  # noqa: ARG002
        return next(self._chars)
