"""
Hostless game state machine.

Nobody controls the game; every player's client drives it collectively.
Round phases cycle waiting -> live -> answering -> closed -> waiting.

- While live, any player may claim the first response. Exactly one claim
  per round succeeds: the claim is a single store transaction that fails
  for everyone who reads an already-set first responder.
- The claimant has ``responseWindowSeconds`` from the claim time to answer.
  The deadline is watched by every client independently (see
  ``game.session.auto_advance``); their advances converge on one new round.
- Any player may submit one answer per round, before or after the claim.
- Answers are graded automatically by substring matching, and scores are
  floored at zero.
- A unanimous skip vote closes the round early.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from game.logic.base import BaseGameService
from game.logic.documents import (
    ANSWERS,
    SKIP_VOTES,
    answers_query,
    expect,
    players_query,
    skip_votes_query,
    sub_collection,
)
from game.logic.enums import GameVariant, RoundPhase
from game.logic.exceptions import (
    DuplicateSubmissionError,
    FirstResponseTakenError,
    InvalidTransitionError,
    translate_store_errors,
)
from game.logic.models import Answer, Game, SkipVote, SkipVoteResult
from game.logic.validation import clean_display_name, require_identity, require_phase, require_text
from shared.store import SERVER_TIMESTAMP, document_path

if TYPE_CHECKING:
    from game.logic.models import Player, RoundEvaluation
    from shared.store import Transaction

logger = structlog.get_logger()

_OPEN_PHASES = (RoundPhase.LIVE, RoundPhase.ANSWERING)


class HostlessGameService(BaseGameService):
    variant = GameVariant.HOSTLESS
    advance_from = (RoundPhase.LIVE, RoundPhase.ANSWERING, RoundPhase.CLOSED)

    def _round_reset(self) -> dict[str, Any]:
        return {"first_responder": None}

    async def create(self, owner_identity: str, display_name: str) -> tuple[Game, Player]:
        """Create a hostless game; the creator is joined as its first player."""
        game = await self._directory.create_game(self.variant, owner_identity, display_name)
        player = await self.join(game.id, owner_identity, display_name)
        return game, player

    async def claim_first_response(self, game_id: str, identity: str, display_name: str) -> Game:
        """Take the exclusive right to answer first in the live round.

        Raises FirstResponseTakenError if someone else already claimed it,
        which is the expected result for every loser of a claim race.
        """
        identity = require_identity(identity, operation="claim_first_response")
        display_name = clean_display_name(display_name, operation="claim_first_response")
        await self._require_player(game_id, identity, "claim_first_response")

        async def _apply(tx: Transaction) -> int:
            snapshot = await tx.get(self._game_path(game_id))
            game = expect(Game, snapshot, f"game {game_id}", operation="claim_first_response")
            if game.is_active and game.first_responder is not None:
                raise FirstResponseTakenError(
                    f"{game.first_responder.display_name} answered first",
                    operation="claim_first_response",
                    game_id=game_id,
                )
            require_phase(game, (RoundPhase.LIVE,), operation="claim_first_response")
            tx.update(
                self._game_path(game_id),
                {
                    "firstResponder": {
                        "identity": identity,
                        "displayName": display_name,
                        "claimedAt": SERVER_TIMESTAMP,
                    },
                    "roundPhase": RoundPhase.ANSWERING.value,
                },
            )
            return game.round_number

        try:
            with translate_store_errors("claim_first_response", game_id):
                round_number = await self._store.run_transaction(_apply)
        except FirstResponseTakenError:
            logger.debug("first response claim lost", game_id=game_id, identity=identity)
            raise

        logger.info("first response claimed", game_id=game_id, identity=identity, round_number=round_number)
        return await self.get_game(game_id, operation="claim_first_response")

    async def submit_answer(
        self,
        game_id: str,
        identity: str,
        display_name: str,
        text: str,
        round_number: int,
    ) -> Answer:
        """Store a player's answer for the current round, at most one per player per round.

        The duplicate check is a query just before the insert, so two truly
        simultaneous submissions from one player can both land. Grading
        handles that: each answer row is graded and scored on its own.
        """
        identity = require_identity(identity, operation="submit_answer")
        display_name = clean_display_name(display_name, operation="submit_answer")
        text = require_text(text, operation="submit_answer")
        game = await self._load_active_game(game_id, "submit_answer")
        require_phase(game, _OPEN_PHASES, operation="submit_answer")
        if round_number != game.round_number:
            raise InvalidTransitionError(
                f"round {round_number} is not the current round ({game.round_number})",
                operation="submit_answer",
                game_id=game_id,
            )
        await self._require_player(game_id, identity, "submit_answer")

        with translate_store_errors("submit_answer", game_id):
            existing = await self._store.query(answers_query(game_id, round_number, identity).limited(1))
        if existing:
            raise DuplicateSubmissionError(
                f"already answered round {round_number}",
                operation="submit_answer",
                game_id=game_id,
            )

        answer = Answer(
            player_identity=identity,
            display_name=display_name,
            submitted_text=text,
            round_number=round_number,
        )
        collection = sub_collection(self.variant, game_id, ANSWERS)
        with translate_store_errors("submit_answer", game_id):
            answer_id = await self._store.add(collection, answer.to_new_document())
            snapshot = await self._store.get(document_path(collection, answer_id))

        logger.info("answer submitted", game_id=game_id, identity=identity, round_number=round_number)
        return expect(Answer, snapshot, "answer", operation="submit_answer")

    async def vote_skip(self, game_id: str, identity: str) -> SkipVoteResult:
        """Vote to skip the current round; the round closes once every player has voted."""
        identity = require_identity(identity, operation="vote_skip")
        game = await self._load_active_game(game_id, "vote_skip")
        require_phase(game, _OPEN_PHASES, operation="vote_skip")
        round_number = game.round_number

        await self._require_player(game_id, identity, "vote_skip")
        with translate_store_errors("vote_skip", game_id):
            existing = await self._store.query(skip_votes_query(game_id, round_number, identity).limited(1))
        if existing:
            raise DuplicateSubmissionError(
                f"already voted to skip round {round_number}",
                operation="vote_skip",
                game_id=game_id,
            )

        vote = SkipVote(player_identity=identity, round_number=round_number)
        collection = sub_collection(self.variant, game_id, SKIP_VOTES)
        with translate_store_errors("vote_skip", game_id):
            vote_id = await self._store.add(collection, vote.to_new_document())
            vote_snapshot = await self._store.get(document_path(collection, vote_id))
            vote_snapshots = await self._store.query(skip_votes_query(game_id, round_number))
            player_snapshots = await self._store.query(players_query(self.variant, game_id))
        stored = expect(SkipVote, vote_snapshot, "vote", operation="vote_skip")
        voters = {snapshot.get("playerIdentity") for snapshot in vote_snapshots}
        players = {snapshot.get("identity") for snapshot in player_snapshots}

        closed = False
        if len(voters) >= len(players):
            closed = await self._close_round(game_id, _OPEN_PHASES, operation="vote_skip", round_number=round_number)
        logger.info(
            "skip vote cast",
            game_id=game_id,
            identity=identity,
            round_number=round_number,
            votes=len(voters),
            players=len(players),
            round_closed=closed,
        )
        return SkipVoteResult(vote=stored, votes_cast=len(voters), player_count=len(players), round_closed=closed)

    async def evaluate_answers(self, game_id: str, correct_answer_text: str) -> RoundEvaluation:
        """Grade the current round's answers against the correct text and net the scores."""
        correct_answer_text = require_text(correct_answer_text, operation="evaluate_answers")
        return await self._ledger.settle_answers(game_id, correct_answer_text)
