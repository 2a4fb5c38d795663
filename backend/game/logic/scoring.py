"""
Score mutation rules shared by both game variants.

Every score change goes through a store transaction that reads the player
document it modifies, so concurrent judgments against the same player are
serialized by the store's conflict retry and never lose an update. Each
judged buzz or graded answer changes a score at most once: the
resolved/graded flag is flipped in the same commit as the score.

Hosted scores are unbounded in both directions. Hostless scores are
floored at zero when a round's answers are settled.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

import structlog

from game.logic.documents import (
    ANSWERS,
    BUZZES,
    PLAYERS,
    answers_query,
    expect,
    find_player,
    game_path,
    players_query,
    sub_collection,
)
from game.logic.enums import GameVariant, RoundPhase
from game.logic.exceptions import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    translate_store_errors,
)
from game.logic.models import Answer, Buzz, Game, Player, RoundEvaluation
from game.logic.validation import require_identity, require_phase
from shared.store import document_path

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from shared.store import DocumentStore, Transaction

logger = structlog.get_logger()

_SETTLEABLE_PHASES = (RoundPhase.LIVE, RoundPhase.ANSWERING, RoundPhase.CLOSED)


def grade_answer(submitted: str, correct: str) -> bool:
    """Case-insensitive substring match in either direction. Blank text never matches."""
    guess = submitted.strip().lower()
    expected = correct.strip().lower()
    if not guess or not expected:
        return False
    return guess in expected or expected in guess


def net_round_scores(current: Mapping[str, int], answers: Iterable[Answer]) -> dict[str, int]:
    """Apply each graded answer's points to its player's score, flooring the result at zero.

    Only players with at least one answer in ``answers`` appear in the result.
    """
    deltas: dict[str, int] = defaultdict(int)
    for answer in answers:
        deltas[answer.player_identity] += answer.points_awarded
    return {
        identity: max(0, current[identity] + delta)
        for identity, delta in deltas.items()
        if identity in current
    }


class ScoreLedger:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def judge_correct(self, game_id: str, buzz_id: str, identity: str) -> Player:
        """Award +1 to the buzzing player and resolve the buzz."""
        return await self._judge(game_id, buzz_id, identity, correct=True)

    async def judge_incorrect(self, game_id: str, buzz_id: str, identity: str) -> Player:
        """Deduct 1 from the buzzing player, lock them out of the round and resolve the buzz."""
        return await self._judge(game_id, buzz_id, identity, correct=False)

    async def _judge(self, game_id: str, buzz_id: str, identity: str, *, correct: bool) -> Player:
        operation = "judge_correct" if correct else "judge_incorrect"
        identity = require_identity(identity, operation=operation)
        variant = GameVariant.HOSTED
        with translate_store_errors(operation, game_id):
            player = await find_player(self._store, variant, game_id, identity)
        if player is None:
            raise NotFoundError(f"player {identity} is not in this game", operation=operation, game_id=game_id)

        buzz_path = document_path(sub_collection(variant, game_id, BUZZES), buzz_id)
        player_path = document_path(sub_collection(variant, game_id, PLAYERS), player.id)

        async def _apply(tx: Transaction) -> Player:
            game = expect(Game, await tx.get(game_path(variant, game_id)), "game", operation=operation)
            require_phase(game, (RoundPhase.LIVE,), operation=operation)
            buzz = expect(Buzz, await tx.get(buzz_path), "buzz", operation=operation)
            current = expect(Player, await tx.get(player_path), "player", operation=operation)
            if buzz.player_identity != identity:
                raise InvalidInputError(
                    f"buzz {buzz_id} belongs to {buzz.player_identity}, not {identity}",
                    operation=operation,
                    game_id=game_id,
                )
            if buzz.resolved:
                raise InvalidTransitionError(f"buzz {buzz_id} was already judged", operation=operation, game_id=game_id)
            if buzz.round_number != game.round_number:
                raise InvalidTransitionError(
                    f"buzz {buzz_id} is from round {buzz.round_number}, game is on round {game.round_number}",
                    operation=operation,
                    game_id=game_id,
                )

            score = current.score + (1 if correct else -1)
            locked = current.round_locked or not correct
            tx.update(player_path, {"score": score, "roundLocked": locked})
            tx.update(buzz_path, {"resolved": True})
            return current.model_copy(update={"score": score, "round_locked": locked})

        with translate_store_errors(operation, game_id):
            judged = await self._store.run_transaction(_apply)
        logger.info(
            "buzz judged",
            game_id=game_id,
            buzz_id=buzz_id,
            identity=identity,
            correct=correct,
            score=judged.score,
        )
        return judged

    async def settle_answers(self, game_id: str, correct_text: str) -> RoundEvaluation:
        """Grade every ungraded answer of the current hostless round and net the scores.

        All answer flags and score changes commit together. Calling this again
        for the same round only grades answers submitted since the last call.
        """
        operation = "evaluate_answers"
        variant = GameVariant.HOSTLESS
        with translate_store_errors(operation, game_id):
            game = expect(Game, await self._store.get(game_path(variant, game_id)), "game", operation=operation)
            require_phase(game, _SETTLEABLE_PHASES, operation=operation)
            round_number = game.round_number
            answer_snapshots = await self._store.query(answers_query(game_id, round_number))
            player_snapshots = await self._store.query(players_query(variant, game_id))

        # First record per identity wins if a join race left duplicates.
        player_ids: dict[str, str] = {}
        for snapshot in player_snapshots:
            player_ids.setdefault(snapshot.get("identity"), snapshot.id)
        answers_collection = sub_collection(variant, game_id, ANSWERS)
        players_collection = sub_collection(variant, game_id, PLAYERS)

        async def _apply(tx: Transaction) -> RoundEvaluation:
            current_game = expect(Game, await tx.get(game_path(variant, game_id)), "game", operation=operation)
            require_phase(current_game, _SETTLEABLE_PHASES, operation=operation)
            if current_game.round_number != round_number:
                raise InvalidTransitionError(
                    f"round {round_number} is over, game is on round {current_game.round_number}",
                    operation=operation,
                    game_id=game_id,
                )

            pending: list[Answer] = []
            for snapshot in answer_snapshots:
                answer = Answer.from_snapshot(await tx.get(snapshot.path))
                if answer is not None and not answer.graded:
                    pending.append(answer)

            scores: dict[str, int] = {}
            for identity in {answer.player_identity for answer in pending}:
                if identity not in player_ids:
                    continue
                player = Player.from_snapshot(await tx.get(document_path(players_collection, player_ids[identity])))
                if player is not None:
                    scores[identity] = player.score

            graded: list[Answer] = []
            for answer in pending:
                is_correct = grade_answer(answer.submitted_text, correct_text)
                points = 1 if is_correct else -1
                update = {"graded": True, "is_correct": is_correct, "points_awarded": points}
                graded.append(answer.model_copy(update=update))
            new_scores = net_round_scores(scores, graded)

            for answer in graded:
                tx.update(
                    document_path(answers_collection, answer.id),
                    {"graded": True, "isCorrect": answer.is_correct, "pointsAwarded": answer.points_awarded},
                )
            for identity, score in new_scores.items():
                tx.update(document_path(players_collection, player_ids[identity]), {"score": score})
            return RoundEvaluation(round_number=round_number, answers=tuple(graded), scores=new_scores)

        with translate_store_errors(operation, game_id):
            evaluation = await self._store.run_transaction(_apply)
        logger.info(
            "answers evaluated",
            game_id=game_id,
            round_number=round_number,
            graded=len(evaluation.answers),
            correct=sum(1 for a in evaluation.answers if a.is_correct),
        )
        return evaluation
