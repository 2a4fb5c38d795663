import asyncio
from unittest.mock import patch

import pytest

from game.logic.documents import find_player, players_query
from game.logic.enums import GameVariant
from game.logic.exceptions import (
    GameEndedError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    TransientStoreError,
)
from game.logic.models import Answer, Player
from game.logic.scoring import grade_answer, net_round_scores
from shared.store import TransactionAbortedError


def _graded(identity, points):
    return Answer(
        player_identity=identity,
        display_name=identity,
        submitted_text="x",
        round_number=1,
        graded=True,
        is_correct=points > 0,
        points_awarded=points,
    )


class TestGradeAnswer:
    @pytest.mark.parametrize(
        ("submitted", "correct"),
        [
            ("Bohemian Rhapsody", "Bohemian Rhapsody"),
            ("bohemian", "Bohemian Rhapsody"),
            ("Bohemian Rhapsody by Queen", "bohemian rhapsody"),
            ("  RHAPSODY ", "Bohemian Rhapsody"),
        ],
    )
    def test_matches_substrings_either_way(self, submitted, correct):
        assert grade_answer(submitted, correct)

    @pytest.mark.parametrize(
        ("submitted", "correct"),
        [
            ("Rhapsody Bohemian", "Bohemian Rhapsody"),
            ("Bohemain Rhapsody", "Bohemian Rhapsody"),
            ("", "Bohemian Rhapsody"),
            ("   ", "Bohemian Rhapsody"),
            ("anything", ""),
        ],
    )
    def test_rejects_non_substrings_and_blanks(self, submitted, correct):
        assert not grade_answer(submitted, correct)


class TestNetRoundScores:
    def test_nets_points_per_player(self):
        answers = [_graded("a", 1), _graded("a", -1), _graded("a", 1), _graded("b", -1)]
        assert net_round_scores({"a": 0, "b": 3}, answers) == {"a": 1, "b": 2}

    def test_floors_at_zero(self):
        answers = [_graded("a", -1), _graded("a", -1), _graded("a", -1)]
        assert net_round_scores({"a": 1}, answers) == {"a": 0}

    def test_ignores_unknown_players_and_players_without_answers(self):
        assert net_round_scores({"a": 4, "b": 2}, [_graded("ghost", 1)]) == {}


async def _live_with_buzzes(hosted, game, *identities):
    await hosted.start_round(game.id)
    names = {"u1": "Ana", "u2": "Ben"}
    return [await hosted.submit_buzz(game.id, identity, names[identity]) for identity in identities]


async def _score(store, game_id, identity):
    player = await find_player(store, GameVariant.HOSTED, game_id, identity)
    return player.score, player.round_locked


class TestJudging:
    async def test_correct_awards_point_and_resolves(self, hosted, hosted_game, ledger, store):
        (buzz,) = await _live_with_buzzes(hosted, hosted_game, "u1")

        player = await ledger.judge_correct(hosted_game.id, buzz.id, "u1")

        assert player.score == 1
        assert not player.round_locked
        assert await _score(store, hosted_game.id, "u1") == (1, False)
        assert (await store.get(f"games/{hosted_game.id}/buzzes/{buzz.id}")).get("resolved") is True

    async def test_incorrect_deducts_and_locks(self, hosted, hosted_game, ledger, store):
        (buzz,) = await _live_with_buzzes(hosted, hosted_game, "u2")

        player = await ledger.judge_incorrect(hosted_game.id, buzz.id, "u2")

        assert player.score == -1
        assert player.round_locked
        assert await _score(store, hosted_game.id, "u2") == (-1, True)

    async def test_resolved_buzz_cannot_be_judged_again(self, hosted, hosted_game, ledger, store):
        (buzz,) = await _live_with_buzzes(hosted, hosted_game, "u1")
        await ledger.judge_correct(hosted_game.id, buzz.id, "u1")

        with pytest.raises(InvalidTransitionError, match="already judged"):
            await ledger.judge_incorrect(hosted_game.id, buzz.id, "u1")
        assert await _score(store, hosted_game.id, "u1") == (1, False)

    async def test_identity_must_match_buzz(self, hosted, hosted_game, ledger):
        (buzz,) = await _live_with_buzzes(hosted, hosted_game, "u1")
        with pytest.raises(InvalidInputError, match="belongs to u1"):
            await ledger.judge_correct(hosted_game.id, buzz.id, "u2")

    async def test_unknown_buzz(self, hosted, hosted_game, ledger):
        await hosted.start_round(hosted_game.id)
        with pytest.raises(NotFoundError, match="buzz not found"):
            await ledger.judge_correct(hosted_game.id, "missing", "u1")

    async def test_unknown_player(self, hosted, hosted_game, ledger):
        (buzz,) = await _live_with_buzzes(hosted, hosted_game, "u1")
        with pytest.raises(NotFoundError, match="not in this game"):
            await ledger.judge_correct(hosted_game.id, buzz.id, "stranger")

    async def test_round_must_be_live(self, hosted, hosted_game, ledger):
        (buzz,) = await _live_with_buzzes(hosted, hosted_game, "u1")
        await hosted.close_round(hosted_game.id)
        with pytest.raises(InvalidTransitionError, match="round is closed"):
            await ledger.judge_correct(hosted_game.id, buzz.id, "u1")

    async def test_ended_game_rejected(self, hosted, hosted_game, ledger):
        (buzz,) = await _live_with_buzzes(hosted, hosted_game, "u1")
        await hosted.end_game(hosted_game.id)
        with pytest.raises(GameEndedError):
            await ledger.judge_correct(hosted_game.id, buzz.id, "u1")

    async def test_concurrent_judgments_lose_no_updates(self, hosted, hosted_game, ledger, store):
        buzzes = await _live_with_buzzes(hosted, hosted_game, "u1", "u1", "u1", "u1", "u1")
        verdicts = [True, True, False, True, False]

        await asyncio.gather(
            *(
                ledger.judge_correct(hosted_game.id, buzz.id, "u1")
                if correct
                else ledger.judge_incorrect(hosted_game.id, buzz.id, "u1")
                for buzz, correct in zip(buzzes, verdicts, strict=True)
            )
        )

        score, locked = await _score(store, hosted_game.id, "u1")
        assert score == 3 - 2
        assert locked

    async def test_store_give_up_is_transient(self, hosted, hosted_game, ledger, store):
        (buzz,) = await _live_with_buzzes(hosted, hosted_game, "u1")
        with (
            patch.object(store, "run_transaction", side_effect=TransactionAbortedError(5)),
            pytest.raises(TransientStoreError) as exc_info,
        ):
            await ledger.judge_correct(hosted_game.id, buzz.id, "u1")
        assert isinstance(exc_info.value.__cause__, TransactionAbortedError)


class TestSettleAnswers:
    async def _answering_round(self, hostless, game, answers):
        await hostless.start_round(game.id)
        names = {"u1": "Ana", "u2": "Ben", "u3": "Cleo"}
        for identity, text in answers.items():
            await hostless.submit_answer(game.id, identity, names[identity], text, 1)

    async def test_grades_and_nets_with_floor(self, hostless, hostless_game, ledger):
        answers = {"u1": "Yesterday", "u2": "Help!", "u3": "yesterday by the beatles"}
        await self._answering_round(hostless, hostless_game, answers)

        evaluation = await ledger.settle_answers(hostless_game.id, "Yesterday")

        assert evaluation.round_number == 1
        assert {a.player_identity: a.is_correct for a in evaluation.answers} == {"u1": True, "u2": False, "u3": True}
        assert all(a.graded for a in evaluation.answers)
        assert evaluation.scores == {"u1": 1, "u2": 0, "u3": 1}

    async def test_second_settle_does_not_double_count(self, hostless, hostless_game, ledger, store):
        await self._answering_round(hostless, hostless_game, {"u1": "Yesterday"})
        await ledger.settle_answers(hostless_game.id, "Yesterday")

        again = await ledger.settle_answers(hostless_game.id, "Yesterday")

        assert again.answers == ()
        assert again.scores == {}
        snapshots = await store.query(players_query(GameVariant.HOSTLESS, hostless_game.id))
        players = {p.identity: p.score for p in map(Player.from_snapshot, snapshots)}
        assert players["u1"] == 1

    async def test_requires_round_in_progress(self, hostless, hostless_game, ledger):
        with pytest.raises(InvalidTransitionError, match="round is waiting"):
            await ledger.settle_answers(hostless_game.id, "Yesterday")

    async def test_settles_only_current_round(self, hostless, hostless_game, ledger):
        await self._answering_round(hostless, hostless_game, {"u2": "Yesterday"})
        await hostless.advance_round(hostless_game.id)
        await hostless.start_round(hostless_game.id)

        evaluation = await ledger.settle_answers(hostless_game.id, "Yesterday")

        assert evaluation.round_number == 2
        assert evaluation.answers == ()
