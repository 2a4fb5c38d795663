import pytest

from game.logic.documents import answers_query, players_query
from game.logic.enums import GameVariant, RoundPhase
from game.logic.exceptions import (
    DuplicateSubmissionError,
    FirstResponseTakenError,
    GameEndedError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from game.logic.models import Player


class TestCreate:
    async def test_creator_is_first_player(self, hostless, store):
        game, player = await hostless.create("u1", "Ana")

        assert game.variant is GameVariant.HOSTLESS
        assert game.owner_id == "u1"
        assert player.identity == "u1"
        snapshots = await store.query(players_query(GameVariant.HOSTLESS, game.id))
        assert [s.get("identity") for s in snapshots] == ["u1"]


class TestClaimFirstResponse:
    async def test_claim_moves_to_answering(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)

        game = await hostless.claim_first_response(hostless_game.id, "u2", "Ben")

        assert game.round_phase is RoundPhase.ANSWERING
        assert game.first_responder.identity == "u2"
        assert game.first_responder.display_name == "Ben"
        assert game.response_deadline == game.first_responder.claimed_at + 20

    async def test_second_claim_is_taken(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        await hostless.claim_first_response(hostless_game.id, "u2", "Ben")

        with pytest.raises(FirstResponseTakenError, match="Ben answered first") as exc_info:
            await hostless.claim_first_response(hostless_game.id, "u3", "Cleo")
        assert isinstance(exc_info.value, InvalidTransitionError)

    async def test_claim_requires_live_round(self, hostless, hostless_game):
        with pytest.raises(InvalidTransitionError) as exc_info:
            await hostless.claim_first_response(hostless_game.id, "u2", "Ben")
        assert not isinstance(exc_info.value, FirstResponseTakenError)

    async def test_claim_on_ended_game(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        await hostless.end_game(hostless_game.id)
        with pytest.raises(GameEndedError):
            await hostless.claim_first_response(hostless_game.id, "u2", "Ben")

    async def test_start_and_advance_clear_first_responder(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        await hostless.claim_first_response(hostless_game.id, "u2", "Ben")

        advanced = await hostless.advance_round(hostless_game.id)
        assert advanced.first_responder is None
        assert (await hostless.get_game(hostless_game.id)).first_responder is None

        started = await hostless.start_round(hostless_game.id)
        assert started.first_responder is None
        assert started.round_number == 2

    async def test_outsider_cannot_claim(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)

        with pytest.raises(NotFoundError, match="player stranger is not in this game"):
            await hostless.claim_first_response(hostless_game.id, "stranger", "Nobody")

        game = await hostless.get_game(hostless_game.id)
        assert game.round_phase is RoundPhase.LIVE
        assert game.first_responder is None


class TestSubmitAnswer:
    async def test_outsider_cannot_answer(self, hostless, hostless_game, store):
        await hostless.start_round(hostless_game.id)

        with pytest.raises(NotFoundError):
            await hostless.submit_answer(hostless_game.id, "stranger", "Nobody", "Let It Be", 1)

        assert await store.query(answers_query(hostless_game.id, 1)) == []

    async def test_answer_before_any_claim(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)

        answer = await hostless.submit_answer(hostless_game.id, "u3", "Cleo", "  Yesterday ", 1)

        assert answer.submitted_text == "Yesterday"
        assert not answer.graded
        assert answer.points_awarded == 0

    async def test_duplicate_answer_rejected(self, hostless, hostless_game, store):
        await hostless.start_round(hostless_game.id)
        await hostless.claim_first_response(hostless_game.id, "u2", "Ben")
        await hostless.submit_answer(hostless_game.id, "u2", "Ben", "Let It Be", 1)

        with pytest.raises(DuplicateSubmissionError):
            await hostless.submit_answer(hostless_game.id, "u2", "Ben", "Hey Jude", 1)
        assert len(await store.query(answers_query(hostless_game.id, 1, "u2"))) == 1

    async def test_answer_for_other_round_rejected(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        with pytest.raises(InvalidTransitionError, match="not the current round"):
            await hostless.submit_answer(hostless_game.id, "u2", "Ben", "Let It Be", 2)

    async def test_answer_requires_open_round(self, hostless, hostless_game):
        with pytest.raises(InvalidTransitionError):
            await hostless.submit_answer(hostless_game.id, "u2", "Ben", "Let It Be", 1)

    async def test_blank_answer_rejected(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        with pytest.raises(InvalidInputError):
            await hostless.submit_answer(hostless_game.id, "u2", "Ben", "   ", 1)

    async def test_same_player_may_answer_again_next_round(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        await hostless.submit_answer(hostless_game.id, "u2", "Ben", "Let It Be", 1)
        await hostless.advance_round(hostless_game.id)
        await hostless.start_round(hostless_game.id)

        answer = await hostless.submit_answer(hostless_game.id, "u2", "Ben", "Help!", 2)
        assert answer.round_number == 2


class TestVoteSkip:
    async def test_unanimous_vote_closes_round(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)

        first = await hostless.vote_skip(hostless_game.id, "u1")
        second = await hostless.vote_skip(hostless_game.id, "u2")
        assert not first.round_closed
        assert not second.round_closed
        assert (await hostless.get_game(hostless_game.id)).round_phase is RoundPhase.LIVE

        third = await hostless.vote_skip(hostless_game.id, "u3")
        assert third.round_closed
        assert (third.votes_cast, third.player_count) == (3, 3)
        assert (await hostless.get_game(hostless_game.id)).round_phase is RoundPhase.CLOSED

    async def test_vote_during_answering(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        await hostless.claim_first_response(hostless_game.id, "u1", "Ana")
        for identity in ("u1", "u2"):
            await hostless.vote_skip(hostless_game.id, identity)

        result = await hostless.vote_skip(hostless_game.id, "u3")
        assert result.round_closed

    async def test_duplicate_vote_rejected(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        await hostless.vote_skip(hostless_game.id, "u1")
        with pytest.raises(DuplicateSubmissionError):
            await hostless.vote_skip(hostless_game.id, "u1")

    async def test_vote_requires_player(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        with pytest.raises(NotFoundError):
            await hostless.vote_skip(hostless_game.id, "lurker")

    async def test_vote_requires_open_round(self, hostless, hostless_game):
        with pytest.raises(InvalidTransitionError):
            await hostless.vote_skip(hostless_game.id, "u1")

    async def test_votes_do_not_carry_over_rounds(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        await hostless.vote_skip(hostless_game.id, "u1")
        await hostless.vote_skip(hostless_game.id, "u2")
        await hostless.advance_round(hostless_game.id)
        await hostless.start_round(hostless_game.id)

        result = await hostless.vote_skip(hostless_game.id, "u3")
        assert result.votes_cast == 1
        assert not result.round_closed


class TestAdvanceAndEvaluate:
    @pytest.mark.parametrize("claim", [False, True])
    async def test_advance_from_open_round(self, hostless, hostless_game, claim):
        await hostless.start_round(hostless_game.id)
        if claim:
            await hostless.claim_first_response(hostless_game.id, "u1", "Ana")

        game = await hostless.advance_round(hostless_game.id)
        assert (game.round_number, game.round_phase) == (2, RoundPhase.WAITING)

    async def test_advance_from_waiting_rejected(self, hostless, hostless_game):
        with pytest.raises(InvalidTransitionError):
            await hostless.advance_round(hostless_game.id)

    async def test_evaluate_floors_scores(self, hostless, hostless_game, store):
        await hostless.start_round(hostless_game.id)
        await hostless.submit_answer(hostless_game.id, "u2", "Ben", "Something else", 1)

        evaluation = await hostless.evaluate_answers(hostless_game.id, "Yesterday")

        assert evaluation.scores == {"u2": 0}
        snapshots = await store.query(players_query(GameVariant.HOSTLESS, hostless_game.id))
        assert all(Player.from_snapshot(s).score >= 0 for s in snapshots)

    async def test_evaluate_requires_answer_text(self, hostless, hostless_game):
        await hostless.start_round(hostless_game.id)
        with pytest.raises(InvalidInputError):
            await hostless.evaluate_answers(hostless_game.id, " ")
