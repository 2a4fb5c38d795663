"""Tests for the game command error taxonomy."""

import pytest

from game.logic.enums import GameErrorCode
from game.logic.exceptions import (
    DuplicateSubmissionError,
    FirstResponseTakenError,
    GameCommandError,
    GameEndedError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    TransientStoreError,
    translate_store_errors,
)
from shared.store import DocumentNotFoundError, StoreUnavailableError, TransactionAbortedError


class TestGameCommandError:
    @pytest.mark.parametrize(
        ("error_cls", "code"),
        [
            (NotFoundError, GameErrorCode.NOT_FOUND),
            (GameEndedError, GameErrorCode.NOT_FOUND),
            (InvalidTransitionError, GameErrorCode.INVALID_TRANSITION),
            (FirstResponseTakenError, GameErrorCode.INVALID_TRANSITION),
            (DuplicateSubmissionError, GameErrorCode.DUPLICATE_SUBMISSION),
            (TransientStoreError, GameErrorCode.TRANSIENT_STORE_FAILURE),
            (InvalidInputError, GameErrorCode.INVALID_INPUT),
        ],
    )
    def test_codes(self, error_cls, code):
        assert error_cls("x").code is code

    def test_stores_context(self):
        err = InvalidTransitionError("round is live, expected waiting", operation="start_round", game_id="g1")
        assert err.reason == "round is live, expected waiting"
        assert err.operation == "start_round"
        assert err.game_id == "g1"
        assert str(err) == "start_round: round is live, expected waiting"

    def test_message_without_operation(self):
        assert str(NotFoundError("game g1 not found")) == "game g1 not found"

    def test_context_is_keyword_only(self):
        with pytest.raises(TypeError):
            NotFoundError("reason", "join")  # type: ignore[misc]


class TestTranslateStoreErrors:
    def test_missing_document_becomes_not_found(self):
        with pytest.raises(NotFoundError) as exc_info, translate_store_errors("join", "g1"):
            raise DocumentNotFoundError("games/g1")
        assert exc_info.value.game_id == "g1"
        assert isinstance(exc_info.value.__cause__, DocumentNotFoundError)

    @pytest.mark.parametrize("store_error", [TransactionAbortedError(5), StoreUnavailableError("timeout")])
    def test_other_store_failures_are_transient(self, store_error):
        with pytest.raises(TransientStoreError) as exc_info, translate_store_errors("advance_round"):
            raise store_error
        assert exc_info.value.operation == "advance_round"

    def test_game_errors_pass_through(self):
        with pytest.raises(DuplicateSubmissionError), translate_store_errors("vote_skip"):
            raise DuplicateSubmissionError("already voted")

    def test_all_are_game_command_errors(self):
        with pytest.raises(GameCommandError), translate_store_errors("x"):
            raise StoreUnavailableError
