"""Tests for pitlane.security_questions: step-up verification."""
import pytest

from pitlane.errors import NotConfigured, SecurityQuestionsInvalid
from pitlane.models import SecurityQuestionSet
from pitlane.security_questions import (QUESTION_CATALOG, challenge, decoy_challenge, is_configured,
                                        setup, verify)

from conftest import CITY_ANSWER, CITY_QUESTION, PET_ANSWER, PET_QUESTION

CAR_QUESTION = QUESTION_CATALOG[5]


class TestSetup:

    def test_valid_setup_stores_hashes(self, app, make_identity):
        identity = make_identity(questions=False)
        assert not is_configured(identity)

        setup(identity, PET_QUESTION, "Rex", CITY_QUESTION, "Monza")

        row = SecurityQuestionSet.query.filter_by(user_id=identity.id).one()
        assert row.question_1 == PET_QUESTION
        assert row.question_2 == CITY_QUESTION
        assert row.answer_1_hash.startswith("$2")
        assert "rex" not in row.answer_1_hash.lower()
        assert is_configured(identity)

    def test_same_question_twice_rejected(self, app, make_identity):
        identity = make_identity(questions=False)
        with pytest.raises(SecurityQuestionsInvalid):
            setup(identity, PET_QUESTION, "Rex", PET_QUESTION, "Fido")
        assert not is_configured(identity)

    @pytest.mark.parametrize("answer_1,answer_2", [
        ("ab", "Monza"),
        ("Rex", "  ab  "),
        ("   ", "Monza"),
        (None, "Monza"),
    ])
    def test_short_answers_rejected(self, app, make_identity, answer_1, answer_2):
        identity = make_identity(questions=False)
        with pytest.raises(SecurityQuestionsInvalid):
            setup(identity, PET_QUESTION, answer_1, CITY_QUESTION, answer_2)

    def test_three_character_answers_accepted(self, app, make_identity):
        identity = make_identity(questions=False)
        setup(identity, PET_QUESTION, " abc ", CITY_QUESTION, "xyz")
        assert verify(identity, "ABC", "xyz")

    def test_question_outside_catalog_rejected(self, app, make_identity):
        identity = make_identity(questions=False)
        with pytest.raises(SecurityQuestionsInvalid):
            setup(identity, "What is your favourite circuit?", "Spa", CITY_QUESTION, "Monza")

    def test_long_multibyte_answers_accepted(self, app, make_identity):
        identity = make_identity(questions=False)
        setup(identity, PET_QUESTION, "ア" * 25, CITY_QUESTION, "x" * 80)
        assert verify(identity, "ア" * 25, "X" * 80)
        assert not verify(identity, "ア" * 24 + "イ", "x" * 80)

    def test_second_setup_replaces_first(self, app, identity):
        setup(identity, CAR_QUESTION, "Ferrari", CITY_QUESTION, "Imola")

        assert SecurityQuestionSet.query.filter_by(user_id=identity.id).count() == 1
        assert challenge(identity) == {"question_1": CAR_QUESTION, "question_2": CITY_QUESTION}
        assert not verify(identity, PET_ANSWER, CITY_ANSWER)
        assert verify(identity, "ferrari", "imola")


class TestChallenge:

    def test_returns_question_text_only(self, app, identity):
        result = challenge(identity)
        assert result == {"question_1": PET_QUESTION, "question_2": CITY_QUESTION}

    def test_not_configured(self, app, make_identity):
        identity = make_identity(questions=False)
        with pytest.raises(NotConfigured):
            challenge(identity)

    def test_decoy_is_stable_and_distinct(self):
        first = decoy_challenge("ghost@pitlane.test")
        assert first == decoy_challenge("ghost@pitlane.test")
        assert first["question_1"] != first["question_2"]
        assert first["question_1"] in QUESTION_CATALOG
        assert first["question_2"] in QUESTION_CATALOG


class TestVerify:

    def test_both_correct(self, app, identity):
        assert verify(identity, PET_ANSWER, CITY_ANSWER)

    def test_answers_are_normalized(self, app, identity):
        assert verify(identity, "  rEx ", "MONZA\n")

    @pytest.mark.parametrize("answer_1,answer_2", [
        (PET_ANSWER, "Silverstone"),
        ("Fido", CITY_ANSWER),
        ("Fido", "Silverstone"),
        (CITY_ANSWER, PET_ANSWER),
        ("", ""),
        (None, None),
    ])
    def test_any_wrong_answer_fails(self, app, identity, answer_1, answer_2):
        assert not verify(identity, answer_1, answer_2)

    def test_not_configured(self, app, make_identity):
        identity = make_identity(questions=False)
        with pytest.raises(NotConfigured):
            verify(identity, PET_ANSWER, CITY_ANSWER)
