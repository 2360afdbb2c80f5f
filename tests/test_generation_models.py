"""Tests for generated notes and test models"""

import pytest

from tube_tracker.core.exceptions import MalformedResponseError
from tube_tracker.generation.models import (
    Notes,
    PerformanceLevel,
    Question,
    TestRecord,
    parse_questions,
)
from tube_tracker.utils import utc_now

from conftest import notes_payload, quiz_payload


def _question(**overrides):
    payload = {
        "question": "What is a base case?",
        "options": ["A", "B", "C", "D"],
        "correct_index": 2,
        "explanation": "Stops the recursion.",
    }
    payload.update(overrides)
    return payload


class TestNotes:
    """Test Notes validation"""

    def test_from_generator(self):
        notes = Notes.from_generator("vid000", "PL1", notes_payload("Recursion"))

        assert notes.topic == "Recursion"
        assert notes.key_takeaways == ("Base case first", "Shrink the input")
        assert notes.concepts[0].term == "Base case"
        assert notes.formula_or_logic.when_to_use == "Linear recursion"
        assert notes.user_id is None

    def test_takeaways_capped(self):
        payload = notes_payload()
        payload["keyTakeaways"] = [f"Point {i}" for i in range(14)]

        notes = Notes.from_generator("vid000", "PL1", payload)

        assert len(notes.key_takeaways) == 10

    @pytest.mark.parametrize("change", [
        {"keyTakeaways": []},
        {"keyTakeaways": "one string"},
        {"summary": ""},
        {"concepts": [{"term": "x"}]},
        {"formulaOrLogic": "E = mc^2"},
    ])
    def test_invalid_payload(self, change):
        payload = {**notes_payload(), **change}

        with pytest.raises(MalformedResponseError):
            Notes.from_generator("vid000", "PL1", payload)

    def test_not_an_object(self):
        with pytest.raises(MalformedResponseError):
            Notes.from_generator("vid000", "PL1", ["not", "notes"])

    def test_cache_dict_keeps_content(self):
        notes = Notes.from_generator("vid000", "PL1", notes_payload())

        restored = Notes.from_cache_dict(notes.to_cache_dict(), user_id="user-1")

        assert restored.key_takeaways == notes.key_takeaways
        assert restored.user_id == "user-1"


class TestQuestions:
    """Test question validation"""

    def test_correct_answer_alias(self):
        payload = _question(correctAnswer=3)
        del payload["correct_index"]

        question = Question.from_generator(payload, 0)

        assert question.correct_index == 3

    @pytest.mark.parametrize("change", [
        {"question": "  "},
        {"options": ["A", "B", "C"]},
        {"correct_index": 4},
        {"correct_index": True},
    ])
    def test_invalid_question(self, change):
        with pytest.raises(MalformedResponseError):
            Question.from_generator(_question(**change), 0)

    def test_too_few_questions(self):
        payload = quiz_payload()
        payload["questions"] = payload["questions"][:9]

        with pytest.raises(MalformedResponseError, match="9 questions"):
            parse_questions(payload)

    def test_extra_questions_dropped(self):
        payload = quiz_payload()
        payload["questions"].append(_question())

        assert len(parse_questions(payload)) == 10

    def test_missing_questions(self):
        with pytest.raises(MalformedResponseError):
            parse_questions({"error": "nope"})


class TestGrading:
    """Test scoring a TestRecord"""

    @pytest.fixture
    def record(self):
        return TestRecord(
            user_id="user-1",
            video_id="vid000",
            playlist_id="PL1",
            questions=parse_questions(quiz_payload(correct_index=1)),
            created_at=utc_now(),
        )

    def test_graded(self, record):
        graded = record.graded([1] * 7 + [0] * 3)

        assert graded.score == 7
        assert graded.result.performance_level is PerformanceLevel.GOOD
        assert record.score is None

    def test_answer_count_must_match(self, record):
        with pytest.raises(ValueError):
            record.graded([1, 1])

    def test_ungraded_has_no_result(self, record):
        assert record.result is None

    @pytest.mark.parametrize("score,level", [
        (10, PerformanceLevel.EXCELLENT),
        (8, PerformanceLevel.EXCELLENT),
        (7, PerformanceLevel.GOOD),
        (5, PerformanceLevel.GOOD),
        (4, PerformanceLevel.NEEDS_IMPROVEMENT),
        (0, PerformanceLevel.NEEDS_IMPROVEMENT),
    ])
    def test_performance_level(self, score, level):
        assert PerformanceLevel.for_score(score) is level
