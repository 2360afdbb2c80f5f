"""
Data models for generated study artifacts.

Notes and tests come back from the generator as loosely-typed JSON. The
from_generator() constructors here are the only way such JSON becomes a
model, and they reject anything with the wrong shape by raising
MalformedResponseError. A half-valid artifact therefore can never reach
the cache.

Generator payload shapes (camelCase, as produced by the proxy):

    notes:
        {
          "topic": "...", "source": "...",
          "keyTakeaways": ["...", ...],          # 1..10 entries (extra dropped)
          "concepts": [{"term": "...", "meaning": "..."}],
          "mustRemember": ["..."],
          "formulaOrLogic": {"formula": "...", "structure": "...",
                             "condition": "...", "whenToUse": "..."},   # optional
          "summary": "..."
        }

    test:
        {"questions": [{"question": "...", "options": [4 strings],
                        "correct_index": 0, "explanation": "..."}, ...]}

Cache dictionaries use snake_case column names instead.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from tube_tracker.core.exceptions import MalformedResponseError
from tube_tracker.utils import parse_iso, to_iso, utc_now


MAX_KEY_TAKEAWAYS = 10
QUESTIONS_PER_TEST = 10
OPTIONS_PER_QUESTION = 4

EXCELLENT_THRESHOLD = 8
GOOD_THRESHOLD = 5


class PerformanceLevel(str, Enum):
    """Label attached to a graded test."""
    NEEDS_IMPROVEMENT = "Needs Improvement"
    GOOD = "Good"
    EXCELLENT = "Excellent"

    @classmethod
    def for_score(cls, score: int) -> "PerformanceLevel":
        if score >= EXCELLENT_THRESHOLD:
            return cls.EXCELLENT
        if score >= GOOD_THRESHOLD:
            return cls.GOOD
        return cls.NEEDS_IMPROVEMENT


def _require_str(value: Any, field_name: str, kind: str, allow_empty: bool = True) -> str:
    if not isinstance(value, str) or (not allow_empty and not value.strip()):
        raise MalformedResponseError(
            f"Generated {kind} has an invalid '{field_name}' field",
            details={"kind": kind, "field": field_name}
        )
    return value


def _require_str_list(value: Any, field_name: str, kind: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedResponseError(
            f"Generated {kind} field '{field_name}' must be a list of strings",
            details={"kind": kind, "field": field_name}
        )
    return tuple(value)


@dataclass(frozen=True)
class Concept:
    term: str
    meaning: str


@dataclass(frozen=True)
class FormulaOrLogic:
    formula: str | None = None
    structure: str | None = None
    condition: str | None = None
    when_to_use: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "formula": self.formula,
            "structure": self.structure,
            "condition": self.condition,
            "when_to_use": self.when_to_use,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FormulaOrLogic":
        return cls(
            formula=data.get("formula"),
            structure=data.get("structure"),
            condition=data.get("condition"),
            when_to_use=data.get("when_to_use", data.get("whenToUse")),
        )


@dataclass(frozen=True)
class Notes:
    """
    Study notes generated for one video of one playlist.

    Immutable: regenerating produces a new Notes with a new created_at
    that replaces the old one wholesale.

    Attributes:
        video_id: Video the notes are about.
        playlist_id: Playlist the video was opened from.
        topic: One-line topic.
        source: What the generator worked from (transcript, description, title).
        key_takeaways: 1 to 10 bullet points.
        concepts: Term/meaning pairs.
        must_remember: Short facts to memorize.
        formula_or_logic: Optional formula or decision rule.
        summary: Paragraph summary.
        created_at: Generation time.
        user_id: Owner when stored remotely per user; None for shared/local copies.
    """

    video_id: str
    playlist_id: str
    topic: str
    source: str
    key_takeaways: tuple[str, ...]
    concepts: tuple[Concept, ...]
    must_remember: tuple[str, ...]
    formula_or_logic: FormulaOrLogic | None
    summary: str
    created_at: datetime
    user_id: str | None = None

    @classmethod
    def from_generator(
        cls,
        video_id: str,
        playlist_id: str,
        payload: Any
    ) -> "Notes":
        """
        Validate a generator payload and build Notes from it.

        Raises:
            MalformedResponseError: If any required field is missing or mistyped,
                                    or the key takeaway list is empty.
        """
        if not isinstance(payload, dict):
            raise MalformedResponseError(
                "Generated notes must be a JSON object",
                details={"kind": "notes", "video_id": video_id}
            )

        takeaways = _require_str_list(payload.get("keyTakeaways"), "keyTakeaways", "notes")
        if not takeaways:
            raise MalformedResponseError(
                "Generated notes have no key takeaways",
                details={"kind": "notes", "video_id": video_id}
            )

        raw_concepts = payload.get("concepts", [])
        if not isinstance(raw_concepts, list):
            raise MalformedResponseError(
                "Generated notes field 'concepts' must be a list",
                details={"kind": "notes", "field": "concepts"}
            )
        concepts = []
        for raw in raw_concepts:
            if not isinstance(raw, dict):
                raise MalformedResponseError(
                    "Generated notes contain a concept that is not an object",
                    details={"kind": "notes", "field": "concepts"}
                )
            concepts.append(Concept(
                term=_require_str(raw.get("term"), "concepts.term", "notes"),
                meaning=_require_str(raw.get("meaning"), "concepts.meaning", "notes"),
            ))

        raw_formula = payload.get("formulaOrLogic")
        if raw_formula is not None and not isinstance(raw_formula, dict):
            raise MalformedResponseError(
                "Generated notes field 'formulaOrLogic' must be an object",
                details={"kind": "notes", "field": "formulaOrLogic"}
            )

        return cls(
            video_id=video_id,
            playlist_id=playlist_id,
            topic=_require_str(payload.get("topic", ""), "topic", "notes"),
            source=_require_str(payload.get("source", ""), "source", "notes"),
            key_takeaways=takeaways[:MAX_KEY_TAKEAWAYS],
            concepts=tuple(concepts),
            must_remember=_require_str_list(payload.get("mustRemember", []), "mustRemember", "notes"),
            formula_or_logic=FormulaOrLogic.from_dict(raw_formula) if raw_formula else None,
            summary=_require_str(payload.get("summary"), "summary", "notes", allow_empty=False),
            created_at=utc_now(),
        )

    def for_user(self, user_id: str | None) -> "Notes":
        return replace(self, user_id=user_id)

    def to_cache_dict(self) -> dict[str, Any]:
        return {
            "video_id": self.video_id,
            "playlist_id": self.playlist_id,
            "topic": self.topic,
            "source": self.source,
            "key_takeaways": list(self.key_takeaways),
            "concepts": [{"term": c.term, "meaning": c.meaning} for c in self.concepts],
            "must_remember": list(self.must_remember),
            "formula_or_logic": self.formula_or_logic.to_dict() if self.formula_or_logic else None,
            "summary": self.summary,
            "created_at": to_iso(self.created_at),
        }

    @classmethod
    def from_cache_dict(cls, data: dict[str, Any], user_id: str | None = None) -> "Notes":
        formula = data.get("formula_or_logic")
        return cls(
            video_id=data["video_id"],
            playlist_id=data["playlist_id"],
            topic=data.get("topic") or "",
            source=data.get("source") or "",
            key_takeaways=tuple(data.get("key_takeaways") or ()),
            concepts=tuple(
                Concept(term=c.get("term", ""), meaning=c.get("meaning", ""))
                for c in data.get("concepts") or ()
            ),
            must_remember=tuple(data.get("must_remember") or ()),
            formula_or_logic=FormulaOrLogic.from_dict(formula) if formula else None,
            summary=data.get("summary") or "",
            created_at=parse_iso(data.get("created_at")) or utc_now(),
            user_id=user_id if user_id is not None else data.get("user_id"),
        )

    # Local rows and cache entries share a layout
    to_database_dict = to_cache_dict
    from_database_dict = from_cache_dict


@dataclass(frozen=True)
class Question:
    """One multiple-choice question with exactly four options."""

    question: str
    options: tuple[str, str, str, str]
    correct_index: int
    explanation: str = ""

    @classmethod
    def from_generator(cls, payload: Any, index: int) -> "Question":
        """
        Validate one generated question.

        Accepts the correct answer under either `correct_index` or
        `correctAnswer`.

        Raises:
            MalformedResponseError: If the question text is empty, the option
                                    count is not 4, or the answer index is out
                                    of range.
        """
        details = {"kind": "test", "question_index": index}
        if not isinstance(payload, dict):
            raise MalformedResponseError(f"Question {index} is not an object", details=details)

        text = payload.get("question")
        if not isinstance(text, str) or not text.strip():
            raise MalformedResponseError(f"Question {index} has no text", details=details)

        options = payload.get("options")
        if (
            not isinstance(options, list)
            or len(options) != OPTIONS_PER_QUESTION
            or not all(isinstance(o, str) for o in options)
        ):
            raise MalformedResponseError(
                f"Question {index} must have exactly {OPTIONS_PER_QUESTION} options",
                details=details
            )

        correct = payload.get("correct_index", payload.get("correctAnswer"))
        if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < OPTIONS_PER_QUESTION:
            raise MalformedResponseError(
                f"Question {index} has an invalid correct answer index",
                details=details
            )

        explanation = payload.get("explanation", "")
        if not isinstance(explanation, str):
            explanation = ""

        return cls(
            question=text,
            options=tuple(options),
            correct_index=correct,
            explanation=explanation,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "options": list(self.options),
            "correct_index": self.correct_index,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Question":
        return cls(
            question=data["question"],
            options=tuple(data["options"]),
            correct_index=int(data.get("correct_index", data.get("correctAnswer", 0))),
            explanation=data.get("explanation") or "",
        )


def parse_questions(payload: Any) -> tuple[Question, ...]:
    """
    Validate a generated test payload.

    Extra questions beyond QUESTIONS_PER_TEST are dropped; fewer is an error.

    Raises:
        MalformedResponseError: If `questions` is missing, too short, or any
                                question is invalid.
    """
    questions = payload.get("questions") if isinstance(payload, dict) else None
    if not isinstance(questions, list):
        raise MalformedResponseError(
            "Generated test has no 'questions' list",
            details={"kind": "test"}
        )
    if len(questions) < QUESTIONS_PER_TEST:
        raise MalformedResponseError(
            f"Generated test has {len(questions)} questions, expected {QUESTIONS_PER_TEST}",
            details={"kind": "test", "count": len(questions)}
        )
    return tuple(
        Question.from_generator(q, i)
        for i, q in enumerate(questions[:QUESTIONS_PER_TEST])
    )


@dataclass(frozen=True)
class TestResult:
    """Graded view of a test, as shown in the playlist overview."""

    __test__ = False  # not a pytest test class

    video_id: str
    playlist_id: str
    score: int
    total_questions: int
    user_answers: tuple[int, ...]
    created_at: datetime
    performance_level: PerformanceLevel


@dataclass(frozen=True)
class TestRecord:
    """
    A generated question set and, once submitted, its score.

    The record is "ungraded" (score is None) between generation and
    submission. Regenerating replaces it entirely, score included.
    """

    __test__ = False  # not a pytest test class

    user_id: str
    video_id: str
    playlist_id: str
    questions: tuple[Question, ...]
    created_at: datetime
    score: int | None = None
    user_answers: tuple[int, ...] | None = None
    performance_level: PerformanceLevel | None = None

    @property
    def is_graded(self) -> bool:
        return self.score is not None

    @property
    def result(self) -> TestResult | None:
        if self.score is None:
            return None
        return TestResult(
            video_id=self.video_id,
            playlist_id=self.playlist_id,
            score=self.score,
            total_questions=len(self.questions),
            user_answers=self.user_answers or (),
            created_at=self.created_at,
            performance_level=self.performance_level or PerformanceLevel.for_score(self.score),
        )

    def graded(self, answers: list[int] | tuple[int, ...]) -> "TestRecord":
        """
        Score the given answers against this record's questions.

        Raises:
            ValueError: If the number of answers does not match the questions.
        """
        if len(answers) != len(self.questions):
            raise ValueError(
                f"Expected {len(self.questions)} answers, got {len(answers)}"
            )
        score = sum(
            1 for answer, question in zip(answers, self.questions)
            if answer == question.correct_index
        )
        return replace(
            self,
            score=score,
            user_answers=tuple(answers),
            performance_level=PerformanceLevel.for_score(score),
        )

    def to_cache_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "video_id": self.video_id,
            "playlist_id": self.playlist_id,
            "questions": [q.to_dict() for q in self.questions],
            "created_at": to_iso(self.created_at),
            "score": self.score,
            "user_answers": list(self.user_answers) if self.user_answers is not None else None,
            "performance_level": self.performance_level.value if self.performance_level else None,
        }

    @classmethod
    def from_cache_dict(cls, data: dict[str, Any]) -> "TestRecord":
        answers = data.get("user_answers")
        level = data.get("performance_level")
        return cls(
            user_id=data["user_id"],
            video_id=data["video_id"],
            playlist_id=data["playlist_id"],
            questions=tuple(Question.from_dict(q) for q in data.get("questions") or ()),
            created_at=parse_iso(data.get("created_at")) or utc_now(),
            score=data.get("score"),
            user_answers=tuple(answers) if answers is not None else None,
            performance_level=PerformanceLevel(level) if level else None,
        )
