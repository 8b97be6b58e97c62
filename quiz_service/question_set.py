"""
Immutable snapshot of a quiz's questions and options for one attempt.

Question types are a closed set of variants (SingleChoice, TrueFalse,
MultipleAnswer); the stored type string is converted exactly once, in
``build_question``, and everything downstream dispatches on the class.
"""
import logging
from dataclasses import dataclass
from typing import Iterator, Union

from shared.errors import InvalidState

logger = logging.getLogger("quiz-service")


@dataclass(frozen=True)
class OptionView:
    id: int
    text: str
    is_correct: bool
    sequence_order: int = 0


@dataclass(frozen=True)
class _BaseQuestion:
    id: int
    text: str
    points: float
    options: tuple[OptionView, ...]
    sequence_order: int = 0

    @property
    def option_ids(self) -> frozenset[int]:
        return frozenset(o.id for o in self.options)

    @property
    def correct_ids(self) -> frozenset[int]:
        return frozenset(o.id for o in self.options if o.is_correct)


@dataclass(frozen=True)
class SingleChoice(_BaseQuestion):
    type_name = "single_choice"


@dataclass(frozen=True)
class TrueFalse(_BaseQuestion):
    type_name = "true_false"


@dataclass(frozen=True)
class MultipleAnswer(_BaseQuestion):
    type_name = "multiple_answer"


QuestionKind = Union[SingleChoice, TrueFalse, MultipleAnswer]

_VARIANTS: dict[str, type] = {
    SingleChoice.type_name: SingleChoice,
    TrueFalse.type_name: TrueFalse,
    MultipleAnswer.type_name: MultipleAnswer,
}


def is_single_select(q: QuestionKind) -> bool:
    return isinstance(q, (SingleChoice, TrueFalse))


def _malformed(msg: str) -> InvalidState:
    logger.warning("malformed quiz content: %s", msg)
    return InvalidState(msg)


def build_question(
    *,
    id: int,
    text: str,
    question_type: str,
    points: float,
    options: list[OptionView],
    sequence_order: int = 0,
) -> QuestionKind:
    cls = _VARIANTS.get(question_type)
    if cls is None:
        raise _malformed(f"question {id} has unsupported type {question_type!r}")
    if points is None or points <= 0:
        raise _malformed(f"question {id} must be worth a positive number of points")
    if len(options) < 2:
        raise _malformed(f"question {id} needs at least two options")

    ordered = tuple(sorted(options, key=lambda o: (o.sequence_order, o.id)))
    n_correct = sum(1 for o in ordered if o.is_correct)
    if cls is MultipleAnswer:
        if n_correct < 1:
            raise _malformed(f"question {id} has no correct option")
    elif n_correct != 1:
        raise _malformed(f"question {id} must have exactly one correct option, has {n_correct}")

    return cls(id=id, text=text, points=float(points), options=ordered, sequence_order=sequence_order)


@dataclass(frozen=True)
class QuestionSet:
    quiz_id: int
    course_id: int
    lesson_id: int | None
    title: str
    passing_score: int
    time_limit: int | None  # minutes
    questions: tuple[QuestionKind, ...]

    def __iter__(self) -> Iterator[QuestionKind]:
        return iter(self.questions)

    def __len__(self) -> int:
        return len(self.questions)

    def get(self, question_id: int) -> QuestionKind | None:
        for q in self.questions:
            if q.id == question_id:
                return q
        return None

    @property
    def time_limit_seconds(self) -> int | None:
        if not self.time_limit:
            return None
        return self.time_limit * 60

    def public_view(self) -> list[dict]:
        """Questions as shown to the learner: no correctness flags."""
        return [
            {
                "id": q.id,
                "text": q.text,
                "question_type": q.type_name,
                "points": q.points,
                "options": [{"id": o.id, "text": o.text} for o in q.options],
            }
            for q in self.questions
        ]
