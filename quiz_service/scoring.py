"""
Pure scoring of a finished set of responses against a QuestionSet.

- single_choice / true_false: all or nothing; exactly one selection, and it
  must be the correct option.
- multiple_answer: partial credit. Each correct selection earns
  points / C, each wrong selection costs the same, floored at zero and
  rounded to two decimals. ``is_correct`` only for the exact correct set.

Percentage is rounded half-up.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping, assert_never

from .question_set import QuestionKind, QuestionSet, SingleChoice, TrueFalse, MultipleAnswer

_CENTS = Decimal("0.01")


def round_cents(value: float) -> float:
    return float(Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))


def _round_half_up(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class QuestionResult:
    question_id: int
    selected_option_ids: tuple[int, ...]
    is_correct: bool
    points_earned: float
    points_possible: float


@dataclass(frozen=True)
class ScoreResult:
    per_question: tuple[QuestionResult, ...]
    total_earned: float
    total_possible: float
    percentage: int
    passed: bool


def _single_select(q: QuestionKind, selected: frozenset[int]) -> tuple[bool, float]:
    is_correct = len(selected) == 1 and selected <= q.correct_ids
    return is_correct, (q.points if is_correct else 0.0)


def _multiple_answer(q: MultipleAnswer, selected: frozenset[int]) -> tuple[bool, float]:
    correct = q.correct_ids
    c = len(correct)
    correct_selected = len(selected & correct)
    incorrect_selected = len(selected - correct)

    raw = q.points * (correct_selected - incorrect_selected) / c
    earned = min(q.points, max(0.0, round_cents(raw)))
    is_correct = correct_selected == c and incorrect_selected == 0
    return is_correct, earned


def score_question(q: QuestionKind, selected: Iterable[int]) -> QuestionResult:
    chosen = frozenset(selected)

    if isinstance(q, (SingleChoice, TrueFalse)):
        is_correct, earned = _single_select(q, chosen)
    elif isinstance(q, MultipleAnswer):
        is_correct, earned = _multiple_answer(q, chosen)
    else:
        assert_never(q)

    return QuestionResult(
        question_id=q.id,
        selected_option_ids=tuple(sorted(chosen)),
        is_correct=is_correct,
        points_earned=earned,
        points_possible=q.points,
    )


def score(question_set: QuestionSet, responses: Mapping[int, Iterable[int]]) -> ScoreResult:
    """Score every question in the set; questions missing from ``responses`` earn 0."""
    per_question = tuple(score_question(q, responses.get(q.id, ())) for q in question_set)

    total_possible = round_cents(sum(r.points_possible for r in per_question))
    total_earned = round_cents(sum(r.points_earned for r in per_question))

    if total_possible <= 0:
        percentage = 0
    else:
        percentage = _round_half_up(100 * total_earned / total_possible)
        percentage = max(0, min(100, percentage))

    return ScoreResult(
        per_question=per_question,
        total_earned=total_earned,
        total_possible=total_possible,
        percentage=percentage,
        passed=percentage >= question_set.passing_score,
    )
