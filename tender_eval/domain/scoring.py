"""Score aggregation over persisted evaluations.

Each raw score is normalized against its criterion's ``[min_score, max_score]``
range, so an evaluator's overall score always lands on a 0-100 scale::

    overall = 100 * sum(norm(score_c) * weight_c) / sum(weight_c)

where both sums only run over the criteria the evaluator actually scored. With
the default 0-100 criterion range this is exactly ``sum(score * weight) /
sum(weight)``; with point-based rubrics (``max_score == weight``) it is the sum
of awarded points.

Everything here is a pure function of its inputs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from tender_eval.errors import ValidationError

from .models import Criterion, Evaluation, Submission, Tender

PENDING_LABEL = "Pending"


@dataclass(frozen=True)
class EvaluatorScore:
    evaluator_id: str
    overall_score: float | None
    completed: bool

    def as_dict(self) -> dict[str, Any]:
        return {
            "evaluator_id": self.evaluator_id,
            "overall_score": _display(self.overall_score),
            "completed": self.completed,
        }


@dataclass(frozen=True)
class SubmissionScore:
    """Composite score of one submission across all of its evaluators."""

    submission_id: str
    vendor_id: str
    submitted_at: datetime
    evaluator_scores: tuple[EvaluatorScore, ...]
    average_score: float | None

    @property
    def is_pending(self) -> bool:
        return self.average_score is None

    @property
    def completed_evaluations(self) -> int:
        return sum(
            1 for s in self.evaluator_scores if s.completed and s.overall_score is not None
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "vendor_id": self.vendor_id,
            "average_score": _display(self.average_score),
            "score_label": score_label(self.average_score),
            "completed_evaluations": self.completed_evaluations,
            "evaluator_scores": [s.as_dict() for s in self.evaluator_scores],
        }


def score_label(score: float | None) -> str:
    if score is None:
        return PENDING_LABEL
    return f"{score:.2f}"


def validate_scores(
    scores: Mapping[str, Any], criteria: Sequence[Criterion]
) -> dict[str, float]:
    """Check raw scores at write time; out-of-range values are rejected, never clamped."""
    by_id = {c.id: c for c in criteria}
    normalized: dict[str, float] = {}
    for criterion_id, raw in scores.items():
        criterion = by_id.get(criterion_id)
        if criterion is None:
            raise ValidationError(f"unknown criterion: {criterion_id}")
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise ValidationError(
                f"score for {criterion_id} must be a number, got {raw!r}"
            )
        value = float(raw)
        if not math.isfinite(value):
            raise ValidationError(f"score for {criterion_id} must be finite")
        if not criterion.min_score <= value <= criterion.max_score:
            raise ValidationError(
                f"score {value:g} for {criterion_id} outside "
                f"[{criterion.min_score:g}, {criterion.max_score:g}]"
            )
        normalized[criterion_id] = value
    return normalized


def overall_score(
    scores: Mapping[str, float], criteria: Sequence[Criterion]
) -> float | None:
    """Weighted composite for one evaluator; ``None`` when nothing weighted was scored."""
    weighted = 0.0
    weight_sum = 0.0
    for criterion in criteria:
        value = scores.get(criterion.id)
        if value is None:
            continue
        span = criterion.max_score - criterion.min_score
        fraction = (value - criterion.min_score) / span
        weighted += fraction * criterion.weight
        weight_sum += criterion.weight
    if weight_sum == 0:
        return None
    return 100.0 * weighted / weight_sum


def evaluator_score(evaluation: Evaluation, criteria: Sequence[Criterion]) -> EvaluatorScore:
    return EvaluatorScore(
        evaluator_id=evaluation.evaluator_id,
        overall_score=overall_score(evaluation.scores, criteria),
        completed=evaluation.is_completed,
    )


def average_score(evaluator_scores: Iterable[EvaluatorScore]) -> float | None:
    """Mean over completed evaluations; ``None`` (Pending) when there are none."""
    values = [
        s.overall_score
        for s in evaluator_scores
        if s.completed and s.overall_score is not None
    ]
    if not values:
        return None
    return sum(values) / len(values)


def aggregate_submission(
    submission: Submission, criteria: Sequence[Criterion]
) -> SubmissionScore:
    per_evaluator = tuple(
        evaluator_score(e, criteria)
        for e in sorted(submission.evaluations, key=lambda e: e.evaluator_id)
    )
    return SubmissionScore(
        submission_id=submission.id,
        vendor_id=submission.vendor_id,
        submitted_at=submission.submitted_at,
        evaluator_scores=per_evaluator,
        average_score=average_score(per_evaluator),
    )


def aggregate_tender(
    tender: Tender, submissions: Iterable[Submission]
) -> list[SubmissionScore]:
    return [aggregate_submission(s, tender.criteria) for s in submissions]


def _display(value: float | None) -> float | None:
    return round(value, 2) if value is not None else None
