from __future__ import annotations

import math

import pytest

from tender_eval.domain.models import Criterion
from tender_eval.domain.scoring import (
    PENDING_LABEL,
    aggregate_submission,
    overall_score,
    validate_scores,
)
from tender_eval.errors import ValidationError
from tests.helpers.factories import (
    make_criteria,
    make_evaluation,
    make_submission,
    point_criteria,
)


def test_point_based_rubric_scores_sum_of_points():
    scores = {
        "technical": 30,
        "financial": 20,
        "experience": 18,
        "timeline": 12,
        "sustainability": 8,
    }
    assert overall_score(scores, point_criteria()) == pytest.approx(88.0)


def test_default_range_is_weighted_mean_of_raw_scores():
    scores = {"quality": 80, "price": 50}
    # (80*60 + 50*40) / 100
    assert overall_score(scores, make_criteria()) == pytest.approx(68.0)


def test_partial_evaluation_divides_by_scored_weight_only():
    assert overall_score({"quality": 70}, make_criteria()) == pytest.approx(70.0)


def test_overall_score_is_none_when_nothing_scored():
    assert overall_score({}, make_criteria()) is None


def test_zero_weight_criterion_does_not_count():
    criteria = [
        Criterion(id="a", name="A", weight=100),
        Criterion(id="b", name="B", weight=0),
    ]
    assert overall_score({"b": 90}, criteria) is None
    assert overall_score({"a": 40, "b": 90}, criteria) == pytest.approx(40.0)


def test_custom_range_is_normalized():
    criteria = [Criterion(id="a", name="A", weight=100, min_score=1, max_score=5)]
    assert overall_score({"a": 4}, criteria) == pytest.approx(75.0)


def test_average_over_completed_evaluations():
    submission = make_submission(
        "s-1",
        evaluations=[
            make_evaluation("s-1", "ev-2", quality=60, price=60),
            make_evaluation("s-1", "ev-1", quality=90, price=90),
            make_evaluation("s-1", "ev-3", completed=False, quality=0, price=0),
        ],
    )

    score = aggregate_submission(submission, make_criteria())

    assert score.average_score == pytest.approx(75.0)
    assert score.completed_evaluations == 2
    assert [s.evaluator_id for s in score.evaluator_scores] == ["ev-1", "ev-2", "ev-3"]


def test_no_completed_evaluation_is_pending_not_zero():
    submission = make_submission(
        "s-1", evaluations=[make_evaluation("s-1", "ev-1", completed=False, quality=10)]
    )

    score = aggregate_submission(submission, make_criteria())

    assert score.average_score is None
    assert score.is_pending
    assert score.as_dict()["score_label"] == PENDING_LABEL
    assert score.as_dict()["average_score"] is None


@pytest.mark.parametrize(
    "scores",
    [
        {"unknown": 10},
        {"quality": 101},
        {"quality": -1},
        {"quality": "80"},
        {"quality": True},
        {"quality": math.nan},
        {"quality": math.inf},
    ],
)
def test_validate_scores_rejects_bad_input(scores):
    with pytest.raises(ValidationError):
        validate_scores(scores, make_criteria())


def test_validate_scores_accepts_bounds_and_returns_floats():
    assert validate_scores({"quality": 0, "price": 100}, make_criteria()) == {
        "quality": 0.0,
        "price": 100.0,
    }
