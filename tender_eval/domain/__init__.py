"""Domain records and pure rules: aggregation, ranking, lifecycles, dispute windows."""

from .dispute_window import DisputeWindow
from .lifecycle import (
    advance_review,
    ensure_publishable,
    reschedule_deadline,
    transition_submission,
    transition_tender,
)
from .models import (
    AiScore,
    Criterion,
    Dispute,
    DisputeStatus,
    DisputeType,
    DocumentRef,
    Evaluation,
    EvaluationStatus,
    Submission,
    SubmissionStatus,
    Tender,
    TenderStatus,
    validate_criteria,
)
from .ranking import RankedSubmission, rank_for_evaluator, rank_submissions
from .scoring import (
    SubmissionScore,
    aggregate_submission,
    aggregate_tender,
    overall_score,
    validate_scores,
)

__all__ = [
    "AiScore",
    "Criterion",
    "Dispute",
    "DisputeStatus",
    "DisputeType",
    "DisputeWindow",
    "DocumentRef",
    "Evaluation",
    "EvaluationStatus",
    "RankedSubmission",
    "Submission",
    "SubmissionScore",
    "SubmissionStatus",
    "Tender",
    "TenderStatus",
    "advance_review",
    "aggregate_submission",
    "aggregate_tender",
    "ensure_publishable",
    "overall_score",
    "rank_for_evaluator",
    "rank_submissions",
    "reschedule_deadline",
    "transition_submission",
    "transition_tender",
    "validate_criteria",
    "validate_scores",
]
