from __future__ import annotations

from datetime import datetime
from typing import Iterable

from tender_eval.errors import InvalidTransition

from .models import Submission, SubmissionStatus, Tender, TenderStatus, require_aware

SUBMISSION_TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.SUBMITTED: frozenset(
        {SubmissionStatus.UNDER_REVIEW, SubmissionStatus.REJECTED}
    ),
    SubmissionStatus.UNDER_REVIEW: frozenset(
        {SubmissionStatus.EVALUATED, SubmissionStatus.REJECTED}
    ),
    SubmissionStatus.EVALUATED: frozenset({SubmissionStatus.WINNER}),
    # demotion when an award is superseded
    SubmissionStatus.WINNER: frozenset({SubmissionStatus.EVALUATED}),
    # reinstatement after an accepted rejection dispute
    SubmissionStatus.REJECTED: frozenset({SubmissionStatus.UNDER_REVIEW}),
}

TENDER_TRANSITIONS: dict[TenderStatus, frozenset[TenderStatus]] = {
    TenderStatus.DRAFT: frozenset({TenderStatus.OPEN, TenderStatus.CANCELLED}),
    TenderStatus.OPEN: frozenset({TenderStatus.CLOSED, TenderStatus.CANCELLED}),
    TenderStatus.CLOSED: frozenset({TenderStatus.AWARDED, TenderStatus.CANCELLED}),
    TenderStatus.AWARDED: frozenset(),
    TenderStatus.CANCELLED: frozenset(),
}

PUBLISHABLE_TENDER_STATUSES = frozenset({TenderStatus.CLOSED, TenderStatus.AWARDED})


def transition_submission(
    submission: Submission,
    target: SubmissionStatus,
    *,
    now: datetime | None = None,
) -> None:
    current = submission.status
    if target not in SUBMISSION_TRANSITIONS[current]:
        raise InvalidTransition(
            f"submission {submission.id}: {current.value} -> {target.value} not allowed"
        )
    submission.status = target
    if target is SubmissionStatus.REJECTED:
        submission.rejected_at = now
    elif current is SubmissionStatus.REJECTED:
        submission.rejected_at = None


def transition_tender(
    tender: Tender,
    target: TenderStatus,
    *,
    now: datetime | None = None,
) -> None:
    current = tender.status
    if target not in TENDER_TRANSITIONS[current]:
        raise InvalidTransition(
            f"tender {tender.id}: {current.value} -> {target.value} not allowed"
        )
    tender.status = target
    if target is TenderStatus.CLOSED and tender.closed_at is None:
        tender.closed_at = now


def reschedule_deadline(tender: Tender, deadline: datetime) -> None:
    if tender.status is not TenderStatus.DRAFT:
        raise InvalidTransition(
            f"tender {tender.id}: deadline is fixed once the tender leaves draft"
        )
    require_aware("deadline", deadline)
    tender.deadline = deadline


def review_target(
    submission: Submission, assigned_evaluators: Iterable[str]
) -> SubmissionStatus:
    """Status implied by the evaluations recorded so far."""
    if submission.status not in (SubmissionStatus.SUBMITTED, SubmissionStatus.UNDER_REVIEW):
        return submission.status
    if not submission.evaluations:
        return submission.status

    completed = {e.evaluator_id for e in submission.evaluations if e.is_completed}
    required = set(assigned_evaluators)
    done = required <= completed if required else bool(completed)
    return SubmissionStatus.EVALUATED if done else SubmissionStatus.UNDER_REVIEW


def advance_review(submission: Submission, assigned_evaluators: Iterable[str]) -> bool:
    """Walk the submission forward to its review target; returns whether it moved."""
    target = review_target(submission, assigned_evaluators)
    moved = False
    while submission.status is not target:
        step = (
            SubmissionStatus.UNDER_REVIEW
            if submission.status is SubmissionStatus.SUBMITTED
            else target
        )
        transition_submission(submission, step)
        moved = True
    return moved


def ensure_publishable(
    tender: Tender,
    submission: Submission,
    *,
    rank: int,
    average_score: float | None,
) -> None:
    if tender.status not in PUBLISHABLE_TENDER_STATUSES:
        raise InvalidTransition(
            f"tender {tender.id} is {tender.status.value}; close it before publishing a winner"
        )
    if submission.status is not SubmissionStatus.EVALUATED:
        raise InvalidTransition(
            f"submission {submission.id} is {submission.status.value}, not evaluated"
        )
    if average_score is None:
        raise InvalidTransition(f"submission {submission.id} has no completed evaluation")
    if rank != 1:
        raise InvalidTransition(
            f"submission {submission.id} is ranked {rank}; only rank 1 can be published"
        )
