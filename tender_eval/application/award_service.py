from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Sequence

from tender_eval.domain.lifecycle import (
    ensure_publishable,
    reschedule_deadline,
    transition_submission,
    transition_tender,
)
from tender_eval.domain.models import (
    Criterion,
    Submission,
    SubmissionStatus,
    Tender,
    TenderStatus,
)
from tender_eval.domain.ranking import rank_of

from .clock import Clock, utc_now
from .store import DocumentStore, TenderSnapshot

logger = logging.getLogger(__name__)


class AwardService:
    """Tender administration and the admin-triggered winner publication."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Clock = utc_now,
        default_dispute_days: int = 7,
    ) -> None:
        self._store = store
        self._clock = clock
        self._default_dispute_days = default_dispute_days

    def create_tender(
        self,
        *,
        tender_id: str,
        title: str,
        criteria: Sequence[Criterion],
        deadline: datetime,
        dispute_time_frame_days: int | None = None,
        **fields: Any,
    ) -> Tender:
        if dispute_time_frame_days is None:
            dispute_time_frame_days = self._default_dispute_days
        tender = Tender(
            id=tender_id,
            title=title,
            criteria=list(criteria),
            deadline=deadline,
            dispute_time_frame_days=dispute_time_frame_days,
            **fields,
        )
        self._store.add_tender(tender)
        logger.info("Created tender %s with %d criteria", tender_id, len(tender.criteria))
        return tender

    def reschedule(self, tender_id: str, deadline: datetime) -> TenderSnapshot:
        snapshot = self._store.snapshot(tender_id)
        reschedule_deadline(snapshot.tender, deadline)
        self._store.commit(snapshot.tender, expected_version=snapshot.version)
        return self._store.snapshot(tender_id)

    def change_tender_status(
        self, tender_id: str, target: TenderStatus | str
    ) -> TenderSnapshot:
        target = TenderStatus(target)
        snapshot = self._store.snapshot(tender_id)
        tender = snapshot.tender
        transition_tender(tender, target, now=self._clock())
        self._store.commit(tender, expected_version=snapshot.version)
        logger.info("Tender %s moved to %s", tender_id, target.value)
        return self._store.snapshot(tender_id)

    def publish_winner(self, tender_id: str, submission_id: str) -> TenderSnapshot:
        """Promote the rank-1 submission to Winner, demoting any prior winner.

        Publishing the current winner again is a no-op. The whole change is one
        version-checked commit; a concurrent publication or dispute acceptance
        surfaces as ConcurrencyConflict.
        """
        snapshot = self._store.snapshot(tender_id)
        submission = snapshot.submission(submission_id)
        if submission.status is SubmissionStatus.WINNER:
            logger.info("Submission %s already published as winner", submission_id)
            return snapshot

        scores = {s.submission_id: s for s in snapshot.scores()}
        ensure_publishable(
            snapshot.tender,
            submission,
            rank=rank_of(snapshot.ranking(), submission_id),
            average_score=scores[submission_id].average_score,
        )

        changed: list[Submission] = []
        for other in snapshot.submissions:
            if other.status is SubmissionStatus.WINNER:
                transition_submission(other, SubmissionStatus.EVALUATED)
                changed.append(other)
        transition_submission(submission, SubmissionStatus.WINNER)
        changed.append(submission)

        tender = snapshot.tender
        if tender.status is TenderStatus.CLOSED:
            transition_tender(tender, TenderStatus.AWARDED, now=self._clock())

        self._store.commit(tender, expected_version=snapshot.version, submissions=changed)
        logger.info(
            "Published winner: tender=%s submission=%s vendor=%s",
            tender_id,
            submission_id,
            submission.vendor_id,
        )
        return self._store.snapshot(tender_id)

    def reject_submission(self, submission_id: str) -> Submission:
        submission = self._store.get_submission(submission_id)
        snapshot = self._store.snapshot(submission.tender_id)
        submission = snapshot.submission(submission_id)
        transition_submission(submission, SubmissionStatus.REJECTED, now=self._clock())
        self._store.commit(
            snapshot.tender, expected_version=snapshot.version, submissions=[submission]
        )
        logger.info("Rejected submission %s", submission_id)
        return submission
