from __future__ import annotations

import logging
import uuid
from typing import Iterable, Mapping

from tender_eval.domain.dispute_window import DisputeWindow
from tender_eval.domain.lifecycle import advance_review, transition_submission
from tender_eval.domain.models import (
    DISPUTE_REASON_MAX,
    DISPUTE_REASON_MIN,
    Dispute,
    DisputeStatus,
    DisputeType,
    Submission,
    SubmissionStatus,
    Tender,
)
from tender_eval.errors import (
    AlreadyResolved,
    DisputeWindowClosed,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)

from .clock import Clock, utc_now
from .store import DocumentStore, TenderSnapshot

logger = logging.getLogger(__name__)


def dispute_window(
    tender: Tender,
    dispute_type: DisputeType,
    submission: Submission | None = None,
) -> DisputeWindow:
    """Winner disputes anchor to the tender close date, rejection disputes to the rejection date."""
    if dispute_type is DisputeType.WINNER:
        anchor = tender.close_date
    else:
        if submission is None or submission.rejected_at is None:
            raise InvalidTransition("rejection disputes need a rejected submission")
        anchor = submission.rejected_at
    return DisputeWindow(anchor=anchor, days=tender.dispute_time_frame_days)


def _clean_reason(reason: str) -> str:
    text = (reason or "").strip()
    if not DISPUTE_REASON_MIN <= len(text) <= DISPUTE_REASON_MAX:
        raise ValidationError(
            f"dispute reason must be {DISPUTE_REASON_MIN}-{DISPUTE_REASON_MAX} characters, "
            f"got {len(text)}"
        )
    return text


class DisputeService:
    """Filing window checks and dispute resolution against the tender aggregate."""

    def __init__(self, store: DocumentStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def file_dispute(
        self,
        *,
        tender_id: str,
        raised_by: str,
        dispute_type: DisputeType | str,
        reason: str,
        submission_id: str | None = None,
        evidence: Iterable[Mapping[str, str]] = (),
    ) -> Dispute:
        dispute_type = DisputeType(dispute_type)
        text = _clean_reason(reason)
        snapshot = self._store.snapshot(tender_id)
        now = self._clock()

        submission: Submission | None = None
        if submission_id is not None:
            submission = snapshot.submission(submission_id)

        against_winner = None
        if dispute_type is DisputeType.REJECTION:
            if submission is None:
                raise ValidationError("rejection disputes must reference a submission")
            if submission.vendor_id != raised_by:
                raise ValidationError("only the submitting vendor can dispute a rejection")
            if submission.status is not SubmissionStatus.REJECTED:
                raise InvalidTransition(f"submission {submission.id} is not rejected")
        else:
            winner = snapshot.winner
            if winner is None:
                raise InvalidTransition(f"tender {tender_id} has no published winner")
            against_winner = winner.id

        window = dispute_window(snapshot.tender, dispute_type, submission)
        if not window.is_open(now):
            raise DisputeWindowClosed(
                f"the {window.days}-day dispute window for tender {tender_id} "
                f"closed at {window.closes_at.isoformat()}"
            )

        dispute = Dispute(
            id=str(uuid.uuid4()),
            tender_id=tender_id,
            raised_by=raised_by,
            type=dispute_type,
            reason=text,
            submission_id=submission_id,
            against_winner=against_winner,
            evidence=[{"name": str(e["name"]), "url": str(e["url"])} for e in evidence],
            created_at=now,
        )
        self._store.add_dispute(dispute)
        logger.info(
            "Dispute filed: id=%s tender=%s type=%s days_left=%d",
            dispute.id,
            tender_id,
            dispute_type.value,
            window.days_left(now),
        )
        return dispute

    def mark_investigating(self, dispute_id: str) -> Dispute:
        snapshot, dispute = self._load(dispute_id)
        if dispute.status.is_terminal:
            raise AlreadyResolved(dispute_id)
        if dispute.status is not DisputeStatus.PENDING:
            return dispute
        dispute.status = DisputeStatus.INVESTIGATING
        self._store.commit(
            snapshot.tender, expected_version=snapshot.version, disputes=[dispute]
        )
        return dispute

    def resolve_dispute(
        self,
        dispute_id: str,
        status: DisputeStatus | str,
        resolution: str,
        *,
        resolved_by: str,
        winner_submission_id: str | None = None,
    ) -> TenderSnapshot | None:
        """Close a dispute exactly once.

        Accepting a winner dispute swaps the winner; accepting a rejection
        dispute reinstates the submission. Either way the dispute, the
        submissions and the tender version move together in a single commit.
        Returns the updated tender snapshot when the tender changed.
        """
        status = DisputeStatus(status)
        if not status.is_terminal:
            raise ValidationError("disputes resolve to accepted or rejected")
        text = (resolution or "").strip()
        if status is DisputeStatus.REJECTED and not text:
            raise ValidationError("rejecting a dispute needs a resolution text")

        snapshot, dispute = self._load(dispute_id)
        if dispute.status.is_terminal:
            raise AlreadyResolved(dispute_id)

        now = self._clock()
        dispute.status = status
        dispute.resolution = text or None
        dispute.resolved_by = resolved_by
        dispute.resolved_at = now

        changed: list[Submission] = []
        if status is DisputeStatus.ACCEPTED:
            if dispute.type is DisputeType.WINNER:
                changed = self._swap_winner(snapshot, dispute, winner_submission_id)
            else:
                changed = self._reinstate(snapshot, dispute)

        self._store.commit(
            snapshot.tender,
            expected_version=snapshot.version,
            submissions=changed,
            disputes=[dispute],
        )
        logger.info(
            "Dispute resolved: id=%s status=%s by=%s", dispute_id, status.value, resolved_by
        )
        if not changed:
            return None
        return self._store.snapshot(dispute.tender_id)

    def _load(self, dispute_id: str) -> tuple[TenderSnapshot, Dispute]:
        # Dispute state is re-read after the snapshot so a concurrent resolution
        # either shows up here or fails our version check.
        tender_id = self._store.get_dispute(dispute_id).tender_id
        snapshot = self._store.snapshot(tender_id)
        return snapshot, self._store.get_dispute(dispute_id)

    def _swap_winner(
        self,
        snapshot: TenderSnapshot,
        dispute: Dispute,
        winner_submission_id: str | None,
    ) -> list[Submission]:
        if winner_submission_id is not None:
            target = snapshot.submission(winner_submission_id)
        elif dispute.submission_id is not None:
            target = snapshot.submission(dispute.submission_id)
        else:
            target = snapshot.submission_for_vendor(dispute.raised_by)
            if target is None:
                raise NotFoundError("submission", f"vendor={dispute.raised_by}")

        if target.status is SubmissionStatus.WINNER:
            raise InvalidTransition(f"submission {target.id} is already the winner")
        scores = {s.submission_id: s for s in snapshot.scores()}
        if scores[target.id].average_score is None:
            raise InvalidTransition(f"submission {target.id} has no completed evaluation")

        changed: list[Submission] = []
        prior = snapshot.winner
        if prior is not None:
            transition_submission(prior, SubmissionStatus.EVALUATED)
            dispute.superseded_submission_id = prior.id
            changed.append(prior)
        transition_submission(target, SubmissionStatus.WINNER)
        changed.append(target)
        logger.info(
            "Winner superseded on tender %s: %s -> %s",
            snapshot.tender.id,
            prior.id if prior is not None else None,
            target.id,
        )
        return changed

    def _reinstate(self, snapshot: TenderSnapshot, dispute: Dispute) -> list[Submission]:
        if dispute.submission_id is None:
            raise ValidationError("rejection dispute has no submission")
        submission = snapshot.submission(dispute.submission_id)
        transition_submission(submission, SubmissionStatus.UNDER_REVIEW)
        advance_review(submission, snapshot.tender.assigned_evaluators)
        return [submission]
