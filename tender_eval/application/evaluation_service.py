from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from tender_eval.domain.lifecycle import advance_review
from tender_eval.domain.models import (
    Evaluation,
    EvaluationStatus,
    SubmissionStatus,
    TenderStatus,
)
from tender_eval.domain.ranking import RankedSubmission
from tender_eval.domain.scoring import EvaluatorScore, score_label, validate_scores
from tender_eval.errors import ConcurrencyConflict, InvalidTransition, ValidationError

from .clock import Clock, utc_now
from .store import DocumentStore, TenderSnapshot

logger = logging.getLogger(__name__)

EVALUABLE_TENDER_STATUSES = frozenset({TenderStatus.CLOSED, TenderStatus.AWARDED})


@dataclass(frozen=True)
class RankingRow:
    submission_id: str
    vendor_id: str
    status: SubmissionStatus
    rank: int
    average_score: float | None
    evaluator_scores: tuple[EvaluatorScore, ...] = field(default_factory=tuple)

    def as_dict(self) -> dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "vendor_id": self.vendor_id,
            "status": self.status.value,
            "rank": self.rank,
            "average_score": (
                round(self.average_score, 2) if self.average_score is not None else None
            ),
            "score_label": score_label(self.average_score),
            "evaluator_scores": [s.as_dict() for s in self.evaluator_scores],
        }


@dataclass(frozen=True)
class TenderRanking:
    """Ranking recomputed from one snapshot; never cached."""

    tender_id: str
    version: int
    rows: tuple[RankingRow, ...]

    def rank_of(self, submission_id: str) -> int:
        for row in self.rows:
            if row.submission_id == submission_id:
                return row.rank
        return 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "tender_id": self.tender_id,
            "version": self.version,
            "rows": [r.as_dict() for r in self.rows],
        }


def build_ranking(snapshot: TenderSnapshot) -> TenderRanking:
    scores = {s.submission_id: s for s in snapshot.scores()}
    ranked = snapshot.ranking()
    rows = []
    for item in ranked:
        submission = snapshot.submission(item.submission_id)
        score = scores[item.submission_id]
        rows.append(
            RankingRow(
                submission_id=submission.id,
                vendor_id=submission.vendor_id,
                status=submission.status,
                rank=item.rank,
                average_score=score.average_score,
                evaluator_scores=score.evaluator_scores,
            )
        )
    return TenderRanking(
        tender_id=snapshot.tender.id, version=snapshot.version, rows=tuple(rows)
    )


class EvaluationService:
    """Records evaluator scores and serves rankings computed on read."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        clock: Clock = utc_now,
        commit_retries: int = 3,
    ) -> None:
        self._store = store
        self._clock = clock
        self._commit_retries = max(1, int(commit_retries))

    def record_evaluation(
        self,
        *,
        submission_id: str,
        evaluator_id: str,
        scores: Mapping[str, Any],
        comment: str = "",
        criterion_comments: Mapping[str, str] | None = None,
        completed: bool = True,
    ) -> Evaluation:
        submission = self._store.get_submission(submission_id)
        tender = self._store.get_tender(submission.tender_id)

        if evaluator_id not in tender.assigned_evaluators:
            raise ValidationError(
                f"evaluator {evaluator_id} is not assigned to tender {tender.id}"
            )
        if tender.status not in EVALUABLE_TENDER_STATUSES:
            raise InvalidTransition(
                f"tender {tender.id} is {tender.status.value}; evaluations open after closing"
            )
        if submission.status is SubmissionStatus.REJECTED:
            raise InvalidTransition(f"submission {submission.id} was rejected")

        evaluation = Evaluation(
            submission_id=submission.id,
            evaluator_id=evaluator_id,
            scores=validate_scores(scores, tender.criteria),
            comment=comment,
            criterion_comments=dict(criterion_comments or {}),
            status=EvaluationStatus.COMPLETED if completed else EvaluationStatus.IN_PROGRESS,
            created_at=self._clock(),
        )
        self._store.add_evaluation(evaluation)
        logger.info(
            "Recorded evaluation: tender=%s submission=%s evaluator=%s",
            tender.id,
            submission.id,
            evaluator_id,
        )
        self._sync_review_status(tender.id, submission.id)
        return evaluation

    def ranking(self, tender_id: str) -> TenderRanking:
        return build_ranking(self._store.snapshot(tender_id))

    def evaluator_ranking(self, tender_id: str, evaluator_id: str) -> list[RankedSubmission]:
        snapshot = self._store.snapshot(tender_id)
        return snapshot.evaluator_ranking(evaluator_id)

    def _sync_review_status(self, tender_id: str, submission_id: str) -> None:
        # Recomputed from a fresh snapshot on every attempt.
        for attempt in range(1, self._commit_retries + 1):
            snapshot = self._store.snapshot(tender_id)
            submission = snapshot.submission(submission_id)
            if not advance_review(submission, snapshot.tender.assigned_evaluators):
                return
            try:
                self._store.commit(
                    snapshot.tender,
                    expected_version=snapshot.version,
                    submissions=[submission],
                )
            except ConcurrencyConflict:
                logger.warning(
                    "Review status commit conflicted (attempt %d/%d): submission=%s",
                    attempt,
                    self._commit_retries,
                    submission_id,
                )
                if attempt == self._commit_retries:
                    raise
                continue
            logger.info(
                "Submission %s moved to %s", submission_id, submission.status.value
            )
            return
