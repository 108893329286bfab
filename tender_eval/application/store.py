from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Protocol

from tender_eval.domain.models import (
    Dispute,
    Evaluation,
    Submission,
    SubmissionStatus,
    Tender,
)
from tender_eval.domain.ranking import (
    RankedSubmission,
    rank_for_evaluator,
    rank_submissions,
)
from tender_eval.domain.scoring import SubmissionScore, aggregate_tender
from tender_eval.errors import NotFoundError


@dataclass(frozen=True)
class TenderSnapshot:
    """Consistent read of one tender aggregate at a single version."""

    tender: Tender
    submissions: tuple[Submission, ...]

    @property
    def version(self) -> int:
        return self.tender.version

    def submission(self, submission_id: str) -> Submission:
        for item in self.submissions:
            if item.id == submission_id:
                return item
        raise NotFoundError("submission", submission_id)

    def submission_for_vendor(self, vendor_id: str) -> Submission | None:
        for item in self.submissions:
            if item.vendor_id == vendor_id:
                return item
        return None

    @property
    def winner(self) -> Submission | None:
        # Submission status is the only stored record of who won.
        for item in self.submissions:
            if item.status is SubmissionStatus.WINNER:
                return item
        return None

    @property
    def current_winner(self) -> str | None:
        winner = self.winner
        return winner.vendor_id if winner is not None else None

    def scores(self) -> list[SubmissionScore]:
        return aggregate_tender(self.tender, self.submissions)

    def ranking(self) -> list[RankedSubmission]:
        return rank_submissions(self._rankable_scores())

    def evaluator_ranking(self, evaluator_id: str) -> list[RankedSubmission]:
        return rank_for_evaluator(self._rankable_scores(), evaluator_id)

    def _rankable_scores(self) -> list[SubmissionScore]:
        # Rejected submissions keep their scores for display but are never ranked.
        rejected = {s.id for s in self.submissions if s.status is SubmissionStatus.REJECTED}
        return [
            replace(s, average_score=None, evaluator_scores=())
            if s.submission_id in rejected
            else s
            for s in self.scores()
        ]

    def as_dict(self) -> dict[str, Any]:
        winner = self.winner
        return {
            "tender": self.tender.as_dict(),
            "current_winner": self.current_winner,
            "winner_submission_id": winner.id if winner is not None else None,
            "submissions": [s.as_dict(include_evaluations=False) for s in self.submissions],
        }


class DocumentStore(Protocol):
    """Document Store boundary with per-tender atomic, version-checked commits."""

    def add_tender(self, tender: Tender) -> None: ...

    def get_tender(self, tender_id: str) -> Tender: ...

    def add_submission(self, submission: Submission) -> None: ...

    def get_submission(self, submission_id: str) -> Submission: ...

    def snapshot(self, tender_id: str) -> TenderSnapshot: ...

    def add_evaluation(self, evaluation: Evaluation) -> None:
        """Insert unique per (submission_id, evaluator_id); bumps the tender version."""
        ...

    def add_dispute(self, dispute: Dispute) -> None: ...

    def get_dispute(self, dispute_id: str) -> Dispute: ...

    def list_disputes(self, tender_id: str) -> list[Dispute]: ...

    def commit(
        self,
        tender: Tender,
        *,
        expected_version: int,
        submissions: Iterable[Submission] = (),
        disputes: Iterable[Dispute] = (),
    ) -> Tender:
        """Write tender, submission state and disputes as one unit.

        Raises ConcurrencyConflict when the stored tender version is no longer
        ``expected_version``. Returns the tender with its new version.
        """
        ...
