from __future__ import annotations

import copy
import threading
from typing import Iterable

from tender_eval.application.store import TenderSnapshot
from tender_eval.domain.models import Dispute, Evaluation, Submission, Tender
from tender_eval.errors import ConcurrencyConflict, DuplicateEvaluation, NotFoundError


class InMemoryDocumentStore:
    """Process-local Document Store; every read and write is a deep copy under one lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.tenders: dict[str, Tender] = {}
        self.submissions: dict[str, Submission] = {}
        self.evaluations: dict[tuple[str, str], Evaluation] = {}
        self.disputes: dict[str, Dispute] = {}

    def add_tender(self, tender: Tender) -> None:
        with self._lock:
            if tender.id in self.tenders:
                raise ValueError(f"tender already exists: {tender.id}")
            self.tenders[tender.id] = copy.deepcopy(tender)

    def get_tender(self, tender_id: str) -> Tender:
        with self._lock:
            return copy.deepcopy(self._tender(tender_id))

    def add_submission(self, submission: Submission) -> None:
        with self._lock:
            self._tender(submission.tender_id)
            if submission.id in self.submissions:
                raise ValueError(f"submission already exists: {submission.id}")
            stored = copy.deepcopy(submission)
            for evaluation in stored.evaluations:
                self._insert_evaluation(evaluation)
            stored.evaluations = []
            self.submissions[submission.id] = stored

    def get_submission(self, submission_id: str) -> Submission:
        with self._lock:
            return self._assemble(self._submission(submission_id))

    def snapshot(self, tender_id: str) -> TenderSnapshot:
        with self._lock:
            tender = copy.deepcopy(self._tender(tender_id))
            submissions = tuple(
                self._assemble(s)
                for s in sorted(
                    (s for s in self.submissions.values() if s.tender_id == tender_id),
                    key=lambda s: (s.submitted_at, s.id),
                )
            )
            return TenderSnapshot(tender=tender, submissions=submissions)

    def add_evaluation(self, evaluation: Evaluation) -> None:
        with self._lock:
            submission = self._submission(evaluation.submission_id)
            self._insert_evaluation(copy.deepcopy(evaluation))
            self._tender(submission.tender_id).version += 1

    def add_dispute(self, dispute: Dispute) -> None:
        with self._lock:
            self._tender(dispute.tender_id)
            if dispute.id in self.disputes:
                raise ValueError(f"dispute already exists: {dispute.id}")
            self.disputes[dispute.id] = copy.deepcopy(dispute)

    def get_dispute(self, dispute_id: str) -> Dispute:
        with self._lock:
            dispute = self.disputes.get(dispute_id)
            if dispute is None:
                raise NotFoundError("dispute", dispute_id)
            return copy.deepcopy(dispute)

    def list_disputes(self, tender_id: str) -> list[Dispute]:
        with self._lock:
            return [
                copy.deepcopy(d) for d in self.disputes.values() if d.tender_id == tender_id
            ]

    def commit(
        self,
        tender: Tender,
        *,
        expected_version: int,
        submissions: Iterable[Submission] = (),
        disputes: Iterable[Dispute] = (),
    ) -> Tender:
        submissions = list(submissions)
        disputes = list(disputes)
        with self._lock:
            current = self._tender(tender.id)
            if current.version != expected_version:
                raise ConcurrencyConflict(tender.id, expected_version)
            for submission in submissions:
                stored = self._submission(submission.id)
                if stored.tender_id != tender.id:
                    raise ValueError(f"submission {submission.id} belongs to another tender")
            for dispute in disputes:
                if dispute.tender_id != tender.id:
                    raise ValueError(f"dispute {dispute.id} belongs to another tender")

            updated = copy.deepcopy(tender)
            updated.version = expected_version + 1
            self.tenders[tender.id] = updated
            for submission in submissions:
                stored = copy.deepcopy(submission)
                stored.evaluations = []
                self.submissions[submission.id] = stored
            for dispute in disputes:
                self.disputes[dispute.id] = copy.deepcopy(dispute)
            return copy.deepcopy(updated)

    def _tender(self, tender_id: str) -> Tender:
        tender = self.tenders.get(tender_id)
        if tender is None:
            raise NotFoundError("tender", tender_id)
        return tender

    def _submission(self, submission_id: str) -> Submission:
        submission = self.submissions.get(submission_id)
        if submission is None:
            raise NotFoundError("submission", submission_id)
        return submission

    def _insert_evaluation(self, evaluation: Evaluation) -> None:
        key = (evaluation.submission_id, evaluation.evaluator_id)
        if key in self.evaluations:
            raise DuplicateEvaluation(*key)
        self.evaluations[key] = evaluation

    def _assemble(self, submission: Submission) -> Submission:
        result = copy.deepcopy(submission)
        result.evaluations = [
            copy.deepcopy(e)
            for (submission_id, _), e in sorted(self.evaluations.items())
            if submission_id == submission.id
        ]
        return result
