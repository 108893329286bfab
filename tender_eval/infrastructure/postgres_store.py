from __future__ import annotations

import logging
from typing import Any, Iterable

import psycopg
from psycopg.types.json import Jsonb

from tender_eval.application.store import TenderSnapshot
from tender_eval.domain.models import Dispute, Evaluation, Submission, Tender
from tender_eval.errors import ConcurrencyConflict, DuplicateEvaluation, NotFoundError

logger = logging.getLogger(__name__)


def _tender_payload(tender: Tender) -> dict[str, Any]:
    payload = tender.as_dict()
    # The version lives in its own column so commits can compare-and-swap on it.
    payload.pop("version", None)
    return payload


class PostgresDocumentStore:
    """Document Store backed by psycopg connections; JSONB payloads per record."""

    def __init__(self, conn):
        self.conn = conn

    @classmethod
    def from_settings(cls, settings: dict) -> "PostgresDocumentStore":
        return cls(psycopg.connect(settings["DATABASE_URL"]))

    def add_tender(self, tender: Tender) -> None:
        self._write(
            "INSERT INTO tenders (id, payload, version) VALUES (%s, %s, %s)",
            (tender.id, Jsonb(_tender_payload(tender)), tender.version),
        )

    def get_tender(self, tender_id: str) -> Tender:
        try:
            with self.conn.cursor() as cur:
                tender = self._fetch_tender(cur, tender_id)
        finally:
            self.conn.rollback()
        return tender

    def add_submission(self, submission: Submission) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute("SELECT 1 FROM tenders WHERE id = %s", (submission.tender_id,))
                if cur.fetchone() is None:
                    raise NotFoundError("tender", submission.tender_id)
                cur.execute(
                    """
                    INSERT INTO submissions (id, tender_id, submitted_at, payload)
                    VALUES (%s, %s, %s, %s)
                    """,
                    (
                        submission.id,
                        submission.tender_id,
                        submission.submitted_at,
                        Jsonb(submission.as_dict(include_evaluations=False)),
                    ),
                )
                for evaluation in submission.evaluations:
                    self._insert_evaluation(cur, evaluation)
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()

    def get_submission(self, submission_id: str) -> Submission:
        try:
            with self.conn.cursor() as cur:
                cur.execute("SELECT payload FROM submissions WHERE id = %s", (submission_id,))
                row = cur.fetchone()
                if row is None:
                    raise NotFoundError("submission", submission_id)
                submission = Submission.from_dict(row[0])
                cur.execute(
                    """
                    SELECT payload FROM evaluations
                    WHERE submission_id = %s
                    ORDER BY evaluator_id
                    """,
                    (submission_id,),
                )
                submission.evaluations = [Evaluation.from_dict(r[0]) for r in cur.fetchall()]
        finally:
            self.conn.rollback()
        return submission

    def snapshot(self, tender_id: str) -> TenderSnapshot:
        try:
            with self.conn.cursor() as cur:
                # First statement of the transaction, so every read below sees one version.
                cur.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ")
                tender = self._fetch_tender(cur, tender_id)
                cur.execute(
                    """
                    SELECT payload FROM submissions
                    WHERE tender_id = %s
                    ORDER BY submitted_at, id
                    """,
                    (tender_id,),
                )
                submissions = [Submission.from_dict(r[0]) for r in cur.fetchall()]
                cur.execute(
                    """
                    SELECT e.payload
                    FROM evaluations e
                    JOIN submissions s ON s.id = e.submission_id
                    WHERE s.tender_id = %s
                    ORDER BY e.submission_id, e.evaluator_id
                    """,
                    (tender_id,),
                )
                evaluations = [Evaluation.from_dict(r[0]) for r in cur.fetchall()]
        finally:
            self.conn.rollback()

        by_submission: dict[str, list[Evaluation]] = {}
        for evaluation in evaluations:
            by_submission.setdefault(evaluation.submission_id, []).append(evaluation)
        for submission in submissions:
            submission.evaluations = by_submission.get(submission.id, [])
        return TenderSnapshot(tender=tender, submissions=tuple(submissions))

    def add_evaluation(self, evaluation: Evaluation) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    "SELECT tender_id FROM submissions WHERE id = %s",
                    (evaluation.submission_id,),
                )
                row = cur.fetchone()
                if row is None:
                    raise NotFoundError("submission", evaluation.submission_id)
                self._insert_evaluation(cur, evaluation)
                cur.execute(
                    "UPDATE tenders SET version = version + 1 WHERE id = %s",
                    (row[0],),
                )
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()

    def add_dispute(self, dispute: Dispute) -> None:
        self._write(
            "INSERT INTO disputes (id, tender_id, payload) VALUES (%s, %s, %s)",
            (dispute.id, dispute.tender_id, Jsonb(dispute.as_dict())),
        )

    def get_dispute(self, dispute_id: str) -> Dispute:
        try:
            with self.conn.cursor() as cur:
                cur.execute("SELECT payload FROM disputes WHERE id = %s", (dispute_id,))
                row = cur.fetchone()
        finally:
            self.conn.rollback()
        if row is None:
            raise NotFoundError("dispute", dispute_id)
        return Dispute.from_dict(row[0])

    def list_disputes(self, tender_id: str) -> list[Dispute]:
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    "SELECT payload FROM disputes WHERE tender_id = %s ORDER BY id",
                    (tender_id,),
                )
                rows = cur.fetchall()
        finally:
            self.conn.rollback()
        return [Dispute.from_dict(r[0]) for r in rows]

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
        try:
            with self.conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE tenders
                    SET payload = %s, version = version + 1
                    WHERE id = %s AND version = %s
                    """,
                    (Jsonb(_tender_payload(tender)), tender.id, expected_version),
                )
                if cur.rowcount != 1:
                    raise ConcurrencyConflict(tender.id, expected_version)
                for submission in submissions:
                    cur.execute(
                        """
                        UPDATE submissions SET payload = %s
                        WHERE id = %s AND tender_id = %s
                        """,
                        (
                            Jsonb(submission.as_dict(include_evaluations=False)),
                            submission.id,
                            tender.id,
                        ),
                    )
                    if cur.rowcount != 1:
                        raise NotFoundError("submission", submission.id)
                for dispute in disputes:
                    if dispute.tender_id != tender.id:
                        raise ValueError(f"dispute {dispute.id} belongs to another tender")
                    cur.execute(
                        """
                        INSERT INTO disputes (id, tender_id, payload)
                        VALUES (%s, %s, %s)
                        ON CONFLICT (id) DO UPDATE SET payload = EXCLUDED.payload
                        """,
                        (dispute.id, dispute.tender_id, Jsonb(dispute.as_dict())),
                    )
        except ConcurrencyConflict:
            self.conn.rollback()
            logger.info("Version check failed for tender %s at %d", tender.id, expected_version)
            raise
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()
        return Tender.from_dict({**tender.as_dict(), "version": expected_version + 1})

    def _fetch_tender(self, cur, tender_id: str) -> Tender:
        cur.execute("SELECT payload, version FROM tenders WHERE id = %s", (tender_id,))
        row = cur.fetchone()
        if row is None:
            raise NotFoundError("tender", tender_id)
        payload, version = row
        return Tender.from_dict({**payload, "version": version})

    def _insert_evaluation(self, cur, evaluation: Evaluation) -> None:
        try:
            cur.execute(
                """
                INSERT INTO evaluations (submission_id, evaluator_id, payload)
                VALUES (%s, %s, %s)
                """,
                (
                    evaluation.submission_id,
                    evaluation.evaluator_id,
                    Jsonb(evaluation.as_dict()),
                ),
            )
        except psycopg.errors.UniqueViolation as exc:
            raise DuplicateEvaluation(evaluation.submission_id, evaluation.evaluator_id) from exc

    def _write(self, sql: str, params: tuple) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
        except Exception:
            self.conn.rollback()
            raise
        self.conn.commit()
