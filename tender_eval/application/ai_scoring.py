"""Advisory AI scoring over all submissions of one tender.

Two sequential oracle calls: a free-form comparative evaluation, then a strict
JSON restatement of per-proposal subscores. Results are merged back by the
submission id echoed in each JSON entry, never by array position. Nothing is
cached and nothing feeds the authoritative ranking.
"""

from __future__ import annotations

import json
import logging
import math
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Sequence

from tender_eval.domain.models import AiScore, Submission, Tender
from tender_eval.errors import AiScoreParseError, ExternalServiceError
from tender_eval.llm import ScoringOracle

from .store import DocumentStore

logger = logging.getLogger(__name__)

AI_UNAVAILABLE_MESSAGE = "AI evaluation not available."

AI_STATUS_SCORED = "scored"
AI_STATUS_MISSING = "missing"
AI_STATUS_UNAVAILABLE = "unavailable"

NARRATIVE_TASK = "ai_narrative"
EXTRACT_TASK = "ai_extract"

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\n?(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class SubmissionAiView:
    submission: Submission
    ai_score: AiScore | None
    ai_status: str

    def as_dict(self) -> dict[str, Any]:
        payload = self.submission.as_dict(include_evaluations=False)
        payload["ai_score"] = self.ai_score.as_dict() if self.ai_score is not None else None
        payload["ai_status"] = self.ai_status
        return payload


@dataclass(frozen=True)
class AiEvaluationResult:
    success: bool
    message: str
    narrative: str
    submissions: tuple[SubmissionAiView, ...]
    warnings: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "ai_evaluation_description": self.narrative,
            "submissions": [s.as_dict() for s in self.submissions],
            "warnings": list(self.warnings),
        }


def serialize_tender(tender: Tender) -> str:
    return json.dumps(
        {
            "id": tender.id,
            "title": tender.title,
            "description": tender.description,
            "category": tender.category,
            "budget": tender.budget,
            "deadline": tender.deadline.isoformat(),
            "criteria": [
                {
                    "name": c.name,
                    "weight": c.weight,
                    "min_score": c.min_score,
                    "max_score": c.max_score,
                }
                for c in tender.criteria
            ],
        },
        ensure_ascii=False,
        indent=2,
    )


def serialize_submission(submission: Submission) -> str:
    return json.dumps(
        {
            "submission_id": submission.id,
            "vendor_id": submission.vendor_id,
            "proposed_budget": submission.proposed_budget,
            "proposal": submission.proposal,
            "documents": [d.name for d in submission.documents],
        },
        ensure_ascii=False,
        indent=2,
    )


def build_evaluation_prompt(tender: Tender, submissions: Sequence[Submission]) -> str:
    proposals = "\n\n".join(
        f"Proposal {index} (submission_id: {s.id}):\n{serialize_submission(s)}"
        for index, s in enumerate(submissions, start=1)
    )
    return (
        "You are an assistant evaluating procurement proposals. Analyze the "
        "proposals below against the tender and give each one a score for every "
        "evaluation criterion and a final score out of 100.\n"
        "The first document is the tender; the rest are the proposals. Always "
        "refer to a proposal by its label and submission_id.\n\n"
        f"Tender:\n{serialize_tender(tender)}\n\n{proposals}"
    )


def build_extraction_prompt(
    narrative: str, tender: Tender, submissions: Sequence[Submission]
) -> str:
    criteria = ", ".join(json.dumps(c.name, ensure_ascii=False) for c in tender.criteria)
    labels = "\n".join(
        f"- Proposal {index}: submission_id {s.id}"
        for index, s in enumerate(submissions, start=1)
    )
    return (
        "Based on the evaluation below, return ONLY a JSON array with one object "
        "per proposal, in the same order as the proposals were listed. Each object "
        'must have the keys "submission_id" (copied exactly from the list below), '
        '"proposal" (the proposal number), "subscores" (an object keyed by '
        f"criterion name: {criteria}; use null when a criterion was not scored) and "
        '"final_score" (a number, or null). No prose, no markdown.\n\n'
        f"Proposals:\n{labels}\n\nEvaluation:\n{narrative}"
    )


def strip_code_fences(text: str) -> str:
    match = _FENCE_RE.search(text or "")
    if match:
        return match.group(1).strip()
    return (text or "").strip()


def _as_score(value: Any, where: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise AiScoreParseError(f"{where}: expected a number, got {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError as exc:
            raise AiScoreParseError(f"{where}: expected a number, got {value!r}") from exc
    else:
        raise AiScoreParseError(f"{where}: expected a number, got {type(value).__name__}")
    if not math.isfinite(number):
        raise AiScoreParseError(f"{where}: score must be finite")
    return number


def parse_score_payload(text: str) -> list[tuple[str | None, AiScore]]:
    """Parse the oracle's JSON restatement into ``(submission_id, AiScore)`` pairs.

    Raises AiScoreParseError for anything that is not a well-formed array.
    """
    body = strip_code_fences(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise AiScoreParseError(f"AI score payload is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise AiScoreParseError(
            f"AI score payload must be a JSON array, got {type(data).__name__}"
        )

    entries: list[tuple[str | None, AiScore]] = []
    for index, item in enumerate(data):
        where = f"entry[{index}]"
        if not isinstance(item, dict):
            raise AiScoreParseError(f"{where}: expected an object")
        subscores_raw = item.get("subscores", {})
        if subscores_raw is None:
            subscores_raw = {}
        if not isinstance(subscores_raw, dict):
            raise AiScoreParseError(f"{where}.subscores: expected an object")
        subscores = {
            str(name): _as_score(value, f"{where}.subscores.{name}")
            for name, value in subscores_raw.items()
        }
        final_score = _as_score(item.get("final_score"), f"{where}.final_score")
        raw_id = item.get("submission_id")
        submission_id = str(raw_id).strip() if raw_id not in (None, "") else None
        entries.append((submission_id, AiScore(subscores=subscores, final_score=final_score)))
    return entries


def merge_scores(
    submissions: Sequence[Submission],
    entries: Sequence[tuple[str | None, AiScore]],
) -> tuple[list[SubmissionAiView], list[str]]:
    """Attach parsed scores by echoed submission id; absent ids stay ``missing``."""
    known = {s.id for s in submissions}
    by_id: dict[str, AiScore] = {}
    warnings: list[str] = []
    for submission_id, score in entries:
        if submission_id is None:
            warnings.append("ai_score_entry_without_submission_id")
            continue
        if submission_id not in known:
            logger.warning("AI score references unknown submission %s", submission_id)
            warnings.append(f"ai_score_unknown_submission:{submission_id}")
            continue
        if submission_id in by_id:
            raise AiScoreParseError(f"AI score payload repeats submission {submission_id}")
        by_id[submission_id] = score

    views = []
    for submission in submissions:
        score = by_id.get(submission.id)
        if score is None:
            warnings.append(f"ai_score_missing:{submission.id}")
        views.append(
            SubmissionAiView(
                submission=submission,
                ai_score=score,
                ai_status=AI_STATUS_SCORED if score is not None else AI_STATUS_MISSING,
            )
        )
    return views, warnings


class AiScoringService:
    """Stateless per-request pipeline; the oracle is injected."""

    def __init__(self, oracle: ScoringOracle, *, call_timeout: float | None = None) -> None:
        self._oracle = oracle
        self._call_timeout = call_timeout or None

    def evaluate(
        self, tender: Tender, submissions: Sequence[Submission]
    ) -> AiEvaluationResult:
        submissions = list(submissions)
        try:
            narrative = self._call(build_evaluation_prompt(tender, submissions), NARRATIVE_TASK)
        except ExternalServiceError as exc:
            logger.error("AI evaluation failed for tender %s: %s", tender.id, exc)
            return _failure(submissions, f"{AI_UNAVAILABLE_MESSAGE} {exc}", narrative="")

        try:
            entries = self.extract_scores(narrative, tender, submissions)
            views, warnings = merge_scores(submissions, entries)
        except ExternalServiceError as exc:
            logger.error("AI score extraction failed for tender %s: %s", tender.id, exc)
            return _failure(submissions, f"{AI_UNAVAILABLE_MESSAGE} {exc}", narrative=narrative)

        return AiEvaluationResult(
            success=True,
            message="completed",
            narrative=narrative,
            submissions=tuple(views),
            warnings=warnings,
        )

    def evaluate_tender(self, store: DocumentStore, tender_id: str) -> AiEvaluationResult:
        snapshot = store.snapshot(tender_id)
        return self.evaluate(snapshot.tender, snapshot.submissions)

    def extract_scores(
        self, narrative: str, tender: Tender, submissions: Sequence[Submission]
    ) -> list[tuple[str | None, AiScore]]:
        text = self._call(build_extraction_prompt(narrative, tender, submissions), EXTRACT_TASK)
        return parse_score_payload(text)

    def _call(self, prompt: str, task: str) -> str:
        if self._call_timeout is None:
            return self._generate(prompt, task)

        pool = ThreadPoolExecutor(max_workers=1)
        try:
            future = pool.submit(self._generate, prompt, task)
            return future.result(timeout=self._call_timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise ExternalServiceError(
                f"oracle call '{task}' timed out after {self._call_timeout:g}s"
            ) from exc
        finally:
            # A timed-out call keeps running on its worker thread; its result is discarded.
            pool.shutdown(wait=False, cancel_futures=True)

    def _generate(self, prompt: str, task: str) -> str:
        try:
            return self._oracle.generate(prompt, task=task)
        except ExternalServiceError:
            raise
        except Exception as exc:
            logger.error("Oracle call '%s' raised %s: %s", task, type(exc).__name__, exc)
            raise ExternalServiceError(f"oracle call '{task}' failed: {exc}") from exc


def _failure(
    submissions: Sequence[Submission], message: str, *, narrative: str
) -> AiEvaluationResult:
    return AiEvaluationResult(
        success=False,
        message=message,
        narrative=narrative,
        submissions=tuple(
            SubmissionAiView(submission=s, ai_score=None, ai_status=AI_STATUS_UNAVAILABLE)
            for s in submissions
        ),
    )
