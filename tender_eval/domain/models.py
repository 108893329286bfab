from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from tender_eval.errors import ValidationError

WEIGHT_TOTAL = 100.0
DISPUTE_REASON_MIN = 10
DISPUTE_REASON_MAX = 1000


class TenderStatus(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"
    AWARDED = "awarded"
    CANCELLED = "cancelled"


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    EVALUATED = "evaluated"
    WINNER = "winner"
    REJECTED = "rejected"


class EvaluationStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class DisputeType(str, Enum):
    REJECTION = "rejection"
    WINNER = "winner"


class DisputeStatus(str, Enum):
    PENDING = "pending"
    INVESTIGATING = "investigating"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (DisputeStatus.ACCEPTED, DisputeStatus.REJECTED)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_iso(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def require_aware(name: str, value: datetime | None) -> None:
    if value is not None and (value.tzinfo is None or value.utcoffset() is None):
        raise ValidationError(f"{name} must be timezone-aware, got {value.isoformat()}")


@dataclass(frozen=True)
class Criterion:
    """One weighted rubric dimension of a tender."""

    id: str
    name: str
    weight: float
    min_score: float = 0.0
    max_score: float = 100.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "weight": self.weight,
            "min_score": self.min_score,
            "max_score": self.max_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Criterion":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            weight=float(data["weight"]),
            min_score=float(data.get("min_score", 0.0)),
            max_score=float(data.get("max_score", 100.0)),
        )


def validate_criteria(criteria: Iterable[Criterion]) -> None:
    """Reject rubrics whose weights are out of range or do not sum to 100."""
    items = list(criteria)
    if not items:
        raise ValidationError("a tender needs at least one criterion")

    seen: set[str] = set()
    for criterion in items:
        if criterion.id in seen:
            raise ValidationError(f"duplicate criterion id: {criterion.id}")
        seen.add(criterion.id)
        if not 0 <= criterion.weight <= WEIGHT_TOTAL:
            raise ValidationError(
                f"criterion {criterion.id} weight must be within [0, 100], got {criterion.weight}"
            )
        if criterion.min_score >= criterion.max_score:
            raise ValidationError(
                f"criterion {criterion.id} min_score {criterion.min_score} "
                f"must be below max_score {criterion.max_score}"
            )

    total = sum(c.weight for c in items)
    if not math.isclose(total, WEIGHT_TOTAL, abs_tol=1e-9):
        raise ValidationError(f"criterion weights must sum to 100, got {total:g}")


@dataclass
class Tender:
    id: str
    title: str
    criteria: list[Criterion]
    deadline: datetime
    dispute_time_frame_days: int = 7
    status: TenderStatus = TenderStatus.DRAFT
    assigned_evaluators: list[str] = field(default_factory=list)
    description: str = ""
    category: str = ""
    budget: float | None = None
    created_by: str | None = None
    closed_at: datetime | None = None
    version: int = 0

    def __post_init__(self) -> None:
        validate_criteria(self.criteria)
        if isinstance(self.dispute_time_frame_days, bool) or not isinstance(
            self.dispute_time_frame_days, int
        ):
            raise ValidationError("dispute_time_frame_days must be an integer")
        if self.dispute_time_frame_days < 0:
            raise ValidationError("dispute_time_frame_days must be >= 0")
        self.status = TenderStatus(self.status)
        self.assigned_evaluators = list(dict.fromkeys(self.assigned_evaluators))
        require_aware("deadline", self.deadline)
        require_aware("closed_at", self.closed_at)

    @property
    def close_date(self) -> datetime:
        """Decision anchor for winner disputes."""
        return self.closed_at or self.deadline

    def criterion(self, criterion_id: str) -> Criterion | None:
        for item in self.criteria:
            if item.id == criterion_id:
                return item
        return None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "criteria": [c.as_dict() for c in self.criteria],
            "deadline": _iso(self.deadline),
            "dispute_time_frame_days": self.dispute_time_frame_days,
            "status": self.status.value,
            "assigned_evaluators": list(self.assigned_evaluators),
            "description": self.description,
            "category": self.category,
            "budget": self.budget,
            "created_by": self.created_by,
            "closed_at": _iso(self.closed_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Tender":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            criteria=[Criterion.from_dict(c) for c in data.get("criteria", [])],
            deadline=_parse_iso(data["deadline"]),
            dispute_time_frame_days=int(data.get("dispute_time_frame_days", 7)),
            status=TenderStatus(data.get("status", TenderStatus.DRAFT.value)),
            assigned_evaluators=list(data.get("assigned_evaluators", [])),
            description=str(data.get("description", "")),
            category=str(data.get("category", "")),
            budget=data.get("budget"),
            created_by=data.get("created_by"),
            closed_at=_parse_iso(data.get("closed_at")),
            version=int(data.get("version", 0)),
        )


@dataclass(frozen=True)
class DocumentRef:
    """Blob Store metadata attached to a submission; contents are never read."""

    name: str
    key: str
    url: str
    type: str = ""
    size: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "key": self.key,
            "url": self.url,
            "type": self.type,
            "size": self.size,
        }


@dataclass
class Evaluation:
    submission_id: str
    evaluator_id: str
    scores: dict[str, float]
    comment: str = ""
    criterion_comments: dict[str, str] = field(default_factory=dict)
    status: EvaluationStatus = EvaluationStatus.COMPLETED
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        self.status = EvaluationStatus(self.status)

    @property
    def is_completed(self) -> bool:
        return self.status is EvaluationStatus.COMPLETED

    def as_dict(self) -> dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "evaluator_id": self.evaluator_id,
            "scores": dict(self.scores),
            "comment": self.comment,
            "criterion_comments": dict(self.criterion_comments),
            "status": self.status.value,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Evaluation":
        return cls(
            submission_id=str(data["submission_id"]),
            evaluator_id=str(data["evaluator_id"]),
            scores={str(k): float(v) for k, v in data.get("scores", {}).items()},
            comment=str(data.get("comment", "")),
            criterion_comments=dict(data.get("criterion_comments", {})),
            status=EvaluationStatus(data.get("status", EvaluationStatus.COMPLETED.value)),
            created_at=_parse_iso(data.get("created_at")),
        )


@dataclass(frozen=True)
class AiScore:
    """Advisory oracle score; never folded into human averages."""

    subscores: dict[str, float | None]
    final_score: float | None

    def as_dict(self) -> dict[str, Any]:
        return {"subscores": dict(self.subscores), "final_score": self.final_score}


@dataclass
class Submission:
    id: str
    tender_id: str
    vendor_id: str
    submitted_at: datetime
    status: SubmissionStatus = SubmissionStatus.SUBMITTED
    proposal: str = ""
    proposed_budget: float | None = None
    documents: list[DocumentRef] = field(default_factory=list)
    evaluations: list[Evaluation] = field(default_factory=list)
    rejected_at: datetime | None = None

    def __post_init__(self) -> None:
        self.status = SubmissionStatus(self.status)
        require_aware("submitted_at", self.submitted_at)
        require_aware("rejected_at", self.rejected_at)

    def evaluation_for(self, evaluator_id: str) -> Evaluation | None:
        for evaluation in self.evaluations:
            if evaluation.evaluator_id == evaluator_id:
                return evaluation
        return None

    def as_dict(self, *, include_evaluations: bool = True) -> dict[str, Any]:
        payload = {
            "id": self.id,
            "tender_id": self.tender_id,
            "vendor_id": self.vendor_id,
            "submitted_at": _iso(self.submitted_at),
            "status": self.status.value,
            "proposal": self.proposal,
            "proposed_budget": self.proposed_budget,
            "documents": [d.as_dict() for d in self.documents],
            "rejected_at": _iso(self.rejected_at),
        }
        if include_evaluations:
            payload["evaluations"] = [e.as_dict() for e in self.evaluations]
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Submission":
        return cls(
            id=str(data["id"]),
            tender_id=str(data["tender_id"]),
            vendor_id=str(data["vendor_id"]),
            submitted_at=_parse_iso(data["submitted_at"]),
            status=SubmissionStatus(data.get("status", SubmissionStatus.SUBMITTED.value)),
            proposal=str(data.get("proposal", "")),
            proposed_budget=data.get("proposed_budget"),
            documents=[DocumentRef(**d) for d in data.get("documents", [])],
            evaluations=[Evaluation.from_dict(e) for e in data.get("evaluations", [])],
            rejected_at=_parse_iso(data.get("rejected_at")),
        )


@dataclass
class Dispute:
    id: str
    tender_id: str
    raised_by: str
    type: DisputeType
    reason: str
    submission_id: str | None = None
    against_winner: str | None = None
    evidence: list[dict[str, str]] = field(default_factory=list)
    status: DisputeStatus = DisputeStatus.PENDING
    resolution: str | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime | None = None
    superseded_submission_id: str | None = None

    def __post_init__(self) -> None:
        self.type = DisputeType(self.type)
        self.status = DisputeStatus(self.status)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tender_id": self.tender_id,
            "raised_by": self.raised_by,
            "type": self.type.value,
            "reason": self.reason,
            "submission_id": self.submission_id,
            "against_winner": self.against_winner,
            "evidence": [dict(e) for e in self.evidence],
            "status": self.status.value,
            "resolution": self.resolution,
            "resolved_by": self.resolved_by,
            "resolved_at": _iso(self.resolved_at),
            "created_at": _iso(self.created_at),
            "superseded_submission_id": self.superseded_submission_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Dispute":
        return cls(
            id=str(data["id"]),
            tender_id=str(data["tender_id"]),
            raised_by=str(data["raised_by"]),
            type=DisputeType(data["type"]),
            reason=str(data["reason"]),
            submission_id=data.get("submission_id"),
            against_winner=data.get("against_winner"),
            evidence=[dict(e) for e in data.get("evidence", [])],
            status=DisputeStatus(data.get("status", DisputeStatus.PENDING.value)),
            resolution=data.get("resolution"),
            resolved_by=data.get("resolved_by"),
            resolved_at=_parse_iso(data.get("resolved_at")),
            created_at=_parse_iso(data.get("created_at")),
            superseded_submission_id=data.get("superseded_submission_id"),
        )
