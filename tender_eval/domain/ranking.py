from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from .scoring import SubmissionScore, score_label

UNRANKED = 0
# Averages are means of floats; equal scores may differ in the last bits.
_SCORE_PRECISION = 9


@dataclass(frozen=True)
class RankEntry:
    submission_id: str
    score: float | None
    submitted_at: datetime


@dataclass(frozen=True)
class RankedSubmission:
    submission_id: str
    rank: int
    score: float | None
    submitted_at: datetime

    @property
    def is_ranked(self) -> bool:
        return self.rank != UNRANKED

    def as_dict(self) -> dict[str, Any]:
        return {
            "submission_id": self.submission_id,
            "rank": self.rank,
            "score": round(self.score, 2) if self.score is not None else None,
            "score_label": score_label(self.score),
            "submitted_at": self.submitted_at.isoformat(),
        }


def rank_entries(entries: Iterable[RankEntry]) -> list[RankedSubmission]:
    """Assign 1-based contiguous ranks by score, descending.

    Ties go to the earlier submission, then to the smaller id, so the order is
    total. Unscored entries get rank 0 and always sort after ranked ones.
    """
    scored: list[RankEntry] = []
    unscored: list[RankEntry] = []
    for entry in entries:
        (unscored if entry.score is None else scored).append(entry)

    scored.sort(
        key=lambda e: (-round(e.score, _SCORE_PRECISION), e.submitted_at, e.submission_id)
    )
    unscored.sort(key=lambda e: (e.submitted_at, e.submission_id))

    ranked = [
        RankedSubmission(
            submission_id=e.submission_id,
            rank=position,
            score=e.score,
            submitted_at=e.submitted_at,
        )
        for position, e in enumerate(scored, start=1)
    ]
    ranked.extend(
        RankedSubmission(
            submission_id=e.submission_id,
            rank=UNRANKED,
            score=None,
            submitted_at=e.submitted_at,
        )
        for e in unscored
    )
    return ranked


def rank_submissions(scores: Iterable[SubmissionScore]) -> list[RankedSubmission]:
    """Authoritative tender-scoped ranking from submission averages."""
    return rank_entries(
        RankEntry(
            submission_id=s.submission_id,
            score=s.average_score,
            submitted_at=s.submitted_at,
        )
        for s in scores
    )


def rank_for_evaluator(
    scores: Iterable[SubmissionScore], evaluator_id: str
) -> list[RankedSubmission]:
    """One evaluator's personal ordering; display only."""
    entries = []
    for s in scores:
        own = next(
            (
                e.overall_score
                for e in s.evaluator_scores
                if e.evaluator_id == evaluator_id and e.completed
            ),
            None,
        )
        entries.append(
            RankEntry(submission_id=s.submission_id, score=own, submitted_at=s.submitted_at)
        )
    return rank_entries(entries)


def rank_of(ranking: Iterable[RankedSubmission], submission_id: str) -> int:
    for item in ranking:
        if item.submission_id == submission_id:
            return item.rank
    return UNRANKED
