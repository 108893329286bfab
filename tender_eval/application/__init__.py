"""Application services over the Document Store and the scoring oracle."""

from .ai_scoring import (
    AiEvaluationResult,
    AiScoringService,
    SubmissionAiView,
    merge_scores,
    parse_score_payload,
    strip_code_fences,
)
from .award_service import AwardService
from .dispute_service import DisputeService, dispute_window
from .evaluation_service import EvaluationService, RankingRow, TenderRanking
from .factory import TenderEvalServices, build_services
from .store import DocumentStore, TenderSnapshot

__all__ = [
    "AiEvaluationResult",
    "AiScoringService",
    "AwardService",
    "DisputeService",
    "DocumentStore",
    "EvaluationService",
    "RankingRow",
    "SubmissionAiView",
    "TenderRanking",
    "TenderEvalServices",
    "TenderSnapshot",
    "build_services",
    "dispute_window",
    "merge_scores",
    "parse_score_payload",
    "strip_code_fences",
]
