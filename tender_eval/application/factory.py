from __future__ import annotations

import logging
from dataclasses import dataclass

from tender_eval.llm import LLMClient, ScoringOracle

from .ai_scoring import AiScoringService
from .award_service import AwardService
from .clock import Clock, utc_now
from .dispute_service import DisputeService
from .evaluation_service import EvaluationService
from .store import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenderEvalServices:
    store: DocumentStore
    evaluations: EvaluationService
    awards: AwardService
    disputes: DisputeService
    ai: AiScoringService | None


def build_services(
    settings: dict,
    store: DocumentStore,
    *,
    oracle: ScoringOracle | None = None,
    clock: Clock = utc_now,
) -> TenderEvalServices:
    """Wire every service over one store from a ``load_settings()`` dict.

    Without an injected oracle the OpenAI client is used when an API key is
    configured; otherwise AI scoring is disabled and ``ai`` is ``None``.
    """
    if oracle is None and settings.get("OPENAI_API_KEY"):
        oracle = LLMClient(settings)
    if oracle is None:
        logger.warning("OPENAI_API_KEY not set; AI scoring disabled")

    ai = None
    if oracle is not None:
        ai = AiScoringService(
            oracle, call_timeout=settings.get("TENDER_EVAL_ORACLE_CALL_TIMEOUT") or None
        )
    return TenderEvalServices(
        store=store,
        evaluations=EvaluationService(
            store,
            clock=clock,
            commit_retries=settings.get("TENDER_EVAL_COMMIT_RETRIES", 3),
        ),
        awards=AwardService(
            store,
            clock=clock,
            default_dispute_days=settings.get("TENDER_EVAL_DISPUTE_WINDOW_DAYS", 7),
        ),
        disputes=DisputeService(store, clock=clock),
        ai=ai,
    )
