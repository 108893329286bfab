"""Error taxonomy shared by every layer of the engine."""

from __future__ import annotations


class TenderEvalError(Exception):
    """Base class for engine errors."""


class ValidationError(TenderEvalError, ValueError):
    """Input rejected synchronously; nothing was persisted."""


class DuplicateEvaluation(ValidationError):
    """An evaluator already evaluated this submission."""

    def __init__(self, submission_id: str, evaluator_id: str):
        super().__init__(
            f"evaluator {evaluator_id} already evaluated submission {submission_id}"
        )
        self.submission_id = submission_id
        self.evaluator_id = evaluator_id


class NotFoundError(TenderEvalError, LookupError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class InvalidTransition(TenderEvalError):
    """Business-rule rejection, distinct from a system fault."""


class AlreadyResolved(InvalidTransition):
    def __init__(self, dispute_id: str):
        super().__init__(f"dispute already resolved: {dispute_id}")
        self.dispute_id = dispute_id


class DisputeWindowClosed(InvalidTransition):
    pass


class ExternalServiceError(TenderEvalError):
    """The scoring oracle failed or answered with something unusable."""


class AiScoreParseError(ExternalServiceError):
    pass


class ConcurrencyConflict(TenderEvalError):
    """Optimistic version check failed; the caller may re-read and retry."""

    retryable = True

    def __init__(self, tender_id: str, expected_version: int):
        super().__init__(
            f"tender {tender_id} changed concurrently (expected version {expected_version})"
        )
        self.tender_id = tender_id
        self.expected_version = expected_version
