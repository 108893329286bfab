from __future__ import annotations

import json
import threading

import pytest

from tender_eval.application.ai_scoring import (
    AI_STATUS_MISSING,
    AI_STATUS_SCORED,
    AI_STATUS_UNAVAILABLE,
    EXTRACT_TASK,
    NARRATIVE_TASK,
    AiScoringService,
    build_evaluation_prompt,
    merge_scores,
    parse_score_payload,
    strip_code_fences,
)
from tender_eval.domain.models import AiScore
from tender_eval.errors import AiScoreParseError, ExternalServiceError
from tests.helpers.factories import make_submission, make_tender


class _Oracle:
    """Scripted oracle; each reply is a string or an exception to raise."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def generate(self, prompt, *, task=None):
        self.calls.append((task, prompt))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _payload(*entries):
    return json.dumps(
        [
            {
                "submission_id": submission_id,
                "proposal": index,
                "subscores": {"Quality": final, "Price": None},
                "final_score": final,
            }
            for index, (submission_id, final) in enumerate(entries, start=1)
        ]
    )


@pytest.fixture
def tender():
    return make_tender()


@pytest.fixture
def submissions():
    return [make_submission("s-1", day=1), make_submission("s-2", day=2)]


def test_strip_code_fences_handles_language_tag_and_prose():
    text = 'Here you go:\n```json\n[{"final_score": 1}]\n```\nThanks'
    assert strip_code_fences(text) == '[{"final_score": 1}]'
    assert strip_code_fences("  [1, 2]  ") == "[1, 2]"


def test_parse_score_payload_accepts_numeric_strings_and_nulls():
    entries = parse_score_payload(
        '```\n[{"submission_id": "s-1", "subscores": {"Quality": "7.5", "Price": null},'
        ' "final_score": 75}]\n```'
    )

    assert entries == [("s-1", AiScore(subscores={"Quality": 7.5, "Price": None}, final_score=75.0))]


@pytest.mark.parametrize(
    "text",
    [
        "The proposals are both fine.",
        '{"submission_id": "s-1"}',
        "[1, 2]",
        '[{"submission_id": "s-1", "final_score": true}]',
        '[{"submission_id": "s-1", "final_score": "high"}]',
        '[{"submission_id": "s-1", "subscores": [1, 2]}]',
        '[{"submission_id": "s-1", "final_score": NaN}]',
    ],
)
def test_parse_score_payload_rejects_malformed_text(text):
    with pytest.raises(AiScoreParseError):
        parse_score_payload(text)


def test_merge_is_by_submission_id_not_position(submissions):
    entries = parse_score_payload(_payload(("s-2", 60), ("s-1", 90)))

    views, warnings = merge_scores(submissions, entries)

    assert [(v.submission.id, v.ai_score.final_score) for v in views] == [("s-1", 90.0), ("s-2", 60.0)]
    assert warnings == []


def test_merge_marks_missing_and_reports_unknown(submissions):
    entries = parse_score_payload(_payload(("s-1", 90), ("s-9", 10)))

    views, warnings = merge_scores(submissions, entries)

    assert [v.ai_status for v in views] == [AI_STATUS_SCORED, AI_STATUS_MISSING]
    assert views[1].ai_score is None
    assert "ai_score_unknown_submission:s-9" in warnings
    assert "ai_score_missing:s-2" in warnings


def test_merge_rejects_repeated_submission(submissions):
    entries = parse_score_payload(_payload(("s-1", 90), ("s-1", 10)))
    with pytest.raises(AiScoreParseError):
        merge_scores(submissions, entries)


def test_evaluate_runs_two_calls_and_merges(tender, submissions):
    oracle = _Oracle("Proposal 1 is stronger.", "```json\n" + _payload(("s-1", 90), ("s-2", 60)) + "\n```")

    result = AiScoringService(oracle).evaluate(tender, submissions)

    assert result.success
    assert result.narrative == "Proposal 1 is stronger."
    assert [task for task, _ in oracle.calls] == [NARRATIVE_TASK, EXTRACT_TASK]
    assert "Proposal 1 is stronger." in oracle.calls[1][1]
    assert result.as_dict()["submissions"][0]["ai_score"]["final_score"] == 90.0


def test_unparseable_second_call_leaves_every_score_null(tender, submissions):
    oracle = _Oracle("Narrative.", "Sorry, I cannot produce JSON today.")

    result = AiScoringService(oracle).evaluate(tender, submissions)

    assert not result.success
    assert result.message.startswith("AI evaluation not available.")
    assert result.narrative == "Narrative."
    assert all(v.ai_score is None for v in result.submissions)
    assert {v.ai_status for v in result.submissions} == {AI_STATUS_UNAVAILABLE}


def test_first_call_failure_is_reported_not_raised(tender, submissions):
    oracle = _Oracle(ExternalServiceError("OpenAI API error: quota"))

    result = AiScoringService(oracle).evaluate(tender, submissions)

    assert not result.success
    assert "quota" in result.message
    assert len(oracle.calls) == 1
    assert all(v.ai_score is None for v in result.submissions)


def test_unexpected_oracle_error_is_reported_not_raised(tender, submissions):
    oracle = _Oracle("Narrative.", ConnectionError("network down"))

    result = AiScoringService(oracle).evaluate(tender, submissions)

    assert not result.success
    assert result.message.startswith("AI evaluation not available.")
    assert "network down" in result.message
    assert result.narrative == "Narrative."
    assert all(v.ai_score is None for v in result.submissions)
    assert {v.ai_status for v in result.submissions} == {AI_STATUS_UNAVAILABLE}


def test_unexpected_oracle_error_under_timeout_is_reported(tender, submissions):
    oracle = _Oracle(ConnectionError("network down"))

    result = AiScoringService(oracle, call_timeout=5).evaluate(tender, submissions)

    assert not result.success
    assert "network down" in result.message


def test_slow_oracle_times_out(tender, submissions):
    release = threading.Event()

    class _SlowOracle:
        def generate(self, prompt, *, task=None):
            release.wait(timeout=5)
            return "late"

    try:
        result = AiScoringService(_SlowOracle(), call_timeout=0.05).evaluate(tender, submissions)
    finally:
        release.set()

    assert not result.success
    assert "timed out" in result.message


def test_prompt_labels_proposals_with_submission_ids(tender, submissions):
    prompt = build_evaluation_prompt(tender, submissions)
    assert "Proposal 1 (submission_id: s-1)" in prompt
    assert "Proposal 2 (submission_id: s-2)" in prompt


def test_evaluate_tender_reads_snapshot(store, tender):
    store.add_tender(tender)
    store.add_submission(make_submission("s-1"))
    oracle = _Oracle("Narrative.", _payload(("s-1", 70)))

    result = AiScoringService(oracle).evaluate_tender(store, "t-1")

    assert result.submissions[0].ai_score.final_score == 70.0
