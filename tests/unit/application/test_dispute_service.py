from __future__ import annotations

from datetime import timedelta

import pytest

from tender_eval.application.award_service import AwardService
from tender_eval.application.dispute_service import DisputeService, dispute_window
from tender_eval.domain.models import (
    DisputeStatus,
    DisputeType,
    SubmissionStatus,
)
from tender_eval.errors import (
    AlreadyResolved,
    DisputeWindowClosed,
    InvalidTransition,
    ValidationError,
)
from tests.helpers.factories import T0, make_evaluation, make_submission, make_tender

REASON = "The winning bid ignored the mandatory certification."


@pytest.fixture
def awarded(store, clock):
    store.add_tender(make_tender())
    for submission_id, day, quality in (("s-1", 1, 90), ("s-2", 2, 80)):
        store.add_submission(
            make_submission(
                submission_id,
                day=day,
                status=SubmissionStatus.EVALUATED,
                evaluations=[make_evaluation(submission_id, "ev-1", quality=quality)],
            )
        )
    store.add_submission(make_submission("s-3", day=3))
    AwardService(store, clock=clock).publish_winner("t-1", "s-1")
    return DisputeService(store, clock=clock)


def test_winner_dispute_on_last_day_is_accepted(awarded, clock):
    clock.now = T0 + timedelta(days=7)

    dispute = awarded.file_dispute(
        tender_id="t-1",
        raised_by="vendor-s-2",
        dispute_type="winner",
        reason=REASON,
        evidence=[{"name": "cert.pdf", "url": "https://blob/cert.pdf"}],
    )

    assert dispute.status is DisputeStatus.PENDING
    assert dispute.against_winner == "s-1"
    assert dispute.evidence == [{"name": "cert.pdf", "url": "https://blob/cert.pdf"}]


def test_winner_dispute_after_window_is_rejected(awarded, clock, store):
    clock.now = T0 + timedelta(days=8)

    with pytest.raises(DisputeWindowClosed):
        awarded.file_dispute(
            tender_id="t-1", raised_by="vendor-s-2", dispute_type="winner", reason=REASON
        )
    assert store.list_disputes("t-1") == []


def test_window_closed_is_an_invalid_transition(awarded, clock):
    clock.now = T0 + timedelta(days=8)
    with pytest.raises(InvalidTransition):
        awarded.file_dispute(
            tender_id="t-1", raised_by="vendor-s-2", dispute_type="winner", reason=REASON
        )


@pytest.mark.parametrize("reason", ["too short", "   padded   ", "x" * 1001])
def test_reason_length_is_enforced(awarded, reason):
    with pytest.raises(ValidationError):
        awarded.file_dispute(
            tender_id="t-1", raised_by="vendor-s-2", dispute_type="winner", reason=reason
        )


def test_winner_dispute_needs_a_published_winner(store, clock):
    store.add_tender(make_tender())
    service = DisputeService(store, clock=clock)

    with pytest.raises(InvalidTransition, match="no published winner"):
        service.file_dispute(
            tender_id="t-1", raised_by="vendor-x", dispute_type="winner", reason=REASON
        )


def test_accepting_winner_dispute_swaps_winner_in_one_commit(awarded, store, clock):
    dispute = awarded.file_dispute(
        tender_id="t-1", raised_by="vendor-s-2", dispute_type="winner", reason=REASON
    )
    before = store.snapshot("t-1").version
    clock.advance(days=1)

    snapshot = awarded.resolve_dispute(
        dispute.id, "accepted", "Certification was indeed missing.", resolved_by="admin"
    )

    assert snapshot.version == before + 1
    assert snapshot.winner.id == "s-2"
    assert snapshot.submission("s-1").status is SubmissionStatus.EVALUATED
    stored = store.get_dispute(dispute.id)
    assert stored.status is DisputeStatus.ACCEPTED
    assert stored.superseded_submission_id == "s-1"
    assert stored.resolved_by == "admin"
    assert stored.resolved_at == clock.now


def test_accepting_with_explicit_target(awarded, store):
    dispute = awarded.file_dispute(
        tender_id="t-1", raised_by="vendor-s-3", dispute_type="winner", reason=REASON
    )

    snapshot = awarded.resolve_dispute(
        dispute.id, DisputeStatus.ACCEPTED, "", resolved_by="admin", winner_submission_id="s-2"
    )

    assert snapshot.current_winner == "vendor-s-2"


def test_accepting_for_pending_submission_is_refused(awarded, store):
    dispute = awarded.file_dispute(
        tender_id="t-1", raised_by="vendor-s-3", dispute_type="winner", reason=REASON
    )

    with pytest.raises(InvalidTransition):
        awarded.resolve_dispute(dispute.id, "accepted", "", resolved_by="admin")
    assert store.get_dispute(dispute.id).status is DisputeStatus.PENDING
    assert store.snapshot("t-1").winner.id == "s-1"


def test_dispute_resolves_exactly_once(awarded):
    dispute = awarded.file_dispute(
        tender_id="t-1", raised_by="vendor-s-2", dispute_type="winner", reason=REASON
    )
    assert awarded.resolve_dispute(dispute.id, "rejected", "No merit.", resolved_by="admin") is None

    with pytest.raises(AlreadyResolved):
        awarded.resolve_dispute(dispute.id, "accepted", "Changed my mind.", resolved_by="admin")
    with pytest.raises(AlreadyResolved):
        awarded.mark_investigating(dispute.id)


def test_rejecting_needs_resolution_text(awarded):
    dispute = awarded.file_dispute(
        tender_id="t-1", raised_by="vendor-s-2", dispute_type="winner", reason=REASON
    )
    with pytest.raises(ValidationError):
        awarded.resolve_dispute(dispute.id, "rejected", "  ", resolved_by="admin")


def test_pending_is_not_a_resolution(awarded):
    dispute = awarded.file_dispute(
        tender_id="t-1", raised_by="vendor-s-2", dispute_type="winner", reason=REASON
    )
    with pytest.raises(ValidationError):
        awarded.resolve_dispute(dispute.id, "pending", "", resolved_by="admin")


def test_mark_investigating(awarded, store):
    dispute = awarded.file_dispute(
        tender_id="t-1", raised_by="vendor-s-2", dispute_type="winner", reason=REASON
    )

    awarded.mark_investigating(dispute.id)

    assert store.get_dispute(dispute.id).status is DisputeStatus.INVESTIGATING


def test_rejection_dispute_window_anchors_to_rejection_date(store, clock):
    store.add_tender(make_tender())
    store.add_submission(make_submission("s-1"))
    clock.now = T0 + timedelta(days=20)
    AwardService(store, clock=clock).reject_submission("s-1")
    service = DisputeService(store, clock=clock)

    clock.advance(days=7)
    dispute = service.file_dispute(
        tender_id="t-1",
        raised_by="vendor-s-1",
        dispute_type=DisputeType.REJECTION,
        reason="Our bid met every stated requirement.",
        submission_id="s-1",
    )

    assert dispute.type is DisputeType.REJECTION
    window = dispute_window(store.get_tender("t-1"), DisputeType.REJECTION, store.get_submission("s-1"))
    assert window.anchor == T0 + timedelta(days=20)


def test_rejection_dispute_only_by_owner_of_rejected_submission(store, clock):
    store.add_tender(make_tender())
    store.add_submission(make_submission("s-1"))
    store.add_submission(make_submission("s-2"))
    AwardService(store, clock=clock).reject_submission("s-1")
    service = DisputeService(store, clock=clock)

    with pytest.raises(ValidationError):
        service.file_dispute(
            tender_id="t-1", raised_by="vendor-s-2", dispute_type="rejection",
            reason=REASON, submission_id="s-1",
        )
    with pytest.raises(InvalidTransition):
        service.file_dispute(
            tender_id="t-1", raised_by="vendor-s-2", dispute_type="rejection",
            reason=REASON, submission_id="s-2",
        )


def test_accepted_rejection_dispute_reinstates_submission(store, clock):
    store.add_tender(make_tender(evaluators=("ev-1",)))
    store.add_submission(
        make_submission("s-1", evaluations=[make_evaluation("s-1", "ev-1", quality=50)])
    )
    AwardService(store, clock=clock).reject_submission("s-1")
    service = DisputeService(store, clock=clock)
    dispute = service.file_dispute(
        tender_id="t-1", raised_by="vendor-s-1", dispute_type="rejection",
        reason="Our bid met every stated requirement.", submission_id="s-1",
    )

    snapshot = service.resolve_dispute(dispute.id, "accepted", "Reinstated.", resolved_by="admin")

    reinstated = snapshot.submission("s-1")
    assert reinstated.status is SubmissionStatus.EVALUATED
    assert reinstated.rejected_at is None
