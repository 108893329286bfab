from __future__ import annotations

from datetime import timedelta

import pytest

from tender_eval.domain.dispute_window import DisputeWindow
from tests.helpers.factories import T0


def test_last_instant_of_window_is_inclusive():
    window = DisputeWindow(anchor=T0, days=7)

    assert window.is_open(T0 + timedelta(days=7))
    assert window.days_left(T0 + timedelta(days=7)) == 0
    assert not window.is_open(T0 + timedelta(days=8))
    assert not window.is_open(T0 + timedelta(days=7, seconds=1))


@pytest.mark.parametrize(
    "elapsed, expected",
    [
        (timedelta(0), 7),
        (timedelta(hours=1), 7),
        (timedelta(days=6), 1),
        (timedelta(days=6, hours=23), 1),
        (timedelta(days=9), 0),
    ],
)
def test_days_left_uses_ceiling_of_remaining_time(elapsed, expected):
    assert DisputeWindow(anchor=T0, days=7).days_left(T0 + elapsed) == expected


def test_zero_day_window_is_open_only_at_anchor():
    window = DisputeWindow(anchor=T0, days=0)
    assert window.is_open(T0)
    assert not window.is_open(T0 + timedelta(microseconds=1))


def test_as_dict_reports_open_state_and_countdown():
    payload = DisputeWindow(anchor=T0, days=7).as_dict(T0 + timedelta(days=2))
    assert payload["is_open"] is True
    assert payload["days_left"] == 5
    assert payload["closes_at"] == (T0 + timedelta(days=7)).isoformat()
