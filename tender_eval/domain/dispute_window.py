from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

_SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class DisputeWindow:
    """Filing window anchored to a decision instant.

    ``is_open`` and ``days_left`` both derive from ``closes_at`` so the
    "can file" check and the countdown never disagree.
    """

    anchor: datetime
    days: int

    @property
    def closes_at(self) -> datetime:
        return self.anchor + timedelta(days=self.days)

    def is_open(self, now: datetime) -> bool:
        return now <= self.closes_at

    def days_left(self, now: datetime) -> int:
        remaining = (self.closes_at - now).total_seconds()
        return max(0, math.ceil(remaining / _SECONDS_PER_DAY))

    def as_dict(self, now: datetime) -> dict[str, Any]:
        return {
            "anchor": self.anchor.isoformat(),
            "closes_at": self.closes_at.isoformat(),
            "is_open": self.is_open(now),
            "days_left": self.days_left(now),
        }
