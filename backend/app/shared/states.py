"""Tagged states for lifecycle fields stored as nullable timestamps.

``usage_claimed_at`` and the reset timestamps stay plain nullable columns.
The status callback branches on ``UsageClaim`` and the reset sweepers carry a
``ScheduledReset`` as the guard value of their conditional UPDATE.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from .utils import ensure_utc


@dataclass(frozen=True)
class Unclaimed:
    """Call has not been billed yet."""


@dataclass(frozen=True)
class Claimed:
    at: datetime


UsageClaim = Union[Unclaimed, Claimed]


@dataclass(frozen=True)
class NoReset:
    """Field keeps its current value until a user edits it."""


@dataclass(frozen=True)
class ScheduledReset:
    at: datetime

    def is_due(self, now: datetime) -> bool:
        return ensure_utc(self.at) <= ensure_utc(now)


ResetSchedule = Union[NoReset, ScheduledReset]


def usage_claim_from(claimed_at: datetime | None) -> UsageClaim:
    return Unclaimed() if claimed_at is None else Claimed(at=claimed_at)


def reset_schedule_from(reset_at: datetime | None) -> ResetSchedule:
    return NoReset() if reset_at is None else ScheduledReset(at=reset_at)
