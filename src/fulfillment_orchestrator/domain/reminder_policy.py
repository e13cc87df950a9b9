"""Pickup reminder / auto-close policy.

Orders in ``completed`` status are waiting for the customer. Based on the time
elapsed since the order's ``updated_at`` the sweep either does nothing, sends a
pickup reminder, or closes the order:

    elapsed <  remind_after                 -> NONE
    remind_after <= elapsed < close_after   -> REMIND (days_left counts down)
    elapsed >= close_after                  -> CLOSE

Windows are half-open and computed from one ``now`` snapshot, so an order
falls into exactly one of them.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fulfillment_orchestrator.domain.clock import ensure_utc

if TYPE_CHECKING:
    from fulfillment_orchestrator.config import Settings

ONE_DAY = timedelta(days=1)


class SweepAction(enum.StrEnum):
    NONE = "none"
    REMIND = "remind"
    CLOSE = "close"


@dataclass(frozen=True)
class SweepWindows:
    """Absolute ``updated_at`` cut-offs for one sweep.

    Attributes:
        close_before: Orders updated at or before this instant are closed.
        remind_before: Orders updated after ``close_before`` and at or before
            this instant are reminded.
    """

    close_before: datetime
    remind_before: datetime


@dataclass(frozen=True)
class ReminderPolicy:
    remind_after: timedelta = timedelta(hours=24)
    close_after: timedelta = timedelta(days=7)

    def __post_init__(self) -> None:
        if self.remind_after <= timedelta(0):
            raise ValueError("remind_after must be positive")
        if self.close_after <= self.remind_after:
            raise ValueError("close_after must be longer than remind_after")

    @classmethod
    def from_settings(cls, settings: Settings) -> ReminderPolicy:
        return cls(
            remind_after=settings.reminder_after,
            close_after=settings.auto_close_after,
        )

    @property
    def close_after_days(self) -> int:
        return max(1, self.close_after // ONE_DAY)

    def windows(self, now: datetime) -> SweepWindows:
        now = ensure_utc(now)
        return SweepWindows(
            close_before=now - self.close_after,
            remind_before=now - self.remind_after,
        )

    def classify(self, updated_at: datetime, now: datetime) -> SweepAction:
        elapsed = ensure_utc(now) - ensure_utc(updated_at)
        if elapsed >= self.close_after:
            return SweepAction.CLOSE
        if elapsed >= self.remind_after:
            return SweepAction.REMIND
        return SweepAction.NONE

    def days_left(self, updated_at: datetime, now: datetime) -> int:
        """Whole days the customer has left before the order is closed (never below 1)."""
        elapsed = ensure_utc(now) - ensure_utc(updated_at)
        elapsed_days = elapsed // ONE_DAY
        return max(1, self.close_after_days - elapsed_days)
