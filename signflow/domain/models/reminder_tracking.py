"""Per-signer reminder bookkeeping and the reminder gate."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum

MAX_REMINDER_MESSAGE_LENGTH = 1024


class ReminderSkipReason(Enum):
    """Why a signer did not receive a reminder."""

    LIMIT_REACHED = "LIMIT_REACHED"
    MIN_INTERVAL = "MIN_INTERVAL"
    NO_ACTIVE_TOKEN = "NO_ACTIVE_TOKEN"
    NOT_PENDING = "NOT_PENDING"


@dataclass(frozen=True)
class ReminderDecision:
    """Outcome of the reminder gate for one signer."""

    allowed: bool
    reason: ReminderSkipReason | None = None
    hours_remaining: float | None = None


@dataclass(frozen=True)
class SignerReminderTracking:
    """Reminder counter for one (envelope, signer) pair.

    Attributes:
        envelope_id: Envelope id.
        signer_id: Signer id.
        reminder_count: Reminders sent so far.
        last_reminder_at: When the last reminder went out.
        last_message: Custom message of the last reminder.
    """

    envelope_id: str
    signer_id: str
    reminder_count: int = 0
    last_reminder_at: datetime | None = None
    last_message: str | None = None

    def check(
        self,
        max_reminders: int,
        min_hours_between: int,
        now: datetime | None = None,
    ) -> ReminderDecision:
        """Apply the count limit, then the minimum interval."""
        if self.reminder_count >= max_reminders:
            return ReminderDecision(False, ReminderSkipReason.LIMIT_REACHED)
        if self.last_reminder_at is not None:
            now = now or datetime.now(timezone.utc)
            next_allowed = self.last_reminder_at + timedelta(hours=min_hours_between)
            if now < next_allowed:
                remaining = (next_allowed - now).total_seconds() / 3600
                return ReminderDecision(
                    False, ReminderSkipReason.MIN_INTERVAL, round(remaining, 2)
                )
        return ReminderDecision(True)

    def record(self, now: datetime, message: str | None = None) -> SignerReminderTracking:
        """Count a reminder that was sent."""
        if message is not None:
            message = message[:MAX_REMINDER_MESSAGE_LENGTH]
        return replace(
            self,
            reminder_count=self.reminder_count + 1,
            last_reminder_at=now,
            last_message=message,
        )
