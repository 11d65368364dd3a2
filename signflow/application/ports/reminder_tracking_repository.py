"""Reminder tracking repository port."""

from __future__ import annotations

from typing import Protocol

from signflow.domain.models.reminder_tracking import SignerReminderTracking


class ReminderTrackingRepositoryProtocol(Protocol):
    """Protocol for per-signer reminder counters."""

    async def get(self, envelope_id: str, signer_id: str) -> SignerReminderTracking | None:
        """Tracking row for a signer, None if never reminded."""
        ...

    async def save(self, tracking: SignerReminderTracking) -> None:
        """Stage an updated tracking row."""
        ...
