"""Consent repository port."""

from __future__ import annotations

from typing import Protocol

from signflow.domain.models.consent import Consent


class ConsentRepositoryProtocol(Protocol):
    """Protocol for consent record storage."""

    async def get(self, consent_id: str) -> Consent | None:
        """Retrieve a consent record by id."""
        ...

    async def get_latest_for_signer(self, envelope_id: str, signer_id: str) -> Consent | None:
        """Most recent consent recorded by a signer, if any."""
        ...

    async def save(self, consent: Consent) -> None:
        """Stage a new consent record or its signature link."""
        ...
