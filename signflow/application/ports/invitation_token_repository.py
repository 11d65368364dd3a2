"""Invitation token repository port."""

from __future__ import annotations

from typing import Protocol

from signflow.domain.models.invitation_token import InvitationToken


class InvitationTokenRepositoryProtocol(Protocol):
    """Protocol for invitation token storage. Tokens are looked up by hash."""

    async def get(self, token_id: str) -> InvitationToken | None:
        """Retrieve a token by id."""
        ...

    async def get_by_hash(self, token_hash: str) -> InvitationToken | None:
        """Retrieve a token by the SHA-256 hash of its secret."""
        ...

    async def list_for_signer(self, envelope_id: str, signer_id: str) -> list[InvitationToken]:
        """All tokens issued to a signer, oldest first."""
        ...

    async def list_for_envelope(self, envelope_id: str) -> list[InvitationToken]:
        """All tokens issued for an envelope, oldest first."""
        ...

    async def save(self, token: InvitationToken) -> None:
        """Stage a new or updated token."""
        ...
