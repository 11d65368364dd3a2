"""Envelope repository port.

Envelopes are loaded and saved together with their signers. Writes are
staged on the unit of work and applied on commit, where the repository
checks the loaded version against the stored one.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from signflow.domain.models.envelope import Envelope, EnvelopeStatus


class EnvelopeRepositoryProtocol(Protocol):
    """Protocol for envelope storage operations.

    Methods:
        get: Load an envelope with its signers
        add: Stage a newly created envelope
        save: Stage an updated envelope (optimistic version check on commit)
        list_by_owner: Page through an owner's envelopes, newest first
    """

    async def get(self, envelope_id: str) -> Envelope | None:
        """Retrieve an envelope by ID.

        Args:
            envelope_id: The envelope identifier.

        Returns:
            The envelope if found, None otherwise.
        """
        ...

    async def add(self, envelope: Envelope) -> None:
        """Stage a new envelope.

        Raises:
            ValidationError: If an envelope with the same id exists.
        """
        ...

    async def save(self, envelope: Envelope) -> None:
        """Stage an updated envelope.

        The envelope's ``version`` must equal the version it was loaded
        with. On commit the stored version is advanced by one.

        Raises:
            ConcurrentModificationError: On commit, if the stored version
                moved since the envelope was loaded.
        """
        ...

    async def list_by_owner(
        self,
        owner_id: str,
        status: EnvelopeStatus | None = None,
        limit: int = 25,
        before: tuple[datetime, str] | None = None,
    ) -> list[Envelope]:
        """List an owner's envelopes ordered by (created_at, id) descending.

        Args:
            owner_id: Owner to filter by.
            status: Optional status filter.
            limit: Maximum number of envelopes to return.
            before: Keyset position; only envelopes strictly older are returned.

        Returns:
            Envelopes newest first.
        """
        ...
