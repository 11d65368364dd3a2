"""Concurrent modification error for optimistic envelope updates.

Raised by the unit of work when an envelope is saved with a version that
no longer matches the stored one.
"""

from __future__ import annotations

from signflow.domain.exceptions import StateConflictError


class ConcurrentModificationError(StateConflictError):
    """Raised when an optimistic version check fails on commit.

    This indicates another unit of work committed a change to the same
    envelope in between. The caller should re-read the envelope and decide
    whether to retry; the coordinator itself never does.

    Attributes:
        envelope_id: Envelope that was being modified.
        expected_version: The version the writer loaded.
        actual_version: The version found in storage.
    """

    code = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        envelope_id: str,
        expected_version: int,
        actual_version: int,
        operation: str = "save_envelope",
    ) -> None:
        """Initialize concurrent modification error.

        Args:
            envelope_id: Envelope being modified.
            expected_version: Version read by the writer.
            actual_version: Version currently stored.
            operation: Description of the failed operation.
        """
        self.envelope_id = envelope_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.operation = operation
        super().__init__(
            f"Concurrent modification detected for envelope {envelope_id} "
            f"during {operation}. Expected version {expected_version}, "
            f"found {actual_version}."
        )
