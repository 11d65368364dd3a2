"""Object storage port for document bytes."""

from __future__ import annotations

from typing import Protocol


class DocumentStoragePort(Protocol):
    """Whole-object access to documents by opaque key."""

    async def exists(self, key: str) -> bool:
        """Check whether an object exists."""
        ...

    async def get_bytes(self, key: str) -> bytes:
        """Fetch an object's bytes.

        Raises:
            KeyError: If the object does not exist.
        """
        ...

    async def put_bytes(self, key: str, data: bytes, content_type: str = "application/pdf") -> None:
        """Store an object, replacing any existing one."""
        ...
