"""In-memory document storage stub."""

from __future__ import annotations


class InMemoryDocumentStorage:
    """Dict-backed object storage.

    Attributes:
        objects: Stored bytes by key.
        content_types: Content type by key.
        fail_on_get: When set, get_bytes raises it (failure injection).
        fail_on_put: When set, put_bytes raises it (failure injection).
    """

    def __init__(self, objects: dict[str, bytes] | None = None) -> None:
        self.objects: dict[str, bytes] = dict(objects or {})
        self.content_types: dict[str, str] = {}
        self.fail_on_get: Exception | None = None
        self.fail_on_put: Exception | None = None

    async def exists(self, key: str) -> bool:
        return key in self.objects

    async def get_bytes(self, key: str) -> bytes:
        if self.fail_on_get is not None:
            raise self.fail_on_get
        if key not in self.objects:
            raise KeyError(key)
        return self.objects[key]

    async def put_bytes(self, key: str, data: bytes, content_type: str = "application/pdf") -> None:
        if self.fail_on_put is not None:
            raise self.fail_on_put
        self.objects[key] = data
        self.content_types[key] = content_type
