"""Recording event bus stub."""

from __future__ import annotations

from typing import Any


class RecordingEventBus:
    """Keeps published messages in memory.

    Attributes:
        published: (event_type, message, key) in publish order.
        fail_with: When set, publish() raises it (failure injection).
    """

    def __init__(self) -> None:
        self.published: list[tuple[str, dict[str, Any], str]] = []
        self.fail_with: Exception | None = None

    async def publish(self, event_type: str, message: dict[str, Any], key: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.published.append((event_type, message, key))

    def events_of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [message for name, message, _ in self.published if name == event_type]

    def clear(self) -> None:
        self.published.clear()
