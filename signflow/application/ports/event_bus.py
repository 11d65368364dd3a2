"""Event bus port.

Delivery is at-least-once; consumers de-duplicate by ``event_id`` in the
message. The workflow never waits on a consumer response.
"""

from __future__ import annotations

from typing import Any, Protocol


class EventBusPort(Protocol):
    """Publishes integration events."""

    async def publish(self, event_type: str, message: dict[str, Any], key: str) -> None:
        """Publish one event.

        Args:
            event_type: Event name, e.g. "envelope.invitation".
            message: JSON-serializable message including ``event_id``.
            key: Partition key; the envelope id keeps per-envelope order.

        Raises:
            Exception: Any delivery failure. The publisher records it.
        """
        ...
