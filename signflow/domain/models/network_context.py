"""Network and actor context captured for audit and evidence.

The access/auth layer in front of the coordinator resolves who is acting
and from where. The domain only carries the values; it never derives them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class NetworkContext:
    """Network metadata of a request.

    Attributes:
        ip_address: Client IP address, if known.
        user_agent: Client user agent, if known.
        country: ISO country code resolved at the edge, if known.
        reason: Free-text signing reason supplied by the signer.
        location: Free-text signing location supplied by the signer.
    """

    ip_address: str | None = None
    user_agent: str | None = None
    country: str | None = None
    reason: str | None = None
    location: str | None = None

    def is_captured(self) -> bool:
        """Return True when at least the IP address or user agent is known."""
        return bool(self.ip_address or self.user_agent)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for audit payloads, dropping unknown values."""
        return {
            key: value
            for key, value in (
                ("ip_address", self.ip_address),
                ("user_agent", self.user_agent),
                ("country", self.country),
                ("reason", self.reason),
                ("location", self.location),
            )
            if value is not None
        }


@dataclass(frozen=True)
class ActorContext:
    """The principal invoking a coordinator operation.

    An authenticated internal user carries ``user_id``. An external actor
    has no user id and is identified solely by the invitation token passed
    alongside the command.

    Attributes:
        user_id: Internal user id, or None for external actors.
        email: Email of the principal, when known.
        network: Network metadata of the request.
    """

    user_id: str | None = None
    email: str | None = None
    network: NetworkContext = field(default_factory=NetworkContext)

    @property
    def is_authenticated(self) -> bool:
        """Return True for an internal user session."""
        return self.user_id is not None

    @property
    def audit_identity(self) -> str:
        """Identity string recorded on audit events."""
        if self.user_id is not None:
            return f"user:{self.user_id}"
        if self.email:
            return f"external:{self.email.lower()}"
        return "external:anonymous"

    @classmethod
    def system(cls) -> ActorContext:
        """Actor used for events emitted by the engine itself."""
        return cls(user_id="system")
