"""Consent record.

A Consent is written before the signing oracle is called and linked to the
resulting signature afterwards. It is append-only apart from that link.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from signflow.domain.exceptions import ValidationError
from signflow.domain.models.network_context import NetworkContext
from signflow.domain.primitives.prevent_delete import DeletePreventionMixin


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Consent(DeletePreventionMixin):
    """A signer's recorded acknowledgment ahead of signing.

    Attributes:
        id: Consent identifier.
        envelope_id: Envelope being signed.
        signer_id: Consenting signer.
        consent_text: The exact text consented to.
        given: Always True for a stored record.
        network: Network context of the consenting request.
        given_at: When consent was given.
        signature_id: Signature hash this consent was linked to after signing.
    """

    id: str
    envelope_id: str
    signer_id: str
    consent_text: str
    network: NetworkContext
    given: bool = True
    given_at: datetime = field(default_factory=_utc_now)
    signature_id: str | None = None

    def link_signature(self, signature_id: str) -> Consent:
        """Link the signature produced after this consent.

        Raises:
            ValidationError: If a different signature is already linked.
        """
        if self.signature_id is not None and self.signature_id != signature_id:
            raise ValidationError(
                f"Consent {self.id} is already linked to signature {self.signature_id}"
            )
        return replace(self, signature_id=signature_id)
