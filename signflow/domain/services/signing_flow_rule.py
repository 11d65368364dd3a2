"""Signing-flow rule: the single admit/deny decision before a sign attempt.

Stateless. Combines envelope state, signer state and the signing-order
policy. Checks run in this order so a racing duplicate sees the signer
condition first:

1. The target signer is PENDING (else already-signed / already-declined).
2. The envelope is SENT, or the owner is signing their own DRAFT envelope.
   External signers always need a SENT envelope.
3. The envelope has not passed its expires_at.
4. Viewers never sign.
5. Once SENT, the signing-order policy admits the signer.
"""

from __future__ import annotations

from datetime import datetime

from signflow.domain.errors.envelope import EnvelopeExpiredError, InvalidEnvelopeStateError
from signflow.domain.errors.signer import (
    SignerAlreadyDeclinedError,
    SignerAlreadySignedError,
    SigningOrderViolationError,
)
from signflow.domain.exceptions import AccessDeniedError
from signflow.domain.models.envelope import Envelope, EnvelopeStatus, SigningOrder
from signflow.domain.models.signer import Signer, SignerStatus


class SigningFlowRule:
    """Validates whether a signer may sign or decline right now."""

    def validate_sign(
        self,
        envelope: Envelope,
        signer: Signer,
        actor_user_id: str | None,
        now: datetime | None = None,
    ) -> None:
        """Admit or reject a sign attempt.

        Args:
            envelope: Freshly loaded envelope.
            signer: The target signer taken from ``envelope``.
            actor_user_id: Internal user acting, or None for a token holder.
            now: Time of the attempt; None skips the expiry check.

        Raises:
            SignerAlreadySignedError: Signer already signed.
            SignerAlreadyDeclinedError: Signer already declined.
            InvalidEnvelopeStateError: Envelope state does not allow signing.
            EnvelopeExpiredError: Envelope passed its expires_at.
            AccessDeniedError: Signer is a viewer.
            SigningOrderViolationError: Another signer must go first.
        """
        self.ensure_signer_pending(signer)
        if envelope.status is not EnvelopeStatus.SENT:
            if not self._is_owner_self_signing_draft(envelope, signer, actor_user_id):
                raise InvalidEnvelopeStateError(envelope.id, envelope.status, "sign")
        self._ensure_not_expired(envelope, "sign", now)
        if signer.is_viewer:
            raise AccessDeniedError(f"signer {signer.id} is a viewer and cannot sign")
        if envelope.status is EnvelopeStatus.SENT:
            waiting_for = self.blocking_signers(envelope, signer)
            if waiting_for:
                raise SigningOrderViolationError(
                    signer.id,
                    envelope.signing_order.value,
                    [s.id for s in waiting_for],
                )

    def validate_decline(
        self, envelope: Envelope, signer: Signer, now: datetime | None = None
    ) -> None:
        """Admit or reject a decline. Consent is not required.

        Raises:
            SignerAlreadySignedError: Signer already signed.
            SignerAlreadyDeclinedError: Signer already declined.
            InvalidEnvelopeStateError: Envelope is not SENT.
            EnvelopeExpiredError: Envelope passed its expires_at.
            AccessDeniedError: Signer is a viewer.
        """
        self.ensure_signer_pending(signer)
        if envelope.status is not EnvelopeStatus.SENT:
            raise InvalidEnvelopeStateError(envelope.id, envelope.status, "decline")
        self._ensure_not_expired(envelope, "decline", now)
        if signer.is_viewer:
            raise AccessDeniedError(f"signer {signer.id} is a viewer and cannot decline")

    def is_admissible(
        self,
        envelope: Envelope,
        signer: Signer,
        actor_user_id: str | None,
        now: datetime | None = None,
    ) -> bool:
        try:
            self.validate_sign(envelope, signer, actor_user_id, now)
        except (
            SignerAlreadySignedError,
            SignerAlreadyDeclinedError,
            InvalidEnvelopeStateError,
            AccessDeniedError,
            SigningOrderViolationError,
        ):
            return False
        return True

    def blocking_signers(self, envelope: Envelope, signer: Signer) -> list[Signer]:
        """Signers that must sign before ``signer`` under the order policy.

        OWNER_FIRST: invitees wait while the owner's own signer is PENDING.
        INVITEES_FIRST: the owner waits while any non-viewer invitee is PENDING.
        UNORDERED: nobody waits.
        """
        owner_signer = envelope.owner_signer()
        is_owner_signer = owner_signer is not None and owner_signer.id == signer.id
        if envelope.signing_order is SigningOrder.OWNER_FIRST:
            if (
                not is_owner_signer
                and owner_signer is not None
                and not owner_signer.is_viewer
                and owner_signer.status is SignerStatus.PENDING
            ):
                return [owner_signer]
            return []
        if envelope.signing_order is SigningOrder.INVITEES_FIRST and is_owner_signer:
            return [
                s
                for s in envelope.required_signers
                if s.id != signer.id and s.status is SignerStatus.PENDING
            ]
        return []

    @staticmethod
    def ensure_signer_pending(signer: Signer) -> None:
        """Raise already-signed or already-declined for a finished signer."""
        if signer.status is SignerStatus.SIGNED:
            raise SignerAlreadySignedError(signer.id)
        if signer.status is SignerStatus.DECLINED:
            raise SignerAlreadyDeclinedError(signer.id)

    @staticmethod
    def _ensure_not_expired(envelope: Envelope, attempted: str, now: datetime | None) -> None:
        expires_at = envelope.expires_at
        if now is not None and expires_at is not None and now >= expires_at:
            raise EnvelopeExpiredError(envelope.id, envelope.status, attempted, expires_at)

    @staticmethod
    def _is_owner_self_signing_draft(
        envelope: Envelope, signer: Signer, actor_user_id: str | None
    ) -> bool:
        return (
            envelope.status is EnvelopeStatus.DRAFT
            and not signer.is_external
            and envelope.is_owner(actor_user_id)
            and signer.user_id == actor_user_id
        )
