"""Envelope access resolution.

Decides whether the acting principal may view an envelope or act as one
of its signers, and how: as the owner, as an internal participant or as
an external token holder. Denials are logged before they are raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from signflow.application.dtos.signing import EnvelopeAccessType
from signflow.application.ports.unit_of_work import UnitOfWorkProtocol
from signflow.application.services.base import LoggingMixin
from signflow.application.services.invitation_token_service import InvitationTokenService
from signflow.domain.exceptions import AccessDeniedError
from signflow.domain.models.envelope import Envelope
from signflow.domain.models.invitation_token import InvitationToken, TokenPurpose
from signflow.domain.models.network_context import ActorContext


@dataclass(frozen=True)
class AccessGrant:
    """Resolved access of one request.

    Attributes:
        access_type: OWNER, PARTICIPANT or EXTERNAL.
        signer_id: Signer the actor acts as, if any.
        token: Invitation token presented, for EXTERNAL access.
    """

    access_type: EnvelopeAccessType
    signer_id: str | None = None
    token: InvitationToken | None = None


class EnvelopeAccessService(LoggingMixin):
    """Resolves owner, participant and token-holder access."""

    def __init__(self, tokens: InvitationTokenService) -> None:
        self._tokens = tokens
        self._init_logger(component="access")

    def _deny(self, operation: str, envelope_id: str, reason: str, **context: object) -> AccessDeniedError:
        log = self._log_operation(operation, envelope_id=envelope_id, **context)
        return self._access_denied(log, reason)

    def require_owner(self, envelope: Envelope, actor: ActorContext, operation: str) -> None:
        """Raise AccessDeniedError unless the actor owns the envelope."""
        if not envelope.is_owner(actor.user_id):
            raise self._deny(
                operation,
                envelope.id,
                "only the envelope owner can perform this operation",
                actor=actor.audit_identity,
            )

    async def resolve_view_access(
        self,
        uow: UnitOfWorkProtocol,
        envelope: Envelope,
        actor: ActorContext,
        invitation_token: str | None = None,
        now: datetime | None = None,
    ) -> AccessGrant:
        """Resolve read access to an envelope.

        A token holder may view with a used token but never with an expired
        or revoked one.

        Raises:
            AccessDeniedError: If the actor has no relation to the envelope.
            InvitationTokenNotFoundError: If the token is unknown.
            InvitationTokenExpiredError: If the token expired.
            InvitationTokenRevokedError: If the token was revoked.
        """
        if actor.is_authenticated:
            if envelope.is_owner(actor.user_id):
                owner_signer = envelope.owner_signer()
                return AccessGrant(
                    EnvelopeAccessType.OWNER,
                    signer_id=owner_signer.id if owner_signer else None,
                )
            signer = envelope.find_signer_by_user(actor.user_id or "")
            if signer is not None:
                return AccessGrant(EnvelopeAccessType.PARTICIPANT, signer_id=signer.id)
        if invitation_token:
            token = await self._tokens.resolve(uow, invitation_token, envelope.id)
            token.validate_for_viewing(now)
            envelope.get_signer(token.signer_id)
            return AccessGrant(EnvelopeAccessType.EXTERNAL, signer_id=token.signer_id, token=token)
        raise self._deny(
            "resolve_view_access",
            envelope.id,
            "actor has no access to this envelope",
            actor=actor.audit_identity,
        )

    async def resolve_signer_access(
        self,
        uow: UnitOfWorkProtocol,
        envelope: Envelope,
        signer_id: str,
        actor: ActorContext,
        invitation_token: str | None = None,
        now: datetime | None = None,
    ) -> AccessGrant:
        """Resolve the right to sign or decline as ``signer_id``.

        Token checks run null, expiry, used, revoked in that order.

        Raises:
            SignerNotFoundError: If the signer is not on the envelope.
            AccessDeniedError: If the actor may not act as the signer.
            InvitationTokenNotFoundError: If the token is unknown.
            InvitationTokenExpiredError: If the token expired.
            InvitationTokenAlreadyUsedError: If the token was used.
            InvitationTokenRevokedError: If the token was revoked.
        """
        signer = envelope.get_signer(signer_id)
        if invitation_token is not None:
            token = await self._tokens.resolve(uow, invitation_token, envelope.id, signer_id)
            if not signer.is_external:
                raise self._deny(
                    "resolve_signer_access",
                    envelope.id,
                    "only external signers can act with an invitation token",
                    signer_id=signer_id,
                )
            if token.purpose is not TokenPurpose.SIGNER:
                raise self._deny(
                    "resolve_signer_access",
                    envelope.id,
                    "a viewer token cannot be used to sign",
                    signer_id=signer_id,
                    token_id=token.id,
                )
            token.validate_for_signing(now)
            return AccessGrant(EnvelopeAccessType.EXTERNAL, signer_id=signer_id, token=token)
        if not actor.is_authenticated:
            raise self._deny(
                "resolve_signer_access",
                envelope.id,
                "an authenticated session or invitation token is required",
                signer_id=signer_id,
            )
        if signer.user_id != actor.user_id:
            raise self._deny(
                "resolve_signer_access",
                envelope.id,
                "actor is not this signer",
                signer_id=signer_id,
                actor=actor.audit_identity,
            )
        access_type = (
            EnvelopeAccessType.OWNER
            if envelope.is_owner(actor.user_id)
            else EnvelopeAccessType.PARTICIPANT
        )
        return AccessGrant(access_type, signer_id=signer_id)
