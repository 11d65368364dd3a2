"""Invitation token service.

Issues tokens for external participants and resolves presented secrets
back to tokens. Raw secrets are never logged; only token ids are.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from uuid6 import uuid7

from signflow.application.ports.metrics_collector import WorkflowMetricsProtocol
from signflow.application.ports.unit_of_work import UnitOfWorkProtocol
from signflow.application.services.base import LoggingMixin
from signflow.config.signing_config import SigningConfig
from signflow.domain.errors.invitation import InvitationTokenNotFoundError
from signflow.domain.models.envelope import Envelope
from signflow.domain.models.invitation_token import (
    InvitationToken,
    TokenPurpose,
    hash_token_secret,
)
from signflow.domain.models.network_context import NetworkContext
from signflow.domain.models.signer import Signer


class InvitationTokenService(LoggingMixin):
    """Issues and resolves invitation tokens."""

    def __init__(
        self,
        config: SigningConfig,
        metrics: WorkflowMetricsProtocol | None = None,
    ) -> None:
        self._config = config
        self._metrics = metrics
        self._init_logger(component="invitation")

    def default_expiry(self, purpose: TokenPurpose, now: datetime) -> datetime:
        days = (
            self._config.invitation_ttl_days
            if purpose is TokenPurpose.SIGNER
            else self._config.viewer_ttl_days
        )
        return now + timedelta(days=days)

    async def issue(
        self,
        uow: UnitOfWorkProtocol,
        envelope: Envelope,
        signer: Signer,
        requested_by: str,
        purpose: TokenPurpose,
        expires_at: datetime | None = None,
        network: NetworkContext | None = None,
        now: datetime | None = None,
    ) -> tuple[InvitationToken, str]:
        """Issue a token for an external participant and stage it.

        Args:
            uow: Unit of work holding the envelope.
            envelope: Envelope the token grants access to.
            signer: External participant to bind the token to.
            requested_by: User requesting the token.
            purpose: SIGNER or VIEWER.
            expires_at: Requested expiry; defaults by purpose.
            network: Network context of the request.
            now: Issuance time.

        Returns:
            Tuple of (staged token, raw secret).

        Raises:
            AccessDeniedError: If the requester is not the participant's
                inviter or the participant is not external.
            InvalidTokenExpiryError: If the expiry is not in the future or
                exceeds the one-year cap.
        """
        now = now or datetime.now(timezone.utc)
        log = self._log_operation(
            "issue", envelope_id=envelope.id, signer_id=signer.id, purpose=purpose.value
        )
        if not signer.is_external:
            raise self._access_denied(
                log, "signer_not_external", f"signer {signer.id} is not an external participant"
            )
        if requested_by != signer.invited_by_user_id:
            raise self._access_denied(
                log,
                "requester_not_inviter",
                f"only the user who invited signer {signer.id} can issue its token",
            )
        token, secret = InvitationToken.issue(
            token_id=str(uuid7()),
            envelope_id=envelope.id,
            signer_id=signer.id,
            purpose=purpose,
            created_by=requested_by,
            expires_at=expires_at or self.default_expiry(purpose, now),
            network=network,
            now=now,
            max_ttl_days=self._config.max_token_ttl_days,
        )
        token = token.mark_sent(now)
        await uow.tokens.save(token)
        if self._metrics is not None:
            self._metrics.record_token_issued(purpose.value.lower())
        log.info("token_issued", token_id=token.id, expires_at=token.expires_at.isoformat())
        return token, secret

    async def resolve(
        self,
        uow: UnitOfWorkProtocol,
        secret: str | None,
        envelope_id: str,
        signer_id: str | None = None,
    ) -> InvitationToken:
        """Look up a presented secret and check its binding.

        Validity (expiry, used, revoked) is left to the caller because the
        order of those checks depends on the use.

        Args:
            uow: Unit of work.
            secret: Raw token secret as presented.
            envelope_id: Envelope the caller is acting on.
            signer_id: Signer the caller claims to be, if any.

        Returns:
            The matching token.

        Raises:
            InvitationTokenNotFoundError: If the secret is empty or unknown.
            AccessDeniedError: If the token belongs to another envelope or signer.
        """
        log = self._log_operation("resolve", envelope_id=envelope_id, signer_id=signer_id)
        if not secret:
            raise InvitationTokenNotFoundError()
        token = await uow.tokens.get_by_hash(hash_token_secret(secret))
        if token is None:
            log.warning("invitation_token_not_found")
            raise InvitationTokenNotFoundError()
        if token.envelope_id != envelope_id:
            raise self._access_denied(
                log,
                "token_envelope_mismatch",
                "invitation token does not belong to this envelope",
                token_id=token.id,
            )
        if signer_id is not None and token.signer_id != signer_id:
            raise self._access_denied(
                log,
                "token_signer_mismatch",
                "invitation token does not belong to this signer",
                token_id=token.id,
            )
        return token

    async def active_signer_token(
        self,
        uow: UnitOfWorkProtocol,
        envelope_id: str,
        signer_id: str,
        now: datetime | None = None,
    ) -> InvitationToken | None:
        """Latest SIGNER token of a signer that is still usable."""
        tokens = await uow.tokens.list_for_signer(envelope_id, signer_id)
        for token in reversed(tokens):
            if token.purpose is TokenPurpose.SIGNER and token.is_active(now):
                return token
        return None
