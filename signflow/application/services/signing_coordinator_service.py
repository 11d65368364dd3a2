"""Signing coordinator service.

Orchestrates the multi-party signing workflow: envelope creation and
editing, sending with invitation tokens, signing, declining, cancelling,
reminders and the read side (envelope views, document downloads, listings,
audit trail).

Every mutation runs inside one unit of work that holds the envelope
exclusively, so envelope, signer, token, consent, audit and outbox writes
commit together or not at all. Outbox records staged by an operation are
handed to the publisher after commit on a best-effort basis; failures on
that path are logged and swallowed because the committed envelope state is
the source of truth.

sign_document runs in two transactions around the signing oracle call:

1. Access, flow rule and consent are validated and the Consent record is
   committed.
2. The document is read and hashed, the oracle signs the hash and the
   signed output is stored. No lock is held during these calls.
3. The envelope is re-loaded, the flow rule re-checked against the fresh
   state, the signer marked SIGNED with its evidence, the token consumed,
   the consent linked and, if this was the last signer, the envelope
   completed. A racing signer fails here with an already-signed error.

A failure in step 2 leaves the signer PENDING with consent recorded, which
is safe to retry.
"""

from __future__ import annotations

import base64
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

from uuid6 import uuid7

from signflow.application.dtos.signing import (
    AuditTrailPage,
    CancelEnvelopeCommand,
    CreateEnvelopeCommand,
    DeclineSignerCommand,
    DocumentDownload,
    EnvelopeAccessType,
    EnvelopePage,
    EnvelopeView,
    IssuedInvitation,
    ListEnvelopesQuery,
    RevokeInvitationCommand,
    SendEnvelopeCommand,
    SendEnvelopeResult,
    SendRemindersCommand,
    SendRemindersResult,
    ShareDocumentViewCommand,
    SignDocumentCommand,
    SignDocumentResult,
    SignerSpec,
    SkippedReminder,
    UpdateEnvelopeCommand,
)
from signflow.application.observability.correlation import get_correlation_id
from signflow.application.ports.document_storage import DocumentStoragePort
from signflow.application.ports.metrics_collector import WorkflowMetricsProtocol
from signflow.application.ports.signing_oracle import SigningOraclePort
from signflow.application.ports.unit_of_work import (
    UnitOfWorkFactoryProtocol,
    UnitOfWorkProtocol,
)
from signflow.application.services.audit_trail_service import AuditTrailService
from signflow.application.services.base import LoggingMixin
from signflow.application.services.envelope_access_service import EnvelopeAccessService
from signflow.application.services.invitation_token_service import InvitationTokenService
from signflow.application.services.outbox_publisher_service import OutboxPublisherService
from signflow.config.signing_config import MAX_DOWNLOAD_TTL_SECONDS, SigningConfig
from signflow.domain.errors.envelope import (
    DocumentNotFoundError,
    DocumentNotReadyError,
    EnvelopeNotFoundError,
    InvalidEnvelopeStateError,
)
from signflow.domain.errors.invitation import InvitationTokenNotFoundError
from signflow.domain.errors.upstream import UpstreamServiceError
from signflow.domain.events.audit_event import AuditEventType
from signflow.domain.events.hash_utils import sha256_hex
from signflow.domain.events.integration_event import IntegrationEventType, OutboxRecord
from signflow.domain.exceptions import ValidationError
from signflow.domain.models.consent import Consent
from signflow.domain.models.envelope import Envelope, EnvelopeStatus
from signflow.domain.models.invitation_token import InvitationToken, TokenPurpose
from signflow.domain.models.network_context import ActorContext
from signflow.domain.models.page_cursor import EnvelopeCursor
from signflow.domain.models.reminder_tracking import (
    ReminderSkipReason,
    SignerReminderTracking,
)
from signflow.domain.models.signer import (
    ExternalParticipant,
    InternalParticipant,
    Participant,
    SignatureEvidence,
    Signer,
)
from signflow.domain.services.signing_flow_rule import SigningFlowRule


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class SigningCoordinatorService(LoggingMixin):
    """Orchestrates envelopes, signers, tokens, audit and outbox.

    Collaborators are injected as narrow ports. The token, access and audit
    services are built from the same ports when not given.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactoryProtocol,
        storage: DocumentStoragePort,
        oracle: SigningOraclePort,
        config: SigningConfig,
        outbox_publisher: OutboxPublisherService | None = None,
        metrics: WorkflowMetricsProtocol | None = None,
        flow_rule: SigningFlowRule | None = None,
        tokens: InvitationTokenService | None = None,
        access: EnvelopeAccessService | None = None,
        audit: AuditTrailService | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            uow_factory: Opens units of work over the persistence layer.
            storage: Object storage for document bytes.
            oracle: External signing service.
            config: Signing configuration.
            outbox_publisher: Publisher for post-commit dispatch, or None to
                leave dispatch to the worker.
            metrics: Optional metrics collector.
            flow_rule: Signing-flow rule.
            tokens: Invitation token service.
            access: Envelope access service.
            audit: Audit trail service.
            clock: Time source, defaults to UTC now.
        """
        self._uow_factory = uow_factory
        self._storage = storage
        self._oracle = oracle
        self._config = config
        self._publisher = outbox_publisher
        self._metrics = metrics
        self._flow_rule = flow_rule or SigningFlowRule()
        self._tokens = tokens or InvitationTokenService(config, metrics)
        self._access = access or EnvelopeAccessService(self._tokens)
        self._audit = audit or AuditTrailService(uow_factory)
        self._clock = clock or _utc_now
        self._init_logger(component="signing")

    # ------------------------------------------------------------------
    # Envelope editing
    # ------------------------------------------------------------------

    async def create_envelope(
        self, command: CreateEnvelopeCommand, actor: ActorContext
    ) -> Envelope:
        """Create a DRAFT envelope owned by the actor, with no signers.

        Raises:
            AccessDeniedError: If the actor is not an authenticated user.
            InvalidEnvelopeDataError: If the metadata or the deadline is invalid.
        """
        if not actor.is_authenticated:
            raise self._access_denied(
                self._log_operation("create_envelope", actor=actor.audit_identity),
                "unauthenticated",
                "creating an envelope requires an authenticated user",
            )
        now = self._clock()
        envelope = Envelope(
            id=str(uuid7()),
            owner_id=actor.user_id or "",
            title=command.title,
            source_key=command.source_key,
            description=command.description,
            origin=command.origin,
            template_id=command.template_id,
            template_version=command.template_version,
            signing_order=command.signing_order,
            source_hash=command.source_hash,
            expires_at=command.expires_at,
            created_at=now,
        )
        envelope.validate_expiry(now, self._config.max_envelope_ttl_days)
        log = self._log_operation("create_envelope", envelope_id=envelope.id)
        async with self._uow_factory.begin(envelope.id) as uow:
            await uow.envelopes.add(envelope)
            await self._audit.record(
                uow,
                envelope.id,
                AuditEventType.ENVELOPE_CREATED,
                f"Envelope '{envelope.title}' created",
                actor,
                metadata={
                    "origin": envelope.origin.value,
                    "signing_order": envelope.signing_order.value,
                    "source_key": envelope.source_key,
                    "expires_at": (
                        envelope.expires_at.isoformat() if envelope.expires_at else None
                    ),
                },
                occurred_at=now,
            )
        self._record_transition(envelope.status)
        log.info("envelope_created", owner_id=envelope.owner_id)
        return envelope

    async def update_envelope(
        self, command: UpdateEnvelopeCommand, actor: ActorContext
    ) -> Envelope:
        """Update metadata and participants of a DRAFT envelope.

        Removals are applied before additions so a participant can be
        replaced in one call.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            AccessDeniedError: If the actor is not the owner.
            ImmutableFieldError: If an immutable field is in the changes.
            InvalidEnvelopeDataError: If a changed value is invalid.
            InvalidEnvelopeStateError: If the envelope is not DRAFT.
            DuplicateSignerError: If an added participant is already present.
        """
        log = self._log_operation("update_envelope", envelope_id=command.envelope_id)
        now = self._clock()
        async with self._uow_factory.begin(command.envelope_id) as uow:
            envelope = await self._load(uow, command.envelope_id)
            self._access.require_owner(envelope, actor, "update_envelope")
            envelope = envelope.update(command.changes, now)
            if "expires_at" in command.changes:
                envelope.validate_expiry(now, self._config.max_envelope_ttl_days)
            if command.changes:
                await self._audit.record(
                    uow,
                    envelope.id,
                    AuditEventType.ENVELOPE_UPDATED,
                    "Envelope details updated",
                    actor,
                    metadata={"fields": sorted(command.changes)},
                    occurred_at=now,
                )
            for signer_id in command.remove_signer_ids:
                envelope = envelope.remove_signer(signer_id, now)
                await self._audit.record(
                    uow,
                    envelope.id,
                    AuditEventType.SIGNER_REMOVED,
                    "Participant removed",
                    actor,
                    signer_id=signer_id,
                    occurred_at=now,
                )
            for spec in command.add_signers:
                signer = self._build_signer(envelope, spec, actor)
                envelope = envelope.add_signer(signer, now)
                await self._audit.record(
                    uow,
                    envelope.id,
                    AuditEventType.SIGNER_ADDED,
                    "Participant added",
                    actor,
                    signer_id=signer.id,
                    metadata={
                        "role": signer.role.value,
                        "order": signer.order,
                        "is_external": signer.is_external,
                    },
                    occurred_at=now,
                )
            await uow.envelopes.save(envelope)
        log.info(
            "envelope_updated",
            fields=sorted(command.changes),
            added=len(command.add_signers),
            removed=len(command.remove_signer_ids),
        )
        return envelope

    def _build_signer(
        self, envelope: Envelope, spec: SignerSpec, actor: ActorContext
    ) -> Signer:
        if (spec.user_id is None) == (spec.email is None):
            raise ValidationError("A participant needs exactly one of user_id or email")
        participant: Participant
        if spec.user_id is not None:
            participant = InternalParticipant(user_id=spec.user_id)
        else:
            participant = ExternalParticipant(email=spec.email or "", name=spec.name or "")
        order = spec.order
        if order is None:
            order = max((s.order for s in envelope.signers), default=0) + 1
        return Signer(
            id=str(uuid7()),
            envelope_id=envelope.id,
            participant=participant,
            invited_by_user_id=actor.user_id or "",
            role=spec.role,
            order=order,
        )

    # ------------------------------------------------------------------
    # Sending and sharing
    # ------------------------------------------------------------------

    async def send_envelope(
        self, command: SendEnvelopeCommand, actor: ActorContext
    ) -> SendEnvelopeResult:
        """Send a DRAFT envelope and invite its external participants.

        One token and one invitation event are staged per selected external
        participant. Viewer-role participants get a VIEWER token. If the
        owner already signed everything before sending, the envelope
        completes immediately.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            AccessDeniedError: If the actor is not the owner, or a selected
                signer is not external.
            InvalidEnvelopeStateError: If not DRAFT or without signers.
            SignerNotFoundError: If a selected signer is not on the envelope.
            InvalidTokenExpiryError: If the requested expiry is invalid.
        """
        log = self._log_operation("send_envelope", envelope_id=command.envelope_id)
        now = self._clock()
        invitations: list[IssuedInvitation] = []
        staged: list[str] = []
        async with self._uow_factory.begin(command.envelope_id) as uow:
            envelope = await self._load(uow, command.envelope_id)
            self._access.require_owner(envelope, actor, "send_envelope")
            envelope = envelope.send(now)
            await self._audit.record(
                uow,
                envelope.id,
                AuditEventType.ENVELOPE_SENT,
                "Envelope sent for signature",
                actor,
                metadata={"signer_count": len(envelope.signers)},
                occurred_at=now,
            )
            if command.signer_ids is None:
                targets = list(envelope.external_signers)
            else:
                targets = [envelope.get_signer(signer_id) for signer_id in command.signer_ids]
            for signer in targets:
                purpose = TokenPurpose.VIEWER if signer.is_viewer else TokenPurpose.SIGNER
                token, secret = await self._tokens.issue(
                    uow,
                    envelope,
                    signer,
                    requested_by=actor.user_id or "",
                    purpose=purpose,
                    expires_at=command.expires_at,
                    network=actor.network,
                    now=now,
                )
                await self._audit.record(
                    uow,
                    envelope.id,
                    AuditEventType.INVITATION_ISSUED,
                    f"Invitation issued to {signer.email}",
                    actor,
                    signer_id=signer.id,
                    metadata={
                        "token_id": token.id,
                        "purpose": purpose.value,
                        "expires_at": token.expires_at.isoformat(),
                    },
                    occurred_at=now,
                )
                staged.append(
                    await self._stage(
                        uow,
                        IntegrationEventType.ENVELOPE_INVITATION,
                        envelope,
                        self._invitation_payload(envelope, signer, token, secret, command.message),
                        now,
                    )
                )
                invitations.append(
                    IssuedInvitation(
                        signer_id=signer.id,
                        token_id=token.id,
                        token=secret,
                        expires_at=token.expires_at,
                    )
                )
            self._record_transition(envelope.status)
            if envelope.all_required_signed():
                envelope, record_id = await self._complete(uow, envelope, actor, now)
                staged.append(record_id)
            await uow.envelopes.save(envelope)
        log.info("envelope_sent", invitation_count=len(invitations), status=envelope.status.value)
        await self._dispatch_after_commit(staged, log)
        return SendEnvelopeResult(envelope=envelope, invitations=invitations)

    async def share_document_view(
        self, command: ShareDocumentViewCommand, actor: ActorContext
    ) -> IssuedInvitation:
        """Issue a read-only VIEWER token to an existing external participant.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            InvalidEnvelopeStateError: If the envelope is DRAFT or CANCELLED.
            SignerNotFoundError: If the participant is not on the envelope.
            AccessDeniedError: If the actor did not invite the participant or
                the participant is not external.
            InvalidTokenExpiryError: If the expiry is not 1-365 days out.
        """
        log = self._log_operation(
            "share_document_view", envelope_id=command.envelope_id, signer_id=command.signer_id
        )
        now = self._clock()
        async with self._uow_factory.begin(command.envelope_id) as uow:
            envelope = await self._load(uow, command.envelope_id)
            if envelope.status in (EnvelopeStatus.DRAFT, EnvelopeStatus.CANCELLED):
                raise InvalidEnvelopeStateError(
                    envelope.id, envelope.status, "share_document_view"
                )
            signer = envelope.get_signer(command.signer_id)
            days = command.expires_in_days
            if days is None:
                days = self._config.viewer_ttl_days
            token, secret = await self._tokens.issue(
                uow,
                envelope,
                signer,
                requested_by=actor.user_id or "",
                purpose=TokenPurpose.VIEWER,
                expires_at=now + timedelta(days=days),
                network=actor.network,
                now=now,
            )
            await self._audit.record(
                uow,
                envelope.id,
                AuditEventType.VIEWER_INVITED,
                f"Read-only access shared with {signer.email}",
                actor,
                signer_id=signer.id,
                metadata={"token_id": token.id, "expires_at": token.expires_at.isoformat()},
                occurred_at=now,
            )
            record_id = await self._stage(
                uow,
                IntegrationEventType.ENVELOPE_VIEWER_INVITATION,
                envelope,
                self._invitation_payload(envelope, signer, token, secret, command.message),
                now,
            )
        log.info("viewer_invited", token_id=token.id)
        await self._dispatch_after_commit([record_id], log)
        return IssuedInvitation(
            signer_id=signer.id, token_id=token.id, token=secret, expires_at=token.expires_at
        )

    async def revoke_invitation(
        self, command: RevokeInvitationCommand, actor: ActorContext
    ) -> InvitationToken:
        """Revoke an invitation token of the envelope.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            AccessDeniedError: If the actor is not the owner.
            InvitationTokenNotFoundError: If the token is not on the envelope.
            InvitationTokenRevokedError: If the token is already revoked.
        """
        log = self._log_operation(
            "revoke_invitation", envelope_id=command.envelope_id, token_id=command.token_id
        )
        now = self._clock()
        async with self._uow_factory.begin(command.envelope_id) as uow:
            envelope = await self._load(uow, command.envelope_id)
            self._access.require_owner(envelope, actor, "revoke_invitation")
            token = await uow.tokens.get(command.token_id)
            if token is None or token.envelope_id != envelope.id:
                raise InvitationTokenNotFoundError(command.token_id)
            token = token.revoke(command.reason, now)
            await uow.tokens.save(token)
            await self._audit.record(
                uow,
                envelope.id,
                AuditEventType.INVITATION_REVOKED,
                "Invitation revoked",
                actor,
                signer_id=token.signer_id,
                metadata={"token_id": token.id, "reason": command.reason},
                occurred_at=now,
            )
        log.info("invitation_revoked")
        return token

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    async def sign_document(
        self, command: SignDocumentCommand, actor: ActorContext
    ) -> SignDocumentResult:
        """Sign the envelope's document as one signer.

        Args:
            command: Signer, consent and document details.
            actor: Internal user session, or an external actor presenting
                ``command.invitation_token``.

        Returns:
            The updated envelope with the evidence hashes.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            SignerNotFoundError: If the signer is not on the envelope.
            AccessDeniedError: If the actor may not act as the signer.
            InvitationTokenError: If the token is expired, used or revoked.
            SignerAlreadySignedError: If the signer already signed.
            SignerAlreadyDeclinedError: If the signer already declined.
            InvalidEnvelopeStateError: If the envelope does not allow signing.
            EnvelopeExpiredError: If the envelope passed its deadline.
            SigningOrderViolationError: If another signer must sign first.
            ConsentNotGivenError: If the consent payload is incomplete.
            DocumentNotReadyError: If a flattened document is required and
                none exists yet.
            DocumentNotFoundError: If the document to sign is missing.
            UpstreamServiceError: If storage or the signing oracle fails.
        """
        envelope_id = command.envelope_id
        signer_id = command.signer_id
        log = self._log_operation("sign_document", envelope_id=envelope_id, signer_id=signer_id)
        network = replace(actor.network, reason=command.reason, location=command.location)
        now = self._clock()
        log.info("sign_started")

        async with self._uow_factory.begin(envelope_id) as uow:
            envelope = await self._load(uow, envelope_id)
            # Signer state is reported ahead of token state
            self._flow_rule.ensure_signer_pending(envelope.get_signer(signer_id))
            grant = await self._access.resolve_signer_access(
                uow, envelope, signer_id, actor, command.invitation_token, now
            )
            signer = envelope.get_signer(signer_id)
            self._flow_rule.validate_sign(envelope, signer, actor.user_id, now)
            document_key = self._signable_document_key(envelope, command.flattened_key)
            consented = signer.record_consent(
                command.consent.text, network, given=command.consent.given, now=now
            )
            consent = Consent(
                id=str(uuid7()),
                envelope_id=envelope_id,
                signer_id=signer_id,
                consent_text=consented.consent_text or "",
                network=network,
                given_at=now,
            )
            await uow.consents.save(consent)
            envelope = envelope.replace_signer(consented, now)
            await uow.envelopes.save(envelope)
            await self._audit.record(
                uow,
                envelope_id,
                AuditEventType.CONSENT_GIVEN,
                "Signer consented to sign electronically",
                actor,
                signer_id=signer_id,
                metadata={"consent_id": consent.id, "access_type": grant.access_type.value},
                occurred_at=now,
            )
        log.debug("consent_recorded", consent_id=consent.id)

        try:
            document = await self._read_document("sign_document", envelope_id, document_key)
        except UpstreamServiceError:
            self._record_signature_outcome("upstream_error")
            raise
        document_hash = sha256_hex(document)
        try:
            result = await self._oracle.sign(
                document_hash, self._config.signing_key_id, self._config.signing_algorithm
            )
        except Exception as e:
            self._record_signature_outcome("upstream_error")
            log.error("signing_oracle_failed", error=str(e), error_type=type(e).__name__)
            raise UpstreamServiceError("sign_document", "signing_oracle", envelope_id, e) from e
        signature_hash = sha256_hex(result.signature)
        signed_bytes = command.signed_document or document
        signed_key = f"envelopes/{envelope_id}/signed/{signer_id}.pdf"
        try:
            await self._storage.put_bytes(signed_key, signed_bytes)
        except Exception as e:
            self._record_signature_outcome("upstream_error")
            log.error("signed_document_store_failed", error=str(e), error_type=type(e).__name__)
            raise UpstreamServiceError("sign_document", "store_signed_document", envelope_id, e) from e
        signed_hash = sha256_hex(signed_bytes)

        staged: list[str] = []
        now = self._clock()
        async with self._uow_factory.begin(envelope_id) as uow:
            envelope = await self._load(uow, envelope_id)
            signer = envelope.get_signer(signer_id)
            self._flow_rule.validate_sign(envelope, signer, actor.user_id, now)
            if grant.token is not None:
                token = await uow.tokens.get(grant.token.id)
                if token is None:
                    raise InvitationTokenNotFoundError(grant.token.id)
                await uow.tokens.save(token.mark_used(network, now))
            evidence = SignatureEvidence(
                document_hash=document_hash,
                signature_hash=signature_hash,
                signature=base64.b64encode(result.signature).decode("ascii"),
                signed_key=signed_key,
                key_id=result.key_id,
                algorithm=result.algorithm,
                signed_at=result.signed_at,
                network=network,
                consent_id=consent.id,
            )
            signed = signer.sign(evidence)
            envelope = envelope.record_signature(
                signed,
                flattened_hash=document_hash,
                signed_key=signed_key,
                signed_hash=signed_hash,
                now=now,
            )
            stored_consent = await uow.consents.get(consent.id) or consent
            await uow.consents.save(stored_consent.link_signature(signature_hash))
            await self._audit.record(
                uow,
                envelope_id,
                AuditEventType.SIGNER_SIGNED,
                "Signer signed the document",
                actor,
                signer_id=signer_id,
                metadata={
                    "document_hash": document_hash,
                    "signature_hash": signature_hash,
                    "signed_hash": signed_hash,
                    "signed_key": signed_key,
                    "key_id": result.key_id,
                    "algorithm": result.algorithm,
                    "signed_at": result.signed_at.isoformat(),
                    "consent_id": consent.id,
                    "access_type": grant.access_type.value,
                },
                occurred_at=now,
            )
            staged.append(
                await self._stage(
                    uow,
                    IntegrationEventType.SIGNER_SIGNED,
                    envelope,
                    {
                        "signer_id": signer_id,
                        "email": signed.email,
                        "user_id": signed.user_id,
                        "document_hash": document_hash,
                        "signature_hash": signature_hash,
                        "signed_at": result.signed_at.isoformat(),
                    },
                    now,
                )
            )
            completed = False
            if envelope.status is EnvelopeStatus.SENT and envelope.all_required_signed():
                envelope, record_id = await self._complete(uow, envelope, actor, now)
                staged.append(record_id)
                completed = True
            await uow.envelopes.save(envelope)

        self._record_signature_outcome("signed")
        log.info(
            "signer_signed",
            document_hash=document_hash,
            signature_hash=signature_hash,
            key_id=result.key_id,
            envelope_completed=completed,
        )
        await self._dispatch_after_commit(staged, log)
        return SignDocumentResult(
            envelope=envelope,
            signer_id=signer_id,
            consent_id=consent.id,
            document_hash=document_hash,
            signature_hash=signature_hash,
            envelope_completed=completed,
        )

    def _signable_document_key(self, envelope: Envelope, flattened_key: str | None) -> str:
        """Pick the document a signature applies to.

        A key passed with the command wins. Otherwise the latest signed
        output comes before the stored flattened document, so each signer
        signs on top of the previous signatures. Without any of these the
        source document is signed unless the config requires flattening.
        """
        key = flattened_key or envelope.signed_key or envelope.flattened_key
        if key:
            return key
        if self._config.require_flattened_document:
            raise DocumentNotReadyError(envelope.id)
        return envelope.source_key

    async def _read_document(self, operation: str, envelope_id: str, key: str) -> bytes:
        log = self._log_operation(operation, envelope_id=envelope_id)
        try:
            found = await self._storage.exists(key)
            data = await self._storage.get_bytes(key) if found else None
        except Exception as e:
            log.error("document_fetch_failed", error=str(e), error_type=type(e).__name__)
            raise UpstreamServiceError(operation, "document_fetch", envelope_id, e) from e
        if data is None:
            raise DocumentNotFoundError(envelope_id, key)
        return data

    async def decline_signer(
        self, command: DeclineSignerCommand, actor: ActorContext
    ) -> Envelope:
        """Decline as one signer, which declines the whole envelope.

        Consent is not required. A presented SIGNER token is consumed.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            SignerNotFoundError: If the signer is not on the envelope.
            AccessDeniedError: If the actor may not act as the signer.
            InvitationTokenError: If the token is expired, used or revoked.
            SignerAlreadySignedError: If the signer already signed.
            SignerAlreadyDeclinedError: If the signer already declined.
            InvalidEnvelopeStateError: If the envelope is not SENT.
            EnvelopeExpiredError: If the envelope passed its deadline.
            ValidationError: If the reason is empty or too long.
        """
        log = self._log_operation(
            "decline_signer", envelope_id=command.envelope_id, signer_id=command.signer_id
        )
        now = self._clock()
        async with self._uow_factory.begin(command.envelope_id) as uow:
            envelope = await self._load(uow, command.envelope_id)
            self._flow_rule.ensure_signer_pending(envelope.get_signer(command.signer_id))
            grant = await self._access.resolve_signer_access(
                uow, envelope, command.signer_id, actor, command.invitation_token, now
            )
            signer = envelope.get_signer(command.signer_id)
            self._flow_rule.validate_decline(envelope, signer, now)
            declined = signer.decline(command.reason, now)
            envelope = envelope.replace_signer(declined, now).decline(
                declined.id, declined.decline_reason or "", now
            )
            if grant.token is not None:
                await uow.tokens.save(grant.token.mark_used(actor.network, now))
            await self._audit.record(
                uow,
                envelope.id,
                AuditEventType.SIGNER_DECLINED,
                "Signer declined to sign",
                actor,
                signer_id=declined.id,
                metadata={"reason": declined.decline_reason},
                occurred_at=now,
            )
            await self._audit.record(
                uow,
                envelope.id,
                AuditEventType.ENVELOPE_DECLINED,
                "Envelope declined",
                actor,
                signer_id=declined.id,
                occurred_at=now,
            )
            record_id = await self._stage(
                uow,
                IntegrationEventType.SIGNER_DECLINED,
                envelope,
                {
                    "signer_id": declined.id,
                    "email": declined.email,
                    "user_id": declined.user_id,
                    "owner_id": envelope.owner_id,
                    "reason": declined.decline_reason,
                },
                now,
            )
            await uow.envelopes.save(envelope)
        self._record_signature_outcome("declined")
        self._record_transition(envelope.status)
        log.info("signer_declined")
        await self._dispatch_after_commit([record_id], log)
        return envelope

    async def cancel_envelope(
        self, command: CancelEnvelopeCommand, actor: ActorContext
    ) -> Envelope:
        """Cancel a DRAFT or SENT envelope. Owner only.

        Outstanding tokens are left as they are; the envelope state already
        blocks any further signing.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            AccessDeniedError: If the actor is not the owner.
            InvalidEnvelopeStateError: If the envelope is already terminal.
        """
        log = self._log_operation("cancel_envelope", envelope_id=command.envelope_id)
        now = self._clock()
        async with self._uow_factory.begin(command.envelope_id) as uow:
            envelope = await self._load(uow, command.envelope_id)
            self._access.require_owner(envelope, actor, "cancel_envelope")
            previous_status = envelope.status
            envelope = envelope.cancel(actor.user_id or "", now)
            await self._audit.record(
                uow,
                envelope.id,
                AuditEventType.ENVELOPE_CANCELLED,
                "Envelope cancelled by owner",
                actor,
                metadata={"reason": command.reason, "previous_status": previous_status.value},
                occurred_at=now,
            )
            record_id = await self._stage(
                uow,
                IntegrationEventType.ENVELOPE_CANCELLED,
                envelope,
                {
                    "owner_id": envelope.owner_id,
                    "reason": command.reason,
                    "pending_signer_ids": [
                        s.id for s in envelope.required_signers if s.is_pending
                    ],
                },
                now,
            )
            await uow.envelopes.save(envelope)
        self._record_transition(envelope.status)
        log.info("envelope_cancelled", previous_status=previous_status.value)
        await self._dispatch_after_commit([record_id], log)
        return envelope

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def send_reminders(
        self, command: SendRemindersCommand, actor: ActorContext
    ) -> SendRemindersResult:
        """Remind pending signers of a SENT envelope.

        Each signer passes three gates in order: it must still be PENDING,
        it must hold an active SIGNER token, and the reminder policy (count
        limit, then minimum interval) must allow another reminder. Signers
        that fail a gate are reported as skipped; the batch never fails on
        their account.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            AccessDeniedError: If the actor is not the owner.
            InvalidEnvelopeStateError: If the envelope is not SENT.
            SignerNotFoundError: If a listed signer is not on the envelope.
        """
        log = self._log_operation("send_reminders", envelope_id=command.envelope_id)
        now = self._clock()
        notified: list[str] = []
        skipped: list[SkippedReminder] = []
        staged: list[str] = []
        async with self._uow_factory.begin(command.envelope_id) as uow:
            envelope = await self._load(uow, command.envelope_id)
            self._access.require_owner(envelope, actor, "send_reminders")
            if envelope.status is not EnvelopeStatus.SENT:
                raise InvalidEnvelopeStateError(envelope.id, envelope.status, "send_reminders")
            if command.signer_ids is None:
                candidates = list(envelope.required_signers)
            else:
                candidates = [envelope.get_signer(signer_id) for signer_id in command.signer_ids]
            for signer in candidates:
                if not signer.is_pending or signer.is_viewer:
                    skipped.append(SkippedReminder(signer.id, ReminderSkipReason.NOT_PENDING))
                    continue
                token = await self._tokens.active_signer_token(uow, envelope.id, signer.id, now)
                if token is None:
                    skipped.append(SkippedReminder(signer.id, ReminderSkipReason.NO_ACTIVE_TOKEN))
                    continue
                tracking = await uow.reminders.get(envelope.id, signer.id)
                if tracking is None:
                    tracking = SignerReminderTracking(envelope_id=envelope.id, signer_id=signer.id)
                decision = tracking.check(
                    self._config.max_reminders_per_signer,
                    self._config.min_hours_between_reminders,
                    now,
                )
                if not decision.allowed:
                    skipped.append(
                        SkippedReminder(signer.id, decision.reason, decision.hours_remaining)
                    )
                    continue
                tracking = tracking.record(now, command.message)
                await uow.reminders.save(tracking)
                await uow.tokens.save(token.mark_sent(now))
                await self._audit.record(
                    uow,
                    envelope.id,
                    AuditEventType.SIGNER_REMINDER_SENT,
                    f"Reminder sent to {signer.email}",
                    actor,
                    signer_id=signer.id,
                    metadata={"reminder_count": tracking.reminder_count, "token_id": token.id},
                    occurred_at=now,
                )
                staged.append(
                    await self._stage(
                        uow,
                        IntegrationEventType.SIGNER_REMINDER,
                        envelope,
                        {
                            "signer_id": signer.id,
                            "email": signer.email,
                            "name": signer.name,
                            "title": envelope.title,
                            "token_id": token.id,
                            "expires_at": token.expires_at.isoformat(),
                            "reminder_count": tracking.reminder_count,
                            "message": tracking.last_message,
                        },
                        now,
                    )
                )
                notified.append(signer.id)
        log.info("reminders_processed", notified=len(notified), skipped=len(skipped))
        await self._dispatch_after_commit(staged, log)
        return SendRemindersResult(notified=notified, skipped=skipped)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_envelope(
        self,
        envelope_id: str,
        actor: ActorContext,
        invitation_token: str | None = None,
    ) -> EnvelopeView:
        """Load an envelope together with how the caller may see it.

        A token holder's view is counted on the token and audited as
        DOCUMENT_ACCESSED.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            AccessDeniedError: If the actor has no access.
            InvitationTokenError: If the token is expired or revoked.
        """
        now = self._clock()
        async with self._uow_factory.begin(envelope_id) as uow:
            envelope = await self._load(uow, envelope_id)
            grant = await self._access.resolve_view_access(
                uow, envelope, actor, invitation_token, now
            )
            if grant.access_type is EnvelopeAccessType.EXTERNAL and grant.token is not None:
                token = grant.token.mark_viewed(actor.network, now)
                await uow.tokens.save(token)
                await self._audit.record(
                    uow,
                    envelope.id,
                    AuditEventType.DOCUMENT_ACCESSED,
                    "Document viewed with an invitation",
                    actor,
                    signer_id=grant.signer_id,
                    metadata={
                        "token_id": token.id,
                        "purpose": token.purpose.value,
                        "view_count": token.view_count,
                    },
                    occurred_at=now,
                )
        return EnvelopeView(
            envelope=envelope, access_type=grant.access_type, signer_id=grant.signer_id
        )

    async def download_document(
        self,
        envelope_id: str,
        actor: ActorContext,
        invitation_token: str | None = None,
        expires_in_seconds: int | None = None,
    ) -> DocumentDownload:
        """Hand out the envelope's latest document.

        The latest signed output is returned when there is one, then the
        flattened document, then the source. Anyone with read access may
        download; every download is audited as DOCUMENT_DOWNLOADED. The
        storage read runs without holding the envelope.

        Args:
            envelope_id: Envelope to download from.
            actor: Owner or participant session, or a token holder.
            invitation_token: Raw token secret for external readers.
            expires_in_seconds: Lifetime of a link built from the result;
                defaults to the configured download TTL.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            AccessDeniedError: If the actor has no access.
            InvitationTokenError: If the token is expired or revoked.
            ValidationError: If ``expires_in_seconds`` is out of range.
            DocumentNotFoundError: If the document is missing from storage.
            UpstreamServiceError: If storage fails.
        """
        ttl = expires_in_seconds
        if ttl is None:
            ttl = self._config.download_ttl_seconds
        if not 1 <= ttl <= MAX_DOWNLOAD_TTL_SECONDS:
            raise ValidationError(
                f"expires_in_seconds must be between 1 and {MAX_DOWNLOAD_TTL_SECONDS}"
            )
        log = self._log_operation("download_document", envelope_id=envelope_id)
        now = self._clock()
        async with self._uow_factory.begin() as uow:
            envelope = await self._load(uow, envelope_id)
            grant = await self._access.resolve_view_access(
                uow, envelope, actor, invitation_token, now
            )
        key = envelope.signed_key or envelope.flattened_key or envelope.source_key
        content = await self._read_document("download_document", envelope_id, key)
        content_hash = sha256_hex(content)
        async with self._uow_factory.begin(envelope_id) as uow:
            await self._audit.record(
                uow,
                envelope_id,
                AuditEventType.DOCUMENT_DOWNLOADED,
                "Document downloaded",
                actor,
                signer_id=grant.signer_id,
                metadata={
                    "document_key": key,
                    "content_hash": content_hash,
                    "access_type": grant.access_type.value,
                    "token_id": grant.token.id if grant.token else None,
                },
                occurred_at=now,
            )
        log.info("document_downloaded", access_type=grant.access_type.value, document_key=key)
        return DocumentDownload(
            envelope_id=envelope_id,
            document_key=key,
            content=content,
            content_hash=content_hash,
            access_type=grant.access_type,
            expires_at=now + timedelta(seconds=ttl),
        )

    async def list_envelopes(
        self, owner_id: str, query: ListEnvelopesQuery | None = None
    ) -> EnvelopePage:
        """List an owner's envelopes newest first with keyset pagination.

        Raises:
            InvalidPaginationCursorError: If the cursor cannot be decoded.
        """
        query = query or ListEnvelopesQuery()
        limit = self._config.clamp_page_size(query.limit)
        before = EnvelopeCursor.decode(query.cursor).as_key() if query.cursor else None
        async with self._uow_factory.begin() as uow:
            items = await uow.envelopes.list_by_owner(
                owner_id, status=query.status, limit=limit + 1, before=before
            )
        next_cursor = None
        if len(items) > limit:
            items = items[:limit]
            last = items[-1]
            next_cursor = EnvelopeCursor(last.created_at, last.id).encode()
        return EnvelopePage(items=items, next_cursor=next_cursor)

    async def get_audit_trail(
        self,
        envelope_id: str,
        actor: ActorContext,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> AuditTrailPage:
        """Page through an envelope's audit trail, oldest first. Owner only.

        Raises:
            EnvelopeNotFoundError: If the envelope does not exist.
            AccessDeniedError: If the actor is not the owner.
            InvalidPaginationCursorError: If the cursor cannot be decoded.
        """
        async with self._uow_factory.begin() as uow:
            envelope = await self._load(uow, envelope_id)
            self._access.require_owner(envelope, actor, "get_audit_trail")
            return await self._audit.list_page(
                uow, envelope_id, self._config.clamp_page_size(limit), cursor
            )

    async def verify_audit_trail(self, envelope_id: str, actor: ActorContext) -> int:
        """Recompute an envelope's audit chain. Owner only.

        Returns:
            Number of events verified.

        Raises:
            AuditChainBrokenError: If any event does not verify.
        """
        async with self._uow_factory.begin() as uow:
            envelope = await self._load(uow, envelope_id)
            self._access.require_owner(envelope, actor, "verify_audit_trail")
        return await self._audit.verify(envelope_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, uow: UnitOfWorkProtocol, envelope_id: str) -> Envelope:
        envelope = await uow.envelopes.get(envelope_id)
        if envelope is None:
            raise EnvelopeNotFoundError(envelope_id)
        return envelope

    async def _complete(
        self,
        uow: UnitOfWorkProtocol,
        envelope: Envelope,
        actor: ActorContext,
        now: datetime,
    ) -> tuple[Envelope, str]:
        envelope = envelope.complete(now)
        await self._audit.record(
            uow,
            envelope.id,
            AuditEventType.ENVELOPE_COMPLETED,
            "All signers signed; envelope completed",
            actor,
            metadata={
                "signed_hash": envelope.signed_hash,
                "signature_hashes": {
                    s.id: s.evidence.signature_hash
                    for s in envelope.required_signers
                    if s.evidence is not None
                },
            },
            occurred_at=now,
        )
        record_id = await self._stage(
            uow,
            IntegrationEventType.ENVELOPE_COMPLETED,
            envelope,
            {
                "owner_id": envelope.owner_id,
                "title": envelope.title,
                "signed_key": envelope.signed_key,
                "signed_hash": envelope.signed_hash,
                "signer_ids": [s.id for s in envelope.required_signers],
            },
            now,
        )
        self._record_transition(envelope.status)
        self._log_operation("complete", envelope_id=envelope.id).info("envelope_completed")
        return envelope, record_id

    async def _stage(
        self,
        uow: UnitOfWorkProtocol,
        event_type: IntegrationEventType,
        envelope: Envelope,
        payload: dict[str, Any],
        now: datetime,
    ) -> str:
        record = OutboxRecord(
            id=str(uuid7()),
            event_type=event_type,
            envelope_id=envelope.id,
            payload=payload,
            occurred_at=now,
            trace_id=get_correlation_id() or None,
        )
        await uow.outbox.add(record)
        return record.id

    @staticmethod
    def _invitation_payload(
        envelope: Envelope,
        signer: Signer,
        token: InvitationToken,
        secret: str,
        message: str | None,
    ) -> dict[str, Any]:
        # The notification consumer builds the invitation link from the raw token
        return {
            "signer_id": signer.id,
            "email": signer.email,
            "name": signer.name,
            "role": signer.role.value,
            "title": envelope.title,
            "token_id": token.id,
            "token": secret,
            "purpose": token.purpose.value,
            "expires_at": token.expires_at.isoformat(),
            "message": message,
        }

    async def _dispatch_after_commit(self, record_ids: list[str], log: Any) -> None:
        if self._publisher is None or not record_ids:
            return
        try:
            await self._publisher.dispatch_records(record_ids)
        except Exception as e:
            log.warning(
                "notification_dispatch_failed",
                error=str(e),
                error_type=type(e).__name__,
                record_count=len(record_ids),
            )

    def _record_transition(self, status: EnvelopeStatus) -> None:
        if self._metrics is not None:
            self._metrics.record_envelope_transition(status.value.lower())

    def _record_signature_outcome(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.record_signature(outcome)
