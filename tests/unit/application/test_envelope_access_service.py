"""Unit tests for EnvelopeAccessService."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from signflow.application.dtos.signing import EnvelopeAccessType
from signflow.application.services.envelope_access_service import EnvelopeAccessService
from signflow.application.services.invitation_token_service import InvitationTokenService
from signflow.config.signing_config import TEST_SIGNING_CONFIG
from signflow.domain.errors.invitation import (
    InvitationTokenAlreadyUsedError,
    InvitationTokenExpiredError,
)
from signflow.domain.exceptions import AccessDeniedError
from signflow.domain.models.envelope import Envelope, EnvelopeStatus
from signflow.domain.models.invitation_token import TokenPurpose
from signflow.domain.models.network_context import ActorContext
from signflow.domain.models.signer import ExternalParticipant, InternalParticipant, Signer
from signflow.infrastructure.stubs import InMemorySigningStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
OWNER = ActorContext(user_id="owner-1")
EXTERNAL = ActorContext(email="ext@example.com")


def _signer(signer_id: str, participant, order: int) -> Signer:
    return Signer(
        id=signer_id,
        envelope_id="env-1",
        participant=participant,
        invited_by_user_id="owner-1",
        order=order,
    )


@pytest.fixture
def envelope() -> Envelope:
    return Envelope(
        id="env-1",
        owner_id="owner-1",
        title="Lease",
        source_key="uploads/lease.pdf",
        status=EnvelopeStatus.SENT,
        created_at=NOW,
        signers=(
            _signer("s-owner", InternalParticipant(user_id="owner-1"), 1),
            _signer("s-int", InternalParticipant(user_id="user-2"), 2),
            _signer("s-ext", ExternalParticipant(email="ext@example.com", name="Ext"), 3),
        ),
    )


@pytest.fixture
def tokens() -> InvitationTokenService:
    return InvitationTokenService(TEST_SIGNING_CONFIG)


@pytest.fixture
def access(tokens: InvitationTokenService) -> EnvelopeAccessService:
    return EnvelopeAccessService(tokens)


async def _issue(
    store: InMemorySigningStore,
    tokens: InvitationTokenService,
    envelope: Envelope,
    purpose: TokenPurpose = TokenPurpose.SIGNER,
) -> str:
    async with store.begin(envelope.id) as uow:
        _, secret = await tokens.issue(
            uow, envelope, envelope.get_signer("s-ext"), "owner-1", purpose, now=NOW
        )
    return secret


class TestRequireOwner:
    """Tests for require_owner."""

    def test_owner_passes(self, access: EnvelopeAccessService, envelope: Envelope) -> None:
        """The owner is admitted."""
        access.require_owner(envelope, OWNER, "cancel_envelope")

    def test_participant_denied(self, access: EnvelopeAccessService, envelope: Envelope) -> None:
        """Participants are not owners."""
        with pytest.raises(AccessDeniedError):
            access.require_owner(envelope, ActorContext(user_id="user-2"), "cancel_envelope")

    def test_external_denied(self, access: EnvelopeAccessService, envelope: Envelope) -> None:
        """Token holders are not owners."""
        with pytest.raises(AccessDeniedError):
            access.require_owner(envelope, EXTERNAL, "cancel_envelope")


class TestResolveViewAccess:
    """Tests for resolve_view_access."""

    @pytest.mark.asyncio
    async def test_owner(self, access: EnvelopeAccessService, envelope: Envelope) -> None:
        """The owner's own signer id is returned."""
        store = InMemorySigningStore()
        async with store.begin() as uow:
            grant = await access.resolve_view_access(uow, envelope, OWNER, now=NOW)
        assert grant.access_type is EnvelopeAccessType.OWNER
        assert grant.signer_id == "s-owner"

    @pytest.mark.asyncio
    async def test_participant(self, access: EnvelopeAccessService, envelope: Envelope) -> None:
        """Invited internal users view as PARTICIPANT."""
        store = InMemorySigningStore()
        async with store.begin() as uow:
            grant = await access.resolve_view_access(
                uow, envelope, ActorContext(user_id="user-2"), now=NOW
            )
        assert grant.access_type is EnvelopeAccessType.PARTICIPANT
        assert grant.signer_id == "s-int"

    @pytest.mark.asyncio
    async def test_viewer_token(
        self,
        access: EnvelopeAccessService,
        tokens: InvitationTokenService,
        envelope: Envelope,
    ) -> None:
        """A VIEWER token grants EXTERNAL read access."""
        store = InMemorySigningStore()
        secret = await _issue(store, tokens, envelope, TokenPurpose.VIEWER)
        async with store.begin() as uow:
            grant = await access.resolve_view_access(uow, envelope, EXTERNAL, secret, NOW)
        assert grant.access_type is EnvelopeAccessType.EXTERNAL
        assert grant.signer_id == "s-ext"
        assert grant.token is not None

    @pytest.mark.asyncio
    async def test_stranger_with_session_and_no_token(
        self, access: EnvelopeAccessService, envelope: Envelope
    ) -> None:
        """An unrelated user without a token is denied."""
        store = InMemorySigningStore()
        async with store.begin() as uow:
            with pytest.raises(AccessDeniedError):
                await access.resolve_view_access(
                    uow, envelope, ActorContext(user_id="stranger"), now=NOW
                )


class TestResolveSignerAccess:
    """Tests for resolve_signer_access."""

    @pytest.mark.asyncio
    async def test_external_with_signer_token(
        self,
        access: EnvelopeAccessService,
        tokens: InvitationTokenService,
        envelope: Envelope,
    ) -> None:
        """A SIGNER token lets the external participant act."""
        store = InMemorySigningStore()
        secret = await _issue(store, tokens, envelope)
        async with store.begin() as uow:
            grant = await access.resolve_signer_access(
                uow, envelope, "s-ext", EXTERNAL, secret, NOW
            )
        assert grant.access_type is EnvelopeAccessType.EXTERNAL

    @pytest.mark.asyncio
    async def test_viewer_token_cannot_act(
        self,
        access: EnvelopeAccessService,
        tokens: InvitationTokenService,
        envelope: Envelope,
    ) -> None:
        """VIEWER tokens never sign."""
        store = InMemorySigningStore()
        secret = await _issue(store, tokens, envelope, TokenPurpose.VIEWER)
        async with store.begin() as uow:
            with pytest.raises(AccessDeniedError):
                await access.resolve_signer_access(uow, envelope, "s-ext", EXTERNAL, secret, NOW)

    @pytest.mark.asyncio
    async def test_expiry_checked_before_use(
        self,
        access: EnvelopeAccessService,
        tokens: InvitationTokenService,
        envelope: Envelope,
    ) -> None:
        """A token that is both used and expired reports expiry."""
        store = InMemorySigningStore()
        secret = await _issue(store, tokens, envelope)
        token_id = next(iter(store.tokens))
        store.tokens[token_id] = store.tokens[token_id].mark_used(now=NOW)
        later = NOW + timedelta(days=30)
        async with store.begin() as uow:
            with pytest.raises(InvitationTokenExpiredError):
                await access.resolve_signer_access(uow, envelope, "s-ext", EXTERNAL, secret, later)
            with pytest.raises(InvitationTokenAlreadyUsedError):
                await access.resolve_signer_access(uow, envelope, "s-ext", EXTERNAL, secret, NOW)

    @pytest.mark.asyncio
    async def test_anonymous_without_token_denied(
        self, access: EnvelopeAccessService, envelope: Envelope
    ) -> None:
        """External actors need a token."""
        store = InMemorySigningStore()
        async with store.begin() as uow:
            with pytest.raises(AccessDeniedError):
                await access.resolve_signer_access(uow, envelope, "s-ext", EXTERNAL, None, NOW)

    @pytest.mark.asyncio
    async def test_session_must_match_signer(
        self, access: EnvelopeAccessService, envelope: Envelope
    ) -> None:
        """An internal user can only act as their own signer."""
        store = InMemorySigningStore()
        async with store.begin() as uow:
            with pytest.raises(AccessDeniedError):
                await access.resolve_signer_access(uow, envelope, "s-int", OWNER, None, NOW)
            own = await access.resolve_signer_access(uow, envelope, "s-owner", OWNER, None, NOW)
            other = await access.resolve_signer_access(
                uow, envelope, "s-int", ActorContext(user_id="user-2"), None, NOW
            )
        assert own.access_type is EnvelopeAccessType.OWNER
        assert other.access_type is EnvelopeAccessType.PARTICIPANT
