"""Unit tests for signing and declining through the coordinator."""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import replace
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from signflow.application.dtos.signing import (
    CancelEnvelopeCommand,
    DeclineSignerCommand,
    SendEnvelopeCommand,
    ShareDocumentViewCommand,
    SignDocumentCommand,
    SignerSpec,
    UpdateEnvelopeCommand,
)
from signflow.config.signing_config import TEST_SIGNING_CONFIG
from signflow.domain.errors.envelope import (
    DocumentNotFoundError,
    DocumentNotReadyError,
    EnvelopeExpiredError,
    InvalidEnvelopeDataError,
    InvalidEnvelopeStateError,
)
from signflow.domain.errors.invitation import (
    InvitationTokenAlreadyUsedError,
    InvitationTokenExpiredError,
    InvitationTokenNotFoundError,
)
from signflow.domain.errors.signer import (
    ConsentNotGivenError,
    SignerAlreadyDeclinedError,
    SignerAlreadySignedError,
    SigningOrderViolationError,
)
from signflow.domain.errors.upstream import UpstreamServiceError
from signflow.domain.events.audit_event import AuditEventType
from signflow.domain.events.integration_event import IntegrationEventType, OutboxStatus
from signflow.domain.exceptions import AccessDeniedError, ValidationError
from signflow.domain.models.envelope import EnvelopeStatus, SigningOrder
from signflow.domain.models.signer import SignerStatus
from tests.helpers import SigningHarness
from tests.helpers.signing_harness import (
    OWNER,
    SOURCE_BYTES,
    SOURCE_KEY,
    consent,
    external_actor,
    internal_actor,
)

ALICE = SignerSpec(email="alice@example.com", name="Alice")
BOB = SignerSpec(email="bob@example.com", name="Bob")


class TestSignWithToken:
    """Tests for external signers acting with an invitation token."""

    @pytest.mark.asyncio
    async def test_last_signer_completes_envelope(self, harness: SigningHarness) -> None:
        """A single external signer completes the envelope."""
        envelope, invitations = await harness.create_sent([ALICE])
        result = await harness.sign_with_token(envelope.id, invitations["alice@example.com"])
        assert result.envelope_completed
        assert result.envelope.status is EnvelopeStatus.COMPLETED
        assert result.document_hash == hashlib.sha256(SOURCE_BYTES).hexdigest()
        signer = result.envelope.get_signer(result.signer_id)
        assert signer.status is SignerStatus.SIGNED
        assert signer.evidence is not None
        assert signer.evidence.signature_hash == result.signature_hash
        assert signer.evidence.consent_id == result.consent_id

    @pytest.mark.asyncio
    async def test_evidence_and_artifacts_stored(self, harness: SigningHarness) -> None:
        """The signed output, consent link and token use are persisted."""
        envelope, invitations = await harness.create_sent([ALICE])
        invitation = invitations["alice@example.com"]
        result = await harness.sign_with_token(envelope.id, invitation)
        signed_key = f"envelopes/{envelope.id}/signed/{result.signer_id}.pdf"
        assert harness.storage.objects[signed_key] == SOURCE_BYTES
        assert result.envelope.signed_key == signed_key
        stored_consent = harness.store.consents[result.consent_id]
        assert stored_consent.signature_id == result.signature_hash
        assert harness.store.tokens[invitation.token_id].used_at is not None
        assert harness.oracle.calls == [
            (result.document_hash, "test-signing-key", "RSASSA_PSS_SHA_256")
        ]

    @pytest.mark.asyncio
    async def test_audit_sequence_for_signing(self, harness: SigningHarness) -> None:
        """Consent precedes the signature and completion follows it."""
        envelope, invitations = await harness.create_sent([ALICE])
        await harness.sign_with_token(envelope.id, invitations["alice@example.com"])
        assert harness.audit_types(envelope.id)[-3:] == [
            AuditEventType.CONSENT_GIVEN,
            AuditEventType.SIGNER_SIGNED,
            AuditEventType.ENVELOPE_COMPLETED,
        ]
        assert await harness.coordinator.verify_audit_trail(envelope.id, OWNER) == len(
            harness.audit_types(envelope.id)
        )

    @pytest.mark.asyncio
    async def test_sign_twice_reports_already_signed(self, harness: SigningHarness) -> None:
        """The second attempt sees the signer state before the used token."""
        envelope, invitations = await harness.create_sent([ALICE, BOB])
        invitation = invitations["alice@example.com"]
        await harness.sign_with_token(envelope.id, invitation)
        with pytest.raises(SignerAlreadySignedError):
            await harness.sign_with_token(envelope.id, invitation)

    @pytest.mark.asyncio
    async def test_decline_then_sign_reports_already_declined(
        self, harness: SigningHarness
    ) -> None:
        """A declined signer cannot sign afterwards."""
        envelope, invitations = await harness.create_sent([ALICE, BOB])
        invitation = invitations["alice@example.com"]
        await harness.coordinator.decline_signer(
            DeclineSignerCommand(
                envelope_id=envelope.id,
                signer_id=invitation.signer_id,
                reason="wrong counterparty",
                invitation_token=invitation.token,
            ),
            external_actor("alice@example.com"),
        )
        with pytest.raises(SignerAlreadyDeclinedError):
            await harness.sign_with_token(envelope.id, invitation)

    @pytest.mark.asyncio
    async def test_unknown_token_rejected(self, harness: SigningHarness) -> None:
        """A secret that matches no token is not found."""
        envelope, invitations = await harness.create_sent([ALICE])
        with pytest.raises(InvitationTokenNotFoundError):
            await harness.coordinator.sign_document(
                SignDocumentCommand(
                    envelope_id=envelope.id,
                    signer_id=invitations["alice@example.com"].signer_id,
                    consent=consent(),
                    invitation_token="not-a-real-token",
                ),
                external_actor("alice@example.com"),
            )

    @pytest.mark.asyncio
    async def test_token_of_other_signer_denied(self, harness: SigningHarness) -> None:
        """A token only acts for the signer it was issued to."""
        envelope, invitations = await harness.create_sent([ALICE, BOB])
        with pytest.raises(AccessDeniedError):
            await harness.coordinator.sign_document(
                SignDocumentCommand(
                    envelope_id=envelope.id,
                    signer_id=invitations["bob@example.com"].signer_id,
                    consent=consent(),
                    invitation_token=invitations["alice@example.com"].token,
                ),
                external_actor("alice@example.com"),
            )

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, harness: SigningHarness) -> None:
        """Tokens stop working at their expiry."""
        envelope, invitations = await harness.create_sent([ALICE])
        harness.clock.advance(days=harness.config.invitation_ttl_days)
        with pytest.raises(InvitationTokenExpiredError):
            await harness.sign_with_token(envelope.id, invitations["alice@example.com"])

    @pytest.mark.asyncio
    async def test_viewer_token_cannot_sign(self, harness: SigningHarness) -> None:
        """A VIEWER token grants read access only."""
        envelope, invitations = await harness.create_sent([ALICE])
        signer_id = invitations["alice@example.com"].signer_id
        viewer = await harness.coordinator.share_document_view(
            ShareDocumentViewCommand(envelope_id=envelope.id, signer_id=signer_id), OWNER
        )
        with pytest.raises(AccessDeniedError):
            await harness.sign_with_token(envelope.id, viewer)

    @pytest.mark.asyncio
    async def test_missing_token_and_session_denied(self, harness: SigningHarness) -> None:
        """An anonymous caller without a token is denied."""
        envelope, invitations = await harness.create_sent([ALICE])
        with pytest.raises(AccessDeniedError):
            await harness.coordinator.sign_document(
                SignDocumentCommand(
                    envelope_id=envelope.id,
                    signer_id=invitations["alice@example.com"].signer_id,
                    consent=consent(),
                ),
                external_actor("alice@example.com"),
            )


class TestConsent:
    """Tests for the consent step of signing."""

    @pytest.mark.asyncio
    async def test_consent_not_given_rejected(self, harness: SigningHarness) -> None:
        """given=False stops the attempt before anything is stored."""
        envelope, invitations = await harness.create_sent([ALICE])
        invitation = invitations["alice@example.com"]
        with pytest.raises(ConsentNotGivenError):
            await harness.coordinator.sign_document(
                SignDocumentCommand(
                    envelope_id=envelope.id,
                    signer_id=invitation.signer_id,
                    consent=consent(given=False),
                    invitation_token=invitation.token,
                ),
                external_actor("alice@example.com"),
            )
        assert harness.store.consents == {}
        assert harness.oracle.calls == []
        signer = harness.store.envelopes[envelope.id].get_signer(invitation.signer_id)
        assert signer.status is SignerStatus.PENDING
        assert not signer.consent_given

    @pytest.mark.asyncio
    async def test_blank_consent_text_rejected(self, harness: SigningHarness) -> None:
        """Consent needs the text the signer agreed to."""
        envelope, invitations = await harness.create_sent([ALICE])
        invitation = invitations["alice@example.com"]
        with pytest.raises(ConsentNotGivenError):
            await harness.coordinator.sign_document(
                SignDocumentCommand(
                    envelope_id=envelope.id,
                    signer_id=invitation.signer_id,
                    consent=consent(text="   "),
                    invitation_token=invitation.token,
                ),
                external_actor("alice@example.com"),
            )


class TestConcurrentSigning:
    """Tests for racing sign attempts on one signer."""

    @pytest.mark.asyncio
    async def test_exactly_one_of_five_succeeds(self, harness: SigningHarness) -> None:
        """Five concurrent attempts yield one signature and four already-signed errors."""
        envelope, invitations = await harness.create_sent([ALICE, BOB])
        invitation = invitations["alice@example.com"]
        results = await asyncio.gather(
            *(harness.sign_with_token(envelope.id, invitation) for _ in range(5)),
            return_exceptions=True,
        )
        successes = [r for r in results if not isinstance(r, BaseException)]
        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(successes) == 1
        assert len(failures) == 4
        assert all(isinstance(f, SignerAlreadySignedError) for f in failures)
        signed_events = [
            e
            for e in harness.store.audit_events[envelope.id]
            if e.event_type is AuditEventType.SIGNER_SIGNED
        ]
        assert len(signed_events) == 1
        assert len(harness.outbox_records(IntegrationEventType.SIGNER_SIGNED)) == 1
        assert await harness.coordinator.verify_audit_trail(envelope.id, OWNER) > 0

    @pytest.mark.asyncio
    async def test_concurrent_internal_signers(self, harness: SigningHarness) -> None:
        """Different signers signing at once both land and complete the envelope."""
        draft = await harness.create_draft(
            [SignerSpec(user_id="user-2"), SignerSpec(user_id="user-3")],
            signing_order=SigningOrder.UNORDERED,
        )
        sent = await harness.coordinator.send_envelope(
            SendEnvelopeCommand(envelope_id=draft.id), OWNER
        )
        first, second = sent.envelope.signers
        results = await asyncio.gather(
            harness.sign_as_user(draft.id, first.id, internal_actor("user-2")),
            harness.sign_as_user(draft.id, second.id, internal_actor("user-3")),
        )
        assert sum(r.envelope_completed for r in results) == 1
        stored = harness.store.envelopes[draft.id]
        assert stored.status is EnvelopeStatus.COMPLETED
        assert len(harness.outbox_records(IntegrationEventType.ENVELOPE_COMPLETED)) == 1


class TestSigningOrder:
    """Tests for the signing-order policies end to end."""

    @pytest.mark.asyncio
    async def test_invitees_first_with_two_external_signers(
        self, harness: SigningHarness
    ) -> None:
        """Invitees sign, the owner signs last and the envelope completes."""
        draft = await harness.create_draft(
            [ALICE, BOB, SignerSpec(user_id="owner-1")],
            signing_order=SigningOrder.INVITEES_FIRST,
        )
        sent = await harness.coordinator.send_envelope(
            SendEnvelopeCommand(envelope_id=draft.id), OWNER
        )
        invitations = {
            sent.envelope.get_signer(i.signer_id).email: i for i in sent.invitations
        }
        owner_signer = sent.envelope.owner_signer()
        assert owner_signer is not None

        with pytest.raises(SigningOrderViolationError):
            await harness.sign_as_user(draft.id, owner_signer.id)

        alice = invitations["alice@example.com"]
        alice_bytes = SOURCE_BYTES + b" /alice-signature"
        first = await harness.coordinator.sign_document(
            SignDocumentCommand(
                envelope_id=draft.id,
                signer_id=alice.signer_id,
                consent=consent(),
                invitation_token=alice.token,
                signed_document=alice_bytes,
            ),
            external_actor("alice@example.com"),
        )
        assert not first.envelope_completed

        second = await harness.sign_with_token(
            draft.id, invitations["bob@example.com"], email="bob@example.com"
        )
        # Bob signs the document Alice produced
        assert second.document_hash == hashlib.sha256(alice_bytes).hexdigest()
        assert second.document_hash != first.document_hash
        assert second.signature_hash != first.signature_hash
        assert not second.envelope_completed

        last = await harness.sign_as_user(draft.id, owner_signer.id)
        assert last.envelope_completed
        assert last.envelope.status is EnvelopeStatus.COMPLETED

        completed = harness.store.audit_events[draft.id][-1]
        assert completed.event_type is AuditEventType.ENVELOPE_COMPLETED
        assert set(completed.metadata["signature_hashes"]) == {
            s.id for s in sent.envelope.signers
        }
        records = harness.outbox_records(IntegrationEventType.ENVELOPE_COMPLETED)
        assert len(records) == 1
        assert sorted(records[0].payload["signer_ids"]) == sorted(
            s.id for s in sent.envelope.signers
        )

    @pytest.mark.asyncio
    async def test_owner_first_blocks_invitees(self, harness: SigningHarness) -> None:
        """Invitees wait for the owner's signature and nothing is recorded."""
        draft = await harness.create_draft([SignerSpec(user_id="owner-1"), ALICE])
        sent = await harness.coordinator.send_envelope(
            SendEnvelopeCommand(envelope_id=draft.id), OWNER
        )
        invitation = sent.invitations[0]
        with pytest.raises(SigningOrderViolationError):
            await harness.sign_with_token(draft.id, invitation)
        assert harness.store.consents == {}

        owner_signer = sent.envelope.owner_signer()
        assert owner_signer is not None
        await harness.sign_as_user(draft.id, owner_signer.id)
        result = await harness.sign_with_token(draft.id, invitation)
        assert result.envelope_completed

    @pytest.mark.asyncio
    async def test_owner_first_set_as_string_still_enforced(
        self, harness: SigningHarness
    ) -> None:
        """A signing_order sent as its raw value keeps blocking invitees."""
        draft = await harness.create_draft(
            [SignerSpec(user_id="owner-1"), ALICE], signing_order=SigningOrder.UNORDERED
        )
        updated = await harness.coordinator.update_envelope(
            UpdateEnvelopeCommand(envelope_id=draft.id, changes={"signing_order": "OWNER_FIRST"}),
            OWNER,
        )
        assert updated.signing_order is SigningOrder.OWNER_FIRST
        sent = await harness.coordinator.send_envelope(
            SendEnvelopeCommand(envelope_id=draft.id), OWNER
        )
        with pytest.raises(SigningOrderViolationError):
            await harness.sign_with_token(draft.id, sent.invitations[0], "alice@example.com")
        owner_signer = harness.store.envelopes[draft.id].owner_signer()
        assert owner_signer is not None
        assert owner_signer.status is SignerStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_signing_order_rejected(self, harness: SigningHarness) -> None:
        """An unknown signing_order value is refused and nothing is saved."""
        draft = await harness.create_draft([ALICE])
        with pytest.raises(InvalidEnvelopeDataError):
            await harness.coordinator.update_envelope(
                UpdateEnvelopeCommand(envelope_id=draft.id, changes={"signing_order": "owner"}),
                OWNER,
            )
        assert harness.store.envelopes[draft.id].signing_order is SigningOrder.OWNER_FIRST

    @pytest.mark.asyncio
    async def test_external_signer_cannot_sign_draft(self, harness: SigningHarness) -> None:
        """Only the owner may sign before sending."""
        draft = await harness.create_draft([SignerSpec(user_id="user-2")])
        with pytest.raises(InvalidEnvelopeStateError):
            await harness.sign_as_user(draft.id, draft.signers[0].id, internal_actor("user-2"))

    @pytest.mark.asyncio
    async def test_cancel_then_sign_fails(self, harness: SigningHarness) -> None:
        """A cancelled envelope rejects further signatures."""
        envelope, invitations = await harness.create_sent([ALICE])
        await harness.coordinator.cancel_envelope(
            CancelEnvelopeCommand(envelope_id=envelope.id), OWNER
        )
        with pytest.raises(InvalidEnvelopeStateError):
            await harness.sign_with_token(envelope.id, invitations["alice@example.com"])


class TestDeclineSigner:
    """Tests for decline_signer."""

    @pytest.mark.asyncio
    async def test_decline_declines_envelope(self, harness: SigningHarness) -> None:
        """One decline ends the envelope with exactly one notification."""
        envelope, invitations = await harness.create_sent([ALICE, BOB])
        invitation = invitations["bob@example.com"]
        declined = await harness.coordinator.decline_signer(
            DeclineSignerCommand(
                envelope_id=envelope.id,
                signer_id=invitation.signer_id,
                reason="terms unacceptable",
                invitation_token=invitation.token,
            ),
            external_actor("bob@example.com"),
        )
        assert declined.status is EnvelopeStatus.DECLINED
        assert declined.declined_by_signer_id == invitation.signer_id
        assert declined.decline_reason == "terms unacceptable"
        signer = declined.get_signer(invitation.signer_id)
        assert signer.status is SignerStatus.DECLINED

        records = harness.outbox_records(IntegrationEventType.SIGNER_DECLINED)
        assert len(records) == 1
        assert records[0].payload["reason"] == "terms unacceptable"
        assert records[0].payload["owner_id"] == "owner-1"
        assert harness.audit_types(envelope.id)[-2:] == [
            AuditEventType.SIGNER_DECLINED,
            AuditEventType.ENVELOPE_DECLINED,
        ]
        assert harness.store.tokens[invitation.token_id].used_at is not None

    @pytest.mark.asyncio
    async def test_decline_twice_reports_already_declined(self, harness: SigningHarness) -> None:
        """A repeated decline sees the declined signer before the used token."""
        envelope, invitations = await harness.create_sent([ALICE])
        invitation = invitations["alice@example.com"]
        command = DeclineSignerCommand(
            envelope_id=envelope.id,
            signer_id=invitation.signer_id,
            reason="no",
            invitation_token=invitation.token,
        )
        await harness.coordinator.decline_signer(command, external_actor("alice@example.com"))
        with pytest.raises(SignerAlreadyDeclinedError):
            await harness.coordinator.decline_signer(command, external_actor("alice@example.com"))

    @pytest.mark.asyncio
    async def test_decline_requires_reason(self, harness: SigningHarness) -> None:
        """An empty reason is a validation error."""
        envelope, invitations = await harness.create_sent([ALICE])
        invitation = invitations["alice@example.com"]
        with pytest.raises(ValidationError):
            await harness.coordinator.decline_signer(
                DeclineSignerCommand(
                    envelope_id=envelope.id,
                    signer_id=invitation.signer_id,
                    reason="  ",
                    invitation_token=invitation.token,
                ),
                external_actor("alice@example.com"),
            )
        assert harness.store.envelopes[envelope.id].status is EnvelopeStatus.SENT

    @pytest.mark.asyncio
    async def test_signed_signer_cannot_decline(self, harness: SigningHarness) -> None:
        """A signature cannot be taken back by declining."""
        draft = await harness.create_draft(
            [SignerSpec(user_id="user-2"), SignerSpec(user_id="user-3")],
            signing_order=SigningOrder.UNORDERED,
        )
        await harness.coordinator.send_envelope(SendEnvelopeCommand(envelope_id=draft.id), OWNER)
        signer_id = draft.signers[0].id
        await harness.sign_as_user(draft.id, signer_id, internal_actor("user-2"))
        with pytest.raises(SignerAlreadySignedError):
            await harness.coordinator.decline_signer(
                DeclineSignerCommand(envelope_id=draft.id, signer_id=signer_id, reason="changed mind"),
                internal_actor("user-2"),
            )

    @pytest.mark.asyncio
    async def test_decline_on_draft_rejected(self, harness: SigningHarness) -> None:
        """Declining needs a SENT envelope."""
        draft = await harness.create_draft([SignerSpec(user_id="user-2")])
        with pytest.raises(InvalidEnvelopeStateError):
            await harness.coordinator.decline_signer(
                DeclineSignerCommand(
                    envelope_id=draft.id, signer_id=draft.signers[0].id, reason="no"
                ),
                internal_actor("user-2"),
            )

    @pytest.mark.asyncio
    async def test_decline_records_metric(self) -> None:
        """The decline outcome is counted."""
        metrics = MagicMock()
        harness = SigningHarness(metrics=metrics)
        envelope, invitations = await harness.create_sent([ALICE])
        invitation = invitations["alice@example.com"]
        await harness.coordinator.decline_signer(
            DeclineSignerCommand(
                envelope_id=envelope.id,
                signer_id=invitation.signer_id,
                reason="no",
                invitation_token=invitation.token,
            ),
            external_actor("alice@example.com"),
        )
        metrics.record_signature.assert_called_once_with("declined")
        metrics.record_envelope_transition.assert_any_call("declined")


class TestUpstreamFailures:
    """Tests for storage and oracle failures during signing."""

    @pytest.mark.asyncio
    async def test_oracle_failure_leaves_signer_pending(self, harness: SigningHarness) -> None:
        """The signer keeps its consent and may retry."""
        envelope, invitations = await harness.create_sent([ALICE])
        invitation = invitations["alice@example.com"]
        harness.oracle.fail_with = TimeoutError("kms timeout")
        with pytest.raises(UpstreamServiceError) as exc_info:
            await harness.sign_with_token(envelope.id, invitation)
        assert exc_info.value.step == "signing_oracle"
        assert exc_info.value.operation == "sign_document"
        assert isinstance(exc_info.value.__cause__, TimeoutError)

        signer = harness.store.envelopes[envelope.id].get_signer(invitation.signer_id)
        assert signer.status is SignerStatus.PENDING
        assert signer.consent_given
        assert len(harness.store.consents) == 1
        assert harness.store.tokens[invitation.token_id].used_at is None

        harness.oracle.fail_with = None
        result = await harness.sign_with_token(envelope.id, invitation)
        assert result.envelope_completed

    @pytest.mark.asyncio
    async def test_store_failure_wrapped(self, harness: SigningHarness) -> None:
        """Failing to store the signed output is an upstream error."""
        envelope, invitations = await harness.create_sent([ALICE])
        harness.storage.fail_on_put = OSError("bucket unavailable")
        with pytest.raises(UpstreamServiceError) as exc_info:
            await harness.sign_with_token(envelope.id, invitations["alice@example.com"])
        assert exc_info.value.step == "store_signed_document"

    @pytest.mark.asyncio
    async def test_fetch_failure_wrapped(self, harness: SigningHarness) -> None:
        """Failing to read the document is an upstream error."""
        envelope, invitations = await harness.create_sent([ALICE])
        harness.storage.fail_on_get = OSError("bucket unavailable")
        with pytest.raises(UpstreamServiceError) as exc_info:
            await harness.sign_with_token(envelope.id, invitations["alice@example.com"])
        assert exc_info.value.step == "document_fetch"
        assert harness.oracle.calls == []

    @pytest.mark.asyncio
    async def test_missing_document(self, harness: SigningHarness) -> None:
        """A document absent from storage is reported as not found."""
        envelope, invitations = await harness.create_sent([ALICE])
        del harness.storage.objects[SOURCE_KEY]
        with pytest.raises(DocumentNotFoundError):
            await harness.sign_with_token(envelope.id, invitations["alice@example.com"])

    @pytest.mark.asyncio
    async def test_oracle_failure_counted(self) -> None:
        """Oracle failures are recorded as upstream errors."""
        metrics = MagicMock()
        harness = SigningHarness(metrics=metrics)
        envelope, invitations = await harness.create_sent([ALICE])
        harness.oracle.fail_with = RuntimeError("boom")
        with pytest.raises(UpstreamServiceError):
            await harness.sign_with_token(envelope.id, invitations["alice@example.com"])
        metrics.record_signature.assert_called_once_with("upstream_error")

    @pytest.mark.asyncio
    async def test_dispatch_failure_does_not_fail_sign(self, harness: SigningHarness) -> None:
        """Signing commits even when notifications cannot be published."""
        envelope, invitations = await harness.create_sent([ALICE])
        harness.event_bus.fail_with = ConnectionError("broker down")
        result = await harness.sign_with_token(envelope.id, invitations["alice@example.com"])
        assert result.envelope_completed
        pending = [
            r
            for r in harness.outbox_records()
            if r.status is OutboxStatus.PENDING
        ]
        assert {r.event_type for r in pending} == {
            IntegrationEventType.SIGNER_SIGNED,
            IntegrationEventType.ENVELOPE_COMPLETED,
        }

    @pytest.mark.asyncio
    async def test_consumed_token_rejected(self, harness: SigningHarness) -> None:
        """A token consumed while the signer is still pending is refused."""
        envelope, invitations = await harness.create_sent([ALICE, BOB])
        invitation = invitations["alice@example.com"]
        token = harness.store.tokens[invitation.token_id]
        harness.store.tokens[token.id] = token.mark_used(now=harness.clock())
        with pytest.raises(InvitationTokenAlreadyUsedError):
            await harness.sign_with_token(envelope.id, invitation)


class TestEnvelopeDeadline:
    """Tests for signing and declining around the envelope's expires_at."""

    async def _sent_with_deadline(
        self, harness: SigningHarness, hours: int
    ) -> tuple[str, str, str]:
        draft = await harness.create_draft([ALICE])
        await harness.coordinator.update_envelope(
            UpdateEnvelopeCommand(
                envelope_id=draft.id,
                changes={"expires_at": harness.clock() + timedelta(hours=hours)},
            ),
            OWNER,
        )
        sent = await harness.coordinator.send_envelope(
            SendEnvelopeCommand(envelope_id=draft.id), OWNER
        )
        invitation = sent.invitations[0]
        return draft.id, invitation.signer_id, invitation.token

    @pytest.mark.asyncio
    async def test_sign_before_deadline(self, harness: SigningHarness) -> None:
        """Signing inside the deadline completes as usual."""
        envelope_id, signer_id, token = await self._sent_with_deadline(harness, 12)
        harness.clock.advance(hours=11)
        result = await harness.coordinator.sign_document(
            SignDocumentCommand(
                envelope_id=envelope_id,
                signer_id=signer_id,
                consent=consent(),
                invitation_token=token,
            ),
            external_actor("alice@example.com"),
        )
        assert result.envelope_completed

    @pytest.mark.asyncio
    async def test_sign_after_deadline_rejected(self, harness: SigningHarness) -> None:
        """Past expires_at the token still resolves but signing is refused."""
        envelope_id, signer_id, token = await self._sent_with_deadline(harness, 12)
        harness.clock.advance(hours=13)
        with pytest.raises(EnvelopeExpiredError):
            await harness.coordinator.sign_document(
                SignDocumentCommand(
                    envelope_id=envelope_id,
                    signer_id=signer_id,
                    consent=consent(),
                    invitation_token=token,
                ),
                external_actor("alice@example.com"),
            )
        assert harness.store.consents == {}
        envelope = harness.store.envelopes[envelope_id]
        assert envelope.status is EnvelopeStatus.SENT
        assert envelope.get_signer(signer_id).status is SignerStatus.PENDING

    @pytest.mark.asyncio
    async def test_decline_after_deadline_rejected(self, harness: SigningHarness) -> None:
        """Past expires_at a decline is refused too."""
        envelope_id, signer_id, token = await self._sent_with_deadline(harness, 1)
        harness.clock.advance(hours=2)
        with pytest.raises(EnvelopeExpiredError):
            await harness.coordinator.decline_signer(
                DeclineSignerCommand(
                    envelope_id=envelope_id,
                    signer_id=signer_id,
                    reason="too late",
                    invitation_token=token,
                ),
                external_actor("alice@example.com"),
            )
        assert harness.store.envelopes[envelope_id].status is EnvelopeStatus.SENT


class TestDocumentReadiness:
    """Tests for choosing the document a signature applies to."""

    @pytest.mark.asyncio
    async def test_source_signed_when_nothing_flattened(self, harness: SigningHarness) -> None:
        """Without a flattened document the uploaded source is signed."""
        envelope, invitations = await harness.create_sent([ALICE])
        result = await harness.sign_with_token(envelope.id, invitations["alice@example.com"])
        assert result.document_hash == hashlib.sha256(SOURCE_BYTES).hexdigest()

    @pytest.mark.asyncio
    async def test_flattened_document_required_by_config(self) -> None:
        """With require_flattened_document the raw source is refused."""
        local = SigningHarness(
            config=replace(TEST_SIGNING_CONFIG, require_flattened_document=True)
        )
        envelope, invitations = await local.create_sent([ALICE])
        with pytest.raises(DocumentNotReadyError):
            await local.sign_with_token(envelope.id, invitations["alice@example.com"])
        assert local.store.consents == {}
        assert local.oracle.calls == []

    @pytest.mark.asyncio
    async def test_flattened_key_on_command_accepted(self) -> None:
        """A flattened document passed with the command satisfies the requirement."""
        local = SigningHarness(
            config=replace(TEST_SIGNING_CONFIG, require_flattened_document=True)
        )
        flattened = b"%PDF-1.7 flattened contract"
        local.storage.objects["flattened/contract.pdf"] = flattened
        envelope, invitations = await local.create_sent([ALICE])
        invitation = invitations["alice@example.com"]
        result = await local.coordinator.sign_document(
            SignDocumentCommand(
                envelope_id=envelope.id,
                signer_id=invitation.signer_id,
                consent=consent(),
                invitation_token=invitation.token,
                flattened_key="flattened/contract.pdf",
            ),
            external_actor("alice@example.com"),
        )
        assert result.document_hash == hashlib.sha256(flattened).hexdigest()
