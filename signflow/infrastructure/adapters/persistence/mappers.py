"""JSON document mapping for the PostgreSQL store.

Aggregates are stored as one JSONB document per row, next to a few plain
columns used for lookups and ordering. Datetimes are written as ISO-8601
strings and enums as their values; reading a document back yields an
object equal to the one written, so stored audit events still verify.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from signflow.domain.events.audit_event import AuditEvent, AuditEventType
from signflow.domain.models.consent import Consent
from signflow.domain.models.envelope import DocumentOrigin, Envelope, EnvelopeStatus, SigningOrder
from signflow.domain.models.invitation_token import InvitationToken, TokenPurpose
from signflow.domain.models.network_context import NetworkContext
from signflow.domain.models.reminder_tracking import SignerReminderTracking
from signflow.domain.models.signer import (
    ExternalParticipant,
    InternalParticipant,
    Participant,
    SignatureEvidence,
    Signer,
    SignerRole,
    SignerStatus,
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None


def to_jsonable(value: Any) -> Any:
    """Turn datetimes and enums nested in ``value`` into JSON values."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


def _network_to_document(network: NetworkContext | None) -> dict[str, Any] | None:
    if network is None:
        return None
    return {
        "ip_address": network.ip_address,
        "user_agent": network.user_agent,
        "country": network.country,
        "reason": network.reason,
        "location": network.location,
    }


def _network_from_document(data: dict[str, Any] | None) -> NetworkContext | None:
    if data is None:
        return None
    return NetworkContext(**data)


def _participant_to_document(participant: Participant) -> dict[str, Any]:
    if isinstance(participant, InternalParticipant):
        return {"kind": "internal", "user_id": participant.user_id}
    return {"kind": "external", "email": participant.email, "name": participant.name}


def _participant_from_document(data: dict[str, Any]) -> Participant:
    if data["kind"] == "internal":
        return InternalParticipant(user_id=data["user_id"])
    return ExternalParticipant(email=data["email"], name=data["name"])


def _evidence_to_document(evidence: SignatureEvidence | None) -> dict[str, Any] | None:
    if evidence is None:
        return None
    return {
        "document_hash": evidence.document_hash,
        "signature_hash": evidence.signature_hash,
        "signature": evidence.signature,
        "signed_key": evidence.signed_key,
        "key_id": evidence.key_id,
        "algorithm": evidence.algorithm,
        "signed_at": _iso(evidence.signed_at),
        "network": _network_to_document(evidence.network),
        "consent_id": evidence.consent_id,
    }


def _evidence_from_document(data: dict[str, Any] | None) -> SignatureEvidence | None:
    if data is None:
        return None
    return SignatureEvidence(
        document_hash=data["document_hash"],
        signature_hash=data["signature_hash"],
        signature=data["signature"],
        signed_key=data["signed_key"],
        key_id=data["key_id"],
        algorithm=data["algorithm"],
        signed_at=datetime.fromisoformat(data["signed_at"]),
        network=_network_from_document(data["network"]) or NetworkContext(),
        consent_id=data.get("consent_id"),
    )


def _signer_to_document(signer: Signer) -> dict[str, Any]:
    return {
        "id": signer.id,
        "envelope_id": signer.envelope_id,
        "participant": _participant_to_document(signer.participant),
        "invited_by_user_id": signer.invited_by_user_id,
        "role": signer.role.value,
        "order": signer.order,
        "status": signer.status.value,
        "consent_given": signer.consent_given,
        "consent_at": _iso(signer.consent_at),
        "consent_text": signer.consent_text,
        "evidence": _evidence_to_document(signer.evidence),
        "declined_at": _iso(signer.declined_at),
        "decline_reason": signer.decline_reason,
    }


def _signer_from_document(data: dict[str, Any]) -> Signer:
    return Signer(
        id=data["id"],
        envelope_id=data["envelope_id"],
        participant=_participant_from_document(data["participant"]),
        invited_by_user_id=data["invited_by_user_id"],
        role=SignerRole(data["role"]),
        order=data["order"],
        status=SignerStatus(data["status"]),
        consent_given=data["consent_given"],
        consent_at=_parse(data["consent_at"]),
        consent_text=data["consent_text"],
        evidence=_evidence_from_document(data["evidence"]),
        declined_at=_parse(data["declined_at"]),
        decline_reason=data["decline_reason"],
    )


def envelope_to_document(envelope: Envelope) -> dict[str, Any]:
    """Serialize an envelope with its signers. The version lives in its own column."""
    return {
        "id": envelope.id,
        "owner_id": envelope.owner_id,
        "title": envelope.title,
        "source_key": envelope.source_key,
        "description": envelope.description,
        "origin": envelope.origin.value,
        "template_id": envelope.template_id,
        "template_version": envelope.template_version,
        "signing_order": envelope.signing_order.value,
        "expires_at": _iso(envelope.expires_at),
        "flattened_key": envelope.flattened_key,
        "signed_key": envelope.signed_key,
        "source_hash": envelope.source_hash,
        "flattened_hash": envelope.flattened_hash,
        "signed_hash": envelope.signed_hash,
        "status": envelope.status.value,
        "signers": [_signer_to_document(s) for s in envelope.signers],
        "created_at": _iso(envelope.created_at),
        "updated_at": _iso(envelope.updated_at),
        "sent_at": _iso(envelope.sent_at),
        "completed_at": _iso(envelope.completed_at),
        "cancelled_at": _iso(envelope.cancelled_at),
        "declined_at": _iso(envelope.declined_at),
        "declined_by_signer_id": envelope.declined_by_signer_id,
        "decline_reason": envelope.decline_reason,
        "cancelled_by": envelope.cancelled_by,
    }


def envelope_from_document(data: dict[str, Any], version: int) -> Envelope:
    return Envelope(
        id=data["id"],
        owner_id=data["owner_id"],
        title=data["title"],
        source_key=data["source_key"],
        description=data["description"],
        origin=DocumentOrigin(data["origin"]),
        template_id=data["template_id"],
        template_version=data["template_version"],
        signing_order=SigningOrder(data["signing_order"]),
        expires_at=_parse(data.get("expires_at")),
        flattened_key=data["flattened_key"],
        signed_key=data["signed_key"],
        source_hash=data["source_hash"],
        flattened_hash=data["flattened_hash"],
        signed_hash=data["signed_hash"],
        status=EnvelopeStatus(data["status"]),
        signers=tuple(_signer_from_document(s) for s in data["signers"]),
        created_at=datetime.fromisoformat(data["created_at"]),
        updated_at=_parse(data["updated_at"]),
        sent_at=_parse(data["sent_at"]),
        completed_at=_parse(data["completed_at"]),
        cancelled_at=_parse(data["cancelled_at"]),
        declined_at=_parse(data["declined_at"]),
        declined_by_signer_id=data["declined_by_signer_id"],
        decline_reason=data["decline_reason"],
        cancelled_by=data["cancelled_by"],
        version=version,
    )


def token_to_document(token: InvitationToken) -> dict[str, Any]:
    return {
        "id": token.id,
        "envelope_id": token.envelope_id,
        "signer_id": token.signer_id,
        "token_hash": token.token_hash,
        "purpose": token.purpose.value,
        "created_by": token.created_by,
        "expires_at": _iso(token.expires_at),
        "created_at": _iso(token.created_at),
        "sent_at": _iso(token.sent_at),
        "last_sent_at": _iso(token.last_sent_at),
        "resend_count": token.resend_count,
        "used_at": _iso(token.used_at),
        "revoked_at": _iso(token.revoked_at),
        "revoked_reason": token.revoked_reason,
        "view_count": token.view_count,
        "last_viewed_at": _iso(token.last_viewed_at),
        "issued_network": _network_to_document(token.issued_network),
        "last_used_network": _network_to_document(token.last_used_network),
    }


def token_from_document(data: dict[str, Any]) -> InvitationToken:
    return InvitationToken(
        id=data["id"],
        envelope_id=data["envelope_id"],
        signer_id=data["signer_id"],
        token_hash=data["token_hash"],
        purpose=TokenPurpose(data["purpose"]),
        created_by=data["created_by"],
        expires_at=datetime.fromisoformat(data["expires_at"]),
        created_at=datetime.fromisoformat(data["created_at"]),
        sent_at=_parse(data["sent_at"]),
        last_sent_at=_parse(data["last_sent_at"]),
        resend_count=data["resend_count"],
        used_at=_parse(data["used_at"]),
        revoked_at=_parse(data["revoked_at"]),
        revoked_reason=data["revoked_reason"],
        view_count=data["view_count"],
        last_viewed_at=_parse(data["last_viewed_at"]),
        issued_network=_network_from_document(data["issued_network"]),
        last_used_network=_network_from_document(data["last_used_network"]),
    )


def consent_to_document(consent: Consent) -> dict[str, Any]:
    return {
        "id": consent.id,
        "envelope_id": consent.envelope_id,
        "signer_id": consent.signer_id,
        "consent_text": consent.consent_text,
        "network": _network_to_document(consent.network),
        "given": consent.given,
        "given_at": _iso(consent.given_at),
        "signature_id": consent.signature_id,
    }


def consent_from_document(data: dict[str, Any]) -> Consent:
    return Consent(
        id=data["id"],
        envelope_id=data["envelope_id"],
        signer_id=data["signer_id"],
        consent_text=data["consent_text"],
        network=_network_from_document(data["network"]) or NetworkContext(),
        given=data["given"],
        given_at=datetime.fromisoformat(data["given_at"]),
        signature_id=data["signature_id"],
    )


def audit_event_to_document(event: AuditEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "envelope_id": event.envelope_id,
        "sequence": event.sequence,
        "event_type": event.event_type.value,
        "description": event.description,
        "actor": event.actor,
        "occurred_at": _iso(event.occurred_at),
        "previous_hash": event.previous_hash,
        "content_hash": event.content_hash,
        "signer_id": event.signer_id,
        "previous_event_id": event.previous_event_id,
        "network": to_jsonable(dict(event.network)),
        "metadata": to_jsonable(dict(event.metadata)),
    }


def audit_event_from_document(data: dict[str, Any]) -> AuditEvent:
    return AuditEvent(
        id=data["id"],
        envelope_id=data["envelope_id"],
        sequence=data["sequence"],
        event_type=AuditEventType(data["event_type"]),
        description=data["description"],
        actor=data["actor"],
        occurred_at=datetime.fromisoformat(data["occurred_at"]),
        previous_hash=data["previous_hash"],
        content_hash=data["content_hash"],
        signer_id=data["signer_id"],
        previous_event_id=data["previous_event_id"],
        network=data["network"],
        metadata=data["metadata"],
    )


def reminder_to_document(tracking: SignerReminderTracking) -> dict[str, Any]:
    return {
        "envelope_id": tracking.envelope_id,
        "signer_id": tracking.signer_id,
        "reminder_count": tracking.reminder_count,
        "last_reminder_at": _iso(tracking.last_reminder_at),
        "last_message": tracking.last_message,
    }


def reminder_from_document(data: dict[str, Any]) -> SignerReminderTracking:
    return SignerReminderTracking(
        envelope_id=data["envelope_id"],
        signer_id=data["signer_id"],
        reminder_count=data["reminder_count"],
        last_reminder_at=_parse(data["last_reminder_at"]),
        last_message=data["last_message"],
    )
