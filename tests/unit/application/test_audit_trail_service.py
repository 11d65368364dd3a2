"""Unit tests for AuditTrailService."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from signflow.application.services.audit_trail_service import AuditTrailService
from signflow.domain.errors.audit import AuditChainBrokenError
from signflow.domain.errors.pagination import InvalidPaginationCursorError
from signflow.domain.events.audit_event import AuditEventType
from signflow.domain.events.hash_utils import GENESIS_HASH
from signflow.domain.models.network_context import ActorContext, NetworkContext
from signflow.infrastructure.stubs import InMemorySigningStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
ACTOR = ActorContext(
    user_id="owner-1", network=NetworkContext(ip_address="198.51.100.7", user_agent="cli")
)


@pytest.fixture
def store() -> InMemorySigningStore:
    return InMemorySigningStore()


@pytest.fixture
def service(store: InMemorySigningStore) -> AuditTrailService:
    return AuditTrailService(store)


async def _record_many(store: InMemorySigningStore, service: AuditTrailService, count: int) -> None:
    for index in range(count):
        async with store.begin("env-1") as uow:
            await service.record(
                uow,
                "env-1",
                AuditEventType.ENVELOPE_UPDATED,
                f"Update {index}",
                ACTOR,
                metadata={"index": index},
                occurred_at=NOW + timedelta(seconds=index),
            )


class TestRecord:
    """Tests for AuditTrailService.record."""

    @pytest.mark.asyncio
    async def test_first_event_starts_at_genesis(
        self, store: InMemorySigningStore, service: AuditTrailService
    ) -> None:
        """Sequence 1 links to the genesis hash."""
        async with store.begin("env-1") as uow:
            event = await service.record(
                uow, "env-1", AuditEventType.ENVELOPE_CREATED, "Created", ACTOR, occurred_at=NOW
            )
        assert event.sequence == 1
        assert event.previous_hash == GENESIS_HASH
        assert event.previous_event_id is None
        assert event.actor == "user:owner-1"
        assert event.network["ip_address"] == "198.51.100.7"

    @pytest.mark.asyncio
    async def test_events_in_one_unit_of_work_chain(
        self, store: InMemorySigningStore, service: AuditTrailService
    ) -> None:
        """Staged events see each other as head."""
        async with store.begin("env-1") as uow:
            first = await service.record(
                uow, "env-1", AuditEventType.ENVELOPE_CREATED, "Created", ACTOR, occurred_at=NOW
            )
            second = await service.record(
                uow, "env-1", AuditEventType.SIGNER_ADDED, "Added", ACTOR, signer_id="s-1"
            )
        assert second.sequence == 2
        assert second.previous_event_id == first.id
        assert second.previous_hash == first.content_hash

    @pytest.mark.asyncio
    async def test_rolled_back_events_vanish(
        self, store: InMemorySigningStore, service: AuditTrailService
    ) -> None:
        """An aborted unit of work leaves the chain unchanged."""
        with pytest.raises(RuntimeError):
            async with store.begin("env-1") as uow:
                await service.record(
                    uow, "env-1", AuditEventType.ENVELOPE_CREATED, "Created", ACTOR
                )
                raise RuntimeError("abort")
        assert store.audit_events == {}


class TestListPage:
    """Tests for AuditTrailService.list_page."""

    @pytest.mark.asyncio
    async def test_pages_until_exhausted(
        self, store: InMemorySigningStore, service: AuditTrailService
    ) -> None:
        """Three pages of two cover five events."""
        await _record_many(store, service, 5)
        seen: list[int] = []
        cursor = None
        pages = 0
        while True:
            async with store.begin() as uow:
                page = await service.list_page(uow, "env-1", 2, cursor)
            pages += 1
            seen.extend(e.sequence for e in page.events)
            if page.next_cursor is None:
                break
            cursor = page.next_cursor
        assert seen == [1, 2, 3, 4, 5]
        assert pages == 3

    @pytest.mark.asyncio
    async def test_bad_cursor(
        self, store: InMemorySigningStore, service: AuditTrailService
    ) -> None:
        """A cursor of the wrong kind is rejected."""
        async with store.begin() as uow:
            with pytest.raises(InvalidPaginationCursorError):
                await service.list_page(uow, "env-1", 2, "bm90LWEtY3Vyc29y")


class TestVerify:
    """Tests for AuditTrailService.verify."""

    @pytest.mark.asyncio
    async def test_verifies_whole_chain(
        self, store: InMemorySigningStore, service: AuditTrailService
    ) -> None:
        """The count of verified events is returned."""
        await _record_many(store, service, 4)
        assert await service.verify("env-1") == 4

    @pytest.mark.asyncio
    async def test_empty_chain(self, service: AuditTrailService) -> None:
        """An envelope without events verifies trivially."""
        assert await service.verify("env-unknown") == 0

    @pytest.mark.asyncio
    async def test_metadata_tampering_detected(
        self, store: InMemorySigningStore, service: AuditTrailService
    ) -> None:
        """Changing metadata breaks the event's own hash."""
        await _record_many(store, service, 3)
        chain = store.audit_events["env-1"]
        chain[2] = replace(chain[2], metadata={"index": 99})
        with pytest.raises(AuditChainBrokenError) as exc_info:
            await service.verify("env-1")
        assert exc_info.value.sequence == 3

    @pytest.mark.asyncio
    async def test_deleted_event_detected(
        self, store: InMemorySigningStore, service: AuditTrailService
    ) -> None:
        """Removing an event leaves a sequence gap."""
        await _record_many(store, service, 3)
        del store.audit_events["env-1"][1]
        with pytest.raises(AuditChainBrokenError):
            await service.verify("env-1")
