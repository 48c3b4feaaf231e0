"""Tests for the in-memory ticket store."""

import asyncio

import pytest

from helpdesk.services.helpdesk.errors import ConflictError, NotFoundError
from helpdesk.services.helpdesk.schemas import HighLevelCategory, TicketStatus
from helpdesk.services.helpdesk.store import (
    InMemoryTicketStore,
    ensure_version,
    format_ticket_number,
)


class TestEnsureVersion:
    """Tests for the stale-read check."""

    def test_none_skips_check(self, ticket_factory):
        ensure_version(ticket_factory(version=5), None)

    def test_mismatch_conflicts(self, ticket_factory):
        with pytest.raises(ConflictError, match="expected 4"):
            ensure_version(ticket_factory(version=5), 4)


class TestInMemoryTicketStore:
    """Tests for InMemoryTicketStore."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = InMemoryTicketStore()

    @pytest.mark.asyncio
    async def test_add_and_get_returns_copies(self, ticket_factory):
        ticket = ticket_factory()
        await self.store.add(ticket)

        loaded = await self.store.get(ticket.id)
        loaded.subject = "changed"

        assert (await self.store.get(ticket.id)).subject == ticket.subject

    @pytest.mark.asyncio
    async def test_add_duplicate_conflicts(self, ticket_factory):
        await self.store.add(ticket_factory())

        with pytest.raises(ConflictError):
            await self.store.add(ticket_factory())

    @pytest.mark.asyncio
    async def test_get_missing(self):
        assert await self.store.get("nope") is None

    @pytest.mark.asyncio
    async def test_save_bumps_version(self, ticket_factory):
        await self.store.add(ticket_factory())
        ticket = await self.store.get("TKT-TEST0001")
        ticket.status = TicketStatus.ASSIGNED

        saved = await self.store.save(ticket, expected_version=1)

        assert saved.version == 2
        assert (await self.store.get(ticket.id)).status == TicketStatus.ASSIGNED

    @pytest.mark.asyncio
    async def test_save_stale_version_conflicts(self, ticket_factory):
        await self.store.add(ticket_factory())
        first = await self.store.get("TKT-TEST0001")
        second = await self.store.get("TKT-TEST0001")
        await self.store.save(first, expected_version=1)

        with pytest.raises(ConflictError):
            await self.store.save(second, expected_version=1)

    @pytest.mark.asyncio
    async def test_concurrent_saves_one_wins(self, ticket_factory):
        await self.store.add(ticket_factory())
        copies = [await self.store.get("TKT-TEST0001") for _ in range(5)]

        results = await asyncio.gather(
            *(self.store.save(c, expected_version=1) for c in copies),
            return_exceptions=True,
        )

        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert sum(1 for r in results if isinstance(r, ConflictError)) == 4
        assert (await self.store.get("TKT-TEST0001")).version == 2

    @pytest.mark.asyncio
    async def test_save_missing(self, ticket_factory):
        with pytest.raises(NotFoundError):
            await self.store.save(ticket_factory(), expected_version=1)

    @pytest.mark.asyncio
    async def test_find_filters_newest_first(self, ticket_factory, later):
        await self.store.add(ticket_factory(id="A", created_at=later(hours=1)))
        await self.store.add(ticket_factory(id="B", created_at=later(hours=2)))
        await self.store.add(
            ticket_factory(
                TicketStatus.CLOSED, id="C", category=HighLevelCategory.FINANCE
            )
        )

        routed = await self.store.find(statuses={TicketStatus.ROUTED})
        finance = await self.store.find(category=HighLevelCategory.FINANCE)

        assert [t.id for t in routed] == ["B", "A"]
        assert [t.id for t in finance] == ["C"]
        assert await self.store.find(requester_id="E999") == []

    @pytest.mark.asyncio
    async def test_ticket_numbers_increase(self):
        numbers = await asyncio.gather(*(self.store.next_ticket_number() for _ in range(3)))

        assert sorted(numbers) == ["TKT0001", "TKT0002", "TKT0003"]

    def test_format_ticket_number(self):
        assert format_ticket_number(42) == "TKT0042"
        assert format_ticket_number(12345) == "TKT12345"
