"""Tests for the PostgreSQL ticket store and audit sink."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from helpdesk.services.audit import AuditAction, AuditCategory, AuditEntry
from helpdesk.services.helpdesk.db_store import (
    DatabaseAuditSink,
    DatabaseTicketStore,
    row_to_ticket,
    ticket_to_row,
)
from helpdesk.services.helpdesk.errors import ConflictError, NotFoundError
from helpdesk.services.helpdesk.schemas import (
    ActorRole,
    ApprovalStepStatus,
    ConversationMessage,
    HighLevelCategory,
    HistoryEntry,
    TicketAction,
    TicketStatus,
)


def mock_session_factory() -> tuple[MagicMock, MagicMock]:
    """Session factory whose sessions and transactions propagate errors."""
    session = MagicMock()
    session.__aenter__.return_value = session
    session.__aexit__.return_value = False
    session.begin.return_value.__aexit__.return_value = False
    factory = MagicMock(return_value=session)
    return factory, session


def message(sender_id: str, role: ActorRole, text: str, at: datetime) -> ConversationMessage:
    return ConversationMessage(
        sender_id=sender_id, sender_role=role, message=text, timestamp=at
    )


def history(action: TicketAction, status: TicketStatus, at: datetime) -> HistoryEntry:
    return HistoryEntry(
        action=action, actor_id="E100", new_status=status, timestamp=at
    )


class TestRowMapping:
    """Tests for ORM row mapping."""

    def test_round_trip(self, ticket_factory, t0):
        ticket = ticket_factory(
            TicketStatus.PENDING_APPROVAL_L2,
            levels=2,
            version=3,
            history=[history(TicketAction.SUBMITTED, TicketStatus.SUBMITTED, t0)],
        )
        ticket.step(1).status = ApprovalStepStatus.APPROVED

        restored = row_to_ticket(ticket_to_row(ticket))

        assert restored == ticket

    def test_round_trip_with_conversation(self, ticket_factory, t0, later):
        ticket = ticket_factory(
            conversation=[
                message("E100", ActorRole.EMPLOYEE, "Still broken", t0),
                message("S200", ActorRole.SPECIALIST, "On my way", later(minutes=5)),
            ]
        )

        row = ticket_to_row(ticket)
        restored = row_to_ticket(row)

        assert row.conversation[0]["sender_role"] == "EMPLOYEE"
        assert restored.conversation == ticket.conversation


class TestDatabaseTicketStore:
    """Tests for DatabaseTicketStore."""

    def setup_method(self):
        """Set up test fixtures."""
        self.factory, self.session = mock_session_factory()
        self.store = DatabaseTicketStore(session_factory=self.factory)
        self.repo_patcher = patch("helpdesk.services.helpdesk.db_store.TicketRepository")
        self.repo_class = self.repo_patcher.start()
        self.repo = self.repo_class.return_value
        for method in (
            "get_by_id",
            "create",
            "current_version",
            "update_versioned",
            "replace_steps",
            "history_count",
            "append_history",
            "find",
            "next_sequence",
        ):
            setattr(self.repo, method, AsyncMock())

    def teardown_method(self):
        """Clean up patches."""
        self.repo_patcher.stop()

    @pytest.mark.asyncio
    async def test_get(self, ticket_factory):
        ticket = ticket_factory()
        self.repo.get_by_id.return_value = ticket_to_row(ticket)

        loaded = await self.store.get(ticket.id)

        assert loaded.id == ticket.id
        assert loaded.status == TicketStatus.ROUTED

    @pytest.mark.asyncio
    async def test_get_missing(self):
        self.repo.get_by_id.return_value = None

        assert await self.store.get("nope") is None

    @pytest.mark.asyncio
    async def test_add(self, ticket_factory):
        self.repo.current_version.return_value = None

        await self.store.add(ticket_factory())

        row = self.repo.create.await_args.args[0]
        assert row.id == "TKT-TEST0001"
        assert row.high_level_category == "IT"

    @pytest.mark.asyncio
    async def test_add_existing_conflicts(self, ticket_factory):
        self.repo.current_version.return_value = 1

        with pytest.raises(ConflictError):
            await self.store.add(ticket_factory())

        self.repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_save_appends_only_new_history(self, ticket_factory, t0, later):
        ticket = ticket_factory(
            TicketStatus.ASSIGNED,
            assigned_to="S200",
            version=2,
            history=[
                history(TicketAction.SUBMITTED, TicketStatus.ROUTED, t0),
                history(TicketAction.ASSIGNED, TicketStatus.ASSIGNED, later(hours=1)),
            ],
        )
        self.repo.update_versioned.return_value = 1
        self.repo.history_count.return_value = 1

        saved = await self.store.save(ticket, expected_version=2)

        assert saved.version == 3
        ticket_id, expected, values = self.repo.update_versioned.await_args.args
        assert (ticket_id, expected) == ("TKT-TEST0001", 2)
        assert values["status"] == "Assigned"
        assert values["assigned_to"] == "S200"
        appended = self.repo.append_history.await_args.args[1]
        assert [e["action"] for e in appended] == ["ASSIGNED"]

    @pytest.mark.asyncio
    async def test_save_writes_conversation(self, ticket_factory, t0):
        ticket = ticket_factory(
            version=4,
            conversation=[message("E100", ActorRole.EMPLOYEE, "Any update?", t0)],
        )
        self.repo.update_versioned.return_value = 1
        self.repo.history_count.return_value = 0

        await self.store.save(ticket, expected_version=4)

        values = self.repo.update_versioned.await_args.args[2]
        [stored] = values["conversation"]
        assert stored["sender_id"] == "E100"
        assert stored["sender_role"] == "EMPLOYEE"
        assert stored["message"] == "Any update?"
        assert datetime.fromisoformat(stored["timestamp"]) == t0

    @pytest.mark.asyncio
    async def test_save_conflict(self, ticket_factory):
        self.repo.update_versioned.return_value = 0
        self.repo.current_version.return_value = 4

        with pytest.raises(ConflictError, match="found 4"):
            await self.store.save(ticket_factory(), expected_version=3)

        self.repo.replace_steps.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_save_missing(self, ticket_factory):
        self.repo.update_versioned.return_value = 0
        self.repo.current_version.return_value = None

        with pytest.raises(NotFoundError):
            await self.store.save(ticket_factory(), expected_version=1)

    @pytest.mark.asyncio
    async def test_find_passes_values(self, ticket_factory):
        self.repo.find.return_value = [ticket_to_row(ticket_factory())]

        tickets = await self.store.find(
            statuses={TicketStatus.ROUTED}, category=HighLevelCategory.IT
        )

        assert len(tickets) == 1
        kwargs = self.repo.find.await_args.kwargs
        assert kwargs["statuses"] == ["Routed"]
        assert kwargs["category"] == "IT"

    @pytest.mark.asyncio
    async def test_next_ticket_number(self):
        self.repo.next_sequence.return_value = 7

        assert await self.store.next_ticket_number() == "TKT0007"


class TestDatabaseAuditSink:
    """Tests for DatabaseAuditSink."""

    def setup_method(self):
        """Set up test fixtures."""
        self.factory, self.session = mock_session_factory()
        self.sink = DatabaseAuditSink(session_factory=self.factory)
        self.entry = AuditEntry(
            entry_id="e1",
            timestamp=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
            category=AuditCategory.APPROVAL,
            action=AuditAction.APPROVAL_APPROVED,
            description="Ticket TKT0001: Pending Approval L1 -> Routed",
            correlation_id="TKT-1:L1:Approved",
        )

    @pytest.mark.asyncio
    async def test_writes_entry(self):
        with patch("helpdesk.services.helpdesk.db_store.AuditLogRepository") as repo_class:
            repo = repo_class.return_value
            repo.get_by_correlation = AsyncMock(return_value=None)
            repo.create = AsyncMock()

            await self.sink(self.entry)

        values = repo.create.await_args.args[0]
        assert values["action"] == "APPROVAL_APPROVED"
        assert values["severity"] == "INFO"
        assert values["correlation_id"] == "TKT-1:L1:Approved"

    @pytest.mark.asyncio
    async def test_skips_already_stored_key(self):
        with patch("helpdesk.services.helpdesk.db_store.AuditLogRepository") as repo_class:
            repo = repo_class.return_value
            repo.get_by_correlation = AsyncMock(return_value=MagicMock())
            repo.create = AsyncMock()

            await self.sink(self.entry)

        repo.create.assert_not_awaited()
