"""Tests for the helpdesk service facade."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from helpdesk.services.audit import AuditAction, AuditLogger, AuditQuery
from helpdesk.services.helpdesk.directory import EmployeeDirectory, Specialist
from helpdesk.services.helpdesk.dispatcher import TransitionDispatcher
from helpdesk.services.helpdesk.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from helpdesk.services.helpdesk.policy import (
    ApproverConfig,
    PolicyCatalog,
    SubCategoryPolicy,
)
from helpdesk.services.helpdesk.schemas import (
    Actor,
    ActorRole,
    ApprovalStepStatus,
    HighLevelCategory,
    ProgressState,
    StatsTab,
    TicketAction,
    TicketCreate,
    TicketStatus,
    Urgency,
)
from helpdesk.services.helpdesk.service import HelpdeskService, build_helpdesk_service
from helpdesk.services.helpdesk.store import InMemoryTicketStore
from helpdesk.services.notifications import NotificationService

L2_MANAGER = Actor(id="M2", name="Max", role=ActorRole.MANAGER, approval_level=2)
L3_MANAGER = Actor(id="M3", name="Meg", role=ActorRole.MANAGER, approval_level=3)
OUTSIDER = Actor(id="E555", name="Eve", role=ActorRole.EMPLOYEE)


def new_ticket(sub_category: str = "Hardware", **overrides) -> TicketCreate:
    data = {
        "high_level_category": HighLevelCategory.IT,
        "sub_category": sub_category,
        "urgency": Urgency.MEDIUM,
        "subject": "Laptop screen flickers",
        "requester_manager_id": "M1",
    }
    data.update(overrides)
    return TicketCreate(**data)


class ServiceTestBase:
    """Builds an isolated service per test."""

    def setup_method(self):
        """Set up test fixtures."""
        self.audit = AuditLogger()
        self.notifications = NotificationService()
        self.store = InMemoryTicketStore()
        self.directory = EmployeeDirectory(
            [
                Specialist(
                    employee_id="S200", name="Sam", department="IT",
                    queues=["Hardware Team"], capacity=3,
                ),
                Specialist(
                    employee_id="S300", name="Tina", department="IT",
                    queues=["Hardware Team"], capacity=3,
                ),
            ]
        )
        self.service = HelpdeskService(
            store=self.store,
            directory=self.directory,
            dispatcher=TransitionDispatcher(self.notifications, self.audit),
        )

    def trail(self, ticket_id: str) -> list[AuditAction]:
        return [e.action for e in self.audit.get_ticket_trail(ticket_id)]


class TestSubmit(ServiceTestBase):
    """Tests for ticket submission."""

    @pytest.mark.asyncio
    async def test_submit_with_approval(self, requester):
        ticket = await self.service.submit(new_ticket("Access Request"), requester)

        assert ticket.status == TicketStatus.PENDING_APPROVAL_L1
        assert ticket.ticket_number == "TKT0001"
        assert ticket.id.startswith("TKT-")
        assert ticket.version == 1
        assert [s.level for s in ticket.approval_flow] == [1, 2, 3]
        assert ticket.approval_flow[0].manager_id == "M1"
        assert ticket.specialist_queue == "Security Team"
        assert ticket.sla.approval_deadline is not None
        assert self.trail(ticket.id) == [AuditAction.TICKET_SUBMITTED]

    @pytest.mark.asyncio
    async def test_submit_without_approval_routes(self, requester):
        ticket = await self.service.submit(new_ticket("Network / Connectivity"), requester)

        assert ticket.status == TicketStatus.ROUTED
        assert ticket.routed_at is not None
        assert ticket.sla.processing_deadline is not None

    @pytest.mark.asyncio
    async def test_submit_unknown_sub_category(self, requester):
        with pytest.raises(ValidationError, match="unknown sub-category"):
            await self.service.submit(new_ticket("Plumbing"), requester)

    @pytest.mark.asyncio
    async def test_ticket_numbers_are_sequential(self, requester):
        first = await self.service.submit(new_ticket(), requester)
        second = await self.service.submit(new_ticket(), requester)

        assert (first.ticket_number, second.ticket_number) == ("TKT0001", "TKT0002")


class TestApprovalFlow(ServiceTestBase):
    """Tests for approval through the service."""

    @pytest.mark.asyncio
    async def test_rejection_leaves_higher_level_unreachable(self, requester, manager):
        ticket = await self.service.submit(new_ticket("Access Request"), requester)

        ticket = await self.service.approve(ticket.id, 1, manager, "fine")
        assert ticket.status == TicketStatus.PENDING_APPROVAL_L2

        ticket = await self.service.reject(ticket.id, 2, L2_MANAGER, "budget exceeded")
        assert ticket.status == TicketStatus.REJECTED
        assert ticket.step(3).status == ApprovalStepStatus.PENDING

        with pytest.raises(ValidationError, match="approval not found or already processed"):
            await self.service.approve(ticket.id, 3, L3_MANAGER)

    @pytest.mark.asyncio
    async def test_level_two_before_level_one(self, requester):
        ticket = await self.service.submit(new_ticket("Access Request"), requester)

        with pytest.raises(ValidationError, match="approval not found or already processed"):
            await self.service.approve(ticket.id, 2, L2_MANAGER)

    @pytest.mark.asyncio
    async def test_reject_with_empty_remarks_changes_nothing(self, requester, manager):
        ticket = await self.service.submit(new_ticket("Access Request"), requester)

        with pytest.raises(ValidationError):
            await self.service.reject(ticket.id, 1, manager, "")

        stored = await self.service.get_ticket(ticket.id)
        assert stored.status == TicketStatus.PENDING_APPROVAL_L1
        assert stored.step(1).status == ApprovalStepStatus.PENDING
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_last_approval_routes_in_one_step(self, requester, manager):
        ticket = await self.service.submit(new_ticket(), requester)

        ticket = await self.service.approve(ticket.id, 1, manager)

        assert ticket.status == TicketStatus.ROUTED
        assert ticket.version == 2
        assert [h.action for h in ticket.history[-2:]] == [
            TicketAction.APPROVED,
            TicketAction.ROUTED,
        ]
        assert self.trail(ticket.id) == [
            AuditAction.TICKET_SUBMITTED,
            AuditAction.APPROVAL_APPROVED,
        ]

    @pytest.mark.asyncio
    async def test_concurrent_approvals_one_wins(self, requester, manager):
        ticket = await self.service.submit(new_ticket("Software"), requester)

        results = await asyncio.gather(
            self.service.approve(ticket.id, 1, manager, expected_version=1),
            self.service.approve(ticket.id, 1, manager, expected_version=1),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(winners) == 1
        assert len(conflicts) == 1
        assert winners[0].status == TicketStatus.PENDING_APPROVAL_L2

        with pytest.raises(ValidationError, match="already processed"):
            await self.service.approve(ticket.id, 1, manager)

        approvals = self.audit.query(AuditQuery(actions=[AuditAction.APPROVAL_APPROVED]))
        assert len(approvals) == 1

    @pytest.mark.asyncio
    async def test_wrong_manager(self, requester):
        ticket = await self.service.submit(new_ticket(), requester)
        other = Actor(id="M9", role=ActorRole.MANAGER, approval_level=1)

        with pytest.raises(AuthorizationError):
            await self.service.approve(ticket.id, 1, other)

    @pytest.mark.asyncio
    async def test_unknown_ticket(self, manager):
        with pytest.raises(NotFoundError):
            await self.service.approve("TKT-MISSING", 1, manager)


class TestPendingApprovals(ServiceTestBase):
    """Tests for the approver inbox."""

    def setup_method(self):
        """Set up test fixtures."""
        super().setup_method()
        self.service.catalog.register(
            SubCategoryPolicy(
                high_level_category=HighLevelCategory.FINANCE,
                sub_category="Capital Expense",
                specialist_queue="Procurement Team",
                approvers=[
                    ApproverConfig(level=1),
                    ApproverConfig(level=2, manager_id="CFO"),
                ],
            )
        )

    @pytest.mark.asyncio
    async def test_inbox(self, requester, manager):
        urgent = await self.service.submit(
            new_ticket(urgency=Urgency.CRITICAL), requester
        )
        capex = await self.service.submit(
            new_ticket(
                "Capital Expense",
                high_level_category=HighLevelCategory.FINANCE,
                urgency=Urgency.LOW,
            ),
            requester,
        )
        cfo = Actor(id="CFO", role=ActorRole.MANAGER, approval_level=2)

        mine = await self.service.pending_approvals(manager)
        cfo_inbox = await self.service.pending_approvals(cfo)

        assert [i.ticket_id for i in mine] == [urgent.id, capex.id]
        assert all(i.can_act for i in mine)
        assert [(i.ticket_id, i.can_act, i.level) for i in cfo_inbox] == [
            (capex.id, False, 1)
        ]

        await self.service.approve(capex.id, 1, manager)
        cfo_inbox = await self.service.pending_approvals(cfo)
        assert [(i.level, i.can_act) for i in cfo_inbox] == [(2, True)]

    @pytest.mark.asyncio
    async def test_inbox_empty_for_unrelated_manager(self, requester):
        await self.service.submit(new_ticket(), requester)

        assert await self.service.pending_approvals(L3_MANAGER) == []


class TestWorkLifecycle(ServiceTestBase):
    """Tests for specialist and requester actions."""

    async def routed(self, requester):
        return await self.service.submit(new_ticket("Network / Connectivity"), requester)

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, requester, it_specialist):
        ticket = await self.routed(requester)

        ticket = await self.service.assign(ticket.id, it_specialist, it_specialist.id)
        ticket = await self.service.update_progress(
            ticket.id, it_specialist, ProgressState.IN_PROGRESS
        )
        ticket = await self.service.update_progress(
            ticket.id, it_specialist, ProgressState.ON_HOLD, "Waiting for vendor"
        )
        ticket = await self.service.update_progress(
            ticket.id, it_specialist, ProgressState.IN_PROGRESS
        )
        ticket = await self.service.complete_work(
            ticket.id, it_specialist, "Replaced switch port"
        )
        assert ticket.status == TicketStatus.AWAITING_CONFIRMATION

        ticket = await self.service.confirm_completion(ticket.id, requester, "Works now")

        assert ticket.status == TicketStatus.CLOSED
        assert ticket.version == 7
        assert ticket.feedback == "Works now"
        assert ticket.sla.status is None
        history = await self.service.get_history(ticket.id)
        assert history[-1].action == TicketAction.CLOSED
        assert self.trail(ticket.id)[-1] == AuditAction.COMPLETION_CONFIRMED

    @pytest.mark.asyncio
    async def test_stale_expected_version(self, requester, it_specialist):
        ticket = await self.routed(requester)
        await self.service.assign(ticket.id, it_specialist, "S200")

        with pytest.raises(ConflictError):
            await self.service.update_progress(
                ticket.id, it_specialist, ProgressState.IN_PROGRESS, expected_version=1
            )

    @pytest.mark.asyncio
    async def test_reassign(self, requester, it_specialist):
        ticket = await self.routed(requester)
        await self.service.assign(ticket.id, it_specialist, "S200", "Sam")

        ticket = await self.service.reassign(
            ticket.id, it_specialist, "S300", "Tina", "Out sick"
        )

        assert ticket.status == TicketStatus.ASSIGNED
        assert ticket.assigned_to == "S300"
        assert self.trail(ticket.id)[-1] == AuditAction.TICKET_REASSIGNED

    @pytest.mark.asyncio
    async def test_cancel(self, requester):
        ticket = await self.routed(requester)

        ticket = await self.service.cancel(ticket.id, requester, "Fixed itself")

        assert ticket.status == TicketStatus.CANCELLED
        with pytest.raises(ValidationError, match="can no longer change"):
            await self.service.cancel(ticket.id, requester, "again")

    @pytest.mark.asyncio
    async def test_failed_action_does_not_dispatch(self, requester, manager):
        ticket = await self.routed(requester)

        with pytest.raises(AuthorizationError):
            await self.service.assign(ticket.id, manager, "M1")

        assert self.trail(ticket.id) == [AuditAction.TICKET_SUBMITTED]


class TestConversation(ServiceTestBase):
    """Tests for ticket messages."""

    @pytest.mark.asyncio
    async def test_message_notifies_other_party(self, requester, it_specialist):
        ticket = await self.service.submit(new_ticket("Network / Connectivity"), requester)
        ticket = await self.service.assign(ticket.id, it_specialist, "S200")

        with patch.object(
            self.notifications, "notify_transition", new=AsyncMock(return_value=[])
        ) as notify:
            ticket = await self.service.add_message(ticket.id, requester, "Any news?")
            ticket = await self.service.add_message(
                ticket.id, it_specialist, "Tomorrow", expected_version=ticket.version
            )

        first, second = [c.args[0] for c in notify.await_args_list]
        assert first.action == TicketAction.MESSAGE_ADDED
        assert first.recipients == ["S200"]
        assert first.details == {"message": "Any news?"}
        assert second.recipients == ["E100"]
        assert ticket.status == TicketStatus.ASSIGNED
        assert ticket.version == 4
        assert [m.message for m in ticket.conversation] == ["Any news?", "Tomorrow"]
        assert self.trail(ticket.id)[-1] == AuditAction.MESSAGE_ADDED

    @pytest.mark.asyncio
    async def test_message_persisted(self, requester):
        ticket = await self.service.submit(new_ticket("Network / Connectivity"), requester)

        await self.service.add_message(ticket.id, requester, "Also the printer")

        stored = await self.service.get_ticket(ticket.id, requester)
        assert stored.conversation[0].sender_id == "E100"
        assert stored.history[-1].action == TicketAction.MESSAGE_ADDED

    @pytest.mark.asyncio
    async def test_outsider_cannot_post(self, requester):
        ticket = await self.service.submit(new_ticket("Network / Connectivity"), requester)

        with pytest.raises(AuthorizationError):
            await self.service.add_message(ticket.id, OUTSIDER, "Hi")

        assert self.trail(ticket.id) == [AuditAction.TICKET_SUBMITTED]


class TestBulk(ServiceTestBase):
    """Tests for bulk operations."""

    @pytest.mark.asyncio
    async def test_bulk_assign_partial_success(self, requester, it_specialist, manager):
        routed = await self.service.submit(new_ticket("Network / Connectivity"), requester)
        pending = await self.service.submit(new_ticket(), requester)

        result = await self.service.bulk_assign(
            [routed.id, pending.id, "TKT-MISSING"], it_specialist, "S200"
        )

        assert result.succeeded == 1
        assert result.failed == 2
        assert [r.error_code for r in result.results] == [
            None,
            "VALIDATION_ERROR",
            "NOT_FOUND",
        ]

    @pytest.mark.asyncio
    async def test_bulk_progress(self, requester, it_specialist):
        ids = []
        for _ in range(2):
            ticket = await self.service.submit(new_ticket("Network / Connectivity"), requester)
            await self.service.assign(ticket.id, it_specialist, "S200")
            ids.append(ticket.id)

        result = await self.service.bulk_update_progress(
            ids, it_specialist, ProgressState.IN_PROGRESS
        )

        assert result.succeeded == 2
        for ticket_id in ids:
            assert (await self.service.get_ticket(ticket_id)).status == TicketStatus.IN_PROGRESS


class TestSweeps(ServiceTestBase):
    """Tests for the background sweeps."""

    async def awaiting(self, requester, it_specialist):
        ticket = await self.service.submit(new_ticket("Network / Connectivity"), requester)
        await self.service.assign(ticket.id, it_specialist, "S200")
        await self.service.update_progress(ticket.id, it_specialist, ProgressState.IN_PROGRESS)
        return await self.service.complete_work(ticket.id, it_specialist, "Done")

    @pytest.mark.asyncio
    async def test_auto_close_stale(self, requester, it_specialist):
        ticket = await self.awaiting(requester, it_specialist)
        now = datetime.now(timezone.utc)

        early = await self.service.auto_close_stale(now + timedelta(hours=1))
        late = await self.service.auto_close_stale(now + timedelta(hours=73))

        assert early.closed == []
        assert late.closed == [ticket.id]
        closed = await self.service.get_ticket(ticket.id)
        assert closed.status == TicketStatus.AUTO_CLOSED
        assert self.trail(ticket.id)[-1] == AuditAction.TICKET_AUTO_CLOSED

    @pytest.mark.asyncio
    async def test_auto_close_skips_when_version_moved(self, requester, it_specialist):
        ticket = await self.awaiting(requester, it_specialist)
        stale = await self.store.get(ticket.id)
        await self.store.save(stale, expected_version=stale.version)
        original_find = self.store.find

        async def find_stale(**kwargs):
            return [stale]

        self.store.find = find_stale
        result = await self.service.auto_close_stale(
            datetime.now(timezone.utc) + timedelta(hours=73)
        )
        self.store.find = original_find

        assert result.skipped == [ticket.id]
        assert result.closed == []

    @pytest.mark.asyncio
    async def test_sla_sweep(self, requester):
        critical = await self.service.submit(
            new_ticket(urgency=Urgency.CRITICAL), requester
        )
        await self.service.submit(new_ticket(urgency=Urgency.LOW), requester)

        result = await self.service.sla_sweep(
            datetime.now(timezone.utc) + timedelta(hours=30)
        )

        assert result.checked == 2
        assert [o.ticket_id for o in result.overdue] == [critical.id]
        assert result.overdue[0].overdue_by > timedelta(hours=5)
        sweeps = self.audit.query(AuditQuery(actions=[AuditAction.SLA_SWEEP]))
        assert len(sweeps) == 1

    @pytest.mark.asyncio
    async def test_sla_sweep_nothing_overdue(self, requester):
        await self.service.submit(new_ticket(), requester)

        result = await self.service.sla_sweep()

        assert result.overdue == []
        assert self.audit.query(AuditQuery(actions=[AuditAction.SLA_SWEEP])) == []


class TestReads(ServiceTestBase):
    """Tests for listing, stats and suggestions."""

    @pytest.mark.asyncio
    async def test_list_tickets(self, requester, manager):
        approved = await self.service.submit(new_ticket(), requester)
        await self.service.approve(approved.id, 1, manager)
        cancelled = await self.service.submit(new_ticket(), requester)
        await self.service.cancel(cancelled.id, requester, "dup")
        await self.service.submit(
            new_ticket("Payroll Question", high_level_category=HighLevelCategory.FINANCE),
            requester,
        )

        everything = await self.service.list_tickets(page_size=2)
        open_only = await self.service.list_tickets(include_closed=False)
        routed = await self.service.list_tickets(status=TicketStatus.ROUTED)
        finance = await self.service.list_tickets(category=HighLevelCategory.FINANCE)

        assert everything.meta.total_items == 3
        assert everything.meta.total_pages == 2
        assert len(everything.items) == 2
        assert open_only.meta.total_items == 2
        assert {t.status for t in routed.items} == {TicketStatus.ROUTED}
        assert routed.meta.total_items == 2
        assert finance.meta.total_items == 1

    @pytest.mark.asyncio
    async def test_get_missing_ticket(self):
        with pytest.raises(NotFoundError, match="TKT-NOPE"):
            await self.service.get_ticket("TKT-NOPE")

    @pytest.mark.asyncio
    async def test_stats(self, requester, manager):
        first = await self.service.submit(new_ticket(), requester)
        second = await self.service.submit(new_ticket(), requester)
        await self.service.reject(first.id, 1, manager, "no")
        await self.service.cancel(second.id, requester, "dup")
        await self.service.submit(new_ticket(), requester)

        mine = await self.service.stats(requester)
        team = await self.service.stats(manager, StatsTab.MY_TEAM)

        assert (mine.total, mine.rejected, mine.cancelled, mine.in_progress) == (3, 1, 1, 1)
        assert team.total == 3

    @pytest.mark.asyncio
    async def test_suggest_assignee(self, requester, it_specialist):
        ticket = await self.service.submit(new_ticket("Hardware"), requester)
        other = await self.service.submit(new_ticket("Network / Connectivity"), requester)
        await self.service.assign(other.id, it_specialist, "S200")

        suggestion = await self.service.suggest_assignee(ticket.id)

        assert suggestion.employee_id == "S300"
        assert suggestion.open_tickets == 0

    @pytest.mark.asyncio
    async def test_reads_forbidden_for_outsider(self, requester, manager, it_specialist):
        ticket = await self.service.submit(new_ticket(), requester)

        for viewer in (requester, manager, it_specialist):
            assert (await self.service.get_ticket(ticket.id, viewer)).id == ticket.id
        with pytest.raises(AuthorizationError, match="permission to view"):
            await self.service.get_ticket(ticket.id, OUTSIDER)
        with pytest.raises(AuthorizationError):
            await self.service.get_history(ticket.id, OUTSIDER)
        with pytest.raises(AuthorizationError):
            await self.service.suggest_assignee(ticket.id, OUTSIDER)

    @pytest.mark.asyncio
    async def test_list_scoped_to_viewer(self, requester, it_specialist, admin):
        await self.service.submit(new_ticket(), requester)
        await self.service.submit(
            new_ticket("Payroll Question", high_level_category=HighLevelCategory.FINANCE),
            requester,
        )
        await self.service.submit(new_ticket(), OUTSIDER)

        own = await self.service.list_tickets(viewer=requester)
        queue = await self.service.list_tickets(viewer=it_specialist)
        everything = await self.service.list_tickets(viewer=admin)

        assert own.meta.total_items == 2
        assert queue.meta.total_items == 2
        assert {t.high_level_category for t in queue.items} == {HighLevelCategory.IT}
        assert everything.meta.total_items == 3

    @pytest.mark.asyncio
    async def test_list_other_scope_forbidden(self, requester, it_specialist):
        with pytest.raises(AuthorizationError, match="only view your own"):
            await self.service.list_tickets(requester_id="E555", viewer=requester)
        with pytest.raises(AuthorizationError):
            await self.service.list_tickets(
                category=HighLevelCategory.FINANCE, viewer=it_specialist
            )


class TestBuildService:
    """Tests for wiring the service from settings."""

    def test_memory_backend(self, settings):
        service = build_helpdesk_service(settings)

        assert isinstance(service.store, InMemoryTicketStore)
        assert service.dispatcher.audit_sink is None
        assert service.router.auto_close_after == timedelta(hours=72)

    def test_files_loaded(self, settings, tmp_path):
        specialists = tmp_path / "specialists.json"
        specialists.write_text(
            json.dumps([{"employee_id": "S1", "name": "Ann", "department": "IT"}])
        )
        policies = tmp_path / "policies.json"
        policies.write_text(
            json.dumps(
                [
                    {
                        "high_level_category": "IT",
                        "sub_category": "Laptop",
                        "specialist_queue": "Hardware Team",
                    }
                ]
            )
        )
        settings.specialist_directory_file = str(specialists)
        settings.subcategory_policy_file = str(policies)
        settings.auto_close_hours = 24

        service = build_helpdesk_service(settings)

        assert service.directory.get("S1").name == "Ann"
        assert len(service.catalog.policies()) == 1
        assert service.router.auto_close_after == timedelta(hours=24)
