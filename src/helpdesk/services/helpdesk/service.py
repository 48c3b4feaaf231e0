"""Helpdesk service: the facade the API and background tasks call.

Every mutation follows the same path:
1. Load the ticket copy and remember the version that was read
2. Apply the approval engine or lifecycle router to the copy
3. Compare-and-swap it into the store under the read version
4. Dispatch notification and audit once the store accepted it
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from helpdesk.core.config import Settings, get_settings
from helpdesk.services.audit import (
    AuditAction,
    AuditCategory,
    AuditEntry,
    get_audit_logger,
)
from helpdesk.services.helpdesk.approval import ApprovalEngine
from helpdesk.services.helpdesk.directory import EmployeeDirectory, Specialist
from helpdesk.services.helpdesk.dispatcher import TransitionDispatcher
from helpdesk.services.helpdesk.errors import (
    AuthorizationError,
    HelpdeskError,
    NotFoundError,
)
from helpdesk.services.helpdesk.lifecycle import LifecycleRouter
from helpdesk.services.helpdesk.policy import PolicyCatalog
from helpdesk.services.helpdesk.schemas import (
    PENDING_APPROVAL_STATUSES,
    PROCESSING_STATUSES,
    TERMINAL_STATUSES,
    Actor,
    ActorRole,
    AssigneeSuggestion,
    AutoCloseResult,
    BulkItemResult,
    BulkResult,
    HighLevelCategory,
    HistoryEntry,
    OverdueTicket,
    PaginationMeta,
    PendingApprovalItem,
    ProgressState,
    SLASweepResult,
    StatsBuckets,
    StatsTab,
    Ticket,
    TicketAction,
    TicketCreate,
    TicketListResponse,
    TicketStatus,
    TransitionEvent,
)
from helpdesk.services.helpdesk.sla import SLACalculator, SLAConfig
from helpdesk.services.helpdesk.stats import StatsAggregator
from helpdesk.services.helpdesk.store import InMemoryTicketStore, TicketStore
from helpdesk.services.notifications import get_notification_service

logger = logging.getLogger(__name__)


class HelpdeskService:
    """Orchestrates ticket submission, approval and lifecycle actions."""

    def __init__(
        self,
        store: TicketStore | None = None,
        catalog: PolicyCatalog | None = None,
        sla: SLACalculator | None = None,
        router: LifecycleRouter | None = None,
        approvals: ApprovalEngine | None = None,
        stats: StatsAggregator | None = None,
        directory: EmployeeDirectory | None = None,
        dispatcher: TransitionDispatcher | None = None,
    ):
        """Initialize helpdesk service.

        @param store - Ticket store (in-memory if None)
        @param catalog - Sub-category policy catalog (defaults if None)
        @param sla - SLA calculator
        @param router - Lifecycle router
        @param approvals - Approval engine
        @param stats - Stats aggregator
        @param directory - Employee directory for assignee suggestions
        @param dispatcher - Side-effect dispatcher
        """
        self.store = store or InMemoryTicketStore()
        self.catalog = catalog or PolicyCatalog()
        self.sla = sla or SLACalculator()
        self.router = router or LifecycleRouter()
        self.approvals = approvals or ApprovalEngine()
        self.stats_aggregator = stats or StatsAggregator()
        self.directory = directory or EmployeeDirectory()
        self.dispatcher = dispatcher or TransitionDispatcher(
            get_notification_service(), get_audit_logger()
        )

    # Internals

    async def _load(self, ticket_id: str) -> Ticket:
        ticket = await self.store.get(ticket_id)
        if ticket is None:
            raise NotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    @staticmethod
    def _recipients(ticket: Ticket, actor: Actor) -> list[str]:
        candidates = [ticket.requester_id, ticket.assigned_to]
        frontier = ticket.frontier()
        if frontier is not None:
            candidates.append(frontier.manager_id)
        recipients: list[str] = []
        for employee_id in candidates:
            if employee_id and employee_id != actor.id and employee_id not in recipients:
                recipients.append(employee_id)
        return recipients

    async def _mutate(
        self,
        ticket_id: str,
        actor: Actor,
        action: TicketAction,
        apply: Callable[[Ticket], Ticket],
        key: Callable[[Ticket], str] | None = None,
        details: dict | None = None,
    ) -> Ticket:
        ticket = await self._load(ticket_id)
        read_version = ticket.version
        previous = ticket.status

        updated = apply(ticket)
        saved = await self.store.save(updated, expected_version=read_version)

        event_key = key(saved) if key else (
            f"{saved.id}:v{saved.version}:{saved.status.value}"
        )
        await self.dispatcher.dispatch(
            TransitionEvent(
                key=event_key,
                ticket_id=saved.id,
                ticket_number=saved.ticket_number,
                action=action,
                actor_id=actor.id,
                previous_status=previous,
                new_status=saved.status,
                recipients=self._recipients(saved, actor),
                details=details or {},
                occurred_at=saved.updated_at,
            )
        )
        return self.sla.with_sla(saved)

    # Submission

    async def submit(self, data: TicketCreate, requester: Actor) -> Ticket:
        """Create a ticket and route it into approval or the work queue.

        @param data - Ticket details
        @param requester - Submitting employee
        @returns Created ticket
        @raises ValidationError if the sub-category is unknown
        """
        policy = self.catalog.get(data.high_level_category, data.sub_category)
        now = datetime.now(timezone.utc)

        ticket = Ticket(
            id=f"TKT-{uuid.uuid4().hex[:12].upper()}",
            ticket_number=await self.store.next_ticket_number(),
            high_level_category=data.high_level_category,
            sub_category=data.sub_category,
            urgency=data.urgency,
            subject=data.subject,
            description=data.description,
            status=TicketStatus.SUBMITTED,
            approval_flow=policy.build_approval_flow(data.requester_manager_id),
            specialist_queue=policy.specialist_queue,
            requester_id=requester.id,
            requester_name=requester.name,
            requester_department=data.requester_department or requester.department,
            requester_manager_id=data.requester_manager_id,
            created_at=now,
            updated_at=now,
        )
        self.router.route_submitted(ticket, requester, now)
        saved = await self.store.add(ticket)

        logger.info(
            f"Submitted ticket {saved.ticket_number} ({saved.id}) "
            f"{saved.high_level_category.value}/{saved.sub_category} -> {saved.status.value}"
        )
        await self.dispatcher.dispatch(
            TransitionEvent(
                key=f"{saved.id}:v{saved.version}:{saved.status.value}",
                ticket_id=saved.id,
                ticket_number=saved.ticket_number,
                action=TicketAction.SUBMITTED,
                actor_id=requester.id,
                previous_status=None,
                new_status=saved.status,
                recipients=self._recipients(saved, requester),
                details={"urgency": saved.urgency.value},
                occurred_at=now,
            )
        )
        return self.sla.with_sla(saved)

    # Approval

    async def approve(
        self,
        ticket_id: str,
        level: int,
        actor: Actor,
        remarks: str | None = None,
        expected_version: int | None = None,
    ) -> Ticket:
        """Approve the pending step at ``level``; the last level routes the ticket."""

        def apply(ticket: Ticket) -> Ticket:
            now = datetime.now(timezone.utc)
            self.approvals.approve(
                ticket, level, actor, remarks, expected_version=expected_version, now=now
            )
            if ticket.status == TicketStatus.APPROVED:
                self.router.route_approved(ticket, now)
            return ticket

        return await self._mutate(
            ticket_id,
            actor,
            TicketAction.APPROVED,
            apply,
            key=lambda t: f"{t.id}:L{level}:Approved",
            details={"level": level, "remarks": remarks},
        )

    async def reject(
        self,
        ticket_id: str,
        level: int,
        actor: Actor,
        remarks: str | None,
        expected_version: int | None = None,
    ) -> Ticket:
        """Reject the pending step at ``level``; the ticket becomes terminal."""
        return await self._mutate(
            ticket_id,
            actor,
            TicketAction.REJECTED,
            lambda t: self.approvals.reject(
                t, level, actor, remarks, expected_version=expected_version
            ),
            key=lambda t: f"{t.id}:L{level}:Rejected",
            details={"level": level, "remarks": remarks},
        )

    async def pending_approvals(self, actor: Actor) -> list[PendingApprovalItem]:
        """Approver inbox.

        Lists tickets whose live step the actor can resolve, plus tickets
        where the actor is named on a later step (``can_act`` False).

        @param actor - Approver
        @returns Items sorted by approval deadline, most urgent first
        """
        tickets = await self.store.find(statuses=set(PENDING_APPROVAL_STATUSES))
        items = []
        for ticket in tickets:
            frontier = ticket.frontier()
            if frontier is None:
                continue
            can_act = self.approvals.can_act(frontier, actor)
            waiting_on_earlier = any(
                s.level > frontier.level and s.manager_id == actor.id
                for s in ticket.approval_flow
            )
            if not can_act and not waiting_on_earlier:
                continue
            items.append(
                PendingApprovalItem(
                    ticket_id=ticket.id,
                    ticket_number=ticket.ticket_number,
                    subject=ticket.subject,
                    requester_id=ticket.requester_id,
                    requester_name=ticket.requester_name,
                    urgency=ticket.urgency,
                    level=frontier.level,
                    can_act=can_act,
                    deadline=self.sla.approval_deadline(ticket),
                    version=ticket.version,
                    created_at=ticket.created_at,
                )
            )
        items.sort(key=lambda i: (not i.can_act, i.deadline or i.created_at))
        return items

    # Specialist actions

    async def assign(
        self,
        ticket_id: str,
        actor: Actor,
        employee_id: str,
        employee_name: str | None = None,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> Ticket:
        """Assign a routed ticket to a specialist (or to the actor)."""
        return await self._mutate(
            ticket_id,
            actor,
            TicketAction.ASSIGNED,
            lambda t: self.router.assign(
                t,
                actor,
                employee_id,
                employee_name,
                notes,
                expected_version=expected_version,
            ),
            details={"assigned_to": employee_id},
        )

    async def reassign(
        self,
        ticket_id: str,
        actor: Actor,
        employee_id: str,
        employee_name: str | None = None,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> Ticket:
        return await self._mutate(
            ticket_id,
            actor,
            TicketAction.REASSIGNED,
            lambda t: self.router.reassign(
                t,
                actor,
                employee_id,
                employee_name,
                reason,
                expected_version=expected_version,
            ),
            details={"assigned_to": employee_id, "reason": reason},
        )

    async def update_progress(
        self,
        ticket_id: str,
        actor: Actor,
        state: ProgressState,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> Ticket:
        return await self._mutate(
            ticket_id,
            actor,
            TicketAction.PROGRESS_UPDATED,
            lambda t: self.router.update_progress(
                t, actor, state, notes, expected_version=expected_version
            ),
            details={"notes": notes} if notes else None,
        )

    async def complete_work(
        self,
        ticket_id: str,
        actor: Actor,
        resolution_notes: str | None,
        expected_version: int | None = None,
    ) -> Ticket:
        return await self._mutate(
            ticket_id,
            actor,
            TicketAction.COMPLETED,
            lambda t: self.router.complete(
                t, actor, resolution_notes, expected_version=expected_version
            ),
        )

    # Requester actions

    async def confirm_completion(
        self,
        ticket_id: str,
        actor: Actor,
        feedback: str | None = None,
        expected_version: int | None = None,
    ) -> Ticket:
        return await self._mutate(
            ticket_id,
            actor,
            TicketAction.CONFIRMED,
            lambda t: self.router.confirm(
                t, actor, feedback, expected_version=expected_version
            ),
            details={"feedback": feedback} if feedback else None,
        )

    async def cancel(
        self,
        ticket_id: str,
        actor: Actor,
        reason: str | None,
        expected_version: int | None = None,
    ) -> Ticket:
        return await self._mutate(
            ticket_id,
            actor,
            TicketAction.CANCELLED,
            lambda t: self.router.cancel(
                t, actor, reason, expected_version=expected_version
            ),
            details={"reason": reason},
        )

    # Conversation

    async def add_message(
        self,
        ticket_id: str,
        actor: Actor,
        message: str | None,
        expected_version: int | None = None,
    ) -> Ticket:
        """Post a message to the ticket conversation.

        The other party (requester or assignee) is notified.

        @param ticket_id - Ticket ID
        @param actor - Sender
        @param message - Message text
        @param expected_version - Version the sender last read
        @returns Updated ticket
        """
        return await self._mutate(
            ticket_id,
            actor,
            TicketAction.MESSAGE_ADDED,
            lambda t: self.router.add_message(
                t, actor, message, expected_version=expected_version
            ),
            details={"message": message},
        )

    # Bulk

    async def _bulk(
        self, ticket_ids: list[str], action: Callable[[str], object]
    ) -> BulkResult:
        results = []
        for ticket_id in ticket_ids:
            try:
                await action(ticket_id)
                results.append(BulkItemResult(ticket_id=ticket_id, success=True))
            except HelpdeskError as e:
                results.append(
                    BulkItemResult(
                        ticket_id=ticket_id,
                        success=False,
                        error_code=e.code,
                        error=e.message,
                    )
                )
        result = BulkResult(results=results)
        logger.info(
            f"Bulk operation on {len(ticket_ids)} tickets: "
            f"{result.succeeded} succeeded, {result.failed} failed"
        )
        return result

    async def bulk_assign(
        self,
        ticket_ids: list[str],
        actor: Actor,
        employee_id: str,
        employee_name: str | None = None,
        notes: str | None = None,
    ) -> BulkResult:
        """Assign many tickets; each ticket succeeds or fails on its own."""
        return await self._bulk(
            ticket_ids,
            lambda ticket_id: self.assign(
                ticket_id, actor, employee_id, employee_name, notes
            ),
        )

    async def bulk_update_progress(
        self,
        ticket_ids: list[str],
        actor: Actor,
        state: ProgressState,
        notes: str | None = None,
    ) -> BulkResult:
        """Update progress on many tickets; each ticket succeeds or fails on its own."""
        return await self._bulk(
            ticket_ids,
            lambda ticket_id: self.update_progress(ticket_id, actor, state, notes),
        )

    # System sweeps

    async def auto_close_stale(self, now: datetime | None = None) -> AutoCloseResult:
        """Auto-close tickets left unconfirmed past the window.

        Tickets that change concurrently are skipped and picked up by the
        next sweep.
        """
        now = now or datetime.now(timezone.utc)
        system = Actor.system()
        result = AutoCloseResult()

        candidates = await self.store.find(statuses={TicketStatus.AWAITING_CONFIRMATION})
        for ticket in candidates:
            if not self.router.is_auto_close_due(ticket, now):
                continue
            try:
                await self._mutate(
                    ticket.id,
                    system,
                    TicketAction.AUTO_CLOSED,
                    lambda t: self.router.auto_close(
                        t, expected_version=ticket.version, now=now
                    ),
                )
                result.closed.append(ticket.id)
            except HelpdeskError as e:
                logger.warning(f"Skipped auto-close of {ticket.id}: {e.message}")
                result.skipped.append(ticket.id)

        if result.closed:
            logger.info(f"Auto-closed {len(result.closed)} tickets")
        return result

    async def sla_sweep(self, now: datetime | None = None) -> SLASweepResult:
        """Read-only scan for overdue tickets."""
        now = now or datetime.now(timezone.utc)
        tickets = await self.store.find(
            statuses=set(PENDING_APPROVAL_STATUSES | PROCESSING_STATUSES)
        )

        overdue = []
        for ticket in tickets:
            is_overdue, overdue_by = self.sla.overdue(ticket, now)
            if is_overdue:
                overdue.append(
                    OverdueTicket(
                        ticket_id=ticket.id,
                        ticket_number=ticket.ticket_number,
                        status=ticket.status,
                        deadline=self.sla.deadline(ticket),
                        overdue_by=overdue_by,
                    )
                )

        overdue.sort(key=lambda o: o.overdue_by, reverse=True)
        if overdue:
            self.dispatcher.audit.log(
                AuditCategory.SYSTEM_ACTION,
                AuditAction.SLA_SWEEP,
                f"{len(overdue)} of {len(tickets)} open tickets overdue",
                actor_id="SYSTEM",
                actor_type="system",
                details={"overdue": [o.ticket_number for o in overdue]},
            )
        return SLASweepResult(checked=len(tickets), overdue=overdue, checked_at=now)

    # Reads

    async def _load_visible(self, ticket_id: str, viewer: Actor | None) -> Ticket:
        ticket = await self._load(ticket_id)
        if viewer is not None:
            self.router.require_viewer(ticket, viewer)
        return ticket

    async def get_ticket(self, ticket_id: str, viewer: Actor | None = None) -> Ticket:
        """Get ticket with SLA recomputed at read time.

        @param ticket_id - Ticket ID
        @param viewer - Reader; None skips the read check (system callers)
        @returns Ticket
        """
        return self.sla.with_sla(await self._load_visible(ticket_id, viewer))

    async def get_history(
        self, ticket_id: str, viewer: Actor | None = None
    ) -> list[HistoryEntry]:
        return (await self._load_visible(ticket_id, viewer)).history

    async def audit_trail(self, ticket_id: str) -> list[AuditEntry]:
        """Audit entries recorded for a ticket, oldest first."""
        await self._load(ticket_id)
        return self.dispatcher.audit.get_ticket_trail(ticket_id)

    async def list_tickets(
        self,
        status: TicketStatus | None = None,
        category: HighLevelCategory | None = None,
        requester_id: str | None = None,
        assigned_to: str | None = None,
        include_closed: bool = True,
        page: int = 1,
        page_size: int = 20,
        viewer: Actor | None = None,
    ) -> TicketListResponse:
        """List tickets with filters.

        Non-admin viewers are scoped: specialists to their department's
        queue, everyone else to their own tickets.

        @param status - Filter by status
        @param category - Filter by high-level category
        @param requester_id - Filter by requester
        @param assigned_to - Filter by assignee
        @param include_closed - Include terminal tickets when no status is given
        @param page - Page number
        @param page_size - Items per page
        @param viewer - Reader; None lists without scoping (system callers)
        @returns Paginated ticket list
        """
        if viewer is not None and not viewer.is_admin:
            queues = {c.value: c for c in HighLevelCategory}
            if viewer.role == ActorRole.SPECIALIST and viewer.department in queues:
                own = queues[viewer.department]
                if category is not None and category != own:
                    raise AuthorizationError(
                        f"{viewer.id} cannot view tickets of the {category.value} queue"
                    )
                category = own
            else:
                if requester_id is not None and requester_id != viewer.id:
                    raise AuthorizationError("You can only view your own tickets")
                requester_id = viewer.id

        statuses = None
        if status is not None:
            statuses = {status}
        elif not include_closed:
            statuses = set(TicketStatus) - TERMINAL_STATUSES

        tickets = await self.store.find(
            statuses=statuses,
            category=category,
            requester_id=requester_id,
            assigned_to=assigned_to,
        )

        total_items = len(tickets)
        total_pages = (
            (total_items + page_size - 1) // page_size if total_items > 0 else 0
        )
        start_idx = (page - 1) * page_size
        now = datetime.now(timezone.utc)
        items = [
            self.sla.with_sla(t, now) for t in tickets[start_idx : start_idx + page_size]
        ]

        return TicketListResponse(
            items=items,
            meta=PaginationMeta(
                page=page,
                page_size=page_size,
                total_items=total_items,
                total_pages=total_pages,
            ),
        )

    async def stats(
        self,
        viewer: Actor,
        tab: StatsTab | None = None,
        department: str | None = None,
    ) -> StatsBuckets:
        """KPI buckets for the viewer's dashboard."""
        tickets = await self.store.find()
        return self.stats_aggregator.bucket(tickets, viewer, tab, department)

    async def suggest_assignee(
        self, ticket_id: str, viewer: Actor | None = None
    ) -> AssigneeSuggestion | None:
        """Suggest the least-loaded specialist for a ticket."""
        ticket = await self._load_visible(ticket_id, viewer)
        open_tickets = await self.store.find(
            statuses={
                TicketStatus.ASSIGNED,
                TicketStatus.IN_PROGRESS,
                TicketStatus.ON_HOLD,
            }
        )
        return self.directory.suggest(ticket, open_tickets)


def build_helpdesk_service(settings: Settings | None = None) -> HelpdeskService:
    """Wire a service from settings.

    @param settings - Application settings (cached settings if None)
    @returns Configured service
    """
    settings = settings or get_settings()

    audit_sink = None
    if settings.ticket_store_backend == "database":
        from helpdesk.services.helpdesk.db_store import (
            DatabaseAuditSink,
            DatabaseTicketStore,
        )

        store: TicketStore = DatabaseTicketStore()
        audit_sink = DatabaseAuditSink()
    else:
        store = InMemoryTicketStore()

    catalog = (
        PolicyCatalog.from_file(settings.subcategory_policy_file)
        if settings.subcategory_policy_file
        else PolicyCatalog()
    )

    directory = EmployeeDirectory()
    if settings.specialist_directory_file:
        raw = json.loads(Path(settings.specialist_directory_file).read_text("utf-8"))
        for item in raw:
            directory.register(Specialist.model_validate(item))

    return HelpdeskService(
        store=store,
        catalog=catalog,
        sla=SLACalculator(SLAConfig.from_settings(settings)),
        router=LifecycleRouter(auto_close_hours=settings.auto_close_hours),
        directory=directory,
        dispatcher=TransitionDispatcher(
            get_notification_service(), get_audit_logger(), audit_sink=audit_sink
        ),
    )


# Singleton instance
_helpdesk_service: HelpdeskService | None = None


def get_helpdesk_service() -> HelpdeskService:
    """Get or create helpdesk service singleton.

    @returns HelpdeskService instance
    """
    global _helpdesk_service
    if _helpdesk_service is None:
        _helpdesk_service = build_helpdesk_service()
    return _helpdesk_service


def reset_helpdesk_service() -> None:
    """Reset helpdesk service singleton (for testing)."""
    global _helpdesk_service
    _helpdesk_service = None
