"""PostgreSQL ticket store and audit sink."""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.infrastructure.database import get_session_factory
from helpdesk.models.ticket import HelpdeskTicket, TicketApprovalStep, TicketHistory
from helpdesk.repositories import AuditLogRepository, TicketRepository
from helpdesk.services.audit.schemas import AuditEntry
from helpdesk.services.helpdesk.errors import ConflictError, NotFoundError
from helpdesk.services.helpdesk.schemas import (
    ApprovalStep,
    HighLevelCategory,
    HistoryEntry,
    Ticket,
    TicketStatus,
)
from helpdesk.services.helpdesk.store import TicketStore, format_ticket_number

logger = logging.getLogger(__name__)

# Columns written on every save; identity and creation data never change.
MUTABLE_COLUMNS = (
    "status",
    "assigned_to",
    "assigned_to_name",
    "resolution_notes",
    "feedback",
    "cancellation_reason",
    "closing_reason",
    "routed_at",
    "awaiting_confirmation_at",
    "closed_at",
)


def step_values(step: ApprovalStep) -> dict[str, Any]:
    return {
        "level": step.level,
        "manager_id": step.manager_id,
        "manager_name": step.manager_name,
        "status": step.status.value,
        "approver_id": step.approver_id,
        "approver_name": step.approver_name,
        "remarks": step.remarks,
        "resolved_at": step.resolved_at,
    }


def conversation_values(ticket: Ticket) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json") for m in ticket.conversation]


def history_values(entry: HistoryEntry) -> dict[str, Any]:
    return {
        "action": entry.action.value,
        "actor_id": entry.actor_id,
        "actor_name": entry.actor_name,
        "previous_status": entry.previous_status.value if entry.previous_status else None,
        "new_status": entry.new_status.value,
        "details": entry.details,
        "timestamp": entry.timestamp,
    }


def ticket_to_row(ticket: Ticket) -> HelpdeskTicket:
    """Build a new ORM row, children included."""
    return HelpdeskTicket(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        high_level_category=ticket.high_level_category.value,
        sub_category=ticket.sub_category,
        urgency=ticket.urgency.value,
        specialist_queue=ticket.specialist_queue,
        subject=ticket.subject,
        description=ticket.description,
        status=ticket.status.value,
        version=ticket.version,
        requester_id=ticket.requester_id,
        requester_name=ticket.requester_name,
        requester_department=ticket.requester_department,
        requester_manager_id=ticket.requester_manager_id,
        assigned_to=ticket.assigned_to,
        assigned_to_name=ticket.assigned_to_name,
        resolution_notes=ticket.resolution_notes,
        feedback=ticket.feedback,
        cancellation_reason=ticket.cancellation_reason,
        closing_reason=ticket.closing_reason,
        routed_at=ticket.routed_at,
        awaiting_confirmation_at=ticket.awaiting_confirmation_at,
        closed_at=ticket.closed_at,
        conversation=conversation_values(ticket),
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
        approval_steps=[TicketApprovalStep(**step_values(s)) for s in ticket.approval_flow],
        history=[TicketHistory(**history_values(h)) for h in ticket.history],
    )


def row_to_ticket(row: HelpdeskTicket) -> Ticket:
    """Map an ORM row back to the domain model."""
    return Ticket(
        id=row.id,
        ticket_number=row.ticket_number,
        high_level_category=row.high_level_category,
        sub_category=row.sub_category,
        urgency=row.urgency,
        specialist_queue=row.specialist_queue,
        subject=row.subject,
        description=row.description,
        status=row.status,
        version=row.version,
        requester_id=row.requester_id,
        requester_name=row.requester_name,
        requester_department=row.requester_department,
        requester_manager_id=row.requester_manager_id,
        assigned_to=row.assigned_to,
        assigned_to_name=row.assigned_to_name,
        resolution_notes=row.resolution_notes,
        feedback=row.feedback,
        cancellation_reason=row.cancellation_reason,
        closing_reason=row.closing_reason,
        routed_at=row.routed_at,
        awaiting_confirmation_at=row.awaiting_confirmation_at,
        closed_at=row.closed_at,
        conversation=row.conversation or [],
        created_at=row.created_at,
        updated_at=row.updated_at,
        approval_flow=[
            ApprovalStep(
                level=s.level,
                manager_id=s.manager_id,
                manager_name=s.manager_name,
                status=s.status,
                approver_id=s.approver_id,
                approver_name=s.approver_name,
                remarks=s.remarks,
                resolved_at=s.resolved_at,
            )
            for s in sorted(row.approval_steps, key=lambda s: s.level)
        ],
        history=[
            HistoryEntry(
                action=h.action,
                actor_id=h.actor_id,
                actor_name=h.actor_name,
                previous_status=h.previous_status,
                new_status=h.new_status,
                details=h.details,
                timestamp=h.timestamp,
            )
            for h in row.history
        ],
    )


class DatabaseTicketStore(TicketStore):
    """Ticket store backed by PostgreSQL.

    ``save`` issues ``UPDATE ... WHERE id = :id AND version = :expected`` so
    concurrent writers across processes are serialized by the database.
    """

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] | None = None
    ):
        """Initialize store.

        @param session_factory - Session factory (application factory if None)
        """
        self._session_factory = session_factory

    def _session(self) -> AsyncSession:
        factory = self._session_factory or get_session_factory()
        return factory()

    async def get(self, ticket_id: str) -> Ticket | None:
        async with self._session() as session:
            row = await TicketRepository(session).get_by_id(ticket_id)
            return row_to_ticket(row) if row else None

    async def add(self, ticket: Ticket) -> Ticket:
        async with self._session() as session:
            async with session.begin():
                repo = TicketRepository(session)
                if await repo.current_version(ticket.id) is not None:
                    raise ConflictError(f"Ticket {ticket.id} already exists")
                await repo.create(ticket_to_row(ticket))
        return ticket.model_copy(deep=True, update={"sla": None})

    async def save(self, ticket: Ticket, expected_version: int) -> Ticket:
        now = datetime.now(timezone.utc)
        values = {
            column: getattr(ticket, column)
            for column in MUTABLE_COLUMNS
        }
        values["status"] = ticket.status.value
        values["conversation"] = conversation_values(ticket)
        values["updated_at"] = now

        async with self._session() as session:
            async with session.begin():
                repo = TicketRepository(session)
                updated = await repo.update_versioned(ticket.id, expected_version, values)
                if updated == 0:
                    current = await repo.current_version(ticket.id)
                    if current is None:
                        raise NotFoundError(f"Ticket {ticket.id} not found")
                    logger.info(
                        f"Version conflict on {ticket.id}: "
                        f"expected {expected_version}, stored {current}"
                    )
                    raise ConflictError(
                        f"Ticket {ticket.id} was modified concurrently "
                        f"(expected version {expected_version}, found {current})"
                    )

                await repo.replace_steps(
                    ticket.id, [step_values(s) for s in ticket.approval_flow]
                )
                stored_history = await repo.history_count(ticket.id)
                await repo.append_history(
                    ticket.id,
                    [history_values(h) for h in ticket.history[stored_history:]],
                )

        return ticket.model_copy(
            deep=True,
            update={"version": expected_version + 1, "updated_at": now, "sla": None},
        )

    async def find(
        self,
        *,
        statuses: set[TicketStatus] | None = None,
        category: HighLevelCategory | None = None,
        requester_id: str | None = None,
        assigned_to: str | None = None,
    ) -> list[Ticket]:
        async with self._session() as session:
            rows = await TicketRepository(session).find(
                statuses=[s.value for s in statuses] if statuses is not None else None,
                category=category.value if category else None,
                requester_id=requester_id,
                assigned_to=assigned_to,
            )
            return [row_to_ticket(row) for row in rows]

    async def next_ticket_number(self) -> str:
        async with self._session() as session:
            async with session.begin():
                sequence = await TicketRepository(session).next_sequence()
        return format_ticket_number(sequence)


class DatabaseAuditSink:
    """Persists audit entries to ``audit_logs``, once per transition key."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] | None = None
    ):
        self._session_factory = session_factory

    async def __call__(self, entry: AuditEntry) -> None:
        factory = self._session_factory or get_session_factory()
        async with factory() as session:
            async with session.begin():
                repo = AuditLogRepository(session)
                if entry.correlation_id and await repo.get_by_correlation(
                    entry.correlation_id
                ):
                    logger.debug(f"Audit entry {entry.correlation_id} already stored")
                    return
                await repo.create(
                    {
                        "entry_id": entry.entry_id,
                        "category": entry.category.value,
                        "action": entry.action.value,
                        "severity": entry.severity.value,
                        "resource_type": entry.resource_type,
                        "resource_id": entry.resource_id,
                        "description": entry.description,
                        "actor_id": entry.actor_id,
                        "actor_type": entry.actor_type,
                        "old_status": entry.old_status,
                        "new_status": entry.new_status,
                        "details": entry.details,
                        "correlation_id": entry.correlation_id,
                        "created_at": entry.timestamp,
                    }
                )
