"""Repository for helpdesk ticket persistence."""

from typing import Any, Sequence

from sqlalchemy import delete, desc, func, select, update
from sqlalchemy.dialects.postgresql import insert

from helpdesk.models.ticket import (
    HelpdeskTicket,
    TicketApprovalStep,
    TicketCounter,
    TicketHistory,
)
from helpdesk.repositories.base import BaseRepository


class TicketRepository(BaseRepository[HelpdeskTicket]):
    """Repository for HelpdeskTicket database operations.

    Handles:
    - Filtered listing, newest first
    - Compare-and-swap updates on the version column
    - Approval step replacement and history appends
    - Ticket number allocation
    """

    model = HelpdeskTicket

    async def find(
        self,
        *,
        statuses: Sequence[str] | None = None,
        category: str | None = None,
        requester_id: str | None = None,
        assigned_to: str | None = None,
    ) -> Sequence[HelpdeskTicket]:
        """Get tickets matching all given filters.

        @param statuses - Allowed status values
        @param category - High-level category
        @param requester_id - Requester ID
        @param assigned_to - Assignee ID
        @returns Tickets, newest first
        """
        stmt = select(self.model)
        if statuses is not None:
            stmt = stmt.where(self.model.status.in_(list(statuses)))
        if category:
            stmt = stmt.where(self.model.high_level_category == category)
        if requester_id:
            stmt = stmt.where(self.model.requester_id == requester_id)
        if assigned_to:
            stmt = stmt.where(self.model.assigned_to == assigned_to)
        stmt = stmt.order_by(desc(self.model.created_at))
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def current_version(self, ticket_id: str) -> int | None:
        result = await self.session.execute(
            select(self.model.version).where(self.model.id == ticket_id)
        )
        return result.scalar()

    async def update_versioned(
        self, ticket_id: str, expected_version: int, values: dict[str, Any]
    ) -> int:
        """Update a ticket only if it is still at ``expected_version``.

        @param ticket_id - Ticket ID
        @param expected_version - Version the caller read
        @param values - Column values to write
        @returns Number of updated rows (0 on conflict or missing ticket)
        """
        stmt = (
            update(self.model)
            .where(self.model.id == ticket_id, self.model.version == expected_version)
            .values(**values, version=expected_version + 1)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def replace_steps(self, ticket_id: str, steps: list[dict[str, Any]]) -> None:
        await self.session.execute(
            delete(TicketApprovalStep).where(TicketApprovalStep.ticket_id == ticket_id)
        )
        self.session.add_all(
            [TicketApprovalStep(ticket_id=ticket_id, **step) for step in steps]
        )

    async def history_count(self, ticket_id: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(TicketHistory)
            .where(TicketHistory.ticket_id == ticket_id)
        )
        return result.scalar() or 0

    async def append_history(
        self, ticket_id: str, entries: list[dict[str, Any]]
    ) -> None:
        self.session.add_all(
            [TicketHistory(ticket_id=ticket_id, **entry) for entry in entries]
        )

    async def next_sequence(self, name: str = "ticket_number") -> int:
        """Atomically increment and return a named counter.

        @param name - Counter name
        @returns New counter value (first call returns 1)
        """
        stmt = (
            insert(TicketCounter)
            .values(name=name, value=1)
            .on_conflict_do_update(
                index_elements=[TicketCounter.name],
                set_={"value": TicketCounter.value + 1},
            )
            .returning(TicketCounter.value)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()
