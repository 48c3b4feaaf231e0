"""Employee directory used to suggest assignees."""

import logging
from collections import Counter

from pydantic import BaseModel, Field

from helpdesk.services.helpdesk.schemas import (
    AssigneeSuggestion,
    Ticket,
)

logger = logging.getLogger(__name__)


class Specialist(BaseModel):
    """Directory entry for a specialist."""

    employee_id: str = Field(..., description="Employee ID")
    name: str = Field(..., description="Display name")
    department: str = Field(..., description="Department / category served")
    queues: list[str] = Field(default_factory=list, description="Specialist queues")
    capacity: int = Field(default=10, ge=1, description="Max concurrent tickets")
    active: bool = Field(default=True, description="Available for assignment")


class EmployeeDirectory:
    """Registry of specialists.

    Suggestions are advisory only: assignment itself is validated by the
    lifecycle router, never by the directory.
    """

    def __init__(self, specialists: list[Specialist] | None = None):
        self._specialists: dict[str, Specialist] = {}
        for specialist in specialists or []:
            self.register(specialist)

    def register(self, specialist: Specialist) -> None:
        self._specialists[specialist.employee_id] = specialist
        logger.info(
            f"Registered specialist {specialist.employee_id} "
            f"({specialist.department}: {', '.join(specialist.queues) or 'all queues'})"
        )

    def get(self, employee_id: str) -> Specialist | None:
        return self._specialists.get(employee_id)

    def specialists(self, department: str | None = None) -> list[Specialist]:
        return [
            s
            for s in self._specialists.values()
            if s.active and (department is None or s.department == department)
        ]

    def suggest(
        self, ticket: Ticket, open_tickets: list[Ticket]
    ) -> AssigneeSuggestion | None:
        """Suggest the least-loaded specialist for a ticket.

        Prefers specialists serving the ticket's queue and falls back to
        anyone in the department. Ties break on lower workload, then ID.

        @param ticket - Ticket needing an assignee
        @param open_tickets - Currently open tickets, used to measure workload
        @returns Suggestion, or None when nobody in the department is available
        """
        candidates = self.specialists(ticket.high_level_category.value)
        queue_match = [
            s for s in candidates if ticket.specialist_queue in s.queues
        ]
        if queue_match:
            candidates = queue_match

        workload = Counter(t.assigned_to for t in open_tickets if t.assigned_to)
        available = [s for s in candidates if workload[s.employee_id] < s.capacity]
        if not available:
            return None

        best = min(
            available,
            key=lambda s: (
                -(s.capacity - workload[s.employee_id]),
                workload[s.employee_id],
                s.employee_id,
            ),
        )
        return AssigneeSuggestion(
            employee_id=best.employee_id,
            name=best.name,
            department=best.department,
            open_tickets=workload[best.employee_id],
            capacity=best.capacity,
        )
