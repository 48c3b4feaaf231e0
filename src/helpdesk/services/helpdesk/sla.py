"""SLA deadline calculation.

Pure functions of a ticket and a clock: nothing here mutates the ticket.

- Approval deadline: per-urgency window anchored at the moment the current
  level became pending (ticket creation for L1, previous step's resolution
  for L2/L3).
- Processing deadline: per-urgency window anchored at routing, running
  while the ticket sits with the specialist queue.
"""

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field

from helpdesk.core.config import Settings
from helpdesk.services.helpdesk.schemas import (
    PENDING_APPROVAL_STATUSES,
    PROCESSING_STATUSES,
    SLAInfo,
    SLAStatus,
    Ticket,
    Urgency,
)


class SLAConfig(BaseModel):
    """Per-urgency SLA windows."""

    approval_hours: dict[Urgency, float] = Field(
        default={
            Urgency.CRITICAL: 24,
            Urgency.HIGH: 36,
            Urgency.MEDIUM: 48,
            Urgency.LOW: 72,
        },
        description="Approval window per level, in hours",
    )
    processing_hours: dict[Urgency, float] = Field(
        default={
            Urgency.CRITICAL: 8,
            Urgency.HIGH: 24,
            Urgency.MEDIUM: 48,
            Urgency.LOW: 72,
        },
        description="Processing window once routed, in hours",
    )
    at_risk_hours: float = Field(
        default=4.0, ge=0, description="Remaining hours below which SLA is At Risk"
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SLAConfig":
        return cls(
            approval_hours={Urgency(k): v for k, v in settings.sla_approval_hours.items()},
            processing_hours={
                Urgency(k): v for k, v in settings.sla_processing_hours.items()
            },
            at_risk_hours=settings.sla_at_risk_hours,
        )

    def approval_window(self, urgency: Urgency) -> timedelta:
        return timedelta(hours=self.approval_hours[urgency])

    def processing_window(self, urgency: Urgency) -> timedelta:
        return timedelta(hours=self.processing_hours[urgency])


class SLACalculator:
    """Derives deadlines and overdue state from ticket data."""

    def __init__(self, config: SLAConfig | None = None):
        self.config = config or SLAConfig()

    def approval_deadline(self, ticket: Ticket) -> datetime | None:
        """Deadline of the live approval level.

        @param ticket - Ticket to inspect
        @returns Deadline, or None when no approval is pending
        """
        frontier = ticket.frontier()
        if frontier is None or ticket.status not in PENDING_APPROVAL_STATUSES:
            return None

        if frontier.level == 1:
            anchor = ticket.created_at
        else:
            previous = ticket.step(frontier.level - 1)
            anchor = previous.resolved_at if previous else None
            if anchor is None:
                anchor = ticket.created_at
        return anchor + self.config.approval_window(ticket.urgency)

    def processing_deadline(self, ticket: Ticket) -> datetime | None:
        """Deadline for the specialist queue to finish work.

        @param ticket - Ticket to inspect
        @returns Deadline, or None when the ticket is not being processed
        """
        if ticket.status not in PROCESSING_STATUSES or ticket.routed_at is None:
            return None
        return ticket.routed_at + self.config.processing_window(ticket.urgency)

    def deadline(self, ticket: Ticket) -> datetime | None:
        """Deadline that currently applies to the ticket, if any."""
        return self.approval_deadline(ticket) or self.processing_deadline(ticket)

    def overdue(
        self, ticket: Ticket, now: datetime | None = None
    ) -> tuple[bool, timedelta]:
        """Check whether the applicable deadline has passed.

        @param ticket - Ticket to inspect
        @param now - Clock reading (defaults to current UTC time)
        @returns (is_overdue, overdue_by); overdue_by is zero when not overdue
        """
        now = now or datetime.now(timezone.utc)
        deadline = self.deadline(ticket)
        if deadline is None or now <= deadline:
            return False, timedelta(0)
        return True, now - deadline

    def evaluate(self, ticket: Ticket, now: datetime | None = None) -> SLAInfo:
        """Build the full SLA view for a ticket."""
        now = now or datetime.now(timezone.utc)
        deadline = self.deadline(ticket)
        is_overdue, overdue_by = self.overdue(ticket, now)

        status = None
        if deadline is not None:
            if is_overdue:
                status = SLAStatus.OVERDUE
            elif deadline - now < timedelta(hours=self.config.at_risk_hours):
                status = SLAStatus.AT_RISK
            else:
                status = SLAStatus.ON_TRACK

        return SLAInfo(
            approval_deadline=self.approval_deadline(ticket),
            processing_deadline=self.processing_deadline(ticket),
            is_overdue=is_overdue,
            overdue_by=overdue_by,
            status=status,
        )

    def with_sla(self, ticket: Ticket, now: datetime | None = None) -> Ticket:
        """Return a copy of the ticket carrying its SLA view."""
        return ticket.model_copy(update={"sla": self.evaluate(ticket, now)})
