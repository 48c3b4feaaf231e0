"""Lifecycle router: the ticket status state machine outside approval.

Checks run in a fixed order for every action: stale version, terminal
status, source status, actor capability, then action input.
"""

import logging
from datetime import datetime, timedelta, timezone

from helpdesk.services.helpdesk.errors import AuthorizationError, ValidationError
from helpdesk.services.helpdesk.schemas import (
    Actor,
    ActorRole,
    ConversationMessage,
    HistoryEntry,
    ProgressState,
    Ticket,
    TicketAction,
    TicketStatus,
)
from helpdesk.services.helpdesk.store import ensure_version

logger = logging.getLogger(__name__)

# (from, requested state) -> to
PROGRESS_TRANSITIONS: dict[tuple[TicketStatus, ProgressState], TicketStatus] = {
    (TicketStatus.ASSIGNED, ProgressState.IN_PROGRESS): TicketStatus.IN_PROGRESS,
    (TicketStatus.IN_PROGRESS, ProgressState.ON_HOLD): TicketStatus.ON_HOLD,
    (TicketStatus.ON_HOLD, ProgressState.IN_PROGRESS): TicketStatus.IN_PROGRESS,
}

REASSIGNABLE_STATUSES = frozenset(
    {TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS, TicketStatus.ON_HOLD}
)


def _required(value: str | None, name: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{name} required")
    return value.strip()


class LifecycleRouter:
    """Maps approval outcomes and specialist/requester actions to status."""

    def __init__(self, auto_close_hours: float = 72.0):
        """Initialize router.

        @param auto_close_hours - Hours awaiting confirmation before auto-close
        """
        self.auto_close_after = timedelta(hours=auto_close_hours)

    # Guards

    def _guard(
        self,
        ticket: Ticket,
        expected_version: int | None,
        allowed_from: set[TicketStatus] | frozenset[TicketStatus],
        action: str,
    ) -> None:
        ensure_version(ticket, expected_version)
        if ticket.is_terminal:
            raise ValidationError(
                f"Ticket {ticket.ticket_number} is {ticket.status.value} "
                "and can no longer change"
            )
        if ticket.status not in allowed_from:
            raise ValidationError(
                f"invalid transition: cannot {action} a ticket in status "
                f"{ticket.status.value}"
            )

    @staticmethod
    def can_work(ticket: Ticket, actor: Actor) -> bool:
        """Specialist of the ticket's department, or an admin."""
        if actor.is_admin:
            return True
        return (
            actor.role == ActorRole.SPECIALIST
            and actor.department == ticket.high_level_category.value
        )

    def _require_worker(self, ticket: Ticket, actor: Actor) -> None:
        if not self.can_work(ticket, actor):
            raise AuthorizationError(
                f"{actor.id} cannot work tickets of the "
                f"{ticket.high_level_category.value} queue"
            )

    @classmethod
    def can_view(cls, ticket: Ticket, actor: Actor) -> bool:
        """Who may read a ticket and take part in its conversation.

        @param ticket - Ticket to inspect
        @param actor - Reader
        @returns True for the requester, the assignee, a specialist of the
            ticket's department, an approver named on the chain, the
            requester's manager, or an admin
        """
        if actor.id in (ticket.requester_id, ticket.assigned_to):
            return True
        if cls.can_work(ticket, actor):
            return True
        if actor.id == ticket.requester_manager_id:
            return True
        return any(step.manager_id == actor.id for step in ticket.approval_flow)

    def require_viewer(self, ticket: Ticket, actor: Actor) -> None:
        if not self.can_view(ticket, actor):
            raise AuthorizationError(
                f"{actor.id} does not have permission to view ticket "
                f"{ticket.ticket_number}"
            )

    @staticmethod
    def _require_requester(ticket: Ticket, actor: Actor, action: str) -> None:
        if actor.id != ticket.requester_id:
            raise AuthorizationError(f"Only the requester can {action} this ticket")

    @staticmethod
    def _transition(
        ticket: Ticket,
        to: TicketStatus,
        action: TicketAction,
        actor: Actor,
        now: datetime,
        details: str | None = None,
    ) -> None:
        previous = ticket.status
        ticket.status = to
        ticket.updated_at = now
        ticket.history.append(
            HistoryEntry(
                action=action,
                actor_id=actor.id,
                actor_name=actor.name,
                previous_status=previous,
                new_status=to,
                details=details,
                timestamp=now,
            )
        )
        logger.info(
            f"Ticket {ticket.ticket_number} {previous.value} -> {to.value} "
            f"({action.value} by {actor.id})"
        )

    # Routing

    def route_submitted(self, ticket: Ticket, actor: Actor, now: datetime) -> Ticket:
        """Move a freshly submitted ticket into approval or the work queue."""
        if ticket.status != TicketStatus.SUBMITTED:
            raise ValidationError(
                f"invalid transition: {ticket.status.value} is not a new ticket"
            )
        ticket.history.append(
            HistoryEntry(
                action=TicketAction.SUBMITTED,
                actor_id=actor.id,
                actor_name=actor.name,
                previous_status=None,
                new_status=TicketStatus.SUBMITTED,
                details=f"{ticket.high_level_category.value} / {ticket.sub_category}",
                timestamp=now,
            )
        )
        if ticket.approval_flow:
            self._transition(
                ticket,
                TicketStatus.PENDING_APPROVAL_L1,
                TicketAction.APPROVAL_REQUESTED,
                Actor.system(),
                now,
                details=f"{len(ticket.approval_flow)} approval level(s) required",
            )
        else:
            self._route(ticket, now, "No approval required")
        return ticket

    def route_approved(self, ticket: Ticket, now: datetime) -> Ticket:
        """System step: fully approved tickets go to the specialist queue."""
        if ticket.status != TicketStatus.APPROVED:
            raise ValidationError(
                f"invalid transition: cannot route a ticket in status "
                f"{ticket.status.value}"
            )
        self._route(ticket, now, "All approvals granted")
        return ticket

    def _route(self, ticket: Ticket, now: datetime, details: str) -> None:
        ticket.routed_at = now
        self._transition(
            ticket,
            TicketStatus.ROUTED,
            TicketAction.ROUTED,
            Actor.system(),
            now,
            details=f"{details}; queue {ticket.specialist_queue or ticket.high_level_category.value}",
        )

    # Specialist actions

    def assign(
        self,
        ticket: Ticket,
        actor: Actor,
        employee_id: str,
        employee_name: str | None = None,
        notes: str | None = None,
        *,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        """Assign a routed ticket; assigning to oneself is the same action."""
        self._guard(ticket, expected_version, {TicketStatus.ROUTED}, "assign")
        self._require_worker(ticket, actor)
        assignee = _required(employee_id, "employee_id")
        now = now or datetime.now(timezone.utc)

        ticket.assigned_to = assignee
        ticket.assigned_to_name = employee_name or (
            actor.name if assignee == actor.id else None
        )
        self._transition(
            ticket,
            TicketStatus.ASSIGNED,
            TicketAction.ASSIGNED,
            actor,
            now,
            details=f"Assigned to {ticket.assigned_to_name or assignee}"
            + (f": {notes}" if notes else ""),
        )
        return ticket

    def reassign(
        self,
        ticket: Ticket,
        actor: Actor,
        employee_id: str,
        employee_name: str | None = None,
        reason: str | None = None,
        *,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        """Hand an assigned ticket to another specialist; status is unchanged."""
        self._guard(ticket, expected_version, REASSIGNABLE_STATUSES, "reassign")
        self._require_worker(ticket, actor)
        assignee = _required(employee_id, "employee_id")
        reason = _required(reason, "reason")
        if assignee == ticket.assigned_to:
            raise ValidationError(f"Ticket is already assigned to {assignee}")
        now = now or datetime.now(timezone.utc)

        previous_assignee = ticket.assigned_to_name or ticket.assigned_to
        ticket.assigned_to = assignee
        ticket.assigned_to_name = employee_name
        self._transition(
            ticket,
            ticket.status,
            TicketAction.REASSIGNED,
            actor,
            now,
            details=f"Reassigned from {previous_assignee} to "
            f"{employee_name or assignee}: {reason}",
        )
        return ticket

    def update_progress(
        self,
        ticket: Ticket,
        actor: Actor,
        state: ProgressState,
        notes: str | None = None,
        *,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        """Start, pause or resume work."""
        allowed = {source for source, requested in PROGRESS_TRANSITIONS if requested == state}
        self._guard(ticket, expected_version, allowed, f"move to {state.value}")
        self._require_worker(ticket, actor)
        now = now or datetime.now(timezone.utc)

        self._transition(
            ticket,
            PROGRESS_TRANSITIONS[(ticket.status, state)],
            TicketAction.PROGRESS_UPDATED,
            actor,
            now,
            details=notes,
        )
        return ticket

    def complete(
        self,
        ticket: Ticket,
        actor: Actor,
        resolution_notes: str | None,
        *,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        """Finish work and hand the ticket back to the requester."""
        self._guard(ticket, expected_version, {TicketStatus.IN_PROGRESS}, "complete")
        self._require_worker(ticket, actor)
        notes = _required(resolution_notes, "resolution notes")
        now = now or datetime.now(timezone.utc)

        ticket.resolution_notes = notes
        ticket.awaiting_confirmation_at = now
        self._transition(
            ticket,
            TicketStatus.AWAITING_CONFIRMATION,
            TicketAction.COMPLETED,
            actor,
            now,
            details=notes,
        )
        return ticket

    # Requester actions

    def confirm(
        self,
        ticket: Ticket,
        actor: Actor,
        feedback: str | None = None,
        *,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        """Requester accepts the work; the ticket closes."""
        self._guard(
            ticket, expected_version, {TicketStatus.AWAITING_CONFIRMATION}, "confirm"
        )
        self._require_requester(ticket, actor, "confirm")
        now = now or datetime.now(timezone.utc)

        ticket.feedback = feedback.strip() if feedback and feedback.strip() else None
        self._transition(
            ticket,
            TicketStatus.CONFIRMED,
            TicketAction.CONFIRMED,
            actor,
            now,
            details=ticket.feedback,
        )
        ticket.closed_at = now
        ticket.closing_reason = "Confirmed by requester"
        self._transition(
            ticket,
            TicketStatus.CLOSED,
            TicketAction.CLOSED,
            Actor.system(),
            now,
            details=ticket.closing_reason,
        )
        return ticket

    def cancel(
        self,
        ticket: Ticket,
        actor: Actor,
        reason: str | None,
        *,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        """Requester withdraws a ticket that is still open."""
        ensure_version(ticket, expected_version)
        if ticket.is_terminal:
            raise ValidationError(
                f"Ticket {ticket.ticket_number} is {ticket.status.value} "
                "and can no longer change"
            )
        self._require_requester(ticket, actor, "cancel")
        reason = _required(reason, "reason")
        now = now or datetime.now(timezone.utc)

        ticket.cancellation_reason = reason
        ticket.closed_at = now
        self._transition(
            ticket,
            TicketStatus.CANCELLED,
            TicketAction.CANCELLED,
            actor,
            now,
            details=reason,
        )
        return ticket

    # Conversation

    def add_message(
        self,
        ticket: Ticket,
        actor: Actor,
        message: str | None,
        *,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        """Append a message to the ticket conversation; status is unchanged."""
        ensure_version(ticket, expected_version)
        if ticket.is_terminal:
            raise ValidationError(
                f"Ticket {ticket.ticket_number} is {ticket.status.value} "
                "and can no longer change"
            )
        self.require_viewer(ticket, actor)
        text = _required(message, "message")
        now = now or datetime.now(timezone.utc)

        ticket.conversation.append(
            ConversationMessage(
                sender_id=actor.id,
                sender_name=actor.name,
                sender_role=actor.role,
                message=text,
                timestamp=now,
            )
        )
        self._transition(
            ticket,
            ticket.status,
            TicketAction.MESSAGE_ADDED,
            actor,
            now,
            details="Added message to conversation",
        )
        return ticket

    # System actions

    def is_auto_close_due(self, ticket: Ticket, now: datetime) -> bool:
        return (
            ticket.status == TicketStatus.AWAITING_CONFIRMATION
            and ticket.awaiting_confirmation_at is not None
            and now - ticket.awaiting_confirmation_at >= self.auto_close_after
        )

    def auto_close(
        self,
        ticket: Ticket,
        *,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        """Close a ticket the requester never confirmed."""
        now = now or datetime.now(timezone.utc)
        self._guard(
            ticket, expected_version, {TicketStatus.AWAITING_CONFIRMATION}, "auto-close"
        )
        if not self.is_auto_close_due(ticket, now):
            raise ValidationError(
                f"Ticket {ticket.ticket_number} is not yet due for auto-close"
            )

        hours = self.auto_close_after.total_seconds() / 3600
        ticket.closed_at = now
        ticket.closing_reason = f"No confirmation within {hours:g} hours"
        self._transition(
            ticket,
            TicketStatus.AUTO_CLOSED,
            TicketAction.AUTO_CLOSED,
            Actor.system(),
            now,
            details=ticket.closing_reason,
        )
        return ticket
