"""Approval engine for multi-level ticket approval.

Rules:
- Levels are contiguous from 1 and resolved strictly in order
- Only the lowest pending step (the frontier) can be actioned
- A resolved step is never modified again
- Rejection needs non-blank remarks and ends the ticket
"""

import logging
from datetime import datetime, timezone

from helpdesk.services.helpdesk.errors import AuthorizationError, ValidationError
from helpdesk.services.helpdesk.schemas import (
    Actor,
    ApprovalStep,
    ApprovalStepStatus,
    HistoryEntry,
    Ticket,
    TicketAction,
    TicketStatus,
)
from helpdesk.services.helpdesk.store import ensure_version

logger = logging.getLogger(__name__)


class ApprovalEngine:
    """Validates and applies approve/reject actions on the approval chain.

    Operates on a ticket copy handed in by the caller; persistence and
    side effects belong to the caller.
    """

    VALID_LEVELS = (1, 2, 3)

    def can_act(self, step: ApprovalStep, actor: Actor) -> bool:
        """Check whether an actor may resolve a step.

        @param step - Approval step
        @param actor - Acting party
        @returns True if the actor is the designated approver, or holds the
            step's level when no approver is designated
        """
        if step.manager_id is not None:
            return step.manager_id == actor.id
        return actor.is_admin or actor.approval_level == step.level

    def _actionable_step(
        self,
        ticket: Ticket,
        level: int,
        actor: Actor,
        expected_version: int | None,
    ) -> ApprovalStep:
        if level not in self.VALID_LEVELS:
            raise ValidationError(f"invalid level {level}")

        ensure_version(ticket, expected_version)

        frontier = ticket.frontier()
        if frontier is None or frontier.level != level:
            raise ValidationError("approval not found or already processed")

        if not self.can_act(frontier, actor):
            raise AuthorizationError(
                f"{actor.id} is not allowed to act on level {level} "
                f"of ticket {ticket.ticket_number}"
            )
        return frontier

    def approve(
        self,
        ticket: Ticket,
        level: int,
        actor: Actor,
        remarks: str | None = None,
        *,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        """Approve the step at ``level``.

        Non-last levels move the ticket to the next pending level; the last
        level leaves it ``Approved`` for routing.

        @param ticket - Ticket copy to mutate
        @param level - Level being actioned
        @param actor - Approver
        @param remarks - Optional remarks
        @param expected_version - Version the approver read
        @param now - Action time
        @returns The mutated ticket
        @raises ValidationError, AuthorizationError, ConflictError
        """
        step = self._actionable_step(ticket, level, actor, expected_version)
        now = now or datetime.now(timezone.utc)
        previous = ticket.status

        self._resolve(step, ApprovalStepStatus.APPROVED, actor, remarks, now)

        next_step = ticket.step(level + 1)
        if next_step is not None:
            ticket.status = TicketStatus.pending_for_level(next_step.level)
        else:
            ticket.status = TicketStatus.APPROVED

        ticket.history.append(
            HistoryEntry(
                action=TicketAction.APPROVED,
                actor_id=actor.id,
                actor_name=actor.name,
                previous_status=previous,
                new_status=ticket.status,
                details=f"L{level} approved" + (f": {remarks}" if remarks else ""),
                timestamp=now,
            )
        )
        ticket.updated_at = now
        logger.info(
            f"Ticket {ticket.ticket_number} L{level} approved by {actor.id} "
            f"-> {ticket.status.value}"
        )
        return ticket

    def reject(
        self,
        ticket: Ticket,
        level: int,
        actor: Actor,
        remarks: str | None,
        *,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> Ticket:
        """Reject the step at ``level``, ending the ticket.

        Higher steps stay pending but can never be reached.

        @raises ValidationError if remarks are blank
        """
        step = self._actionable_step(ticket, level, actor, expected_version)
        if not remarks or not remarks.strip():
            raise ValidationError("remarks required")

        now = now or datetime.now(timezone.utc)
        previous = ticket.status

        self._resolve(step, ApprovalStepStatus.REJECTED, actor, remarks.strip(), now)
        ticket.status = TicketStatus.REJECTED
        ticket.closed_at = now
        ticket.history.append(
            HistoryEntry(
                action=TicketAction.REJECTED,
                actor_id=actor.id,
                actor_name=actor.name,
                previous_status=previous,
                new_status=ticket.status,
                details=f"L{level} rejected: {remarks.strip()}",
                timestamp=now,
            )
        )
        ticket.updated_at = now
        logger.info(f"Ticket {ticket.ticket_number} L{level} rejected by {actor.id}")
        return ticket

    @staticmethod
    def _resolve(
        step: ApprovalStep,
        status: ApprovalStepStatus,
        actor: Actor,
        remarks: str | None,
        now: datetime,
    ) -> None:
        step.status = status
        step.approver_id = actor.id
        step.approver_name = actor.name or step.manager_name
        step.remarks = remarks
        step.resolved_at = now
