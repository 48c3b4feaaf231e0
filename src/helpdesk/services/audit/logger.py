"""Audit logger service for ticket transitions."""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from helpdesk.services.audit.schemas import (
    AuditAction,
    AuditCategory,
    AuditEntry,
    AuditQuery,
    AuditSeverity,
    AuditStats,
)
from helpdesk.services.helpdesk.schemas import TicketAction, TransitionEvent

logger = logging.getLogger(__name__)

TRANSITION_ACTIONS: dict[TicketAction, tuple[AuditCategory, AuditAction]] = {
    TicketAction.SUBMITTED: (AuditCategory.TICKET_LIFECYCLE, AuditAction.TICKET_SUBMITTED),
    TicketAction.APPROVAL_REQUESTED: (
        AuditCategory.APPROVAL,
        AuditAction.APPROVAL_REQUESTED,
    ),
    TicketAction.APPROVED: (AuditCategory.APPROVAL, AuditAction.APPROVAL_APPROVED),
    TicketAction.REJECTED: (AuditCategory.APPROVAL, AuditAction.APPROVAL_REJECTED),
    TicketAction.ROUTED: (AuditCategory.TICKET_LIFECYCLE, AuditAction.TICKET_ROUTED),
    TicketAction.ASSIGNED: (AuditCategory.TICKET_LIFECYCLE, AuditAction.TICKET_ASSIGNED),
    TicketAction.REASSIGNED: (
        AuditCategory.TICKET_LIFECYCLE,
        AuditAction.TICKET_REASSIGNED,
    ),
    TicketAction.PROGRESS_UPDATED: (
        AuditCategory.TICKET_LIFECYCLE,
        AuditAction.PROGRESS_UPDATED,
    ),
    TicketAction.COMPLETED: (AuditCategory.TICKET_LIFECYCLE, AuditAction.WORK_COMPLETED),
    TicketAction.CONFIRMED: (
        AuditCategory.TICKET_LIFECYCLE,
        AuditAction.COMPLETION_CONFIRMED,
    ),
    TicketAction.CLOSED: (AuditCategory.TICKET_LIFECYCLE, AuditAction.TICKET_CLOSED),
    TicketAction.AUTO_CLOSED: (AuditCategory.SYSTEM_ACTION, AuditAction.TICKET_AUTO_CLOSED),
    TicketAction.CANCELLED: (AuditCategory.TICKET_LIFECYCLE, AuditAction.TICKET_CANCELLED),
    TicketAction.MESSAGE_ADDED: (AuditCategory.TICKET_LIFECYCLE, AuditAction.MESSAGE_ADDED),
}


class AuditLogger:
    """Append-only in-memory audit trail."""

    def __init__(self, max_entries: int = 100000):
        """Initialize audit logger.

        Args:
            max_entries: Oldest entries are dropped beyond this many
        """
        self._entries: list[AuditEntry] = []
        self._max_entries = max_entries

    def log(
        self,
        category: AuditCategory,
        action: AuditAction,
        description: str,
        *,
        severity: AuditSeverity = AuditSeverity.INFO,
        actor_id: str | None = None,
        actor_type: str = "user",
        resource_type: str | None = None,
        resource_id: str | None = None,
        old_status: str | None = None,
        new_status: str | None = None,
        details: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> AuditEntry:
        """Log an audit event.

        Args:
            category: Event category
            action: Specific action
            description: Human-readable description
            severity: Event severity
            actor_id: ID of actor (user/system)
            actor_type: Type of actor
            resource_type: Type of affected resource
            resource_id: ID of affected resource
            old_status: Status before the action
            new_status: Status after the action
            details: Additional event details
            correlation_id: Transition key

        Returns:
            The created audit entry
        """
        entry = AuditEntry(
            entry_id=str(uuid4()),
            timestamp=datetime.now(timezone.utc),
            category=category,
            action=action,
            severity=severity,
            actor_id=actor_id,
            actor_type=actor_type,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description,
            old_status=old_status,
            new_status=new_status,
            details=details or {},
            correlation_id=correlation_id,
        )

        self._entries.append(entry)
        if len(self._entries) > self._max_entries:
            self._entries = self._entries[-self._max_entries:]

        log_level = {
            AuditSeverity.DEBUG: logging.DEBUG,
            AuditSeverity.INFO: logging.INFO,
            AuditSeverity.WARNING: logging.WARNING,
            AuditSeverity.ERROR: logging.ERROR,
        }.get(severity, logging.INFO)

        logger.log(
            log_level,
            f"[AUDIT] {category.value}/{action.value}: {description}",
            extra={
                "audit_entry_id": entry.entry_id,
                "actor_id": actor_id,
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )

        return entry

    def log_transition(self, event: TransitionEvent) -> AuditEntry:
        """Record a successful ticket transition.

        Args:
            event: Transition that was persisted

        Returns:
            Audit entry
        """
        category, action = TRANSITION_ACTIONS[event.action]
        system = event.actor_id == "SYSTEM"
        return self.log(
            AuditCategory.SYSTEM_ACTION if system else category,
            action,
            f"Ticket {event.ticket_number}: "
            f"{event.previous_status.value if event.previous_status else 'new'}"
            f" -> {event.new_status.value}",
            actor_id=event.actor_id,
            actor_type="system" if system else "user",
            resource_type="helpdesk_ticket",
            resource_id=event.ticket_id,
            old_status=event.previous_status.value if event.previous_status else None,
            new_status=event.new_status.value,
            details=event.details,
            correlation_id=event.key,
        )

    def query(self, query: AuditQuery) -> list[AuditEntry]:
        """Query audit entries, newest first.

        Args:
            query: Query parameters

        Returns:
            Matching entries
        """
        results = self._entries.copy()

        if query.start_time:
            results = [e for e in results if e.timestamp >= query.start_time]
        if query.end_time:
            results = [e for e in results if e.timestamp <= query.end_time]
        if query.categories:
            results = [e for e in results if e.category in query.categories]
        if query.actions:
            results = [e for e in results if e.action in query.actions]
        if query.actor_id:
            results = [e for e in results if e.actor_id == query.actor_id]
        if query.resource_id:
            results = [e for e in results if e.resource_id == query.resource_id]
        if query.correlation_id:
            results = [e for e in results if e.correlation_id == query.correlation_id]

        results.sort(key=lambda e: e.timestamp, reverse=True)
        return results[query.offset : query.offset + query.limit]

    def get_ticket_trail(self, ticket_id: str) -> list[AuditEntry]:
        """Get all entries for a ticket in chronological order."""
        return sorted(
            (e for e in self._entries if e.resource_id == ticket_id),
            key=lambda e: e.timestamp,
        )

    def get_stats(self) -> AuditStats:
        """Get audit statistics."""
        entries = self._entries.copy()
        if not entries:
            return AuditStats(
                total_entries=0,
                entries_by_category={},
                entries_by_action={},
                unique_actors=0,
            )

        by_category: dict[str, int] = defaultdict(int)
        by_action: dict[str, int] = defaultdict(int)
        actors: set[str] = set()
        for entry in entries:
            by_category[entry.category.value] += 1
            by_action[entry.action.value] += 1
            if entry.actor_id:
                actors.add(entry.actor_id)

        timestamps = [e.timestamp for e in entries]
        return AuditStats(
            total_entries=len(entries),
            entries_by_category=dict(by_category),
            entries_by_action=dict(by_action),
            unique_actors=len(actors),
            time_range_start=min(timestamps),
            time_range_end=max(timestamps),
        )

    def clear(self) -> int:
        """Clear all entries.

        Returns:
            Number of entries cleared
        """
        count = len(self._entries)
        self._entries = []
        return count


# Singleton instance
_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    """Get singleton audit logger instance."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def reset_audit_logger() -> None:
    """Reset audit logger singleton (for testing)."""
    global _audit_logger
    _audit_logger = None
