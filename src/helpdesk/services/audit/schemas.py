"""Schemas for the ticket audit trail."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AuditCategory(str, Enum):
    """Categories of audit events."""

    TICKET_LIFECYCLE = "TICKET_LIFECYCLE"  # Routing, assignment, progress, closure
    APPROVAL = "APPROVAL"  # Approve / reject on the approval chain
    SYSTEM_ACTION = "SYSTEM_ACTION"  # Sweeps and automatic transitions


class AuditAction(str, Enum):
    """Audited ticket actions."""

    TICKET_SUBMITTED = "TICKET_SUBMITTED"
    APPROVAL_REQUESTED = "APPROVAL_REQUESTED"
    APPROVAL_APPROVED = "APPROVAL_APPROVED"
    APPROVAL_REJECTED = "APPROVAL_REJECTED"
    TICKET_ROUTED = "TICKET_ROUTED"
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    TICKET_REASSIGNED = "TICKET_REASSIGNED"
    PROGRESS_UPDATED = "PROGRESS_UPDATED"
    WORK_COMPLETED = "WORK_COMPLETED"
    COMPLETION_CONFIRMED = "COMPLETION_CONFIRMED"
    TICKET_CLOSED = "TICKET_CLOSED"
    TICKET_AUTO_CLOSED = "TICKET_AUTO_CLOSED"
    TICKET_CANCELLED = "TICKET_CANCELLED"
    MESSAGE_ADDED = "MESSAGE_ADDED"
    SLA_SWEEP = "SLA_SWEEP"


class AuditSeverity(str, Enum):
    """Severity levels for audit events."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class AuditEntry(BaseModel):
    """Audit log entry."""

    entry_id: str = Field(..., description="Unique entry ID")
    timestamp: datetime = Field(..., description="Event timestamp")
    category: AuditCategory = Field(..., description="Event category")
    action: AuditAction = Field(..., description="Specific action")
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO, description="Event severity"
    )

    # Actor information
    actor_id: str | None = Field(None, description="User/system ID that triggered")
    actor_type: str = Field(default="user", description="Type: user, system")

    # Resource information
    resource_type: str | None = Field(None, description="Type of resource affected")
    resource_id: str | None = Field(None, description="ID of resource affected")

    # Event details
    description: str = Field(..., description="Human-readable description")
    old_status: str | None = Field(None, description="Status before the action")
    new_status: str | None = Field(None, description="Status after the action")
    details: dict[str, Any] = Field(default_factory=dict, description="Additional data")

    # Correlation
    correlation_id: str | None = Field(
        None, description="Transition key the entry was written for"
    )


class AuditQuery(BaseModel):
    """Query parameters for audit log search."""

    start_time: datetime | None = Field(None, description="Start of time range")
    end_time: datetime | None = Field(None, description="End of time range")
    categories: list[AuditCategory] | None = Field(None, description="Filter categories")
    actions: list[AuditAction] | None = Field(None, description="Filter actions")
    actor_id: str | None = Field(None, description="Filter by actor")
    resource_id: str | None = Field(None, description="Filter by resource ID")
    correlation_id: str | None = Field(None, description="Filter by correlation ID")
    limit: int = Field(default=100, le=1000, description="Max results")
    offset: int = Field(default=0, description="Pagination offset")


class AuditStats(BaseModel):
    """Audit statistics."""

    total_entries: int = Field(..., description="Total entries")
    entries_by_category: dict[str, int] = Field(..., description="Count by category")
    entries_by_action: dict[str, int] = Field(..., description="Count by action")
    unique_actors: int = Field(..., description="Unique actor count")
    time_range_start: datetime | None = Field(None, description="Earliest entry")
    time_range_end: datetime | None = Field(None, description="Latest entry")
