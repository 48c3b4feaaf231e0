"""Helpdesk ticket schemas."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class HighLevelCategory(str, Enum):
    """Department that owns a ticket."""

    IT = "IT"
    FACILITIES = "Facilities"
    FINANCE = "Finance"


class Urgency(str, Enum):
    """Ticket urgency, drives SLA windows."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class TicketStatus(str, Enum):
    """Ticket lifecycle status."""

    SUBMITTED = "Submitted"
    PENDING_APPROVAL_L1 = "Pending Approval L1"
    PENDING_APPROVAL_L2 = "Pending Approval L2"
    PENDING_APPROVAL_L3 = "Pending Approval L3"
    APPROVED = "Approved"
    ROUTED = "Routed"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "In Progress"
    ON_HOLD = "On Hold"
    AWAITING_CONFIRMATION = "Awaiting User Confirmation"
    CONFIRMED = "Confirmed"
    CLOSED = "Closed"
    AUTO_CLOSED = "Auto-Closed"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"

    # Legacy statuses still present on imported tickets
    PENDING_APPROVAL = "Pending Approval"
    IN_QUEUE = "In Queue"
    COMPLETED = "Completed"

    @classmethod
    def pending_for_level(cls, level: int) -> "TicketStatus":
        """Status of a ticket whose approval frontier is ``level``."""
        return cls(f"Pending Approval L{level}")


TERMINAL_STATUSES = frozenset(
    {
        TicketStatus.CLOSED,
        TicketStatus.AUTO_CLOSED,
        TicketStatus.REJECTED,
        TicketStatus.CANCELLED,
    }
)

PENDING_APPROVAL_STATUSES = frozenset(
    {
        TicketStatus.PENDING_APPROVAL_L1,
        TicketStatus.PENDING_APPROVAL_L2,
        TicketStatus.PENDING_APPROVAL_L3,
    }
)

PROCESSING_STATUSES = frozenset(
    {
        TicketStatus.ROUTED,
        TicketStatus.ASSIGNED,
        TicketStatus.IN_PROGRESS,
        TicketStatus.ON_HOLD,
    }
)


class ApprovalStepStatus(str, Enum):
    """Status of a single approval step."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ActorRole(str, Enum):
    """Role of the party performing an action."""

    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    SPECIALIST = "SPECIALIST"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class ProgressState(str, Enum):
    """States reachable through a progress update."""

    IN_PROGRESS = "In Progress"
    ON_HOLD = "On Hold"


class SLAStatus(str, Enum):
    """SLA health label."""

    ON_TRACK = "On Track"
    AT_RISK = "At Risk"
    OVERDUE = "Overdue"


class StatsTab(str, Enum):
    """Manager dashboard tabs."""

    MY_REQUESTS = "My Requests"
    MY_TEAM = "My Team"


class TicketAction(str, Enum):
    """Actions recorded in ticket history."""

    SUBMITTED = "SUBMITTED"
    APPROVAL_REQUESTED = "APPROVAL_REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ROUTED = "ROUTED"
    ASSIGNED = "ASSIGNED"
    REASSIGNED = "REASSIGNED"
    PROGRESS_UPDATED = "PROGRESS_UPDATED"
    COMPLETED = "COMPLETED"
    CONFIRMED = "CONFIRMED"
    CLOSED = "CLOSED"
    AUTO_CLOSED = "AUTO_CLOSED"
    CANCELLED = "CANCELLED"
    MESSAGE_ADDED = "MESSAGE_ADDED"


class Actor(BaseModel):
    """Party performing an action."""

    id: str = Field(..., description="Employee ID")
    name: str = Field(default="", description="Display name")
    role: ActorRole = Field(default=ActorRole.EMPLOYEE, description="Role")
    department: str | None = Field(None, description="Department (specialists)")
    approval_level: int | None = Field(
        None, ge=1, le=3, description="Approval level held (managers)"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @classmethod
    def system(cls) -> "Actor":
        """Actor used for automatic transitions."""
        return cls(id="SYSTEM", name="System", role=ActorRole.SYSTEM)


class ApprovalStep(BaseModel):
    """One level of the approval chain."""

    level: int = Field(..., ge=1, le=3, description="Approval level")
    manager_id: str | None = Field(
        None, description="Designated approver (None = any manager at this level)"
    )
    manager_name: str | None = Field(None, description="Designated approver name")
    status: ApprovalStepStatus = Field(
        default=ApprovalStepStatus.PENDING, description="Step status"
    )
    approver_id: str | None = Field(None, description="Who resolved the step")
    approver_name: str | None = Field(None, description="Resolver name")
    remarks: str | None = Field(None, description="Approver remarks")
    resolved_at: datetime | None = Field(None, description="Resolution time")


class HistoryEntry(BaseModel):
    """Append-only ticket history record."""

    action: TicketAction = Field(..., description="Action performed")
    actor_id: str = Field(..., description="Actor ID")
    actor_name: str = Field(default="", description="Actor name")
    previous_status: TicketStatus | None = Field(None, description="Status before")
    new_status: TicketStatus = Field(..., description="Status after")
    details: str | None = Field(None, description="Free-form details")
    timestamp: datetime = Field(..., description="When the action happened")


class ConversationMessage(BaseModel):
    """Message exchanged between the requester and the specialists."""

    sender_id: str = Field(..., description="Sender employee ID")
    sender_name: str = Field(default="", description="Sender name")
    sender_role: ActorRole = Field(..., description="Sender role")
    message: str = Field(..., min_length=1, max_length=5000, description="Message text")
    timestamp: datetime = Field(..., description="When the message was posted")


class SLAInfo(BaseModel):
    """Derived SLA view of a ticket."""

    approval_deadline: datetime | None = Field(
        None, description="Deadline of the current approval level"
    )
    processing_deadline: datetime | None = Field(
        None, description="Deadline to finish work once routed"
    )
    is_overdue: bool = Field(default=False, description="Deadline passed")
    overdue_by: timedelta = Field(
        default=timedelta(0), description="Time past the deadline"
    )
    status: SLAStatus | None = Field(None, description="SLA health label")


class Ticket(BaseModel):
    """Helpdesk ticket."""

    id: str = Field(..., description="Ticket ID")
    ticket_number: str = Field(..., description="Human-readable ticket number")
    high_level_category: HighLevelCategory = Field(..., description="Category")
    sub_category: str = Field(..., description="Sub-category")
    urgency: Urgency = Field(..., description="Urgency")
    subject: str = Field(..., description="Subject")
    description: str = Field(default="", description="Description")
    status: TicketStatus = Field(..., description="Current status")
    approval_flow: list[ApprovalStep] = Field(
        default_factory=list, description="Approval chain, ordered by level"
    )
    specialist_queue: str | None = Field(None, description="Specialist queue")

    # People
    requester_id: str = Field(..., description="Requester ID")
    requester_name: str = Field(default="", description="Requester name")
    requester_department: str | None = Field(None, description="Requester department")
    requester_manager_id: str | None = Field(
        None, description="Requester's reporting manager"
    )
    assigned_to: str | None = Field(None, description="Assigned specialist ID")
    assigned_to_name: str | None = Field(None, description="Assigned specialist name")

    # Resolution
    resolution_notes: str | None = Field(None, description="Specialist notes")
    feedback: str | None = Field(None, description="Requester feedback")
    cancellation_reason: str | None = Field(None, description="Why it was cancelled")
    closing_reason: str | None = Field(None, description="Why it was closed")

    # Timestamps
    routed_at: datetime | None = Field(None, description="When routed to a queue")
    awaiting_confirmation_at: datetime | None = Field(
        None, description="When work was completed"
    )
    closed_at: datetime | None = Field(None, description="When closed")
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")

    history: list[HistoryEntry] = Field(default_factory=list, description="History")
    conversation: list[ConversationMessage] = Field(
        default_factory=list, description="Requester/specialist messages"
    )
    version: int = Field(default=1, ge=1, description="Optimistic concurrency version")
    sla: SLAInfo | None = Field(None, description="Derived SLA view")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def step(self, level: int) -> ApprovalStep | None:
        """Get the approval step at ``level``."""
        for step in self.approval_flow:
            if step.level == level:
                return step
        return None

    def frontier(self) -> ApprovalStep | None:
        """Lowest pending step, if the ticket is still awaiting approval."""
        if self.status not in PENDING_APPROVAL_STATUSES:
            return None
        pending = [
            s for s in self.approval_flow if s.status == ApprovalStepStatus.PENDING
        ]
        return min(pending, key=lambda s: s.level) if pending else None


# Requests


class TicketCreate(BaseModel):
    """Submit ticket request."""

    high_level_category: HighLevelCategory = Field(..., description="Category")
    sub_category: str = Field(..., min_length=1, description="Sub-category")
    urgency: Urgency = Field(default=Urgency.MEDIUM, description="Urgency")
    subject: str = Field(..., min_length=1, max_length=200, description="Subject")
    description: str = Field(default="", max_length=5000, description="Description")
    requester_department: str | None = Field(None, description="Requester department")
    requester_manager_id: str | None = Field(
        None, description="Requester's reporting manager"
    )


class VersionedRequest(BaseModel):
    """Base for mutations carrying an optional expected version."""

    expected_version: int | None = Field(
        None, ge=1, description="Version the client last read"
    )


class ApproveRequest(VersionedRequest):
    level: int = Field(..., description="Approval level being actioned")
    remarks: str | None = Field(None, max_length=2000, description="Remarks")


class RejectRequest(VersionedRequest):
    level: int = Field(..., description="Approval level being actioned")
    remarks: str | None = Field(None, max_length=2000, description="Rejection remarks")


class AssignRequest(VersionedRequest):
    employee_id: str = Field(..., min_length=1, description="Specialist ID")
    employee_name: str | None = Field(None, description="Specialist name")
    notes: str | None = Field(None, description="Assignment notes")


class ReassignRequest(VersionedRequest):
    employee_id: str = Field(..., min_length=1, description="New specialist ID")
    employee_name: str | None = Field(None, description="New specialist name")
    reason: str | None = Field(None, description="Reassignment reason")


class ProgressRequest(VersionedRequest):
    state: ProgressState = Field(..., description="Target state")
    notes: str | None = Field(None, description="Progress notes")


class CompleteRequest(VersionedRequest):
    resolution_notes: str | None = Field(None, description="Resolution notes")


class ConfirmRequest(VersionedRequest):
    feedback: str | None = Field(None, max_length=2000, description="Feedback")


class CancelRequest(VersionedRequest):
    reason: str | None = Field(None, description="Cancellation reason")


class MessageRequest(VersionedRequest):
    message: str = Field(..., min_length=1, max_length=5000, description="Message text")


class BulkAssignRequest(BaseModel):
    ticket_ids: list[str] = Field(..., min_length=1, description="Tickets to assign")
    employee_id: str = Field(..., min_length=1, description="Specialist ID")
    employee_name: str | None = Field(None, description="Specialist name")
    notes: str | None = Field(None, description="Assignment notes")


class BulkProgressRequest(BaseModel):
    ticket_ids: list[str] = Field(..., min_length=1, description="Tickets to update")
    state: ProgressState = Field(..., description="Target state")
    notes: str | None = Field(None, description="Progress notes")


# Responses


class BulkItemResult(BaseModel):
    """Outcome for one ticket of a bulk operation."""

    ticket_id: str = Field(..., description="Ticket ID")
    success: bool = Field(..., description="Whether the ticket was updated")
    error_code: str | None = Field(None, description="Error code if failed")
    error: str | None = Field(None, description="Error message if failed")


class BulkResult(BaseModel):
    """Bulk operation outcome; partial success is possible."""

    results: list[BulkItemResult] = Field(..., description="Per-ticket results")

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded


class PaginationMeta(BaseModel):
    """Pagination metadata."""

    page: int = Field(..., ge=1, description="Current page")
    page_size: int = Field(..., ge=1, le=100, description="Page size")
    total_items: int = Field(..., ge=0, description="Total items")
    total_pages: int = Field(..., ge=0, description="Total pages")


class TicketListResponse(BaseModel):
    """Paginated ticket list response."""

    items: list[Ticket] = Field(..., description="Tickets")
    meta: PaginationMeta = Field(..., description="Pagination metadata")


class StatsBuckets(BaseModel):
    """Role-scoped KPI buckets."""

    total: int = Field(default=0, ge=0, description="Tickets in the viewer's population")
    resolved: int = Field(default=0, ge=0, description="Resolved tickets")
    in_progress: int = Field(default=0, ge=0, description="Open tickets")
    rejected: int = Field(default=0, ge=0, description="Rejected tickets")
    cancelled: int = Field(default=0, ge=0, description="Cancelled tickets")
    untracked: int = Field(
        default=0, ge=0, description="Tickets whose status no bucket tracks"
    )


class PendingApprovalItem(BaseModel):
    """Entry of an approver's inbox."""

    ticket_id: str = Field(..., description="Ticket ID")
    ticket_number: str = Field(..., description="Ticket number")
    subject: str = Field(..., description="Subject")
    requester_id: str = Field(..., description="Requester ID")
    requester_name: str = Field(default="", description="Requester name")
    urgency: Urgency = Field(..., description="Urgency")
    level: int = Field(..., description="Level awaiting action")
    can_act: bool = Field(..., description="Whether the viewer may act now")
    deadline: datetime | None = Field(None, description="Approval deadline")
    version: int = Field(..., description="Ticket version")
    created_at: datetime = Field(..., description="Created timestamp")


class OverdueTicket(BaseModel):
    """Ticket reported by the overdue sweep."""

    ticket_id: str = Field(..., description="Ticket ID")
    ticket_number: str = Field(..., description="Ticket number")
    status: TicketStatus = Field(..., description="Current status")
    deadline: datetime = Field(..., description="Missed deadline")
    overdue_by: timedelta = Field(..., description="Time past the deadline")


class SLASweepResult(BaseModel):
    """Outcome of the read-only overdue sweep."""

    checked: int = Field(..., ge=0, description="Tickets inspected")
    overdue: list[OverdueTicket] = Field(
        default_factory=list, description="Overdue tickets"
    )
    checked_at: datetime = Field(..., description="Sweep time")


class AutoCloseResult(BaseModel):
    """Outcome of the auto-close sweep."""

    closed: list[str] = Field(default_factory=list, description="Auto-closed IDs")
    skipped: list[str] = Field(
        default_factory=list, description="IDs skipped on concurrent change"
    )


class AssigneeSuggestion(BaseModel):
    """Suggested specialist for a ticket."""

    employee_id: str = Field(..., description="Specialist ID")
    name: str = Field(..., description="Specialist name")
    department: str = Field(..., description="Department")
    open_tickets: int = Field(..., ge=0, description="Current open workload")
    capacity: int = Field(..., ge=1, description="Maximum concurrent tickets")


class TransitionEvent(BaseModel):
    """Successful transition handed to side-effect dispatch."""

    key: str = Field(..., description="Idempotency key")
    ticket_id: str = Field(..., description="Ticket ID")
    ticket_number: str = Field(..., description="Ticket number")
    action: TicketAction = Field(..., description="Action performed")
    actor_id: str = Field(..., description="Actor ID")
    previous_status: TicketStatus | None = Field(None, description="Status before")
    new_status: TicketStatus = Field(..., description="Status after")
    recipients: list[str] = Field(default_factory=list, description="Who to notify")
    details: dict[str, Any] = Field(default_factory=dict, description="Extra data")
    occurred_at: datetime = Field(..., description="When the transition happened")
