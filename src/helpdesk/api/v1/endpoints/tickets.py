"""Helpdesk ticket API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from helpdesk.services.audit import AuditEntry
from helpdesk.services.auth import AdminUser, CurrentUser
from helpdesk.services.helpdesk.schemas import (
    ApproveRequest,
    AssigneeSuggestion,
    AssignRequest,
    AutoCloseResult,
    BulkAssignRequest,
    BulkProgressRequest,
    BulkResult,
    CancelRequest,
    CompleteRequest,
    ConfirmRequest,
    HighLevelCategory,
    HistoryEntry,
    MessageRequest,
    ProgressRequest,
    ReassignRequest,
    RejectRequest,
    SLASweepResult,
    StatsBuckets,
    StatsTab,
    Ticket,
    TicketCreate,
    TicketListResponse,
    TicketStatus,
)
from helpdesk.services.helpdesk.service import HelpdeskService, get_helpdesk_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])

Service = Annotated[HelpdeskService, Depends(get_helpdesk_service)]


@router.post("", response_model=Ticket, status_code=status.HTTP_201_CREATED)
async def submit_ticket(
    request: TicketCreate,
    user: CurrentUser,
    service: Service,
) -> Ticket:
    """Submit a ticket.

    Tickets whose sub-category needs approval start at Pending Approval L1;
    all others are routed to the specialist queue immediately.
    """
    if request.requester_manager_id is None and user.manager_id:
        request = request.model_copy(update={"requester_manager_id": user.manager_id})
    return await service.submit(request, user.to_actor())


@router.get("", response_model=TicketListResponse)
async def list_tickets(
    user: CurrentUser,
    service: Service,
    status_filter: TicketStatus | None = Query(
        None, alias="status", description="Filter by status"
    ),
    category: HighLevelCategory | None = Query(None, description="Filter by category"),
    department: str | None = Query(
        None, description="Filter by owning department (same as category)"
    ),
    requester_id: str | None = Query(None, description="Filter by requester"),
    assigned_to: str | None = Query(None, description="Filter by assignee"),
    include_closed: bool = Query(True, description="Include terminal tickets"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
) -> TicketListResponse:
    """List tickets with filters and pagination."""
    if category is None and department is not None:
        try:
            category = HighLevelCategory(department)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown department {department}",
            )
    return await service.list_tickets(
        status=status_filter,
        category=category,
        requester_id=requester_id,
        assigned_to=assigned_to,
        include_closed=include_closed,
        page=page,
        page_size=page_size,
        viewer=user.to_actor(),
    )


@router.get("/stats", response_model=StatsBuckets)
async def get_stats(
    user: CurrentUser,
    service: Service,
    tab: StatsTab | None = Query(None, description="Manager dashboard tab"),
    department: str | None = Query(None, description="Restrict to a department"),
) -> StatsBuckets:
    """KPI buckets scoped to the caller's role."""
    return await service.stats(user.to_actor(), tab=tab, department=department)


@router.post("/bulk-assign", response_model=BulkResult)
async def bulk_assign(
    request: BulkAssignRequest,
    user: CurrentUser,
    service: Service,
) -> BulkResult:
    """Assign several tickets; each succeeds or fails independently."""
    return await service.bulk_assign(
        request.ticket_ids,
        user.to_actor(),
        request.employee_id,
        request.employee_name,
        request.notes,
    )


@router.post("/bulk-progress", response_model=BulkResult)
async def bulk_progress(
    request: BulkProgressRequest,
    user: CurrentUser,
    service: Service,
) -> BulkResult:
    """Update progress on several tickets; each succeeds or fails independently."""
    return await service.bulk_update_progress(
        request.ticket_ids, user.to_actor(), request.state, request.notes
    )


@router.post("/sla/sweep", response_model=SLASweepResult)
async def run_sla_sweep(user: AdminUser, service: Service) -> SLASweepResult:
    """Report overdue tickets. Requires: admin."""
    return await service.sla_sweep()


@router.post("/auto-close", response_model=AutoCloseResult)
async def run_auto_close(user: AdminUser, service: Service) -> AutoCloseResult:
    """Auto-close tickets left unconfirmed. Requires: admin."""
    return await service.auto_close_stale()


@router.get("/{ticket_id}", response_model=Ticket)
async def get_ticket(ticket_id: str, user: CurrentUser, service: Service) -> Ticket:
    """Get a ticket with its SLA recomputed now.

    Readable by the requester, the assignee, approvers on its chain, the
    requester's manager, specialists of its department and admins.
    """
    return await service.get_ticket(ticket_id, user.to_actor())


@router.get("/{ticket_id}/history", response_model=list[HistoryEntry])
async def get_ticket_history(
    ticket_id: str, user: CurrentUser, service: Service
) -> list[HistoryEntry]:
    """Append-only action history, oldest first."""
    return await service.get_history(ticket_id, user.to_actor())


@router.get("/{ticket_id}/audit", response_model=list[AuditEntry])
async def get_ticket_audit(
    ticket_id: str, user: AdminUser, service: Service
) -> list[AuditEntry]:
    """Audit trail of the ticket's transitions. Requires: admin."""
    return await service.audit_trail(ticket_id)


@router.get("/{ticket_id}/suggest-assignee", response_model=AssigneeSuggestion | None)
async def suggest_assignee(
    ticket_id: str, user: CurrentUser, service: Service
) -> AssigneeSuggestion | None:
    """Least-loaded specialist for the ticket, or null if nobody is free."""
    return await service.suggest_assignee(ticket_id, user.to_actor())


@router.post("/{ticket_id}/approve", response_model=Ticket)
async def approve_ticket(
    ticket_id: str,
    request: ApproveRequest,
    user: CurrentUser,
    service: Service,
) -> Ticket:
    """Approve the pending level. The last level routes the ticket."""
    return await service.approve(
        ticket_id,
        request.level,
        user.to_actor(),
        request.remarks,
        expected_version=request.expected_version,
    )


@router.post("/{ticket_id}/reject", response_model=Ticket)
async def reject_ticket(
    ticket_id: str,
    request: RejectRequest,
    user: CurrentUser,
    service: Service,
) -> Ticket:
    """Reject the pending level. Remarks are required."""
    return await service.reject(
        ticket_id,
        request.level,
        user.to_actor(),
        request.remarks,
        expected_version=request.expected_version,
    )


@router.post("/{ticket_id}/assign", response_model=Ticket)
async def assign_ticket(
    ticket_id: str,
    request: AssignRequest,
    user: CurrentUser,
    service: Service,
) -> Ticket:
    return await service.assign(
        ticket_id,
        user.to_actor(),
        request.employee_id,
        request.employee_name,
        request.notes,
        expected_version=request.expected_version,
    )


@router.post("/{ticket_id}/reassign", response_model=Ticket)
async def reassign_ticket(
    ticket_id: str,
    request: ReassignRequest,
    user: CurrentUser,
    service: Service,
) -> Ticket:
    return await service.reassign(
        ticket_id,
        user.to_actor(),
        request.employee_id,
        request.employee_name,
        request.reason,
        expected_version=request.expected_version,
    )


@router.post("/{ticket_id}/progress", response_model=Ticket)
async def update_progress(
    ticket_id: str,
    request: ProgressRequest,
    user: CurrentUser,
    service: Service,
) -> Ticket:
    return await service.update_progress(
        ticket_id,
        user.to_actor(),
        request.state,
        request.notes,
        expected_version=request.expected_version,
    )


@router.post("/{ticket_id}/complete", response_model=Ticket)
async def complete_ticket(
    ticket_id: str,
    request: CompleteRequest,
    user: CurrentUser,
    service: Service,
) -> Ticket:
    return await service.complete_work(
        ticket_id,
        user.to_actor(),
        request.resolution_notes,
        expected_version=request.expected_version,
    )


@router.post("/{ticket_id}/confirm", response_model=Ticket)
async def confirm_ticket(
    ticket_id: str,
    request: ConfirmRequest,
    user: CurrentUser,
    service: Service,
) -> Ticket:
    """Requester confirms the work; the ticket closes."""
    return await service.confirm_completion(
        ticket_id,
        user.to_actor(),
        request.feedback,
        expected_version=request.expected_version,
    )


@router.post("/{ticket_id}/cancel", response_model=Ticket)
async def cancel_ticket(
    ticket_id: str,
    request: CancelRequest,
    user: CurrentUser,
    service: Service,
) -> Ticket:
    """Requester withdraws an open ticket."""
    return await service.cancel(
        ticket_id,
        user.to_actor(),
        request.reason,
        expected_version=request.expected_version,
    )


@router.post("/{ticket_id}/messages", response_model=Ticket)
async def add_message(
    ticket_id: str,
    request: MessageRequest,
    user: CurrentUser,
    service: Service,
) -> Ticket:
    """Post a message to the ticket conversation; the other party is notified."""
    return await service.add_message(
        ticket_id,
        user.to_actor(),
        request.message,
        expected_version=request.expected_version,
    )
