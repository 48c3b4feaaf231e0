"""Approver inbox API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from helpdesk.services.auth import CurrentUser
from helpdesk.services.helpdesk.schemas import PendingApprovalItem
from helpdesk.services.helpdesk.service import HelpdeskService, get_helpdesk_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/approvals", tags=["Approvals"])


@router.get("/pending", response_model=list[PendingApprovalItem])
async def list_pending_for_user(
    user: CurrentUser,
    service: Annotated[HelpdeskService, Depends(get_helpdesk_service)],
) -> list[PendingApprovalItem]:
    """List tickets awaiting the current user's approval.

    Items the user can act on now come first, sorted by approval deadline
    (most urgent first). Items where the user approves a later level are
    included with ``can_act`` false.
    """
    return await service.pending_approvals(user.to_actor())
