"""API v1 module."""

from fastapi import APIRouter

from helpdesk.api.v1.endpoints import approvals, tickets

api_router = APIRouter()

# Include routers
api_router.include_router(tickets.router)
api_router.include_router(approvals.router)
