"""Database models for the helpdesk backend."""

from helpdesk.models.audit import AuditLog
from helpdesk.models.base import Base, TimestampMixin
from helpdesk.models.ticket import (
    HelpdeskTicket,
    TicketApprovalStep,
    TicketCounter,
    TicketHistory,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Ticket models
    "HelpdeskTicket",
    "TicketApprovalStep",
    "TicketHistory",
    "TicketCounter",
    # Monitoring models
    "AuditLog",
]
