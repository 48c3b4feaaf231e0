"""Repository layer for database operations.

Async repository implementations using SQLAlchemy 2.x.
"""

from helpdesk.repositories.audit_log import AuditLogRepository
from helpdesk.repositories.base import BaseRepository
from helpdesk.repositories.ticket import TicketRepository

__all__ = [
    "BaseRepository",
    "TicketRepository",
    "AuditLogRepository",
]
