"""Repository for audit log operations."""

from sqlalchemy import select

from helpdesk.models.audit import AuditLog
from helpdesk.repositories.base import BaseRepository


class AuditLogRepository(BaseRepository[AuditLog]):
    """Repository for AuditLog database operations."""

    model = AuditLog

    async def get_by_correlation(self, correlation_id: str) -> AuditLog | None:
        """Get the entry written for a transition key."""
        stmt = select(self.model).where(self.model.correlation_id == correlation_id)
        result = await self.session.execute(stmt.limit(1))
        return result.scalars().first()
