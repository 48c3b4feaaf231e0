"""Audit logging service module."""

from helpdesk.services.audit.schemas import (
    AuditAction,
    AuditCategory,
    AuditEntry,
    AuditQuery,
    AuditSeverity,
    AuditStats,
)
from helpdesk.services.audit.logger import (
    AuditLogger,
    get_audit_logger,
    reset_audit_logger,
)

__all__ = [
    # Schemas
    "AuditAction",
    "AuditCategory",
    "AuditSeverity",
    "AuditEntry",
    "AuditQuery",
    "AuditStats",
    # Service
    "AuditLogger",
    "get_audit_logger",
    "reset_audit_logger",
]
