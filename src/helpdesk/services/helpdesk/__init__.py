"""Helpdesk ticket domain: approval engine, lifecycle router, SLA and stats."""

from helpdesk.services.helpdesk.approval import ApprovalEngine
from helpdesk.services.helpdesk.directory import EmployeeDirectory, Specialist
from helpdesk.services.helpdesk.errors import (
    AuthorizationError,
    ConflictError,
    HelpdeskError,
    NotFoundError,
    ValidationError,
)
from helpdesk.services.helpdesk.lifecycle import LifecycleRouter
from helpdesk.services.helpdesk.policy import (
    DEFAULT_POLICIES,
    ApproverConfig,
    PolicyCatalog,
    SubCategoryPolicy,
)
from helpdesk.services.helpdesk.schemas import (
    Actor,
    ActorRole,
    ApprovalStep,
    ApprovalStepStatus,
    HighLevelCategory,
    ProgressState,
    StatsTab,
    Ticket,
    TicketAction,
    TicketStatus,
    Urgency,
)
from helpdesk.services.helpdesk.sla import SLACalculator, SLAConfig
from helpdesk.services.helpdesk.stats import StatsAggregator
from helpdesk.services.helpdesk.store import InMemoryTicketStore, TicketStore

__all__ = [
    # Engines
    "ApprovalEngine",
    "LifecycleRouter",
    "SLACalculator",
    "SLAConfig",
    "StatsAggregator",
    # Policy
    "ApproverConfig",
    "SubCategoryPolicy",
    "PolicyCatalog",
    "DEFAULT_POLICIES",
    # Directory
    "EmployeeDirectory",
    "Specialist",
    # Store
    "TicketStore",
    "InMemoryTicketStore",
    # Errors
    "HelpdeskError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "ConflictError",
    # Schemas
    "Actor",
    "ActorRole",
    "ApprovalStep",
    "ApprovalStepStatus",
    "HighLevelCategory",
    "ProgressState",
    "StatsTab",
    "Ticket",
    "TicketAction",
    "TicketStatus",
    "Urgency",
]
