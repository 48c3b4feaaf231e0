"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from helpdesk.services.helpdesk.schemas import (
    Actor,
    ActorRole,
    ApprovalStep,
    HighLevelCategory,
    Ticket,
    TicketStatus,
    Urgency,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_ticket(
    status: TicketStatus = TicketStatus.ROUTED,
    levels: int = 0,
    category: HighLevelCategory = HighLevelCategory.IT,
    urgency: Urgency = Urgency.MEDIUM,
    requester_id: str = "E100",
    created_at: datetime = T0,
    **overrides,
) -> Ticket:
    """Build a ticket directly, bypassing submission."""
    data = {
        "id": overrides.pop("id", "TKT-TEST0001"),
        "ticket_number": overrides.pop("ticket_number", "TKT0001"),
        "high_level_category": category,
        "sub_category": "Hardware",
        "urgency": urgency,
        "subject": "Laptop screen flickers",
        "status": status,
        "approval_flow": [
            ApprovalStep(level=n, manager_id=f"M{n}") for n in range(1, levels + 1)
        ],
        "specialist_queue": "Hardware Team",
        "requester_id": requester_id,
        "requester_name": "Alice",
        "requester_manager_id": "M1",
        "created_at": created_at,
        "updated_at": created_at,
    }
    if status in (
        TicketStatus.ROUTED,
        TicketStatus.ASSIGNED,
        TicketStatus.IN_PROGRESS,
        TicketStatus.ON_HOLD,
    ):
        data["routed_at"] = created_at
    data.update(overrides)
    return Ticket(**data)


@pytest.fixture
def ticket_factory():
    return make_ticket


@pytest.fixture
def requester():
    return Actor(id="E100", name="Alice", role=ActorRole.EMPLOYEE)


@pytest.fixture
def it_specialist():
    return Actor(id="S200", name="Sam", role=ActorRole.SPECIALIST, department="IT")


@pytest.fixture
def admin():
    return Actor(id="A1", name="Root", role=ActorRole.ADMIN)


@pytest.fixture
def manager():
    return Actor(id="M1", name="Mona", role=ActorRole.MANAGER, approval_level=1)


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def later():
    """Clock factory relative to T0."""

    def _later(**kwargs) -> datetime:
        return T0 + timedelta(**kwargs)

    return _later


@pytest.fixture(scope="session")
def app():
    """Create FastAPI application for testing."""
    from helpdesk.main import create_app

    return create_app()


@pytest.fixture(scope="session")
def client(app):
    """Create test client."""
    with TestClient(app) as client:
        yield client


@pytest.fixture(scope="function")
def settings():
    """Create settings instance for testing."""
    from helpdesk.core.config import Settings

    return Settings(environment="testing")
