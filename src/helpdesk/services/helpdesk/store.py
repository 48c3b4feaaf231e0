"""Ticket store with optimistic concurrency control."""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from helpdesk.services.helpdesk.errors import ConflictError, NotFoundError
from helpdesk.services.helpdesk.schemas import (
    HighLevelCategory,
    Ticket,
    TicketStatus,
)

logger = logging.getLogger(__name__)


def format_ticket_number(sequence: int) -> str:
    """Render a counter value as ``TKT0001``."""
    return f"TKT{sequence:04d}"


def ensure_version(ticket: Ticket, expected_version: int | None) -> None:
    """Reject an action issued against a stale read.

    @param ticket - Ticket as currently stored
    @param expected_version - Version the caller read, None to skip the check
    @raises ConflictError if the versions differ
    """
    if expected_version is not None and ticket.version != expected_version:
        raise ConflictError(
            f"Ticket {ticket.id} is at version {ticket.version}, "
            f"expected {expected_version}"
        )


class TicketStore(ABC):
    """Abstract durable record of tickets.

    ``save`` is a compare-and-swap on ``version``: it succeeds only when the
    stored version equals ``expected_version`` and bumps the version by one.
    """

    @abstractmethod
    async def get(self, ticket_id: str) -> Ticket | None:
        """Get ticket by ID."""
        ...

    @abstractmethod
    async def add(self, ticket: Ticket) -> Ticket:
        """Insert a new ticket."""
        ...

    @abstractmethod
    async def save(self, ticket: Ticket, expected_version: int) -> Ticket:
        """Persist a mutated ticket if nobody else changed it first."""
        ...

    @abstractmethod
    async def find(
        self,
        *,
        statuses: set[TicketStatus] | None = None,
        category: HighLevelCategory | None = None,
        requester_id: str | None = None,
        assigned_to: str | None = None,
    ) -> list[Ticket]:
        """List tickets matching all given filters, newest first."""
        ...

    @abstractmethod
    async def next_ticket_number(self) -> str:
        """Allocate the next human-readable ticket number."""
        ...


class InMemoryTicketStore(TicketStore):
    """Process-local ticket store.

    Tickets are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self):
        self._tickets: dict[str, Ticket] = {}
        self._counter = 0
        self._lock = asyncio.Lock()

    async def get(self, ticket_id: str) -> Ticket | None:
        ticket = self._tickets.get(ticket_id)
        return ticket.model_copy(deep=True) if ticket else None

    async def add(self, ticket: Ticket) -> Ticket:
        async with self._lock:
            if ticket.id in self._tickets:
                raise ConflictError(f"Ticket {ticket.id} already exists")
            self._tickets[ticket.id] = ticket.model_copy(deep=True, update={"sla": None})
        return ticket.model_copy(deep=True)

    async def save(self, ticket: Ticket, expected_version: int) -> Ticket:
        async with self._lock:
            current = self._tickets.get(ticket.id)
            if current is None:
                raise NotFoundError(f"Ticket {ticket.id} not found")
            if current.version != expected_version:
                logger.info(
                    f"Version conflict on {ticket.id}: "
                    f"expected {expected_version}, stored {current.version}"
                )
                raise ConflictError(
                    f"Ticket {ticket.id} was modified concurrently "
                    f"(expected version {expected_version}, found {current.version})"
                )
            stored = ticket.model_copy(
                deep=True,
                update={
                    "version": expected_version + 1,
                    "updated_at": datetime.now(timezone.utc),
                    "sla": None,
                },
            )
            self._tickets[ticket.id] = stored
        return stored.model_copy(deep=True)

    async def find(
        self,
        *,
        statuses: set[TicketStatus] | None = None,
        category: HighLevelCategory | None = None,
        requester_id: str | None = None,
        assigned_to: str | None = None,
    ) -> list[Ticket]:
        matches = [
            t
            for t in self._tickets.values()
            if (statuses is None or t.status in statuses)
            and (category is None or t.high_level_category == category)
            and (requester_id is None or t.requester_id == requester_id)
            and (assigned_to is None or t.assigned_to == assigned_to)
        ]
        matches.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy(deep=True) for t in matches]

    async def next_ticket_number(self) -> str:
        async with self._lock:
            self._counter += 1
            return format_ticket_number(self._counter)
