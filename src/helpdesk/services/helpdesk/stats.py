"""Role-scoped KPI buckets over a ticket population.

Bucket membership is a declarative table keyed by ``(role, tab)``. ``total``
counts every ticket in the viewer's population. Tickets whose status none of
the policy's four buckets tracks are counted as ``untracked``, so
``resolved + in_progress + rejected + cancelled + untracked == total``.
"""

from dataclasses import dataclass
from typing import Iterable

from helpdesk.services.helpdesk.schemas import (
    Actor,
    ActorRole,
    StatsBuckets,
    StatsTab,
    Ticket,
    TicketStatus,
)

S = TicketStatus


@dataclass(frozen=True)
class BucketPolicy:
    """Status sets for each KPI bucket."""

    resolved: frozenset[TicketStatus]
    in_progress: frozenset[TicketStatus]
    rejected: frozenset[TicketStatus]
    cancelled: frozenset[TicketStatus]

    def bucket_of(self, status: TicketStatus) -> str | None:
        for name in ("resolved", "in_progress", "rejected", "cancelled"):
            if status in getattr(self, name):
                return name
        return None


REQUESTER_POLICY = BucketPolicy(
    resolved=frozenset({S.CLOSED, S.AUTO_CLOSED}),
    in_progress=frozenset(
        {
            S.PENDING_APPROVAL,
            S.PENDING_APPROVAL_L1,
            S.PENDING_APPROVAL_L2,
            S.PENDING_APPROVAL_L3,
            S.ROUTED,
            S.ASSIGNED,
            S.IN_PROGRESS,
            S.AWAITING_CONFIRMATION,
            S.SUBMITTED,
            S.APPROVED,
            S.IN_QUEUE,
            S.COMPLETED,
        }
    ),
    rejected=frozenset({S.REJECTED}),
    cancelled=frozenset({S.CANCELLED}),
)

SPECIALIST_POLICY = BucketPolicy(
    resolved=frozenset({S.CLOSED, S.AUTO_CLOSED, S.CONFIRMED}),
    in_progress=frozenset({S.ASSIGNED, S.IN_PROGRESS, S.IN_QUEUE}),
    rejected=frozenset(),
    cancelled=frozenset({S.CANCELLED}),
)

BUCKET_POLICIES: dict[tuple[ActorRole, StatsTab | None], BucketPolicy] = {
    (ActorRole.EMPLOYEE, None): REQUESTER_POLICY,
    (ActorRole.MANAGER, StatsTab.MY_REQUESTS): REQUESTER_POLICY,
    (ActorRole.MANAGER, StatsTab.MY_TEAM): REQUESTER_POLICY,
    (ActorRole.SPECIALIST, None): SPECIALIST_POLICY,
    (ActorRole.ADMIN, None): REQUESTER_POLICY,
}


class StatsAggregator:
    """Pure projection of tickets into KPI buckets for a viewer."""

    def __init__(
        self,
        policies: dict[tuple[ActorRole, StatsTab | None], BucketPolicy] | None = None,
    ):
        self.policies = policies or BUCKET_POLICIES

    @staticmethod
    def _effective_tab(viewer: Actor, tab: StatsTab | None) -> StatsTab | None:
        if viewer.role == ActorRole.MANAGER:
            return tab or StatsTab.MY_REQUESTS
        return None

    def policy_for(self, viewer: Actor, tab: StatsTab | None = None) -> BucketPolicy:
        return self.policies.get(
            (viewer.role, self._effective_tab(viewer, tab)), REQUESTER_POLICY
        )

    def population(
        self,
        tickets: Iterable[Ticket],
        viewer: Actor,
        tab: StatsTab | None = None,
        department: str | None = None,
    ) -> list[Ticket]:
        """Select the tickets a viewer's dashboard covers.

        @param tickets - Candidate tickets
        @param viewer - Dashboard owner
        @param tab - Manager tab (ignored for other roles)
        @param department - Optional category filter
        @returns Tickets in scope
        """
        tab = self._effective_tab(viewer, tab)
        selected = []
        for ticket in tickets:
            if viewer.role == ActorRole.SPECIALIST:
                in_scope = ticket.high_level_category.value == viewer.department
            elif viewer.role == ActorRole.ADMIN:
                in_scope = True
            elif tab == StatsTab.MY_TEAM:
                in_scope = (
                    ticket.requester_manager_id == viewer.id
                    and ticket.requester_id != viewer.id
                )
            else:
                in_scope = ticket.requester_id == viewer.id

            if in_scope and department:
                in_scope = ticket.high_level_category.value == department
            if in_scope:
                selected.append(ticket)
        return selected

    def bucket(
        self,
        tickets: Iterable[Ticket],
        viewer: Actor,
        tab: StatsTab | None = None,
        department: str | None = None,
    ) -> StatsBuckets:
        """Count a viewer's tickets into KPI buckets."""
        policy = self.policy_for(viewer, tab)
        counts = {"resolved": 0, "in_progress": 0, "rejected": 0, "cancelled": 0}
        untracked = 0

        population = self.population(tickets, viewer, tab, department)
        for ticket in population:
            name = policy.bucket_of(ticket.status)
            if name is None:
                untracked += 1
            else:
                counts[name] += 1

        return StatsBuckets(total=len(population), untracked=untracked, **counts)
