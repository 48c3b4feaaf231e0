"""Side-effect dispatch for persisted ticket transitions."""

import logging
from collections import OrderedDict
from typing import Awaitable, Callable

from helpdesk.services.audit import AuditEntry, AuditLogger
from helpdesk.services.helpdesk.schemas import TransitionEvent
from helpdesk.services.notifications import NotificationService

logger = logging.getLogger(__name__)

AuditSink = Callable[[AuditEntry], Awaitable[None]]


class TransitionDispatcher:
    """Fires notification and audit exactly once per transition key.

    Runs only after the store accepted the mutation. Failures are logged
    and never undo the transition.
    """

    def __init__(
        self,
        notifications: NotificationService,
        audit: AuditLogger,
        audit_sink: AuditSink | None = None,
        max_remembered: int = 10000,
    ):
        """Initialize dispatcher.

        @param notifications - Notification service
        @param audit - Audit logger
        @param audit_sink - Optional durable writer for audit entries
        @param max_remembered - Number of transition keys kept for dedupe
        """
        self.notifications = notifications
        self.audit = audit
        self.audit_sink = audit_sink
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._max_remembered = max_remembered

    def already_dispatched(self, key: str) -> bool:
        return key in self._seen

    async def dispatch(self, event: TransitionEvent) -> bool:
        """Dispatch side effects for a transition.

        @param event - Persisted transition
        @returns False if the key was dispatched before
        """
        if event.key in self._seen:
            logger.debug(f"Transition {event.key} already dispatched")
            return False
        self._seen[event.key] = None
        if len(self._seen) > self._max_remembered:
            self._seen.popitem(last=False)

        try:
            entry = self.audit.log_transition(event)
            if self.audit_sink is not None:
                await self.audit_sink(entry)
        except Exception:
            logger.exception(f"Audit failed for transition {event.key}")

        try:
            await self.notifications.notify_transition(event)
        except Exception:
            logger.exception(f"Notification failed for transition {event.key}")

        return True
