"""Notification service for ticket transitions."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import httpx

from helpdesk.core.config import get_settings
from helpdesk.services.helpdesk.schemas import (
    TicketAction,
    TicketStatus,
    TransitionEvent,
)
from helpdesk.services.notifications.schemas import (
    ChannelConfig,
    NotificationChannel,
    NotificationMessage,
    NotificationPriority,
    NotificationRecord,
    NotificationStatus,
    SlackConfig,
)

logger = logging.getLogger(__name__)

HIGH_PRIORITY_ACTIONS = {TicketAction.REJECTED, TicketAction.AUTO_CLOSED}
MESSAGE_PREVIEW_CHARS = 100


def build_transition_message(event: TransitionEvent) -> NotificationMessage:
    """Render a transition as a notification message.

    The transition key doubles as message ID so a transition is never
    delivered twice.
    """
    previous = event.previous_status.value if event.previous_status else "new"
    body = f"{previous} -> {event.new_status.value}"
    if event.action == TicketAction.MESSAGE_ADDED:
        message = event.details.get("message") or ""
        if len(message) > MESSAGE_PREVIEW_CHARS:
            message = message[:MESSAGE_PREVIEW_CHARS] + "..."
        body = f"New message from {event.actor_id}: {message}"
    elif event.details.get("remarks"):
        body += f"\nRemarks: {event.details['remarks']}"
    if event.action != TicketAction.MESSAGE_ADDED and event.new_status in (
        TicketStatus.PENDING_APPROVAL_L1,
        TicketStatus.PENDING_APPROVAL_L2,
        TicketStatus.PENDING_APPROVAL_L3,
    ):
        body += "\nAwaiting your approval."

    priority = (
        NotificationPriority.HIGH
        if event.action in HIGH_PRIORITY_ACTIONS
        else NotificationPriority.MEDIUM
    )
    return NotificationMessage(
        message_id=event.key,
        title=f"Ticket {event.ticket_number} {event.action.value.replace('_', ' ').lower()}",
        body=body,
        priority=priority,
        channels=[
            NotificationChannel.LOG,
            NotificationChannel.WEBHOOK,
            NotificationChannel.SLACK,
        ],
        recipients=event.recipients,
        metadata={"ticket_id": event.ticket_id, "action": event.action.value},
        created_at=event.occurred_at,
    )


class NotificationService:
    """Service for sending notifications across channels.

    Features:
    - LOG, WEBHOOK and SLACK channels
    - At-most-once delivery per message ID
    - Delivery tracking and history
    """

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        """Initialize notification service.

        Args:
            http_client: Optional preconfigured client (tests inject a mock)
        """
        self._channels: dict[NotificationChannel, ChannelConfig] = {}
        self._records: dict[str, NotificationRecord] = {}
        self._delivered: set[tuple[str, NotificationChannel]] = set()
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    def configure_channel(self, config: ChannelConfig) -> None:
        """Configure a notification channel.

        Args:
            config: Channel configuration
        """
        self._channels[config.channel] = config
        logger.info(f"Configured notification channel: {config.channel.value}")

    def is_channel_configured(self, channel: NotificationChannel) -> bool:
        config = self._channels.get(channel)
        return config is not None and config.enabled

    async def send_notification(
        self,
        message: NotificationMessage,
    ) -> list[NotificationRecord]:
        """Send notification to all specified channels.

        Unconfigured channels other than LOG are skipped silently.

        Args:
            message: Notification message

        Returns:
            List of delivery records
        """
        records = []
        for channel in message.channels:
            if channel != NotificationChannel.LOG and not self.is_channel_configured(
                channel
            ):
                continue
            record = await self._send_to_channel(message, channel)
            records.append(record)
            self._records[record.record_id] = record
        return records

    async def notify_transition(
        self, event: TransitionEvent
    ) -> list[NotificationRecord]:
        """Notify recipients of a persisted ticket transition."""
        return await self.send_notification(build_transition_message(event))

    async def _send_to_channel(
        self,
        message: NotificationMessage,
        channel: NotificationChannel,
    ) -> NotificationRecord:
        """Send notification to a specific channel.

        Args:
            message: Notification message
            channel: Target channel

        Returns:
            Delivery record
        """
        record = NotificationRecord(
            record_id=f"NTF-{uuid.uuid4().hex[:8].upper()}",
            message_id=message.message_id,
            channel=channel,
            status=NotificationStatus.PENDING,
        )

        if (message.message_id, channel) in self._delivered:
            record.status = NotificationStatus.SKIPPED
            logger.debug(
                f"Notification {message.message_id} already sent via {channel.value}"
            )
            return record

        try:
            if channel == NotificationChannel.SLACK:
                await self._send_slack(message, self._channels[channel])
            elif channel == NotificationChannel.WEBHOOK:
                await self._send_webhook(message, self._channels[channel])
            else:
                self._send_log(message)

            record.status = NotificationStatus.SENT
            record.sent_at = datetime.now(timezone.utc)
            self._delivered.add((message.message_id, channel))

        except httpx.HTTPError as e:
            record.status = NotificationStatus.FAILED
            record.error = str(e)
            logger.error(f"Failed to send notification to {channel.value}: {e}")

        return record

    async def _send_slack(
        self,
        message: NotificationMessage,
        config: ChannelConfig,
    ) -> dict[str, Any]:
        """Send notification to a Slack incoming webhook."""
        color = {
            NotificationPriority.LOW: "#36a64f",
            NotificationPriority.MEDIUM: "#f2c744",
            NotificationPriority.HIGH: "#dc3545",
        }[message.priority]

        payload: dict[str, Any] = {
            "attachments": [
                {
                    "color": color,
                    "title": message.title,
                    "text": message.body,
                    "fields": [
                        {"title": "Priority", "value": message.priority.value, "short": True},
                        {"title": "Time", "value": message.created_at.isoformat(), "short": True},
                    ],
                    "footer": "Helpdesk",
                }
            ]
        }
        if isinstance(config, SlackConfig) and config.channel_name:
            payload["channel"] = config.channel_name

        client = await self._get_http_client()
        response = await client.post(config.endpoint, json=payload)
        response.raise_for_status()

        return {"status": "ok"}

    async def _send_webhook(
        self,
        message: NotificationMessage,
        config: ChannelConfig,
    ) -> dict[str, Any]:
        """Send notification to a generic webhook."""
        payload = {
            "message_id": message.message_id,
            "title": message.title,
            "body": message.body,
            "priority": message.priority.value,
            "recipients": message.recipients,
            "metadata": message.metadata,
            "created_at": message.created_at.isoformat(),
        }

        headers = {}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        client = await self._get_http_client()
        response = await client.post(config.endpoint, json=payload, headers=headers)
        response.raise_for_status()

        return {"status": response.status_code}

    def _send_log(self, message: NotificationMessage) -> None:
        log_level = {
            NotificationPriority.LOW: logging.DEBUG,
            NotificationPriority.MEDIUM: logging.INFO,
            NotificationPriority.HIGH: logging.WARNING,
        }[message.priority]

        logger.log(
            log_level,
            f"[NOTIFY] {message.title}: {message.body} "
            f"(to: {', '.join(message.recipients) or '-'})",
        )

    def get_delivery_records(
        self,
        message_id: str | None = None,
        status: NotificationStatus | None = None,
        limit: int = 100,
    ) -> list[NotificationRecord]:
        """Get notification delivery records.

        Args:
            message_id: Filter by message ID
            status: Filter by status
            limit: Max records to return

        Returns:
            List of records
        """
        records = list(self._records.values())
        if message_id:
            records = [r for r in records if r.message_id == message_id]
        if status:
            records = [r for r in records if r.status == status]
        return records[-limit:]

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


# Singleton instance
_notification_service: NotificationService | None = None


def get_notification_service() -> NotificationService:
    """Get or create notification service singleton, wired from settings."""
    global _notification_service
    if _notification_service is None:
        settings = get_settings()
        service = NotificationService()
        if settings.notification_webhook_url:
            service.configure_channel(
                ChannelConfig(
                    channel=NotificationChannel.WEBHOOK,
                    endpoint=settings.notification_webhook_url,
                )
            )
        if settings.slack_webhook_url:
            service.configure_channel(
                SlackConfig(
                    endpoint=settings.slack_webhook_url,
                    channel_name=settings.slack_channel,
                )
            )
        _notification_service = service
    return _notification_service


def reset_notification_service() -> None:
    """Reset notification service singleton (for testing)."""
    global _notification_service
    _notification_service = None
