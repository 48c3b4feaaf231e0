"""Notification service module."""

from helpdesk.services.notifications.schemas import (
    ChannelConfig,
    NotificationChannel,
    NotificationMessage,
    NotificationPriority,
    NotificationRecord,
    NotificationStatus,
    SlackConfig,
)
from helpdesk.services.notifications.service import (
    NotificationService,
    build_transition_message,
    get_notification_service,
    reset_notification_service,
)

__all__ = [
    "ChannelConfig",
    "NotificationChannel",
    "NotificationMessage",
    "NotificationPriority",
    "NotificationRecord",
    "NotificationStatus",
    "SlackConfig",
    "NotificationService",
    "build_transition_message",
    "get_notification_service",
    "reset_notification_service",
]
