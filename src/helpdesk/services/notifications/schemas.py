"""Notification schemas for ticket transitions."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class NotificationChannel(str, Enum):
    """Notification channel types."""

    SLACK = "SLACK"
    WEBHOOK = "WEBHOOK"
    LOG = "LOG"  # For testing/development


class NotificationPriority(str, Enum):
    """Notification priority levels."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class NotificationStatus(str, Enum):
    """Notification delivery status."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"  # Already delivered for this message ID


class ChannelConfig(BaseModel):
    """Configuration for a notification channel."""

    channel: NotificationChannel = Field(..., description="Channel type")
    enabled: bool = Field(default=True, description="Is channel enabled")
    endpoint: str = Field(..., description="Channel endpoint URL")
    api_key: str | None = Field(default=None, description="API key if required")


class SlackConfig(ChannelConfig):
    """Slack-specific configuration."""

    channel: NotificationChannel = NotificationChannel.SLACK
    channel_name: str | None = Field(default=None, description="Channel override")


class NotificationMessage(BaseModel):
    """Notification message to be sent."""

    message_id: str = Field(..., description="Unique message ID (idempotency key)")
    title: str = Field(..., description="Message title")
    body: str = Field(..., description="Message body")
    priority: NotificationPriority = Field(..., description="Priority level")
    channels: list[NotificationChannel] = Field(..., description="Target channels")
    recipients: list[str] = Field(default_factory=list, description="Employee IDs")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Extra data")
    created_at: datetime = Field(..., description="Creation time")


class NotificationRecord(BaseModel):
    """Record of a sent notification."""

    record_id: str = Field(..., description="Record ID")
    message_id: str = Field(..., description="Source message ID")
    channel: NotificationChannel = Field(..., description="Channel used")
    status: NotificationStatus = Field(..., description="Delivery status")
    sent_at: datetime | None = Field(None, description="Send time")
    error: str | None = Field(None, description="Error if failed")
