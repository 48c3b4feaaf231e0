"""Tests for transition notifications."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from helpdesk.services.helpdesk.schemas import (
    TicketAction,
    TicketStatus,
    TransitionEvent,
)
from helpdesk.services.notifications import (
    ChannelConfig,
    NotificationChannel,
    NotificationPriority,
    NotificationService,
    NotificationStatus,
    SlackConfig,
    build_transition_message,
)


def rejected_event(key: str = "TKT-1:L1:Rejected") -> TransitionEvent:
    return TransitionEvent(
        key=key,
        ticket_id="TKT-1",
        ticket_number="TKT0001",
        action=TicketAction.REJECTED,
        actor_id="M1",
        previous_status=TicketStatus.PENDING_APPROVAL_L1,
        new_status=TicketStatus.REJECTED,
        recipients=["E100"],
        details={"remarks": "budget exceeded"},
        occurred_at=datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
    )


class TestBuildTransitionMessage:
    """Tests for message rendering."""

    def test_rejection_message(self):
        message = build_transition_message(rejected_event())

        assert message.message_id == "TKT-1:L1:Rejected"
        assert message.title == "Ticket TKT0001 rejected"
        assert "Remarks: budget exceeded" in message.body
        assert message.priority == NotificationPriority.HIGH
        assert message.recipients == ["E100"]

    def test_pending_approval_prompt(self):
        event = rejected_event().model_copy(
            update={
                "action": TicketAction.APPROVED,
                "new_status": TicketStatus.PENDING_APPROVAL_L2,
                "details": {},
            }
        )

        message = build_transition_message(event)

        assert "Awaiting your approval." in message.body
        assert message.priority == NotificationPriority.MEDIUM

    def test_message_preview(self):
        event = rejected_event().model_copy(
            update={
                "action": TicketAction.MESSAGE_ADDED,
                "actor_id": "S200",
                "previous_status": TicketStatus.PENDING_APPROVAL_L1,
                "new_status": TicketStatus.PENDING_APPROVAL_L1,
                "details": {"message": "x" * 150},
            }
        )

        message = build_transition_message(event)

        assert message.title == "Ticket TKT0001 message added"
        assert message.body == f"New message from S200: {'x' * 100}..."
        assert "Awaiting your approval." not in message.body


class TestNotificationService:
    """Tests for NotificationService."""

    def setup_method(self):
        """Set up test fixtures."""
        self.response = MagicMock()
        self.http_client = AsyncMock(spec=httpx.AsyncClient)
        self.http_client.post.return_value = self.response
        self.service = NotificationService(http_client=self.http_client)

    @pytest.mark.asyncio
    async def test_log_only_when_unconfigured(self):
        records = await self.service.notify_transition(rejected_event())

        assert [r.channel for r in records] == [NotificationChannel.LOG]
        assert records[0].status == NotificationStatus.SENT
        self.http_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_webhook_delivery(self):
        self.service.configure_channel(
            ChannelConfig(
                channel=NotificationChannel.WEBHOOK,
                endpoint="https://hooks.example.com/helpdesk",
                api_key="k",
            )
        )

        records = await self.service.notify_transition(rejected_event())

        assert {r.channel for r in records} == {
            NotificationChannel.LOG,
            NotificationChannel.WEBHOOK,
        }
        args, kwargs = self.http_client.post.call_args
        assert args[0] == "https://hooks.example.com/helpdesk"
        assert kwargs["json"]["message_id"] == "TKT-1:L1:Rejected"
        assert kwargs["headers"]["Authorization"] == "Bearer k"

    @pytest.mark.asyncio
    async def test_slack_payload(self):
        self.service.configure_channel(
            SlackConfig(endpoint="https://hooks.slack.com/x", channel_name="#helpdesk")
        )

        await self.service.notify_transition(rejected_event())

        payload = self.http_client.post.call_args.kwargs["json"]
        assert payload["channel"] == "#helpdesk"
        assert payload["attachments"][0]["color"] == "#dc3545"

    @pytest.mark.asyncio
    async def test_same_message_delivered_once(self):
        self.service.configure_channel(
            ChannelConfig(channel=NotificationChannel.WEBHOOK, endpoint="https://h")
        )

        await self.service.notify_transition(rejected_event())
        second = await self.service.notify_transition(rejected_event())

        assert all(r.status == NotificationStatus.SKIPPED for r in second)
        assert self.http_client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_http_failure_recorded(self):
        self.http_client.post.side_effect = httpx.ConnectError("unreachable")
        self.service.configure_channel(
            ChannelConfig(channel=NotificationChannel.WEBHOOK, endpoint="https://h")
        )

        await self.service.notify_transition(rejected_event())

        failed = self.service.get_delivery_records(status=NotificationStatus.FAILED)
        assert len(failed) == 1
        assert "unreachable" in failed[0].error

    @pytest.mark.asyncio
    async def test_disabled_channel_skipped(self):
        self.service.configure_channel(
            ChannelConfig(
                channel=NotificationChannel.WEBHOOK, endpoint="https://h", enabled=False
            )
        )

        records = await self.service.notify_transition(rejected_event())

        assert [r.channel for r in records] == [NotificationChannel.LOG]

    @pytest.mark.asyncio
    async def test_close(self):
        await self.service.close()

        self.http_client.aclose.assert_awaited_once()
