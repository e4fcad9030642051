"""Tests for failed-workspace notifications."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.core import notifications
from app.core.notifications import (
    Notification,
    Severity,
    format_workspace_alert,
    notify_workspace_failed,
    record_notification_sent,
    sanitize_log_message,
    send_teams_notification,
    should_notify,
)


@pytest.fixture(autouse=True)
def clear_history():
    notifications._notification_history.clear()
    yield
    notifications._notification_history.clear()


@pytest.fixture
def enabled_settings(settings):
    settings.notification_enabled = True
    settings.teams_webhook_url = "https://example.webhook.office.com/webhookb2/abc"
    settings.notification_cooldown_minutes = 30
    return settings


def mock_http_client(response=None, side_effect=None):
    client = MagicMock()
    client.post = AsyncMock(return_value=response, side_effect=side_effect)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    return client


class TestShouldNotify:
    """Tests for should_notify."""

    def test_disabled(self, settings):
        assert should_notify(settings, "ws-1") is False

    def test_enabled_without_webhook(self, enabled_settings):
        enabled_settings.teams_webhook_url = None
        assert should_notify(enabled_settings, "ws-1") is False

    def test_first_time(self, enabled_settings):
        assert should_notify(enabled_settings, "ws-1") is True

    def test_in_cooldown(self, enabled_settings):
        record_notification_sent("ws-1")
        assert should_notify(enabled_settings, "ws-1") is False
        assert should_notify(enabled_settings, "ws-2") is True

    def test_cooldown_expired(self, enabled_settings):
        notifications._notification_history["ws-1"] = datetime.utcnow() - timedelta(hours=1)
        assert should_notify(enabled_settings, "ws-1") is True

    def test_expired_entries_are_pruned(self, enabled_settings):
        notifications._notification_history["ws-old"] = datetime.utcnow() - timedelta(hours=1)
        record_notification_sent("ws-recent")

        should_notify(enabled_settings, "ws-1")

        assert set(notifications._notification_history) == {"ws-recent"}


class TestFormatting:
    """Tests for the adaptive card."""

    def test_card_contains_facts_and_error(self):
        card = format_workspace_alert(
            Notification(
                title="Workspace ws-1 failed",
                message="Rolled back",
                workspace_id="ws-1",
                transaction_id="CreateHelmRelease",
                error_message="release stalled",
            )
        )
        content = card["attachments"][0]["content"]
        assert content["backgroundColor"] == "#D83B01"
        facts = next(b for b in content["body"] if b["type"] == "FactSet")["facts"]
        assert {"title": "Transaction", "value": "CreateHelmRelease"} in facts
        container = next(b for b in content["body"] if b["type"] == "Container")
        assert container["items"][1]["text"] == "release stalled"

    def test_card_without_error(self):
        card = format_workspace_alert(Notification(title="t", message="m", severity=Severity.INFO))
        body = card["attachments"][0]["content"]["body"]
        assert all(block["type"] != "Container" for block in body)

    def test_sanitize(self):
        message = 'Bearer abc123 failed, client_secret="hunter2"'
        sanitized = sanitize_log_message(message)
        assert "abc123" not in sanitized
        assert "hunter2" not in sanitized
        assert sanitize_log_message("") == ""


class TestSending:
    """Tests for webhook delivery."""

    @pytest.mark.asyncio
    async def test_send_success(self, enabled_settings):
        response = MagicMock()
        response.raise_for_status = MagicMock()
        client = mock_http_client(response=response)

        with patch("app.core.notifications.httpx.AsyncClient", return_value=client):
            sent = await send_teams_notification(enabled_settings, Notification(title="t", message="m"))

        assert sent is True
        assert client.post.await_args.args[0] == enabled_settings.teams_webhook_url

    @pytest.mark.asyncio
    async def test_send_http_error(self, enabled_settings):
        client = mock_http_client(side_effect=httpx.ConnectError("refused"))
        with patch("app.core.notifications.httpx.AsyncClient", return_value=client):
            sent = await send_teams_notification(enabled_settings, Notification(title="t", message="m"))
        assert sent is False

    @pytest.mark.asyncio
    async def test_notify_workspace_failed_records_cooldown(self, enabled_settings):
        with patch(
            "app.core.notifications.send_teams_notification", new=AsyncMock(return_value=True)
        ) as send:
            first = await notify_workspace_failed(
                enabled_settings, "ws-1", "CreateHelmRelease: release stalled"
            )
            second = await notify_workspace_failed(
                enabled_settings, "ws-1", "CreateHelmRelease: release stalled"
            )

        assert (first, second) == (True, False)
        notification = send.await_args.args[1]
        assert notification.transaction_id == "CreateHelmRelease"
        assert notification.error_message == "release stalled"

    @pytest.mark.asyncio
    async def test_failed_send_does_not_start_cooldown(self, enabled_settings):
        with patch(
            "app.core.notifications.send_teams_notification", new=AsyncMock(return_value=False)
        ):
            await notify_workspace_failed(enabled_settings, "ws-1", "unknown failure")
        assert should_notify(enabled_settings, "ws-1") is True

    @pytest.mark.asyncio
    async def test_disabled_sends_nothing(self, settings):
        with patch("app.core.notifications.send_teams_notification", new=AsyncMock()) as send:
            assert await notify_workspace_failed(settings, "ws-1", "boom") is False
        send.assert_not_awaited()
