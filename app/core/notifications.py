"""Operator notifications for failed workspaces.

Sends a Teams adaptive card when a workspace lands in FAILED, with a
per-workspace cooldown so a flapping workspace does not spam the channel.
Notification problems are logged and never propagate to the reconciler.

SECURITY: Webhook URLs and secrets are sanitized from logs.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import httpx

from app.core.config import Settings

logger = logging.getLogger(__name__)

# Regex patterns for sensitive data redaction
WEBHOOK_URL_PATTERN = re.compile(
    r"https?://[^\s\"]+webhook[^\s\"]*|https?://[^\s\"]*office\.com/webhook[^\s\"]*",
    re.IGNORECASE,
)
SENSITIVE_PATTERNS = {
    "secret": re.compile(r"(['\"]?(?:client_secret|secret)['\"]?\s*[:=]\s*)['\"][^'\"]+['\"]", re.IGNORECASE),
    "token": re.compile(r"(['\"]?(?:token|access_token)['\"]?\s*[:=]\s*)['\"][^'\"]+['\"]", re.IGNORECASE),
    "bearer": re.compile(r"(bearer\s+)\S+", re.IGNORECASE),
    "connection_string": re.compile(r"([a-z]+://[^:/\s]+:)[^@\s]+(@)", re.IGNORECASE),
}


class Severity(str, Enum):
    """Alert severity levels."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


SEVERITY_COLORS = {
    Severity.INFO: "#0078D4",
    Severity.WARNING: "#FFB900",
    Severity.ERROR: "#D83B01",
    Severity.CRITICAL: "#A80000",
}


@dataclass
class Notification:
    """Notification data structure."""

    title: str
    message: str
    severity: Severity = Severity.ERROR
    workspace_id: str | None = None
    transaction_id: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# Maps workspace_id -> last notification time
_notification_history: dict[str, datetime] = {}


def should_notify(settings: Settings, workspace_id: str) -> bool:
    """Check notifications are on and the workspace is out of cooldown."""
    if not settings.notification_enabled or not settings.teams_webhook_url:
        return False

    cooldown = timedelta(minutes=settings.notification_cooldown_minutes)
    now = datetime.utcnow()
    # Drop entries whose cooldown has passed
    for expired in [w for w, sent in _notification_history.items() if now - sent >= cooldown]:
        del _notification_history[expired]

    if workspace_id in _notification_history:
        logger.debug(f"Skipping notification for workspace {workspace_id}: in cooldown")
        return False
    return True


def record_notification_sent(workspace_id: str) -> None:
    """Record that a notification was sent for deduplication tracking."""
    _notification_history[workspace_id] = datetime.utcnow()


def sanitize_log_message(message: str) -> str:
    """Redact webhook URLs, tokens and secrets from a message."""
    if not message:
        return message

    sanitized = WEBHOOK_URL_PATTERN.sub("[WEBHOOK_URL_REDACTED]", message)

    def replace_sensitive(match: re.Match) -> str:
        if match.lastindex and match.lastindex >= 1:
            prefix = match.group(1)
            suffix = match.group(2) if match.lastindex >= 2 else ""
            return f"{prefix}[REDACTED]{suffix}"
        return "[REDACTED]"

    for pattern in SENSITIVE_PATTERNS.values():
        sanitized = pattern.sub(replace_sensitive, sanitized)
    return sanitized


def format_workspace_alert(notification: Notification) -> dict[str, Any]:
    """Format a notification as a Teams Adaptive Card."""
    timestamp = datetime.utcnow().strftime("%Y-%m-%d %H:%M UTC")

    facts = []
    if notification.workspace_id:
        facts.append({"title": "Workspace", "value": notification.workspace_id})
    if notification.transaction_id:
        facts.append({"title": "Transaction", "value": notification.transaction_id})
    for key, value in notification.metadata.items():
        facts.append({"title": str(key), "value": str(value)})

    body: list[dict[str, Any]] = [
        {
            "type": "TextBlock",
            "text": notification.title,
            "weight": "Bolder",
            "size": "Large",
            "color": "Attention" if notification.severity == Severity.CRITICAL else "Default",
        },
        {
            "type": "TextBlock",
            "text": f"Severity: **{notification.severity.value.upper()}** - {timestamp}",
            "size": "Small",
            "isSubtle": True,
        },
        {
            "type": "TextBlock",
            "text": notification.message,
            "wrap": True,
            "spacing": "Medium",
        },
    ]

    if notification.error_message:
        body.append({
            "type": "Container",
            "style": "emphasis",
            "items": [
                {"type": "TextBlock", "text": "Error Details", "weight": "Bolder"},
                {
                    "type": "TextBlock",
                    "text": sanitize_log_message(notification.error_message)[:500],
                    "fontType": "Monospace",
                    "wrap": True,
                    "size": "Small",
                },
            ],
        })

    if facts:
        body.append({"type": "FactSet", "facts": facts})

    return {
        "type": "message",
        "attachments": [
            {
                "contentType": "application/vnd.microsoft.card.adaptive",
                "contentVersion": "1.4",
                "content": {
                    "type": "AdaptiveCard",
                    "version": "1.4",
                    "style": "emphasis",
                    "backgroundColor": SEVERITY_COLORS[notification.severity],
                    "body": body,
                },
            }
        ],
    }


async def send_teams_notification(settings: Settings, notification: Notification) -> bool:
    """Post a notification to the configured Teams webhook."""
    if not settings.teams_webhook_url:
        logger.warning("Teams webhook URL not configured")
        return False

    payload = format_workspace_alert(notification)

    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
            response = await client.post(settings.teams_webhook_url, json=payload)
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error(
            f"Teams webhook returned error: HTTP {e.response.status_code}: "
            f"{sanitize_log_message(e.response.text)}"
        )
        return False
    except httpx.HTTPError as e:
        logger.error(f"Failed to send Teams notification: {sanitize_log_message(str(e))}")
        return False

    logger.info(f"Teams notification sent: {notification.title}")
    return True


async def notify_workspace_failed(
    settings: Settings,
    workspace_id: str,
    reason: str,
) -> bool:
    """Tell operators a workspace needs manual intervention."""
    if not should_notify(settings, workspace_id):
        return False

    transaction_id, _, detail = reason.partition(": ")
    notification = Notification(
        title=f"Workspace {workspace_id} failed",
        message="Provisioning stopped and was rolled back. Operator action is required.",
        severity=Severity.ERROR,
        workspace_id=workspace_id,
        transaction_id=transaction_id if detail else None,
        error_message=detail or reason,
    )
    sent = await send_teams_notification(settings, notification)
    if sent:
        record_notification_sent(workspace_id)
    return sent
