"""Alerting for spam-risk cooldowns and failed cycles."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import httpx

from content_autopilot.config import settings
from content_autopilot.logging import get_logger

logger = get_logger(__name__)


class AlertSeverity(StrEnum):
    """Alert severity levels."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class Alert:
    """An alert to be sent to the configured webhook."""

    title: str
    message: str
    severity: AlertSeverity = AlertSeverity.ERROR
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class AlertingService:
    """Sends alerts to a Discord webhook."""

    DISCORD_COLORS = {
        AlertSeverity.INFO: 0x3498DB,  # Blue
        AlertSeverity.WARNING: 0xF39C12,  # Orange
        AlertSeverity.ERROR: 0xE74C3C,  # Red
    }

    def __init__(self, webhook_url: str | None = None) -> None:
        self.discord_webhook_url = webhook_url or settings.alert_discord_webhook_url

    @property
    def enabled(self) -> bool:
        return bool(self.discord_webhook_url)

    async def send_alert(self, alert: Alert) -> bool:
        """Send an alert.

        Delivery failures are logged and reported as False; an alert never
        interrupts the cycle that raised it.

        Returns:
            True if the webhook accepted the alert
        """
        if not self.discord_webhook_url:
            return False
        try:
            return await self._send_discord(alert)
        except httpx.HTTPError as e:
            logger.error("discord_alert_failed", error=str(e), title=alert.title)
            return False

    async def _send_discord(self, alert: Alert) -> bool:
        assert self.discord_webhook_url is not None

        fields = []
        for key, value in alert.context.items():
            str_value = str(value)
            if len(str_value) > 200:
                str_value = str_value[:197] + "..."
            fields.append(
                {
                    "name": key.replace("_", " ").title(),
                    "value": str_value,
                    "inline": True,
                }
            )

        payload = {
            "embeds": [
                {
                    "title": f"[{alert.severity.value.upper()}] {alert.title}",
                    "description": alert.message,
                    "color": self.DISCORD_COLORS.get(alert.severity, 0xE74C3C),
                    "fields": fields[:25],  # Discord limit
                    "timestamp": alert.timestamp.isoformat(),
                    "footer": {"text": "Content Autopilot"},
                }
            ]
        }

        async with httpx.AsyncClient() as client:
            response = await client.post(self.discord_webhook_url, json=payload, timeout=10.0)
            response.raise_for_status()

        logger.info("discord_alert_sent", severity=alert.severity.value, title=alert.title)
        return True


_alerting_service: AlertingService | None = None


def get_alerting_service() -> AlertingService:
    """Get the alerting service singleton."""
    global _alerting_service
    if _alerting_service is None:
        _alerting_service = AlertingService()
    return _alerting_service


async def alert_spam_risk(message: str, cooldown_until: datetime) -> None:
    """Alert that uploads were paused after a spam-risk response."""
    if not settings.alert_on_spam_risk:
        return
    alert = Alert(
        title="Uploads paused: spam risk",
        message=message,
        severity=AlertSeverity.WARNING,
        context={"cooldown_until": cooldown_until.isoformat()},
    )
    await get_alerting_service().send_alert(alert)


async def alert_cycle_failure(cycle_type: str, error_message: str) -> None:
    """Alert that a cycle ended with an unexpected exception."""
    if not settings.alert_on_cycle_failure:
        return
    alert = Alert(
        title=f"Cycle failed: {cycle_type}",
        message=error_message,
        severity=AlertSeverity.ERROR,
        context={"cycle_type": cycle_type},
    )
    await get_alerting_service().send_alert(alert)
