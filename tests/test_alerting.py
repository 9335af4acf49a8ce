"""Tests for webhook alerting."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from content_autopilot.config import settings
from content_autopilot.services import alerting
from content_autopilot.services.alerting import Alert, AlertingService, AlertSeverity

WEBHOOK = "https://discord.example/webhook"


def _response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", WEBHOOK))


class TestAlertingService:
    @pytest.mark.asyncio
    async def test_disabled_without_webhook(self) -> None:
        with patch.object(settings, "alert_discord_webhook_url", None):
            service = AlertingService()

        assert service.enabled is False
        assert await service.send_alert(Alert(title="t", message="m")) is False

    @pytest.mark.asyncio
    async def test_sends_embed(self) -> None:
        service = AlertingService(webhook_url=WEBHOOK)
        alert = Alert(
            title="Uploads paused",
            message="spam risk",
            severity=AlertSeverity.WARNING,
            context={"cooldown_until": "x" * 300},
        )

        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(return_value=_response(204))) as post:
            assert await service.send_alert(alert) is True

        payload = post.call_args.kwargs["json"]
        embed = payload["embeds"][0]
        assert embed["title"] == "[WARNING] Uploads paused"
        assert embed["color"] == AlertingService.DISCORD_COLORS[AlertSeverity.WARNING]
        assert embed["fields"][0]["name"] == "Cooldown Until"
        assert len(embed["fields"][0]["value"]) == 200

    @pytest.mark.asyncio
    async def test_delivery_failure_returns_false(self) -> None:
        service = AlertingService(webhook_url=WEBHOOK)

        with patch.object(httpx.AsyncClient, "post", new=AsyncMock(return_value=_response(500))):
            assert await service.send_alert(Alert(title="t", message="m")) is False


class TestAlertHelpers:
    @pytest.mark.asyncio
    async def test_spam_risk_alert_respects_toggle(self) -> None:
        service = AsyncMock()
        until = datetime(2026, 3, 2, 8, 0, tzinfo=UTC)

        with (
            patch.object(alerting, "get_alerting_service", return_value=service),
            patch.object(settings, "alert_on_spam_risk", False),
        ):
            await alerting.alert_spam_risk("slow down", until)
        service.send_alert.assert_not_called()

        with (
            patch.object(alerting, "get_alerting_service", return_value=service),
            patch.object(settings, "alert_on_spam_risk", True),
        ):
            await alerting.alert_spam_risk("slow down", until)

        sent = service.send_alert.call_args.args[0]
        assert sent.severity == AlertSeverity.WARNING
        assert sent.context == {"cooldown_until": until.isoformat()}

    @pytest.mark.asyncio
    async def test_cycle_failure_alert(self) -> None:
        service = AsyncMock()

        with (
            patch.object(alerting, "get_alerting_service", return_value=service),
            patch.object(settings, "alert_on_cycle_failure", True),
        ):
            await alerting.alert_cycle_failure("scheduled_cycle", "boom")

        sent = service.send_alert.call_args.args[0]
        assert sent.title == "Cycle failed: scheduled_cycle"
        assert sent.severity == AlertSeverity.ERROR
