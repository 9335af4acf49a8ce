"""Tests for the TikTok publisher against a mocked transport."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from content_autopilot.adapters.publisher.errors import (
    PublisherAuthError,
    SpamRiskError,
    UploadError,
)
from content_autopilot.adapters.publisher.tiktok import TikTokPublisher
from content_autopilot.domain.enums import PublishStatus
from content_autopilot.services.metrics import MetricsRefresher


def _publisher(handler, sandbox: bool = True, token: str | None = "test-token") -> TikTokPublisher:
    return TikTokPublisher(token, sandbox=sandbox, transport=httpx.MockTransport(handler))


def _ok(data: dict) -> httpx.Response:
    return httpx.Response(200, json={"data": data, "error": {"code": "ok", "message": ""}})


class TestRequests:
    """Tests for request handling and error classification."""

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(429, json={"error": {"code": "rate_limit_exceeded"}})
            return _ok({"creator_username": "someone"})

        publisher = _publisher(handler)
        with patch("asyncio.sleep", new=AsyncMock()) as sleep:
            info = await publisher.get_creator_info()

        assert info["creator_username"] == "someone"
        assert len(calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]
        await publisher.close()

    @pytest.mark.asyncio
    async def test_rate_limit_gives_up(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"error": {"code": "rate_limit_exceeded"}})

        publisher = _publisher(handler)
        with patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(UploadError) as exc_info:
                await publisher.get_creator_info()

        assert exc_info.value.status_code == 429
        assert not isinstance(exc_info.value, SpamRiskError)

    @pytest.mark.asyncio
    async def test_unauthorized_raises_auth_error(self) -> None:
        publisher = _publisher(lambda request: httpx.Response(401, text="token expired"))

        with pytest.raises(PublisherAuthError):
            await publisher.get_creator_info()

    @pytest.mark.asyncio
    async def test_missing_token_raises_auth_error(self) -> None:
        publisher = _publisher(lambda request: _ok({}), token=None)

        with pytest.raises(PublisherAuthError):
            await publisher.query_video_list()

    @pytest.mark.asyncio
    async def test_spam_risk_code_in_error_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                403,
                json={"error": {"code": "spam_risk_too_many_posts", "message": "slow down"}},
            )

        publisher = _publisher(handler)

        with pytest.raises(SpamRiskError) as exc_info:
            await publisher.initialize_upload({"title": "x"}, {"source": "FILE_UPLOAD"})

        assert exc_info.value.code == "spam_risk_too_many_posts"

    @pytest.mark.asyncio
    async def test_spam_risk_token_in_plain_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text="rejected: spam_risk_user_banned_from_posting")

        publisher = _publisher(handler)

        with pytest.raises(SpamRiskError):
            await publisher.upload_video("https://upload.example.com/abc", b"data")

    @pytest.mark.asyncio
    async def test_error_code_on_success_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"data": {}, "error": {"code": "invalid_params", "message": "bad"}}
            )

        publisher = _publisher(handler)

        with pytest.raises(UploadError) as exc_info:
            await publisher.get_creator_info()

        assert exc_info.value.code == "invalid_params"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>gateway</html>"),
            httpx.Response(200, json=["not", "an", "object"]),
        ],
    )
    async def test_unparseable_success_body(self, response: httpx.Response) -> None:
        publisher = _publisher(lambda request: response)

        with pytest.raises(UploadError) as exc_info:
            await publisher.query_video_list()

        assert exc_info.value.status_code == 200
        assert "non-JSON" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_gateway_page_does_not_abort_metrics_refresh(self, session_factory) -> None:
        publisher = _publisher(lambda request: httpx.Response(200, text="<html>gateway</html>"))

        result = await MetricsRefresher(publisher, session_factory).refresh()

        assert result.matched == 0
        assert result.errors == ["TikTok returned a non-JSON response"]


class TestPublishing:
    @pytest.mark.asyncio
    async def test_sandbox_forces_private_drafts(self) -> None:
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return _ok({"publish_id": "p_1", "upload_url": "https://upload.example.com/p_1"})

        publisher = _publisher(handler, sandbox=True)

        init = await publisher.initialize_upload(
            {"title": "hello", "privacy_level": "PUBLIC_TO_EVERYONE"},
            {"source": "FILE_UPLOAD", "video_size": 10},
        )

        assert init.publish_id == "p_1"
        assert init.upload_url == "https://upload.example.com/p_1"
        assert bodies[0]["post_info"]["privacy_level"] == "SELF_ONLY"

    @pytest.mark.asyncio
    async def test_init_without_upload_url_fails(self) -> None:
        publisher = _publisher(lambda request: _ok({"publish_id": "p_1"}))

        with pytest.raises(UploadError, match="No upload URL"):
            await publisher.initialize_upload({"title": "x"}, {"source": "FILE_UPLOAD"})

    @pytest.mark.asyncio
    async def test_upload_sends_content_range(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["range"] = request.headers["Content-Range"]
            return httpx.Response(201)

        publisher = _publisher(handler)

        await publisher.upload_video("https://upload.example.com/p_1", b"0123456789")

        assert seen == {"method": "PUT", "range": "bytes 0-9/10"}

    @pytest.mark.asyncio
    async def test_publish_status(self) -> None:
        publisher = _publisher(lambda request: _ok({"status": "PUBLISH_COMPLETE"}))

        result = await publisher.get_publish_status("p_1")

        assert result.status == PublishStatus.PUBLISH_COMPLETE


class TestMetricsQueries:
    @pytest.mark.asyncio
    async def test_video_list_parsing(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["fields"].startswith("id,")
            return _ok(
                {
                    "videos": [
                        {
                            "id": "7001",
                            "video_description": "sunset hook #mbpfeedbeef",
                            "create_time": 1772366400,
                            "duration": 9,
                        },
                        {"title": "no id, skipped"},
                    ]
                }
            )

        publisher = _publisher(handler)

        videos = await publisher.query_video_list(max_count=5)

        assert len(videos) == 1
        assert videos[0].video_id == "7001"
        assert videos[0].caption == "sunset hook #mbpfeedbeef"
        assert videos[0].create_time == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        assert videos[0].duration_sec == 9.0

    @pytest.mark.asyncio
    async def test_video_metrics_parsing(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["filters"]["video_ids"] == ["7001"]
            return _ok(
                {
                    "videos": [
                        {
                            "id": "7001",
                            "view_count": 1200,
                            "like_count": 80,
                            "comment_count": 4,
                            "share_count": 9,
                            "duration": 9,
                        }
                    ]
                }
            )

        publisher = _publisher(handler)

        rows = await publisher.query_video_metrics(["7001"])

        assert len(rows) == 1
        assert rows[0].views == 1200
        assert rows[0].likes == 80
        assert rows[0].shares == 9
        assert rows[0].saves == 0
        assert rows[0].follower_delta is None

    @pytest.mark.asyncio
    async def test_empty_metrics_query_skips_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        publisher = _publisher(handler)

        assert await publisher.query_video_metrics([]) == []
