"""TikTok publisher using the Content Posting and Display APIs.

Publishing Flow:
1. POST /v2/post/publish/creator_info/query/ - Check posting capabilities
2. POST /v2/post/publish/video/init/ - Initialize upload
3. PUT upload_url - Upload video bytes
4. POST /v2/post/publish/status/fetch/ - Poll publish status

Metrics:
- POST /v2/video/list/ - Recent videos (for plan matching)
- POST /v2/video/query/ - Per-video counters
"""

import asyncio
import re
from datetime import UTC, datetime
from typing import Any

import httpx

from content_autopilot.adapters.publisher.base import (
    PlatformVideo,
    PublisherAdapter,
    PublishStatusResult,
    UploadInit,
)
from content_autopilot.adapters.publisher.errors import (
    PublisherAuthError,
    UploadError,
    classify_error,
)
from content_autopilot.domain.enums import PublishStatus
from content_autopilot.logging import get_logger
from content_autopilot.services.learning.reward import RawVideoMetrics

logger = get_logger(__name__)

TIKTOK_API_BASE = "https://open.tiktokapis.com"
CREATOR_INFO_PATH = "/v2/post/publish/creator_info/query/"
VIDEO_INIT_PATH = "/v2/post/publish/video/init/"
PUBLISH_STATUS_PATH = "/v2/post/publish/status/fetch/"
VIDEO_LIST_PATH = "/v2/video/list/"
VIDEO_QUERY_PATH = "/v2/video/query/"

VIDEO_LIST_FIELDS = "id,title,video_description,create_time,duration"
VIDEO_QUERY_FIELDS = "id,create_time,duration,view_count,like_count,comment_count,share_count"

# 429 handling: 500ms, 1s, 2s
MAX_RATE_LIMIT_RETRIES = 3
RATE_LIMIT_BASE_DELAY = 0.5

_SPAM_TOKEN = re.compile(r"spam_risk[a-z_]*")


def _first(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def _from_unix(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (TypeError, ValueError, OverflowError):
        return None


def _video_rows(payload: dict[str, Any]) -> list[dict[str, Any]]:
    data = payload.get("data") or {}
    return data.get("videos") or data.get("video_list") or []


class TikTokPublisher(PublisherAdapter):
    """TikTok publisher over httpx.

    In sandbox mode every post is forced to ``SELF_ONLY`` so uploads land as
    private drafts.
    """

    def __init__(
        self,
        access_token: str | None,
        sandbox: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 60.0,
    ) -> None:
        """Initialize the publisher.

        Args:
            access_token: OAuth access token for the connected account
            sandbox: Force private drafts
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
            timeout: Per-request timeout in seconds
        """
        self.access_token = access_token
        self.sandbox = sandbox
        self._transport = transport
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=TIKTOK_API_BASE,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        if not self.access_token:
            raise PublisherAuthError("No TikTok access token configured")
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json; charset=UTF-8",
        }

    @staticmethod
    def _error_code(response: httpx.Response) -> tuple[str | None, str]:
        """Extract (code, message) from an error response."""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error") or {}
            if isinstance(error, dict) and error.get("code"):
                return str(error["code"]), str(error.get("message") or response.text)
        match = _SPAM_TOKEN.search(response.text or "")
        return (match.group(0) if match else None), response.text

    async def _request(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """POST to the API, retrying 429 responses with exponential backoff.

        Raises:
            PublisherAuthError: On 401 or a missing token
            SpamRiskError: When the platform returns a spam-risk error code
            UploadError: For any other failure
        """
        client = await self._get_client()
        headers = self._headers()

        for attempt in range(MAX_RATE_LIMIT_RETRIES + 1):
            try:
                response = await client.post(path, headers=headers, json=json, params=params)
            except httpx.HTTPError as e:
                raise UploadError(f"TikTok request failed: {e}") from e

            if response.status_code == 429 and attempt < MAX_RATE_LIMIT_RETRIES:
                delay = RATE_LIMIT_BASE_DELAY * (2**attempt)
                logger.warning("tiktok_rate_limited", path=path, attempt=attempt + 1, delay=delay)
                await asyncio.sleep(delay)
                continue
            break

        if response.status_code == 401:
            raise PublisherAuthError(f"TikTok rejected the access token: {response.text}")

        if not response.is_success:
            code, message = self._error_code(response)
            raise classify_error(
                f"TikTok API error ({response.status_code}): {message}",
                code=code,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            raise UploadError(
                "TikTok returned a non-JSON response", status_code=response.status_code
            )

        error = payload.get("error") or {}
        code = error.get("code") if isinstance(error, dict) else None
        if code and code != "ok":
            raise classify_error(
                f"TikTok API error ({code}): {error.get('message', '')}",
                code=code,
                status_code=response.status_code,
            )
        return payload

    async def get_creator_info(self) -> dict[str, Any]:
        payload = await self._request(CREATOR_INFO_PATH)
        return payload.get("data") or {}

    async def initialize_upload(
        self, post_info: dict[str, Any], source_info: dict[str, Any]
    ) -> UploadInit:
        if self.sandbox:
            post_info = {**post_info, "privacy_level": "SELF_ONLY"}
        payload = await self._request(
            VIDEO_INIT_PATH, json={"post_info": post_info, "source_info": source_info}
        )
        data = payload.get("data") or {}
        upload_url = data.get("upload_url")
        if not upload_url:
            raise UploadError("No upload URL in TikTok init response")

        logger.info("tiktok_upload_initialized", publish_id=data.get("publish_id"))
        return UploadInit(upload_url=upload_url, publish_id=data.get("publish_id"))

    async def upload_video(self, upload_url: str, data: bytes) -> None:
        client = await self._get_client()
        size = len(data)
        try:
            response = await client.put(
                upload_url,
                headers={
                    "Content-Type": "video/mp4",
                    "Content-Length": str(size),
                    "Content-Range": f"bytes 0-{max(0, size - 1)}/{size}",
                },
                content=data,
            )
        except httpx.HTTPError as e:
            raise UploadError(f"TikTok upload failed: {e}") from e

        if not response.is_success:
            code, message = self._error_code(response)
            raise classify_error(
                f"TikTok upload error ({response.status_code}): {message}",
                code=code,
                status_code=response.status_code,
            )
        logger.info("tiktok_upload_complete", bytes=size)

    async def get_publish_status(self, publish_id: str) -> PublishStatusResult:
        payload = await self._request(PUBLISH_STATUS_PATH, json={"publish_id": publish_id})
        data = payload.get("data") or {}
        raw_status = data.get("status")
        try:
            status = PublishStatus(raw_status) if raw_status else None
        except ValueError:
            status = None
        return PublishStatusResult(status=status, fail_reason=data.get("fail_reason"), raw=data)

    async def query_video_list(self, max_count: int = 20) -> list[PlatformVideo]:
        payload = await self._request(
            VIDEO_LIST_PATH,
            json={"max_count": max_count},
            params={"fields": VIDEO_LIST_FIELDS},
        )
        videos = []
        for row in _video_rows(payload):
            video_id = _first(row, "id", "video_id")
            if not video_id:
                continue
            duration = _first(row, "duration")
            if duration is None and row.get("duration_ms") is not None:
                duration = row["duration_ms"] / 1000
            videos.append(
                PlatformVideo(
                    video_id=str(video_id),
                    caption=_first(row, "video_description", "desc", "title", default=""),
                    create_time=_from_unix(row.get("create_time")),
                    duration_sec=float(duration) if duration is not None else None,
                )
            )
        return videos

    async def query_video_metrics(self, video_ids: list[str]) -> list[RawVideoMetrics]:
        if not video_ids:
            return []
        payload = await self._request(
            VIDEO_QUERY_PATH,
            json={"filters": {"video_ids": video_ids}},
            params={"fields": VIDEO_QUERY_FIELDS},
        )
        results = []
        for row in _video_rows(payload):
            video_id = _first(row, "id", "video_id")
            if not video_id:
                continue
            results.append(
                RawVideoMetrics(
                    video_id=str(video_id),
                    views=int(_first(row, "view_count", "views", default=0)),
                    likes=int(_first(row, "like_count", "likes", default=0)),
                    comments=int(_first(row, "comment_count", "comments", default=0)),
                    shares=int(_first(row, "share_count", "shares", default=0)),
                    saves=int(_first(row, "save_count", "collect_count", "saves", default=0)),
                    avg_watch_time_sec=_first(row, "average_time_watched", "avg_watch_time"),
                    view_2s=_first(row, "view_2s_rate", "view_2s"),
                    view_6s=_first(row, "view_6s_rate", "view_6s"),
                    follower_delta=_first(row, "follower_delta", "followers_delta"),
                    duration_sec=_first(row, "duration"),
                    create_time=_from_unix(row.get("create_time")),
                    raw_data=row,
                )
            )
        return results
