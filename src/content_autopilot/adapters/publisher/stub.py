"""Stub publisher for testing and local runs."""

from typing import Any
from uuid import uuid4

from content_autopilot.adapters.publisher.base import (
    PlatformVideo,
    PublisherAdapter,
    PublishStatusResult,
    UploadInit,
)
from content_autopilot.domain.enums import PublishStatus
from content_autopilot.logging import get_logger
from content_autopilot.services.learning.reward import RawVideoMetrics

logger = get_logger(__name__)


class StubPublisher(PublisherAdapter):
    """In-memory platform that accepts every upload.

    ``videos`` and ``metrics`` can be seeded to simulate what the platform
    reports back during a metrics refresh.
    """

    def __init__(
        self,
        videos: list[PlatformVideo] | None = None,
        metrics: dict[str, RawVideoMetrics] | None = None,
    ) -> None:
        self.videos = list(videos or [])
        self.metrics = dict(metrics or {})
        self.uploads: list[dict[str, Any]] = []
        self._pending: dict[str, dict[str, Any]] = {}

    async def get_creator_info(self) -> dict[str, Any]:
        return {
            "creator_username": "stub_creator",
            "privacy_level_options": ["SELF_ONLY"],
            "max_video_post_duration_sec": 600,
        }

    async def initialize_upload(
        self, post_info: dict[str, Any], source_info: dict[str, Any]
    ) -> UploadInit:
        publish_id = f"stub_{uuid4().hex[:12]}"
        upload_url = f"https://upload.example.com/{publish_id}"
        self._pending[upload_url] = {"publish_id": publish_id, "post_info": post_info}
        return UploadInit(upload_url=upload_url, publish_id=publish_id)

    async def upload_video(self, upload_url: str, data: bytes) -> None:
        pending = self._pending.pop(upload_url, {"publish_id": None, "post_info": {}})
        self.uploads.append({**pending, "bytes": len(data)})
        logger.info("stub_upload_completed", publish_id=pending["publish_id"], bytes=len(data))

    async def get_publish_status(self, publish_id: str) -> PublishStatusResult:
        return PublishStatusResult(status=PublishStatus.PUBLISH_COMPLETE)

    async def query_video_list(self, max_count: int = 20) -> list[PlatformVideo]:
        return self.videos[:max_count]

    async def query_video_metrics(self, video_ids: list[str]) -> list[RawVideoMetrics]:
        return [self.metrics[video_id] for video_id in video_ids if video_id in self.metrics]
