"""Base interface for publishing adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from content_autopilot.domain.enums import PublishStatus
from content_autopilot.services.learning.reward import RawVideoMetrics


@dataclass
class UploadInit:
    """Result of initializing an upload."""

    upload_url: str
    publish_id: str | None = None


@dataclass
class PublishStatusResult:
    status: PublishStatus | None
    fail_reason: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class PlatformVideo:
    """A video listed on the platform, as used for plan matching."""

    video_id: str
    caption: str = ""
    create_time: datetime | None = None
    duration_sec: float | None = None


class PublisherAdapter(ABC):
    """Abstract base class for publishing platforms.

    Implementations:
    - StubPublisher: In-memory platform for tests and local runs
    - TikTokPublisher: TikTok Content Posting and Display APIs

    Failures are raised as ``UploadError``; a spam-risk response is raised as
    ``SpamRiskError`` so the caller can pause publishing.
    """

    @abstractmethod
    async def get_creator_info(self) -> dict[str, Any]:
        """Fetch the creator's posting capabilities (privacy levels, limits)."""
        ...

    @abstractmethod
    async def initialize_upload(
        self, post_info: dict[str, Any], source_info: dict[str, Any]
    ) -> UploadInit:
        """Start an upload and obtain the URL the bytes are sent to.

        Args:
            post_info: Caption and privacy options
            source_info: Upload source description (size, chunking)

        Returns:
            UploadInit with upload URL and publish ID
        """
        ...

    @abstractmethod
    async def upload_video(self, upload_url: str, data: bytes) -> None:
        """Send the video bytes to an initialized upload URL."""
        ...

    @abstractmethod
    async def get_publish_status(self, publish_id: str) -> PublishStatusResult:
        ...

    @abstractmethod
    async def query_video_list(self, max_count: int = 20) -> list[PlatformVideo]:
        """List the account's most recent videos."""
        ...

    @abstractmethod
    async def query_video_metrics(self, video_ids: list[str]) -> list[RawVideoMetrics]:
        """Fetch raw counters for the given videos."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None
