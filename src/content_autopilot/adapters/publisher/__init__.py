"""Publishing adapters."""

from content_autopilot.adapters.publisher.base import (
    PlatformVideo,
    PublisherAdapter,
    PublishStatusResult,
    UploadInit,
)
from content_autopilot.adapters.publisher.errors import (
    PublisherAuthError,
    PublisherError,
    SpamRiskError,
    UploadError,
)
from content_autopilot.adapters.publisher.stub import StubPublisher
from content_autopilot.adapters.publisher.tiktok import TikTokPublisher

__all__ = [
    # Base
    "PublisherAdapter",
    "UploadInit",
    "PublishStatusResult",
    "PlatformVideo",
    # Errors
    "PublisherError",
    "PublisherAuthError",
    "UploadError",
    "SpamRiskError",
    # Implementations
    "StubPublisher",
    "TikTokPublisher",
]
