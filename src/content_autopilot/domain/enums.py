"""Domain enumerations."""

from enum import StrEnum


class PlanStatus(StrEnum):
    """Lifecycle of a post plan."""

    PLANNED = "PLANNED"
    RENDERED = "RENDERED"
    UPLOADING = "UPLOADING"
    UPLOADED_DRAFT = "UPLOADED_DRAFT"
    POSTED = "POSTED"
    METRICS_FETCHED = "METRICS_FETCHED"
    FAILED = "FAILED"


# Plans that still occupy a slot in the publishing pipeline
PENDING_SHARE_STATUSES = (
    PlanStatus.UPLOADED_DRAFT,
    PlanStatus.UPLOADING,
    PlanStatus.RENDERED,
    PlanStatus.PLANNED,
)


class ArmType(StrEnum):
    """Content variables tracked by the bandit optimizer."""

    RECIPE = "RECIPE"
    CTA = "CTA"
    VARIANT = "VARIANT"
    CLIP = "CLIP"
    SNIPPET = "SNIPPET"


class VariantStatus(StrEnum):
    """Status of a recipe variant."""

    ACTIVE = "active"
    TESTING = "testing"
    RETIRED = "retired"


class RunStatus(StrEnum):
    """Status recorded on a run log entry."""

    OK = "OK"
    WARN = "WARN"
    FAILED = "FAILED"


class RunType(StrEnum):
    """Run log categories."""

    SCHEDULED_CYCLE = "scheduled_cycle"
    AUTOPILOT_CYCLE = "autopilot_cycle"
    PENDING_THROTTLE = "pending_throttle"
    COOLDOWN_ACTIVE = "cooldown_active"
    CYCLE_OVERLAP = "cycle_overlap"
    DAILY_UPLOAD_CAP = "daily_upload_cap"
    UPLOAD_SPAM_RISK = "upload_spam_risk"
    UPLOAD_FAILED = "upload_failed"
    RENDER_FAILED = "render_failed"
    METRICS_REFRESH = "metrics_refresh"
    OPTIMIZER_PROMOTION = "optimizer_promotion"
    MUTATION_TRIGGER = "mutation_trigger"
    AUTOPILOT_INSPO = "autopilot_inspo"
    ARCHETYPE_REQUEST = "archetype_request"
    PUBLISH_STATUS = "publish_status"
    MARK_POSTED = "mark_posted"


class SchedulerMode(StrEnum):
    """How the scheduler is driving cycles."""

    WINDOW = "window"
    CONTINUOUS = "continuous"


class PublishStatus(StrEnum):
    """Publish status values reported by the platform."""

    PROCESSING_UPLOAD = "PROCESSING_UPLOAD"
    PROCESSING_DOWNLOAD = "PROCESSING_DOWNLOAD"
    PUBLISH_COMPLETE = "PUBLISH_COMPLETE"
    FAILED = "FAILED"
