"""Publisher error types.

Platform error codes are classified here, once, so callers can branch on
exception type instead of inspecting messages.
"""

SPAM_RISK_CODE_PREFIX = "spam_risk"


class PublisherError(Exception):
    """Base class for publisher failures."""


class PublisherAuthError(PublisherError):
    """Missing, expired or revoked access token."""


class UploadError(PublisherError):
    """A platform call failed.

    Attributes:
        code: Platform error code, when the response carried one
        status_code: HTTP status of the failing response
    """

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class SpamRiskError(UploadError):
    """The platform flagged the account for posting too much or too fast."""


def is_spam_risk_code(code: str | None) -> bool:
    return bool(code) and code.lower().startswith(SPAM_RISK_CODE_PREFIX)  # type: ignore[union-attr]


def classify_error(message: str, code: str | None = None, status_code: int | None = None) -> UploadError:
    """Build the typed error for a failed platform call."""
    if is_spam_risk_code(code):
        return SpamRiskError(message, code=code, status_code=status_code)
    return UploadError(message, code=code, status_code=status_code)
