"""Database layer."""

from content_autopilot.db.models import Base
from content_autopilot.db.session import (
    SessionFactory,
    SessionLocal,
    get_session,
    get_session_context,
)

__all__ = ["Base", "SessionFactory", "SessionLocal", "get_session", "get_session_context"]
