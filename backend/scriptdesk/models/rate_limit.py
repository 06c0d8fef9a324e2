"""RateLimitCounter model: one fixed-window counter row per limiter key"""
from sqlalchemy import Column, Integer, String

from scriptdesk.database import Base


class RateLimitCounter(Base):
    """Event count for ``key`` within the window starting at ``window_start``.

    Keys are composed by callers and must not embed raw PII (hash emails,
    usernames and similar before composing). Rows are never deleted on the
    hot path; stale windows are purged out of band.
    """

    __tablename__ = "rate_limits"

    key = Column(String(255), primary_key=True)
    window_start = Column(Integer, nullable=False, index=True)  # Unix seconds, aligned to the window size
    count = Column(Integer, nullable=False)
