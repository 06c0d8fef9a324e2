"""Database models"""
from scriptdesk.models.rate_limit import RateLimitCounter
from scriptdesk.models.user import User

__all__ = ["RateLimitCounter", "User"]
