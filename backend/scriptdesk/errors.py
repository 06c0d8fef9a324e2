"""Identity error taxonomy.

Handlers in :mod:`scriptdesk.main` translate these into HTTP responses. None
of them carry token contents, secrets or origin/host values, so the message
is safe to log.
"""
from typing import Optional


class IdentityError(Exception):
    """Base identity error."""

    pass


class UnauthorizedError(IdentityError):
    """No usable session. Answered with 401 and a cleared session cookie."""

    pass


class InvalidTokenError(UnauthorizedError):
    """Token is malformed, forged or expired.

    The three causes are not distinguished.
    """

    pass


class TokenRevokedError(UnauthorizedError):
    """Token is genuine and unexpired but a newer session has replaced it."""

    pass


class NotConfiguredError(IdentityError):
    """A required secret is missing. Deployment error, answered with 5xx."""

    pass


class ForbiddenError(IdentityError):
    """Request rejected by the request trust guard or a role check."""

    pass


class RateLimitedError(IdentityError):
    """Caller exceeded a fixed-window limit and must back off."""

    def __init__(self, reset_at: int, retry_after: int, scope: Optional[str] = None):
        super().__init__("Rate limit exceeded")
        self.reset_at = reset_at
        self.retry_after = retry_after
        self.scope = scope


class VerificationFailedError(IdentityError):
    """Human verification missing or rejected. Answered with 400; any session cookie is left alone."""

    pass


class InvalidCredentialsError(IdentityError):
    """Wrong username or password. Answered with 401 without touching the session cookie."""

    pass
