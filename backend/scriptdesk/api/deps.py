"""API dependencies for session authentication and request guarding.

Every identity collaborator is resolved here so handlers and tests can swap
them through ``app.dependency_overrides``:

- :func:`get_clock`: time source for tokens and rate-limit windows
- :func:`get_secret_source`: signing secrets (fails closed when missing)
- :func:`get_identity_store`: marker and counter persistence
- :func:`get_human_verifier`: CAPTCHA provider client

Authentication reads the session cookie, verifies it and enforces the
single-session marker. Any failure raises an :class:`UnauthorizedError`
subclass, which the handler in :mod:`scriptdesk.main` turns into a 401 that
also clears the cookie.
"""
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from scriptdesk.config import settings
from scriptdesk.database import get_db
from scriptdesk.errors import ForbiddenError, InvalidTokenError, NotConfiguredError
from scriptdesk.middleware.monitoring import record_origin_rejection
from scriptdesk.models.user import User
from scriptdesk.utils.clock import Clock, system_clock
from scriptdesk.utils.cookies import read_cookie
from scriptdesk.utils.identity_store import SqlIdentityStore
from scriptdesk.utils.logger import logger, redact_headers
from scriptdesk.utils.rate_limiter import FixedWindowRateLimiter
from scriptdesk.utils.request import get_client_ip, is_secure_request
from scriptdesk.utils.request_trust import RequestTrustGuard
from scriptdesk.utils.sessions import SessionManager
from scriptdesk.utils.signing_secret import SecretSource
from scriptdesk.utils.token_codec import SessionPayload
from scriptdesk.utils.turnstile import BypassVerifier, HumanVerifier, TurnstileVerifier
from scriptdesk.utils.verification_pass import VerificationPassManager


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

def get_clock() -> Clock:
    return system_clock


def get_secret_source() -> SecretSource:
    return SecretSource(settings)


def get_identity_store(db: Session = Depends(get_db)) -> SqlIdentityStore:
    return SqlIdentityStore(db)


def get_session_manager(
    clock: Clock = Depends(get_clock),
    store: SqlIdentityStore = Depends(get_identity_store),
) -> SessionManager:
    return SessionManager(clock=clock, marker_store=store)


def get_rate_limiter(
    clock: Clock = Depends(get_clock),
    store: SqlIdentityStore = Depends(get_identity_store),
) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(store, clock=clock)


def get_pass_manager(
    sessions: SessionManager = Depends(get_session_manager),
) -> VerificationPassManager:
    return VerificationPassManager(sessions)


def get_request_trust_guard() -> RequestTrustGuard:
    return RequestTrustGuard(settings.edge_host_suffixes)


def get_human_verifier() -> HumanVerifier:
    if settings.is_development and settings.DEV_BYPASS_TURNSTILE:
        return BypassVerifier()
    secret = (settings.TURNSTILE_SECRET_KEY or "").strip()
    if not secret:
        raise NotConfiguredError("TURNSTILE_SECRET_KEY is not configured")
    return TurnstileVerifier(
        secret,
        settings.TURNSTILE_VERIFY_URL,
        timeout=settings.TURNSTILE_TIMEOUT_SECONDS,
    )


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------

def request_is_secure(request: Request) -> bool:
    return is_secure_request(request.headers, request.url.scheme)


def request_client_ip(request: Request) -> Optional[str]:
    peer = request.client.host if request.client else None
    return get_client_ip(request.headers, peer, settings.trusted_proxy_ips)


# ---------------------------------------------------------------------------
# guard_mutation: same-origin check for state-changing endpoints
# ---------------------------------------------------------------------------

def guard_mutation(
    request: Request,
    guard: RequestTrustGuard = Depends(get_request_trust_guard),
) -> None:
    """Reject cross-site mutating requests with a generic 403."""
    if guard.check(request.headers, str(request.url)):
        return
    record_origin_rejection()
    logger.warning(
        "Cross-origin mutation rejected",
        extra={
            "method": request.method,
            "path": request.url.path,
            "event": "origin_rejected",
            "headers": redact_headers(request.headers),
        },
    )
    raise ForbiddenError("Cross-origin request rejected")


# ---------------------------------------------------------------------------
# authenticate_request: cookie -> verified, non-revoked session payload
# ---------------------------------------------------------------------------

def authenticate_cookie_header(
    cookie_header: Optional[str],
    secrets: SecretSource,
    sessions: SessionManager,
) -> SessionPayload:
    """Resolve a raw ``Cookie`` header to a live session.

    Raises NotConfiguredError before looking at the cookie, then
    InvalidTokenError / TokenRevokedError for unusable sessions.
    """
    secret = secrets.get_signing_secret()
    token = read_cookie(cookie_header, settings.SESSION_COOKIE_NAME)
    if not token:
        raise InvalidTokenError("Missing session cookie")
    return sessions.authenticate(secret, token)


def authenticate_request(
    request: Request,
    secrets: SecretSource = Depends(get_secret_source),
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionPayload:
    return authenticate_cookie_header(request.headers.get("cookie"), secrets, sessions)


def require_user(
    payload: SessionPayload = Depends(authenticate_request),
    db: Session = Depends(get_db),
) -> User:
    """The authenticated principal's row. A deleted account is an invalid session."""
    user = db.query(User).filter(User.id == payload.subject_id).first()
    if not user:
        raise InvalidTokenError("Session principal no longer exists")
    return user


def require_admin(user: User = Depends(require_user)) -> User:
    if not user.is_admin:
        raise ForbiddenError("Admin account required")
    return user


def require_super_admin(user: User = Depends(require_admin)) -> User:
    if not user.is_super_admin:
        raise ForbiddenError("Super-admin account required")
    return user
