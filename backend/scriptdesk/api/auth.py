"""Login, logout, session refresh and human-verification endpoints"""
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from scriptdesk.api.deps import (
    get_human_verifier,
    get_pass_manager,
    get_rate_limiter,
    get_secret_source,
    get_session_manager,
    guard_mutation,
    request_client_ip,
    request_is_secure,
)
from scriptdesk.config import settings
from scriptdesk.database import get_db
from scriptdesk.errors import InvalidCredentialsError, InvalidTokenError, VerificationFailedError
from scriptdesk.middleware.monitoring import record_auth_failure, record_session_event
from scriptdesk.models.user import User
from scriptdesk.schemas.auth import (
    LoginRequest,
    OkResponse,
    SessionResponse,
    SessionUser,
    TurnstileVerifyRequest,
)
from scriptdesk.utils.cookies import (
    clear_token_cookie,
    normalize_cookie_domain,
    read_cookie,
    set_token_cookie,
)
from scriptdesk.utils.logger import logger
from scriptdesk.utils.passwords import burn_password_check, verify_password
from scriptdesk.utils.rate_limiter import FixedWindowRateLimiter, hash_identifier
from scriptdesk.utils.sessions import SessionManager
from scriptdesk.utils.signing_secret import SecretSource
from scriptdesk.utils.turnstile import HumanVerifier
from scriptdesk.utils.verification_pass import VerificationPassManager, clamp_pass_ttl

router = APIRouter(prefix="/api", tags=["authentication"])


def _issue_pass_cookie(
    response: Response,
    request: Request,
    passes: VerificationPassManager,
    secrets: SecretSource,
) -> None:
    ttl = clamp_pass_ttl(settings.VERIFICATION_PASS_TTL_SECONDS)
    token = passes.issue_pass(secrets.get_verification_pass_secret(), ttl)
    set_token_cookie(
        response,
        settings.VERIFICATION_PASS_COOKIE_NAME,
        token,
        max_age=ttl,
        secure=request_is_secure(request),
    )


# ---------------------------------------------------------------------------
# POST /api/turnstile/verify
# ---------------------------------------------------------------------------

@router.post("/turnstile/verify", response_model=OkResponse, dependencies=[Depends(guard_mutation)])
def verify_human(
    data: TurnstileVerifyRequest,
    request: Request,
    response: Response,
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
    verifier: HumanVerifier = Depends(get_human_verifier),
    passes: VerificationPassManager = Depends(get_pass_manager),
    secrets: SecretSource = Depends(get_secret_source),
):
    """Exchange a CAPTCHA token for a short-lived verification-pass cookie.

    While the pass is valid, login does not ask for another challenge.
    """
    ip = request_client_ip(request) or "unknown"
    limiter.enforce(
        f"turnstile_verify:ip:{ip}",
        settings.VERIFY_RATE_WINDOW_SECONDS,
        settings.VERIFY_RATE_LIMIT,
    )

    if not verifier.verify(data.token, ip):
        record_auth_failure("verification")
        raise VerificationFailedError("Human verification failed")

    _issue_pass_cookie(response, request, passes, secrets)
    response.headers["Cache-Control"] = "no-store"
    return OkResponse()


# ---------------------------------------------------------------------------
# POST /api/login
# ---------------------------------------------------------------------------

@router.post("/login", response_model=SessionResponse, dependencies=[Depends(guard_mutation)])
def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    secrets: SecretSource = Depends(get_secret_source),
    sessions: SessionManager = Depends(get_session_manager),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
    passes: VerificationPassManager = Depends(get_pass_manager),
    verifier: HumanVerifier = Depends(get_human_verifier),
):
    """Password login. Issues a session and makes it the only live one for the account.

    Requires a valid verification pass or a CAPTCHA token in the body.
    """
    secret = secrets.get_signing_secret()
    ip = request_client_ip(request) or "unknown"

    # Security-sensitive: fail closed if the counter store is down
    limiter.enforce(f"login:ip:{ip}", settings.LOGIN_RATE_WINDOW_SECONDS, settings.LOGIN_RATE_LIMIT)
    limiter.enforce(
        f"login:user:{hash_identifier(data.username.strip().lower())}",
        settings.LOGIN_RATE_WINDOW_SECONDS,
        settings.LOGIN_RATE_LIMIT,
    )

    pass_token = read_cookie(request.headers.get("cookie"), settings.VERIFICATION_PASS_COOKIE_NAME)
    if not passes.has_valid_pass(secrets.get_verification_pass_secret(), pass_token):
        if not verifier.verify(data.turnstile_token, ip):
            record_auth_failure("verification")
            raise VerificationFailedError("Human verification required")

    user = db.query(User).filter(User.username == data.username.strip()).first()
    if user is None:
        burn_password_check(data.password)
        record_auth_failure("credentials")
        raise InvalidCredentialsError("Invalid username or password")
    if not verify_password(data.password, user.password_hash):
        record_auth_failure("credentials")
        raise InvalidCredentialsError("Invalid username or password")

    issued = sessions.issue(secret, user.id, settings.SESSION_TTL_SECONDS)
    sessions.marker_store.set_marker(user.id, issued.token_id)

    set_token_cookie(
        response,
        settings.SESSION_COOKIE_NAME,
        issued.token,
        max_age=settings.SESSION_TTL_SECONDS,
        secure=request_is_secure(request),
        domain=normalize_cookie_domain(settings.SESSION_COOKIE_DOMAIN),
    )
    response.headers["Cache-Control"] = "no-store"

    record_session_event("issued")
    logger.info("Session issued", extra={"subject_id": user.id, "event": "login"})

    return SessionResponse(user=SessionUser(username=user.username))


# ---------------------------------------------------------------------------
# POST /api/logout
# ---------------------------------------------------------------------------

@router.post("/logout", response_model=OkResponse, dependencies=[Depends(guard_mutation)])
def logout(request: Request, response: Response):
    """Clear the session cookie. Needs neither a secret nor the database."""
    clear_token_cookie(
        response,
        settings.SESSION_COOKIE_NAME,
        secure=request_is_secure(request),
        domain=normalize_cookie_domain(settings.SESSION_COOKIE_DOMAIN),
    )
    response.headers["Cache-Control"] = "no-store"
    record_session_event("logout")
    return OkResponse()


# ---------------------------------------------------------------------------
# POST /api/app/session/refresh
# ---------------------------------------------------------------------------

@router.post("/app/session/refresh", response_model=SessionResponse, dependencies=[Depends(guard_mutation)])
def refresh_session(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    secrets: SecretSource = Depends(get_secret_source),
    sessions: SessionManager = Depends(get_session_manager),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
):
    """Sliding expiration: re-issue the session and revoke the presented token.

    A missing, invalid, expired or superseded cookie yields 401 and clears it.
    """
    secret = secrets.get_signing_secret()
    token = read_cookie(request.headers.get("cookie"), settings.SESSION_COOKIE_NAME)

    payload = sessions.verify(secret, token)
    if payload is None:
        raise InvalidTokenError("Invalid session token")

    # Low-stakes: a limiter outage should not log everyone out
    limiter.enforce(
        hash_identifier(f"app-session-refresh:{payload.subject_id}"),
        settings.REFRESH_RATE_WINDOW_SECONDS,
        settings.REFRESH_RATE_LIMIT,
        fail_open=True,
    )

    user = db.query(User).filter(User.id == payload.subject_id).first()
    if user is None:
        raise InvalidTokenError("Session principal no longer exists")

    issued = sessions.refresh(secret, token, settings.SESSION_TTL_SECONDS)

    set_token_cookie(
        response,
        settings.SESSION_COOKIE_NAME,
        issued.token,
        max_age=settings.SESSION_TTL_SECONDS,
        secure=request_is_secure(request),
        domain=normalize_cookie_domain(settings.SESSION_COOKIE_DOMAIN),
    )
    response.headers["Cache-Control"] = "no-store"

    record_session_event("refreshed")
    logger.info("Session refreshed", extra={"subject_id": user.id, "event": "refresh"})

    return SessionResponse(user=SessionUser(username=user.username))
