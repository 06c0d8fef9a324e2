"""FastAPI application entry point"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.errors import RateLimitExceeded

from scriptdesk import __version__
from scriptdesk.api import auth, health, users
from scriptdesk.api.deps import request_is_secure
from scriptdesk.config import settings
from scriptdesk.errors import (
    ForbiddenError,
    InvalidCredentialsError,
    NotConfiguredError,
    RateLimitedError,
    TokenRevokedError,
    UnauthorizedError,
    VerificationFailedError,
)
from scriptdesk.middleware.monitoring import record_auth_failure, record_session_event
from scriptdesk.utils.cookies import clear_token_cookie, normalize_cookie_domain
from scriptdesk.utils.logger import logger, mask_ip, setup_logging

# Setup logging
setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info("scriptdesk backend starting up", extra={
        "version": __version__,
        "environment": settings.APP_ENV,
        "log_level": settings.LOG_LEVEL,
        "rate_limiting": settings.RATE_LIMIT_ENABLED,
        "monitoring": settings.METRICS_ENABLED,
    })
    if not (settings.SESSION_SECRET or "").strip():
        if settings.is_development:
            logger.warning("SESSION_SECRET is not set; an ephemeral development secret will be used")
        else:
            logger.error("SESSION_SECRET is not set; session endpoints will answer 501")
    yield
    # Shutdown
    logger.info("scriptdesk backend shutting down")


# Create FastAPI app
app = FastAPI(
    title="scriptdesk",
    description="Session and identity core: signed session tokens, single-session enforcement, rate limiting",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ===== Middleware Setup =====

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Monitoring middleware
if settings.METRICS_ENABLED:
    from scriptdesk.middleware.monitoring import MonitoringMiddleware
    app.add_middleware(MonitoringMiddleware)

    # Prometheus metrics
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/health", "/health/ready", "/health/live"],
        inprogress_name="scriptdesk_requests_inprogress",
        inprogress_labels=True,
    )
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint=settings.METRICS_PATH, include_in_schema=False)

# Coarse per-IP limiting
if settings.RATE_LIMIT_ENABLED:
    from slowapi.middleware import SlowAPIMiddleware

    from scriptdesk.middleware.rate_limit import limiter
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        """Handle coarse rate limit exceeded errors"""
        logger.warning(
            "Rate limit exceeded",
            extra={
                "path": request.url.path,
                "method": request.method,
                "client": mask_ip(request.client.host if request.client else None),
            }
        )
        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": "Too many requests. Please try again later.",
            }
        )

# ===== Route Setup =====

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)


@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": "scriptdesk",
        "version": __version__,
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
        "metrics": settings.METRICS_PATH if settings.METRICS_ENABLED else None,
    }


# ===== Error Handlers =====

@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError):
    """401 that also clears the session cookie so the client stops replaying it"""
    reason = "revoked" if isinstance(exc, TokenRevokedError) else "invalid"
    record_auth_failure(reason)
    record_session_event(reason)
    logger.info(
        "Unauthorized request",
        extra={"path": request.url.path, "method": request.method, "event": reason},
    )
    response = JSONResponse(
        status_code=401,
        content={"error": "unauthorized", "message": str(exc) or "Unauthorized"},
    )
    clear_token_cookie(
        response,
        settings.SESSION_COOKIE_NAME,
        secure=request_is_secure(request),
        domain=normalize_cookie_domain(settings.SESSION_COOKIE_DOMAIN),
    )
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(InvalidCredentialsError)
async def invalid_credentials_handler(request: Request, exc: InvalidCredentialsError):
    """Failed login. Any existing session stays valid, so its cookie is kept."""
    return JSONResponse(
        status_code=401,
        content={"error": "invalid_credentials", "message": "Invalid username or password"},
        headers={"Cache-Control": "no-store"},
    )


@app.exception_handler(VerificationFailedError)
async def verification_failed_handler(request: Request, exc: VerificationFailedError):
    return JSONResponse(
        status_code=400,
        content={"error": "verification_failed", "message": str(exc) or "Human verification failed"},
        headers={"Cache-Control": "no-store"},
    )


@app.exception_handler(NotConfiguredError)
async def not_configured_handler(request: Request, exc: NotConfiguredError):
    """Missing secret: a deployment problem, never a client one"""
    record_auth_failure("not_configured")
    logger.error(
        f"Identity not configured: {exc}",
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=501,
        content={"error": "not_configured", "message": "Authentication is not configured"},
    )


@app.exception_handler(RateLimitedError)
async def rate_limited_handler(request: Request, exc: RateLimitedError):
    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limited",
            "message": "Too many requests. Please try again later.",
            "retry_after": exc.retry_after,
        },
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(ForbiddenError)
async def forbidden_handler(request: Request, exc: ForbiddenError):
    # No origin, host or role detail in the body
    return JSONResponse(
        status_code=403,
        content={"error": "forbidden", "message": "Forbidden"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for uncaught errors"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please contact support.",
        }
    )
