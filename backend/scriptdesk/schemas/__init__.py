"""Pydantic schemas for request/response validation"""
from scriptdesk.schemas.auth import (
    AdminResponse,
    LoginRequest,
    OkResponse,
    PurgeResponse,
    SessionResponse,
    SessionUser,
    TurnstileVerifyRequest,
    UserResponse,
)

__all__ = [
    "AdminResponse",
    "LoginRequest",
    "OkResponse",
    "PurgeResponse",
    "SessionResponse",
    "SessionUser",
    "TurnstileVerifyRequest",
    "UserResponse",
]
