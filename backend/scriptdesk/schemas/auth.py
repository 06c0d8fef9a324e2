"""Identity request/response schemas"""
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=1024)
    turnstile_token: Optional[str] = Field(None, description="CAPTCHA token; not needed while a verification pass is valid")


class TurnstileVerifyRequest(BaseModel):
    token: Optional[str] = None


class SessionUser(BaseModel):
    username: str


class SessionResponse(BaseModel):
    ok: bool = True
    user: SessionUser


class OkResponse(BaseModel):
    ok: bool = True


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    is_admin: bool

    class Config:
        from_attributes = True


class AdminResponse(BaseModel):
    id: int
    username: str
    email: str
    is_super_admin: bool
    role: str  # super_admin | admin


class PurgeResponse(BaseModel):
    removed: int
