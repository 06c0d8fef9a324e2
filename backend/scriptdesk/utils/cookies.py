"""Session and verification-pass cookie helpers"""
import re
from typing import Optional

from starlette.requests import cookie_parser
from starlette.responses import Response

_UNSAFE_DOMAIN = re.compile(r"[;\s/\\]")


def normalize_cookie_domain(raw: Optional[str]) -> Optional[str]:
    """Configured cookie Domain, or None for a host-only cookie.

    Values that could inject cookie attributes are ignored.
    """
    value = (raw or "").strip()
    if not value or _UNSAFE_DOMAIN.search(value):
        return None
    return value


def read_cookie(cookie_header: Optional[str], name: str) -> Optional[str]:
    """Value of cookie ``name`` from a raw ``Cookie`` header."""
    if not cookie_header:
        return None
    value = cookie_parser(cookie_header).get(name)
    return value or None


def set_token_cookie(
    response: Response,
    name: str,
    token: str,
    max_age: int,
    secure: bool,
    domain: Optional[str] = None,
) -> None:
    response.set_cookie(
        key=name,
        value=token,
        max_age=int(max_age),
        path="/",
        domain=domain,
        secure=secure,
        httponly=True,
        samesite="lax",
    )


def clear_token_cookie(
    response: Response,
    name: str,
    secure: bool,
    domain: Optional[str] = None,
) -> None:
    """Expire ``name`` client-side.

    Browsers may hold both a host-only and a Domain cookie of the same name
    when the Domain setting changed over time, so both variants are cleared.
    """
    variants = [None, domain] if domain else [None]
    for variant in variants:
        response.delete_cookie(
            key=name,
            path="/",
            domain=variant,
            secure=secure,
            httponly=True,
            samesite="lax",
        )
