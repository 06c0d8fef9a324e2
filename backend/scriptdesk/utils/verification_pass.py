"""Short-lived "human verification passed" tokens.

CAPTCHA tokens are single-use and expire quickly upstream. After one is
verified the client gets a pass cookie, so it can retry a multi-step flow
(request a code, fail, request again) inside the grace window without
solving another challenge. The token has the session format with subject 0;
its subject must never be read as an identity.
"""
from typing import Optional

from scriptdesk.utils.sessions import SessionManager

PASS_SUBJECT_ID = 0
MIN_PASS_TTL_SECONDS = 30
DEFAULT_PASS_TTL_SECONDS = 60 * 10


def clamp_pass_ttl(ttl_seconds: int) -> int:
    return max(MIN_PASS_TTL_SECONDS, int(ttl_seconds))


class VerificationPassManager:
    def __init__(self, sessions: SessionManager):
        self.sessions = sessions

    def issue_pass(self, secret: str, ttl_seconds: int = DEFAULT_PASS_TTL_SECONDS) -> str:
        return self.sessions.issue(secret, PASS_SUBJECT_ID, clamp_pass_ttl(ttl_seconds)).token

    def has_valid_pass(self, secret: str, token: Optional[str]) -> bool:
        # verify, not authenticate: no single-session marker applies to passes
        return self.sessions.verify(secret, token) is not None
