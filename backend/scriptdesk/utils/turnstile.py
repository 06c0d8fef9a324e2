"""Cloudflare Turnstile (CAPTCHA) verification client"""
from typing import Optional, Protocol

import requests

from scriptdesk.utils.logger import logger


class HumanVerifier(Protocol):
    def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> bool: ...


class TurnstileVerifier:
    """Checks a Turnstile widget token against the ``siteverify`` endpoint."""

    def __init__(self, secret: str, verify_url: str, timeout: float = 5.0):
        self.secret = secret
        self.verify_url = verify_url
        self.timeout = timeout

    def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> bool:
        if not token:
            return False

        form = {"secret": self.secret, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            resp = requests.post(self.verify_url, data=form, timeout=self.timeout)
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning(
                "Turnstile verification request failed",
                extra={"event": "turnstile_error", "status": type(exc).__name__},
            )
            return False

        if not isinstance(data, dict):
            return False
        if not data.get("success"):
            logger.info(
                "Turnstile rejected token",
                extra={"event": "turnstile_rejected", "status": data.get("error-codes")},
            )
            return False
        return True


class BypassVerifier:
    """Accepts every token, including none. Only wired in when APP_ENV=development and DEV_BYPASS_TURNSTILE is on."""

    def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> bool:
        return True
