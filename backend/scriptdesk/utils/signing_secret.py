"""Signing secret resolution.

Production deployments must configure ``SESSION_SECRET``; without it every
token operation fails with :class:`NotConfiguredError`. Only when
``APP_ENV`` is explicitly ``"development"`` is an ephemeral secret generated,
once per process, so local logins work without setup (and are lost on
restart).
"""
import base64
import secrets
import threading
from typing import Optional

from scriptdesk.config import Settings
from scriptdesk.errors import NotConfiguredError
from scriptdesk.utils.logger import logger

_dev_secret: Optional[str] = None
_dev_secret_lock = threading.Lock()


def _ephemeral_dev_secret() -> str:
    """Return the process-wide development secret, generating it on first call."""
    global _dev_secret

    if _dev_secret is None:
        with _dev_secret_lock:
            if _dev_secret is None:
                raw = base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode("ascii")
                _dev_secret = f"dev-{raw}"
                logger.warning(
                    "SESSION_SECRET not set, generated an ephemeral development signing secret. "
                    "Sessions will be invalidated on restart."
                )
    return _dev_secret


class SecretSource:
    """Resolves signing secrets from settings; injected into request handlers."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _session_secret(self) -> str:
        configured = (self.settings.SESSION_SECRET or "").strip()
        if configured:
            return configured
        if self.settings.is_development:
            return _ephemeral_dev_secret()
        return ""

    def get_signing_secret(self) -> str:
        """Secret for session tokens. Raises NotConfiguredError instead of weakening."""
        secret = self._session_secret()
        if not secret:
            raise NotConfiguredError("SESSION_SECRET is not configured")
        return secret

    def get_verification_pass_secret(self) -> str:
        """Secret for verification-pass tokens: session secret, else the CAPTCHA secret."""
        secret = self._session_secret() or (self.settings.TURNSTILE_SECRET_KEY or "").strip()
        if not secret:
            raise NotConfiguredError("No secret available for verification passes")
        return secret
