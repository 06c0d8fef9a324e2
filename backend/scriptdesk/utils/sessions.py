"""Session token issuance, verification and single-session enforcement.

Tokens are stateless (see :mod:`scriptdesk.utils.token_codec`). The only
server-side state is the per-principal marker holding the id of the newest
token; overwriting it is how older tokens get revoked.

An absent marker is treated as a pass. That keeps principals who logged in
before single-session enforcement existed signed in until their next login
or refresh writes a marker. It is a migration allowance, not a guarantee:
once every active principal has a marker the branch can be dropped.
"""
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from scriptdesk.errors import InvalidTokenError, TokenRevokedError
from scriptdesk.utils.clock import Clock, system_clock
from scriptdesk.utils.identity_store import MarkerStore
from scriptdesk.utils.logger import logger
from scriptdesk.utils.token_codec import SessionPayload, decode_payload, encode_payload

MarkerLookup = Callable[[int], Optional[str]]


@dataclass(frozen=True)
class IssuedToken:
    token: str
    payload: SessionPayload

    @property
    def token_id(self) -> str:
        return self.payload.token_id


class SessionManager:
    """Issues and checks session tokens.

    ``issue`` and ``verify`` are pure. ``authenticate`` reads the marker and
    ``refresh`` / ``revoke_all`` write it, through ``marker_store``.
    """

    def __init__(self, clock: Clock = system_clock, marker_store: Optional[MarkerStore] = None):
        self.clock = clock
        self.marker_store = marker_store

    def issue(self, secret: str, subject_id: int, ttl_seconds: int) -> IssuedToken:
        """Mint a token for ``subject_id``.

        The caller persists ``IssuedToken.token_id`` as the principal's marker.
        """
        ttl = int(ttl_seconds)
        if ttl <= 0:
            raise ValueError("ttl_seconds must be positive")

        now = self.clock.now()
        payload = SessionPayload(
            subject_id=int(subject_id),
            issued_at=now,
            expires_at=now + ttl,
            token_id=str(uuid.uuid4()),
        )
        return IssuedToken(token=encode_payload(secret, payload), payload=payload)

    def verify(self, secret: str, token: Optional[str]) -> Optional[SessionPayload]:
        """Return the payload of a correctly signed, unexpired token, else None."""
        if not token:
            return None
        payload = decode_payload(secret, token)
        if payload is None:
            return None
        if payload.expires_at <= self.clock.now():
            return None
        return payload

    def authenticate(
        self,
        secret: str,
        token: Optional[str],
        lookup_marker: Optional[MarkerLookup] = None,
    ) -> SessionPayload:
        """Verify ``token`` and enforce the single-session marker.

        Raises:
            InvalidTokenError: malformed, forged or expired token.
            TokenRevokedError: genuine token superseded by a newer session.
        """
        payload = self.verify(secret, token)
        if payload is None:
            raise InvalidTokenError("Invalid session token")

        # Only consulted after the signature and expiry checks passed
        lookup = lookup_marker or self._store().get_marker
        marker = lookup(payload.subject_id)
        if marker and marker != payload.token_id:
            raise TokenRevokedError("Session replaced by a newer login")

        return payload

    def refresh(self, secret: str, old_token: Optional[str], ttl_seconds: int) -> IssuedToken:
        """Exchange a live token for a new one and revoke the old token's family.

        The marker moves with a compare-and-set against the old token id, so
        when two refreshes race with the same token only one of them wins.
        """
        store = self._store()
        current = self.authenticate(secret, old_token, store.get_marker)
        issued = self.issue(secret, current.subject_id, ttl_seconds)

        if not store.compare_and_set_marker(current.subject_id, current.token_id, issued.token_id):
            logger.info(
                "Session refresh lost marker race",
                extra={"subject_id": current.subject_id, "event": "refresh_conflict"},
            )
            raise TokenRevokedError("Session replaced by a newer login")

        return issued

    def revoke_all(self, subject_id: int) -> None:
        """Invalidate every outstanding token of ``subject_id``.

        The marker is pointed at a fresh id that no issued token carries.
        """
        self._store().set_marker(subject_id, str(uuid.uuid4()))

    def _store(self) -> MarkerStore:
        if self.marker_store is None:
            raise RuntimeError("SessionManager needs a marker_store for this operation")
        return self.marker_store
