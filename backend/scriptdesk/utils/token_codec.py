"""Signed token codec.

Wire format::

    base64url(json payload) + "." + base64url(HMAC-SHA256(secret, encoded payload))

Both segments are unpadded base64url. The MAC covers the *encoded* payload
segment, so two JSON spellings of the same claims can never share a
signature. Everything here is pure CPU work with no shared state.
"""
import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from scriptdesk.errors import NotConfiguredError


@dataclass(frozen=True)
class SessionPayload:
    """Claims carried by session and verification-pass tokens."""

    subject_id: int
    issued_at: int
    expires_at: int
    token_id: str

    def to_claims(self) -> Dict[str, Any]:
        return {
            "uid": self.subject_id,
            "iat": self.issued_at,
            "exp": self.expires_at,
            "jti": self.token_id,
        }

    @classmethod
    def from_claims(cls, claims: Any) -> Optional["SessionPayload"]:
        """Build a payload from decoded JSON.

        Returns None if any field is missing or mistyped, or if ``exp`` is not after ``iat``.
        """
        if not isinstance(claims, dict):
            return None

        ints = []
        for name in ("uid", "iat", "exp"):
            value = claims.get(name)
            # bool is an int subclass; true/false are not valid claims
            if type(value) is not int:
                return None
            ints.append(value)

        token_id = claims.get("jti")
        if not isinstance(token_id, str) or not token_id:
            return None
        if ints[2] <= ints[1]:
            return None

        return cls(subject_id=ints[0], issued_at=ints[1], expires_at=ints[2], token_id=token_id)


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> Optional[bytes]:
    """Decode an unpadded base64url segment; None unless it is the canonical encoding."""
    try:
        raw = base64.urlsafe_b64decode(segment.encode("ascii") + b"=" * (-len(segment) % 4))
    except (binascii.Error, UnicodeEncodeError, ValueError):
        return None
    # Rejects stray characters and non-zero padding bits so every bit of the
    # segment is significant
    if b64url_encode(raw) != segment:
        return None
    return raw


def _mac(secret: str) -> hmac.HMAC:
    return hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())


def sign(secret: str, data: bytes) -> str:
    """Return base64url(HMAC-SHA256(secret, data))."""
    if not secret:
        raise NotConfiguredError("Signing secret is not configured")
    mac = _mac(secret)
    mac.update(data)
    return b64url_encode(mac.finalize())


def verify(secret: str, data: bytes, signature: str) -> bool:
    """Constant-time check of ``signature`` over ``data``."""
    if not secret:
        return False
    sig_bytes = b64url_decode(signature)
    if sig_bytes is None:
        return False
    mac = _mac(secret)
    mac.update(data)
    try:
        mac.verify(sig_bytes)
    except InvalidSignature:
        return False
    return True


def encode(secret: str, claims: Mapping[str, Any]) -> str:
    """Serialize and sign ``claims`` into ``payload.signature``."""
    payload_segment = b64url_encode(
        json.dumps(dict(claims), separators=(",", ":"), sort_keys=True).encode("utf-8")
    )
    return f"{payload_segment}.{sign(secret, payload_segment.encode('ascii'))}"


def decode_claims(secret: str, token: str) -> Optional[Dict[str, Any]]:
    """Verify ``token`` and return its JSON object, or None. Never raises."""
    if not secret or not isinstance(token, str):
        return None

    parts = token.strip().split(".")
    if len(parts) != 2:
        return None
    payload_segment, signature = parts
    if not payload_segment or not signature:
        return None

    try:
        signed = payload_segment.encode("ascii")
    except UnicodeEncodeError:
        return None
    if not verify(secret, signed, signature):
        return None

    raw = b64url_decode(payload_segment)
    if raw is None:
        return None
    try:
        claims = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    if not isinstance(claims, dict):
        return None
    return claims


def encode_payload(secret: str, payload: SessionPayload) -> str:
    return encode(secret, payload.to_claims())


def decode_payload(secret: str, token: str) -> Optional[SessionPayload]:
    """Verify signature and shape of a session-style token. Expiry is not checked here."""
    claims = decode_claims(secret, token)
    if claims is None:
        return None
    return SessionPayload.from_claims(claims)
