"""Fixed-window rate limiter backed by persisted counters.

Windows are aligned to multiples of ``window_seconds``. A burst of up to
``2 * limit`` events can straddle a window boundary; that imprecision is
accepted in exchange for one counter row per key and no TTL support from
the store.
"""
import hashlib
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from scriptdesk.errors import RateLimitedError
from scriptdesk.middleware.monitoring import record_rate_limit_decision
from scriptdesk.utils.clock import Clock, system_clock
from scriptdesk.utils.identity_store import CounterStore
from scriptdesk.utils.logger import logger


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: int  # Unix seconds when the current window ends
    count: int = 0

    def retry_after(self, now: int) -> int:
        """Seconds until the window resets, at least 1."""
        return max(1, self.reset_at - now)


def hash_identifier(value: str) -> str:
    """SHA-256 hex digest for embedding emails, usernames etc. in limiter keys."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def key_scope(key: str) -> str:
    """Low-cardinality label for metrics and logs: the key's first segment."""
    return key.split(":", 1)[0] if ":" in key else "hashed"


class FixedWindowRateLimiter:
    """Counts events per key in aligned fixed windows."""

    def __init__(self, store: CounterStore, clock: Clock = system_clock):
        self.store = store
        self.clock = clock

    def window(self, window_seconds: int) -> tuple[int, int]:
        """Return ``(window_start, reset_at)`` for the current time."""
        now = self.clock.now()
        window_start = (now // window_seconds) * window_seconds
        return window_start, window_start + window_seconds

    def consume(
        self,
        key: str,
        window_seconds: int,
        limit: int,
        fail_open: bool = False,
    ) -> RateLimitResult:
        """Record one event for ``key`` and report whether it is within ``limit``.

        If the counter store is unavailable the event is allowed when
        ``fail_open`` is set (low-stakes actions) and refused otherwise
        (security-sensitive actions such as login or code sending).
        """
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if limit < 0:
            raise ValueError("limit must not be negative")

        window_start, reset_at = self.window(window_seconds)
        scope = key_scope(key)

        try:
            row = self.store.upsert_rate_counter(key, window_start)
        except SQLAlchemyError:
            logger.warning(
                f"Rate limiter store unavailable, failing {'open' if fail_open else 'closed'}",
                extra={"scope": scope, "event": "rate_limit_store_error"},
                exc_info=True,
            )
            return RateLimitResult(
                allowed=fail_open,
                remaining=limit if fail_open else 0,
                reset_at=reset_at,
            )

        allowed = row.count <= limit
        record_rate_limit_decision(scope, allowed)
        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, limit - row.count),
            reset_at=reset_at,
            count=row.count,
        )

    def enforce(
        self,
        key: str,
        window_seconds: int,
        limit: int,
        fail_open: bool = False,
    ) -> RateLimitResult:
        """Like :meth:`consume` but raises :class:`RateLimitedError` when refused."""
        result = self.consume(key, window_seconds, limit, fail_open=fail_open)
        if not result.allowed:
            scope = key_scope(key)
            logger.warning("Rate limit exceeded", extra={"scope": scope, "event": "rate_limited"})
            raise RateLimitedError(
                reset_at=result.reset_at,
                retry_after=result.retry_after(self.clock.now()),
                scope=scope,
            )
        return result

    def peek(self, key: str, window_seconds: int) -> Optional[int]:
        """Events already counted for ``key`` in the current window, without consuming."""
        row = self.store.read_rate_counter(key)
        if row is None:
            return None
        window_start, _ = self.window(window_seconds)
        return row.count if row.window_start == window_start else 0
