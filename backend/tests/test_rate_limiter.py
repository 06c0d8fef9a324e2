"""Tests for the persisted fixed-window rate limiter"""
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import OperationalError

from scriptdesk.errors import RateLimitedError
from scriptdesk.models.rate_limit import RateLimitCounter
from scriptdesk.utils.identity_store import SqlIdentityStore
from scriptdesk.utils.rate_limiter import FixedWindowRateLimiter, hash_identifier, key_scope


class FailingStore:
    """Counter store whose database is down"""

    def upsert_rate_counter(self, key, window_start):
        raise OperationalError("INSERT INTO rate_limits", {}, Exception("database is locked"))

    def read_rate_counter(self, key):
        raise OperationalError("SELECT", {}, Exception("database is locked"))


@pytest.fixture
def limiter(db, clock) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(SqlIdentityStore(db), clock=clock)


def test_allows_up_to_limit_then_refuses(limiter: FixedWindowRateLimiter):
    results = [limiter.consume("login:ip:10.0.0.1", 60, 3) for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert [r.count for r in results] == [1, 2, 3, 4]


def test_reset_at_is_window_end(limiter: FixedWindowRateLimiter, clock):
    result = limiter.consume("k", 60, 1)

    assert result.reset_at % 60 == 0
    assert clock.now() < result.reset_at <= clock.now() + 60
    assert result.retry_after(clock.now()) == result.reset_at - clock.now()


def test_window_rollover_resets_count(limiter: FixedWindowRateLimiter, clock):
    for _ in range(3):
        limiter.consume("k", 60, 2)
    assert limiter.consume("k", 60, 2).allowed is False

    clock.advance(60)
    result = limiter.consume("k", 60, 2)
    assert result.allowed is True
    assert result.count == 1


def test_documented_scenario(limiter: FixedWindowRateLimiter, clock):
    """window=60, limit=1: allowed, refused five seconds later, allowed in the next window"""
    key = "email_send:ip:1.2.3.4"

    assert limiter.consume(key, 60, 1).allowed is True
    clock.advance(5)
    assert limiter.consume(key, 60, 1).allowed is False
    clock.advance(56)
    assert limiter.consume(key, 60, 1).allowed is True


def test_keys_are_independent(limiter: FixedWindowRateLimiter):
    assert limiter.consume("a:1", 60, 1).allowed is True
    assert limiter.consume("b:1", 60, 1).allowed is True
    assert limiter.consume("a:1", 60, 1).allowed is False


def test_limit_zero_refuses_everything(limiter: FixedWindowRateLimiter):
    assert limiter.consume("k", 60, 0).allowed is False


@pytest.mark.parametrize("window, limit", [(0, 1), (-5, 1), (60, -1)])
def test_invalid_arguments(limiter: FixedWindowRateLimiter, window, limit):
    with pytest.raises(ValueError):
        limiter.consume("k", window, limit)


def test_enforce_raises_with_retry_after(limiter: FixedWindowRateLimiter, clock):
    limiter.enforce("login:ip:1", 60, 1)
    clock.advance(15)

    with pytest.raises(RateLimitedError) as exc_info:
        limiter.enforce("login:ip:1", 60, 1)

    assert exc_info.value.scope == "login"
    assert exc_info.value.retry_after == exc_info.value.reset_at - clock.now()
    assert exc_info.value.retry_after >= 1


def test_peek_does_not_consume(limiter: FixedWindowRateLimiter, clock):
    assert limiter.peek("k", 60) is None
    limiter.consume("k", 60, 5)
    assert limiter.peek("k", 60) == 1
    assert limiter.peek("k", 60) == 1

    clock.advance(60)
    assert limiter.peek("k", 60) == 0


def test_store_failure_fails_closed_by_default(clock):
    limiter = FixedWindowRateLimiter(FailingStore(), clock=clock)

    result = limiter.consume("login:ip:1", 60, 10)
    assert result.allowed is False

    with pytest.raises(RateLimitedError):
        limiter.enforce("login:ip:1", 60, 10)


def test_store_failure_can_fail_open(clock):
    limiter = FixedWindowRateLimiter(FailingStore(), clock=clock)

    result = limiter.consume("session_refresh:abc", 60, 10, fail_open=True)
    assert result.allowed is True
    assert limiter.enforce("session_refresh:abc", 60, 10, fail_open=True).allowed is True


def test_concurrent_consumers_never_exceed_limit(db, session_factory, clock):
    """Simultaneous requests against one key admit exactly `limit` of them"""
    limit = 5
    attempts = limit * 2

    def attempt(_):
        session = session_factory()
        try:
            limiter = FixedWindowRateLimiter(SqlIdentityStore(session), clock=clock)
            return limiter.consume("login:ip:203.0.113.9", 60, limit).allowed
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=attempts) as pool:
        outcomes = list(pool.map(attempt, range(attempts)))

    assert outcomes.count(True) == limit
    db.expire_all()
    assert db.get(RateLimitCounter, "login:ip:203.0.113.9").count == attempts


def test_purge_removes_only_stale_windows(db, limiter: FixedWindowRateLimiter, clock):
    store = SqlIdentityStore(db)
    limiter.consume("old", 60, 5)
    clock.advance(600)
    limiter.consume("fresh", 60, 5)

    removed = store.purge_stale_rate_counters(clock.now() - 60)

    assert removed == 1
    assert store.read_rate_counter("old") is None
    assert store.read_rate_counter("fresh").count == 1


def test_hash_identifier_hides_raw_value():
    digest = hash_identifier("alice@example.com")
    assert len(digest) == 64
    assert "alice" not in digest
    assert digest == hash_identifier("alice@example.com")


def test_key_scope():
    assert key_scope("login:ip:1.2.3.4") == "login"
    assert key_scope(hash_identifier("x")) == "hashed"
