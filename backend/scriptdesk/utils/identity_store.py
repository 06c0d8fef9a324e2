"""Persistence for the single-session marker and rate-limit counters.

The marker lives on ``users.session_jti``; counters live in ``rate_limits``.
Every write is a single conditional statement so concurrent requests never
lose updates, and every write commits immediately to release row locks.
"""
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import case, delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from scriptdesk.models.rate_limit import RateLimitCounter
from scriptdesk.models.user import User


@dataclass(frozen=True)
class CounterRow:
    count: int
    window_start: int


class MarkerStore(Protocol):
    def get_marker(self, principal_id: int) -> Optional[str]: ...

    def set_marker(self, principal_id: int, token_id: str) -> None: ...

    def compare_and_set_marker(
        self, principal_id: int, expected: str, token_id: str
    ) -> bool: ...


class CounterStore(Protocol):
    def upsert_rate_counter(self, key: str, window_start: int) -> CounterRow: ...

    def read_rate_counter(self, key: str) -> Optional[CounterRow]: ...


class SqlIdentityStore:
    """SQLAlchemy implementation of :class:`MarkerStore` and :class:`CounterStore`."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Single-session marker
    # ------------------------------------------------------------------

    def get_marker(self, principal_id: int) -> Optional[str]:
        marker = self.db.execute(
            select(User.session_jti).where(User.id == principal_id)
        ).scalar_one_or_none()
        return marker or None

    def set_marker(self, principal_id: int, token_id: str) -> None:
        self.db.execute(
            update(User).where(User.id == principal_id).values(session_jti=token_id)
        )
        self.db.commit()

    def compare_and_set_marker(
        self, principal_id: int, expected: str, token_id: str
    ) -> bool:
        """Move the marker to ``token_id`` only if it still equals ``expected``.

        An absent marker (NULL or empty) also matches, so principals that
        never engaged single-session enforcement can still rotate.
        """
        stmt = (
            update(User)
            .where(User.id == principal_id)
            .where(
                (User.session_jti == expected)
                | (User.session_jti.is_(None))
                | (User.session_jti == "")
            )
            .values(session_jti=token_id)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Rate-limit counters
    # ------------------------------------------------------------------

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(RateLimitCounter)
        if dialect == "sqlite":
            return sqlite.insert(RateLimitCounter)
        raise NotImplementedError(f"Atomic counter upsert is not implemented for {dialect}")

    def upsert_rate_counter(self, key: str, window_start: int) -> CounterRow:
        """Count one event for ``key`` in the window starting at ``window_start``.

        Insert-or-increment and the window rollover reset happen in one
        ``ON CONFLICT DO UPDATE`` statement. The read-back runs in the same
        transaction, while the row is still locked by our write.
        """
        table = RateLimitCounter.__table__
        stmt = self._insert().values(key=key, window_start=window_start, count=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.key],
            set_={
                "count": case(
                    (table.c.window_start == stmt.excluded.window_start, table.c.count + 1),
                    else_=1,
                ),
                "window_start": stmt.excluded.window_start,
            },
        )
        try:
            self.db.execute(stmt)
            count, stored_window = self.db.execute(
                select(table.c.count, table.c.window_start).where(table.c.key == key)
            ).one()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return CounterRow(count=count, window_start=stored_window)

    def read_rate_counter(self, key: str) -> Optional[CounterRow]:
        table = RateLimitCounter.__table__
        row = self.db.execute(
            select(table.c.count, table.c.window_start).where(table.c.key == key)
        ).one_or_none()
        if row is None:
            return None
        count, stored_window = row
        return CounterRow(count=count, window_start=stored_window)

    def purge_stale_rate_counters(self, before: int) -> int:
        """Delete counters whose window started before ``before``. Returns rows removed."""
        result = self.db.execute(
            delete(RateLimitCounter).where(RateLimitCounter.window_start < before)
        )
        self.db.commit()
        return result.rowcount or 0
