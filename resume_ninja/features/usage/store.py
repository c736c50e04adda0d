"""
resume_ninja/features/usage/store.py

Append-only usage ledger.

Two implementations of the same surface:
- SqlLedgerStore: SQLAlchemy Core against the usage_events table (Postgres/Supabase)
- InMemoryLedgerStore: process-local list, for tests and local development

Neither exposes an update or delete path. Reads are always scoped to a
single user_id, which callers take from the authenticated identity.

append_event_if() is the check-then-write path used for spending credit:
the permit callback sees the user's full ledger and the append happens
only if it returns True, with no other conditional append for the same
user in between.
"""

import threading
import zlib
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from sqlalchemy import insert, select, text
from sqlalchemy.exc import SQLAlchemyError

from resume_ninja.core.database import ensure_schema, get_db_session, usage_events
from resume_ninja.core.errors import StoreUnavailable
from resume_ninja.models.usage_event import UsageEvent, UsageKind

Permit = Callable[[List[UsageEvent]], bool]


class LedgerStore(Protocol):
    def fetch_events(self, user_id: str, since: Optional[datetime] = None) -> List[UsageEvent]:
        ...

    def append_event(self, event: UsageEvent) -> UsageEvent:
        ...

    def append_event_if(self, event: UsageEvent, permit: Permit) -> bool:
        ...


def _normalize_since(since: Optional[datetime]) -> Optional[datetime]:
    if since is not None and since.tzinfo is None:
        return since.replace(tzinfo=timezone.utc)
    return since


def _row_to_event(row) -> UsageEvent:
    return UsageEvent(
        user_id=row.user_id,
        kind=UsageKind(row.kind),
        occurred_at=row.occurred_at,
        score_value=row.score_value,
        amount=row.amount,
    )


def _insert_values(event: UsageEvent) -> dict:
    return dict(
        user_id=event.user_id,
        kind=event.kind.value,
        occurred_at=event.occurred_at,
        score_value=event.score_value,
        amount=event.amount,
    )


# Striped per-user locks; shared by every SqlLedgerStore in the process
_USER_LOCKS = [threading.Lock() for _ in range(64)]


def _user_lock(user_id: str) -> threading.Lock:
    return _USER_LOCKS[zlib.crc32(user_id.encode("utf-8")) % len(_USER_LOCKS)]


class SqlLedgerStore:
    """Ledger backed by the usage_events table."""

    def __init__(self, session_factory=get_db_session, prepare: Callable[[], None] = ensure_schema):
        self._session_factory = session_factory
        self._prepare = prepare

    def fetch_events(self, user_id: str, since: Optional[datetime] = None) -> List[UsageEvent]:
        """
        Get ledger events for one user, oldest first.

        Args:
            user_id: Authenticated user whose events to read
            since: Optional start of time window (inclusive)

        Returns:
            List of UsageEvent instances

        Raises:
            StoreUnavailable: database error while reading
        """
        since = _normalize_since(since)
        try:
            self._prepare()
            with self._session_factory() as session:
                return self._select(session, user_id, since)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to read usage events for {user_id}: {e}") from e

    def append_event(self, event: UsageEvent) -> UsageEvent:
        """Insert one event. Raises StoreUnavailable on database error."""
        try:
            self._prepare()
            with self._session_factory() as session:
                session.execute(insert(usage_events).values(**_insert_values(event)))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to append usage event for {event.user_id}: {e}") from e
        return event

    def append_event_if(self, event: UsageEvent, permit: Permit) -> bool:
        """
        Read the user's ledger, ask permit, insert, all in one transaction.

        Same-process callers are serialized on a per-user lock. On Postgres a
        transaction-scoped advisory lock on the user id extends that across
        workers; it is released on commit or rollback.

        Returns:
            True if the event was appended, False if permit refused
        """
        try:
            self._prepare()
            with _user_lock(event.user_id):
                with self._session_factory() as session:
                    if session.get_bind().dialect.name == "postgresql":
                        session.execute(
                            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                            {"key": event.user_id},
                        )
                    if not permit(self._select(session, event.user_id, None)):
                        return False
                    session.execute(insert(usage_events).values(**_insert_values(event)))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to append usage event for {event.user_id}: {e}") from e
        return True

    def _select(self, session, user_id: str, since: Optional[datetime]) -> List[UsageEvent]:
        query = select(usage_events).where(usage_events.c.user_id == user_id)
        if since is not None:
            query = query.where(usage_events.c.occurred_at >= since)
        rows = session.execute(query.order_by(usage_events.c.occurred_at)).all()
        return [_row_to_event(row) for row in rows]


class InMemoryLedgerStore:
    """Process-local ledger. Thread-safe; contents are lost on restart."""

    def __init__(self, events: Optional[List[UsageEvent]] = None):
        self._events: List[UsageEvent] = list(events or [])
        self._lock = threading.Lock()

    def _matching(self, user_id: str, since: Optional[datetime]) -> List[UsageEvent]:
        matching = [
            e for e in self._events
            if e.user_id == user_id and (since is None or e.occurred_at >= since)
        ]
        return sorted(matching, key=lambda e: e.occurred_at)

    def fetch_events(self, user_id: str, since: Optional[datetime] = None) -> List[UsageEvent]:
        since = _normalize_since(since)
        with self._lock:
            return self._matching(user_id, since)

    def append_event(self, event: UsageEvent) -> UsageEvent:
        with self._lock:
            self._events.append(event)
        return event

    def append_event_if(self, event: UsageEvent, permit: Permit) -> bool:
        with self._lock:
            if not permit(self._matching(event.user_id, None)):
                return False
            self._events.append(event)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
