"""
Event store abstraction with SQL and in-memory implementations.

The Firestore implementation lives in `cone_counter.firestore_db`.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional, Protocol

from sqlalchemy import Column, String, Text, create_engine, delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from cone_counter.errors import InvalidInstant, UpstreamFailure
from cone_counter.local_fields import LocalFields, parse_instant

logger = logging.getLogger(__name__)

# Fields a caller may change through EventStore.update_event.
MUTABLE_FIELDS = frozenset(
    {"instant", "local_date", "local_time", "local_weekday", "note", "updated_at"}
)


@dataclass
class EventRecord:
    event_id: str
    owner_id: str
    instant: str
    local_date: str
    local_time: str
    local_weekday: str
    note: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def local_fields(self) -> LocalFields:
        return LocalFields(self.local_date, self.local_time, self.local_weekday)


@dataclass
class UserRecord:
    uid: str
    email: str = ""
    display_name: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class LocalFieldUpdate:
    event_id: str
    fields: LocalFields
    updated_at: str


# Unparsable instants sort after every real one.
_UNPARSABLE_INSTANT = datetime.min.replace(tzinfo=timezone.utc)


def _instant_sort_key(event: EventRecord) -> datetime:
    try:
        return parse_instant(event.instant)
    except InvalidInstant:
        return _UNPARSABLE_INSTANT


def sort_newest_first(events: list[EventRecord]) -> list[EventRecord]:
    """Order by the parsed instant, so legacy offsets and precisions compare correctly."""
    return sorted(events, key=_instant_sort_key, reverse=True)


class EventStore(Protocol):
    """Interface for event persistence.

    Every lookup by id is scoped to an owner: an event owned by someone
    else behaves exactly like a missing one.
    """

    def get_or_create_user(
        self, uid: str, email: str, display_name: str, now: str
    ) -> UserRecord:
        ...

    def get_user(self, uid: str) -> Optional[UserRecord]:
        ...

    def add_event(self, record: EventRecord) -> EventRecord:
        ...

    def get_event(self, owner_id: str, event_id: str) -> Optional[EventRecord]:
        ...

    def update_event(
        self, owner_id: str, event_id: str, changes: dict
    ) -> Optional[EventRecord]:
        ...

    def delete_event(self, owner_id: str, event_id: str) -> bool:
        ...

    def list_events(self, owner_id: Optional[str] = None) -> list[EventRecord]:
        ...

    def list_events_in_range(
        self, owner_id: str, start_date: str, end_date: str
    ) -> list[EventRecord]:
        ...

    def import_events(
        self, owner_id: str, records: list[EventRecord], *, replace_existing: bool
    ) -> int:
        ...

    def apply_local_fields(self, updates: list[LocalFieldUpdate]) -> int:
        ...

    def close(self) -> None:
        ...


def check_changes(changes: dict) -> None:
    unknown = set(changes) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {sorted(unknown)}")


class InMemoryEventStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.events: Dict[str, EventRecord] = {}
        self.users: Dict[str, UserRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.events.clear()
        self.users.clear()

    def get_or_create_user(
        self, uid: str, email: str, display_name: str, now: str
    ) -> UserRecord:
        user = self.users.get(uid)
        if user is None:
            user = UserRecord(uid, email, display_name, created_at=now, updated_at=now)
            self.users[uid] = user
        return user

    def get_user(self, uid: str) -> Optional[UserRecord]:
        return self.users.get(uid)

    def add_event(self, record: EventRecord) -> EventRecord:
        stored = replace(record, event_id=uuid.uuid4().hex)
        self.events[stored.event_id] = stored
        return replace(stored)

    def get_event(self, owner_id: str, event_id: str) -> Optional[EventRecord]:
        event = self.events.get(event_id)
        if event is None or event.owner_id != owner_id:
            return None
        return replace(event)

    def update_event(
        self, owner_id: str, event_id: str, changes: dict
    ) -> Optional[EventRecord]:
        check_changes(changes)
        if self.get_event(owner_id, event_id) is None:
            return None
        updated = replace(self.events[event_id], **changes)
        self.events[event_id] = updated
        return replace(updated)

    def delete_event(self, owner_id: str, event_id: str) -> bool:
        if self.get_event(owner_id, event_id) is None:
            return False
        del self.events[event_id]
        return True

    def list_events(self, owner_id: Optional[str] = None) -> list[EventRecord]:
        return sort_newest_first(
            [
                replace(e)
                for e in self.events.values()
                if owner_id is None or e.owner_id == owner_id
            ]
        )

    def list_events_in_range(
        self, owner_id: str, start_date: str, end_date: str
    ) -> list[EventRecord]:
        return [
            e
            for e in self.list_events(owner_id)
            if start_date <= e.local_date <= end_date
        ]

    def import_events(
        self, owner_id: str, records: list[EventRecord], *, replace_existing: bool
    ) -> int:
        if replace_existing:
            for event_id in [
                e.event_id for e in self.events.values() if e.owner_id == owner_id
            ]:
                del self.events[event_id]
        for record in records:
            self.add_event(replace(record, owner_id=owner_id))
        return len(records)

    def apply_local_fields(self, updates: list[LocalFieldUpdate]) -> int:
        updated = 0
        for update in updates:
            event = self.events.get(update.event_id)
            if event is None:
                continue
            self.events[update.event_id] = replace(
                event, **update.fields.as_dict(), updated_at=update.updated_at
            )
            updated += 1
        return updated

    def close(self) -> None:
        return None


class SqlEventStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlEventStore")
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise each thread sees an empty database.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("SQL operation %s failed", operation)
            raise UpstreamFailure(operation, str(exc)) from exc

    def _to_event_record(self, row: "EventRow") -> EventRecord:
        return EventRecord(
            event_id=row.id,
            owner_id=row.owner_id,
            instant=row.instant,
            local_date=row.local_date,
            local_time=row.local_time,
            local_weekday=row.local_weekday,
            note=row.note or "",
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_event_row(self, record: EventRecord, owner_id: str) -> "EventRow":
        return EventRow(
            id=uuid.uuid4().hex,
            owner_id=owner_id,
            instant=record.instant,
            local_date=record.local_date,
            local_time=record.local_time,
            local_weekday=record.local_weekday,
            note=record.note,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def _owned_row(
        self, session: Session, owner_id: str, event_id: str
    ) -> Optional["EventRow"]:
        row = session.get(EventRow, event_id)
        if row is None or row.owner_id != owner_id:
            return None
        return row

    def get_or_create_user(
        self, uid: str, email: str, display_name: str, now: str
    ) -> UserRecord:
        with self._session("get_or_create_user") as session:
            row = session.get(UserRow, uid)
            if row is None:
                row = UserRow(
                    uid=uid,
                    email=email,
                    display_name=display_name,
                    created_at=now,
                    updated_at=now,
                )
                session.add(row)
                try:
                    session.commit()
                except IntegrityError:
                    # A concurrent first request inserted the same uid.
                    session.rollback()
                    logger.info("User %s was registered concurrently", uid)
                    row = session.get(UserRow, uid)
                    if row is None:
                        raise
            return UserRecord(
                row.uid, row.email, row.display_name, row.created_at, row.updated_at
            )

    def get_user(self, uid: str) -> Optional[UserRecord]:
        with self._session("get_user") as session:
            row = session.get(UserRow, uid)
            if row is None:
                return None
            return UserRecord(
                row.uid, row.email, row.display_name, row.created_at, row.updated_at
            )

    def add_event(self, record: EventRecord) -> EventRecord:
        with self._session("add_event") as session:
            row = self._to_event_row(record, record.owner_id)
            session.add(row)
            session.commit()
            return self._to_event_record(row)

    def get_event(self, owner_id: str, event_id: str) -> Optional[EventRecord]:
        with self._session("get_event") as session:
            row = self._owned_row(session, owner_id, event_id)
            return self._to_event_record(row) if row else None

    def update_event(
        self, owner_id: str, event_id: str, changes: dict
    ) -> Optional[EventRecord]:
        check_changes(changes)
        with self._session("update_event") as session:
            row = self._owned_row(session, owner_id, event_id)
            if row is None:
                return None
            for key, value in changes.items():
                setattr(row, key, value)
            session.commit()
            return self._to_event_record(row)

    def delete_event(self, owner_id: str, event_id: str) -> bool:
        with self._session("delete_event") as session:
            row = self._owned_row(session, owner_id, event_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def list_events(self, owner_id: Optional[str] = None) -> list[EventRecord]:
        with self._session("list_events") as session:
            stmt = select(EventRow).order_by(EventRow.instant.desc())
            if owner_id is not None:
                stmt = stmt.where(EventRow.owner_id == owner_id)
            return sort_newest_first(
                [self._to_event_record(row) for row in session.scalars(stmt)]
            )

    def list_events_in_range(
        self, owner_id: str, start_date: str, end_date: str
    ) -> list[EventRecord]:
        with self._session("list_events_in_range") as session:
            stmt = (
                select(EventRow)
                .where(
                    EventRow.owner_id == owner_id,
                    EventRow.local_date >= start_date,
                    EventRow.local_date <= end_date,
                )
                .order_by(EventRow.instant.desc())
            )
            return sort_newest_first(
                [self._to_event_record(row) for row in session.scalars(stmt)]
            )

    def import_events(
        self, owner_id: str, records: list[EventRecord], *, replace_existing: bool
    ) -> int:
        with self._session("import_events") as session:
            if replace_existing:
                session.execute(delete(EventRow).where(EventRow.owner_id == owner_id))
            session.add_all([self._to_event_row(r, owner_id) for r in records])
            session.commit()
        return len(records)

    def apply_local_fields(self, updates: list[LocalFieldUpdate]) -> int:
        updated = 0
        # Single transaction: either every staged row is rewritten or none is.
        with self._session("apply_local_fields") as session:
            for update in updates:
                row = session.get(EventRow, update.event_id)
                if row is None:
                    continue
                row.local_date = update.fields.local_date
                row.local_time = update.fields.local_time
                row.local_weekday = update.fields.local_weekday
                row.updated_at = update.updated_at
                updated += 1
            session.commit()
        return updated

    def close(self) -> None:
        self.engine.dispose()


Base = declarative_base()


class EventRow(Base):
    __tablename__ = "events"

    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    instant = Column(String, nullable=False, index=True)
    local_date = Column(String, nullable=False, index=True)
    local_time = Column(String, nullable=False)
    local_weekday = Column(String, nullable=False)
    note = Column(Text, nullable=False, default="")
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class UserRow(Base):
    __tablename__ = "users"

    uid = Column(String, primary_key=True)
    email = Column(String, nullable=False, default="")
    display_name = Column(String, nullable=False, default="")
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
