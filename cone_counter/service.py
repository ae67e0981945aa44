"""
Service layer for events.

Business rules live here: deriving local fields from the instant, scoping
every read and write to the calling owner, shaping export/import data
and computing statistics. All persistence goes through an `EventStore`.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Optional

from cone_counter.db import EventRecord, EventStore
from cone_counter.errors import InvalidInput, InvalidInstant, NotFound
from cone_counter.local_fields import (
    derive_local_fields,
    format_instant,
    local_today,
    parse_instant,
)
from cone_counter.normalize import normalize_local_fields
from cone_counter.schemas import ImportEventItem, ImportMode
from cone_counter.stats import EventStats, TimeAnalysis, compute_analysis, compute_stats

logger = logging.getLogger(__name__)

EXPORT_FORMAT_VERSION = "2.0.0"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_range_date(value: str, name: str) -> str:
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise InvalidInput(
            f"Invalid {name} date, expected YYYY-MM-DD", detail=value
        ) from exc


class EventService:
    """Business rules + validation for one store and one local timezone.

    Example usage:
        svc = EventService(InMemoryEventStore(), ZoneInfo("Europe/Berlin"))
        svc.create_event("uid-1", note="after lunch")
    """

    def __init__(self, store: EventStore, tz: tzinfo, clock: Optional[Clock] = None):
        self.store = store
        self.tz = tz
        self.clock = clock or utc_now

    def _now(self) -> str:
        return format_instant(self.clock())

    def _build_record(
        self, owner_id: str, moment: datetime, note: str, created_at: str, updated_at: str
    ) -> EventRecord:
        fields = derive_local_fields(moment, self.tz)
        return EventRecord(
            event_id="",
            owner_id=owner_id,
            instant=format_instant(moment),
            local_date=fields.local_date,
            local_time=fields.local_time,
            local_weekday=fields.local_weekday,
            note=note,
            created_at=created_at,
            updated_at=updated_at,
        )

    def register_user(self, uid: str, email: str = "", display_name: str = "") -> None:
        self.store.get_or_create_user(uid, email, display_name, self._now())

    def list_events(self, owner_id: str) -> list[EventRecord]:
        return self.store.list_events(owner_id)

    def get_event(self, owner_id: str, event_id: str) -> EventRecord:
        event = self.store.get_event(owner_id, event_id)
        if event is None:
            raise NotFound("Event", event_id)
        return event

    def create_event(
        self,
        owner_id: str,
        instant: Optional[str] = None,
        note: Optional[str] = None,
    ) -> EventRecord:
        moment = parse_instant(instant) if instant is not None else self.clock()
        now = self._now()
        record = self._build_record(owner_id, moment, note or "", now, now)
        return self.store.add_event(record)

    def update_event(
        self,
        owner_id: str,
        event_id: str,
        instant: Optional[str] = None,
        note: Optional[str] = None,
    ) -> EventRecord:
        changes: dict = {"updated_at": self._now()}
        if instant is not None:
            moment = parse_instant(instant)
            changes["instant"] = format_instant(moment)
            changes.update(derive_local_fields(moment, self.tz).as_dict())
        if note is not None:
            changes["note"] = note

        updated = self.store.update_event(owner_id, event_id, changes)
        if updated is None:
            raise NotFound("Event", event_id)
        return updated

    def delete_event(self, owner_id: str, event_id: str) -> None:
        if not self.store.delete_event(owner_id, event_id):
            raise NotFound("Event", event_id)

    def list_events_in_range(
        self, owner_id: str, start: str, end: str
    ) -> list[EventRecord]:
        start_date = _parse_range_date(start, "start")
        end_date = _parse_range_date(end, "end")
        return self.store.list_events_in_range(owner_id, start_date, end_date)

    def today(self) -> date:
        return local_today(self.clock(), self.tz)

    def get_stats(self, owner_id: str) -> EventStats:
        return compute_stats(self.store.list_events(owner_id), self.today())

    def get_analysis(self, owner_id: str) -> TimeAnalysis:
        return compute_analysis(self.store.list_events(owner_id), self.tz)

    def export_events(self, owner_id: str) -> tuple[list[EventRecord], str, str]:
        """Return (events newest first, exported-at instant, format version)."""
        return self.store.list_events(owner_id), self._now(), EXPORT_FORMAT_VERSION

    def import_events(
        self, owner_id: str, items: list[ImportEventItem], mode: ImportMode
    ) -> int:
        """
        Store imported events for `owner_id` and return how many were written.

        Local fields are re-derived from each instant. Every item is
        validated before anything is written. With mode "replace" the
        owner's existing events are removed first.
        """
        now = self._now()
        records: list[EventRecord] = []
        for index, item in enumerate(items):
            try:
                moment = parse_instant(item.instant)
            except InvalidInstant as exc:
                raise InvalidInput(
                    f"Event {index} has an invalid instant", detail=item.instant
                ) from exc
            created_at = format_instant(moment)
            if item.createdAt:
                try:
                    created_at = format_instant(item.createdAt)
                except InvalidInstant:
                    logger.warning(
                        "Import item %d has unparsable createdAt %r, using its instant",
                        index,
                        item.createdAt,
                    )
            records.append(
                self._build_record(owner_id, moment, item.note or "", created_at, now)
            )

        imported = self.store.import_events(
            owner_id, records, replace_existing=(mode == "replace")
        )
        logger.info("Imported %d events for %s (mode=%s)", imported, owner_id, mode)
        return imported

    def normalize(self, owner_id: Optional[str] = None) -> int:
        return normalize_local_fields(self.store, self.tz, owner_id, now=self.clock())
