"""
Cloud Firestore implementation of the event store.

Documents keep the field names already used by existing deployments
(`userId`, `timestamp`, `date`, `time`, `dayOfWeek`, `notes`, ...). Queries
only filter on `userId`; date filtering and ordering happen in memory so
the collection needs no composite indexes.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Iterator, Optional

from firebase_admin import App, firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from cone_counter.db import (
    EventRecord,
    LocalFieldUpdate,
    UserRecord,
    check_changes,
    sort_newest_first,
)
from cone_counter.errors import NormalizationError, UpstreamFailure

logger = logging.getLogger(__name__)

EVENTS_COLLECTION = "cones"
USERS_COLLECTION = "users"

# Firestore rejects batches with more than 500 writes.
MAX_BATCH_WRITES = 500

# EventRecord attribute -> document field
DOCUMENT_FIELDS = {
    "owner_id": "userId",
    "instant": "timestamp",
    "local_date": "date",
    "local_time": "time",
    "local_weekday": "dayOfWeek",
    "note": "notes",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}


def _chunks(items: list, size: int) -> Iterator[list]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class FirestoreEventStore:
    """Event store backed by a Firestore client from firebase_admin."""

    def __init__(self, client=None, app: Optional[App] = None):
        self.client = client if client is not None else firestore.client(app)

    @contextmanager
    def _upstream(self, operation: str) -> Iterator[None]:
        try:
            yield
        except google_exceptions.GoogleAPICallError as exc:
            logger.exception("Firestore operation %s failed", operation)
            raise UpstreamFailure(operation, str(exc)) from exc

    @property
    def _events(self):
        return self.client.collection(EVENTS_COLLECTION)

    def _to_document(self, record: EventRecord) -> dict:
        return {
            field: getattr(record, attr) for attr, field in DOCUMENT_FIELDS.items()
        }

    def _to_event_record(self, snapshot) -> EventRecord:
        data = snapshot.to_dict() or {}
        return EventRecord(
            event_id=snapshot.id,
            owner_id=data.get("userId", ""),
            instant=data.get("timestamp", ""),
            local_date=data.get("date", ""),
            local_time=data.get("time", ""),
            local_weekday=data.get("dayOfWeek", ""),
            note=data.get("notes") or "",
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )

    def _owned_snapshot(self, owner_id: str, event_id: str):
        snapshot = self._events.document(event_id).get()
        if not snapshot.exists:
            return None
        if (snapshot.to_dict() or {}).get("userId") != owner_id:
            return None
        return snapshot

    def _stream_owned(self, owner_id: Optional[str]):
        query = self._events
        if owner_id is not None:
            query = query.where(filter=FieldFilter("userId", "==", owner_id))
        return query.stream()

    def get_or_create_user(
        self, uid: str, email: str, display_name: str, now: str
    ) -> UserRecord:
        with self._upstream("get_or_create_user"):
            ref = self.client.collection(USERS_COLLECTION).document(uid)
            snapshot = ref.get()
            if snapshot.exists:
                data = snapshot.to_dict() or {}
                return UserRecord(
                    uid,
                    data.get("email", ""),
                    data.get("displayName", ""),
                    data.get("createdAt", ""),
                    data.get("updatedAt", ""),
                )
            ref.set(
                {
                    "email": email,
                    "displayName": display_name,
                    "createdAt": now,
                    "updatedAt": now,
                }
            )
            return UserRecord(uid, email, display_name, now, now)

    def get_user(self, uid: str) -> Optional[UserRecord]:
        with self._upstream("get_user"):
            snapshot = self.client.collection(USERS_COLLECTION).document(uid).get()
            if not snapshot.exists:
                return None
            data = snapshot.to_dict() or {}
            return UserRecord(
                uid,
                data.get("email", ""),
                data.get("displayName", ""),
                data.get("createdAt", ""),
                data.get("updatedAt", ""),
            )

    def add_event(self, record: EventRecord) -> EventRecord:
        with self._upstream("add_event"):
            ref = self._events.document()
            ref.set(self._to_document(record))
            return replace(record, event_id=ref.id)

    def get_event(self, owner_id: str, event_id: str) -> Optional[EventRecord]:
        with self._upstream("get_event"):
            snapshot = self._owned_snapshot(owner_id, event_id)
            return self._to_event_record(snapshot) if snapshot else None

    def update_event(
        self, owner_id: str, event_id: str, changes: dict
    ) -> Optional[EventRecord]:
        check_changes(changes)
        with self._upstream("update_event"):
            snapshot = self._owned_snapshot(owner_id, event_id)
            if snapshot is None:
                return None
            self._events.document(event_id).update(
                {DOCUMENT_FIELDS[key]: value for key, value in changes.items()}
            )
            return replace(self._to_event_record(snapshot), **changes)

    def delete_event(self, owner_id: str, event_id: str) -> bool:
        with self._upstream("delete_event"):
            if self._owned_snapshot(owner_id, event_id) is None:
                return False
            self._events.document(event_id).delete()
            return True

    def list_events(self, owner_id: Optional[str] = None) -> list[EventRecord]:
        with self._upstream("list_events"):
            return sort_newest_first(
                [self._to_event_record(s) for s in self._stream_owned(owner_id)]
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
        """
        Write imported events in batches.

        Each batch is atomic, but a large import spans several batches; a
        failure part way through leaves the earlier batches committed.
        """
        with self._upstream("import_events"):
            writes = []
            if replace_existing:
                for snapshot in self._stream_owned(owner_id):
                    writes.append(("delete", snapshot.reference, None))
            for record in records:
                document = self._to_document(replace(record, owner_id=owner_id))
                writes.append(("set", self._events.document(), document))

            for chunk in _chunks(writes, MAX_BATCH_WRITES):
                batch = self.client.batch()
                for op, ref, document in chunk:
                    if op == "delete":
                        batch.delete(ref)
                    else:
                        batch.set(ref, document)
                batch.commit()
        return len(records)

    def apply_local_fields(self, updates: list[LocalFieldUpdate]) -> int:
        committed = 0
        for chunk in _chunks(updates, MAX_BATCH_WRITES):
            batch = self.client.batch()
            for update in chunk:
                batch.update(
                    self._events.document(update.event_id),
                    {
                        "date": update.fields.local_date,
                        "time": update.fields.local_time,
                        "dayOfWeek": update.fields.local_weekday,
                        "updatedAt": update.updated_at,
                    },
                )
            try:
                batch.commit()
            except google_exceptions.GoogleAPICallError as exc:
                logger.exception(
                    "Normalization batch failed after %d committed updates", committed
                )
                raise NormalizationError(committed, str(exc)) from exc
            committed += len(chunk)
        return committed

    def close(self) -> None:
        self.client.close()
