"""
Re-derive stored local fields from each event's instant.

Older records may carry a date, time or weekday computed from the UTC
representation, or in a different timezone than the one now configured.
`normalize_local_fields` finds those records and rewrites only the ones
that differ, so running it repeatedly is harmless.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from typing import Iterable, Optional

from cone_counter.db import EventRecord, EventStore, LocalFieldUpdate
from cone_counter.errors import InvalidInstant
from cone_counter.local_fields import derive_local_fields, format_instant

logger = logging.getLogger(__name__)


def plan_local_field_updates(
    events: Iterable[EventRecord], tz: tzinfo, updated_at: str
) -> list[LocalFieldUpdate]:
    updates: list[LocalFieldUpdate] = []
    for event in events:
        try:
            expected = derive_local_fields(event.instant, tz)
        except InvalidInstant:
            logger.warning(
                "Skipping event %s with unparsable instant %r",
                event.event_id,
                event.instant,
            )
            continue
        if expected != event.local_fields:
            updates.append(LocalFieldUpdate(event.event_id, expected, updated_at))
    return updates


def normalize_local_fields(
    store: EventStore,
    tz: tzinfo,
    owner_id: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> int:
    """
    Reconcile stored local fields for one owner (or every owner when
    `owner_id` is None). Returns the number of records rewritten.

    Raises `NormalizationError` with the committed count if the store
    fails after applying part of the updates.
    """
    events = store.list_events(owner_id)
    updated_at = format_instant(now or datetime.now(timezone.utc))
    updates = plan_local_field_updates(events, tz, updated_at)
    if not updates:
        logger.info(
            "Local fields already consistent for %d events (owner=%s)",
            len(events),
            owner_id or "*",
        )
        return 0

    updated = store.apply_local_fields(updates)
    logger.info(
        "Normalized local fields for %d of %d events (owner=%s)",
        updated,
        len(events),
        owner_id or "*",
    )
    return updated
