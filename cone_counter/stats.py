"""
Summary statistics and time histograms over one owner's events.

Records whose stored date or instant cannot be read (legacy imports) are
left out of the numbers with a warning; normalization skips them too.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo
from typing import Iterable, Optional

from cone_counter.db import EventRecord
from cone_counter.errors import InvalidInstant
from cone_counter.local_fields import WEEKDAYS, to_local

logger = logging.getLogger(__name__)


@dataclass
class EventStats:
    total: int = 0
    today: int = 0
    this_week: int = 0
    this_month: int = 0
    average_per_day: float = 0.0
    average_per_week: float = 0.0
    average_per_month: float = 0.0


@dataclass
class TimeAnalysis:
    """Sparse histograms; a missing bucket means zero events."""

    hour_of_day: dict[int, int] = field(default_factory=dict)
    day_of_week: dict[str, int] = field(default_factory=dict)
    month_of_year: dict[int, int] = field(default_factory=dict)


def week_start(today: date) -> date:
    """Monday of the week containing `today`."""
    return today - timedelta(days=today.weekday())


def elapsed_days(earliest: date, today: date) -> int:
    # Inclusive: an owner whose first event is today has one elapsed day.
    return max(1, (today - earliest).days + 1)


def elapsed_weeks(days: int) -> int:
    return max(1, math.ceil(days / 7))


def elapsed_months(earliest: date, today: date) -> int:
    """Distinct calendar months from `earliest`'s month to `today`'s, inclusive."""
    span = (today.year * 12 + today.month) - (earliest.year * 12 + earliest.month)
    return max(1, span + 1)


def _valid_local_date(event: EventRecord) -> Optional[str]:
    try:
        return date.fromisoformat(event.local_date).isoformat()
    except (TypeError, ValueError):
        logger.warning(
            "Skipping event %s with unreadable local date %r",
            event.event_id,
            event.local_date,
        )
        return None


def compute_stats(events: Iterable[EventRecord], today: date) -> EventStats:
    dates = [d for d in map(_valid_local_date, events) if d is not None]
    if not dates:
        return EventStats()

    today_str = today.isoformat()
    monday = week_start(today)
    week_from, week_to = monday.isoformat(), (monday + timedelta(days=6)).isoformat()
    month_prefix = today_str[:7]

    stats = EventStats(
        total=len(dates),
        today=sum(1 for d in dates if d == today_str),
        this_week=sum(1 for d in dates if week_from <= d <= week_to),
        this_month=sum(1 for d in dates if d[:7] == month_prefix),
    )

    earliest = date.fromisoformat(min(dates))
    days = elapsed_days(earliest, today)
    stats.average_per_day = stats.total / days
    stats.average_per_week = stats.total / elapsed_weeks(days)
    stats.average_per_month = stats.total / elapsed_months(earliest, today)
    return stats


def compute_analysis(events: Iterable[EventRecord], tz: tzinfo) -> TimeAnalysis:
    hours: Counter = Counter()
    weekdays: Counter = Counter()
    months: Counter = Counter()
    for event in events:
        try:
            moment = to_local(event.instant, tz)
        except InvalidInstant:
            logger.warning(
                "Skipping event %s with unparsable instant %r",
                event.event_id,
                event.instant,
            )
            continue
        hours[moment.hour] += 1
        weekdays[WEEKDAYS[(moment.weekday() + 1) % 7]] += 1
        months[moment.month] += 1
    return TimeAnalysis(
        hour_of_day=dict(sorted(hours.items())),
        day_of_week={day: weekdays[day] for day in WEEKDAYS if weekdays[day]},
        month_of_year=dict(sorted(months.items())),
    )
