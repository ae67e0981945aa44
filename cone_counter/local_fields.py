"""
Derivation of local calendar fields from an absolute instant.

Events store their instant in UTC. The date, time and weekday shown to
the user are computed in one explicitly configured timezone so that an
event logged at 00:30 local time lands on the local calendar day, not on
whatever day UTC happened to be on.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Union

from cone_counter.errors import InvalidInstant

WEEKDAYS = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)

InstantLike = Union[str, datetime]


@dataclass(frozen=True)
class LocalFields:
    local_date: str
    local_time: str
    local_weekday: str

    def as_dict(self) -> dict:
        return {
            "local_date": self.local_date,
            "local_time": self.local_time,
            "local_weekday": self.local_weekday,
        }


def parse_instant(value: InstantLike) -> datetime:
    """
    Parse an ISO-8601 string or datetime into an aware UTC datetime.

    Values without an offset are taken to be UTC. Raises `InvalidInstant`
    for anything that is not a point in time.
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidInstant(value)
        # Browsers serialize with a trailing "Z" (Date.toISOString).
        if text[-1] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidInstant(value) from exc
    else:
        raise InvalidInstant(value)

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    try:
        return moment.astimezone(timezone.utc)
    except OverflowError as exc:
        raise InvalidInstant(value) from exc


def format_instant(value: InstantLike) -> str:
    """Canonical storage form: UTC, millisecond precision, `Z` suffix."""
    moment = parse_instant(value)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_local(value: InstantLike, tz: tzinfo) -> datetime:
    moment = parse_instant(value)
    try:
        return moment.astimezone(tz)
    except OverflowError as exc:
        # Valid in UTC but outside the datetime range once shifted.
        raise InvalidInstant(value) from exc


def derive_local_fields(value: InstantLike, tz: tzinfo) -> LocalFields:
    moment = to_local(value, tz)
    return LocalFields(
        local_date=f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}",
        local_time=f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}",
        # datetime.weekday() is Monday-based, WEEKDAYS starts on Sunday.
        local_weekday=WEEKDAYS[(moment.weekday() + 1) % 7],
    )


def local_today(now: datetime, tz: tzinfo) -> date:
    return to_local(now, tz).date()
