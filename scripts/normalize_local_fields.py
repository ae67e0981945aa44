"""
Re-derive stored local date/time/weekday fields from each event's instant.

Uses the event store and timezone from the environment (.env), e.g.:

    EVENT_STORE=firestore LOCAL_TIMEZONE=Europe/Berlin \
        python scripts/normalize_local_fields.py --owner <uid>
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from cone_counter.config import get_settings
from cone_counter.dependencies import build_event_store
from cone_counter.errors import NormalizationError, UpstreamFailure
from cone_counter.normalize import normalize_local_fields

logger = logging.getLogger(__name__)


def timezone_arg(value: str) -> ZoneInfo:
    try:
        return ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise argparse.ArgumentTypeError(f"unknown timezone: {value}") from exc


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Normalize local date fields of stored events"
    )
    parser.add_argument(
        "--owner",
        type=str,
        default=None,
        help="Only normalize events of this user id (default: all users)",
    )
    parser.add_argument(
        "--timezone",
        type=timezone_arg,
        default=None,
        help="Override LOCAL_TIMEZONE for this run (IANA name)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    tz = args.timezone or settings.tz

    store = build_event_store(settings)
    try:
        updated = normalize_local_fields(store, tz, args.owner)
    except NormalizationError as exc:
        logger.error(
            "Normalization failed after %d updates: %s", exc.updated, exc.detail
        )
        return 1
    except UpstreamFailure as exc:
        logger.error("Event store unavailable: %s", exc.detail)
        return 1
    finally:
        store.close()

    print(f"Updated {updated} events")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
