import unittest
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from cone_counter.errors import InvalidInput, InvalidInstant
from cone_counter.local_fields import (
    LocalFields,
    derive_local_fields,
    format_instant,
    local_today,
    parse_instant,
)

TOKYO = ZoneInfo("Asia/Tokyo")  # UTC+9, no DST
NEW_YORK = ZoneInfo("America/New_York")  # UTC-5 in winter


class MidnightBoundaryTests(unittest.TestCase):
    """Local fields must follow the local calendar day, not the UTC one."""

    def test_ahead_of_utc_just_before_local_midnight(self):
        fields = derive_local_fields("2024-03-10T14:59:30Z", TOKYO)
        self.assertEqual(fields, LocalFields("2024-03-10", "23:59:30", "Sunday"))

    def test_ahead_of_utc_just_after_local_midnight(self):
        # UTC is still on the 10th here.
        fields = derive_local_fields("2024-03-10T15:00:30Z", TOKYO)
        self.assertEqual(fields, LocalFields("2024-03-11", "00:00:30", "Monday"))

    def test_behind_utc_just_before_local_midnight(self):
        # UTC has already moved on to the 16th.
        fields = derive_local_fields("2024-01-16T04:59:30Z", NEW_YORK)
        self.assertEqual(fields, LocalFields("2024-01-15", "23:59:30", "Monday"))

    def test_behind_utc_just_after_local_midnight(self):
        fields = derive_local_fields("2024-01-16T05:00:30Z", NEW_YORK)
        self.assertEqual(fields, LocalFields("2024-01-16", "00:00:30", "Tuesday"))

    def test_every_second_around_midnight_uses_local_day(self):
        local_midnight = datetime(2024, 7, 1, tzinfo=TOKYO)
        for offset in range(-60, 61):
            moment = (local_midnight + timedelta(seconds=offset)).astimezone(
                timezone.utc
            )
            expected_day = "2024-06-30" if offset < 0 else "2024-07-01"
            with self.subTest(offset=offset):
                self.assertEqual(
                    derive_local_fields(moment, TOKYO).local_date, expected_day
                )


class DeriveLocalFieldsTests(unittest.TestCase):
    def test_same_input_gives_same_output(self):
        first = derive_local_fields("2024-05-15T03:04:05Z", TOKYO)
        second = derive_local_fields("2024-05-15T03:04:05Z", TOKYO)
        self.assertEqual(first, second)

    def test_offset_input_is_converted(self):
        fields = derive_local_fields("2024-03-11T00:00:30+09:00", NEW_YORK)
        self.assertEqual(fields, LocalFields("2024-03-10", "11:00:30", "Sunday"))

    def test_daylight_saving_shift(self):
        # New York springs forward at 07:00 UTC on 2024-03-10.
        before = derive_local_fields("2024-03-10T06:30:00Z", NEW_YORK)
        after = derive_local_fields("2024-03-10T07:30:00Z", NEW_YORK)
        self.assertEqual(before.local_time, "01:30:00")
        self.assertEqual(after.local_time, "03:30:00")

    def test_fields_are_zero_padded(self):
        fields = derive_local_fields("2024-01-02T03:04:05Z", ZoneInfo("UTC"))
        self.assertEqual(fields.local_date, "2024-01-02")
        self.assertEqual(fields.local_time, "03:04:05")
        self.assertEqual(fields.local_weekday, "Tuesday")

    def test_local_today(self):
        now = datetime(2024, 3, 10, 15, 30, tzinfo=timezone.utc)
        self.assertEqual(local_today(now, TOKYO).isoformat(), "2024-03-11")
        self.assertEqual(local_today(now, NEW_YORK).isoformat(), "2024-03-10")


class ParseInstantTests(unittest.TestCase):
    def test_browser_iso_string(self):
        parsed = parse_instant("2024-05-15T03:04:05.123Z")
        self.assertEqual(
            parsed, datetime(2024, 5, 15, 3, 4, 5, 123000, tzinfo=timezone.utc)
        )

    def test_naive_values_are_utc(self):
        self.assertEqual(
            parse_instant("2024-05-15T03:04:05"),
            datetime(2024, 5, 15, 3, 4, 5, tzinfo=timezone.utc),
        )
        self.assertEqual(
            parse_instant(datetime(2024, 5, 15, 3, 4, 5)),
            datetime(2024, 5, 15, 3, 4, 5, tzinfo=timezone.utc),
        )

    def test_invalid_values(self):
        for value in ["not a date", "", "2024-13-40T00:00:00Z", None, 12345]:
            with self.subTest(value=value):
                with self.assertRaises(InvalidInstant):
                    parse_instant(value)

    def test_instant_out_of_range_in_local_zone(self):
        # Year 10000 in Tokyo.
        with self.assertRaises(InvalidInstant):
            derive_local_fields("9999-12-31T23:00:00Z", TOKYO)
        # Before year 1 in New York.
        with self.assertRaises(InvalidInstant):
            derive_local_fields("0001-01-01T01:00:00Z", NEW_YORK)
        self.assertEqual(
            derive_local_fields("9999-12-31T23:00:00Z", NEW_YORK).local_date,
            "9999-12-31",
        )

    def test_invalid_instant_is_invalid_input(self):
        with self.assertRaises(InvalidInput) as ctx:
            derive_local_fields("yesterday", TOKYO)
        self.assertEqual(ctx.exception.code, "invalid_instant")
        self.assertEqual(ctx.exception.http_status, 400)

    def test_format_instant_is_canonical_utc(self):
        self.assertEqual(
            format_instant("2024-01-01T10:00:00+02:00"), "2024-01-01T08:00:00.000Z"
        )
        self.assertEqual(
            format_instant("2024-01-01T08:00:00.123456Z"), "2024-01-01T08:00:00.123Z"
        )


if __name__ == "__main__":
    unittest.main()
