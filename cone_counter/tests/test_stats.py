import unittest
from datetime import date
from zoneinfo import ZoneInfo

from cone_counter.db import EventRecord
from cone_counter.local_fields import derive_local_fields
from cone_counter.stats import (
    EventStats,
    compute_analysis,
    compute_stats,
    elapsed_months,
    week_start,
)

TOKYO = ZoneInfo("Asia/Tokyo")
TODAY = date(2024, 5, 15)  # a Wednesday


def event_on(local_date: str, event_id: str = "e") -> EventRecord:
    return EventRecord(
        event_id=event_id,
        owner_id="alice",
        instant=f"{local_date}T03:00:00.000Z",
        local_date=local_date,
        local_time="12:00:00",
        local_weekday="",
    )


def event_at(instant: str, tz=TOKYO) -> EventRecord:
    fields = derive_local_fields(instant, tz)
    return EventRecord("e", "alice", instant, **fields.as_dict())


class ComputeStatsTests(unittest.TestCase):
    def test_no_events_is_all_zero(self):
        stats = compute_stats([], TODAY)
        self.assertEqual(stats, EventStats())
        self.assertEqual(stats.average_per_day, 0.0)
        self.assertEqual(stats.average_per_month, 0.0)

    def test_today_count(self):
        events = [event_on("2024-05-15") for _ in range(4)] + [event_on("2024-05-14")]
        stats = compute_stats(events, TODAY)
        self.assertEqual(stats.today, 4)
        self.assertEqual(stats.total, 5)

    def test_week_starts_on_monday(self):
        self.assertEqual(week_start(TODAY), date(2024, 5, 13))
        self.assertEqual(week_start(date(2024, 5, 13)), date(2024, 5, 13))
        self.assertEqual(week_start(date(2024, 5, 19)), date(2024, 5, 13))

    def test_monday_counts_for_this_week_prior_sunday_does_not(self):
        stats = compute_stats([event_on("2024-05-13"), event_on("2024-05-12")], TODAY)
        self.assertEqual(stats.this_week, 1)

    def test_this_month(self):
        events = [event_on("2024-05-01"), event_on("2024-05-15"), event_on("2024-04-30")]
        stats = compute_stats(events, TODAY)
        self.assertEqual(stats.this_month, 2)

    def test_averages_within_first_week(self):
        events = [event_on("2024-05-15"), event_on("2024-05-15"), event_on("2024-05-09")]
        stats = compute_stats(events, TODAY)
        # May 9 through May 15 inclusive is seven days, one week, one month.
        self.assertAlmostEqual(stats.average_per_day, 3 / 7)
        self.assertAlmostEqual(stats.average_per_week, 3.0)
        self.assertAlmostEqual(stats.average_per_month, 3.0)

    def test_averages_across_calendar_months(self):
        events = [event_on("2024-03-31")] + [event_on("2024-05-15") for _ in range(5)]
        stats = compute_stats(events, TODAY)
        # 46 days inclusive, 7 weeks, and March/April/May.
        self.assertAlmostEqual(stats.average_per_day, 6 / 46)
        self.assertAlmostEqual(stats.average_per_week, 6 / 7)
        self.assertAlmostEqual(stats.average_per_month, 2.0)

    def test_single_event_today_never_divides_by_zero(self):
        stats = compute_stats([event_on("2024-05-15")], TODAY)
        self.assertEqual(stats.average_per_day, 1.0)
        self.assertEqual(stats.average_per_week, 1.0)
        self.assertEqual(stats.average_per_month, 1.0)

    def test_unreadable_local_dates_are_skipped(self):
        events = [event_on("2024-05-15"), event_on(""), event_on("15/05/2024")]
        with self.assertLogs("cone_counter.stats", level="WARNING") as logs:
            stats = compute_stats(events, TODAY)
        self.assertEqual(len(logs.records), 2)
        self.assertEqual(stats.total, 1)
        self.assertEqual(stats.today, 1)
        self.assertEqual(stats.average_per_day, 1.0)

    def test_only_unreadable_local_dates_is_all_zero(self):
        with self.assertLogs("cone_counter.stats", level="WARNING"):
            stats = compute_stats([event_on("")], TODAY)
        self.assertEqual(stats, EventStats())

    def test_elapsed_months_spans_year_boundary(self):
        self.assertEqual(elapsed_months(date(2023, 11, 30), date(2024, 2, 1)), 4)
        self.assertEqual(elapsed_months(date(2024, 5, 1), date(2024, 5, 31)), 1)


class ComputeAnalysisTests(unittest.TestCase):
    def test_all_events_at_local_hour_nine(self):
        # 00:xx UTC is 09:xx in Tokyo.
        events = [
            event_at("2024-05-15T00:10:00.000Z"),
            event_at("2024-05-16T00:45:00.000Z"),
            event_at("2024-06-01T00:59:59.000Z"),
        ]
        analysis = compute_analysis(events, TOKYO)
        self.assertEqual(analysis.hour_of_day, {9: 3})

    def test_weekday_and_month_buckets_are_sparse(self):
        events = [
            event_at("2024-05-15T00:10:00.000Z"),  # Wednesday
            event_at("2024-05-16T00:45:00.000Z"),  # Thursday
            event_at("2024-05-22T00:45:00.000Z"),  # Wednesday
        ]
        analysis = compute_analysis(events, TOKYO)
        self.assertEqual(analysis.day_of_week, {"Wednesday": 2, "Thursday": 1})
        self.assertEqual(analysis.month_of_year, {5: 3})

    def test_buckets_use_local_time_not_utc(self):
        # 2024-05-31T20:00Z is already June 1st, 05:00 in Tokyo.
        analysis = compute_analysis([event_at("2024-05-31T20:00:00.000Z")], TOKYO)
        self.assertEqual(analysis.hour_of_day, {5: 1})
        self.assertEqual(analysis.day_of_week, {"Saturday": 1})
        self.assertEqual(analysis.month_of_year, {6: 1})

    def test_unparsable_instants_are_skipped(self):
        broken = event_at("2024-05-15T00:10:00.000Z")
        broken.instant = ""
        events = [broken, event_at("2024-05-16T00:45:00.000Z")]
        with self.assertLogs("cone_counter.stats", level="WARNING"):
            analysis = compute_analysis(events, TOKYO)
        self.assertEqual(analysis.hour_of_day, {9: 1})
        self.assertEqual(analysis.day_of_week, {"Thursday": 1})

    def test_no_events(self):
        analysis = compute_analysis([], TOKYO)
        self.assertEqual(analysis.hour_of_day, {})
        self.assertEqual(analysis.day_of_week, {})
        self.assertEqual(analysis.month_of_year, {})


if __name__ == "__main__":
    unittest.main()
