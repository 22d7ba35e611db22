"""Tests for report aggregation, trend bucketing and insight rules."""

from datetime import date

import pytest

from conftest import NOW, sample_tables
from gearflow.modules.reporting.aggregator import (
    UsageReport,
    aggregate_report,
    build_gear_stats,
    fleet_utilization,
    request_duration_days,
    request_gear_ids,
)
from gearflow.modules.reporting.fetcher import ReportSources
from gearflow.modules.reporting.insights import (
    calculate_performance_metrics,
    generate_insights,
)
from gearflow.modules.reporting.trends import bucket_by_day

START = date(2024, 3, 1)
END = date(2024, 3, 7)


def _sources(tables=None):
    tables = tables or sample_tables()
    return ReportSources(
        gears=tables["gears"],
        profiles=tables["profiles"],
        requests=[
            dict(r, gear_request_gears=[
                {"gear_id": line["gear_id"], "quantity": line["quantity"]}
                for line in tables["gear_request_gears"]
                if line["gear_request_id"] == r["id"]
            ])
            for r in tables["gear_requests"]
        ],
        activities=tables["gear_activity_log"],
    )


def _titles(insights):
    return [i.title for i in insights]


class TestAggregateReport:
    """aggregate_report over the shared sample data."""

    def test_empty_sources_never_raise(self):
        report = aggregate_report(ReportSources(), START, END, now=NOW)
        assert report.total_requests == 0
        assert report.total_checkouts == 0
        assert report.total_checkins == 0
        assert report.total_damages == 0
        assert report.utilization_rate == 0
        assert report.avg_request_duration == 0
        assert report.overdue_returns == 0
        assert report.user_stats == []
        assert report.gear_stats == []
        assert report.most_active_user is None
        assert report.most_active_gear is None

    def test_totals(self):
        report = aggregate_report(_sources(), START, END, now=NOW)
        assert report.total_requests == 3
        assert report.total_checkouts == 2
        assert report.total_checkins == 1
        assert report.total_damages == 0
        assert report.total_activity == 6

    def test_overdue_counts_active_loans_only(self):
        report = aggregate_report(_sources(), START, END, now=NOW)
        assert report.overdue_returns == 1

    def test_fleet_utilization(self):
        report = aggregate_report(_sources(), START, END, now=NOW)
        assert report.utilization_rate == pytest.approx(33.33)

    def test_average_duration(self):
        report = aggregate_report(_sources(), START, END, now=NOW)
        assert report.avg_request_duration == 2.0

    def test_user_stats_only_active(self):
        report = aggregate_report(_sources(), START, END, now=NOW)
        names = sorted(u.name for u in report.user_stats)
        assert names == ["Alice", "Bob"]
        assert report.unique_users == 2
        assert report.total_users == 3
        assert report.most_active_user == "Alice"

        bob = next(u for u in report.user_stats if u.name == "Bob")
        assert bob.overdue == 1
        assert bob.checkouts == 1
        assert bob.last_activity == "2024-03-01T10:00:00Z"

    def test_gear_stats(self):
        report = aggregate_report(_sources(), START, END, now=NOW)
        mic = next(g for g in report.gear_stats if g.name == "Microphone")
        assert mic.requests == 1
        assert mic.checkouts == 1
        assert mic.checkins == 1
        assert mic.total_days == 2.0
        assert mic.utilization_rate == pytest.approx(28.57)
        assert report.total_gears == 3

    def test_summary_sentence(self):
        report = aggregate_report(_sources(), START, END, now=NOW)
        assert report.summary == (
            "During the period from 2024-03-01 to 2024-03-07, there were 3 total "
            "requests with 2 active users. The overall equipment utilization rate "
            "was 33.3%, with 1 overdue returns."
        )

    def test_source_errors_carried(self):
        sources = ReportSources(errors={"gears": "timeout"})
        report = aggregate_report(sources, START, END, now=NOW)
        assert report.source_errors == {"gears": "timeout"}

    def test_idle_week_scenario(self):
        """2 closed requests, 53 items (49 available), nothing checked out."""
        gears = [
            {"id": "g%d" % i, "name": "Item %d" % i, "status": "Available"}
            for i in range(49)
        ] + [
            {"id": "r%d" % i, "name": "Broken %d" % i, "status": "Under Repair"}
            for i in range(4)
        ]
        requests = [
            {"id": "a", "user_id": "u1", "status": "Cancelled",
             "created_at": "2024-03-02T10:00:00Z", "gear_id": "g1"},
            {"id": "b", "user_id": "u2", "status": "Rejected",
             "created_at": "2024-03-03T10:00:00Z", "gear_id": "g2"},
        ]
        profiles = [{"id": "u1", "full_name": "U1"}, {"id": "u2", "full_name": "U2"}]
        report = aggregate_report(
            ReportSources(gears=gears, profiles=profiles, requests=requests),
            START, END, now=NOW,
        )
        assert report.total_gears == 53
        assert report.utilization_rate == 0
        assert report.overdue_returns == 0

        insights, _ = generate_insights(report)
        titles = _titles(insights)
        assert "No activity" in titles
        assert "High utilization" not in titles


class TestDurations:

    def test_missing_due_date_excluded(self):
        requests = [
            {"id": "1", "status": "Checked In", "created_at": "2024-03-01T00:00:00Z"},
            {"id": "2", "status": "checked_in", "created_at": "2024-03-01T00:00:00Z",
             "due_date": "2024-03-05T00:00:00Z"},
        ]
        report = aggregate_report(ReportSources(requests=requests), START, END, now=NOW)
        assert report.avg_request_duration == 4.0

    def test_negative_span_clamps_to_zero(self):
        req = {"status": "Returned", "created_at": "2024-03-05T00:00:00Z",
               "due_date": "2024-03-01T00:00:00Z"}
        assert request_duration_days(req) == 0.0

    def test_open_request_has_no_duration(self):
        req = {"status": "Checked Out", "created_at": "2024-03-01T00:00:00Z",
               "due_date": "2024-03-05T00:00:00Z"}
        assert request_duration_days(req) is None


class TestGearUtilization:

    def test_utilization_clamped_to_100(self):
        gears = [{"id": "g1", "name": "Drone"}]
        requests = [{
            "id": "r1", "status": "Checked In", "gear_id": "g1",
            "created_at": "2024-01-01T00:00:00Z", "due_date": "2024-03-01T00:00:00Z",
        }]
        stats = build_gear_stats(gears, requests, [], report_days=7)
        assert stats[0].utilization_rate == 100.0

    def test_zero_day_window(self):
        stats = build_gear_stats([{"id": "g1"}], [], [], report_days=0)
        assert stats[0].utilization_rate == 0.0
        assert stats[0].name == "Unknown Gear"

    def test_request_gear_ids_merges_direct_and_lines(self):
        req = {"gear_id": "g1", "gear_request_gears": [{"gear_id": "g2"}, {"gear_id": "g1"}]}
        assert request_gear_ids(req) == {"g1", "g2"}

    def test_fleet_utilization_variants(self):
        gears = [{"status": "checked_out"}, {"status": "Partially Checked Out"},
                 {"status": "Available"}, {"status": None}]
        assert fleet_utilization(gears) == 50.0
        assert fleet_utilization([]) == 0.0


class TestTrends:

    def test_bucket_by_day(self):
        sources = _sources()
        points = bucket_by_day(sources.requests, sources.activities)
        assert [p.date for p in points] == ["2024-03-01", "2024-03-02", "2024-03-03"]
        first = points[0]
        assert (first.requests, first.checkouts, first.checkins) == (2, 2, 0)
        assert points[2].checkins == 1

    def test_rows_without_timestamp_skipped(self):
        points = bucket_by_day(
            [{"created_at": None}, {"created_at": "2024-03-01T00:00:00Z"}],
            [{"activity_type": "Damage Report", "created_at": "bad"},
             {"activity_type": "Booking", "created_at": "2024-03-01T00:00:00Z"}],
        )
        assert len(points) == 1
        assert points[0].requests == 1
        assert points[0].damages == 0


class TestInsights:

    def test_high_utilization(self):
        report = UsageReport("2024-03-01", "2024-03-07", utilization_rate=90.0,
                             total_checkouts=5, unique_users=5, total_gears=10)
        insights, recs = generate_insights(report)
        assert "High utilization" in _titles(insights)
        assert any("Expand inventory" in r for r in recs)

    def test_damage_rate(self):
        report = UsageReport("2024-03-01", "2024-03-07", total_requests=5,
                             total_checkouts=5, total_damages=2, unique_users=4)
        insights, _ = generate_insights(report)
        assert "Elevated damage rate" in _titles(insights)

    def test_overdue_is_critical(self):
        report = UsageReport("2024-03-01", "2024-03-07", overdue_returns=2,
                             total_checkouts=1, unique_users=3)
        insights, _ = generate_insights(report)
        overdue = next(i for i in insights if i.title == "Overdue returns")
        assert overdue.severity == "critical"
        assert "Returns on time" not in _titles(insights)

    def test_stable_recommendation_when_nothing_to_fix(self):
        report = UsageReport("2024-03-01", "2024-03-07", total_checkouts=4,
                             total_checkins=4, utilization_rate=40.0,
                             unique_users=5, total_gears=10)
        _, recs = generate_insights(report)
        assert len(recs) == 1
        assert recs[0].startswith("Operations are stable")

    def test_activity_growth_against_previous(self):
        current = UsageReport("2024-03-08", "2024-03-14", total_requests=6,
                              total_checkouts=4, unique_users=4)
        previous = UsageReport("2024-03-01", "2024-03-07", total_requests=3,
                               total_checkouts=2, unique_users=2)
        insights, _ = generate_insights(current, previous)
        assert "Activity growth" in _titles(insights)

    def test_performance_zero_previous(self):
        current = UsageReport("2024-03-08", "2024-03-14", total_requests=4)
        previous = UsageReport("2024-03-01", "2024-03-07")
        perf = calculate_performance_metrics(current, previous)
        assert perf.activity_change == 0.0
        assert perf.trend == "stable"

    def test_performance_delta(self):
        current = UsageReport("2024-03-08", "2024-03-14", total_requests=3,
                              total_checkouts=3, utilization_rate=50.0, unique_users=4)
        previous = UsageReport("2024-03-01", "2024-03-07", total_requests=2,
                               total_checkouts=2, utilization_rate=20.0, unique_users=2)
        perf = calculate_performance_metrics(current, previous)
        assert perf.activity_change == 50.0
        assert perf.utilization_change == 30.0
        assert perf.user_growth == 100.0
        assert perf.trend == "increasing"
