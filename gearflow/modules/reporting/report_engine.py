"""Usage report engine: fetch, aggregate, bucket, analyse, and archive.

Runs the reporting pipeline for a date window, optionally comparing it
with the preceding window of equal length, and persists generated
reports and recurring report configurations.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import desc

from gearflow.database import get_session
from gearflow.integrations.backend_client import BackendClient
from gearflow.models.report import Report, ReportSchedule
from gearflow.modules.reporting.aggregator import UsageReport, aggregate_report
from gearflow.modules.reporting.fetcher import ReportDataFetcher
from gearflow.modules.reporting.insights import (
    Insight,
    PerformanceMetrics,
    calculate_performance_metrics,
    generate_insights,
)
from gearflow.modules.reporting.trends import TrendPoint, bucket_by_day
from gearflow.scheduler import parse_cron
from gearflow.utils.helpers import previous_period, to_date

logger = logging.getLogger(__name__)

VALID_FREQUENCIES = ("daily", "weekly", "biweekly", "monthly")
VALID_FORMATS = ("csv", "pdf", "json", "html")

# min hour day month weekday
FREQUENCY_CRON = {
    "daily": "0 7 * * *",
    "weekly": "0 7 * * mon",
    "biweekly": "0 7 1,15 * *",
    "monthly": "0 7 1 * *",
}

FREQUENCY_DAYS = {
    "daily": 1,
    "weekly": 7,
    "biweekly": 14,
    "monthly": 30,
}


def _utcnow() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class ReportBundle:
    """Everything one report run produces."""

    report: UsageReport
    trends: list[TrendPoint] = field(default_factory=list)
    insights: list[Insight] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    previous_report: Optional[UsageReport] = None
    performance: Optional[PerformanceMetrics] = None
    generated_at: str = field(default_factory=lambda: _utcnow().isoformat())
    report_id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_id": self.report_id,
            "generated_at": self.generated_at,
            "report": self.report.to_dict(),
            "trends": [p.to_dict() for p in self.trends],
            "insights": [i.to_dict() for i in self.insights],
            "recommendations": list(self.recommendations),
            "previous_report": (
                self.previous_report.to_dict() if self.previous_report else None
            ),
            "performance": self.performance.to_dict() if self.performance else None,
        }


class ReportEngine:
    """Run the reporting pipeline against the backend.

    Usage::

        async with BackendClient.from_env() as client:
            engine = ReportEngine(client)
            bundle = await engine.generate_weekly_report()
    """

    def __init__(
        self,
        client: BackendClient,
        fetcher: Optional[ReportDataFetcher] = None,
        persist: bool = False,
    ) -> None:
        self._client = client
        self._fetcher = fetcher or ReportDataFetcher(client)
        self._persist = persist

    # ------------------------------------------------------------------
    # 1. Report generation
    # ------------------------------------------------------------------

    async def build_usage_report(
        self,
        start_date: date,
        end_date: date,
        now: Optional[datetime] = None,
    ) -> tuple[UsageReport, list[TrendPoint]]:
        """Fetch and aggregate a single window."""
        sources = await self._fetcher.fetch(start_date, end_date)
        report = aggregate_report(sources, start_date, end_date, now=now)
        trends = bucket_by_day(sources.requests, sources.activities)
        return report, trends

    async def generate_report(
        self,
        start_date: date | str,
        end_date: date | str,
        compare: bool = True,
        now: Optional[datetime] = None,
    ) -> ReportBundle:
        """Produce a :class:`ReportBundle` for ``start_date..end_date``.

        With ``compare`` the preceding window of equal length is aggregated
        too and feeds the performance metrics and trend insights.
        """
        start, end = to_date(start_date), to_date(end_date)
        if end < start:
            raise ValueError("end_date must not be before start_date")
        logger.info("Generating usage report %s..%s (compare=%s)", start, end, compare)

        report, trends = await self.build_usage_report(start, end, now=now)

        previous = None
        performance = None
        if compare:
            prev_start, prev_end = previous_period(start, end)
            previous, _ = await self.build_usage_report(prev_start, prev_end, now=now)
            performance = calculate_performance_metrics(report, previous)

        insights, recommendations = generate_insights(report, previous)
        bundle = ReportBundle(
            report=report,
            trends=trends,
            insights=insights,
            recommendations=recommendations,
            previous_report=previous,
            performance=performance,
        )
        if self._persist:
            bundle.report_id = self.save_report(bundle)
        return bundle

    async def generate_weekly_report(
        self,
        end_date: Optional[date] = None,
        days: int = 7,
        compare: bool = True,
    ) -> ReportBundle:
        """Report over the ``days`` days ending on ``end_date`` (default today)."""
        if days < 1:
            raise ValueError("days must be at least 1")
        end = end_date or _utcnow().date()
        start = end - timedelta(days=days - 1)
        return await self.generate_report(start, end, compare=compare)

    # ------------------------------------------------------------------
    # 2. Server-side weekly summary
    # ------------------------------------------------------------------

    async def fetch_weekly_activity(self, days: int = 7) -> dict[str, Any]:
        """Per-gear counters from the ``get_weekly_activity_report`` procedure."""
        end = _utcnow()
        start = end - timedelta(days=days)
        rows = await self._client.rpc(
            "get_weekly_activity_report",
            {"start_date": start.isoformat(), "end_date": end.isoformat()},
        ) or []

        totals = {
            "requests": 0, "checkouts": 0, "checkins": 0,
            "bookings": 0, "damages": 0,
        }
        gear_activity = []
        for row in rows:
            item = {
                "gear_id": row.get("gear_id"),
                "gear_name": row.get("gear_name") or "Unknown Gear",
                "request_count": int(row.get("request_count") or 0),
                "checkout_count": int(row.get("checkout_count") or 0),
                "checkin_count": int(row.get("checkin_count") or 0),
                "booking_count": int(row.get("booking_count") or 0),
                "damage_count": int(row.get("damage_count") or 0),
            }
            item["total_activity"] = sum(
                v for k, v in item.items() if k.endswith("_count")
            )
            totals["requests"] += item["request_count"]
            totals["checkouts"] += item["checkout_count"]
            totals["checkins"] += item["checkin_count"]
            totals["bookings"] += item["booking_count"]
            totals["damages"] += item["damage_count"]
            gear_activity.append(item)

        return {
            "period": {
                "days": days,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
            },
            "summary": {"gears_with_activity": len(gear_activity), **totals},
            "gear_activity": gear_activity,
        }

    # ------------------------------------------------------------------
    # 3. Archive
    # ------------------------------------------------------------------

    @staticmethod
    def save_report(bundle: ReportBundle, file_path: Optional[str] = None) -> int:
        """Persist the bundle to the local archive."""
        report = bundle.report
        title = "Gear Activity Report " + report.start_date + " to " + report.end_date
        with get_session() as session:
            row = Report(
                report_type="usage_report",
                title=title,
                start_date=to_date(report.start_date),
                end_date=to_date(report.end_date),
                data_json=bundle.to_dict(),
                file_path=file_path,
            )
            session.add(row)
            session.flush()
            report_id = row.id
        logger.info("Report saved with id=%d", report_id)
        return report_id

    @staticmethod
    def list_reports(limit: int = 20) -> list[dict[str, Any]]:
        """Most recent archived reports, newest first."""
        with get_session() as session:
            rows = (
                session.query(Report)
                .order_by(desc(Report.created_at), desc(Report.id))
                .limit(limit)
                .all()
            )
            return [
                {
                    "id": r.id,
                    "title": r.title,
                    "start_date": r.start_date.isoformat(),
                    "end_date": r.end_date.isoformat(),
                    "file_path": r.file_path,
                    "created_at": r.created_at.isoformat() if r.created_at else None,
                }
                for r in rows
            ]

    @staticmethod
    def get_report(report_id: int) -> Optional[dict[str, Any]]:
        """Stored bundle for ``report_id`` or None."""
        with get_session() as session:
            row = session.get(Report, report_id)
            return dict(row.data_json or {}) if row else None

    # ------------------------------------------------------------------
    # 4. Schedules
    # ------------------------------------------------------------------

    @classmethod
    def schedule_report(
        cls,
        frequency: str,
        formats: Optional[list[str]] = None,
        output_dir: str = "data/exports",
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Persist a recurring report configuration.

        ``next_run`` is the first fire time of the frequency's cron after *now*.
        """
        if frequency not in VALID_FREQUENCIES:
            raise ValueError(
                "frequency must be one of: " + ", ".join(VALID_FREQUENCIES)
            )
        formats = list(formats or ["csv", "pdf"])
        bad = [f for f in formats if f not in VALID_FORMATS]
        if bad:
            raise ValueError("Unsupported export format(s): " + ", ".join(bad))

        next_run = cls._calc_next_run(frequency, now)
        with get_session() as session:
            schedule = ReportSchedule(
                frequency=frequency,
                cron=FREQUENCY_CRON[frequency],
                formats=formats,
                output_dir=output_dir,
                next_run=next_run,
            )
            session.add(schedule)
            session.flush()
            config = {
                "schedule_id": schedule.id,
                "frequency": frequency,
                "cron": schedule.cron,
                "formats": formats,
                "output_dir": output_dir,
                "next_run": next_run.isoformat(),
            }

        logger.info("Scheduled %s report (next_run=%s)", frequency, next_run)
        return config

    @staticmethod
    def list_schedules(active_only: bool = True) -> list[dict[str, Any]]:
        with get_session() as session:
            query = session.query(ReportSchedule)
            if active_only:
                query = query.filter(ReportSchedule.active.is_(True))
            return [
                {
                    "schedule_id": s.id,
                    "frequency": s.frequency,
                    "cron": s.cron,
                    "formats": list(s.formats or []),
                    "output_dir": s.output_dir,
                    "next_run": s.next_run.isoformat() if s.next_run else None,
                }
                for s in query.order_by(ReportSchedule.id).all()
            ]

    @staticmethod
    def _calc_next_run(frequency: str, now: Optional[datetime] = None) -> datetime:
        """Next fire time of the frequency's cron expression, in UTC."""
        now = now or _utcnow()
        fire = parse_cron(FREQUENCY_CRON[frequency]).get_next_fire_time(None, now)
        return fire.astimezone(timezone.utc)
