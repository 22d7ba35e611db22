"""Recurring report scheduler built on APScheduler with a SQLite job store."""

import asyncio
import logging
from datetime import datetime, timezone as dt_timezone
from pathlib import Path
from typing import Any, Callable, Optional

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)


async def _generate_and_export(
    output_dir: str, formats: list[str], days: int,
) -> list[str]:
    from gearflow.integrations.backend_client import BackendClient
    from gearflow.modules.reporting.report_engine import ReportEngine
    from gearflow.modules.reporting.report_renderer import ReportRenderer

    async with BackendClient.from_env() as client:
        engine = ReportEngine(client)
        bundle = await engine.generate_weekly_report(days=days)

    renderer = ReportRenderer()
    paths = [renderer.export(bundle, fmt, output_dir) for fmt in formats]
    engine.save_report(bundle, file_path=paths[0] if paths else None)
    return paths


def run_scheduled_report(
    output_dir: str = "data/exports",
    formats: Optional[list[str]] = None,
    days: int = 7,
) -> list[str]:
    """Job entry point: generate the trailing-window report and export it.

    Module-level so the persistent job store can reference it by name.
    """
    formats = list(formats or ["csv", "pdf"])
    logger.info("Scheduled report run: last %d days -> %s (%s)", days, output_dir, formats)
    paths = asyncio.run(_generate_and_export(output_dir, formats, days))
    logger.info("Scheduled report wrote %d files", len(paths))
    return paths


def parse_cron(cron: str, timezone: str = "UTC") -> CronTrigger:
    """Build a trigger from a 5-field cron expression (min hour day month weekday)."""
    parts = cron.strip().split()
    if len(parts) != 5:
        raise ValueError(f"Cron expression must have 5 fields, got {len(parts)}: {cron!r}")
    return CronTrigger(
        minute=parts[0],
        hour=parts[1],
        day=parts[2],
        month=parts[3],
        day_of_week=parts[4],
        timezone=timezone,
    )


def _job_info(job) -> dict[str, Any]:
    next_run = getattr(job, "next_run_time", None)
    return {
        "id": job.id,
        "name": job.name,
        "trigger": str(job.trigger),
        "next_run_time": next_run.isoformat() if next_run else None,
        "kwargs": dict(job.kwargs),
    }


class ReportScheduler:
    """Wrapper around APScheduler for recurring report exports.

    Usage::

        sched = ReportScheduler()
        sched.start()
        sched.schedule_report("weekly_usage", cron="0 7 * * mon", formats=["pdf"])
        sched.list_jobs()
        sched.stop()

    Pass ``job_store_url=None`` for an in-memory store.
    """

    def __init__(
        self,
        job_store_url: Optional[str] = "sqlite:///data/scheduler_jobs.db",
        timezone: str = "UTC",
        max_workers: int = 2,
    ):
        if job_store_url and job_store_url.startswith("sqlite:///"):
            db_path = job_store_url.replace("sqlite:///", "")
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        if job_store_url:
            jobstore = SQLAlchemyJobStore(url=job_store_url)
        else:
            jobstore = MemoryJobStore()

        self._scheduler = BackgroundScheduler(
            jobstores={"default": jobstore},
            executors={"default": ThreadPoolExecutor(max_workers=max_workers)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 3600,
            },
            timezone=timezone,
        )
        self._timezone = timezone
        self._running = False
        logger.info(
            "ReportScheduler initialized (store=%s, tz=%s, workers=%d)",
            job_store_url or "memory", timezone, max_workers,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, paused: bool = False) -> None:
        if self._running:
            logger.warning("Scheduler is already running.")
            return
        self._scheduler.start(paused=paused)
        self._running = True
        logger.info("Scheduler started.")

    def stop(self, wait: bool = True) -> None:
        if not self._running:
            return
        self._scheduler.shutdown(wait=wait)
        self._running = False
        logger.info("Scheduler stopped.")

    def add_job(
        self,
        job_id: str,
        func: Callable,
        cron: str,
        args: Optional[tuple] = None,
        kwargs: Optional[dict[str, Any]] = None,
        replace_existing: bool = True,
    ) -> None:
        """Add or replace a cron-triggered job."""
        self._scheduler.add_job(
            func,
            trigger=parse_cron(cron, self._timezone),
            id=job_id,
            name=job_id,
            args=args or (),
            kwargs=kwargs or {},
            replace_existing=replace_existing,
        )
        logger.info("Job added: %s [%s]", job_id, cron)

    def schedule_report(
        self,
        job_id: str,
        cron: str,
        formats: Optional[list[str]] = None,
        output_dir: str = "data/exports",
        days: int = 7,
    ) -> None:
        """Schedule :func:`run_scheduled_report` on a cron expression."""
        self.add_job(
            job_id,
            run_scheduled_report,
            cron,
            kwargs={
                "output_dir": output_dir,
                "formats": list(formats or ["csv", "pdf"]),
                "days": days,
            },
        )

    def remove_job(self, job_id: str) -> bool:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            logger.warning("Job not found: %s", job_id)
            return False
        logger.info("Job removed: %s", job_id)
        return True

    def list_jobs(self) -> list[dict[str, Any]]:
        return [_job_info(job) for job in self._scheduler.get_jobs()]

    def get_job(self, job_id: str) -> Optional[dict[str, Any]]:
        job = self._scheduler.get_job(job_id)
        return _job_info(job) if job is not None else None

    def pause_job(self, job_id: str) -> None:
        self._scheduler.pause_job(job_id)
        logger.info("Job paused: %s", job_id)

    def resume_job(self, job_id: str) -> None:
        self._scheduler.resume_job(job_id)
        logger.info("Job resumed: %s", job_id)

    def run_job_now(self, job_id: str) -> None:
        """Move the job's next run to now (its schedule continues afterwards)."""
        if self._scheduler.get_job(job_id) is None:
            raise ValueError(f"Job not found: {job_id}")
        self._scheduler.modify_job(job_id, next_run_time=datetime.now(dt_timezone.utc))
        logger.info("Job triggered for immediate execution: %s", job_id)
