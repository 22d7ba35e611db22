"""Main application orchestrator for GearFlow."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

from gearflow.config import BackendSettings, get_setting, load_config, load_environment

logger = logging.getLogger(__name__)


class GearFlowApp:
    """Central application class that wires configuration, storage and jobs.

    Usage::

        app = GearFlowApp()
        app.initialize()
        app.run_pipeline("report", start="2024-03-01", end="2024-03-07")
        status = app.get_status()
    """

    def __init__(
        self,
        config_path: str = "config/settings.yaml",
        env_path: str = ".env",
    ):
        self._config_path = config_path
        self._env_path = env_path
        self.config: dict[str, Any] = {}
        self._initialized = False
        self._scheduler = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, with_scheduler: bool = True) -> None:
        """Load configuration and environment, create directories, init the DB."""
        if self._initialized:
            return

        load_environment(self._env_path)
        self.config = load_config(self._config_path)

        for dir_key in ("data_dir", "export_dir"):
            dir_path = get_setting(self.config, "app." + dir_key, "")
            if dir_path:
                Path(dir_path).mkdir(parents=True, exist_ok=True)

        from gearflow.database import init_db
        init_db(
            database_url=get_setting(self.config, "database.url"),
            echo=get_setting(self.config, "database.echo", False),
        )

        if with_scheduler:
            from gearflow.scheduler import ReportScheduler
            self._scheduler = ReportScheduler(
                job_store_url=get_setting(
                    self.config, "scheduler.job_store", "sqlite:///data/scheduler_jobs.db",
                ),
                timezone=get_setting(self.config, "scheduler.timezone", "UTC"),
                max_workers=get_setting(self.config, "scheduler.max_concurrent_jobs", 2),
            )

        self._initialized = True
        logger.info("GearFlowApp initialised.")

    @property
    def scheduler(self):
        self._ensure_initialized()
        return self._scheduler

    @property
    def export_dir(self) -> str:
        return get_setting(self.config, "app.export_dir", "data/exports")

    @property
    def branding(self) -> dict[str, Any]:
        return dict(get_setting(self.config, "branding", {}) or {})

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def run_pipeline(self, pipeline: str, **kwargs: Any) -> dict[str, Any]:
        """Route and execute a named pipeline.

        Args:
            pipeline: One of report, weekly, reminders.
            **kwargs: Pipeline-specific parameters.
        """
        self._ensure_initialized()
        logger.info("Running pipeline: %s (kwargs=%s)", pipeline, kwargs)

        dispatch = {
            "report": self._run_report,
            "weekly": self._run_weekly,
            "reminders": self._run_reminders,
        }
        handler = dispatch.get(pipeline)
        if handler is None:
            raise ValueError(f"Unknown pipeline: {pipeline!r}")
        return asyncio.run(handler(**kwargs))

    async def _run_report(
        self,
        start: str,
        end: str,
        formats: Optional[list[str]] = None,
        output_dir: Optional[str] = None,
        compare: bool = True,
    ) -> dict[str, Any]:
        from gearflow.integrations.backend_client import BackendClient
        from gearflow.modules.reporting.report_engine import ReportEngine
        from gearflow.modules.reporting.report_renderer import ReportRenderer

        async with BackendClient.from_env() as client:
            engine = ReportEngine(client)
            bundle = await engine.generate_report(start, end, compare=compare)

        renderer = ReportRenderer(
            branding=self.branding,
            delimiter=get_setting(self.config, "reports.csv_delimiter", ","),
        )
        out_dir = output_dir or self.export_dir
        files = [renderer.export(bundle, fmt, out_dir) for fmt in (formats or [])]
        bundle.report_id = engine.save_report(bundle, file_path=files[0] if files else None)
        return {"bundle": bundle, "files": files}

    async def _run_weekly(self, days: int = 7) -> dict[str, Any]:
        from gearflow.integrations.backend_client import BackendClient
        from gearflow.modules.reporting.report_engine import ReportEngine

        async with BackendClient.from_env() as client:
            return await ReportEngine(client).fetch_weekly_activity(days=days)

    async def _run_reminders(self) -> dict[str, Any]:
        from gearflow.integrations.backend_client import BackendClient
        from gearflow.modules.notifications.service import NotificationService

        async with BackendClient.from_env() as client:
            sent = await NotificationService(client).send_overdue_reminders()
        return {"sent": sent}

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Return health status of all major components."""
        self._ensure_initialized()
        status: dict[str, dict[str, Any]] = {}

        try:
            from gearflow.database import archive_counts
            counts = archive_counts()
            status["database"] = {
                "status": "ok",
                "details": f"{counts['reports']} reports, {counts['schedules']} schedules",
            }
        except Exception as exc:
            status["database"] = {"status": "error", "details": str(exc)}

        if self._scheduler is not None:
            jobs = self._scheduler.list_jobs()
            running = "running" if self._scheduler.is_running else "stopped"
            status["scheduler"] = {"status": "ok", "details": f"{running}, {len(jobs)} jobs"}
        else:
            status["scheduler"] = {"status": "warning", "details": "not configured"}

        settings = BackendSettings.from_env()
        if settings.is_configured:
            key_kind = "service role" if settings.service_key else "anon"
            status["backend"] = {"status": "ok", "details": f"{settings.url} ({key_kind} key)"}
        else:
            status["backend"] = {
                "status": "warning",
                "details": "SUPABASE_URL / SUPABASE_ANON_KEY not set",
            }

        status["config"] = {
            "status": "ok" if self.config else "warning",
            "details": f"{len(self.config)} sections loaded" if self.config else "no config",
        }
        return status

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("Call initialize() before using the application.")
