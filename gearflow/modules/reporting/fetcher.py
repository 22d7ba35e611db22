"""Concurrent retrieval of the four report source collections."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import httpx

from gearflow.exceptions import BackendError
from gearflow.integrations.backend_client import BackendClient

logger = logging.getLogger(__name__)

GEAR_COLUMNS = "*"
PROFILE_COLUMNS = "id, full_name, email, role, created_at"
REQUEST_COLUMNS = "*, gear_request_gears(gear_id, quantity)"
ACTIVITY_COLUMNS = "*"


@dataclass
class ReportSources:
    """Raw rows feeding the aggregator; a failed source is an empty list."""

    gears: list[dict[str, Any]] = field(default_factory=list)
    profiles: list[dict[str, Any]] = field(default_factory=list)
    requests: list[dict[str, Any]] = field(default_factory=list)
    activities: list[dict[str, Any]] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.gears or self.profiles or self.requests or self.activities)


def date_window_filters(start_date: date, end_date: date) -> list[tuple[str, str, str]]:
    """``created_at`` filters covering whole days from start to end."""
    return [
        ("created_at", "gte", start_date.isoformat()),
        ("created_at", "lte", end_date.isoformat() + "T23:59:59"),
    ]


class ReportDataFetcher:
    """Fetch gears, profiles, requests and activity-log rows for a window.

    The four queries are independent and issued together; one failing
    source is logged and replaced by an empty collection so the report
    still renders from whatever did load.
    """

    def __init__(self, client: BackendClient):
        self._client = client

    async def fetch(self, start_date: date, end_date: date) -> ReportSources:
        window = date_window_filters(start_date, end_date)
        logger.info("Fetching report sources for %s..%s", start_date, end_date)

        names = ("gears", "profiles", "requests", "activities")
        results = await asyncio.gather(
            self._safe_select("gears", "gears", GEAR_COLUMNS, None),
            self._safe_select("profiles", "profiles", PROFILE_COLUMNS, None),
            self._safe_select("requests", "gear_requests", REQUEST_COLUMNS, window),
            self._safe_select("activities", "gear_activity_log", ACTIVITY_COLUMNS, window),
        )

        sources = ReportSources()
        for name, (rows, error) in zip(names, results):
            setattr(sources, name, rows)
            if error:
                sources.errors[name] = error

        logger.info(
            "Report sources: %d gears, %d profiles, %d requests, %d activities (%d failed)",
            len(sources.gears), len(sources.profiles), len(sources.requests),
            len(sources.activities), len(sources.errors),
        )
        return sources

    async def _safe_select(
        self,
        source: str,
        table: str,
        columns: str,
        filters,
    ) -> tuple[list[dict[str, Any]], str | None]:
        try:
            rows = await self._client.select(
                table, columns=columns, filters=filters, order="created_at.desc",
            )
            return rows, None
        except (BackendError, httpx.HTTPError) as exc:
            logger.warning("Error fetching %s: %s", source, exc)
            return [], str(exc) or exc.__class__.__name__
