"""Gear catalogue queries for the request form and the admin inventory."""

import logging
from typing import Any, Optional

from gearflow.exceptions import NotFoundError, RequestValidationError
from gearflow.integrations.backend_client import BackendClient
from gearflow.models.status import GearStatus
from gearflow.utils.helpers import to_date

logger = logging.getLogger(__name__)

TABLE = "gears"
MAX_PAGE_SIZE = 100


def _wanted(value: Optional[str]) -> Optional[str]:
    """Filter value, or None for blank and the "all" sentinel."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == "all":
        return None
    return value


class GearService:
    """Read access to the ``gears`` table."""

    def __init__(self, client: BackendClient):
        self._client = client

    async def list_gears(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> dict[str, Any]:
        """One page of gear ordered by name, plus the filtered total.

        Args:
            status: Gear status; variants such as ``checked_out`` are accepted.
            category: Exact category name.
            search: Case-insensitive substring of the gear name.
            page: 1-based page number.
            page_size: Rows per page, at most ``MAX_PAGE_SIZE``.
        """
        if page < 1:
            raise RequestValidationError("page must be at least 1")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise RequestValidationError(
                "page_size must be between 1 and {0}".format(MAX_PAGE_SIZE)
            )

        filters = []
        status = _wanted(status)
        if status:
            filters.append(("status", "eq", GearStatus.canonical(status) or status))
        category = _wanted(category)
        if category:
            filters.append(("category", "eq", category))
        search = _wanted(search)
        if search:
            filters.append(("name", "ilike", "%" + search + "%"))

        total = await self._client.count(TABLE, filters=filters)
        rows = await self._client.select(
            TABLE, filters=filters, order="name.asc",
            limit=page_size, offset=(page - 1) * page_size,
        )
        return {"items": rows, "total": total, "page": page, "page_size": page_size}

    async def get_gear(self, gear_id: str) -> dict[str, Any]:
        row = await self._client.select_one(TABLE, filters=[("id", "eq", gear_id)])
        if row is None:
            raise NotFoundError("Gear not found")
        return row

    async def list_categories(self) -> list[str]:
        rows = await self._client.select(TABLE, columns="category")
        return sorted({r["category"] for r in rows if r.get("category")})

    async def popular_gears(self, start: str, end: str, limit: int = 10) -> list[dict[str, Any]]:
        """Most requested gear between two ISO dates, via ``get_popular_gears``."""
        try:
            start_date, end_date = to_date(start), to_date(end)
        except ValueError as exc:
            raise RequestValidationError(str(exc)) from exc
        if start_date > end_date:
            raise RequestValidationError("start_date must not be after end_date")
        rows = await self._client.rpc("get_popular_gears", {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "limit_count": limit,
        })
        logger.debug("Popular gears %s..%s: %d rows", start_date, end_date, len(rows or []))
        return list(rows or [])
