from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from gearflow.api.deps import get_current_user, get_report_engine, require_admin
from gearflow.api.schemas import envelope
from gearflow.exceptions import RequestValidationError
from gearflow.modules.reporting.report_engine import ReportEngine
from gearflow.modules.reporting.report_renderer import ReportRenderer
from gearflow.utils.helpers import to_date

router = APIRouter(prefix="/reports", tags=["reports"])

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "pdf": "application/pdf",
    "json": "application/json",
    "html": "text/html; charset=utf-8",
}


def _window(start: Optional[str], end: Optional[str]) -> tuple[date, date]:
    """Parse the query window; defaults to the last seven days."""
    try:
        end_date = to_date(end) if end else datetime.now(timezone.utc).date()
        start_date = to_date(start) if start else end_date - timedelta(days=6)
    except ValueError as exc:
        raise RequestValidationError(str(exc)) from exc
    if end_date < start_date:
        raise RequestValidationError("end must not be before start")
    return start_date, end_date


@router.get("/weekly")
async def weekly_report(
    days: int = Query(default=7, ge=1, le=365),
    _user: dict = Depends(get_current_user),
    engine: ReportEngine = Depends(get_report_engine),
):
    return envelope(await engine.fetch_weekly_activity(days=days))


@router.get("/usage")
async def usage_report(
    start: Optional[str] = Query(default=None),
    end: Optional[str] = Query(default=None),
    compare: bool = Query(default=True),
    _admin: dict = Depends(require_admin),
    engine: ReportEngine = Depends(get_report_engine),
):
    start_date, end_date = _window(start, end)
    bundle = await engine.generate_report(start_date, end_date, compare=compare)
    return envelope(bundle.to_dict())


@router.get("/usage/export")
async def export_usage_report(
    start: Optional[str] = Query(default=None),
    end: Optional[str] = Query(default=None),
    fmt: str = Query(default="csv", alias="format", pattern="^(csv|pdf|json|html)$"),
    _admin: dict = Depends(require_admin),
    engine: ReportEngine = Depends(get_report_engine),
):
    start_date, end_date = _window(start, end)
    bundle = await engine.generate_report(start_date, end_date, compare=True)
    renderer = ReportRenderer()
    filename = renderer.export_filename(bundle.report, fmt)
    return Response(
        content=renderer.render(bundle, fmt),
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": 'attachment; filename="' + filename + '"'},
    )
