"""Daily activity buckets for trend charts."""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from gearflow.models.status import ActivityType
from gearflow.utils.helpers import parse_timestamp

logger = logging.getLogger(__name__)


@dataclass
class TrendPoint:
    date: str
    requests: int = 0
    checkouts: int = 0
    checkins: int = 0
    damages: int = 0

    @property
    def total(self) -> int:
        return self.requests + self.checkouts + self.checkins + self.damages

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


_ACTIVITY_FIELDS = {
    ActivityType.CHECKOUT: "checkouts",
    ActivityType.CHECKIN: "checkins",
    ActivityType.DAMAGE: "damages",
}


def _day_key(row: dict[str, Any]) -> str | None:
    ts = parse_timestamp(row.get("created_at"))
    return ts.date().isoformat() if ts is not None else None


def bucket_by_day(
    requests: Iterable[dict[str, Any]],
    activities: Iterable[dict[str, Any]],
) -> list[TrendPoint]:
    """Group requests and activity events by calendar day.

    Only days with at least one event appear (no zero-fill), sorted
    ascending.  Rows without a usable ``created_at`` are skipped.
    """
    buckets: dict[str, TrendPoint] = {}
    skipped = 0

    for req in requests:
        key = _day_key(req)
        if key is None:
            skipped += 1
            continue
        buckets.setdefault(key, TrendPoint(date=key)).requests += 1

    for act in activities:
        field_name = _ACTIVITY_FIELDS.get(ActivityType.normalize(act.get("activity_type")))
        if field_name is None:
            continue
        key = _day_key(act)
        if key is None:
            skipped += 1
            continue
        point = buckets.setdefault(key, TrendPoint(date=key))
        setattr(point, field_name, getattr(point, field_name) + 1)

    if skipped:
        logger.debug("Skipped %d rows without a usable timestamp", skipped)
    return [buckets[k] for k in sorted(buckets)]
