"""Fold raw backend rows into per-user, per-gear and overall usage statistics."""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

from gearflow.models.status import (
    ActivityType,
    GearStatus,
    RequestStatus,
    normalize_status,
)
from gearflow.modules.reporting.fetcher import ReportSources
from gearflow.utils.helpers import (
    clamp,
    days_between,
    parse_timestamp,
    safe_div,
    span_days,
    to_date,
)

logger = logging.getLogger(__name__)


@dataclass
class UserStats:
    id: str
    name: str
    email: str
    requests: int = 0
    checkouts: int = 0
    checkins: int = 0
    overdue: int = 0
    damages: int = 0
    avg_duration: float = 0.0
    last_activity: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return bool(self.requests or self.checkouts or self.checkins)


@dataclass
class GearStats:
    id: str
    name: str
    category: str
    status: str
    condition: str
    requests: int = 0
    checkouts: int = 0
    checkins: int = 0
    damages: int = 0
    total_days: float = 0.0
    utilization_rate: float = 0.0
    last_used: Optional[str] = None

    @property
    def total_activity(self) -> int:
        return self.requests + self.checkouts + self.checkins + self.damages

    @property
    def is_used(self) -> bool:
        return bool(self.requests or self.checkouts)


@dataclass
class UsageReport:
    """Aggregate for one reporting window."""

    start_date: str
    end_date: str
    summary: str = ""
    total_requests: int = 0
    total_checkouts: int = 0
    total_checkins: int = 0
    total_damages: int = 0
    utilization_rate: float = 0.0
    avg_request_duration: float = 0.0
    overdue_returns: int = 0
    most_active_user: Optional[str] = None
    most_active_gear: Optional[str] = None
    unique_users: int = 0
    total_users: int = 0
    total_gears: int = 0
    user_stats: list[UserStats] = field(default_factory=list)
    gear_stats: list[GearStats] = field(default_factory=list)
    source_errors: dict[str, str] = field(default_factory=dict)

    @property
    def total_activity(self) -> int:
        return self.total_requests + self.total_checkouts + self.total_checkins

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------

def request_gear_ids(request: dict[str, Any]) -> set[str]:
    """All gear ids a request touches: the direct column plus line items."""
    ids = set()
    if request.get("gear_id"):
        ids.add(str(request["gear_id"]))
    for line in request.get("gear_request_gears") or []:
        if isinstance(line, dict) and line.get("gear_id"):
            ids.add(str(line["gear_id"]))
    return ids


def request_duration_days(request: dict[str, Any]) -> Optional[float]:
    """Loan length in days for a returned request, None if not measurable.

    Only requests that reached a returned state and carry both a creation
    and a due date qualify; negative spans clamp to 0.
    """
    if normalize_status(request.get("status")) not in RequestStatus.COMPLETED:
        return None
    created = parse_timestamp(request.get("created_at"))
    due = parse_timestamp(request.get("due_date"))
    if created is None or due is None:
        return None
    return max(days_between(created, due), 0.0)


def is_overdue(request: dict[str, Any], now: datetime) -> bool:
    if normalize_status(request.get("status")) not in RequestStatus.ACTIVE_LOAN:
        return False
    due = parse_timestamp(request.get("due_date"))
    return due is not None and due < now


def _average(values: list[float]) -> float:
    return round(safe_div(sum(values), len(values)), 2)


def _latest(timestamps: Iterable[Any]) -> Optional[str]:
    best_raw = None
    best_dt = None
    for raw in timestamps:
        dt = parse_timestamp(raw)
        if dt is not None and (best_dt is None or dt > best_dt):
            best_dt, best_raw = dt, raw
    return str(best_raw) if best_raw is not None else None


def _count_types(activities: list[dict[str, Any]]) -> dict[str, int]:
    counts = {ActivityType.CHECKOUT: 0, ActivityType.CHECKIN: 0, ActivityType.DAMAGE: 0}
    for act in activities:
        kind = ActivityType.normalize(act.get("activity_type"))
        if kind in counts:
            counts[kind] += 1
    return counts


def _group_by(rows: list[dict[str, Any]], key: str) -> dict[str, list[dict[str, Any]]]:
    grouped: dict[str, list[dict[str, Any]]] = {}
    for row in rows:
        value = row.get(key)
        if value is not None:
            grouped.setdefault(str(value), []).append(row)
    return grouped


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def build_user_stats(
    profiles: list[dict[str, Any]],
    requests: list[dict[str, Any]],
    activities: list[dict[str, Any]],
    now: datetime,
) -> list[UserStats]:
    """Per-profile counters (all profiles, active or not)."""
    requests_by_user = _group_by(requests, "user_id")
    activities_by_user = _group_by(activities, "user_id")

    stats = []
    for profile in profiles:
        uid = str(profile.get("id"))
        user_requests = requests_by_user.get(uid, [])
        user_activities = activities_by_user.get(uid, [])
        counts = _count_types(user_activities)
        durations = [
            d for d in (request_duration_days(r) for r in user_requests) if d is not None
        ]
        stats.append(UserStats(
            id=uid,
            name=profile.get("full_name") or "Unknown User",
            email=profile.get("email") or "No email",
            requests=len(user_requests),
            checkouts=counts[ActivityType.CHECKOUT],
            checkins=counts[ActivityType.CHECKIN],
            overdue=sum(1 for r in user_requests if is_overdue(r, now)),
            damages=counts[ActivityType.DAMAGE],
            avg_duration=_average(durations),
            last_activity=_latest(a.get("created_at") for a in user_activities),
        ))
    return stats


def build_gear_stats(
    gears: list[dict[str, Any]],
    requests: list[dict[str, Any]],
    activities: list[dict[str, Any]],
    report_days: int,
) -> list[GearStats]:
    """Per-gear counters with utilization clamped to [0, 100]."""
    requests_by_gear: dict[str, list[dict[str, Any]]] = {}
    for req in requests:
        for gid in request_gear_ids(req):
            requests_by_gear.setdefault(gid, []).append(req)
    activities_by_gear = _group_by(activities, "gear_id")

    stats = []
    for gear in gears:
        gid = str(gear.get("id"))
        gear_requests = requests_by_gear.get(gid, [])
        gear_activities = activities_by_gear.get(gid, [])
        counts = _count_types(gear_activities)
        total_days = sum(
            d for d in (request_duration_days(r) for r in gear_requests) if d is not None
        )
        utilization = clamp(safe_div(total_days, report_days) * 100)
        stats.append(GearStats(
            id=gid,
            name=gear.get("name") or "Unknown Gear",
            category=gear.get("category") or "Uncategorized",
            status=gear.get("status") or "Unknown",
            condition=gear.get("condition") or "Unknown",
            requests=len(gear_requests),
            checkouts=counts[ActivityType.CHECKOUT],
            checkins=counts[ActivityType.CHECKIN],
            damages=counts[ActivityType.DAMAGE],
            total_days=round(total_days, 2),
            utilization_rate=round(utilization, 2),
            last_used=_latest(a.get("created_at") for a in gear_activities),
        ))
    return stats


def fleet_utilization(gears: list[dict[str, Any]]) -> float:
    """Share of gear currently checked out, in percent."""
    in_use = sum(
        1 for g in gears if normalize_status(g.get("status")) in GearStatus.IN_USE
    )
    return round(clamp(safe_div(in_use, len(gears)) * 100), 2)


def build_summary(
    start: str, end: str, total_requests: int, active_users: int,
    utilization: float, overdue: int,
) -> str:
    return (
        f"During the period from {start} to {end}, there were {total_requests} "
        f"total requests with {active_users} active users. The overall equipment "
        f"utilization rate was {utilization:.1f}%, with {overdue} overdue returns."
    )


def aggregate_report(
    sources: ReportSources,
    start_date: date | str,
    end_date: date | str,
    now: Optional[datetime] = None,
) -> UsageReport:
    """Fold fetched rows into a :class:`UsageReport`.

    Never raises on empty input; every counter simply stays at zero.
    """
    start = to_date(start_date)
    end = to_date(end_date)
    now = now or datetime.now(timezone.utc)
    start_str, end_str = start.isoformat(), end.isoformat()

    requests = sources.requests
    activities = sources.activities

    user_stats = build_user_stats(sources.profiles, requests, activities, now)
    gear_stats = build_gear_stats(sources.gears, requests, activities, span_days(start, end))

    counts = _count_types(activities)
    durations = [d for d in (request_duration_days(r) for r in requests) if d is not None]
    overdue = sum(1 for r in requests if is_overdue(r, now))
    utilization = fleet_utilization(sources.gears)

    active_users = [u for u in user_stats if u.is_active]
    used_gear = [g for g in gear_stats if g.is_used]

    most_active_user = None
    if active_users:
        top = max(active_users, key=lambda u: u.requests)
        most_active_user = top.name if top.requests > 0 else None
    most_active_gear = None
    if used_gear:
        top_gear = max(used_gear, key=lambda g: g.requests)
        most_active_gear = top_gear.name if top_gear.requests > 0 else None

    report = UsageReport(
        start_date=start_str,
        end_date=end_str,
        summary=build_summary(
            start_str, end_str, len(requests), len(active_users), utilization, overdue,
        ),
        total_requests=len(requests),
        total_checkouts=counts[ActivityType.CHECKOUT],
        total_checkins=counts[ActivityType.CHECKIN],
        total_damages=counts[ActivityType.DAMAGE],
        utilization_rate=utilization,
        avg_request_duration=_average(durations),
        overdue_returns=overdue,
        most_active_user=most_active_user,
        most_active_gear=most_active_gear,
        unique_users=len(active_users),
        total_users=len(sources.profiles),
        total_gears=len(sources.gears),
        user_stats=active_users,
        gear_stats=used_gear,
        source_errors=dict(sources.errors),
    )
    logger.info(
        "Aggregated %s..%s: %d requests, %d checkouts, %d active users",
        start_str, end_str, report.total_requests, report.total_checkouts,
        report.unique_users,
    )
    return report
