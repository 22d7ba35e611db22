"""Threshold rules turning a usage report into insights and recommendations.

Every rule runs on every report; rules do not suppress one another.
"""

from dataclasses import asdict, dataclass
from typing import Any, Optional

from gearflow.modules.reporting.aggregator import UsageReport
from gearflow.utils.helpers import pct_change, safe_div

HIGH_UTILIZATION_PCT = 80.0
DAMAGE_RATE_THRESHOLD = 0.05
MIN_ACTIVE_USERS = 3
ACTIVITY_SWING_PCT = 20.0
TREND_BAND_PCT = 5.0


@dataclass
class Insight:
    title: str
    description: str
    severity: str  # critical | warning | info | success

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PerformanceMetrics:
    activity_change: float
    utilization_change: float
    user_growth: float
    trend: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def damage_rate(report: UsageReport) -> float:
    """Damage reports as a fraction of total activity."""
    return safe_div(report.total_damages, report.total_activity)


def generate_insights(
    report: UsageReport,
    previous: Optional[UsageReport] = None,
) -> tuple[list[Insight], list[str]]:
    """Apply the fixed rule set.

    Returns:
        ``(insights, recommendations)``, both in rule order.
    """
    insights: list[Insight] = []
    recommendations: list[str] = []

    if report.utilization_rate > HIGH_UTILIZATION_PCT:
        insights.append(Insight(
            "High utilization",
            f"{report.utilization_rate:.1f}% of equipment is currently checked out.",
            "warning",
        ))
        recommendations.append(
            "Expand inventory for the most requested categories to reduce wait times."
        )

    rate = damage_rate(report)
    if rate > DAMAGE_RATE_THRESHOLD:
        insights.append(Insight(
            "Elevated damage rate",
            f"{report.total_damages} damage reports ({rate * 100:.1f}% of activity).",
            "warning",
        ))
        recommendations.append(
            "Schedule equipment handling training for frequent borrowers."
        )

    if report.unique_users < MIN_ACTIVE_USERS:
        insights.append(Insight(
            "Low adoption",
            f"Only {report.unique_users} active users of {report.total_users} in this period.",
            "warning",
        ))
        recommendations.append(
            "Run an onboarding session so staff log checkouts in the system."
        )

    if report.total_checkouts == 0 and report.total_checkins == 0:
        insights.append(Insight(
            "No activity",
            "No checkouts or check-ins were recorded in this period.",
            "warning",
        ))

    if report.total_gears > 0 and report.utilization_rate == 0:
        insights.append(Insight(
            "Zero utilization",
            f"None of the {report.total_gears} items is currently checked out.",
            "info",
        ))

    if report.overdue_returns > 0:
        insights.append(Insight(
            "Overdue returns",
            f"{report.overdue_returns} checked-out items are past their due date.",
            "critical",
        ))
        recommendations.append(
            "Send return reminders for overdue items and follow up with holders."
        )
    else:
        insights.append(Insight(
            "Returns on time",
            "No overdue returns in this period.",
            "success",
        ))

    if previous is not None:
        change = calculate_performance_metrics(report, previous).activity_change
        if change >= ACTIVITY_SWING_PCT:
            insights.append(Insight(
                "Activity growth",
                f"Requests and checkouts rose {change:.1f}% versus the previous period.",
                "info",
            ))
        elif change <= -ACTIVITY_SWING_PCT:
            insights.append(Insight(
                "Activity decline",
                f"Requests and checkouts fell {abs(change):.1f}% versus the previous period.",
                "warning",
            ))

    if not recommendations:
        recommendations.append(
            "Operations are stable; continue monitoring usage as adoption grows."
        )
    return insights, recommendations


def calculate_performance_metrics(
    current: UsageReport,
    previous: UsageReport,
) -> PerformanceMetrics:
    """Compare two reports for adjacent periods.

    ``activity_change`` is the percent delta of requests + checkouts and
    is 0 when the previous period had none.
    """
    current_activity = current.total_requests + current.total_checkouts
    previous_activity = previous.total_requests + previous.total_checkouts
    activity_change = pct_change(current_activity, previous_activity)

    if activity_change > TREND_BAND_PCT:
        trend = "increasing"
    elif activity_change < -TREND_BAND_PCT:
        trend = "decreasing"
    else:
        trend = "stable"

    return PerformanceMetrics(
        activity_change=activity_change,
        utilization_change=round(current.utilization_rate - previous.utilization_rate, 2),
        user_growth=pct_change(current.unique_users, previous.unique_users),
        trend=trend,
    )
