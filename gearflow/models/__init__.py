"""SQLAlchemy ORM models and backend status vocabularies."""

from gearflow.models.report import Report, ReportSchedule
from gearflow.models.status import (
    ActivityType,
    CheckinCondition,
    CheckinStatus,
    GearStatus,
    RequestStatus,
    UserRole,
    is_pending,
    normalize_status,
)

__all__ = [
    "Report",
    "ReportSchedule",
    "ActivityType",
    "CheckinCondition",
    "CheckinStatus",
    "GearStatus",
    "RequestStatus",
    "UserRole",
    "is_pending",
    "normalize_status",
]
