"""Status vocabularies for gear, requests, check-ins and activity types.

The backend stores human-readable labels ("Checked Out", "Pending Check-in")
and older rows carry variants ("checked_out", "CHECKED-OUT").  Everything
that compares statuses goes through :func:`normalize_status`.
"""

import re
from typing import Any, Optional


def normalize_status(value: Any) -> str:
    """Fold case, hyphens, underscores and runs of whitespace.

    Examples:
        >>> normalize_status("Checked_Out")
        'checked out'
        >>> normalize_status("  Pending   Check-in ")
        'pending check in'
        >>> normalize_status(None)
        ''
    """
    if value is None:
        return ""
    text = re.sub(r"[-_]+", " ", str(value))
    return re.sub(r"\s+", " ", text).strip().lower()


class GearStatus:
    AVAILABLE = "Available"
    CHECKED_OUT = "Checked Out"
    PARTIALLY_CHECKED_OUT = "Partially Checked Out"
    UNDER_REPAIR = "Under Repair"
    NEEDS_REPAIR = "Needs Repair"
    MAINTENANCE = "Maintenance"
    RETIRED = "Retired"
    LOST = "Lost"
    PENDING_CHECK_IN = "Pending Check-in"
    NEW = "New"
    DAMAGED = "Damaged"

    ALL = (
        AVAILABLE, CHECKED_OUT, PARTIALLY_CHECKED_OUT, UNDER_REPAIR,
        NEEDS_REPAIR, MAINTENANCE, RETIRED, LOST, PENDING_CHECK_IN, NEW,
        DAMAGED,
    )

    # Statuses that count as "in use" for fleet utilization.
    IN_USE = frozenset(
        normalize_status(s) for s in (CHECKED_OUT, PARTIALLY_CHECKED_OUT)
    )

    @classmethod
    def canonical(cls, value: Any) -> Optional[str]:
        """Map a status variant onto its canonical label, or None.

        Examples:
            >>> GearStatus.canonical("checked-out")
            'Checked Out'
            >>> GearStatus.canonical("pending_check_in")
            'Pending Check-in'
        """
        key = normalize_status(value)
        for label in cls.ALL:
            if normalize_status(label) == key:
                return label
        return None


class RequestStatus:
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CHECKED_OUT = "Checked Out"
    PARTIALLY_CHECKED_OUT = "Partially Checked Out"
    CHECKED_IN = "Checked In"
    RETURNED = "Returned"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"

    # Terminal "gear came back" states used for duration averages.
    COMPLETED = frozenset(normalize_status(s) for s in (CHECKED_IN, RETURNED))

    # Loans still out; these can become overdue.
    ACTIVE_LOAN = frozenset(
        normalize_status(s) for s in (CHECKED_OUT, PARTIALLY_CHECKED_OUT, OVERDUE)
    )


def is_pending(value: Any) -> bool:
    """True only when *value* is exactly "pending", ignoring case.

    Examples:
        >>> is_pending("PENDING")
        True
        >>> is_pending("Pending Approval")
        False
    """
    return isinstance(value, str) and value.lower() == "pending"


class CheckinStatus:
    PENDING = "Pending Admin Approval"
    COMPLETED = "Completed"
    REJECTED = "Rejected"


class CheckinCondition:
    GOOD = "Good"
    DAMAGED = "Damaged"

    ALL = (GOOD, DAMAGED)


class ActivityType:
    CHECKOUT = "checkout"
    CHECKIN = "checkin"
    DAMAGE = "damage"

    _ALIASES = {
        "checkout": CHECKOUT,
        "check out": CHECKOUT,
        "checkin": CHECKIN,
        "check in": CHECKIN,
        "damage": DAMAGE,
        "damage report": DAMAGE,
        "damagereport": DAMAGE,
    }

    @classmethod
    def normalize(cls, value: Any) -> Optional[str]:
        """Collapse the activity-type spellings seen in the log.

        Examples:
            >>> ActivityType.normalize("Check-in")
            'checkin'
            >>> ActivityType.normalize("damage_report")
            'damage'
            >>> ActivityType.normalize("Request") is None
            True
        """
        return cls._ALIASES.get(normalize_status(value))


class UserRole:
    ADMIN = "Admin"
    USER = "User"

    @staticmethod
    def is_admin(profile: Optional[dict]) -> bool:
        if not profile:
            return False
        return normalize_status(profile.get("role")) == "admin"
