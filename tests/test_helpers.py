"""Tests for date/number helpers and status vocabularies."""

from datetime import date, datetime, timezone

import pytest

from gearflow.models.status import (
    ActivityType,
    GearStatus,
    UserRole,
    is_pending,
    normalize_status,
)
from gearflow.utils.helpers import (
    clamp,
    days_between,
    parse_timestamp,
    pct_change,
    previous_period,
    safe_div,
    span_days,
    to_date,
)


class TestTimestamps:
    """parse_timestamp / to_date behaviour."""

    def test_parses_trailing_z(self):
        assert parse_timestamp("2024-03-01T10:00:00Z") == datetime(
            2024, 3, 1, 10, 0, tzinfo=timezone.utc
        )

    def test_naive_is_utc(self):
        assert parse_timestamp("2024-03-01T10:00:00").tzinfo == timezone.utc

    def test_offset_converted_to_utc(self):
        ts = parse_timestamp("2024-03-01T12:00:00+02:00")
        assert ts.hour == 10

    @pytest.mark.parametrize("value", [None, "", "garbage", "2024-13-45"])
    def test_unparseable_is_none(self, value):
        assert parse_timestamp(value) is None

    def test_date_object(self):
        assert parse_timestamp(date(2024, 3, 1)).isoformat() == "2024-03-01T00:00:00+00:00"

    def test_to_date_from_datetime(self):
        assert to_date(datetime(2024, 3, 1, 23, 59)) == date(2024, 3, 1)

    def test_to_date_invalid(self):
        with pytest.raises(ValueError):
            to_date("yesterday")


class TestPeriods:

    def test_span_inclusive(self):
        assert span_days(date(2024, 3, 1), date(2024, 3, 1)) == 1

    def test_previous_period_same_length(self):
        start, end = previous_period(date(2024, 3, 1), date(2024, 3, 31))
        assert end == date(2024, 2, 29)
        assert (end - start).days == 30

    def test_days_between_fractional(self):
        a = datetime(2024, 3, 1, tzinfo=timezone.utc)
        b = datetime(2024, 3, 2, 12, tzinfo=timezone.utc)
        assert days_between(a, b) == pytest.approx(1.5)


class TestNumbers:

    def test_safe_div_zero(self):
        assert safe_div(5, 0) == 0.0

    def test_clamp(self):
        assert clamp(150) == 100
        assert clamp(-3) == 0

    def test_pct_change_zero_previous_is_zero(self):
        assert pct_change(12, 0) == 0.0

    def test_pct_change_decline(self):
        assert pct_change(5, 10) == -50.0


class TestStatuses:

    @pytest.mark.parametrize("value", ["pending", "Pending", "PENDING"])
    def test_is_pending_case_insensitive(self, value):
        assert is_pending(value)

    @pytest.mark.parametrize("value", ["Pending Approval", " pending", None, "Approved"])
    def test_is_pending_exact(self, value):
        assert not is_pending(value)

    def test_normalize_status(self):
        assert normalize_status("CHECKED-OUT") == normalize_status("checked_out")

    def test_gear_status_canonical(self):
        assert GearStatus.canonical("NEEDS_REPAIR") == GearStatus.NEEDS_REPAIR
        assert GearStatus.canonical("unknown") is None

    @pytest.mark.parametrize("raw,expected", [
        ("Checkout", ActivityType.CHECKOUT),
        ("check_out", ActivityType.CHECKOUT),
        ("Check-in", ActivityType.CHECKIN),
        ("Damage Report", ActivityType.DAMAGE),
        ("Booking", None),
    ])
    def test_activity_type_aliases(self, raw, expected):
        assert ActivityType.normalize(raw) == expected

    def test_admin_role(self):
        assert UserRole.is_admin({"role": "admin"})
        assert not UserRole.is_admin({"role": "User"})
        assert not UserRole.is_admin(None)
