"""Tests for the gear request workflow."""

from datetime import datetime, timezone

import pytest

from gearflow.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    RequestValidationError,
)
from gearflow.modules.requests.service import (
    RequestService,
    available_units,
    calculate_due_date,
)

APPROVED_AT = datetime(2024, 3, 2, 10, 0, tzinfo=timezone.utc)


class TestDueDate:

    @pytest.mark.parametrize("duration,days", [
        ("24hours", 1), ("72hours", 3), ("2 weeks", 14), ("month", 30),
        ("1year", 365), ("  1 Week ", 7), ("forever", 7), (None, 7),
    ])
    def test_calculate_due_date(self, duration, days):
        due = calculate_due_date(duration, APPROVED_AT)
        assert (due - APPROVED_AT).days == days

    @pytest.mark.parametrize("gear,units", [
        ({"status": "Available"}, 1),
        ({"status": "available", "quantity": 5}, 5),
        ({"status": "Partially Checked Out", "quantity": 5, "available_quantity": 2}, 2),
        ({"status": "Checked Out", "quantity": 1, "available_quantity": 1}, 0),
        ({"status": "Needs Repair"}, 0),
    ])
    def test_available_units(self, gear, units):
        assert available_units(gear) == units


class TestCreate:
    """Users file requests for one or more pieces of gear."""

    @pytest.mark.asyncio
    async def test_create_inserts_request_and_lines(self, fake_backend):
        request = await RequestService(fake_backend).create_request(
            "user-1",
            [{"gear_id": "gear-3", "quantity": 1}, {"gear_id": "gear-2"}],
            "Podcast recording",
            expected_duration="72hours",
            destination="Studio B",
        )
        assert request["status"] == "Pending"
        assert request["expected_duration"] == "72hours"
        stored = fake_backend.find("gear_requests", request["id"])
        assert stored["user_id"] == "user-1"
        assert stored["destination"] == "Studio B"

        lines = [r for r in fake_backend.rows("gear_request_gears")
                 if r["gear_request_id"] == request["id"]]
        assert sorted((r["gear_id"], r["quantity"]) for r in lines) == [
            ("gear-2", 1), ("gear-3", 1),
        ]
        kinds = [p["p_activity_type"] for f, p in fake_backend.rpc_calls]
        assert kinds == ["Request", "Request"]

        admin_notes = [n for n in fake_backend.rows("notifications")
                       if n["title"] == "New Gear Request"]
        assert [n["user_id"] for n in admin_notes] == ["admin-1"]
        assert "Microphone" in admin_notes[0]["message"]

    @pytest.mark.asyncio
    async def test_duplicate_items_merge(self, fake_backend):
        fake_backend.find("gears", "gear-2").update({"quantity": 5, "available_quantity": 5})
        request = await RequestService(fake_backend).create_request(
            "user-1", [{"gear_id": "gear-2", "quantity": 2}, {"gear_id": "gear-2", "quantity": 1}],
            "Two shoots",
        )
        assert request["gear_request_gears"] == [{"gear_id": "gear-2", "quantity": 3}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("items,reason,duration", [
        ([], "Shoot", "1 week"),
        ([{"gear_id": "gear-2", "quantity": 0}], "Shoot", "1 week"),
        ([{"gear_id": ""}], "Shoot", "1 week"),
        ([{"gear_id": "gear-2"}], "   ", "1 week"),
        ([{"gear_id": "gear-2"}], "Shoot", "forever"),
    ])
    async def test_invalid_input(self, fake_backend, items, reason, duration):
        with pytest.raises(RequestValidationError):
            await RequestService(fake_backend).create_request(
                "user-1", items, reason, expected_duration=duration,
            )
        assert len(fake_backend.rows("gear_requests")) == 3

    @pytest.mark.asyncio
    async def test_unknown_gear(self, fake_backend):
        with pytest.raises(NotFoundError):
            await RequestService(fake_backend).create_request(
                "user-1", [{"gear_id": "gear-404"}], "Shoot",
            )

    @pytest.mark.asyncio
    async def test_gear_already_out(self, fake_backend):
        with pytest.raises(ConflictError, match="Camera"):
            await RequestService(fake_backend).create_request(
                "user-1", [{"gear_id": "gear-1"}], "Shoot",
            )
        assert len(fake_backend.rows("gear_request_gears")) == 3


class TestCancel:
    """Cancellation is only allowed for the owner's pending requests."""

    @pytest.mark.asyncio
    async def test_cancel_pending(self, fake_backend):
        result = await RequestService(fake_backend).cancel_request("req-1", "user-1")
        assert result == {"id": "req-1", "status": "Cancelled"}
        assert fake_backend.rpc_calls == [("cancel_gear_request", {"p_request_id": "req-1"})]
        assert fake_backend.find("gear_requests", "req-1")["status"] == "Cancelled"

    @pytest.mark.asyncio
    async def test_cancel_uppercase_pending(self, fake_backend):
        fake_backend.find("gear_requests", "req-1")["status"] = "PENDING"
        result = await RequestService(fake_backend).cancel_request("req-1", "user-1")
        assert result["status"] == "Cancelled"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["Approved", "Checked Out", "Pending Approval", None])
    async def test_cancel_non_pending_rejected(self, fake_backend, status):
        fake_backend.find("gear_requests", "req-1")["status"] = status
        with pytest.raises(RequestValidationError, match="Only pending requests"):
            await RequestService(fake_backend).cancel_request("req-1", "user-1")
        assert fake_backend.rpc_calls == []
        assert fake_backend.find("gear_requests", "req-1")["status"] == status

    @pytest.mark.asyncio
    async def test_cancel_someone_elses_request(self, fake_backend):
        with pytest.raises(PermissionDeniedError):
            await RequestService(fake_backend).cancel_request("req-1", "user-2")
        assert fake_backend.rpc_calls == []

    @pytest.mark.asyncio
    async def test_cancel_unknown_request(self, fake_backend):
        with pytest.raises(NotFoundError):
            await RequestService(fake_backend).cancel_request("nope", "user-1")


class TestListing:

    @pytest.mark.asyncio
    async def test_user_requests_newest_first(self, fake_backend):
        rows = await RequestService(fake_backend).list_user_requests("user-1")
        assert [r["id"] for r in rows] == ["req-1", "req-3"]
        assert rows[0]["gear_request_gears"] == [{"gear_id": "gear-2", "quantity": 1}]

    @pytest.mark.asyncio
    async def test_list_by_status(self, fake_backend):
        rows = await RequestService(fake_backend).list_requests(status="Checked Out")
        assert [r["id"] for r in rows] == ["req-2"]


class TestApproveReject:

    @pytest.mark.asyncio
    async def test_approve_checks_out_gear(self, fake_backend):
        result = await RequestService(fake_backend).approve_request(
            "req-1", "admin-1", now=APPROVED_AT,
        )
        assert result["status"] == "Checked Out"
        assert result["approved_by"] == "admin-1"
        assert result["due_date"] == "2024-03-04T10:00:00+00:00"

        gear = fake_backend.find("gears", "gear-2")
        assert gear["status"] == "Checked Out"
        assert gear["checked_out_to"] == "user-1"
        assert gear["current_request_id"] == "req-1"

        log_calls = [p for f, p in fake_backend.rpc_calls if f == "log_gear_activity"]
        assert len(log_calls) == 1
        assert log_calls[0]["p_activity_type"] == "Checkout"
        assert log_calls[0]["p_gear_id"] == "gear-2"

        notes = [n for n in fake_backend.rows("notifications") if n["title"] == "Gear Request Approved"]
        assert notes and notes[0]["user_id"] == "user-1"
        assert notes[0]["is_read"] is False

    @pytest.mark.asyncio
    async def test_approve_gear_held_by_another_user(self, fake_backend):
        fake_backend.rows("gear_request_gears").append(
            {"id": "line-4", "gear_request_id": "req-1", "gear_id": "gear-1", "quantity": 1}
        )
        with pytest.raises(ConflictError, match="Not enough available units for Camera"):
            await RequestService(fake_backend).approve_request("req-1", "admin-1")

        camera = fake_backend.find("gears", "gear-1")
        assert camera["checked_out_to"] == "user-2"
        assert camera["current_request_id"] == "req-2"
        assert fake_backend.find("gears", "gear-2")["status"] == "Available"
        assert fake_backend.find("gear_requests", "req-1")["status"] == "Pending"
        assert fake_backend.rpc_calls == []

    @pytest.mark.asyncio
    async def test_approve_more_units_than_free(self, fake_backend):
        fake_backend.find("gears", "gear-2").update({"quantity": 4, "available_quantity": 1})
        fake_backend.find("gear_request_gears", "line-1")["quantity"] = 2
        with pytest.raises(ConflictError, match="Requested 2, available 1"):
            await RequestService(fake_backend).approve_request("req-1", "admin-1")

    @pytest.mark.asyncio
    async def test_approve_part_of_shared_gear(self, fake_backend):
        fake_backend.find("gears", "gear-2").update({"quantity": 4, "available_quantity": 4})
        fake_backend.find("gear_request_gears", "line-1")["quantity"] = 3
        await RequestService(fake_backend).approve_request("req-1", "admin-1")

        gear = fake_backend.find("gears", "gear-2")
        assert gear["available_quantity"] == 1
        assert gear["status"] == "Partially Checked Out"

    @pytest.mark.asyncio
    async def test_approve_non_pending(self, fake_backend):
        with pytest.raises(RequestValidationError, match="approved"):
            await RequestService(fake_backend).approve_request("req-2", "admin-1")

    @pytest.mark.asyncio
    async def test_approve_without_items(self, fake_backend):
        fake_backend.tables["gear_request_gears"] = []
        with pytest.raises(RequestValidationError, match="no equipment"):
            await RequestService(fake_backend).approve_request("req-1", "admin-1")

    @pytest.mark.asyncio
    async def test_reject_with_reason(self, fake_backend):
        result = await RequestService(fake_backend).reject_request(
            "req-1", "admin-1", "Out of stock",
        )
        assert result["status"] == "Rejected"
        assert result["rejection_reason"] == "Out of stock"
        note = next(n for n in fake_backend.rows("notifications")
                    if n["title"] == "Gear Request Rejected")
        assert note["message"].endswith("Reason: Out of stock")
        assert fake_backend.find("gears", "gear-2")["status"] == "Available"
