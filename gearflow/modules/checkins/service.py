"""Check-in workflow: users return gear, admins confirm or reject the return."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from gearflow.exceptions import NotFoundError, PermissionDeniedError, RequestValidationError
from gearflow.integrations.backend_client import BackendClient
from gearflow.models.status import (
    CheckinCondition,
    CheckinStatus,
    GearStatus,
    RequestStatus,
    normalize_status,
)
from gearflow.modules.notifications.service import NotificationService
from gearflow.modules.reporting.aggregator import request_gear_ids

logger = logging.getLogger(__name__)

TABLE = "checkins"

# Gear states a borrower can hand back from.
LOANED_GEAR = frozenset(
    normalize_status(s) for s in (GearStatus.CHECKED_OUT, GearStatus.PARTIALLY_CHECKED_OUT)
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CheckinService:
    """Submit, approve and reject equipment check-ins."""

    def __init__(
        self,
        client: BackendClient,
        notifications: Optional[NotificationService] = None,
    ):
        self._client = client
        self._notifications = notifications or NotificationService(client)

    async def get_checkin(self, checkin_id: str) -> dict[str, Any]:
        row = await self._client.select_one(TABLE, filters=[("id", "eq", checkin_id)])
        if row is None:
            raise NotFoundError("Check-in not found")
        return row

    async def list_pending(self) -> list[dict[str, Any]]:
        return await self._client.select(
            TABLE,
            filters=[("status", "eq", CheckinStatus.PENDING)],
            order="checkin_date.desc",
        )

    async def _gear_name(self, gear_id: str) -> str:
        gear = await self._client.select_one(
            "gears", columns="id, name", filters=[("id", "eq", gear_id)],
        )
        return (gear or {}).get("name") or "your equipment"

    async def _active_loan(self, user_id: str, gear_id: str) -> Optional[dict[str, Any]]:
        """The user's open request that lists *gear_id*, if any."""
        loans = await self._client.select(
            "gear_requests",
            columns="id, status, gear_id, gear_request_gears(gear_id, quantity)",
            filters=[("user_id", "eq", user_id)],
            order="created_at.desc",
        )
        for loan in loans:
            if (normalize_status(loan.get("status")) in RequestStatus.ACTIVE_LOAN
                    and str(gear_id) in request_gear_ids(loan)):
                return loan
        return None

    async def submit_checkin(
        self,
        user_id: str,
        gear_id: str,
        condition: str = CheckinCondition.GOOD,
        notes: str = "",
        request_id: Optional[str] = None,
        quantity: int = 1,
    ) -> dict[str, Any]:
        """Record a return awaiting admin approval.

        Raises:
            RequestValidationError: Unknown condition, damage without a description,
                or gear that is not out on loan.
            PermissionDeniedError: The gear is checked out to someone else.
        """
        if condition not in CheckinCondition.ALL:
            raise RequestValidationError(
                "condition must be one of: " + ", ".join(CheckinCondition.ALL)
            )
        notes = (notes or "").strip()
        damaged = condition == CheckinCondition.DAMAGED
        if damaged and not notes:
            raise RequestValidationError("Damaged check-ins require a description of the damage.")
        if quantity < 1:
            raise RequestValidationError("quantity must be at least 1")

        gear = await self._client.select_one(
            "gears",
            columns="id, name, status, checked_out_to, current_request_id",
            filters=[("id", "eq", gear_id)],
        )
        if gear is None:
            raise NotFoundError("Gear not found")
        if normalize_status(gear.get("status")) not in LOANED_GEAR:
            raise RequestValidationError(
                "{0} is not checked out and cannot be checked in.".format(
                    gear.get("name") or "This gear"
                )
            )
        if str(gear.get("checked_out_to")) == str(user_id):
            request_id = request_id or gear.get("current_request_id")
        else:
            # multi-unit gear only records its latest borrower
            loan = await self._active_loan(user_id, gear_id)
            if loan is None:
                raise PermissionDeniedError("You can only check in equipment checked out to you.")
            request_id = request_id or loan.get("id")

        rows = await self._client.insert(TABLE, {
            "user_id": user_id,
            "gear_id": gear_id,
            "request_id": request_id,
            "checkin_date": _now_iso(),
            "status": CheckinStatus.PENDING,
            "condition": condition,
            "damage_notes": notes if damaged else None,
            "notes": notes or None,
            "quantity": quantity,
        })
        await self._client.rpc("log_gear_activity", {
            "p_user_id": user_id,
            "p_gear_id": gear_id,
            "p_request_id": request_id,
            "p_activity_type": "Check-in",
            "p_status": CheckinStatus.PENDING,
            "p_notes": notes or None,
            "p_details": {"condition": condition},
        })
        if normalize_status(gear.get("status")) == normalize_status(GearStatus.CHECKED_OUT):
            await self._client.update(
                "gears",
                {"status": GearStatus.PENDING_CHECK_IN},
                filters=[("id", "eq", gear_id)],
            )
        logger.info("Check-in submitted for gear %s by %s (%s)", gear_id, user_id, condition)
        return rows[0] if rows else {}

    async def _released_gear_values(
        self, gear_id: str, returned: int, damaged: bool,
    ) -> dict[str, Any]:
        """Gear columns after *returned* units come back.

        Multi-unit gear stays Partially Checked Out until every unit is home.
        """
        gear = await self._client.select_one(
            "gears", columns="id, quantity, available_quantity", filters=[("id", "eq", gear_id)],
        ) or {}
        values: dict[str, Any] = {}
        total, free = gear.get("quantity"), gear.get("available_quantity")
        if isinstance(total, int) and isinstance(free, int):
            free = min(total, free + returned)
            values["available_quantity"] = free
            if free < total and not damaged:
                values["status"] = GearStatus.PARTIALLY_CHECKED_OUT
                return values
        values.update({
            "status": GearStatus.NEEDS_REPAIR if damaged else GearStatus.AVAILABLE,
            "checked_out_to": None,
            "current_request_id": None,
            "due_date": None,
        })
        return values

    async def approve_checkin(self, checkin_id: str, admin_id: str) -> dict[str, Any]:
        """Complete a pending check-in and release the gear."""
        checkin = await self.get_checkin(checkin_id)
        if checkin.get("status") != CheckinStatus.PENDING:
            raise RequestValidationError("Only pending check-ins can be approved.")

        now = _now_iso()
        rows = await self._client.update(
            TABLE,
            {
                "status": CheckinStatus.COMPLETED,
                "approved_by": admin_id,
                "approved_at": now,
                "updated_at": now,
            },
            filters=[("id", "eq", checkin_id)],
        )

        damaged = checkin.get("condition") == CheckinCondition.DAMAGED
        gear_id = checkin.get("gear_id")
        await self._client.update(
            "gears",
            await self._released_gear_values(gear_id, checkin.get("quantity") or 1, damaged),
            filters=[("id", "eq", gear_id)],
        )
        if damaged:
            await self._client.rpc("log_gear_activity", {
                "p_user_id": checkin.get("user_id"),
                "p_gear_id": gear_id,
                "p_request_id": checkin.get("request_id"),
                "p_activity_type": "Damage Report",
                "p_status": GearStatus.NEEDS_REPAIR,
                "p_notes": checkin.get("damage_notes"),
                "p_details": {"checkin_id": checkin_id},
            })

        if checkin.get("request_id"):
            await self._complete_request_if_returned(checkin["request_id"], checkin.get("user_id"))

        gear_name = await self._gear_name(gear_id)
        await self._notifications.create_notification(
            checkin.get("user_id"),
            "Check-in Approved",
            "Your check-in for {0} has been approved.".format(gear_name),
            category="checkin",
        )
        logger.info("Check-in %s approved by %s", checkin_id, admin_id)
        return rows[0] if rows else {"id": checkin_id, "status": CheckinStatus.COMPLETED}

    async def reject_checkin(
        self, checkin_id: str, admin_id: str, reason: str = "",
    ) -> dict[str, Any]:
        """Reject a pending check-in; the gear stays with the borrower."""
        checkin = await self.get_checkin(checkin_id)
        if checkin.get("status") != CheckinStatus.PENDING:
            raise RequestValidationError("Only pending check-ins can be rejected.")

        rows = await self._client.update(
            TABLE,
            {
                "status": CheckinStatus.REJECTED,
                "approved_by": admin_id,
                "notes": reason or checkin.get("notes"),
                "updated_at": _now_iso(),
            },
            filters=[("id", "eq", checkin_id)],
        )
        await self._client.update(
            "gears",
            {"status": GearStatus.CHECKED_OUT},
            filters=[
                ("id", "eq", checkin.get("gear_id")),
                ("status", "eq", GearStatus.PENDING_CHECK_IN),
            ],
        )
        message = "Your check-in was rejected."
        if reason:
            message += " Reason: " + reason
        await self._notifications.create_notification(
            checkin.get("user_id"), "Check-in Rejected", message, category="checkin",
        )
        logger.info("Check-in %s rejected by %s", checkin_id, admin_id)
        return rows[0] if rows else {"id": checkin_id, "status": CheckinStatus.REJECTED}

    async def _complete_request_if_returned(self, request_id: str, user_id: Optional[str]) -> bool:
        """Close the request once every requested unit has a completed check-in."""
        lines = await self._client.select(
            "gear_request_gears",
            columns="gear_id, quantity",
            filters=[("gear_request_id", "eq", request_id)],
        )
        if not lines:
            return False
        requested = sum(max(1, int(line.get("quantity") or 1)) for line in lines)

        filters = [
            ("request_id", "eq", request_id),
            ("status", "eq", CheckinStatus.COMPLETED),
            ("gear_id", "in", [line["gear_id"] for line in lines]),
        ]
        if user_id:
            filters.append(("user_id", "eq", user_id))
        completed = await self._client.select(TABLE, columns="quantity", filters=filters)
        returned = sum(max(1, int(row.get("quantity") or 1)) for row in completed)
        if returned < requested:
            return False

        await self._client.update(
            "gear_requests",
            {"status": RequestStatus.CHECKED_IN, "updated_at": _now_iso()},
            filters=[("id", "eq", request_id)],
        )
        logger.info("Request %s fully returned", request_id)
        return True
