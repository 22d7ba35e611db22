"""Gear request workflow: creation, listing, cancellation, approval and rejection."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from gearflow.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    RequestValidationError,
)
from gearflow.integrations.backend_client import BackendClient
from gearflow.models.status import GearStatus, RequestStatus, is_pending, normalize_status
from gearflow.modules.notifications.service import NotificationService
from gearflow.modules.reporting.aggregator import request_gear_ids

logger = logging.getLogger(__name__)

TABLE = "gear_requests"
REQUEST_COLUMNS = "*, gear_request_gears(gear_id, quantity)"

# expected_duration option -> loan length
DURATIONS = {
    "24hours": timedelta(days=1),
    "48hours": timedelta(days=2),
    "72hours": timedelta(days=3),
    "1 week": timedelta(weeks=1),
    "2 weeks": timedelta(weeks=2),
    "month": timedelta(days=30),
    "1year": timedelta(days=365),
}
DEFAULT_DURATION = timedelta(weeks=1)


def calculate_due_date(expected_duration: Optional[str], start: datetime) -> datetime:
    """Due date for a loan starting at *start*.

    Examples:
        >>> calculate_due_date("48hours", datetime(2024, 3, 1)).isoformat()
        '2024-03-03T00:00:00'
        >>> calculate_due_date(None, datetime(2024, 3, 1)).isoformat()
        '2024-03-08T00:00:00'
    """
    key = (expected_duration or "").strip().lower()
    return start + DURATIONS.get(key, DEFAULT_DURATION)


# Gear states that can still hand out units.
LENDABLE = frozenset(
    normalize_status(s) for s in (GearStatus.AVAILABLE, GearStatus.PARTIALLY_CHECKED_OUT)
)


def available_units(gear: dict[str, Any]) -> int:
    """Units of *gear* that can be lent out right now.

    Examples:
        >>> available_units({"status": "Available"})
        1
        >>> available_units({"status": "Partially Checked Out", "quantity": 5, "available_quantity": 2})
        2
        >>> available_units({"status": "Checked Out", "quantity": 1})
        0
    """
    if normalize_status(gear.get("status")) not in LENDABLE:
        return 0
    for key in ("available_quantity", "quantity"):
        value = gear.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return max(value, 0)
    return 1


def requested_quantities(request: dict[str, Any]) -> dict[str, int]:
    """Units asked for per gear id, summed over the line items."""
    wanted: dict[str, int] = {}
    for line in request.get("gear_request_gears") or []:
        if isinstance(line, dict) and line.get("gear_id"):
            gear_id = str(line["gear_id"])
            wanted[gear_id] = wanted.get(gear_id, 0) + int(line.get("quantity") or 1)
    for gear_id in request_gear_ids(request):
        wanted.setdefault(gear_id, 1)
    return wanted


class RequestService:
    """Operations on gear requests for end users and admins."""

    def __init__(
        self,
        client: BackendClient,
        notifications: Optional[NotificationService] = None,
    ):
        self._client = client
        self._notifications = notifications or NotificationService(client)

    async def list_user_requests(self, user_id: str) -> list[dict[str, Any]]:
        """The user's requests, newest first."""
        return await self._client.select(
            TABLE,
            columns=REQUEST_COLUMNS,
            filters=[("user_id", "eq", user_id)],
            order="created_at.desc",
        )

    async def list_requests(
        self, status: Optional[str] = None, limit: Optional[int] = 100,
    ) -> list[dict[str, Any]]:
        filters = [("status", "eq", status)] if status else None
        return await self._client.select(
            TABLE, columns=REQUEST_COLUMNS, filters=filters,
            order="created_at.desc", limit=limit,
        )

    async def get_request(self, request_id: str) -> dict[str, Any]:
        row = await self._client.select_one(
            TABLE, columns=REQUEST_COLUMNS, filters=[("id", "eq", request_id)],
        )
        if row is None:
            raise NotFoundError("Request not found")
        return row

    async def _get_pending(self, request_id: str, action: str) -> dict[str, Any]:
        request = await self.get_request(request_id)
        if not is_pending(request.get("status")):
            raise RequestValidationError("Only pending requests can be {0}.".format(action))
        return request

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def create_request(
        self,
        user_id: str,
        items: list[dict[str, Any]],
        reason: str,
        expected_duration: str = "1 week",
        destination: Optional[str] = None,
    ) -> dict[str, Any]:
        """File a pending request for one or more gear line items.

        Args:
            user_id: Requesting user.
            items: ``{"gear_id": ..., "quantity": ...}`` dicts; repeated gear
                ids are merged.
            reason: Why the gear is needed.
            expected_duration: One of the ``DURATIONS`` keys.
            destination: Where the gear is going.

        Raises:
            RequestValidationError: Empty item list, bad quantity, missing
                reason or unknown duration.
            NotFoundError: An item names gear that does not exist.
            ConflictError: Gear is not currently available in that quantity.
        """
        reason = (reason or "").strip()
        if not reason:
            raise RequestValidationError("A reason for the request is required.")
        duration = (expected_duration or "").strip().lower()
        if duration not in DURATIONS:
            raise RequestValidationError(
                "expected_duration must be one of: " + ", ".join(DURATIONS)
            )

        wanted: dict[str, int] = {}
        for item in items or []:
            gear_id = str(item.get("gear_id") or "").strip()
            quantity = item.get("quantity", 1)
            if not gear_id:
                raise RequestValidationError("Every item needs a gear_id.")
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
                raise RequestValidationError("quantity must be a whole number of at least 1")
            wanted[gear_id] = wanted.get(gear_id, 0) + quantity
        if not wanted:
            raise RequestValidationError("Select at least one item of equipment.")

        gears = await self._client.select(
            "gears",
            columns="id, name, status, quantity, available_quantity",
            filters=[("id", "in", sorted(wanted))],
        )
        by_id = {str(g.get("id")): g for g in gears}
        for gear_id, quantity in wanted.items():
            gear = by_id.get(gear_id)
            if gear is None:
                raise NotFoundError("Gear not found: " + gear_id)
            free = available_units(gear)
            if free < quantity:
                raise ConflictError(
                    "Not enough available units for {0}. Requested {1}, available {2}.".format(
                        gear.get("name") or gear_id, quantity, free,
                    )
                )

        rows = await self._client.insert(TABLE, {
            "user_id": user_id,
            "status": RequestStatus.PENDING,
            "reason": reason,
            "destination": destination,
            "expected_duration": duration,
        })
        request = rows[0]
        await self._client.insert("gear_request_gears", [
            {"gear_request_id": request["id"], "gear_id": gear_id, "quantity": quantity}
            for gear_id, quantity in wanted.items()
        ])
        for gear_id in wanted:
            await self._client.rpc("log_gear_activity", {
                "p_user_id": user_id,
                "p_gear_id": gear_id,
                "p_request_id": request["id"],
                "p_activity_type": "Request",
                "p_status": RequestStatus.PENDING,
                "p_notes": reason,
                "p_details": {"quantity": wanted[gear_id], "expected_duration": duration},
            })

        names = ", ".join(by_id[g].get("name") or g for g in wanted)
        await self._notifications.notify_admins(
            "New Gear Request",
            "A new request for {0} is waiting for approval.".format(names),
            category="request",
        )
        logger.info("Request %s created by %s (%d items)", request["id"], user_id, len(wanted))
        request["gear_request_gears"] = [
            {"gear_id": gear_id, "quantity": quantity} for gear_id, quantity in wanted.items()
        ]
        return request

    async def cancel_request(self, request_id: str, user_id: str) -> dict[str, Any]:
        """Cancel the caller's own pending request.

        Raises:
            NotFoundError: Unknown request id.
            PermissionDeniedError: The request belongs to someone else.
            RequestValidationError: The request is not pending; nothing is changed.
        """
        request = await self.get_request(request_id)
        if str(request.get("user_id")) != str(user_id):
            raise PermissionDeniedError("You can only cancel your own requests.")
        if not is_pending(request.get("status")):
            raise RequestValidationError("Only pending requests can be cancelled.")

        await self._client.rpc("cancel_gear_request", {"p_request_id": request_id})
        logger.info("Request %s cancelled by %s", request_id, user_id)
        return {"id": request_id, "status": RequestStatus.CANCELLED}

    # ------------------------------------------------------------------
    # Admin actions
    # ------------------------------------------------------------------

    async def approve_request(
        self, request_id: str, admin_id: str, now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Check out every requested item and start the loan.

        Availability of every line is verified before anything is written.

        Raises:
            RequestValidationError: The request is not pending or lists no gear.
            ConflictError: A gear does not have enough free units.
        """
        request = await self._get_pending(request_id, "approved")
        wanted = requested_quantities(request)
        if not wanted:
            raise RequestValidationError("Request has no equipment to check out.")
        gear_ids = sorted(wanted)

        gears = await self._client.select(
            "gears",
            columns="id, name, status, quantity, available_quantity",
            filters=[("id", "in", gear_ids)],
        )
        by_id = {str(g.get("id")): g for g in gears}
        for gear_id in gear_ids:
            gear = by_id.get(gear_id)
            if gear is None:
                raise NotFoundError("Gear not found: " + gear_id)
            free = available_units(gear)
            if free < wanted[gear_id]:
                raise ConflictError(
                    "Not enough available units for {0}. Requested {1}, available {2}.".format(
                        gear.get("name") or gear_id, wanted[gear_id], free,
                    )
                )

        now = now or datetime.now(timezone.utc)
        due = calculate_due_date(request.get("expected_duration"), now)
        user_id = request.get("user_id")

        for gear_id in gear_ids:
            gear = by_id[gear_id]
            remaining = available_units(gear) - wanted[gear_id]
            values = {
                "status": GearStatus.PARTIALLY_CHECKED_OUT if remaining > 0 else GearStatus.CHECKED_OUT,
                "checked_out_to": user_id,
                "current_request_id": request_id,
                "last_checkout_date": now.isoformat(),
                "due_date": due.isoformat(),
            }
            if gear.get("available_quantity") is not None or gear.get("quantity") is not None:
                values["available_quantity"] = remaining
            await self._client.update("gears", values, filters=[("id", "eq", gear_id)])

        rows = await self._client.update(
            TABLE,
            {
                "status": RequestStatus.CHECKED_OUT,
                "approved_at": now.isoformat(),
                "approved_by": admin_id,
                "checkout_date": now.isoformat(),
                "due_date": due.isoformat(),
            },
            filters=[("id", "eq", request_id)],
        )
        for gear_id in gear_ids:
            await self._client.rpc("log_gear_activity", {
                "p_user_id": user_id,
                "p_gear_id": gear_id,
                "p_request_id": request_id,
                "p_activity_type": "Checkout",
                "p_status": RequestStatus.CHECKED_OUT,
                "p_notes": None,
                "p_details": {"approved_by": admin_id, "due_date": due.isoformat()},
            })

        await self._notifications.create_notification(
            user_id,
            "Gear Request Approved",
            "Your gear request has been approved and checked out. "
            "You can now pick up your equipment.",
            category="request",
        )
        logger.info("Request %s approved by %s (%d items)", request_id, admin_id, len(gear_ids))
        return rows[0] if rows else {"id": request_id, "status": RequestStatus.CHECKED_OUT}

    async def reject_request(
        self, request_id: str, admin_id: str, reason: str = "",
    ) -> dict[str, Any]:
        request = await self._get_pending(request_id, "rejected")
        now = datetime.now(timezone.utc).isoformat()
        rows = await self._client.update(
            TABLE,
            {
                "status": RequestStatus.REJECTED,
                "rejection_reason": reason or None,
                "admin_notes": reason or None,
                "rejected_at": now,
            },
            filters=[("id", "eq", request_id)],
        )
        message = "Your gear request has been rejected."
        if reason:
            message += " Reason: " + reason
        await self._notifications.create_notification(
            request.get("user_id"), "Gear Request Rejected", message, category="request",
        )
        logger.info("Request %s rejected by %s", request_id, admin_id)
        return rows[0] if rows else {"id": request_id, "status": RequestStatus.REJECTED}
