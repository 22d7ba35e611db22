"""In-app notifications: listing, read state, ownership checks and reminders."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from gearflow.exceptions import NotFoundError, PermissionDeniedError
from gearflow.integrations.backend_client import BackendClient
from gearflow.models.status import RequestStatus, UserRole
from gearflow.utils.helpers import days_between, parse_timestamp

logger = logging.getLogger(__name__)

TABLE = "notifications"


class NotificationService:
    """Notification reads and writes on behalf of a signed-in user.

    Reads are scoped to the caller; single-row operations load the row
    first and allow the owner or an Admin.
    """

    def __init__(self, client: BackendClient):
        self._client = client

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        return await self._client.select_one(
            "profiles", columns="id, full_name, email, role", filters=[("id", "eq", user_id)],
        )

    async def is_admin(self, user_id: str) -> bool:
        return UserRole.is_admin(await self.get_profile(user_id))

    async def _load_for(self, notification_id: str, user_id: str) -> dict[str, Any]:
        row = await self._client.select_one(TABLE, filters=[("id", "eq", notification_id)])
        if row is None:
            raise NotFoundError("Notification not found")
        if str(row.get("user_id")) != str(user_id) and not await self.is_admin(user_id):
            raise PermissionDeniedError("Forbidden")
        return row

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: Optional[int] = 50,
    ) -> list[dict[str, Any]]:
        filters = [("user_id", "eq", user_id)]
        if unread_only:
            filters.append(("is_read", "eq", False))
        return await self._client.select(
            TABLE, filters=filters, order="created_at.desc", limit=limit,
        )

    async def unread_count(self, user_id: str) -> int:
        return await self._client.count(
            TABLE, filters=[("user_id", "eq", user_id), ("is_read", "eq", False)],
        )

    async def get_notification(self, notification_id: str, user_id: str) -> dict[str, Any]:
        return await self._load_for(notification_id, user_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def mark_read(
        self, notification_id: str, user_id: str, is_read: bool = True,
    ) -> dict[str, Any]:
        await self._load_for(notification_id, user_id)
        rows = await self._client.update(
            TABLE, {"is_read": is_read}, filters=[("id", "eq", notification_id)],
        )
        return rows[0] if rows else {}

    async def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification of the user as read."""
        rows = await self._client.update(
            TABLE,
            {"is_read": True},
            filters=[("user_id", "eq", user_id), ("is_read", "eq", False)],
        )
        logger.info("Marked %d notifications read for %s", len(rows), user_id)
        return len(rows)

    async def delete_notification(self, notification_id: str, user_id: str) -> None:
        await self._load_for(notification_id, user_id)
        await self._client.delete(TABLE, filters=[("id", "eq", notification_id)])

    async def create_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        category: str = "system",
        link: Optional[str] = None,
    ) -> dict[str, Any]:
        values = {
            "user_id": user_id,
            "title": title,
            "message": message,
            "type": category,
            "is_read": False,
        }
        if link:
            values["link"] = link
        rows = await self._client.insert(TABLE, values)
        return rows[0] if rows else values

    async def notify_admins(self, title: str, message: str, category: str = "system") -> int:
        """Send the same notification to every Admin profile."""
        admins = await self._client.select(
            "profiles", columns="id, role", filters=[("role", "eq", UserRole.ADMIN)],
        )
        for admin in admins:
            await self.create_notification(admin["id"], title, message, category=category)
        return len(admins)

    async def send_overdue_reminders(self, now: Optional[datetime] = None) -> int:
        """Notify holders of every active loan past its due date.

        Returns:
            Number of notifications created.
        """
        now = now or datetime.now(timezone.utc)
        rows = await self._client.select(
            "gear_requests",
            columns="id, user_id, status, due_date",
            filters=[
                ("status", "in", [RequestStatus.CHECKED_OUT, RequestStatus.PARTIALLY_CHECKED_OUT,
                                  RequestStatus.OVERDUE]),
                ("due_date", "lt", now.isoformat()),
            ],
        )
        sent = 0
        for req in rows:
            due = parse_timestamp(req.get("due_date"))
            if due is None or not req.get("user_id"):
                continue
            overdue_days = max(int(days_between(due, now)), 1)
            await self.create_notification(
                req["user_id"],
                "Overdue Equipment",
                "Your checked-out equipment is {0} day{1} overdue. Please return it.".format(
                    overdue_days, "" if overdue_days == 1 else "s",
                ),
                category="overdue",
            )
            sent += 1
        logger.info("Sent %d overdue reminders", sent)
        return sent
