"""FastAPI dependencies: backend client, current user and service objects."""

import logging
from typing import Any, Optional

from fastapi import Depends, Header, Request

from gearflow.exceptions import AuthenticationError, PermissionDeniedError
from gearflow.integrations.backend_client import BackendClient
from gearflow.modules.checkins.service import CheckinService
from gearflow.modules.gears.service import GearService
from gearflow.modules.notifications.service import NotificationService
from gearflow.modules.reporting.report_engine import ReportEngine
from gearflow.modules.requests.service import RequestService

logger = logging.getLogger(__name__)


def get_backend(request: Request) -> BackendClient:
    """Shared client, built on first use so missing settings fail per request."""
    state = request.app.state
    if getattr(state, "backend", None) is None:
        state.backend = state.backend_factory()
    return state.backend


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Unauthorized")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Unauthorized")
    return token.strip()


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> dict[str, Any]:
    token = _bearer_token(authorization)
    return await get_backend(request).get_user(token)


def get_notification_service(
    backend: BackendClient = Depends(get_backend),
) -> NotificationService:
    return NotificationService(backend)


def get_gear_service(
    backend: BackendClient = Depends(get_backend),
) -> GearService:
    return GearService(backend)


def get_request_service(
    backend: BackendClient = Depends(get_backend),
) -> RequestService:
    return RequestService(backend)


def get_checkin_service(
    backend: BackendClient = Depends(get_backend),
) -> CheckinService:
    return CheckinService(backend)


def get_report_engine(
    backend: BackendClient = Depends(get_backend),
) -> ReportEngine:
    return ReportEngine(backend)


async def require_admin(
    user: dict[str, Any] = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    if not await notifications.is_admin(user["id"]):
        logger.warning("Admin route refused for user %s", user["id"])
        raise PermissionDeniedError("Admin access required")
    return user
