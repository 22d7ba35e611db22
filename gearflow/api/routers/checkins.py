from typing import Optional

from fastapi import APIRouter, Depends

from gearflow.api.deps import get_checkin_service, get_current_user, require_admin
from gearflow.api.schemas import CheckinCreateBody, CheckinRejectBody, envelope
from gearflow.modules.checkins.service import CheckinService

router = APIRouter(prefix="/checkins", tags=["checkins"])


@router.post("")
async def submit_checkin(
    body: CheckinCreateBody,
    user: dict = Depends(get_current_user),
    service: CheckinService = Depends(get_checkin_service),
):
    row = await service.submit_checkin(
        user["id"],
        body.gear_id,
        condition=body.condition,
        notes=body.notes,
        request_id=body.request_id,
        quantity=body.quantity,
    )
    return envelope(row)


@router.get("/pending")
async def list_pending(
    _admin: dict = Depends(require_admin),
    service: CheckinService = Depends(get_checkin_service),
):
    return envelope(await service.list_pending())


@router.post("/{checkin_id}/approve")
async def approve_checkin(
    checkin_id: str,
    admin: dict = Depends(require_admin),
    service: CheckinService = Depends(get_checkin_service),
):
    return envelope(await service.approve_checkin(checkin_id, admin["id"]))


@router.post("/{checkin_id}/reject")
async def reject_checkin(
    checkin_id: str,
    body: Optional[CheckinRejectBody] = None,
    admin: dict = Depends(require_admin),
    service: CheckinService = Depends(get_checkin_service),
):
    reason = body.reason if body else ""
    return envelope(await service.reject_checkin(checkin_id, admin["id"], reason))
