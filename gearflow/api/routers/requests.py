from typing import Optional

from fastapi import APIRouter, Depends, Query

from gearflow.api.deps import (
    get_current_user,
    get_request_service,
    require_admin,
)
from gearflow.api.schemas import CreateRequestBody, RejectRequestBody, envelope
from gearflow.modules.requests.service import RequestService

router = APIRouter(prefix="/requests", tags=["requests"])


@router.get("")
async def list_requests(
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    _admin: dict = Depends(require_admin),
    service: RequestService = Depends(get_request_service),
):
    return envelope(await service.list_requests(status=status, limit=limit))


@router.post("")
async def create_request(
    body: CreateRequestBody,
    user: dict = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    items = [item.model_dump() for item in body.items]
    return envelope(await service.create_request(
        user["id"], items, body.reason,
        expected_duration=body.expected_duration, destination=body.destination,
    ))


@router.get("/user")
async def list_user_requests(
    user: dict = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    return envelope(await service.list_user_requests(user["id"]))


@router.post("/{request_id}/cancel")
async def cancel_request(
    request_id: str,
    user: dict = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    return envelope(await service.cancel_request(request_id, user["id"]))


@router.post("/{request_id}/approve")
async def approve_request(
    request_id: str,
    admin: dict = Depends(require_admin),
    service: RequestService = Depends(get_request_service),
):
    return envelope(await service.approve_request(request_id, admin["id"]))


@router.post("/{request_id}/reject")
async def reject_request(
    request_id: str,
    body: Optional[RejectRequestBody] = None,
    admin: dict = Depends(require_admin),
    service: RequestService = Depends(get_request_service),
):
    reason = body.reason if body else ""
    return envelope(await service.reject_request(request_id, admin["id"], reason))
