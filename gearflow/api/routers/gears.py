from typing import Optional

from fastapi import APIRouter, Depends, Query

from gearflow.api.deps import get_current_user, get_gear_service
from gearflow.api.schemas import envelope
from gearflow.modules.gears.service import MAX_PAGE_SIZE, GearService

router = APIRouter(prefix="/gears", tags=["gears"])


@router.get("")
async def list_gears(
    status: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    _user: dict = Depends(get_current_user),
    service: GearService = Depends(get_gear_service),
):
    return envelope(await service.list_gears(
        status=status, category=category, search=search, page=page, page_size=page_size,
    ))


@router.get("/categories")
async def list_categories(
    _user: dict = Depends(get_current_user),
    service: GearService = Depends(get_gear_service),
):
    return envelope(await service.list_categories())


@router.get("/popular")
async def popular_gears(
    start_date: str = Query(...),
    end_date: str = Query(...),
    limit: int = Query(default=10, ge=1, le=100),
    _user: dict = Depends(get_current_user),
    service: GearService = Depends(get_gear_service),
):
    return envelope(await service.popular_gears(start_date, end_date, limit=limit))


@router.get("/{gear_id}")
async def get_gear(
    gear_id: str,
    _user: dict = Depends(get_current_user),
    service: GearService = Depends(get_gear_service),
):
    return envelope(await service.get_gear(gear_id))
