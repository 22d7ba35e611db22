"""Tests for the gear catalogue queries."""

import pytest

from gearflow.exceptions import NotFoundError, RequestValidationError
from gearflow.modules.gears.service import GearService


class TestListGears:

    @pytest.mark.asyncio
    async def test_all_gear_by_name(self, fake_backend):
        page = await GearService(fake_backend).list_gears()
        assert [g["name"] for g in page["items"]] == ["Camera", "Microphone", "Tripod"]
        assert page["total"] == 3
        assert page["page"] == 1

    @pytest.mark.asyncio
    async def test_status_variant_and_all_sentinel(self, fake_backend):
        page = await GearService(fake_backend).list_gears(status="available", category="all")
        assert [g["id"] for g in page["items"]] == ["gear-3", "gear-2"]
        assert page["total"] == 2

    @pytest.mark.asyncio
    async def test_category_filter(self, fake_backend):
        page = await GearService(fake_backend).list_gears(category="Audio")
        assert [g["id"] for g in page["items"]] == ["gear-3"]

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, fake_backend):
        page = await GearService(fake_backend).list_gears(search="TRI")
        assert [g["id"] for g in page["items"]] == ["gear-2"]

    @pytest.mark.asyncio
    async def test_paging_keeps_total(self, fake_backend):
        page = await GearService(fake_backend).list_gears(page=2, page_size=2)
        assert [g["name"] for g in page["items"]] == ["Tripod"]
        assert page["total"] == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page,page_size", [(0, 10), (1, 0), (1, 500)])
    async def test_bad_paging(self, fake_backend, page, page_size):
        with pytest.raises(RequestValidationError):
            await GearService(fake_backend).list_gears(page=page, page_size=page_size)


class TestLookups:

    @pytest.mark.asyncio
    async def test_get_gear(self, fake_backend):
        gear = await GearService(fake_backend).get_gear("gear-2")
        assert gear["name"] == "Tripod"

    @pytest.mark.asyncio
    async def test_get_unknown_gear(self, fake_backend):
        with pytest.raises(NotFoundError):
            await GearService(fake_backend).get_gear("gear-404")

    @pytest.mark.asyncio
    async def test_categories(self, fake_backend):
        assert await GearService(fake_backend).list_categories() == ["Audio", "Support", "Video"]

    @pytest.mark.asyncio
    async def test_popular_gears(self, fake_backend):
        fake_backend.rpc_results["get_popular_gears"] = [
            {"gear_id": "gear-1", "name": "Camera", "request_count": 4},
        ]
        rows = await GearService(fake_backend).popular_gears("2024-03-01", "2024-03-07", limit=5)
        assert rows[0]["request_count"] == 4
        assert fake_backend.rpc_calls == [("get_popular_gears", {
            "start_date": "2024-03-01", "end_date": "2024-03-07", "limit_count": 5,
        })]

    @pytest.mark.asyncio
    async def test_popular_gears_no_rows(self, fake_backend):
        assert await GearService(fake_backend).popular_gears("2024-03-01", "2024-03-07") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start,end", [("2024-03-07", "2024-03-01"), ("last week", "2024-03-07")])
    async def test_popular_gears_bad_window(self, fake_backend, start, end):
        with pytest.raises(RequestValidationError):
            await GearService(fake_backend).popular_gears(start, end)
        assert fake_backend.rpc_calls == []
