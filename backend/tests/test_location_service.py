# tests/test_location_service.py
# 地区管理服务测试（单条创建/更新、查询、搜索、导出、重建索引）

import pytest
from sqlalchemy import select

from expo_admin.core.exceptions import ConflictError, NotFoundError
from expo_admin.models import Country, State, City, PostalCode
from expo_admin.schemas.location import (
    CityCreate,
    CityUpdate,
    CountryCreate,
    PostalCodeCreate,
    PostalCodeUpdate,
    StateCreate,
)
from expo_admin.services.location_import_service import LocationImportService
from expo_admin.services.location_service import LocationService
from expo_admin.storage.search_index import SearchIndexSync


@pytest.fixture
def service(search_sync):
    return LocationService(search_sync=search_sync)


@pytest.fixture
async def india(service, db_session):
    """India / Gujarat"""
    country = await service.create_country(CountryCreate(name="India", code="IN"), db_session)
    state = await service.create_state(StateCreate(country_id=country.id, name="Gujarat", code="GJ"), db_session)
    return country, state


@pytest.fixture
async def imported(db_session, search_sync):
    rows = [
        {"country": "India", "country_code": "IN", "state": "Gujarat", "state_code": "GJ",
         "city": "Ahmedabad", "pincode": "380001", "area": "Ellis Bridge"},
        {"country": "India", "country_code": "IN", "state": "Gujarat", "state_code": "GJ",
         "city": "Ahmedabad", "pincode": "380001", "area": "Lal Darwaja"},
        {"country": "India", "country_code": "IN", "state": "Gujarat", "state_code": "GJ",
         "city": "Ahmedabad", "pincode": "380015", "area": "Satellite"},
        {"country": "India", "country_code": "IN", "state": "Maharashtra", "state_code": "MH",
         "city": "Mumbai", "pincode": "400001", "area": "Fort"},
    ]
    await LocationImportService(search_sync=search_sync).bulk_import(rows, session=db_session)
    search_sync.indexed.clear()
    search_sync.batches.clear()


class TestCreate:
    """单条创建"""

    @pytest.mark.asyncio
    async def test_country_code_uppercased(self, service, db_session):
        country = await service.create_country(CountryCreate(name=" India ", code="in"), db_session)

        assert country.code == "IN"
        assert country.name == "India"
        assert country.state_count == 0

    @pytest.mark.asyncio
    async def test_duplicate_country_code(self, service, db_session, india):
        with pytest.raises(ConflictError) as exc_info:
            await service.create_country(CountryCreate(name="Bharat", code="in"), db_session)

        assert exc_info.value.field == "code"

    @pytest.mark.asyncio
    async def test_duplicate_country_name_ignores_case(self, service, db_session, india):
        with pytest.raises(ConflictError) as exc_info:
            await service.create_country(CountryCreate(name="INDIA", code="ID"), db_session)

        assert exc_info.value.field == "name"

    @pytest.mark.asyncio
    async def test_state_increments_country_counter(self, service, db_session, india):
        country, _ = india

        await db_session.refresh(country)

        assert country.state_count == 1

    @pytest.mark.asyncio
    async def test_state_code_is_global(self, service, db_session, india):
        ghana = await service.create_country(CountryCreate(name="Ghana", code="GH"), db_session)

        with pytest.raises(ConflictError) as exc_info:
            await service.create_state(StateCreate(country_id=ghana.id, name="Greater Accra", code="gj"), db_session)

        assert exc_info.value.field == "code"

    @pytest.mark.asyncio
    async def test_missing_parent(self, service, db_session):
        with pytest.raises(NotFoundError) as exc_info:
            await service.create_city(CityCreate(state_id="missing-id", name="Surat"), db_session)

        assert exc_info.value.resource_type == "州/省"

    @pytest.mark.asyncio
    async def test_duplicate_postal_code_area(self, service, db_session, india):
        _, state = india
        city = await service.create_city(CityCreate(state_id=state.id, name="Ahmedabad"), db_session)
        await service.create_postal_code(PostalCodeCreate(city_id=city.id, pincode="380001"), db_session)

        with pytest.raises(ConflictError) as exc_info:
            await service.create_postal_code(PostalCodeCreate(city_id=city.id, pincode="380001", area=" "), db_session)

        assert exc_info.value.field == "pincode"

    @pytest.mark.asyncio
    async def test_postal_code_is_indexed(self, service, search_sync, db_session, india):
        _, state = india
        city = await service.create_city(CityCreate(state_id=state.id, name="Ahmedabad"), db_session)

        postal_code = await service.create_postal_code(
            PostalCodeCreate(city_id=city.id, pincode="380001", area="Ellis Bridge"),
            db_session,
        )

        assert search_sync.indexed[-1].id == postal_code.id
        assert search_sync.indexed[-1].state_code == "GJ"


class TestUpdate:
    """单条更新"""

    @pytest.mark.asyncio
    async def test_move_city_adjusts_counters(self, service, db_session, india):
        country, gujarat = india
        maharashtra = await service.create_state(
            StateCreate(country_id=country.id, name="Maharashtra", code="MH"),
            db_session,
        )
        city = await service.create_city(CityCreate(state_id=gujarat.id, name="Surat"), db_session)

        updated = await service.update("city", city.id, CityUpdate(state_id=maharashtra.id), db_session)

        assert updated.state_id == maharashtra.id
        assert await db_session.scalar(select(State.city_count).where(State.id == gujarat.id)) == 0
        assert await db_session.scalar(select(State.city_count).where(State.id == maharashtra.id)) == 1

    @pytest.mark.asyncio
    async def test_rename_conflict(self, service, db_session, india):
        _, state = india
        await service.create_city(CityCreate(state_id=state.id, name="Surat"), db_session)
        city = await service.create_city(CityCreate(state_id=state.id, name="Vadodara"), db_session)

        with pytest.raises(ConflictError):
            await service.update("cities", city.id, CityUpdate(name="SURAT"), db_session)

    @pytest.mark.asyncio
    async def test_move_to_missing_parent(self, service, db_session, india):
        _, state = india
        city = await service.create_city(CityCreate(state_id=state.id, name="Surat"), db_session)

        with pytest.raises(NotFoundError):
            await service.update("city", city.id, CityUpdate(state_id="missing-id"), db_session)

    @pytest.mark.asyncio
    async def test_update_postal_code_area(self, service, search_sync, db_session, india):
        _, state = india
        city = await service.create_city(CityCreate(state_id=state.id, name="Ahmedabad"), db_session)
        postal_code = await service.create_postal_code(PostalCodeCreate(city_id=city.id, pincode="380001"), db_session)

        updated = await service.update(
            "pincodes",
            postal_code.id,
            PostalCodeUpdate(area="  Ellis Bridge "),
            db_session,
        )

        assert updated.area == "Ellis Bridge"
        assert search_sync.indexed[-1].area == "Ellis Bridge"

    @pytest.mark.asyncio
    async def test_update_missing_record(self, service, db_session):
        with pytest.raises(NotFoundError):
            await service.update("city", "missing-id", CityUpdate(name="Surat"), db_session)


class TestLookupAndSearch:
    """按邮编查询与搜索"""

    @pytest.mark.asyncio
    async def test_lookup_returns_hierarchy(self, service, db_session, imported):
        result = await service.lookup_by_code(" 380001 ", db_session)

        assert result.found is True
        assert result.pincode == "380001"
        assert result.areas == ["Ellis Bridge", "Lal Darwaja"]
        assert result.city.name == "Ahmedabad"
        assert result.state.code == "GJ"
        assert result.country.code == "IN"

        usage = await db_session.scalar(
            select(PostalCode.usage_count).where(PostalCode.id == result.postal_code_id)
        )
        assert usage == 1

    @pytest.mark.asyncio
    async def test_lookup_prefers_most_used(self, service, db_session, imported):
        first = await service.lookup_by_code("380001", db_session)

        second = await service.lookup_by_code("380001", db_session)

        # 第一次查询后该区域使用次数最高
        assert second.postal_code_id == first.postal_code_id
        assert second.area == "Ellis Bridge"

    @pytest.mark.asyncio
    async def test_lookup_skips_inactive(self, service, db_session, imported):
        postal_code = await db_session.scalar(select(PostalCode).where(PostalCode.pincode == "400001"))
        postal_code.is_active = False
        await db_session.commit()

        result = await service.lookup_by_code("400001", db_session)

        assert result.found is False

    @pytest.mark.asyncio
    async def test_lookup_not_found(self, service, db_session):
        result = await service.lookup_by_code("999999", db_session)

        assert result.found is False
        assert result.pincode == "999999"

    @pytest.mark.asyncio
    async def test_prefix_search(self, service, db_session, imported):
        await service.lookup_by_code("380015", db_session)

        items = await service.search_postal_codes("380", db_session)

        assert [item.pincode for item in items] == ["380015", "380001", "380001"]
        assert items[0].city_name == "Ahmedabad"
        assert items[0].state_name == "Gujarat"

    @pytest.mark.asyncio
    async def test_prefix_search_escapes_wildcards(self, service, db_session, imported):
        assert await service.search_postal_codes("3%", db_session) == []
        assert await service.search_postal_codes("  ", db_session) == []

    @pytest.mark.asyncio
    async def test_autocomplete_short_query(self, service, db_session, imported):
        result = await service.autocomplete("3", db_session)

        assert result.hits == []

    @pytest.mark.asyncio
    async def test_autocomplete_falls_back_to_database(self, service, db_session, imported):
        result = await service.autocomplete("4000", db_session)

        assert result.estimated_total_hits == 1
        assert result.hits[0]["pincode"] == "400001"

    @pytest.mark.asyncio
    async def test_autocomplete_uses_search_index(self, service, search_sync, db_session):
        async def search(query, limit=10, active_only=True):
            return {"hits": [{"id": "pc-1", "pincode": "380001"}], "estimatedTotalHits": 7, "processingTimeMs": 2}

        search_sync.search = search

        result = await service.autocomplete("3800", db_session)

        assert result.estimated_total_hits == 7
        assert result.hits == [{"id": "pc-1", "pincode": "380001"}]


class TestListAndExport:
    """分页列表、导出"""

    @pytest.mark.asyncio
    async def test_list_states_by_country(self, service, db_session, imported):
        country_id = await db_session.scalar(select(Country.id))

        items, total = await service.list_locations("states", db_session, parent_id=country_id)

        assert total == 2
        assert [state.code for state in items] == ["GJ", "MH"]

    @pytest.mark.asyncio
    async def test_list_search_and_paging(self, service, db_session, imported):
        items, total = await service.list_locations("pincodes", db_session, search="380", page=2, page_size=2)

        assert total == 3
        assert [item.pincode for item in items] == ["380015"]

    @pytest.mark.asyncio
    async def test_list_filters_active(self, service, db_session, imported):
        city = await db_session.scalar(select(City).where(City.name == "Mumbai"))
        city.is_active = False
        await db_session.commit()

        items, total = await service.list_locations("city", db_session, is_active=True)

        assert total == 1
        assert items[0].name == "Ahmedabad"

    @pytest.mark.asyncio
    async def test_export_rows(self, service, db_session, imported):
        rows = await service.export_locations(db_session)

        assert len(rows) == 4
        assert rows[0] == {
            "country": "India",
            "country_code": "IN",
            "state": "Gujarat",
            "state_code": "GJ",
            "city": "Ahmedabad",
            "pincode": "380001",
            "area": "Ellis Bridge",
            "usage_count": 0,
            "is_active": True,
        }
        assert rows[-1]["state_code"] == "MH"


class TestReindex:
    """全量重建搜索索引"""

    @pytest.mark.asyncio
    async def test_reindex_pages_through_all(self, service, search_sync, db_session, imported):
        indexed = await service.reindex_postal_codes(db_session, page_size=1)

        assert indexed == 4
        assert search_sync.batches == [1, 1, 1, 1]
        assert len({doc.id for doc in search_sync.indexed}) == 4

    @pytest.mark.asyncio
    async def test_reindex_disabled(self, db_session, imported):
        service = LocationService(search_sync=SearchIndexSync(None))

        assert await service.reindex_postal_codes(db_session) == 0
