# tests/test_location_api.py
# 地区管理 API 测试
#
# 通过 httpx.ASGITransport 直接调用应用，get_db 依赖替换为测试数据库

import httpx
import pytest

from expo_admin.core.database import get_db
from expo_admin.main import app


@pytest.fixture
async def client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def import_payload():
    return {
        "locations": [
            {
                "country": "India",
                "country_code": "IN",
                "state": "Gujarat",
                "state_code": "GJ",
                "city": "Ahmedabad",
                "pincode": "380001",
                "area": "Ellis Bridge",
            },
            {
                "country": "India",
                "country_code": "IN",
                "state": "Gujarat",
                "state_code": "GJ",
                "city": "Ahmedabad",
                "pincode": "380002",
                "area": "Navrangpura",
            },
        ]
    }


class TestImportApi:
    """导入导出"""

    @pytest.mark.asyncio
    async def test_bulk_import(self, client, import_payload):
        response = await client.post("/admin/locations/bulk-import", json=import_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] == 2
        assert data["details"]["countries_created"] == 1
        assert data["details"]["pincodes_created"] == 2

    @pytest.mark.asyncio
    async def test_import_csv(self, client):
        body = "Country,Country Code,State,State Code,City,PIN Code,Area\nIndia,IN,Gujarat,GJ,Surat,395001,Athwa\n"

        response = await client.post(
            "/admin/locations/import-csv",
            content=body.encode("utf-8"),
            headers={"Content-Type": "text/csv"},
        )

        assert response.status_code == 200
        assert response.json()["success"] == 1

    @pytest.mark.asyncio
    async def test_import_csv_without_rows(self, client):
        response = await client.post("/admin/locations/import-csv", content=b"Country,City\n")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_export_csv(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)

        response = await client.get("/admin/locations/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.splitlines()
        assert lines[0] == "Country,Country Code,State,State Code,City,PIN Code,Area,Usage Count,Active"
        assert lines[1] == "India,IN,Gujarat,GJ,Ahmedabad,380001,Ellis Bridge,0,Yes"


class TestLookupApi:
    """邮编查询"""

    @pytest.mark.asyncio
    async def test_lookup(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)

        response = await client.get("/admin/locations/pincode/380001")

        assert response.status_code == 200
        data = response.json()
        assert data["found"] is True
        assert data["city"]["name"] == "Ahmedabad"
        assert data["state"]["code"] == "GJ"
        assert data["areas"] == ["Ellis Bridge"]

    @pytest.mark.asyncio
    async def test_prefix_search(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)

        response = await client.get("/admin/locations/search/pincodes", params={"q": "38000"})

        assert response.status_code == 200
        assert [item["pincode"] for item in response.json()] == ["380001", "380002"]

    @pytest.mark.asyncio
    async def test_autocomplete_without_search_engine(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)

        response = await client.get("/admin/locations/search/pincodes/autocomplete", params={"q": "380002"})

        assert response.status_code == 200
        assert response.json()["hits"][0]["area"] == "Navrangpura"


class TestCrudApi:
    """增删改查与错误码"""

    @pytest.mark.asyncio
    async def test_create_and_get_country(self, client):
        created = await client.post("/admin/locations/countries", json={"name": "India", "code": "in"})

        assert created.status_code == 201
        country = created.json()
        assert country["code"] == "IN"

        fetched = await client.get(f"/admin/locations/countries/{country['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["name"] == "India"

    @pytest.mark.asyncio
    async def test_duplicate_country_is_409(self, client):
        await client.post("/admin/locations/countries", json={"name": "India", "code": "IN"})

        response = await client.post("/admin/locations/countries", json={"name": "Bharat", "code": "IN"})

        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFLICT"
        assert response.json()["context"]["field"] == "code"

    @pytest.mark.asyncio
    async def test_invalid_state_code_is_422(self, client):
        country = (await client.post("/admin/locations/countries", json={"name": "India", "code": "IN"})).json()

        response = await client.post(
            "/admin/locations/states",
            json={"country_id": country["id"], "name": "Gujarat", "code": "GJ-01"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_missing_parent_is_404(self, client):
        response = await client.post("/admin/locations/cities", json={"state_id": "missing-id", "name": "Surat"})

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_update_city(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)
        city = (await client.get("/admin/locations/cities")).json()["items"][0]

        response = await client.put(f"/admin/locations/cities/{city['id']}", json={"name": "Amdavad"})

        assert response.status_code == 200
        assert response.json()["name"] == "Amdavad"

    @pytest.mark.asyncio
    async def test_list_pincodes_by_city(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)
        city = (await client.get("/admin/locations/cities")).json()["items"][0]

        response = await client.get("/admin/locations/pincodes", params={"parent_id": city["id"], "page_size": 1})

        data = response.json()
        assert data["total"] == 2
        assert len(data["items"]) == 1
        assert data["items"][0]["pincode"] == "380001"

    @pytest.mark.asyncio
    async def test_unknown_level_is_404(self, client):
        response = await client.get("/admin/locations/districts")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_record_is_404(self, client):
        response = await client.get("/admin/locations/cities/missing-id")

        assert response.status_code == 404


class TestDeleteApi:
    """删除与重算"""

    @pytest.mark.asyncio
    async def test_delete_with_children_is_400(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)
        country = (await client.get("/admin/locations/countries")).json()["items"][0]

        response = await client.delete(f"/admin/locations/countries/{country['id']}")

        assert response.status_code == 400
        data = response.json()
        assert data["error_code"] == "DEPENDENCY_EXISTS"
        assert data["context"]["child_count"] == 1

    @pytest.mark.asyncio
    async def test_delete_unused_pincode(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)
        pincode = (await client.get("/admin/locations/pincodes")).json()["items"][0]

        response = await client.delete(f"/admin/locations/pincodes/{pincode['id']}")

        assert response.status_code == 200
        assert response.json() == {"deleted": True, "soft_deleted": False, "usage_count": 0}

    @pytest.mark.asyncio
    async def test_bulk_delete(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)
        items = (await client.get("/admin/locations/pincodes")).json()["items"]

        response = await client.post(
            "/admin/locations/pincodes/bulk-delete",
            json={"ids": [items[0]["id"], "missing-id"]},
        )

        data = response.json()
        assert data["deleted"] == 1
        assert data["failed"] == 1

    @pytest.mark.asyncio
    async def test_recalculate_usage(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)

        response = await client.post("/admin/locations/cities/recalculate-usage")

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["updated"] == 0

    @pytest.mark.asyncio
    async def test_recalculate_all_usage(self, client, import_payload):
        await client.post("/admin/locations/bulk-import", json=import_payload)

        response = await client.post("/admin/locations/recalculate-all-usage")

        assert response.status_code == 200
        assert response.json()["postal_codes"]["total"] == 2

    @pytest.mark.asyncio
    async def test_reindex_without_search_engine(self, client):
        response = await client.post("/admin/locations/reindex")

        assert response.json() == {"indexed": 0}
