# tests/test_search_index.py
# 搜索索引客户端与同步器测试
#
# 使用 httpx.MockTransport 拦截请求，不需要真实的 Meilisearch

import json

import httpx
import pytest

from expo_admin.core.exceptions import IndexSyncError
from expo_admin.services.location_refs import LocationRef
from expo_admin.storage.search_index import (
    DISTINCT_ATTRIBUTE,
    SearchIndexClient,
    SearchIndexSync,
    build_search_document,
)


CITY = LocationRef(id="city-1", name="Ahmedabad", parent_id="state-1")
STATE = LocationRef(id="state-1", name="Gujarat", code="GJ", parent_id="country-1")
COUNTRY = LocationRef(id="country-1", name="India", code="IN")


def make_doc(index: int = 1, area: str = "Ellis Bridge"):
    return build_search_document(f"pc-{index}", f"38000{index}", area, CITY, STATE, COUNTRY)


class RecordingTransport:
    """记录请求并返回固定响应"""

    def __init__(self, status_code: int = 202, body=None):
        self.requests: list[httpx.Request] = []
        self.status_code = status_code
        self.body = body if body is not None else {"taskUid": 1}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def make_client(recorder: RecordingTransport, api_key: str = "") -> SearchIndexClient:
    return SearchIndexClient("http://search.test/", api_key=api_key, transport=recorder.transport)


class TestBuildSearchDocument:
    """索引文档构造"""

    def test_fields(self):
        doc = make_doc()

        assert doc.id == "pc-1"
        assert doc.city_id == "city-1"
        assert doc.state_code == "GJ"
        assert doc.country_code == "IN"
        assert doc.is_active is True
        assert doc.searchable_text == "380001 ellis bridge ahmedabad gujarat india"

    def test_empty_area_is_skipped_in_text(self):
        doc = make_doc(area=None)

        assert doc.area == ""
        assert doc.searchable_text == "380001 ahmedabad gujarat india"


class TestSearchIndexClient:
    """HTTP 请求格式"""

    @pytest.mark.asyncio
    async def test_add_documents(self):
        recorder = RecordingTransport()
        client = make_client(recorder, api_key="master-key")

        await client.add_documents([make_doc(1), make_doc(2)])

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/indexes/pincodes/documents"
        assert request.url.params["primaryKey"] == "id"
        assert request.headers["Authorization"] == "Bearer master-key"
        body = json.loads(request.content)
        assert [doc["pincode"] for doc in body] == ["380001", "380002"]

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self):
        recorder = RecordingTransport()

        await make_client(recorder).delete_document("pc-1")

        request = recorder.requests[0]
        assert request.method == "DELETE"
        assert request.url.path == "/indexes/pincodes/documents/pc-1"
        assert "Authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_configure_index(self):
        recorder = RecordingTransport()

        await make_client(recorder).configure_index()

        create, settings_patch = recorder.requests
        assert create.url.path == "/indexes"
        assert json.loads(create.content) == {"uid": "pincodes", "primaryKey": "id"}
        assert settings_patch.method == "PATCH"
        assert settings_patch.url.path == "/indexes/pincodes/settings"
        body = json.loads(settings_patch.content)
        assert body["distinctAttribute"] == DISTINCT_ATTRIBUTE
        assert "is_active" in body["filterableAttributes"]

    @pytest.mark.asyncio
    async def test_search(self):
        recorder = RecordingTransport(status_code=200, body={"hits": [{"id": "pc-1"}]})

        result = await make_client(recorder).search("3800", limit=5, filters="is_active = true")

        assert result == {"hits": [{"id": "pc-1"}]}
        body = json.loads(recorder.requests[0].content)
        assert body == {"q": "3800", "limit": 5, "filter": "is_active = true"}

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        recorder = RecordingTransport(status_code=500, body={"message": "down"})

        with pytest.raises(IndexSyncError) as exc_info:
            await make_client(recorder).clear()

        assert exc_info.value.context["status_code"] == 500

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = SearchIndexClient("http://search.test", transport=httpx.MockTransport(refuse))

        with pytest.raises(IndexSyncError):
            await client.add_documents([make_doc()])

    @pytest.mark.asyncio
    async def test_invalid_url_raises(self):
        client = SearchIndexClient("http://meili\x00host:7700")

        with pytest.raises(IndexSyncError):
            await client.clear()


class TestSearchIndexSync:
    """尽力而为的同步：失败只返回 False"""

    @pytest.mark.asyncio
    async def test_documents_are_chunked(self):
        recorder = RecordingTransport()
        sync = SearchIndexSync(make_client(recorder))

        ok = await sync.index_documents([make_doc(i) for i in range(1, 6)], chunk_size=2)

        assert ok is True
        sizes = [len(json.loads(request.content)) for request in recorder.requests]
        assert sizes == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_failed_chunk_does_not_stop_others(self):
        calls = {"count": 0}

        def handler(request):
            calls["count"] += 1
            if calls["count"] == 1:
                return httpx.Response(503, json={"message": "busy"})
            return httpx.Response(202, json={"taskUid": calls["count"]})

        sync = SearchIndexSync(SearchIndexClient("http://search.test", transport=httpx.MockTransport(handler)))

        ok = await sync.index_documents([make_doc(i) for i in range(1, 5)], chunk_size=2)

        assert ok is False
        assert calls["count"] == 2

    @pytest.mark.asyncio
    async def test_errors_are_swallowed(self):
        recorder = RecordingTransport(status_code=500, body={"message": "down"})
        sync = SearchIndexSync(make_client(recorder))

        assert await sync.ensure_index() is False
        assert await sync.index_document(make_doc()) is False
        assert await sync.remove_document("pc-1") is False
        assert await sync.clear() is False
        assert await sync.search("3800") is None

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_swallowed(self):
        def broken(request):
            raise RuntimeError("transport bug")

        sync = SearchIndexSync(SearchIndexClient("http://search.test", transport=httpx.MockTransport(broken)))

        assert await sync.ensure_index() is False
        assert await sync.index_documents([make_doc(i) for i in range(1, 4)], chunk_size=2) is False
        assert await sync.remove_document("pc-1") is False
        assert await sync.clear() is False
        assert await sync.search("3800") is None

    @pytest.mark.asyncio
    async def test_search_filters_active_by_default(self):
        recorder = RecordingTransport(status_code=200, body={"hits": []})
        sync = SearchIndexSync(make_client(recorder))

        await sync.search("3800")
        await sync.search("3800", active_only=False)

        first, second = (json.loads(r.content) for r in recorder.requests)
        assert first["filter"] == "is_active = true"
        assert "filter" not in second

    @pytest.mark.asyncio
    async def test_disabled_sync_is_noop(self):
        sync = SearchIndexSync(None)

        assert sync.enabled is False
        assert await sync.index_documents([make_doc()]) is False
        assert await sync.index_documents([]) is True
        assert await sync.remove_document("pc-1") is False
        assert await sync.search("3800") is None
