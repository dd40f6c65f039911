# expo_admin/storage/search_index.py
# 邮编全文搜索索引（Meilisearch）
#
# 功能说明：
# 1. SearchIndexClient - 通过 httpx 调用 Meilisearch HTTP API
#    （索引设置、写入文档、删除文档、搜索、清空），失败抛出 IndexSyncError
# 2. SearchIndexSync - 对 SearchIndexClient 的"尽力而为"封装：
#    捕获所有 IndexSyncError，记录警告并返回 False，永远不会向调用方抛异常
#    数据库是唯一的数据源，搜索索引落后时可以用 reindex 脚本全量重建
# 3. build_search_document - 由邮编及其所属城市/州/国家构造索引文档
#
# 使用方法：
#   from expo_admin.storage.search_index import search_index_sync
#
#   await search_index_sync.index_documents([doc1, doc2])
#   await search_index_sync.remove_document(postal_code_id)
#
# 注意事项：
# - MEILISEARCH_URL 未配置时，SearchIndexSync 的所有操作都是空操作
# - Meilisearch 的写操作是异步任务，这里只确认任务已被接受

from typing import Any, Optional, Sequence

import httpx
from pydantic import BaseModel

from expo_admin.core.config import settings
from expo_admin.core.exceptions import IndexSyncError
from expo_admin.core.logging import get_logger

logger = get_logger(__name__)


# 索引设置
SEARCHABLE_ATTRIBUTES = ["pincode", "area", "city_name", "searchable_text"]
FILTERABLE_ATTRIBUTES = ["is_active", "country_code", "state_code", "city_id"]
SORTABLE_ATTRIBUTES = ["usage_count", "pincode"]
# 同一个邮编有多个区域时，搜索结果只返回一条
DISTINCT_ATTRIBUTE = "pincode"


class PostalCodeSearchDocument(BaseModel):
    """索引中的一个邮编文档"""
    id: str
    pincode: str
    area: str = ""
    city_id: str
    city_name: str
    state_id: str
    state_name: str
    state_code: Optional[str] = None
    country_id: str
    country_name: str
    country_code: Optional[str] = None
    is_active: bool = True
    usage_count: int = 0
    searchable_text: str = ""


def build_search_document(
    postal_code_id: str,
    pincode: str,
    area: Optional[str],
    city: Any,
    state: Any,
    country: Any,
    is_active: bool = True,
    usage_count: int = 0,
) -> PostalCodeSearchDocument:
    """
    构造索引文档

    city / state / country 可以是 LocationRef 快照，也可以是 ORM 实体，
    只读取 id、name、code 属性
    """
    area = area or ""
    parts = [pincode, area, city.name, state.name, country.name]
    searchable_text = " ".join(p for p in parts if p).lower()

    return PostalCodeSearchDocument(
        id=postal_code_id,
        pincode=pincode,
        area=area,
        city_id=city.id,
        city_name=city.name,
        state_id=state.id,
        state_name=state.name,
        state_code=getattr(state, "code", None),
        country_id=country.id,
        country_name=country.name,
        country_code=getattr(country, "code", None),
        is_active=is_active,
        usage_count=usage_count,
        searchable_text=searchable_text,
    )


class SearchIndexClient:
    """
    Meilisearch HTTP 客户端

    每次请求新建 httpx.AsyncClient；测试时可传入 transport（如 httpx.MockTransport）
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        index_name: str = "pincodes",
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.index_name = index_name
        self.timeout = timeout
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json_data: Any = None,
    ) -> Any:
        """
        发送请求

        Raises:
            IndexSyncError: 网络错误、超时、URL 非法、非 2xx 响应、响应不是 JSON
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    path,
                    params=params,
                    json=json_data,
                    headers=headers,
                )
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            raise IndexSyncError(
                f"搜索索引请求失败: {method} {path} -> {e.response.status_code}",
                {"path": path, "status_code": e.response.status_code},
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise IndexSyncError(f"搜索索引请求失败: {method} {path}: {e}", {"path": path}) from e

    @property
    def _index_path(self) -> str:
        return f"/indexes/{self.index_name}"

    async def configure_index(self) -> None:
        """创建索引（已存在时 Meilisearch 任务失败，不影响）并更新索引设置"""
        await self._request("POST", "/indexes", json_data={"uid": self.index_name, "primaryKey": "id"})
        await self._request(
            "PATCH",
            f"{self._index_path}/settings",
            json_data={
                "searchableAttributes": SEARCHABLE_ATTRIBUTES,
                "filterableAttributes": FILTERABLE_ATTRIBUTES,
                "sortableAttributes": SORTABLE_ATTRIBUTES,
                "distinctAttribute": DISTINCT_ATTRIBUTE,
            },
        )

    async def add_documents(self, documents: Sequence[PostalCodeSearchDocument]) -> None:
        """写入或覆盖文档（按 id）"""
        await self._request(
            "POST",
            f"{self._index_path}/documents",
            params={"primaryKey": "id"},
            json_data=[doc.model_dump() for doc in documents],
        )

    async def delete_document(self, document_id: str) -> None:
        await self._request("DELETE", f"{self._index_path}/documents/{document_id}")

    async def search(
        self,
        query: str,
        limit: int = 10,
        filters: Optional[str] = None,
    ) -> dict:
        body: dict[str, Any] = {"q": query, "limit": limit}
        if filters:
            body["filter"] = filters
        return await self._request("POST", f"{self._index_path}/search", json_data=body)

    async def clear(self) -> None:
        """删除索引中的全部文档"""
        await self._request("DELETE", f"{self._index_path}/documents")


class SearchIndexSync:
    """
    搜索索引同步（尽力而为）

    所有方法返回 bool（search 返回 None 表示失败），不抛任何异常。
    IndexSyncError 只记录一行警告，其他异常（例如 URL 非法）附带堆栈记录。
    调用方在数据库提交之后调用，索引失败不会回滚数据库。
    """

    def __init__(self, client: Optional[SearchIndexClient] = None):
        self.client = client

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def ensure_index(self) -> bool:
        if not self.enabled:
            logger.debug("[SearchIndexSync] 未配置 MEILISEARCH_URL，跳过索引设置")
            return False
        try:
            await self.client.configure_index()
            logger.info(f"[SearchIndexSync] 索引设置已更新: {self.client.index_name}")
            return True
        except IndexSyncError as e:
            logger.warning(f"[SearchIndexSync] 索引设置失败: {e}")
            return False
        except Exception as e:
            logger.warning(f"[SearchIndexSync] 索引设置异常: {e}", exc_info=True)
            return False

    async def index_documents(
        self,
        documents: Sequence[PostalCodeSearchDocument],
        chunk_size: Optional[int] = None,
    ) -> bool:
        """
        分批写入文档

        某一批失败只记录警告，继续写后面的批次。

        Returns:
            bool: 所有批次都成功时为 True
        """
        if not documents:
            return True
        if not self.enabled:
            logger.debug(f"[SearchIndexSync] 未配置 MEILISEARCH_URL，跳过 {len(documents)} 个文档")
            return False

        chunk_size = chunk_size or settings.LOCATION_IMPORT_INDEX_CHUNK
        all_ok = True
        for start in range(0, len(documents), chunk_size):
            chunk = documents[start:start + chunk_size]
            try:
                await self.client.add_documents(chunk)
            except IndexSyncError as e:
                all_ok = False
                logger.warning(
                    f"[SearchIndexSync] 写入索引失败 "
                    f"(第 {start + 1}-{start + len(chunk)} 个文档): {e}"
                )
            except Exception as e:
                all_ok = False
                logger.warning(
                    f"[SearchIndexSync] 写入索引异常 "
                    f"(第 {start + 1}-{start + len(chunk)} 个文档): {e}",
                    exc_info=True,
                )
        return all_ok

    async def index_document(self, document: PostalCodeSearchDocument) -> bool:
        return await self.index_documents([document])

    async def remove_document(self, document_id: str) -> bool:
        if not self.enabled:
            return False
        try:
            await self.client.delete_document(document_id)
            return True
        except IndexSyncError as e:
            logger.warning(f"[SearchIndexSync] 删除索引文档失败 {document_id}: {e}")
            return False
        except Exception as e:
            logger.warning(f"[SearchIndexSync] 删除索引文档异常 {document_id}: {e}", exc_info=True)
            return False

    async def search(
        self,
        query: str,
        limit: int = 10,
        active_only: bool = True,
    ) -> Optional[dict]:
        """搜索，失败或未配置时返回 None"""
        if not self.enabled:
            return None
        try:
            return await self.client.search(
                query,
                limit=limit,
                filters="is_active = true" if active_only else None,
            )
        except IndexSyncError as e:
            logger.warning(f"[SearchIndexSync] 搜索失败 '{query}': {e}")
            return None
        except Exception as e:
            logger.warning(f"[SearchIndexSync] 搜索异常 '{query}': {e}", exc_info=True)
            return None

    async def clear(self) -> bool:
        if not self.enabled:
            return False
        try:
            await self.client.clear()
            return True
        except IndexSyncError as e:
            logger.warning(f"[SearchIndexSync] 清空索引失败: {e}")
            return False
        except Exception as e:
            logger.warning(f"[SearchIndexSync] 清空索引异常: {e}", exc_info=True)
            return False


def create_search_index_sync() -> SearchIndexSync:
    """根据配置创建同步器，MEILISEARCH_URL 为空时返回空操作的同步器"""
    if not settings.MEILISEARCH_URL:
        return SearchIndexSync(None)
    client = SearchIndexClient(
        base_url=settings.MEILISEARCH_URL,
        api_key=settings.MEILISEARCH_MASTER_KEY,
        index_name=settings.MEILISEARCH_PINCODE_INDEX,
        timeout=settings.MEILISEARCH_TIMEOUT,
    )
    return SearchIndexSync(client)


# 全局实例
search_index_sync = create_search_index_sync()
