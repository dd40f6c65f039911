# expo_admin/storage/__init__.py
# 存储层模块
#
# 这个模块包含外部存储资源的访问实现：
# - search_index.py: Meilisearch 邮编全文搜索索引

from expo_admin.storage.search_index import (
    search_index_sync,
    create_search_index_sync,
    build_search_document,
    PostalCodeSearchDocument,
    SearchIndexClient,
    SearchIndexSync,
)

__all__ = [
    "search_index_sync",
    "create_search_index_sync",
    "build_search_document",
    "PostalCodeSearchDocument",
    "SearchIndexClient",
    "SearchIndexSync",
]
