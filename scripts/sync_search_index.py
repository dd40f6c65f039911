#!/usr/bin/env python3
# scripts/sync_search_index.py
# 重建邮编搜索索引（Meilisearch）
#
# 功能说明：
# 1. 更新索引设置（可搜索字段、过滤字段、去重字段）
# 2. 可选：清空索引中的全部文档
# 3. 从数据库分页读取所有邮编及其层级，写入索引
#
# 搜索索引只是数据库的副本，同步失败或数据不一致时运行本脚本即可恢复。
#
# 使用方法：
#   python scripts/sync_search_index.py
#
#   # 先清空再重建（会删除索引中已不存在于数据库的文档）
#   python scripts/sync_search_index.py --clear
#
# 注意事项：
# - 需要配置环境变量：MEILISEARCH_URL, MEILISEARCH_MASTER_KEY

import asyncio
import argparse
import sys
import os

# 将 backend 目录添加到 Python 路径
# 这样才能正确导入 expo_admin 模块
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from expo_admin.core.database import async_session_maker, close_db
from expo_admin.core.logging import setup_logging
from expo_admin.services.location_service import location_service
from expo_admin.storage.search_index import search_index_sync


async def sync_index(clear: bool, page_size: int) -> bool:
    """
    重建搜索索引

    Args:
        clear: 是否先清空索引
        page_size: 每页读取/写入的文档数
    """
    if not search_index_sync.enabled:
        print("❌ 未配置 MEILISEARCH_URL")
        return False

    try:
        if clear:
            if not await search_index_sync.clear():
                print("❌ 清空索引失败")
                return False
            print("已清空索引")

        async with async_session_maker() as session:
            indexed = await location_service.reindex_postal_codes(session, page_size=page_size)
    finally:
        await close_db()

    print(f"✅ 已写入 {indexed} 个文档")
    return True


def main():
    """
    主函数：解析命令行参数并重建索引
    """
    parser = argparse.ArgumentParser(
        description="重建邮编搜索索引",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  python scripts/sync_search_index.py
  python scripts/sync_search_index.py --clear --page-size 2000
        """
    )

    parser.add_argument(
        "--clear",
        action="store_true",
        help="重建前清空索引"
    )

    parser.add_argument(
        "--page-size",
        type=int,
        default=1000,
        help="每页文档数（默认: 1000）"
    )

    args = parser.parse_args()
    setup_logging()

    success = asyncio.run(sync_index(args.clear, args.page_size))

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
