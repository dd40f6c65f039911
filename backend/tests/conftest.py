# tests/conftest.py
# Pytest 配置文件
#
# 功能：
# 1. 测试环境变量（必须在导入 expo_admin 之前设置）
# 2. 每个测试使用独立的 SQLite 数据库文件（aiosqlite），开启外键约束
# 3. 提供通用 fixtures：数据库会话、记录调用的搜索索引同步器、示例导入数据

import os
import sys

import pytest

# 将 backend 目录添加到 Python 路径
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# ==================== 环境配置 ====================

# 测试不连接 PostgreSQL / Meilisearch
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MEILISEARCH_URL"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from expo_admin.core.database import Base
from expo_admin.schemas.location import LocationImportRow
from expo_admin.storage.search_index import SearchIndexSync
import expo_admin.models  # noqa: F401


# ==================== 数据库 Fixtures ====================

@pytest.fixture
async def engine(tmp_path):
    """每个测试一个独立的 SQLite 数据库文件"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'expo_admin.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    """会话工厂（并发测试中每个任务使用独立会话）"""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker):
    """获取数据库会话"""
    async with session_maker() as session:
        yield session


# ==================== 搜索索引 Fixtures ====================

class RecordingSearchSync(SearchIndexSync):
    """记录所有调用的搜索索引同步器（不发送 HTTP 请求）"""

    def __init__(self):
        super().__init__(None)
        self.indexed = []
        self.batches = []
        self.removed = []

    @property
    def enabled(self) -> bool:
        return True

    async def ensure_index(self) -> bool:
        return True

    async def index_documents(self, documents, chunk_size=None) -> bool:
        self.batches.append(len(documents))
        self.indexed.extend(documents)
        return True

    async def remove_document(self, document_id: str) -> bool:
        self.removed.append(document_id)
        return True

    async def search(self, query, limit=10, active_only=True):
        return None

    async def clear(self) -> bool:
        return True


@pytest.fixture
def search_sync():
    return RecordingSearchSync()


# ==================== 示例数据 ====================

@pytest.fixture
def gujarat_rows():
    """同一城市下两个邮编"""
    return [
        LocationImportRow(
            country="India",
            country_code="IN",
            state="Gujarat",
            state_code="GJ",
            city="Ahmedabad",
            pincode="380001",
            area="Ellis Bridge",
        ),
        LocationImportRow(
            country="India",
            country_code="IN",
            state="Gujarat",
            state_code="GJ",
            city="Ahmedabad",
            pincode="380002",
            area="Navrangpura",
        ),
    ]
