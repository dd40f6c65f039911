# expo_admin/core/database.py
# 数据库连接模块
#
# 功能说明：
# 1. 创建 SQLAlchemy 异步引擎和会话工厂
# 2. 提供 ORM 基类 Base
# 3. 提供 FastAPI 依赖 get_db
# 4. 识别唯一约束冲突（并发写入时的"已存在"信号）
#
# 使用方法：
#   from expo_admin.core.database import Base, get_db, async_session_maker
#
#   async with async_session_maker() as session:
#       ...

from typing import AsyncGenerator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from expo_admin.core.config import settings


class Base(DeclarativeBase):
    """所有 ORM 模型的基类"""
    pass


# 异步引擎
# DEBUG 模式下输出 SQL 语句
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# 会话工厂
# expire_on_commit=False：提交后对象属性仍然可读，避免异步环境下的隐式懒加载
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 依赖：获取数据库会话

    使用示例：
        @router.get("/items")
        async def list_items(session: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_maker() as session:
        yield session


async def init_db() -> None:
    """根据模型定义建表（开发环境使用，生产环境使用 Alembic 迁移）"""
    # 导入模型，确保所有表都注册到 Base.metadata
    import expo_admin.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """关闭连接池"""
    await engine.dispose()


# ==================== 唯一约束冲突识别 ====================

# PostgreSQL unique_violation 的 SQLSTATE
PG_UNIQUE_VIOLATION = "23505"


def is_duplicate_key_error(exc: IntegrityError) -> bool:
    """
    判断 IntegrityError 是否由唯一约束冲突引起

    外键约束、非空约束同样会抛出 IntegrityError，只有唯一约束冲突
    才表示"并发写入方已经创建了同一条记录"。

    - asyncpg: 原始异常带 sqlstate 属性
    - psycopg: 原始异常带 pgcode / sqlstate 属性
    - sqlite: 只能通过错误信息判断
    """
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return code == PG_UNIQUE_VIOLATION

    message = str(orig if orig is not None else exc).lower()
    return "unique constraint" in message or "duplicate key" in message
