# expo_admin/services/location_store.py
# 地区表的原子写操作
#
# 功能说明：
# 1. bump_counter - 缓存计数原子增减（UPDATE ... SET c = c + n），
#    不做"读出来再写回去"，多个导入任务同时运行时不会丢失更新
# 2. insert_with_counter - 插入一条记录并给上级计数 +1，同一个事务提交；
#    唯一约束冲突时回滚并返回 False，由调用方重新查询已存在的记录
# 3. count_children - 实时统计下级记录数
# 4. load_search_documents - 联表加载邮编的完整层级，构造搜索索引文档

from typing import Any, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from expo_admin.core.database import is_duplicate_key_error
from expo_admin.models import Country, State, City, PostalCode
from expo_admin.storage.search_index import PostalCodeSearchDocument, build_search_document


async def bump_counter(
    session: AsyncSession,
    model: type,
    entity_id: str,
    column: str,
    delta: int,
) -> None:
    """原子增减计数字段（不提交）"""
    counter = getattr(model, column)
    stmt = (
        update(model)
        .where(model.id == entity_id)
        .values({column: counter + delta})
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)


async def insert_with_counter(
    session: AsyncSession,
    entity: Any,
    parent_model: Optional[type] = None,
    parent_id: Optional[str] = None,
    parent_counter: Optional[str] = None,
) -> bool:
    """
    插入记录，并在同一事务中给上级计数 +1

    Returns:
        bool: True 表示插入成功；False 表示唯一约束冲突（记录已被其他写入方创建）

    Raises:
        IntegrityError: 非唯一约束类的完整性错误（如上级已被删除）
    """
    session.add(entity)
    try:
        await session.flush()
        if parent_model is not None and parent_id and parent_counter:
            await bump_counter(session, parent_model, parent_id, parent_counter, 1)
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        if not is_duplicate_key_error(e):
            raise
        return False
    return True


async def count_children(session: AsyncSession, child_model: type, child_fk: str, parent_id: str) -> int:
    """实时统计下级记录数（包括已停用的下级）"""
    fk = getattr(child_model, child_fk)
    return await session.scalar(
        select(func.count()).select_from(child_model).where(fk == parent_id)
    ) or 0


# ==================== 搜索索引文档 ====================

async def load_search_documents(
    session: AsyncSession,
    *criteria: Any,
    after_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> list[PostalCodeSearchDocument]:
    """
    联表查询邮编及其城市/州/国家，构造搜索索引文档

    Args:
        criteria: 额外的过滤条件（如 PostalCode.id == xxx）
        after_id: 按 ID 翻页，只返回 ID 大于它的邮编
        limit: 最多返回条数
    """
    stmt = (
        select(PostalCode, City, State, Country)
        .join(City, PostalCode.city_id == City.id)
        .join(State, City.state_id == State.id)
        .join(Country, State.country_id == Country.id)
        .where(*criteria)
        .order_by(PostalCode.id)
    )
    if after_id is not None:
        stmt = stmt.where(PostalCode.id > after_id)
    if limit is not None:
        stmt = stmt.limit(limit)

    result = await session.execute(stmt)
    return [
        build_search_document(
            postal_code.id,
            postal_code.pincode,
            postal_code.area,
            city,
            state,
            country,
            is_active=postal_code.is_active,
            usage_count=postal_code.usage_count,
        )
        for postal_code, city, state, country in result.all()
    ]
