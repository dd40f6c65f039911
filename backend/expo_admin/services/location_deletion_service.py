# expo_admin/services/location_deletion_service.py
# 地区删除策略
#
# 功能说明：
# 删除任意层级的地区记录时，按以下顺序判断：
# 1. 记录不存在 → NotFoundError
# 2. 仍有下级记录（实时统计，不依赖缓存计数）→ DependencyExistsError，拒绝删除
# 3. 已被访客使用（usage_count > 0）→ 停用（is_active = False），保留记录
# 4. 否则物理删除，并在同一事务中把上级的计数 -1
#
# 邮编停用后重新写入搜索索引（标记为停用），物理删除后从索引中移除。
#
# 使用方法：
#   from expo_admin.services.location_deletion_service import location_deletion_service
#
#   result = await location_deletion_service.delete("city", city_id)
#   if result.soft_deleted:
#       ...
#
#   # 批量删除，单条失败不影响其他记录
#   result = await location_deletion_service.bulk_delete("pincodes", ids)

from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from expo_admin.core.database import async_session_maker
from expo_admin.core.exceptions import DependencyExistsError, LocationError, NotFoundError
from expo_admin.core.logging import get_logger
from expo_admin.models import PostalCode
from expo_admin.schemas.location import BulkDeleteError, BulkDeleteResult, DeleteResult
from expo_admin.services.location_levels import LevelSpec, LocationLevel, get_level
from expo_admin.services.location_refs import Reference, ref_id
from expo_admin.services.location_store import bump_counter, count_children, load_search_documents
from expo_admin.storage.search_index import SearchIndexSync, search_index_sync

logger = get_logger(__name__)


def _display_name(entity: Any) -> str:
    """错误信息中显示的名称"""
    if isinstance(entity, PostalCode):
        return f"{entity.pincode} {entity.area}".strip()
    return entity.name


class LocationDeletionService:
    """地区删除：拒绝 / 停用 / 物理删除"""

    def __init__(self, search_sync: Optional[SearchIndexSync] = None):
        self.search_sync = search_sync if search_sync is not None else search_index_sync

    async def delete(
        self,
        level: str,
        ref: Reference,
        session: Optional[AsyncSession] = None,
    ) -> DeleteResult:
        """
        删除一条地区记录

        Args:
            level: 层级名或 API 路径段
            ref: 记录 ID（字符串、IdRef、Resolved 或 LocationRef）
            session: 数据库会话（可选）

        Returns:
            DeleteResult: deleted（物理删除）或 soft_deleted（停用）

        Raises:
            NotFoundError: 记录不存在
            DependencyExistsError: 仍有下级记录
        """
        spec = get_level(level)
        entity_id = ref_id(ref)
        if session is not None:
            return await self._delete_impl(spec, entity_id, session)
        async with async_session_maker() as session:
            return await self._delete_impl(spec, entity_id, session)

    async def bulk_delete(
        self,
        level: str,
        ids: list[str],
        session: Optional[AsyncSession] = None,
    ) -> BulkDeleteResult:
        """
        批量删除，逐条应用删除策略

        单条失败记录原因后继续，不中断整批。
        """
        spec = get_level(level)
        if session is None:
            async with async_session_maker() as session:
                return await self._bulk_delete_impl(spec, ids, session)
        return await self._bulk_delete_impl(spec, ids, session)

    async def _bulk_delete_impl(self, spec: LevelSpec, ids: list[str], session: AsyncSession) -> BulkDeleteResult:
        result = BulkDeleteResult()
        for entity_id in ids:
            try:
                outcome = await self._delete_impl(spec, entity_id, session)
            except LocationError as e:
                result.failed += 1
                result.errors.append(BulkDeleteError(id=entity_id, reason=str(e)))
                continue

            if outcome.deleted:
                result.deleted += 1
            else:
                result.soft_deleted += 1

        logger.info(
            f"[LocationDeletionService] 批量删除{spec.label}: 删除 {result.deleted}, "
            f"停用 {result.soft_deleted}, 失败 {result.failed}"
        )
        return result

    async def _delete_impl(self, spec: LevelSpec, entity_id: str, session: AsyncSession) -> DeleteResult:
        entity = await session.get(spec.model, entity_id)
        if entity is None:
            raise NotFoundError(spec.label, entity_id)

        name = _display_name(entity)
        usage_count = entity.usage_count
        parent_id = getattr(entity, spec.parent_fk) if spec.parent_fk else None

        # 1. 仍有下级记录：拒绝删除
        if spec.child_model is not None:
            child_count = await count_children(session, spec.child_model, spec.child_fk, entity_id)
            if child_count > 0:
                raise DependencyExistsError(spec.label, name, spec.child_label, child_count)

        # 2. 已被使用：停用
        if usage_count > 0:
            entity.is_active = False
            await session.commit()
            logger.info(f"[LocationDeletionService] {spec.label}已被使用 {usage_count} 次，停用: {name}")
            if spec.level == LocationLevel.POSTAL_CODE:
                await self._reindex_postal_code(session, entity_id)
            return DeleteResult(soft_deleted=True, usage_count=usage_count)

        # 3. 物理删除，上级计数 -1
        try:
            await session.delete(entity)
            await session.flush()
            if parent_id is not None:
                await bump_counter(session, spec.parent_model, parent_id, spec.parent_counter, -1)
            await session.commit()
        except IntegrityError as e:
            # 检查之后、删除之前有新的下级记录写入
            await session.rollback()
            child_count = 0
            if spec.child_model is not None:
                child_count = await count_children(session, spec.child_model, spec.child_fk, entity_id)
            raise DependencyExistsError(spec.label, name, spec.child_label or "下级记录", child_count) from e

        logger.info(f"[LocationDeletionService] 已删除{spec.label}: {name}")
        if spec.level == LocationLevel.POSTAL_CODE:
            await self.search_sync.remove_document(entity_id)
        return DeleteResult(deleted=True)

    async def _reindex_postal_code(self, session: AsyncSession, postal_code_id: str) -> None:
        documents = await load_search_documents(session, PostalCode.id == postal_code_id)
        if documents:
            await self.search_sync.index_documents(documents)


# 全局实例
location_deletion_service = LocationDeletionService()
