# expo_admin/services/location_usage_service.py
# 地区使用次数重算服务
#
# 功能说明：
# 按访客与报名数据重新计算各层级的 usage_count：
#   使用次数 = 引用该地区、且至少有一条有效报名（状态不是 cancelled）的访客数（去重）
#
# 处理方式：
# 1. 按 ID 键集分页扫描（每页 LOCATION_RECONCILE_BATCH_SIZE 条），不一次性加载全表
# 2. 每页用一条分组查询统计整页的使用次数
# 3. 只有计算值与当前值不同时才写入，每条记录单独提交
# 4. 单条记录写入失败只记录错误，继续处理后面的记录
#
# 重算是幂等的：数据没有变化时第二次执行 updated = 0
#
# 使用方法：
#   from expo_admin.services.location_usage_service import location_usage_service
#
#   result = await location_usage_service.recalculate("city")
#   summary = await location_usage_service.recalculate_all()

from typing import Optional

from sqlalchemy import select, update, func, exists
from sqlalchemy.ext.asyncio import AsyncSession

from expo_admin.core.config import settings
from expo_admin.core.database import async_session_maker
from expo_admin.core.logging import get_logger
from expo_admin.models import GlobalVisitor, ExhibitionRegistration, RegistrationStatus
from expo_admin.schemas.location import UsageRecalcResult, UsageRecalcSummary
from expo_admin.services.location_levels import LevelSpec, LocationLevel, get_level

logger = get_logger(__name__)

# 单次重算最多保留的错误条数
MAX_RECALC_ERRORS = 100


class LocationUsageService:
    """地区使用次数重算"""

    def __init__(self, batch_size: Optional[int] = None):
        self.batch_size = batch_size or settings.LOCATION_RECONCILE_BATCH_SIZE

    async def recalculate(
        self,
        level: str,
        session: Optional[AsyncSession] = None,
    ) -> UsageRecalcResult:
        """
        重算一个层级的使用次数

        Args:
            level: 层级名（country/state/city/postal_code）或 API 路径段
            session: 数据库会话（可选）

        Returns:
            UsageRecalcResult: total 扫描条数, updated 实际修改条数, 以及错误
        """
        spec = get_level(level)
        if session is not None:
            return await self._recalculate_impl(spec, session)
        async with async_session_maker() as session:
            return await self._recalculate_impl(spec, session)

    async def recalculate_all(self, session: Optional[AsyncSession] = None) -> UsageRecalcSummary:
        """依次重算四个层级"""
        if session is None:
            async with async_session_maker() as session:
                return await self._recalculate_all_impl(session)
        return await self._recalculate_all_impl(session)

    async def _recalculate_all_impl(self, session: AsyncSession) -> UsageRecalcSummary:
        return UsageRecalcSummary(
            countries=await self._recalculate_impl(get_level(LocationLevel.COUNTRY), session),
            states=await self._recalculate_impl(get_level(LocationLevel.STATE), session),
            cities=await self._recalculate_impl(get_level(LocationLevel.CITY), session),
            postal_codes=await self._recalculate_impl(get_level(LocationLevel.POSTAL_CODE), session),
        )

    async def _recalculate_impl(self, spec: LevelSpec, session: AsyncSession) -> UsageRecalcResult:
        model = spec.model
        result = UsageRecalcResult()
        last_id: Optional[str] = None

        logger.info(f"[LocationUsageService] 开始重算{spec.label}使用次数")

        while True:
            # 键集分页：按 ID 升序，每页从上一页最后一个 ID 之后开始
            stmt = select(model.id, model.usage_count).order_by(model.id).limit(self.batch_size)
            if last_id is not None:
                stmt = stmt.where(model.id > last_id)
            rows = (await session.execute(stmt)).all()
            if not rows:
                break

            last_id = rows[-1].id
            result.total += len(rows)
            counts = await self._count_usage(session, spec.visitor_column, [row.id for row in rows])

            for row in rows:
                actual = counts.get(row.id, 0)
                if actual == row.usage_count:
                    continue
                try:
                    await session.execute(
                        update(model)
                        .where(model.id == row.id)
                        .values(usage_count=actual)
                        .execution_options(synchronize_session=False)
                    )
                    await session.commit()
                    result.updated += 1
                except Exception as e:
                    await session.rollback()
                    result.error_count += 1
                    if len(result.errors) < MAX_RECALC_ERRORS:
                        result.errors.append(f"{spec.label} {row.id}: {e}")
                    logger.error(f"[LocationUsageService] 更新{spec.label}使用次数失败 {row.id}: {e}")

            if len(rows) < self.batch_size:
                break

        logger.info(
            f"[LocationUsageService] {spec.label}使用次数重算完成: "
            f"共 {result.total} 条, 更新 {result.updated} 条, 失败 {result.error_count} 条"
        )
        return result

    @staticmethod
    async def _count_usage(session: AsyncSession, visitor_column: str, ids: list[str]) -> dict[str, int]:
        """统计一页地区的使用次数：{地区 ID: 有有效报名的访客数}"""
        column = getattr(GlobalVisitor, visitor_column)
        has_active_registration = exists().where(
            ExhibitionRegistration.visitor_id == GlobalVisitor.id,
            ExhibitionRegistration.status != RegistrationStatus.CANCELLED,
        )
        stmt = (
            select(column, func.count(func.distinct(GlobalVisitor.id)))
            .where(column.in_(ids), has_active_registration)
            .group_by(column)
        )
        result = await session.execute(stmt)
        return {entity_id: count for entity_id, count in result.all()}


# 全局实例
location_usage_service = LocationUsageService()
