# expo_admin/services/location_import_service.py
# 地区批量导入服务
#
# 功能说明：
# 1. 校验一行扁平地区数据（国家编码、州编码、城市、邮编）
# 2. 通过 HierarchyResolver 解析/创建 国家 → 州/省 → 城市
# 3. 按 (邮编, 城市, 区域) 去重后创建邮编，城市的邮编计数原子 +1
# 4. 统计整批结果（成功/跳过/失败 + 各层级新建数量），错误条数有上限
# 5. 整批完成后把新建的邮编分批推送到搜索索引（尽力而为）
#
# 导入规则：
# - 按输入顺序逐行处理，没有整批事务：每条记录单独提交，中途失败不回滚已导入的行
# - 同一批数据重复导入是幂等的：第二次全部计为"跳过"
# - 单行失败只记录错误，不中断整批
#
# 使用方法：
#   from expo_admin.services.location_import_service import location_import_service
#
#   result = await location_import_service.bulk_import(rows)
#   print(result.success, result.skipped, result.failed)

import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expo_admin.core.config import settings
from expo_admin.core.database import async_session_maker
from expo_admin.core.exceptions import LocationError, ValidationError
from expo_admin.core.logging import get_logger
from expo_admin.models import City, PostalCode
from expo_admin.models.location_keys import normalize_area, normalize_code
from expo_admin.schemas.location import (
    COUNTRY_CODE_PATTERN,
    PINCODE_PATTERN,
    STATE_CODE_PATTERN,
    BulkImportResult,
    LocationImportRow,
    RowImportResult,
)
from expo_admin.services.location_resolver import HierarchyResolver, ResolverCache
from expo_admin.services.location_store import insert_with_counter
from expo_admin.storage.search_index import (
    PostalCodeSearchDocument,
    SearchIndexSync,
    build_search_document,
    search_index_sync,
)

logger = get_logger(__name__)

# 名称最大长度（与模型字段一致）
MAX_NAME_LENGTH = 100
MAX_AREA_LENGTH = 200


@dataclass(frozen=True)
class ValidatedRow:
    """校验并归一化后的一行数据"""
    country_name: str
    country_code: str
    state_name: str
    state_code: str
    city: str
    pincode: str
    area: str


def _clean(value: Optional[str]) -> str:
    return value.strip() if value else ""


class LocationImportService:
    """
    地区批量导入服务

    Args:
        search_sync: 搜索索引同步器，默认使用全局实例
        max_errors: 最多保留的错误条数，默认读取 LOCATION_IMPORT_MAX_ERRORS
    """

    def __init__(
        self,
        search_sync: Optional[SearchIndexSync] = None,
        max_errors: Optional[int] = None,
    ):
        self.search_sync = search_sync if search_sync is not None else search_index_sync
        self.max_errors = max_errors if max_errors is not None else settings.LOCATION_IMPORT_MAX_ERRORS

    # ==================== 校验 ====================

    @staticmethod
    def validate_row(row: LocationImportRow) -> ValidatedRow:
        """
        校验一行导入数据

        只做必填和格式检查，不做各国邮编规则校验。
        缺失的国家/州名称使用其编码代替。

        Raises:
            ValidationError: 必填字段缺失或格式错误
        """
        country_code = _clean(row.country_code)
        state_code = _clean(row.state_code)
        city = _clean(row.city)
        pincode = _clean(row.pincode)

        required = (
            ("country_code", country_code),
            ("state_code", state_code),
            ("city", city),
            ("pincode", pincode),
        )
        for field, value in required:
            if not value:
                raise ValidationError(field, "必填字段不能为空")

        if not re.match(COUNTRY_CODE_PATTERN, country_code):
            raise ValidationError("country_code", f"'{country_code}' 必须是 2 位字母")
        if not re.match(STATE_CODE_PATTERN, state_code):
            raise ValidationError("state_code", f"'{state_code}' 必须是 1-10 位字母或数字")
        if not re.match(PINCODE_PATTERN, pincode):
            raise ValidationError("pincode", f"'{pincode}' 格式不正确（3-10 位字母、数字、空格或连字符）")
        names = (("country", _clean(row.country)), ("state", _clean(row.state)), ("city", city))
        for field, value in names:
            if len(value) > MAX_NAME_LENGTH:
                raise ValidationError(field, f"长度不能超过 {MAX_NAME_LENGTH}")

        area = normalize_area(row.area)
        if len(area) > MAX_AREA_LENGTH:
            raise ValidationError("area", f"长度不能超过 {MAX_AREA_LENGTH}")

        country_code = normalize_code(country_code)
        state_code = normalize_code(state_code)
        return ValidatedRow(
            country_name=_clean(row.country) or country_code,
            country_code=country_code,
            state_name=_clean(row.state) or state_code,
            state_code=state_code,
            city=city,
            pincode=pincode,
            area=area,
        )

    # ==================== 单行导入 ====================

    async def resolve_and_create_postal_code(
        self,
        row: LocationImportRow,
        session: AsyncSession,
        resolver: Optional[HierarchyResolver] = None,
        pending_documents: Optional[list[PostalCodeSearchDocument]] = None,
    ) -> RowImportResult:
        """
        导入一行：解析层级并创建邮编

        Args:
            row: 导入数据
            session: 数据库会话
            resolver: 层级解析器（批量导入时共用同一个，以复用缓存）
            pending_documents: 传入时把新邮编的索引文档追加到这里，由调用方批量推送；
                不传时立即写入搜索索引

        Returns:
            RowImportResult: created / skipped / failed，失败不抛异常
        """
        try:
            valid = self.validate_row(row)
        except ValidationError as e:
            return RowImportResult(status="failed", error=str(e))

        resolver = resolver or HierarchyResolver(session)

        try:
            hierarchy = await resolver.resolve(
                valid.country_name,
                valid.country_code,
                valid.state_name,
                valid.state_code,
                valid.city,
            )
            country = hierarchy.country.entity
            state = hierarchy.state.entity
            city = hierarchy.city.entity
            ids = dict(
                country_id=country.id,
                state_id=state.id,
                city_id=city.id,
                country_created=hierarchy.country.created,
                state_created=hierarchy.state.created,
                city_created=hierarchy.city.created,
            )

            # 邮编按 (邮编, 城市, 区域) 精确去重，同一邮编下不同区域是不同记录
            existing_id = await session.scalar(
                select(PostalCode.id)
                .where(
                    PostalCode.pincode == valid.pincode,
                    PostalCode.city_id == city.id,
                    PostalCode.area == valid.area,
                )
                .limit(1)
            )
            if existing_id:
                return RowImportResult(status="skipped", postal_code_id=existing_id, **ids)

            postal_code_id = str(uuid4())
            postal_code = PostalCode(
                id=postal_code_id,
                city_id=city.id,
                pincode=valid.pincode,
                area=valid.area,
            )
            inserted = await insert_with_counter(session, postal_code, City, city.id, "pincode_count")
            if not inserted:
                # 并发写入方已经创建了同一条邮编
                return RowImportResult(status="skipped", **ids)

        except LocationError as e:
            return RowImportResult(status="failed", error=str(e))
        except Exception as e:
            await session.rollback()
            logger.error(f"[LocationImportService] 导入失败 {valid.pincode}: {e}")
            return RowImportResult(status="failed", error=f"数据库错误: {e}")

        document = build_search_document(postal_code_id, valid.pincode, valid.area, city, state, country)
        if pending_documents is not None:
            pending_documents.append(document)
        else:
            await self.search_sync.index_document(document)

        return RowImportResult(status="created", postal_code_id=postal_code_id, **ids)

    # ==================== 批量导入 ====================

    async def bulk_import(
        self,
        rows: Sequence[Union[LocationImportRow, dict[str, Any]]],
        session: Optional[AsyncSession] = None,
    ) -> BulkImportResult:
        """
        批量导入

        Args:
            rows: 导入数据（LocationImportRow 或同结构的 dict）
            session: 数据库会话（可选，不传时自动创建）

        Returns:
            BulkImportResult: 整批统计，行级失败记录在 errors 中
        """
        if session is not None:
            return await self._bulk_import_impl(rows, session)
        async with async_session_maker() as session:
            return await self._bulk_import_impl(rows, session)

    async def _bulk_import_impl(
        self,
        rows: Sequence[Union[LocationImportRow, dict[str, Any]]],
        session: AsyncSession,
    ) -> BulkImportResult:
        logger.info(f"[LocationImportService] 开始批量导入: {len(rows)} 行")

        result = BulkImportResult()
        # 缓存只在本次导入内有效
        cache = ResolverCache()
        resolver = HierarchyResolver(session, cache)
        documents: list[PostalCodeSearchDocument] = []

        for index, raw in enumerate(rows):
            row = raw if isinstance(raw, LocationImportRow) else LocationImportRow.model_validate(raw)
            outcome = await self.resolve_and_create_postal_code(row, session, resolver, documents)

            details = result.details
            if outcome.status == "created":
                result.success += 1
                details.pincodes_created += 1
            elif outcome.status == "skipped":
                result.skipped += 1
                details.pincodes_skipped += 1
            else:
                result.failed += 1
                self._record_error(result, f"第 {index + 1} 行 ({row.pincode or '-'}): {outcome.error}")

        # 按解析器实际新建的记录计数，行在后续步骤失败时新建的上级仍然计入
        result.details.countries_created = cache.countries_created
        result.details.states_created = cache.states_created
        result.details.cities_created = cache.cities_created

        if documents:
            await self.search_sync.index_documents(documents, chunk_size=settings.LOCATION_IMPORT_INDEX_CHUNK)

        logger.info(
            f"[LocationImportService] 批量导入完成: 成功 {result.success}, "
            f"跳过 {result.skipped}, 失败 {result.failed}",
            extra={"extra_data": result.details.model_dump()},
        )
        return result

    def _record_error(self, result: BulkImportResult, message: str) -> None:
        """记录错误，超过上限后只追加一条截断提示"""
        if len(result.errors) < self.max_errors:
            result.errors.append(message)
        elif len(result.errors) == self.max_errors:
            result.errors.append(f"错误过多，仅显示前 {self.max_errors} 条")


# 全局实例
location_import_service = LocationImportService()
