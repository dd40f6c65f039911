# expo_admin/services/location_service.py
# 地区管理服务
#
# 功能说明：
# 1. 各层级的单条创建 / 更新（唯一冲突给出冲突字段，上级不存在报 NotFoundError）
#    变更上级时，原上级计数 -1、新上级计数 +1，与更新在同一个事务中
# 2. 查询单条记录、分页列表
# 3. 按邮编查询完整层级（查询成功时该邮编 usage_count +1）
# 4. 邮编搜索：数据库前缀搜索、搜索引擎自动补全
# 5. 导出扁平数据（CSV 导出使用）
# 6. 搜索索引全量重建
#
# 删除见 location_deletion_service，批量导入见 location_import_service。
#
# 使用方法：
#   from expo_admin.services.location_service import location_service
#
#   city = await location_service.create_city(CityCreate(state_id=..., name="Surat"), session)
#   lookup = await location_service.lookup_by_code("380001", session)

from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from expo_admin.core.config import settings
from expo_admin.core.database import is_duplicate_key_error
from expo_admin.core.exceptions import ConflictError, NotFoundError
from expo_admin.core.logging import get_logger
from expo_admin.models import Country, State, City, PostalCode
from expo_admin.models.location_keys import normalize_area, normalize_code, normalize_name_key
from expo_admin.schemas.location import (
    AutocompleteResponse,
    CityCreate,
    CountryCreate,
    LocationBrief,
    PincodeLookupResponse,
    PostalCodeCreate,
    PostalCodeSearchItem,
    StateCreate,
)
from expo_admin.services.location_levels import LevelSpec, LocationLevel, get_level
from expo_admin.services.location_store import bump_counter, insert_with_counter, load_search_documents
from expo_admin.storage.search_index import SearchIndexSync, search_index_sync

logger = get_logger(__name__)


class LocationService:
    """地区管理（单条操作、查询、搜索、导出）"""

    def __init__(self, search_sync: Optional[SearchIndexSync] = None):
        self.search_sync = search_sync if search_sync is not None else search_index_sync

    # ==================== 创建 ====================

    async def create_country(self, data: CountryCreate, session: AsyncSession) -> Country:
        country = Country(name=data.name, code=data.code, is_active=data.is_active)
        return await self._create(get_level(LocationLevel.COUNTRY), country, session)

    async def create_state(self, data: StateCreate, session: AsyncSession) -> State:
        state = State(country_id=data.country_id, name=data.name, code=data.code, is_active=data.is_active)
        return await self._create(get_level(LocationLevel.STATE), state, session)

    async def create_city(self, data: CityCreate, session: AsyncSession) -> City:
        city = City(state_id=data.state_id, name=data.name, is_active=data.is_active)
        return await self._create(get_level(LocationLevel.CITY), city, session)

    async def create_postal_code(self, data: PostalCodeCreate, session: AsyncSession) -> PostalCode:
        postal_code = PostalCode(
            city_id=data.city_id,
            pincode=data.pincode,
            area=normalize_area(data.area),
            is_active=data.is_active,
        )
        return await self._create(get_level(LocationLevel.POSTAL_CODE), postal_code, session)

    async def _create(self, spec: LevelSpec, entity: Any, session: AsyncSession) -> Any:
        parent_id = getattr(entity, spec.parent_fk) if spec.parent_fk else None
        if parent_id is not None:
            await self._require_parent(spec, parent_id, session)

        await self._check_unique(spec, self._unique_values(spec, entity), session)

        try:
            inserted = await insert_with_counter(session, entity, spec.parent_model, parent_id, spec.parent_counter)
        except IntegrityError as e:
            # 检查之后上级被删除
            raise NotFoundError(get_level_parent_label(spec), parent_id) from e
        if not inserted:
            raise ConflictError(f"{spec.label}已存在", field=self._primary_unique_field(spec))

        await session.refresh(entity)
        logger.info(f"[LocationService] 新建{spec.label}: {entity.id}")
        await self._reindex_after_write(spec, entity.id, session)
        return entity

    # ==================== 更新 ====================

    async def update(
        self,
        level: str,
        entity_id: str,
        data: BaseModel,
        session: AsyncSession,
    ) -> Any:
        """
        更新任意层级的记录（只更新传入的字段）

        Raises:
            NotFoundError: 记录或新的上级不存在
            ConflictError: 更新后与其他记录冲突
        """
        spec = get_level(level)
        entity = await self.get(spec.level, entity_id, session)

        # 不允许把非空字段更新为 None
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        if "area" in changes:
            changes["area"] = normalize_area(changes["area"])

        old_parent_id = getattr(entity, spec.parent_fk) if spec.parent_fk else None
        new_parent_id = changes.get(spec.parent_fk, old_parent_id) if spec.parent_fk else None
        moved = spec.parent_fk is not None and new_parent_id != old_parent_id
        if moved:
            await self._require_parent(spec, new_parent_id, session)

        values = self._unique_values(spec, entity)
        values.update(self._normalize_unique_changes(changes))
        await self._check_unique(spec, values, session, exclude_id=entity_id)

        for key, value in changes.items():
            setattr(entity, key, value)

        try:
            await session.flush()
            if moved:
                await bump_counter(session, spec.parent_model, old_parent_id, spec.parent_counter, -1)
                await bump_counter(session, spec.parent_model, new_parent_id, spec.parent_counter, 1)
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            if is_duplicate_key_error(e):
                raise ConflictError(f"{spec.label}已存在", field=self._primary_unique_field(spec)) from e
            raise NotFoundError(get_level_parent_label(spec), new_parent_id) from e

        await session.refresh(entity)
        logger.info(f"[LocationService] 更新{spec.label}: {entity_id} {sorted(changes)}")
        await self._reindex_after_write(spec, entity_id, session)
        return entity

    # ==================== 查询 ====================

    async def get(self, level: str, entity_id: str, session: AsyncSession) -> Any:
        spec = get_level(level)
        entity = await session.get(spec.model, entity_id)
        if entity is None:
            raise NotFoundError(spec.label, entity_id)
        return entity

    async def list_locations(
        self,
        level: str,
        session: AsyncSession,
        parent_id: Optional[str] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Any], int]:
        """
        分页列表

        Returns:
            tuple: (当前页记录, 总数)
        """
        spec = get_level(level)
        model = spec.model
        criteria = []
        if parent_id and spec.parent_fk:
            criteria.append(getattr(model, spec.parent_fk) == parent_id)
        if is_active is not None:
            criteria.append(model.is_active.is_(is_active))
        if search:
            search = search.strip()
            if spec.level == LocationLevel.POSTAL_CODE:
                criteria.append(or_(
                    model.pincode.startswith(search, autoescape=True),
                    model.area.ilike(f"%{search}%"),
                ))
            else:
                criteria.append(model.name.ilike(f"%{search}%"))

        total = await session.scalar(select(func.count()).select_from(model).where(*criteria)) or 0

        if spec.level == LocationLevel.POSTAL_CODE:
            order_by = (model.pincode, model.area)
        else:
            order_by = (model.name,)
        stmt = (
            select(model)
            .where(*criteria)
            .order_by(*order_by)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all()), total

    async def lookup_by_code(self, code: str, session: AsyncSession) -> PincodeLookupResponse:
        """
        按邮编查询完整层级

        同一邮编有多条启用的记录时，取使用次数最高的一条作为层级，
        areas 返回该邮编下所有启用的区域。查询成功时该记录 usage_count +1。
        """
        code = code.strip()
        stmt = (
            select(PostalCode, City, State, Country)
            .join(City, PostalCode.city_id == City.id)
            .join(State, City.state_id == State.id)
            .join(Country, State.country_id == Country.id)
            .where(PostalCode.pincode == code, PostalCode.is_active.is_(True))
            .order_by(PostalCode.usage_count.desc(), PostalCode.area)
        )
        rows = (await session.execute(stmt)).all()
        if not rows:
            return PincodeLookupResponse(found=False, pincode=code)

        postal_code, city, state, country = rows[0]
        areas: list[str] = []
        for row in rows:
            if row[0].area and row[0].area not in areas:
                areas.append(row[0].area)

        response = PincodeLookupResponse(
            found=True,
            postal_code_id=postal_code.id,
            pincode=postal_code.pincode,
            area=postal_code.area,
            areas=areas,
            city=LocationBrief(id=city.id, name=city.name),
            state=LocationBrief(id=state.id, name=state.name, code=state.code),
            country=LocationBrief(id=country.id, name=country.name, code=country.code),
        )

        # 热门邮编排序用
        await bump_counter(session, PostalCode, postal_code.id, "usage_count", 1)
        await session.commit()
        return response

    async def search_postal_codes(
        self,
        query: str,
        session: AsyncSession,
        limit: Optional[int] = None,
    ) -> list[PostalCodeSearchItem]:
        """数据库前缀搜索：启用的邮编，按使用次数降序、邮编升序"""
        query = (query or "").strip()
        if not query:
            return []

        stmt = (
            select(PostalCode, City, State)
            .join(City, PostalCode.city_id == City.id)
            .join(State, City.state_id == State.id)
            .where(PostalCode.is_active.is_(True), PostalCode.pincode.startswith(query, autoescape=True))
            .order_by(PostalCode.usage_count.desc(), PostalCode.pincode)
            .limit(limit or settings.LOCATION_SEARCH_DEFAULT_LIMIT)
        )
        result = await session.execute(stmt)
        return [
            PostalCodeSearchItem(
                id=postal_code.id,
                pincode=postal_code.pincode,
                area=postal_code.area,
                city_id=city.id,
                city_name=city.name,
                state_name=state.name,
                usage_count=postal_code.usage_count,
            )
            for postal_code, city, state in result.all()
        ]

    async def autocomplete(
        self,
        query: str,
        session: AsyncSession,
        limit: Optional[int] = None,
    ) -> AutocompleteResponse:
        """
        搜索引擎自动补全（至少 2 个字符）

        搜索引擎未配置或请求失败时退回数据库前缀搜索
        """
        query = (query or "").strip()
        if len(query) < 2:
            return AutocompleteResponse()

        limit = limit or settings.LOCATION_SEARCH_DEFAULT_LIMIT
        result = await self.search_sync.search(query, limit=limit)
        if result is not None:
            return AutocompleteResponse(
                hits=result.get("hits", []),
                estimated_total_hits=result.get("estimatedTotalHits", 0),
                processing_time_ms=result.get("processingTimeMs", 0),
            )

        items = await self.search_postal_codes(query, session, limit=limit)
        return AutocompleteResponse(
            hits=[item.model_dump() for item in items],
            estimated_total_hits=len(items),
        )

    # ==================== 导出 ====================

    async def export_locations(self, session: AsyncSession) -> list[dict]:
        """导出所有邮编及其层级（扁平行），没有邮编的城市不导出"""
        stmt = (
            select(PostalCode, City, State, Country)
            .join(City, PostalCode.city_id == City.id)
            .join(State, City.state_id == State.id)
            .join(Country, State.country_id == Country.id)
            .order_by(Country.name, State.name, City.name, PostalCode.pincode, PostalCode.area)
        )
        result = await session.execute(stmt)
        return [
            {
                "country": country.name,
                "country_code": country.code,
                "state": state.name,
                "state_code": state.code,
                "city": city.name,
                "pincode": postal_code.pincode,
                "area": postal_code.area,
                "usage_count": postal_code.usage_count,
                "is_active": postal_code.is_active,
            }
            for postal_code, city, state, country in result.all()
        ]

    # ==================== 搜索索引 ====================

    async def reindex_postal_codes(self, session: AsyncSession, page_size: Optional[int] = None) -> int:
        """
        全量重建搜索索引（按 ID 分页读取）

        Returns:
            int: 成功写入索引的文档数
        """
        if not self.search_sync.enabled:
            logger.warning("[LocationService] 未配置 MEILISEARCH_URL，跳过重建索引")
            return 0

        page_size = page_size or settings.LOCATION_IMPORT_INDEX_CHUNK
        await self.search_sync.ensure_index()

        indexed = 0
        last_id: Optional[str] = None
        while True:
            documents = await load_search_documents(session, after_id=last_id, limit=page_size)
            if not documents:
                break
            if await self.search_sync.index_documents(documents, chunk_size=page_size):
                indexed += len(documents)
            last_id = documents[-1].id
            if len(documents) < page_size:
                break

        logger.info(f"[LocationService] 搜索索引重建完成: {indexed} 个文档")
        return indexed

    async def _reindex_after_write(self, spec: LevelSpec, entity_id: str, session: AsyncSession) -> None:
        """写入后同步该记录（或其下所有邮编）的索引文档"""
        if not self.search_sync.enabled:
            return
        criteria = {
            LocationLevel.COUNTRY: Country.id == entity_id,
            LocationLevel.STATE: State.id == entity_id,
            LocationLevel.CITY: City.id == entity_id,
            LocationLevel.POSTAL_CODE: PostalCode.id == entity_id,
        }[spec.level]
        documents = await load_search_documents(session, criteria)
        await self.search_sync.index_documents(documents)

    # ==================== 唯一性检查 ====================

    async def _require_parent(self, spec: LevelSpec, parent_id: str, session: AsyncSession) -> None:
        if await session.get(spec.parent_model, parent_id) is None:
            raise NotFoundError(get_level_parent_label(spec), parent_id)

    @staticmethod
    def _unique_values(spec: LevelSpec, entity: Any) -> dict[str, Any]:
        """读取参与唯一约束的字段当前值"""
        if spec.level == LocationLevel.COUNTRY:
            return {"name": entity.name, "code": entity.code}
        if spec.level == LocationLevel.STATE:
            return {"country_id": entity.country_id, "name": entity.name, "code": entity.code}
        if spec.level == LocationLevel.CITY:
            return {"state_id": entity.state_id, "name": entity.name}
        return {"city_id": entity.city_id, "pincode": entity.pincode, "area": entity.area or ""}

    @staticmethod
    def _normalize_unique_changes(changes: dict[str, Any]) -> dict[str, Any]:
        normalized = dict(changes)
        if "code" in normalized:
            normalized["code"] = normalize_code(normalized["code"])
        if "name" in normalized:
            normalized["name"] = normalized["name"].strip()
        if "pincode" in normalized:
            normalized["pincode"] = normalized["pincode"].strip()
        return normalized

    @staticmethod
    def _primary_unique_field(spec: LevelSpec) -> str:
        return {
            LocationLevel.COUNTRY: "code",
            LocationLevel.STATE: "code",
            LocationLevel.CITY: "name",
            LocationLevel.POSTAL_CODE: "pincode",
        }[spec.level]

    async def _check_unique(
        self,
        spec: LevelSpec,
        values: dict[str, Any],
        session: AsyncSession,
        exclude_id: Optional[str] = None,
    ) -> None:
        """
        检查唯一约束，冲突时抛出 ConflictError 并指明字段

        这里只是为了给出可读的错误信息，真正的保证是数据库唯一索引
        """
        model = spec.model
        if spec.level == LocationLevel.COUNTRY:
            checks = [
                ("code", f"国家编码 '{values['code']}' 已存在", [Country.code == values["code"]]),
                ("name", f"国家 '{values['name']}' 已存在", [Country.name_key == normalize_name_key(values["name"])]),
            ]
        elif spec.level == LocationLevel.STATE:
            checks = [
                ("code", f"州/省编码 '{values['code']}' 已存在（州/省编码全局唯一）", [State.code == values["code"]]),
                ("name", f"该国家下已存在州/省 '{values['name']}'", [
                    State.country_id == values["country_id"],
                    State.name_key == normalize_name_key(values["name"]),
                ]),
            ]
        elif spec.level == LocationLevel.CITY:
            checks = [
                ("name", f"该州/省下已存在城市 '{values['name']}'", [
                    City.state_id == values["state_id"],
                    City.name_key == normalize_name_key(values["name"]),
                ]),
            ]
        else:
            area_label = f" ({values['area']})" if values["area"] else ""
            checks = [
                ("pincode", f"该城市下已存在邮编 '{values['pincode']}'{area_label}", [
                    PostalCode.pincode == values["pincode"],
                    PostalCode.city_id == values["city_id"],
                    PostalCode.area == values["area"],
                ]),
            ]

        for field, message, criteria in checks:
            stmt = select(model.id).where(*criteria)
            if exclude_id is not None:
                stmt = stmt.where(model.id != exclude_id)
            if await session.scalar(stmt.limit(1)) is not None:
                raise ConflictError(message, field=field, value=values.get(field))


def get_level_parent_label(spec: LevelSpec) -> str:
    """上级层级的中文名称"""
    for candidate in (LocationLevel.COUNTRY, LocationLevel.STATE, LocationLevel.CITY):
        parent = get_level(candidate)
        if parent.model is spec.parent_model:
            return parent.label
    return "上级"


# 全局实例
location_service = LocationService()
