# expo_admin/services/location_resolver.py
# 地区层级解析器
#
# 功能说明：
# 把一行扁平数据（国家、国家编码、州、州编码、城市）解析为
# 国家 → 州/省 → 城市 三级记录，不存在的自动创建。
#
# 并发安全：
# 不使用"先查再插"，而是"查缓存 → 查库 → 插入 → 唯一冲突时重新查询"。
# 多个导入任务同时引用同一个新国家时，只有一个插入成功，
# 其余的插入因唯一约束失败，重新查询后拿到同一条记录，当作"已存在"处理。
#
# 缓存：
# ResolverCache 只在一次导入内有效，每次导入新建一个并显式传入，
# 不使用模块级全局变量，并发的导入之间互不影响。
#
# 使用方法：
#   resolver = HierarchyResolver(session)
#   hierarchy = await resolver.resolve("India", "IN", "Gujarat", "GJ", "Ahmedabad")
#   hierarchy.city.entity.id

from dataclasses import dataclass, field
from typing import Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expo_admin.core.exceptions import ConflictError
from expo_admin.core.logging import get_logger
from expo_admin.models import Country, State, City
from expo_admin.models.location_keys import normalize_code, normalize_name_key
from expo_admin.services.location_refs import (
    AlreadyExists,
    Created,
    FindOrCreateResult,
    LocationRef,
    snapshot,
)
from expo_admin.services.location_store import insert_with_counter

logger = get_logger(__name__)


@dataclass
class ResolverCache:
    """
    单次导入内的查找缓存

    - countries: 国家编码 → 国家
    - states: "国家ID:州编码" → 州/省
    - cities: "州ID:归一化城市名" → 城市

    *_created 统计本次导入中实际新建的记录数，同一行后续失败也计入
    """
    countries: dict[str, LocationRef] = field(default_factory=dict)
    states: dict[str, LocationRef] = field(default_factory=dict)
    cities: dict[str, LocationRef] = field(default_factory=dict)
    countries_created: int = 0
    states_created: int = 0
    cities_created: int = 0


@dataclass(frozen=True)
class ResolvedHierarchy:
    """解析结果：三级记录，以及每一级是否为本次新建"""
    country: FindOrCreateResult[LocationRef]
    state: FindOrCreateResult[LocationRef]
    city: FindOrCreateResult[LocationRef]


class HierarchyResolver:
    """国家 → 州/省 → 城市 查找或创建"""

    def __init__(self, session: AsyncSession, cache: Optional[ResolverCache] = None):
        self.session = session
        self.cache = cache if cache is not None else ResolverCache()

    async def resolve(
        self,
        country_name: Optional[str],
        country_code: str,
        state_name: Optional[str],
        state_code: str,
        city_name: str,
    ) -> ResolvedHierarchy:
        """依次解析三级，任一级失败直接抛出（由导入服务记为该行失败）"""
        country = await self.find_or_create_country(country_name, country_code)
        state = await self.find_or_create_state(country.entity, state_name, state_code)
        city = await self.find_or_create_city(state.entity, city_name)
        return ResolvedHierarchy(country=country, state=state, city=city)

    # ==================== 国家 ====================

    async def find_or_create_country(
        self,
        name: Optional[str],
        code: str,
    ) -> FindOrCreateResult[LocationRef]:
        code = normalize_code(code)
        cached = self.cache.countries.get(code)
        if cached is not None:
            return AlreadyExists(cached)

        existing = await self._first(select(Country).where(Country.code == code))
        if existing is not None:
            return self._remember_country(AlreadyExists(existing))

        country = Country(id=str(uuid4()), name=name or code, code=code)
        ref = snapshot(country)
        if await insert_with_counter(self.session, country):
            logger.debug(f"[LocationResolver] 新建国家: {ref.name} ({ref.code})")
            self.cache.countries_created += 1
            return self._remember_country(Created(ref))

        # 并发写入方已经创建：先按编码查，冲突可能发生在名称上，再按名称查
        existing = await self._first(select(Country).where(Country.code == code))
        if existing is None:
            existing = await self._first(
                select(Country).where(Country.name_key == normalize_name_key(name or code))
            )
        if existing is None:
            raise ConflictError(f"国家编码 '{code}' 创建冲突，且未找到已存在的记录", field="code", value=code)
        return self._remember_country(AlreadyExists(existing))

    def _remember_country(self, result: FindOrCreateResult[LocationRef]) -> FindOrCreateResult[LocationRef]:
        self.cache.countries[result.entity.code] = result.entity
        return result

    # ==================== 州/省 ====================

    async def find_or_create_state(
        self,
        country: LocationRef,
        name: Optional[str],
        code: str,
    ) -> FindOrCreateResult[LocationRef]:
        code = normalize_code(code)
        cache_key = f"{country.id}:{code}"
        cached = self.cache.states.get(cache_key)
        if cached is not None:
            return AlreadyExists(cached)

        by_code = select(State).where(State.country_id == country.id, State.code == code)
        existing = await self._first(by_code)
        if existing is not None:
            return self._remember(self.cache.states, cache_key, AlreadyExists(existing))

        state = State(id=str(uuid4()), country_id=country.id, name=name or code, code=code)
        ref = snapshot(state)
        if await insert_with_counter(self.session, state, Country, country.id, "state_count"):
            logger.debug(f"[LocationResolver] 新建州/省: {ref.name} ({ref.code}) @ {country.code}")
            self.cache.states_created += 1
            return self._remember(self.cache.states, cache_key, Created(ref))

        existing = await self._first(by_code)
        if existing is None:
            # 冲突在 (country_id, name_key) 上：同名州已存在，但编码不同
            existing = await self._first(
                select(State).where(
                    State.country_id == country.id,
                    State.name_key == normalize_name_key(name or code),
                )
            )
        if existing is None:
            # 州/省编码全局唯一，已被其他国家的州/省占用
            raise ConflictError(
                f"州/省编码 '{code}' 已被其他国家的州/省使用（州/省编码全局唯一）",
                field="state_code",
                value=code,
            )
        return self._remember(self.cache.states, cache_key, AlreadyExists(existing))

    # ==================== 城市 ====================

    async def find_or_create_city(
        self,
        state: LocationRef,
        name: str,
    ) -> FindOrCreateResult[LocationRef]:
        name_key = normalize_name_key(name)
        cache_key = f"{state.id}:{name_key}"
        cached = self.cache.cities.get(cache_key)
        if cached is not None:
            return AlreadyExists(cached)

        by_name = select(City).where(City.state_id == state.id, City.name_key == name_key)
        existing = await self._first(by_name)
        if existing is not None:
            return self._remember(self.cache.cities, cache_key, AlreadyExists(existing))

        city = City(id=str(uuid4()), state_id=state.id, name=name)
        ref = snapshot(city)
        if await insert_with_counter(self.session, city, State, state.id, "city_count"):
            logger.debug(f"[LocationResolver] 新建城市: {ref.name} @ {state.code}")
            self.cache.cities_created += 1
            return self._remember(self.cache.cities, cache_key, Created(ref))

        existing = await self._first(by_name)
        if existing is None:
            raise ConflictError(f"城市 '{name}' 创建冲突，且未找到已存在的记录", field="city", value=name)
        return self._remember(self.cache.cities, cache_key, AlreadyExists(existing))

    # ==================== 辅助方法 ====================

    @staticmethod
    def _remember(
        cache: dict[str, LocationRef],
        key: str,
        result: FindOrCreateResult[LocationRef],
    ) -> FindOrCreateResult[LocationRef]:
        cache[key] = result.entity
        return result

    async def _first(self, stmt) -> Optional[LocationRef]:
        """执行查询，返回第一条记录的快照"""
        result = await self.session.execute(stmt.limit(1))
        entity = result.scalars().first()
        return snapshot(entity) if entity is not None else None
