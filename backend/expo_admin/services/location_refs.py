# expo_admin/services/location_refs.py
# 地区引用与查找结果类型
#
# 功能说明：
# 1. LocationRef - 地区记录的不可变快照（ID、名称、编码、上级 ID）
#    导入过程中缓存的是快照而不是 ORM 对象：某一步回滚后 ORM 对象会过期，
#    异步会话里再访问过期属性会触发隐式 IO 报错
# 2. Created / AlreadyExists - 查找或创建的结果标签，
#    "因为已存在而创建失败"是正常结果，而不是异常
# 3. IdRef / Resolved - 只有 ID 或已加载实体的两种引用，统一用 ref_id() 取 ID
#
# 使用方法：
#   from expo_admin.services.location_refs import Created, AlreadyExists, ref_id
#
#   result = await resolver.find_or_create_country("India", "IN")
#   if result.created:
#       ...
#   country_id = ref_id(result.entity)

from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar, Union

from expo_admin.models import Country, State, City, PostalCode

T = TypeVar("T")


@dataclass(frozen=True)
class LocationRef:
    """地区记录快照"""
    id: str
    name: str
    code: Optional[str] = None
    parent_id: Optional[str] = None


def snapshot(entity: Any) -> LocationRef:
    """把 ORM 实体转换为快照（必须在会话回滚之前调用）"""
    if isinstance(entity, Country):
        return LocationRef(id=entity.id, name=entity.name, code=entity.code)
    if isinstance(entity, State):
        return LocationRef(id=entity.id, name=entity.name, code=entity.code, parent_id=entity.country_id)
    if isinstance(entity, City):
        return LocationRef(id=entity.id, name=entity.name, parent_id=entity.state_id)
    if isinstance(entity, PostalCode):
        return LocationRef(id=entity.id, name=entity.pincode, parent_id=entity.city_id)
    raise TypeError(f"不支持的地区实体类型: {type(entity).__name__}")


# ==================== 查找或创建的结果 ====================

@dataclass(frozen=True)
class Created(Generic[T]):
    """本次调用新建了记录"""
    entity: T
    created: bool = field(default=True, init=False)


@dataclass(frozen=True)
class AlreadyExists(Generic[T]):
    """记录已存在（查到的，或并发写入方先创建的）"""
    entity: T
    created: bool = field(default=False, init=False)


FindOrCreateResult = Union[Created[T], AlreadyExists[T]]


# ==================== ID 或实体 ====================

@dataclass(frozen=True)
class IdRef:
    """只有 ID 的引用"""
    id: str


@dataclass(frozen=True)
class Resolved(Generic[T]):
    """已加载的实体"""
    entity: T


Reference = Union[str, IdRef, Resolved, LocationRef]


def ref_id(ref: Any) -> str:
    """
    从任意形式的引用中取出 ID

    支持：字符串 ID、IdRef、Resolved、LocationRef、带 id 属性的 ORM 实体
    """
    if isinstance(ref, str):
        return ref
    if isinstance(ref, IdRef):
        return ref.id
    if isinstance(ref, Resolved):
        return ref_id(ref.entity)
    entity_id = getattr(ref, "id", None)
    if isinstance(entity_id, str):
        return entity_id
    raise TypeError(f"无法从 {type(ref).__name__} 中获取 ID")
