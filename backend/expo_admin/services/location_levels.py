# expo_admin/services/location_levels.py
# 地区层级定义
#
# 功能说明：
# 描述四个层级之间的关系（模型、上级外键、上下级计数字段、访客引用字段），
# 删除策略、使用次数重算和 API 路由都按这张表处理各层级，不再逐级写重复代码。
#
# 层级：
#   country (countries) → state (states) → city (cities) → postal_code (pincodes)

from dataclasses import dataclass
from typing import Optional

from expo_admin.core.exceptions import ValidationError
from expo_admin.models import Country, State, City, PostalCode


class LocationLevel:
    """层级常量"""
    COUNTRY = "country"
    STATE = "state"
    CITY = "city"
    POSTAL_CODE = "postal_code"


@dataclass(frozen=True)
class LevelSpec:
    """单个层级的元数据"""
    level: str
    path: str                              # API 路径段
    label: str                             # 中文名称，用于错误信息
    model: type
    visitor_column: str                    # GlobalVisitor 上引用本层级的字段
    parent_model: Optional[type] = None
    parent_fk: Optional[str] = None        # 本表指向上级的字段
    parent_counter: Optional[str] = None   # 上级表中统计本层级数量的字段
    child_model: Optional[type] = None
    child_fk: Optional[str] = None         # 下级表指向本表的字段
    child_counter: Optional[str] = None    # 本表中统计下级数量的字段
    child_label: Optional[str] = None


LEVELS: dict[str, LevelSpec] = {
    LocationLevel.COUNTRY: LevelSpec(
        level=LocationLevel.COUNTRY,
        path="countries",
        label="国家",
        model=Country,
        visitor_column="country_id",
        child_model=State,
        child_fk="country_id",
        child_counter="state_count",
        child_label="州/省",
    ),
    LocationLevel.STATE: LevelSpec(
        level=LocationLevel.STATE,
        path="states",
        label="州/省",
        model=State,
        visitor_column="state_id",
        parent_model=Country,
        parent_fk="country_id",
        parent_counter="state_count",
        child_model=City,
        child_fk="state_id",
        child_counter="city_count",
        child_label="城市",
    ),
    LocationLevel.CITY: LevelSpec(
        level=LocationLevel.CITY,
        path="cities",
        label="城市",
        model=City,
        visitor_column="city_id",
        parent_model=State,
        parent_fk="state_id",
        parent_counter="city_count",
        child_model=PostalCode,
        child_fk="city_id",
        child_counter="pincode_count",
        child_label="邮编",
    ),
    LocationLevel.POSTAL_CODE: LevelSpec(
        level=LocationLevel.POSTAL_CODE,
        path="pincodes",
        label="邮编",
        model=PostalCode,
        visitor_column="pincode_id",
        parent_model=City,
        parent_fk="city_id",
        parent_counter="pincode_count",
    ),
}

# 按 API 路径段查找
_LEVELS_BY_PATH = {spec.path: spec for spec in LEVELS.values()}


def get_level(level: str) -> LevelSpec:
    """
    根据层级名或 API 路径段获取层级定义

    Raises:
        ValidationError: 未知层级
    """
    spec = LEVELS.get(level) or _LEVELS_BY_PATH.get(level)
    if spec is None:
        raise ValidationError("level", f"未知的地区层级: {level}")
    return spec
