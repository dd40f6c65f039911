# expo_admin/models/country.py
# 国家数据库模型
#
# 功能说明：
# 1. Country - 地区层级的第一级（国家 → 州/省 → 城市 → 邮编）
#
# 表结构：
# ┌───────────────────────────────────────────────────────────────┐
# │                       countries 表                            │
# ├───────────────────────────────────────────────────────────────┤
# │ id           │ UUID      │ 主键                               │
# │ name         │ VARCHAR   │ 国家名称，如「India」              │
# │ name_key     │ VARCHAR   │ 归一化名称（唯一，不区分大小写）   │
# │ code         │ VARCHAR   │ ISO 3166-1 alpha-2（唯一，大写）   │
# │ is_active    │ BOOLEAN   │ 是否启用（被引用后删除只会停用）   │
# │ state_count  │ INTEGER   │ 下级州/省数量（缓存）              │
# │ usage_count  │ INTEGER   │ 被访客引用次数（缓存）             │
# │ created_at   │ TIMESTAMP │ 创建时间                           │
# │ updated_at   │ TIMESTAMP │ 更新时间                           │
# └───────────────────────────────────────────────────────────────┘
#
# 使用方法：
#   from expo_admin.models.country import Country

from datetime import datetime
from uuid import uuid4

from sqlalchemy import String, Boolean, Integer, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column, validates

from expo_admin.core.database import Base
from expo_admin.models.location_keys import normalize_code, normalize_name_key


class Country(Base):
    """
    国家表

    state_count / usage_count 是缓存计数：
    - 导入和新增州时原子自增
    - 使用次数重算时覆盖为真实值
    """

    __tablename__ = "countries"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    # ==================== 基本信息 ====================
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="国家名称，如「India」",
    )
    name_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="归一化名称（小写），用于不区分大小写的唯一约束",
    )
    code: Mapped[str] = mapped_column(
        String(2),
        nullable=False,
        comment="ISO 3166-1 alpha-2 代码，如「IN」",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # ==================== 缓存计数 ====================
    state_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="下级州/省数量",
    )
    usage_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="被访客引用次数",
    )

    # ==================== 时间戳 ====================
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    __table_args__ = (
        Index("ix_countries_code", "code", unique=True),
        Index("ix_countries_name_key", "name_key", unique=True),
        Index("ix_countries_is_active", "is_active"),
    )

    @validates("name")
    def _sync_name_key(self, key: str, value: str) -> str:
        value = value.strip()
        self.name_key = normalize_name_key(value)
        return value

    @validates("code")
    def _upper_code(self, key: str, value: str) -> str:
        return normalize_code(value)

    def __repr__(self) -> str:
        return f"<Country {self.code} {self.name}>"
