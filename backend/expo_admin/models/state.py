# expo_admin/models/state.py
# 州/省数据库模型
#
# 功能说明：
# 1. State - 地区层级第二级，隶属于一个国家
#
# 唯一约束：
# - (country_id, name_key)：同一国家下名称不重复（不区分大小写）
# - code：全局唯一，而不是国家内唯一
#   注意：不同国家存在同编码的州时会冲突，导入时会作为行级错误报告
#
# 使用方法：
#   from expo_admin.models.state import State

from datetime import datetime
from uuid import uuid4

from sqlalchemy import String, Boolean, Integer, DateTime, Index, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from expo_admin.core.database import Base
from expo_admin.models.location_keys import normalize_code, normalize_name_key


class State(Base):
    """州/省表"""

    __tablename__ = "states"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    # ==================== 层级关系 ====================
    country_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("countries.id", ondelete="RESTRICT"),
        nullable=False,
        comment="所属国家 ID",
    )

    # ==================== 基本信息 ====================
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="州/省名称，如「Gujarat」",
    )
    name_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="归一化名称（小写）",
    )
    code: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="州/省编码，如「GJ」（全局唯一）",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # ==================== 缓存计数 ====================
    city_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="下级城市数量",
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
        UniqueConstraint("country_id", "name_key", name="uq_states_country_name"),
        Index("ix_states_code", "code", unique=True),
        Index("ix_states_country_active", "country_id", "is_active"),
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
        return f"<State {self.code} {self.name}>"
