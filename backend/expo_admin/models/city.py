# expo_admin/models/city.py
# 城市数据库模型
#
# 功能说明：
# 1. City - 地区层级第三级，隶属于一个州/省
#
# 唯一约束：(state_id, name_key)，"Mumbai" 与 "mumbai" 视为同一城市
#
# 使用方法：
#   from expo_admin.models.city import City

from datetime import datetime
from uuid import uuid4

from sqlalchemy import String, Boolean, Integer, DateTime, Index, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from expo_admin.core.database import Base
from expo_admin.models.location_keys import normalize_name_key


class City(Base):
    """城市表"""

    __tablename__ = "cities"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    state_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("states.id", ondelete="RESTRICT"),
        nullable=False,
        comment="所属州/省 ID",
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="城市名称，如「Ahmedabad」",
    )
    name_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="归一化名称（小写）",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    pincode_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="下级邮编数量",
    )
    usage_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="被访客引用次数",
    )

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
        UniqueConstraint("state_id", "name_key", name="uq_cities_state_name"),
        Index("ix_cities_state_active", "state_id", "is_active"),
    )

    @validates("name")
    def _sync_name_key(self, key: str, value: str) -> str:
        value = value.strip()
        self.name_key = normalize_name_key(value)
        return value

    def __repr__(self) -> str:
        return f"<City {self.name}>"
