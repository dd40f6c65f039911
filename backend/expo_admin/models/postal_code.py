# expo_admin/models/postal_code.py
# 邮编（PIN Code）数据库模型
#
# 功能说明：
# 1. PostalCode - 地区层级第四级，隶属于一个城市
#
# 唯一约束：(pincode, city_id, area)
#   同一个邮编可以对应多个区域（如 380001 → Ellis Bridge / Navrangpura），
#   个别情况下还会跨城市出现，所以不能只在 pincode 上建唯一索引。
#   area 不允许 NULL，缺省为空字符串，否则 NULL 不参与唯一比较。
#
# usage_count 除了重算外，按邮编查询成功时也会自增（热门邮编排序用）
#
# 使用方法：
#   from expo_admin.models.postal_code import PostalCode

from datetime import datetime
from uuid import uuid4

from sqlalchemy import String, Boolean, Integer, DateTime, Index, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from expo_admin.core.database import Base
from expo_admin.models.location_keys import normalize_area


class PostalCode(Base):
    """邮编表"""

    __tablename__ = "postal_codes"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    city_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("cities.id", ondelete="RESTRICT"),
        nullable=False,
        comment="所属城市 ID",
    )

    pincode: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="邮编，如「380001」",
    )
    area: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        default="",
        comment="区域名称，如「Ellis Bridge」，无区域时为空字符串",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    usage_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="被访客引用次数 + 查询次数",
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
        UniqueConstraint("pincode", "city_id", "area", name="uq_postal_codes_pincode_city_area"),
        Index("ix_postal_codes_pincode_active", "pincode", "is_active"),
        Index("ix_postal_codes_city_id", "city_id"),
        Index("ix_postal_codes_usage_count", "usage_count"),
    )

    @validates("pincode")
    def _strip_pincode(self, key: str, value: str) -> str:
        return value.strip()

    @validates("area")
    def _normalize_area(self, key: str, value: str) -> str:
        return normalize_area(value)

    def __repr__(self) -> str:
        return f"<PostalCode {self.pincode} {self.area}>"
