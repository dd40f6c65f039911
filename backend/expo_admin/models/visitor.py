# expo_admin/models/visitor.py
# 访客与展会报名模型（只读）
#
# 功能说明：
# 访客和报名数据由访客模块维护，地区模块只在重算使用次数时读取：
# 1. GlobalVisitor - 全局访客，引用国家/州/城市/邮编 ID
# 2. ExhibitionRegistration - 访客的展会报名记录
#
# 地区的使用次数 = 引用该地区、且至少有一条有效报名（未取消）的访客数
#
# 使用方法：
#   from expo_admin.models.visitor import GlobalVisitor, ExhibitionRegistration

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import String, DateTime, Index, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from expo_admin.core.database import Base


class RegistrationStatus:
    """报名状态常量"""
    REGISTERED = "registered"    # 已报名
    CONFIRMED = "confirmed"      # 已确认
    CHECKED_IN = "checked-in"    # 已签到
    CANCELLED = "cancelled"      # 已取消（不计入使用次数）
    WAITLISTED = "waitlisted"    # 候补


class GlobalVisitor(Base):
    """
    全局访客表

    地区字段只保存 ID，不设外键：访客数据归访客模块管理，
    地区被删除（或停用）后历史访客仍然保留原 ID。
    """

    __tablename__ = "global_visitors"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    country_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    state_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    city_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    pincode_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
    )

    __table_args__ = (
        Index("ix_global_visitors_country_id", "country_id"),
        Index("ix_global_visitors_state_id", "state_id"),
        Index("ix_global_visitors_city_id", "city_id"),
        Index("ix_global_visitors_pincode_id", "pincode_id"),
    )

    def __repr__(self) -> str:
        return f"<GlobalVisitor {self.id} {self.name}>"


class ExhibitionRegistration(Base):
    """展会报名表"""

    __tablename__ = "exhibition_registrations"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    visitor_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("global_visitors.id", ondelete="CASCADE"),
        nullable=False,
    )
    exhibition_id: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RegistrationStatus.REGISTERED,
        comment="registered/confirmed/checked-in/cancelled/waitlisted",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
    )

    __table_args__ = (
        Index("ix_exhibition_registrations_visitor_status", "visitor_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<ExhibitionRegistration {self.visitor_id} {self.status}>"
