"""活动只读模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from ewp_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from ewp_api.models.enums import EventStatus


class Event(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """活动实体，由活动域写入，本服务仅读取生命周期所需字段。"""

    __tablename__ = "events"

    # 活动名称，用于生成工作空间名称。
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    # 活动组织者用户 ID，只有组织者可以创建工作空间。
    organizer_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 活动开始时间。
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # 活动结束时间，保留期从此刻开始计算。
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    # 活动状态。
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=EventStatus.DRAFT)
