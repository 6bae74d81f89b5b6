"""安全事件模型。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, String, Text
from sqlalchemy.dialects.postgresql import INET, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ewp_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from ewp_api.models.enums import IncidentSeverity, IncidentStatus


class SecurityIncident(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """工作空间安全事件。"""

    __tablename__ = "security_incidents"

    workspace_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 触发事件的用户，系统检测时可为空。
    user_id: Mapped[UUID | None] = mapped_column()
    incident_type: Mapped[str] = mapped_column(String(64), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default=IncidentSeverity.MEDIUM)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    # 处理状态：DETECTED -> RESPONDING -> RESOLVED。
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=IncidentStatus.DETECTED)
    # 处置动作列表，只追加。
    response_actions: Mapped[list[str] | None] = mapped_column(JSONB)
    ip: Mapped[str | None] = mapped_column(INET)
    user_agent: Mapped[str | None] = mapped_column(Text)
    detected_by: Mapped[UUID | None] = mapped_column()
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
