"""工作空间审计日志模型。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import INET, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ewp_api.models.base import Base, UUIDPrimaryKeyMixin


class WorkspaceAuditLog(Base, UUIDPrimaryKeyMixin):
    """工作空间关键操作审计日志，只追加不修改。"""

    __tablename__ = "workspace_audit_logs"

    # 工作空间 ID。
    workspace_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 操作人用户 ID，系统动作可为空。
    user_id: Mapped[UUID | None] = mapped_column()
    # 动作标识，例如 WORKSPACE_PROVISIONED / WORKSPACE_DISSOLVED。
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    # 资源类型，例如 WORKSPACE_LIFECYCLE / TEAM_MEMBER。
    resource: Mapped[str] = mapped_column(String(64), nullable=False)
    # 资源标识（通常为字符串化 UUID）。
    resource_id: Mapped[str | None] = mapped_column(String(128))
    # 任意细节载荷（原因、前后状态等）。
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    # 客户端 IP。
    ip: Mapped[str | None] = mapped_column(INET)
    # 客户端 User-Agent。
    user_agent: Mapped[str | None] = mapped_column(Text)
    # 记录时间。
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
