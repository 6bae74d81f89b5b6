"""工作空间、团队成员、频道与任务模型。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ewp_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from ewp_api.models.enums import MemberStatus, TaskStatus, WorkspaceRole, WorkspaceStatus


class Workspace(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """工作空间实体，与活动一一对应的协作边界。"""

    __tablename__ = "workspaces"
    __table_args__ = (UniqueConstraint("event_id", name="uk_workspace_event"),)

    # 所属活动 ID，唯一约束保证一个活动只有一个工作空间。
    event_id: Mapped[UUID] = mapped_column(nullable=False)
    # 工作空间名称，面向用户展示。
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    # 可选描述。
    description: Mapped[str | None] = mapped_column(Text)
    # 生命周期状态，只能沿状态迁移表前进。
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=WorkspaceStatus.PROVISIONING)
    # 结构化配置（保留天数、默认频道、任务分类等），读写统一走 WorkspaceSettings。
    settings: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    # 解散时间，进入 DISSOLVED 时写入。
    dissolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class TeamMember(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """工作空间团队成员关系。"""

    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("workspace_id", "user_id", name="uk_team_member"),)

    # 工作空间 ID。
    workspace_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 平台用户 ID。
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 成员角色。
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=WorkspaceRole.GENERAL_VOLUNTEER)
    # 显式能力覆盖；为空时使用角色默认能力。
    permissions: Mapped[list[str] | None] = mapped_column(JSONB)
    # 成员状态。
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=MemberStatus.ACTIVE)
    # 邀请人用户 ID。
    invited_by: Mapped[UUID | None] = mapped_column()
    # 加入时间。
    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # 离开时间，停用时写入，重新激活时清空。
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class WorkspaceChannel(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """工作空间沟通频道。"""

    __tablename__ = "workspace_channels"
    __table_args__ = (UniqueConstraint("workspace_id", "name", name="uk_workspace_channel_name"),)

    workspace_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class WorkspaceTask(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """工作空间任务。"""

    __tablename__ = "workspace_tasks"

    workspace_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # 任务分类，取值来自工作空间配置 task_categories。
    category: Mapped[str | None] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=TaskStatus.NOT_STARTED)
    # 负责人（TeamMember.id）。
    assignee_id: Mapped[UUID | None] = mapped_column(index=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
