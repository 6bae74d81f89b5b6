"""工作空间初始化服务。"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from ewp_api.models.enums import ChannelType, MemberStatus, WorkspaceRole
from ewp_api.models.workspace import TeamMember, WorkspaceChannel
from ewp_api.services.permissions import default_capabilities

# 默认频道：名称、类型、说明。
DEFAULT_CHANNEL_SPECS: tuple[tuple[str, ChannelType, str], ...] = (
    ("general", ChannelType.GENERAL, "General team discussions"),
    ("announcements", ChannelType.ANNOUNCEMENT, "Important announcements and updates"),
    ("tasks", ChannelType.TASK_SPECIFIC, "Task-related discussions"),
)


def provision_default_channels(db: Session, workspace_id: UUID) -> list[WorkspaceChannel]:
    """为工作空间创建默认频道。

    本函数不做幂等判断，调用方需保证每个工作空间只执行一次
    （provision_workspace 通过“活动已有工作空间即拒绝”保证）。
    """
    channels = [
        WorkspaceChannel(
            workspace_id=workspace_id,
            name=name,
            type=channel_type,
            description=description,
            is_private=False,
        )
        for name, channel_type, description in DEFAULT_CHANNEL_SPECS
    ]
    db.add_all(channels)
    db.flush()
    return channels


def create_owner_member(
    db: Session,
    *,
    workspace_id: UUID,
    owner_user_id: UUID,
    joined_at: datetime,
) -> TeamMember:
    """创建工作空间所有者成员，并显式写入完整所有者能力集合。"""
    owner = TeamMember(
        workspace_id=workspace_id,
        user_id=owner_user_id,
        role=WorkspaceRole.WORKSPACE_OWNER,
        permissions=sorted(capability.value for capability in default_capabilities(WorkspaceRole.WORKSPACE_OWNER)),
        status=MemberStatus.ACTIVE,
        invited_by=owner_user_id,
        joined_at=joined_at,
    )
    db.add(owner)
    db.flush()
    return owner
