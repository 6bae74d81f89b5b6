"""工作空间能力模型与权限校验。

能力点是封闭枚举，成员的有效能力集合：
1. 成员有显式 permissions 覆盖时，使用覆盖值（仅保留合法能力点）。
2. 否则回退到角色默认映射。
"""

import logging
from collections.abc import Iterable
from enum import StrEnum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ewp_api.exceptions import AccessDenied, NotAuthorized
from ewp_api.models.enums import MemberStatus, WorkspaceRole
from ewp_api.models.workspace import TeamMember

logger = logging.getLogger(__name__)


class Capability(StrEnum):
    """工作空间内可授予的能力点。"""

    MANAGE_WORKSPACE = "MANAGE_WORKSPACE"
    MANAGE_TEAM = "MANAGE_TEAM"
    MANAGE_TASKS = "MANAGE_TASKS"
    MANAGE_CHANNELS = "MANAGE_CHANNELS"
    VIEW_ANALYTICS = "VIEW_ANALYTICS"
    MANAGE_PERMISSIONS = "MANAGE_PERMISSIONS"
    INVITE_MEMBERS = "INVITE_MEMBERS"
    CREATE_TASKS = "CREATE_TASKS"
    VIEW_TASKS = "VIEW_TASKS"
    UPDATE_TASK_PROGRESS = "UPDATE_TASK_PROGRESS"


_CAPABILITY_VALUES = {capability.value for capability in Capability}

DEFAULT_ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    WorkspaceRole.WORKSPACE_OWNER: frozenset(
        {
            Capability.MANAGE_WORKSPACE,
            Capability.MANAGE_TEAM,
            Capability.MANAGE_TASKS,
            Capability.MANAGE_CHANNELS,
            Capability.VIEW_ANALYTICS,
            Capability.MANAGE_PERMISSIONS,
        }
    ),
    WorkspaceRole.TEAM_LEAD: frozenset(
        {
            Capability.MANAGE_TASKS,
            Capability.MANAGE_CHANNELS,
            Capability.VIEW_ANALYTICS,
            Capability.INVITE_MEMBERS,
        }
    ),
    WorkspaceRole.EVENT_COORDINATOR: frozenset(
        {Capability.MANAGE_TASKS, Capability.VIEW_ANALYTICS, Capability.CREATE_TASKS}
    ),
    WorkspaceRole.VOLUNTEER_MANAGER: frozenset(
        {Capability.MANAGE_TASKS, Capability.CREATE_TASKS, Capability.INVITE_MEMBERS}
    ),
    WorkspaceRole.TECHNICAL_SPECIALIST: frozenset({Capability.CREATE_TASKS, Capability.MANAGE_TASKS}),
    WorkspaceRole.MARKETING_LEAD: frozenset(
        {Capability.CREATE_TASKS, Capability.MANAGE_TASKS, Capability.MANAGE_CHANNELS}
    ),
    WorkspaceRole.GENERAL_VOLUNTEER: frozenset({Capability.VIEW_TASKS, Capability.UPDATE_TASK_PROGRESS}),
}


def default_capabilities(role: str) -> frozenset[Capability]:
    """返回角色默认能力集合，未知角色没有任何能力。"""
    return DEFAULT_ROLE_CAPABILITIES.get(role, frozenset())


def normalize_capabilities(codes: Iterable[str]) -> frozenset[Capability]:
    """将存储中的能力编码转换为能力枚举，丢弃未知编码。"""
    normalized: set[Capability] = set()
    for code in codes:
        value = str(code).strip().upper()
        if value in _CAPABILITY_VALUES:
            normalized.add(Capability(value))
        elif value:
            logger.warning("ignored unknown capability code=%s", code)
    return frozenset(normalized)


def effective_capabilities(member: TeamMember) -> frozenset[Capability]:
    """计算成员的有效能力集合。"""
    # 显式覆盖为空列表表示“无任何能力”，只有 None 才回退到角色默认值。
    if member.permissions is not None:
        return normalize_capabilities(member.permissions)
    return default_capabilities(member.role)


def permission_catalog() -> list[str]:
    """返回能力点目录。"""
    return sorted(capability.value for capability in Capability)


def role_permission_matrix() -> dict[str, list[str]]:
    """返回全部角色的默认能力映射。"""
    return {
        role.value: sorted(capability.value for capability in default_capabilities(role))
        for role in WorkspaceRole
    }


def get_active_member(db: Session, *, workspace_id: UUID, user_id: UUID) -> TeamMember | None:
    """查询用户在工作空间中的有效成员关系。"""
    return (
        db.execute(
            select(TeamMember)
            .where(TeamMember.workspace_id == workspace_id)
            .where(TeamMember.user_id == user_id)
            .where(TeamMember.status == MemberStatus.ACTIVE)
        )
        .scalar_one_or_none()
    )


def verify_permission(
    db: Session,
    *,
    workspace_id: UUID,
    user_id: UUID,
    capability: Capability,
) -> TeamMember:
    """要求用户在工作空间内具备指定能力。

    - 没有有效成员关系：AccessDenied。
    - 有成员关系但能力不足：NotAuthorized。

    本函数没有副作用，拒绝记录由调用方负责写入审计。
    """
    member = get_active_member(db, workspace_id=workspace_id, user_id=user_id)
    if member is None:
        raise AccessDenied(
            "当前用户不是该工作空间的有效成员。",
            workspace_id=str(workspace_id),
            user_id=str(user_id),
        )
    if capability not in effective_capabilities(member):
        raise NotAuthorized(
            f"当前成员缺少 {capability.value} 权限。",
            workspace_id=str(workspace_id),
            user_id=str(user_id),
            required_capability=capability.value,
            role=member.role,
        )
    return member
