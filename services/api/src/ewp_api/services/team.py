"""团队成员变动服务。"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from ewp_api.exceptions import InvalidTransition, NotFound
from ewp_api.models.base import utc_now
from ewp_api.models.enums import MemberStatus, TaskStatus, WorkspaceStatus
from ewp_api.models.workspace import WorkspaceTask
from ewp_api.services.access import authorize_workspace_action
from ewp_api.services.audit import record_workspace_audit
from ewp_api.services.lifecycle import get_workspace_or_404
from ewp_api.services.permissions import Capability, get_active_member

logger = logging.getLogger(__name__)


def handle_early_departure(
    db: Session,
    *,
    workspace_id: UUID,
    departing_user_id: UUID,
    manager_id: UUID,
    reason: str | None = None,
    now: datetime | None = None,
    request: Request | None = None,
) -> int:
    """成员提前离队：停用成员并把未完成任务转交给操作的管理者。

    返回转交的任务数。
    """
    now = now or utc_now()
    workspace = get_workspace_or_404(db, workspace_id)
    if workspace.status == WorkspaceStatus.DISSOLVED:
        raise InvalidTransition("工作空间已解散。", workspace_id=str(workspace_id))

    manager = authorize_workspace_action(
        db,
        workspace_id=workspace.id,
        user_id=manager_id,
        capability=Capability.MANAGE_TEAM,
        request=request,
    )
    # 任务转交给操作者本人，操作者不能同时是离队成员。
    if departing_user_id == manager_id:
        raise InvalidTransition(
            "不能为自己办理离队，请由其他管理者操作。",
            workspace_id=str(workspace.id),
            user_id=str(departing_user_id),
        )
    departing = get_active_member(db, workspace_id=workspace.id, user_id=departing_user_id)
    if departing is None:
        raise NotFound(
            "离队成员不存在或已停用。",
            workspace_id=str(workspace.id),
            user_id=str(departing_user_id),
        )

    departing.status = MemberStatus.INACTIVE
    departing.left_at = now

    open_tasks = db.execute(
        select(WorkspaceTask).where(
            WorkspaceTask.workspace_id == workspace.id,
            WorkspaceTask.assignee_id == departing.id,
            WorkspaceTask.status != TaskStatus.COMPLETED,
        )
    ).scalars().all()
    note = f"[REASSIGNED: original assignee left the team on {now.date().isoformat()}]"
    for task in open_tasks:
        task.assignee_id = manager.id
        task.description = f"{task.description}\n\n{note}" if task.description else note
    db.flush()

    record_workspace_audit(
        db,
        workspace_id=workspace.id,
        user_id=manager_id,
        action="TEAM_MEMBER_DEPARTED",
        resource="TEAM_MEMBER",
        resource_id=str(departing.id),
        details={
            "departed_user_id": str(departing_user_id),
            "reason": reason,
            "reassigned_tasks": len(open_tasks),
            "reassigned_to": str(manager.id),
        },
        request=request,
    )
    logger.info(
        "team member departed workspace_id=%s user_id=%s reassigned=%s",
        workspace.id,
        departing_user_id,
        len(open_tasks),
    )
    return len(open_tasks)
