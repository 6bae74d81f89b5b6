"""工作空间访问决策。

在纯函数式的 verify_permission 外包一层：拒绝时写入审计日志并上报
“未授权访问尝试”安全事件并提交，随后重新抛出原异常。
"""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from ewp_api.exceptions import AccessDenied, NotAuthorized
from ewp_api.models.base import utc_now
from ewp_api.models.enums import IncidentSeverity, IncidentStatus, IncidentType
from ewp_api.models.event import Event
from ewp_api.models.incident import SecurityIncident
from ewp_api.models.workspace import TeamMember, Workspace
from ewp_api.services.audit import _client_ip, _user_agent, record_workspace_audit
from ewp_api.services.permissions import Capability, get_active_member, verify_permission

logger = logging.getLogger(__name__)


def report_unauthorized_access(
    db: Session,
    *,
    workspace_id: UUID,
    user_id: UUID,
    resource: str,
    reason: str,
    request: Request | None = None,
    now: datetime | None = None,
) -> SecurityIncident:
    """登记一次未授权访问尝试（MEDIUM，DETECTED）。"""
    incident = SecurityIncident(
        workspace_id=workspace_id,
        user_id=user_id,
        incident_type=IncidentType.UNAUTHORIZED_ACCESS_ATTEMPT,
        severity=IncidentSeverity.MEDIUM,
        description=f"Failed access to {resource}",
        details={"resource": resource, "reason": reason},
        status=IncidentStatus.DETECTED,
        response_actions=[],
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        detected_at=now or utc_now(),
    )
    db.add(incident)
    db.flush()
    return incident


def _record_denial(
    db: Session,
    *,
    workspace_id: UUID,
    user_id: UUID,
    resource: str,
    exc: AccessDenied | NotAuthorized,
    request: Request | None,
) -> None:
    logger.warning(
        "workspace access denied workspace_id=%s user_id=%s resource=%s code=%s",
        workspace_id,
        user_id,
        resource,
        exc.code,
    )
    record_workspace_audit(
        db,
        workspace_id=workspace_id,
        user_id=user_id,
        action="ACCESS_DENIED",
        resource=resource,
        details={"code": exc.code, "message": exc.message, **exc.details},
        request=request,
    )
    report_unauthorized_access(
        db,
        workspace_id=workspace_id,
        user_id=user_id,
        resource=resource,
        reason=exc.code,
        request=request,
    )
    # 拒绝发生在任何状态变更之前，提交只包含拒绝记录本身，
    # 保证调用方随后回滚时审计与安全事件仍然保留。
    db.commit()


def authorize_workspace_action(
    db: Session,
    *,
    workspace_id: UUID,
    user_id: UUID,
    capability: Capability,
    request: Request | None = None,
) -> TeamMember:
    """校验能力点；拒绝时留痕后重新抛出。

    拒绝路径会提交当前会话，必须在本次请求的任何写操作之前调用。
    """
    try:
        return verify_permission(db, workspace_id=workspace_id, user_id=user_id, capability=capability)
    except (AccessDenied, NotAuthorized) as exc:
        _record_denial(
            db,
            workspace_id=workspace_id,
            user_id=user_id,
            resource=f"WORKSPACE:{capability.value}",
            exc=exc,
            request=request,
        )
        raise


def ensure_workspace_read_access(
    db: Session,
    *,
    workspace: Workspace,
    user_id: UUID,
    request: Request | None = None,
) -> TeamMember | None:
    """读取权限：有效成员或活动组织者。

    工作空间解散后所有成员都已停用，组织者仍需能够查看生命周期状态，
    因此组织者不依赖成员关系。组织者命中时返回 None。
    与 authorize_workspace_action 相同，须在任何写操作之前调用。
    """
    member = get_active_member(db, workspace_id=workspace.id, user_id=user_id)
    if member is not None:
        return member

    event = db.get(Event, workspace.event_id)
    if event is not None and event.organizer_id == user_id:
        return None

    exc = AccessDenied(
        "当前用户不是该工作空间的有效成员。",
        workspace_id=str(workspace.id),
        user_id=str(user_id),
    )
    _record_denial(db, workspace_id=workspace.id, user_id=user_id, resource="WORKSPACE:READ", exc=exc, request=request)
    raise exc
