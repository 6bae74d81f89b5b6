"""安全事件响应服务。

响应策略按严重级别叠加：
- HIGH 及以上：停用涉事成员。
- CRITICAL：额外锁定工作空间（ACTIVE 进入 WINDING_DOWN）。
- 所有事件：通知工作空间所有者。
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from ewp_api.exceptions import InvalidTransition, NotFound
from ewp_api.models.base import utc_now
from ewp_api.models.enums import (
    IncidentSeverity,
    IncidentStatus,
    IncidentType,
    MemberStatus,
    WorkspaceRole,
)
from ewp_api.models.incident import SecurityIncident
from ewp_api.models.workspace import TeamMember
from ewp_api.services.access import authorize_workspace_action
from ewp_api.services.audit import _client_ip, _user_agent, record_workspace_audit
from ewp_api.services.lifecycle import get_workspace_or_404, lock_down_workspace
from ewp_api.services.notifications import (
    WorkspaceNotifier,
    default_notifier,
    notify_security_incident_safely,
)
from ewp_api.services.permissions import Capability

logger = logging.getLogger(__name__)

_REVOKE_SEVERITIES = frozenset({IncidentSeverity.HIGH, IncidentSeverity.CRITICAL})


@dataclass
class IncidentResponse:
    """安全事件处置结果。"""

    incident: SecurityIncident
    response_actions: list[str] = field(default_factory=list)
    access_revoked: int = 0
    workspace_locked: bool = False
    owners_notified: int = 0


def _revoke_users(db: Session, workspace_id: UUID, user_ids: Sequence[UUID], *, now: datetime) -> int:
    if not user_ids:
        return 0
    stmt = select(TeamMember).where(
        TeamMember.workspace_id == workspace_id,
        TeamMember.user_id.in_(list(user_ids)),
        TeamMember.status == MemberStatus.ACTIVE,
    )
    members = db.execute(stmt).scalars().all()
    for member in members:
        member.status = MemberStatus.INACTIVE
        member.left_at = now
    db.flush()
    return len(members)


def _active_owners(db: Session, workspace_id: UUID) -> list[TeamMember]:
    stmt = select(TeamMember).where(
        TeamMember.workspace_id == workspace_id,
        TeamMember.role == WorkspaceRole.WORKSPACE_OWNER,
        TeamMember.status == MemberStatus.ACTIVE,
    )
    return list(db.execute(stmt).scalars().all())


def handle_security_incident(
    db: Session,
    *,
    workspace_id: UUID,
    incident_type: IncidentType,
    severity: IncidentSeverity,
    description: str,
    affected_users: Sequence[UUID] = (),
    affected_resources: Sequence[str] = (),
    detected_by: UUID | None = None,
    now: datetime | None = None,
    request: Request | None = None,
    notifier: WorkspaceNotifier = default_notifier,
) -> IncidentResponse:
    """登记安全事件并按严重级别执行处置。"""
    now = now or utc_now()
    severity = IncidentSeverity(severity)
    workspace = get_workspace_or_404(db, workspace_id, for_update=True)

    incident = SecurityIncident(
        workspace_id=workspace.id,
        user_id=affected_users[0] if affected_users else None,
        incident_type=IncidentType(incident_type),
        severity=severity,
        description=description,
        details={
            "affected_users": [str(user_id) for user_id in affected_users],
            "affected_resources": list(affected_resources),
        },
        status=IncidentStatus.RESPONDING,
        response_actions=[],
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        detected_by=detected_by,
        detected_at=now,
        responded_at=now,
    )
    db.add(incident)
    db.flush()

    response = IncidentResponse(incident=incident)
    if severity in _REVOKE_SEVERITIES and affected_users:
        response.access_revoked = _revoke_users(db, workspace.id, affected_users, now=now)
        response.response_actions.append(f"Revoked access for {response.access_revoked} users")

    if severity == IncidentSeverity.CRITICAL:
        response.workspace_locked = lock_down_workspace(
            db,
            workspace,
            incident_id=incident.id,
            now=now,
            request=request,
        )
        if response.workspace_locked:
            response.response_actions.append("Workspace locked down")

    owners = _active_owners(db, workspace.id)
    notify_security_incident_safely(notifier, workspace, incident, owners)
    response.owners_notified = len(owners)
    response.response_actions.append(f"Notified {len(owners)} workspace owners")

    # JSON 列需整体重新赋值才能被识别为变更。
    incident.response_actions = list(response.response_actions)
    db.flush()

    record_workspace_audit(
        db,
        workspace_id=workspace.id,
        user_id=detected_by,
        action="SECURITY_INCIDENT_RESPONSE",
        resource="SECURITY_INCIDENT",
        resource_id=str(incident.id),
        details={
            "incident_type": incident.incident_type,
            "severity": severity.value,
            "response_actions": response.response_actions,
        },
        request=request,
    )
    logger.warning(
        "security incident handled workspace_id=%s incident_id=%s severity=%s actions=%s",
        workspace.id,
        incident.id,
        severity.value,
        response.response_actions,
    )
    return response


def resolve_security_incident(
    db: Session,
    *,
    incident_id: UUID,
    user_id: UUID,
    resolution: str,
    now: datetime | None = None,
    request: Request | None = None,
) -> SecurityIncident:
    """关闭安全事件，需要工作空间管理能力。"""
    now = now or utc_now()
    incident = db.get(SecurityIncident, incident_id)
    if incident is None:
        raise NotFound("安全事件不存在。", incident_id=str(incident_id))

    authorize_workspace_action(
        db,
        workspace_id=incident.workspace_id,
        user_id=user_id,
        capability=Capability.MANAGE_WORKSPACE,
        request=request,
    )
    if incident.status == IncidentStatus.RESOLVED:
        raise InvalidTransition("安全事件已关闭。", incident_id=str(incident.id))

    incident.status = IncidentStatus.RESOLVED
    incident.resolved_at = now
    incident.response_actions = [*(incident.response_actions or []), f"Resolved: {resolution}"]
    db.flush()

    record_workspace_audit(
        db,
        workspace_id=incident.workspace_id,
        user_id=user_id,
        action="SECURITY_INCIDENT_RESOLVED",
        resource="SECURITY_INCIDENT",
        resource_id=str(incident.id),
        details={"resolution": resolution},
        request=request,
    )
    return incident


def list_security_incidents(
    db: Session,
    workspace_id: UUID,
    *,
    status: IncidentStatus | None = None,
    limit: int = 100,
) -> list[SecurityIncident]:
    """按发现时间倒序列出工作空间安全事件。"""
    stmt = select(SecurityIncident).where(SecurityIncident.workspace_id == workspace_id)
    if status is not None:
        stmt = stmt.where(SecurityIncident.status == status)
    stmt = stmt.order_by(SecurityIncident.detected_at.desc()).limit(limit)
    return list(db.execute(stmt).scalars().all())
