"""工作空间通知出口。

通知是“发出即忘”的旁路：任何异常只记录运行日志，
不会回滚已提交或即将提交的状态迁移。
"""

import logging
from collections.abc import Sequence
from typing import Protocol

from ewp_api.models.incident import SecurityIncident
from ewp_api.models.workspace import TeamMember, Workspace

logger = logging.getLogger(__name__)


class WorkspaceNotifier(Protocol):
    """通知服务接口，由调用方注入。"""

    def notify_wind_down(self, workspace: Workspace, members: Sequence[TeamMember]) -> None: ...

    def notify_security_incident(
        self,
        workspace: Workspace,
        incident: SecurityIncident,
        owners: Sequence[TeamMember],
    ) -> None: ...


class LoggingNotifier:
    """默认实现：仅把通知意图写入运行日志。"""

    def notify_wind_down(self, workspace: Workspace, members: Sequence[TeamMember]) -> None:
        for member in members:
            logger.info(
                "wind-down notification workspace_id=%s user_id=%s role=%s",
                workspace.id,
                member.user_id,
                member.role,
            )

    def notify_security_incident(
        self,
        workspace: Workspace,
        incident: SecurityIncident,
        owners: Sequence[TeamMember],
    ) -> None:
        for owner in owners:
            logger.info(
                "security incident notification workspace_id=%s incident_id=%s severity=%s user_id=%s",
                workspace.id,
                incident.id,
                incident.severity,
                owner.user_id,
            )


default_notifier = LoggingNotifier()


def notify_wind_down_safely(
    notifier: WorkspaceNotifier,
    workspace: Workspace,
    members: Sequence[TeamMember],
) -> None:
    """发送收尾通知，失败只记录日志。"""
    try:
        notifier.notify_wind_down(workspace, members)
    except Exception:
        logger.exception("wind-down notification failed workspace_id=%s", workspace.id)


def notify_security_incident_safely(
    notifier: WorkspaceNotifier,
    workspace: Workspace,
    incident: SecurityIncident,
    owners: Sequence[TeamMember],
) -> None:
    """发送安全事件通知，失败只记录日志。"""
    try:
        notifier.notify_security_incident(workspace, incident, owners)
    except Exception:
        logger.exception(
            "security incident notification failed workspace_id=%s incident_id=%s",
            workspace.id,
            incident.id,
        )
