"""ORM 模型导出集合。"""

from ewp_api.models.audit import WorkspaceAuditLog
from ewp_api.models.event import Event
from ewp_api.models.incident import SecurityIncident
from ewp_api.models.workspace import TeamMember, Workspace, WorkspaceChannel, WorkspaceTask

__all__ = [
    "Event",
    "SecurityIncident",
    "TeamMember",
    "Workspace",
    "WorkspaceAuditLog",
    "WorkspaceChannel",
    "WorkspaceTask",
]
