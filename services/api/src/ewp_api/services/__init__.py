"""服务层能力导出集合。"""

from ewp_api.services.access import (
    authorize_workspace_action,
    ensure_workspace_read_access,
    report_unauthorized_access,
)
from ewp_api.services.audit import list_workspace_audit_logs, record_workspace_audit
from ewp_api.services.lifecycle import (
    ALLOWED_TRANSITIONS,
    LifecycleStatus,
    can_transition,
    dissolve_expired_workspace,
    emergency_revoke_access,
    get_lifecycle_status,
    get_workspace_by_event,
    get_workspace_or_404,
    initiate_manual_wind_down,
    on_event_cancelled,
    on_event_completed,
    on_event_reactivated,
    on_event_status_changed,
    provision_workspace,
    update_workspace_status,
    validate_transition,
)
from ewp_api.services.notifications import LoggingNotifier, WorkspaceNotifier
from ewp_api.services.permissions import (
    Capability,
    effective_capabilities,
    permission_catalog,
    role_permission_matrix,
    verify_permission,
)
from ewp_api.services.security_incidents import (
    IncidentResponse,
    handle_security_incident,
    list_security_incidents,
    resolve_security_incident,
)
from ewp_api.services.sweeper import SweepReport, sweep_dissolutions
from ewp_api.services.team import handle_early_departure

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Capability",
    "IncidentResponse",
    "LifecycleStatus",
    "LoggingNotifier",
    "SweepReport",
    "WorkspaceNotifier",
    "authorize_workspace_action",
    "can_transition",
    "dissolve_expired_workspace",
    "effective_capabilities",
    "emergency_revoke_access",
    "ensure_workspace_read_access",
    "get_lifecycle_status",
    "get_workspace_by_event",
    "get_workspace_or_404",
    "handle_early_departure",
    "handle_security_incident",
    "initiate_manual_wind_down",
    "list_security_incidents",
    "list_workspace_audit_logs",
    "on_event_cancelled",
    "on_event_completed",
    "on_event_reactivated",
    "on_event_status_changed",
    "permission_catalog",
    "provision_workspace",
    "record_workspace_audit",
    "report_unauthorized_access",
    "resolve_security_incident",
    "role_permission_matrix",
    "sweep_dissolutions",
    "update_workspace_status",
    "validate_transition",
]
