import logging
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ewp_api.exceptions import InvalidTransition, NotAuthorized, NotFound
from ewp_api.models.enums import (
    IncidentSeverity,
    IncidentStatus,
    IncidentType,
    MemberStatus,
    WorkspaceRole,
    WorkspaceStatus,
)
from ewp_api.models.incident import SecurityIncident
from ewp_api.models.workspace import TeamMember, Workspace
from ewp_api.services import audit, lifecycle
from ewp_api.services.audit import list_workspace_audit_logs, record_workspace_audit
from ewp_api.services.security_incidents import (
    handle_security_incident,
    list_security_incidents,
    resolve_security_incident,
)


@pytest.fixture
def staffed_workspace(db_session, seed):
    event = seed.event(db_session)
    workspace = seed.workspace(db_session, event)
    owner = seed.member(db_session, workspace, role=WorkspaceRole.WORKSPACE_OWNER, user_id=event.organizer_id)
    lead = seed.member(db_session, workspace, role=WorkspaceRole.TEAM_LEAD)
    volunteer = seed.member(db_session, workspace)
    db_session.commit()
    return workspace, owner, lead, volunteer


def test_audit_failure_does_not_block_the_operation(db_session, staffed_workspace, monkeypatch, caplog):
    workspace, owner, _lead, _volunteer = staffed_workspace

    def _broken_log(**_kwargs):
        raise SQLAlchemyError("audit table is unavailable")

    monkeypatch.setattr(audit, "WorkspaceAuditLog", _broken_log)
    with caplog.at_level(logging.ERROR, logger="ewp_api.services.audit"):
        revoked = lifecycle.emergency_revoke_access(
            db_session,
            workspace_id=workspace.id,
            user_id=owner.user_id,
            reason="credential leak",
        )
    db_session.commit()

    assert revoked == 3
    assert db_session.get(Workspace, workspace.id).status == WorkspaceStatus.DISSOLVED
    assert "failed to record workspace audit" in caplog.text
    monkeypatch.undo()
    assert list_workspace_audit_logs(db_session, workspace.id) == []


def test_audit_logs_filter_by_action(db_session, staffed_workspace):
    workspace, owner, _lead, _volunteer = staffed_workspace
    record_workspace_audit(db_session, workspace_id=workspace.id, user_id=owner.user_id, action="NOTE_ADDED")
    record_workspace_audit(
        db_session,
        workspace_id=workspace.id,
        user_id=owner.user_id,
        action="STATUS_CHANGED",
        details={"from_status": "ACTIVE", "to_status": "WINDING_DOWN"},
    )
    db_session.commit()

    everything = list_workspace_audit_logs(db_session, workspace.id)
    only_status = list_workspace_audit_logs(db_session, workspace.id, action="STATUS_CHANGED")

    assert {log.action for log in everything} == {"NOTE_ADDED", "STATUS_CHANGED"}
    assert [log.action for log in only_status] == ["STATUS_CHANGED"]
    assert only_status[0].resource == "WORKSPACE_LIFECYCLE"
    assert only_status[0].resource_id == str(workspace.id)


def test_high_severity_revokes_affected_members(db_session, staffed_workspace, notifier):
    workspace, owner, lead, volunteer = staffed_workspace

    response = handle_security_incident(
        db_session,
        workspace_id=workspace.id,
        incident_type=IncidentType.UNAUTHORIZED_ACCESS,
        severity=IncidentSeverity.HIGH,
        description="Shared credentials detected",
        affected_users=[lead.user_id, volunteer.user_id, uuid4()],
        detected_by=owner.user_id,
        notifier=notifier,
    )
    db_session.commit()

    assert response.access_revoked == 2
    assert response.workspace_locked is False
    assert response.owners_notified == 1
    assert response.response_actions == ["Revoked access for 2 users", "Notified 1 workspace owners"]
    assert response.incident.status == IncidentStatus.RESPONDING
    assert response.incident.user_id == lead.user_id
    assert db_session.get(TeamMember, lead.id).status == MemberStatus.INACTIVE
    assert db_session.get(TeamMember, owner.id).status == MemberStatus.ACTIVE
    assert db_session.get(Workspace, workspace.id).status == WorkspaceStatus.ACTIVE
    assert notifier.incident_calls == [(workspace.id, response.incident.id, [owner.user_id])]


def test_critical_incident_locks_the_workspace(db_session, staffed_workspace, notifier):
    workspace, owner, lead, _volunteer = staffed_workspace

    response = handle_security_incident(
        db_session,
        workspace_id=workspace.id,
        incident_type=IncidentType.DATA_BREACH,
        severity=IncidentSeverity.CRITICAL,
        description="Attendee export leaked",
        affected_users=[lead.user_id],
        affected_resources=["attendee-export.csv"],
        notifier=notifier,
    )
    db_session.commit()

    assert response.workspace_locked is True
    assert "Workspace locked down" in response.response_actions
    assert db_session.get(Workspace, workspace.id).status == WorkspaceStatus.WINDING_DOWN
    assert response.incident.details["affected_resources"] == ["attendee-export.csv"]
    actions = {log.action for log in list_workspace_audit_logs(db_session, workspace.id)}
    assert {"WORKSPACE_LOCKED_DOWN", "SECURITY_INCIDENT_RESPONSE"} <= actions


def test_low_severity_only_notifies(db_session, staffed_workspace, notifier):
    workspace, _owner, lead, _volunteer = staffed_workspace

    response = handle_security_incident(
        db_session,
        workspace_id=workspace.id,
        incident_type=IncidentType.POLICY_VIOLATION,
        severity=IncidentSeverity.LOW,
        description="Shared a public link",
        affected_users=[lead.user_id],
        notifier=notifier,
    )

    assert response.access_revoked == 0
    assert response.workspace_locked is False
    assert response.response_actions == ["Notified 1 workspace owners"]
    assert db_session.get(TeamMember, lead.id).status == MemberStatus.ACTIVE


def test_incident_handling_survives_notifier_failure(db_session, staffed_workspace, failing_notifier):
    workspace, _owner, _lead, volunteer = staffed_workspace

    response = handle_security_incident(
        db_session,
        workspace_id=workspace.id,
        incident_type=IncidentType.MALICIOUS_ACTIVITY,
        severity=IncidentSeverity.HIGH,
        description="Spam in announcements",
        affected_users=[volunteer.user_id],
        notifier=failing_notifier,
    )
    db_session.commit()

    assert response.access_revoked == 1
    assert db_session.get(SecurityIncident, response.incident.id) is not None


def test_resolve_incident_once(db_session, staffed_workspace, notifier):
    workspace, owner, _lead, _volunteer = staffed_workspace
    response = handle_security_incident(
        db_session,
        workspace_id=workspace.id,
        incident_type=IncidentType.POLICY_VIOLATION,
        severity=IncidentSeverity.MEDIUM,
        description="Off-topic channel usage",
        notifier=notifier,
    )
    db_session.commit()

    resolved = resolve_security_incident(
        db_session,
        incident_id=response.incident.id,
        user_id=owner.user_id,
        resolution="Warned the member",
    )
    db_session.commit()

    assert resolved.status == IncidentStatus.RESOLVED
    assert resolved.resolved_at is not None
    assert resolved.response_actions[-1] == "Resolved: Warned the member"

    with pytest.raises(InvalidTransition):
        resolve_security_incident(
            db_session,
            incident_id=response.incident.id,
            user_id=owner.user_id,
            resolution="again",
        )


def test_resolve_requires_workspace_management(db_session, staffed_workspace, notifier):
    workspace, _owner, _lead, volunteer = staffed_workspace
    response = handle_security_incident(
        db_session,
        workspace_id=workspace.id,
        incident_type=IncidentType.POLICY_VIOLATION,
        severity=IncidentSeverity.LOW,
        description="Minor issue",
        notifier=notifier,
    )
    db_session.commit()

    with pytest.raises(NotAuthorized):
        resolve_security_incident(
            db_session,
            incident_id=response.incident.id,
            user_id=volunteer.user_id,
            resolution="not my call",
        )
    with pytest.raises(NotFound):
        resolve_security_incident(db_session, incident_id=uuid4(), user_id=volunteer.user_id, resolution="x")


def test_list_incidents_by_status(db_session, staffed_workspace, notifier):
    workspace, owner, _lead, _volunteer = staffed_workspace
    first = handle_security_incident(
        db_session,
        workspace_id=workspace.id,
        incident_type=IncidentType.POLICY_VIOLATION,
        severity=IncidentSeverity.LOW,
        description="first",
        notifier=notifier,
    )
    handle_security_incident(
        db_session,
        workspace_id=workspace.id,
        incident_type=IncidentType.POLICY_VIOLATION,
        severity=IncidentSeverity.LOW,
        description="second",
        notifier=notifier,
    )
    db_session.commit()
    resolve_security_incident(db_session, incident_id=first.incident.id, user_id=owner.user_id, resolution="done")
    db_session.commit()

    assert len(list_security_incidents(db_session, workspace.id)) == 2
    open_items = list_security_incidents(db_session, workspace.id, status=IncidentStatus.RESPONDING)
    assert [item.description for item in open_items] == ["second"]


def test_denied_action_reports_unauthorized_attempt(db_session, staffed_workspace):
    workspace, _owner, _lead, volunteer = staffed_workspace

    with pytest.raises(NotAuthorized):
        lifecycle.emergency_revoke_access(
            db_session,
            workspace_id=workspace.id,
            user_id=volunteer.user_id,
            reason="trying my luck",
        )
    db_session.rollback()

    incidents = db_session.execute(
        select(SecurityIncident).where(SecurityIncident.workspace_id == workspace.id)
    ).scalars().all()
    assert len(incidents) == 1
    assert incidents[0].incident_type == IncidentType.UNAUTHORIZED_ACCESS_ATTEMPT
    assert incidents[0].severity == IncidentSeverity.MEDIUM
    assert incidents[0].status == IncidentStatus.DETECTED
    assert incidents[0].user_id == volunteer.user_id
    assert incidents[0].description == "Failed access to WORKSPACE:MANAGE_WORKSPACE"
    assert db_session.get(Workspace, workspace.id).status == WorkspaceStatus.ACTIVE
