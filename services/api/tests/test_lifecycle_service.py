from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ewp_api.exceptions import AccessDenied, AlreadyExists, InvalidTransition, NotAuthorized, NotFound
from ewp_api.models.audit import WorkspaceAuditLog
from ewp_api.models.base import as_utc
from ewp_api.models.enums import (
    ChannelType,
    EventStatus,
    MemberStatus,
    WorkspaceRole,
    WorkspaceStatus,
)
from ewp_api.models.workspace import TeamMember, Workspace, WorkspaceChannel
from ewp_api.services import lifecycle


def _audit(db: Session, workspace_id, action: str) -> list[WorkspaceAuditLog]:
    stmt = (
        select(WorkspaceAuditLog)
        .where(WorkspaceAuditLog.workspace_id == workspace_id)
        .where(WorkspaceAuditLog.action == action)
    )
    return list(db.execute(stmt).scalars().all())


def _members(db: Session, workspace_id) -> list[TeamMember]:
    return list(db.execute(select(TeamMember).where(TeamMember.workspace_id == workspace_id)).scalars().all())


def test_provision_creates_owner_channels_and_activates(db_session: Session, seed, now):
    event = seed.event(db_session)

    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    db_session.commit()

    assert workspace.status == WorkspaceStatus.ACTIVE
    assert workspace.name == "Spring Hackathon Workspace"
    assert workspace.settings["retention_period_days"] == 30

    members = _members(db_session, workspace.id)
    assert len(members) == 1
    owner = members[0]
    assert owner.user_id == event.organizer_id
    assert owner.role == WorkspaceRole.WORKSPACE_OWNER
    assert "MANAGE_WORKSPACE" in owner.permissions

    channels = db_session.execute(
        select(WorkspaceChannel).where(WorkspaceChannel.workspace_id == workspace.id)
    ).scalars().all()
    assert {(channel.name, channel.type) for channel in channels} == {
        ("general", ChannelType.GENERAL),
        ("announcements", ChannelType.ANNOUNCEMENT),
        ("tasks", ChannelType.TASK_SPECIFIC),
    }
    provisioned = _audit(db_session, workspace.id, "WORKSPACE_PROVISIONED")
    assert len(provisioned) == 1
    assert provisioned[0].user_id == event.organizer_id


def test_provision_rejects_second_workspace_for_same_event(db_session: Session, seed, now):
    event = seed.event(db_session)
    lifecycle.provision_workspace(db_session, event_id=event.id, organizer_id=event.organizer_id, now=now)
    db_session.commit()

    with pytest.raises(AlreadyExists):
        lifecycle.provision_workspace(db_session, event_id=event.id, organizer_id=event.organizer_id, now=now)
    db_session.rollback()

    count = db_session.execute(
        select(func.count()).select_from(Workspace).where(Workspace.event_id == event.id)
    ).scalar_one()
    assert count == 1


def test_provision_requires_organizer(db_session: Session, seed, now):
    event = seed.event(db_session)
    with pytest.raises(NotAuthorized):
        lifecycle.provision_workspace(db_session, event_id=event.id, organizer_id=uuid4(), now=now)


def test_provision_unknown_event(db_session: Session, now):
    with pytest.raises(NotFound):
        lifecycle.provision_workspace(db_session, event_id=uuid4(), organizer_id=uuid4(), now=now)


def test_event_completed_starts_wind_down_and_schedules_dissolution(db_session: Session, seed, now):
    event = seed.event(db_session, end_date=now - timedelta(days=1))
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    db_session.commit()

    assert lifecycle.on_event_completed(db_session, workspace.id, now=now) is True
    db_session.commit()

    assert workspace.status == WorkspaceStatus.WINDING_DOWN
    scheduled = _audit(db_session, workspace.id, "DISSOLUTION_SCHEDULED")
    assert len(scheduled) == 1
    assert scheduled[0].details["retention_period_days"] == 30
    assert scheduled[0].details["scheduled_dissolution"] == (
        as_utc(event.end_date) + timedelta(days=30)
    ).isoformat()
    wind_down = _audit(db_session, workspace.id, "WORKSPACE_WIND_DOWN_INITIATED")
    assert wind_down[0].details["reason"] == "EVENT_COMPLETED"

    # 成员在收尾期仍可访问。
    assert all(member.status == MemberStatus.ACTIVE for member in _members(db_session, workspace.id))
    # 重复的完成通知被忽略。
    assert lifecycle.on_event_completed(db_session, workspace.id, now=now) is False


def test_event_cancelled_dissolves_immediately_regardless_of_retention(db_session: Session, seed, now):
    event = seed.event(db_session, end_date=now + timedelta(days=30))
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    seed.member(db_session, workspace)
    seed.member(db_session, workspace, role=WorkspaceRole.TEAM_LEAD)
    db_session.commit()

    assert lifecycle.on_event_cancelled(db_session, workspace.id, now=now) is True
    db_session.commit()

    refreshed = db_session.get(Workspace, workspace.id)
    assert refreshed.status == WorkspaceStatus.DISSOLVED
    assert as_utc(refreshed.dissolved_at) == now
    members = _members(db_session, workspace.id)
    assert len(members) == 3
    assert all(member.status == MemberStatus.INACTIVE for member in members)
    assert all(as_utc(member.left_at) == now for member in members)

    dissolved = _audit(db_session, workspace.id, "WORKSPACE_DISSOLVED")
    assert len(dissolved) == 1
    assert dissolved[0].details["reason"] == "EVENT_CANCELLED"
    assert dissolved[0].details["team_members_revoked"] is True
    assert dissolved[0].details["revoked_count"] == 3

    assert lifecycle.on_event_cancelled(db_session, workspace.id, now=now) is False


def test_event_cancelled_while_provisioning_is_rejected(db_session: Session, seed, now):
    event = seed.event(db_session)
    workspace = seed.workspace(db_session, event, status=WorkspaceStatus.PROVISIONING)
    db_session.commit()

    with pytest.raises(InvalidTransition):
        lifecycle.on_event_cancelled(db_session, workspace.id, now=now)


def test_reactivation_after_cancellation_is_a_no_op(db_session: Session, seed, now):
    event = seed.event(db_session)
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    lifecycle.on_event_cancelled(db_session, workspace.id, now=now)
    db_session.commit()

    assert lifecycle.on_event_reactivated(db_session, workspace.id) is False
    db_session.commit()

    assert db_session.get(Workspace, workspace.id).status == WorkspaceStatus.DISSOLVED
    assert _audit(db_session, workspace.id, "WORKSPACE_REACTIVATED") == []


def test_reactivation_restores_workspace_dissolved_without_timestamp(db_session: Session, seed, now):
    event = seed.event(db_session, status=EventStatus.CANCELLED)
    workspace = seed.workspace(db_session, event, status=WorkspaceStatus.DISSOLVED, dissolved_at=None)
    left = seed.member(db_session, workspace, status=MemberStatus.INACTIVE, left_at=now - timedelta(days=1))
    never_joined = seed.member(db_session, workspace, status=MemberStatus.INACTIVE, left_at=None)
    db_session.commit()

    assert lifecycle.on_event_reactivated(db_session, workspace.id) is True
    db_session.commit()

    assert db_session.get(Workspace, workspace.id).status == WorkspaceStatus.ACTIVE
    assert db_session.get(TeamMember, left.id).status == MemberStatus.ACTIVE
    assert db_session.get(TeamMember, left.id).left_at is None
    assert db_session.get(TeamMember, never_joined.id).status == MemberStatus.INACTIVE
    restored = _audit(db_session, workspace.id, "WORKSPACE_REACTIVATED")
    assert restored[0].details["restored_members"] == 1


def test_event_status_change_dispatch(db_session: Session, seed, now):
    event = seed.event(db_session, end_date=now - timedelta(days=1))
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    db_session.commit()

    result = lifecycle.on_event_status_changed(
        db_session,
        event_id=event.id,
        new_status=EventStatus.COMPLETED,
        old_status=EventStatus.ONGOING,
        now=now,
    )
    db_session.commit()
    assert result.id == workspace.id
    assert result.status == WorkspaceStatus.WINDING_DOWN

    # 活动没有工作空间时直接返回。
    other = seed.event(db_session)
    assert (
        lifecycle.on_event_status_changed(
            db_session,
            event_id=other.id,
            new_status=EventStatus.CANCELLED,
            old_status=EventStatus.PUBLISHED,
        )
        is None
    )


def test_manual_wind_down_overrides_retention_and_notifies(db_session: Session, seed, now, notifier):
    event = seed.event(db_session, end_date=now - timedelta(days=2))
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    volunteer = seed.member(db_session, workspace)
    db_session.commit()

    scheduled = lifecycle.initiate_manual_wind_down(
        db_session,
        workspace_id=workspace.id,
        user_id=event.organizer_id,
        retention_period_days=5,
        now=now,
        notifier=notifier,
    )
    db_session.commit()

    assert scheduled == as_utc(event.end_date) + timedelta(days=5)
    refreshed = db_session.get(Workspace, workspace.id)
    assert refreshed.status == WorkspaceStatus.WINDING_DOWN
    assert refreshed.settings["retention_period_days"] == 5
    # 其他配置字段不受影响。
    assert refreshed.settings["default_channels"] == ["general", "announcements", "tasks"]
    assert len(notifier.wind_down_calls) == 1
    notified_workspace, notified_users = notifier.wind_down_calls[0]
    assert notified_workspace == workspace.id
    assert set(notified_users) == {event.organizer_id, volunteer.user_id}
    manual = _audit(db_session, workspace.id, "DISSOLUTION_INITIATED_MANUALLY")
    assert manual[0].details["retention_period_days"] == 5


def test_manual_wind_down_survives_notifier_failure(db_session: Session, seed, now, failing_notifier):
    event = seed.event(db_session)
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    db_session.commit()

    lifecycle.initiate_manual_wind_down(
        db_session,
        workspace_id=workspace.id,
        user_id=event.organizer_id,
        now=now,
        notifier=failing_notifier,
    )
    db_session.commit()
    assert db_session.get(Workspace, workspace.id).status == WorkspaceStatus.WINDING_DOWN


def test_manual_wind_down_requires_active_workspace(db_session: Session, seed, now):
    event = seed.event(db_session)
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    lifecycle.on_event_completed(db_session, workspace.id, now=now)
    db_session.commit()

    with pytest.raises(InvalidTransition):
        lifecycle.initiate_manual_wind_down(
            db_session, workspace_id=workspace.id, user_id=event.organizer_id, now=now
        )


def test_volunteer_cannot_wind_down(db_session: Session, seed, now):
    event = seed.event(db_session)
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    volunteer = seed.member(db_session, workspace)
    db_session.commit()

    with pytest.raises(NotAuthorized):
        lifecycle.initiate_manual_wind_down(
            db_session, workspace_id=workspace.id, user_id=volunteer.user_id, now=now
        )
    db_session.rollback()

    assert db_session.get(Workspace, workspace.id).status == WorkspaceStatus.ACTIVE
    denied = _audit(db_session, workspace.id, "ACCESS_DENIED")
    assert len(denied) == 1
    assert denied[0].user_id == volunteer.user_id
    assert denied[0].details["code"] == "NOT_AUTHORIZED"


def test_non_member_gets_access_denied(db_session: Session, seed, now):
    event = seed.event(db_session)
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    db_session.commit()

    with pytest.raises(AccessDenied):
        lifecycle.emergency_revoke_access(
            db_session, workspace_id=workspace.id, user_id=uuid4(), reason="test", now=now
        )


def test_emergency_revoke_dissolves_and_deactivates_everyone(db_session: Session, seed, now):
    event = seed.event(db_session, end_date=now + timedelta(days=10))
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    seed.member(db_session, workspace)
    seed.member(db_session, workspace, role=WorkspaceRole.MARKETING_LEAD)
    db_session.commit()

    revoked = lifecycle.emergency_revoke_access(
        db_session,
        workspace_id=workspace.id,
        user_id=event.organizer_id,
        reason="compromised organizer account",
        now=now,
    )
    db_session.commit()

    assert revoked == 3
    refreshed = db_session.get(Workspace, workspace.id)
    assert refreshed.status == WorkspaceStatus.DISSOLVED
    assert refreshed.dissolved_at is not None
    assert all(member.status == MemberStatus.INACTIVE for member in _members(db_session, workspace.id))
    entry = _audit(db_session, workspace.id, "EMERGENCY_ACCESS_REVOKED")[0]
    assert entry.details["reason"] == "compromised organizer account"

    # 撤销后所有者本身也已停用。
    with pytest.raises(AccessDenied):
        lifecycle.emergency_revoke_access(
            db_session, workspace_id=workspace.id, user_id=event.organizer_id, reason="again", now=now
        )


def test_update_status_to_dissolved_requires_finished_event(db_session: Session, seed, now):
    event = seed.event(db_session, end_date=now + timedelta(days=3), status=EventStatus.ONGOING)
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    volunteer = seed.member(db_session, workspace)
    db_session.commit()

    with pytest.raises(InvalidTransition):
        lifecycle.update_workspace_status(
            db_session,
            workspace_id=workspace.id,
            user_id=event.organizer_id,
            new_status=WorkspaceStatus.DISSOLVED,
            now=now,
        )
    db_session.rollback()

    event.status = EventStatus.COMPLETED
    db_session.commit()

    result = lifecycle.update_workspace_status(
        db_session,
        workspace_id=workspace.id,
        user_id=event.organizer_id,
        new_status=WorkspaceStatus.DISSOLVED,
        reason="closed early",
        now=now,
    )
    db_session.commit()

    assert result.status == WorkspaceStatus.DISSOLVED
    assert db_session.get(TeamMember, volunteer.id).status == MemberStatus.INACTIVE
    changed = _audit(db_session, workspace.id, "STATUS_CHANGED")[0]
    assert changed.details == {
        "from_status": "ACTIVE",
        "to_status": "DISSOLVED",
        "reason": "closed early",
        "revoked_count": 2,
    }


def test_update_status_rejects_edges_outside_table(db_session: Session, seed, now):
    event = seed.event(db_session)
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    db_session.commit()

    with pytest.raises(InvalidTransition):
        lifecycle.update_workspace_status(
            db_session,
            workspace_id=workspace.id,
            user_id=event.organizer_id,
            new_status=WorkspaceStatus.PROVISIONING,
            now=now,
        )


def test_winding_down_can_return_to_active(db_session: Session, seed, now):
    event = seed.event(db_session)
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    lifecycle.on_event_completed(db_session, workspace.id, now=now)
    db_session.commit()

    lifecycle.update_workspace_status(
        db_session,
        workspace_id=workspace.id,
        user_id=event.organizer_id,
        new_status=WorkspaceStatus.ACTIVE,
        now=now,
    )
    db_session.commit()
    assert db_session.get(Workspace, workspace.id).status == WorkspaceStatus.ACTIVE


def test_concurrent_status_change_is_detected(db_session: Session, seed, now):
    event = seed.event(db_session)
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    db_session.commit()

    stale = lifecycle.get_workspace_or_404(db_session, workspace.id)
    # 模拟另一个事务抢先完成了迁移，内存中的对象仍是 ACTIVE。
    db_session.execute(
        update(Workspace)
        .where(Workspace.id == workspace.id)
        .values(status=WorkspaceStatus.WINDING_DOWN)
        .execution_options(synchronize_session=False)
    )
    assert stale.status == WorkspaceStatus.ACTIVE

    with pytest.raises(InvalidTransition):
        lifecycle._apply_transition(db_session, stale, WorkspaceStatus.WINDING_DOWN, now=now)


def test_lifecycle_status_snapshot(db_session: Session, seed, now):
    event = seed.event(db_session, end_date=now - timedelta(days=10))
    workspace = lifecycle.provision_workspace(
        db_session, event_id=event.id, organizer_id=event.organizer_id, now=now
    )
    db_session.commit()

    active = lifecycle.get_lifecycle_status(db_session, workspace.id, now=now)
    assert active.status == WorkspaceStatus.ACTIVE
    assert active.can_transition_to == [WorkspaceStatus.WINDING_DOWN, WorkspaceStatus.DISSOLVED]
    assert active.scheduled_dissolution is None
    assert active.days_until_dissolution is None

    lifecycle.on_event_completed(db_session, workspace.id, now=now)
    db_session.commit()

    winding = lifecycle.get_lifecycle_status(db_session, workspace.id, now=now)
    assert winding.status == WorkspaceStatus.WINDING_DOWN
    assert winding.scheduled_dissolution == as_utc(event.end_date) + timedelta(days=30)
    assert winding.days_until_dissolution == 20
    assert winding.retention_period_days == 30


def test_missing_workspace_raises_not_found(db_session: Session):
    with pytest.raises(NotFound):
        lifecycle.get_lifecycle_status(db_session, uuid4())
