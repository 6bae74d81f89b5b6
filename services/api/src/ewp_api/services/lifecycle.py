"""工作空间生命周期状态机。

状态迁移只允许沿 ALLOWED_TRANSITIONS 进行：

    PROVISIONING -> ACTIVE
    ACTIVE       -> WINDING_DOWN | DISSOLVED
    WINDING_DOWN -> DISSOLVED | ACTIVE
    DISSOLVED    -> (终态，仅“活动重新激活”通道可回到 ACTIVE)

每次迁移都以条件更新落库（WHERE status = 读取时的状态），
并发修改同一工作空间时后到者得到 InvalidTransition，而不是静默覆盖。
本模块只 flush 不 commit，事务边界由调用方（路由或 worker）决定。
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ewp_api.exceptions import AlreadyExists, InvalidTransition, NotAuthorized, NotFound
from ewp_api.models.base import as_utc, utc_now
from ewp_api.models.enums import EventStatus, MemberStatus, WorkspaceStatus
from ewp_api.models.event import Event
from ewp_api.models.workspace import TeamMember, Workspace
from ewp_api.services.access import authorize_workspace_action
from ewp_api.services.audit import record_workspace_audit
from ewp_api.services.notifications import WorkspaceNotifier, default_notifier, notify_wind_down_safely
from ewp_api.services.permissions import Capability
from ewp_api.services.provisioning import DEFAULT_CHANNEL_SPECS, create_owner_member, provision_default_channels
from ewp_api.services.workspace_settings import (
    WorkspaceSettings,
    WorkspaceSettingsPatch,
    dump_workspace_settings,
    load_workspace_settings,
    merge_workspace_settings,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[WorkspaceStatus, tuple[WorkspaceStatus, ...]] = {
    WorkspaceStatus.PROVISIONING: (WorkspaceStatus.ACTIVE,),
    WorkspaceStatus.ACTIVE: (WorkspaceStatus.WINDING_DOWN, WorkspaceStatus.DISSOLVED),
    WorkspaceStatus.WINDING_DOWN: (WorkspaceStatus.DISSOLVED, WorkspaceStatus.ACTIVE),
    WorkspaceStatus.DISSOLVED: (),
}

# 手动解散前，活动必须已处于这些状态之一（或结束时间已过）。
_EVENT_FINISHED_STATUSES = frozenset({EventStatus.COMPLETED, EventStatus.CANCELLED})


@dataclass(frozen=True)
class LifecycleStatus:
    """工作空间生命周期快照。"""

    workspace_id: UUID
    event_id: UUID
    status: WorkspaceStatus
    can_transition_to: list[WorkspaceStatus]
    event_status: EventStatus
    event_end_date: datetime
    retention_period_days: int
    scheduled_dissolution: datetime | None
    days_until_dissolution: int | None
    dissolved_at: datetime | None


def allowed_targets(from_status: WorkspaceStatus | str) -> list[WorkspaceStatus]:
    """返回某状态可直接迁入的目标状态（保持声明顺序）。"""
    return list(ALLOWED_TRANSITIONS.get(WorkspaceStatus(from_status), ()))


def can_transition(from_status: WorkspaceStatus | str, to_status: WorkspaceStatus | str) -> bool:
    """判断状态迁移是否合法。"""
    return WorkspaceStatus(to_status) in ALLOWED_TRANSITIONS.get(WorkspaceStatus(from_status), ())


def validate_transition(from_status: WorkspaceStatus | str, to_status: WorkspaceStatus | str) -> None:
    """非法迁移时抛出 InvalidTransition。"""
    if not can_transition(from_status, to_status):
        raise InvalidTransition(
            f"不允许从 {WorkspaceStatus(from_status).value} 迁移到 {WorkspaceStatus(to_status).value}。",
            from_status=WorkspaceStatus(from_status).value,
            to_status=WorkspaceStatus(to_status).value,
            allowed=[status.value for status in allowed_targets(from_status)],
        )


def dissolution_date(event_end: datetime, retention_period_days: int) -> datetime:
    """计算计划解散时间：活动结束时间 + 保留天数。"""
    return as_utc(event_end) + timedelta(days=retention_period_days)


def days_until(target: datetime, now: datetime) -> int:
    """距离目标时间的剩余天数，向上取整且不小于 0。"""
    remaining = (as_utc(target) - as_utc(now)).total_seconds()
    if remaining <= 0:
        return 0
    return math.ceil(remaining / 86400)


def get_workspace_by_event(db: Session, event_id: UUID) -> Workspace | None:
    """按活动查询工作空间（每个活动至多一个）。"""
    return db.execute(select(Workspace).where(Workspace.event_id == event_id)).scalar_one_or_none()


def get_workspace_or_404(db: Session, workspace_id: UUID, *, for_update: bool = False) -> Workspace:
    """读取工作空间，不存在时抛出 NotFound。

    for_update=True 时在 PostgreSQL 上加行锁，并总是刷新会话中的缓存对象，
    保证后续条件更新基于最新状态。
    """
    stmt = select(Workspace).where(Workspace.id == workspace_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    workspace = db.execute(stmt).scalar_one_or_none()
    if workspace is None:
        raise NotFound("工作空间不存在。", workspace_id=str(workspace_id))
    return workspace


def _get_event(db: Session, event_id: UUID) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise NotFound("活动不存在。", event_id=str(event_id))
    return event


def _guarded_update(
    db: Session,
    workspace: Workspace,
    *,
    expected: WorkspaceStatus,
    values: dict[str, Any],
    extra_criteria: tuple = (),
) -> None:
    """条件更新工作空间状态；影响行数不为 1 说明状态已被并发修改。"""
    db.flush()
    result = db.execute(
        update(Workspace)
        .where(Workspace.id == workspace.id, Workspace.status == expected, *extra_criteria)
        .values(**values)
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        raise InvalidTransition(
            "工作空间状态已被并发修改，请刷新后重试。",
            workspace_id=str(workspace.id),
            expected_status=expected.value,
        )


def _apply_transition(
    db: Session,
    workspace: Workspace,
    to_status: WorkspaceStatus,
    *,
    now: datetime,
) -> WorkspaceStatus:
    """按迁移表校验并落库，返回迁移前状态。"""
    from_status = WorkspaceStatus(workspace.status)
    validate_transition(from_status, to_status)
    values: dict[str, Any] = {"status": to_status}
    if to_status == WorkspaceStatus.DISSOLVED:
        values["dissolved_at"] = now
    _guarded_update(db, workspace, expected=from_status, values=values)
    logger.info(
        "workspace status changed workspace_id=%s from=%s to=%s",
        workspace.id,
        from_status.value,
        to_status.value,
    )
    return from_status


def _deactivate_members(db: Session, workspace_id: UUID, *, now: datetime) -> int:
    """停用工作空间全部有效成员，返回停用人数。

    已提前离队的成员保留原 left_at。
    """
    members = _active_members(db, workspace_id)
    for member in members:
        member.status = MemberStatus.INACTIVE
        member.left_at = now
    db.flush()
    return len(members)


def _reactivate_members(db: Session, workspace_id: UUID) -> int:
    stmt = select(TeamMember).where(
        TeamMember.workspace_id == workspace_id,
        TeamMember.status == MemberStatus.INACTIVE,
        TeamMember.left_at.is_not(None),
    )
    members = db.execute(stmt).scalars().all()
    for member in members:
        member.status = MemberStatus.ACTIVE
        member.left_at = None
    db.flush()
    return len(members)


def _active_members(db: Session, workspace_id: UUID) -> list[TeamMember]:
    stmt = select(TeamMember).where(
        TeamMember.workspace_id == workspace_id,
        TeamMember.status == MemberStatus.ACTIVE,
    )
    return list(db.execute(stmt).scalars().all())


def _dissolve(
    db: Session,
    workspace: Workspace,
    *,
    now: datetime,
    actor_user_id: UUID | None,
    action: str,
    details: dict[str, Any],
    request: Request | None,
) -> int:
    """迁移到 DISSOLVED 并撤销全部成员访问，返回撤销人数。

    先做条件迁移再停用成员：迁移被拒绝时成员状态保持不变。
    """
    from_status = _apply_transition(db, workspace, WorkspaceStatus.DISSOLVED, now=now)
    revoked = _deactivate_members(db, workspace.id, now=now)
    record_workspace_audit(
        db,
        workspace_id=workspace.id,
        user_id=actor_user_id,
        action=action,
        details={
            **details,
            "from_status": from_status.value,
            "team_members_revoked": True,
            "revoked_count": revoked,
            "dissolved_at": now.isoformat(),
        },
        request=request,
    )
    return revoked


def _schedule_dissolution(
    db: Session,
    workspace: Workspace,
    event: Event,
    *,
    actor_user_id: UUID | None,
    request: Request | None,
) -> datetime:
    """记录计划解散时间。实际解散由定时清扫完成。"""
    settings = load_workspace_settings(workspace.settings)
    scheduled = dissolution_date(event.end_date, settings.retention_period_days)
    record_workspace_audit(
        db,
        workspace_id=workspace.id,
        user_id=actor_user_id,
        action="DISSOLUTION_SCHEDULED",
        details={
            "retention_period_days": settings.retention_period_days,
            "scheduled_dissolution": scheduled.isoformat(),
        },
        request=request,
    )
    logger.info(
        "workspace dissolution scheduled workspace_id=%s at=%s",
        workspace.id,
        scheduled.isoformat(),
    )
    return scheduled


def provision_workspace(
    db: Session,
    *,
    event_id: UUID,
    organizer_id: UUID,
    now: datetime | None = None,
    request: Request | None = None,
) -> Workspace:
    """为活动创建工作空间：所有者成员、默认频道，随后进入 ACTIVE。"""
    now = now or utc_now()
    event = _get_event(db, event_id)
    if event.organizer_id != organizer_id:
        raise NotAuthorized(
            "只有活动组织者可以创建工作空间。",
            event_id=str(event_id),
            user_id=str(organizer_id),
        )
    existing = get_workspace_by_event(db, event_id)
    if existing is not None:
        raise AlreadyExists(
            "该活动已存在工作空间。",
            event_id=str(event_id),
            workspace_id=str(existing.id),
        )

    settings = WorkspaceSettings()
    workspace = Workspace(
        event_id=event.id,
        name=f"{event.name} Workspace",
        description=f"Collaborative workspace for {event.name}",
        status=WorkspaceStatus.PROVISIONING,
        settings=dump_workspace_settings(settings),
    )
    try:
        # 并发创建时由唯一约束兜底，只回滚本次插入。
        with db.begin_nested():
            db.add(workspace)
            db.flush()
    except IntegrityError as exc:
        raise AlreadyExists("该活动已存在工作空间。", event_id=str(event_id)) from exc

    create_owner_member(db, workspace_id=workspace.id, owner_user_id=organizer_id, joined_at=now)
    provision_default_channels(db, workspace.id)
    _apply_transition(db, workspace, WorkspaceStatus.ACTIVE, now=now)

    record_workspace_audit(
        db,
        workspace_id=workspace.id,
        user_id=organizer_id,
        action="WORKSPACE_PROVISIONED",
        details={
            "event_id": str(event.id),
            "channels": [name for name, _, _ in DEFAULT_CHANNEL_SPECS],
            "retention_period_days": settings.retention_period_days,
        },
        request=request,
    )
    logger.info("workspace provisioned workspace_id=%s event_id=%s", workspace.id, event.id)
    return workspace


def on_event_completed(
    db: Session,
    workspace_id: UUID,
    *,
    now: datetime | None = None,
    request: Request | None = None,
) -> bool:
    """活动完成：ACTIVE 进入 WINDING_DOWN 并登记计划解散时间。

    非 ACTIVE 状态直接忽略，返回 False。
    """
    now = now or utc_now()
    workspace = get_workspace_or_404(db, workspace_id, for_update=True)
    if workspace.status != WorkspaceStatus.ACTIVE:
        logger.info(
            "event completion ignored workspace_id=%s status=%s",
            workspace.id,
            workspace.status,
        )
        return False

    event = _get_event(db, workspace.event_id)
    _apply_transition(db, workspace, WorkspaceStatus.WINDING_DOWN, now=now)
    record_workspace_audit(
        db,
        workspace_id=workspace.id,
        user_id=event.organizer_id,
        action="WORKSPACE_WIND_DOWN_INITIATED",
        details={"reason": "EVENT_COMPLETED", "event_id": str(event.id)},
        request=request,
    )
    _schedule_dissolution(db, workspace, event, actor_user_id=event.organizer_id, request=request)
    return True


def on_event_cancelled(
    db: Session,
    workspace_id: UUID,
    *,
    now: datetime | None = None,
    request: Request | None = None,
) -> bool:
    """活动取消：立即解散，不等待保留期。

    已解散时忽略；PROVISIONING 状态不能直接解散，抛出 InvalidTransition。
    """
    now = now or utc_now()
    workspace = get_workspace_or_404(db, workspace_id, for_update=True)
    if workspace.status == WorkspaceStatus.DISSOLVED:
        logger.info("event cancellation ignored, workspace already dissolved workspace_id=%s", workspace.id)
        return False

    event = _get_event(db, workspace.event_id)
    revoked = _dissolve(
        db,
        workspace,
        now=now,
        actor_user_id=event.organizer_id,
        action="WORKSPACE_DISSOLVED",
        details={"reason": "EVENT_CANCELLED", "event_id": str(event.id)},
        request=request,
    )
    logger.info("workspace dissolved on cancellation workspace_id=%s revoked=%s", workspace.id, revoked)
    return True


def on_event_reactivated(
    db: Session,
    workspace_id: UUID,
    *,
    request: Request | None = None,
) -> bool:
    """活动从 CANCELLED 恢复：重新激活工作空间与曾离开的成员。

    仅当工作空间为 DISSOLVED 且 dissolved_at 为空时生效；
    正常解散都会写入 dissolved_at，因此这类工作空间不会被重新激活。
    """
    workspace = get_workspace_or_404(db, workspace_id, for_update=True)
    if workspace.status != WorkspaceStatus.DISSOLVED:
        logger.info("event reactivation ignored workspace_id=%s status=%s", workspace.id, workspace.status)
        return False
    if workspace.dissolved_at is not None:
        logger.info(
            "event reactivation ignored, dissolution is final workspace_id=%s dissolved_at=%s",
            workspace.id,
            workspace.dissolved_at,
        )
        return False

    event = _get_event(db, workspace.event_id)
    _guarded_update(
        db,
        workspace,
        expected=WorkspaceStatus.DISSOLVED,
        values={"status": WorkspaceStatus.ACTIVE, "dissolved_at": None},
        extra_criteria=(Workspace.dissolved_at.is_(None),),
    )
    restored = _reactivate_members(db, workspace.id)
    record_workspace_audit(
        db,
        workspace_id=workspace.id,
        user_id=event.organizer_id,
        action="WORKSPACE_REACTIVATED",
        details={"event_id": str(event.id), "restored_members": restored},
        request=request,
    )
    logger.info("workspace reactivated workspace_id=%s restored=%s", workspace.id, restored)
    return True


def on_event_status_changed(
    db: Session,
    *,
    event_id: UUID,
    new_status: EventStatus,
    old_status: EventStatus,
    now: datetime | None = None,
    request: Request | None = None,
) -> Workspace | None:
    """活动状态变更分发。

    活动没有工作空间时记录日志并返回 None；处理过程中的错误向上抛出。
    """
    workspace = get_workspace_by_event(db, event_id)
    if workspace is None:
        logger.info("event status change without workspace event_id=%s", event_id)
        return None

    new_status = EventStatus(new_status)
    old_status = EventStatus(old_status)
    if new_status == EventStatus.COMPLETED and old_status != EventStatus.COMPLETED:
        on_event_completed(db, workspace.id, now=now, request=request)
    elif new_status == EventStatus.CANCELLED:
        on_event_cancelled(db, workspace.id, now=now, request=request)
    elif old_status == EventStatus.CANCELLED:
        on_event_reactivated(db, workspace.id, request=request)

    return get_workspace_or_404(db, workspace.id)


def initiate_manual_wind_down(
    db: Session,
    *,
    workspace_id: UUID,
    user_id: UUID,
    retention_period_days: int | None = None,
    now: datetime | None = None,
    request: Request | None = None,
    notifier: WorkspaceNotifier = default_notifier,
) -> datetime:
    """手动进入收尾期，可同时调整保留天数；返回计划解散时间。"""
    now = now or utc_now()
    workspace = get_workspace_or_404(db, workspace_id, for_update=True)
    authorize_workspace_action(
        db,
        workspace_id=workspace.id,
        user_id=user_id,
        capability=Capability.MANAGE_WORKSPACE,
        request=request,
    )
    if workspace.status != WorkspaceStatus.ACTIVE:
        raise InvalidTransition(
            "只有 ACTIVE 状态的工作空间可以进入收尾期。",
            workspace_id=str(workspace.id),
            from_status=WorkspaceStatus(workspace.status).value,
            to_status=WorkspaceStatus.WINDING_DOWN.value,
        )

    if retention_period_days is not None:
        merged = merge_workspace_settings(
            workspace.settings,
            WorkspaceSettingsPatch(retention_period_days=retention_period_days),
        )
        workspace.settings = dump_workspace_settings(merged)

    event = _get_event(db, workspace.event_id)
    _apply_transition(db, workspace, WorkspaceStatus.WINDING_DOWN, now=now)
    effective_days = load_workspace_settings(workspace.settings).retention_period_days
    record_workspace_audit(
        db,
        workspace_id=workspace.id,
        user_id=user_id,
        action="DISSOLUTION_INITIATED_MANUALLY",
        details={"retention_period_days": effective_days, "initiated_by": str(user_id)},
        request=request,
    )
    scheduled = _schedule_dissolution(db, workspace, event, actor_user_id=user_id, request=request)
    notify_wind_down_safely(notifier, workspace, _active_members(db, workspace.id))
    return scheduled


def emergency_revoke_access(
    db: Session,
    *,
    workspace_id: UUID,
    user_id: UUID,
    reason: str,
    now: datetime | None = None,
    request: Request | None = None,
) -> int:
    """紧急撤销：立即解散并停用全部成员，返回撤销人数。"""
    now = now or utc_now()
    workspace = get_workspace_or_404(db, workspace_id, for_update=True)
    authorize_workspace_action(
        db,
        workspace_id=workspace.id,
        user_id=user_id,
        capability=Capability.MANAGE_WORKSPACE,
        request=request,
    )
    revoked = _dissolve(
        db,
        workspace,
        now=now,
        actor_user_id=user_id,
        action="EMERGENCY_ACCESS_REVOKED",
        details={"reason": reason, "revoked_by": str(user_id)},
        request=request,
    )
    logger.warning(
        "emergency access revocation workspace_id=%s user_id=%s revoked=%s",
        workspace.id,
        user_id,
        revoked,
    )
    return revoked


def update_workspace_status(
    db: Session,
    *,
    workspace_id: UUID,
    user_id: UUID,
    new_status: WorkspaceStatus,
    reason: str | None = None,
    now: datetime | None = None,
    request: Request | None = None,
) -> Workspace:
    """运维直接迁移状态。

    迁入 DISSOLVED 要求活动已结束（完成、取消或结束时间已过），
    并与其他解散路径一样停用全部成员。
    """
    now = now or utc_now()
    new_status = WorkspaceStatus(new_status)
    workspace = get_workspace_or_404(db, workspace_id, for_update=True)
    authorize_workspace_action(
        db,
        workspace_id=workspace.id,
        user_id=user_id,
        capability=Capability.MANAGE_WORKSPACE,
        request=request,
    )
    from_status = WorkspaceStatus(workspace.status)
    validate_transition(from_status, new_status)

    details: dict[str, Any] = {
        "from_status": from_status.value,
        "to_status": new_status.value,
        "reason": reason,
    }
    if new_status == WorkspaceStatus.DISSOLVED:
        event = _get_event(db, workspace.event_id)
        event_over = event.status in _EVENT_FINISHED_STATUSES or as_utc(event.end_date) <= as_utc(now)
        if not event_over:
            raise InvalidTransition(
                "活动尚未结束，不能解散工作空间。",
                workspace_id=str(workspace.id),
                event_status=EventStatus(event.status).value,
                event_end_date=as_utc(event.end_date).isoformat(),
            )
        _apply_transition(db, workspace, new_status, now=now)
        details["revoked_count"] = _deactivate_members(db, workspace.id, now=now)
    else:
        _apply_transition(db, workspace, new_status, now=now)

    record_workspace_audit(
        db,
        workspace_id=workspace.id,
        user_id=user_id,
        action="STATUS_CHANGED",
        details=details,
        request=request,
    )
    return workspace


def lock_down_workspace(
    db: Session,
    workspace: Workspace,
    *,
    incident_id: UUID,
    now: datetime | None = None,
    request: Request | None = None,
) -> bool:
    """严重安全事件时锁定工作空间：ACTIVE 进入 WINDING_DOWN。

    其他状态不做处理，返回 False。
    """
    now = now or utc_now()
    if workspace.status != WorkspaceStatus.ACTIVE:
        return False
    _apply_transition(db, workspace, WorkspaceStatus.WINDING_DOWN, now=now)
    record_workspace_audit(
        db,
        workspace_id=workspace.id,
        user_id=None,
        action="WORKSPACE_LOCKED_DOWN",
        details={"incident_id": str(incident_id)},
        request=request,
    )
    return True


def dissolve_expired_workspace(db: Session, workspace_id: UUID, *, now: datetime | None = None) -> bool:
    """解散保留期已满的收尾工作空间。

    工作空间已不在 WINDING_DOWN 或保留期未满时返回 False。
    """
    now = now or utc_now()
    workspace = get_workspace_or_404(db, workspace_id, for_update=True)
    if workspace.status != WorkspaceStatus.WINDING_DOWN:
        logger.info("sweep skipped workspace_id=%s status=%s", workspace.id, workspace.status)
        return False

    event = _get_event(db, workspace.event_id)
    settings = load_workspace_settings(workspace.settings)
    due = dissolution_date(event.end_date, settings.retention_period_days)
    if as_utc(now) < due:
        logger.debug(
            "retention pending workspace_id=%s days_left=%s",
            workspace.id,
            days_until(due, now),
        )
        return False

    _dissolve(
        db,
        workspace,
        now=now,
        actor_user_id=None,
        action="WORKSPACE_DISSOLVED",
        details={
            "reason": "RETENTION_PERIOD_ELAPSED",
            "retention_period_days": settings.retention_period_days,
            "scheduled_dissolution": due.isoformat(),
        },
        request=None,
    )
    return True


def get_lifecycle_status(db: Session, workspace_id: UUID, *, now: datetime | None = None) -> LifecycleStatus:
    """汇总工作空间当前生命周期状态，只读。"""
    now = now or utc_now()
    workspace = get_workspace_or_404(db, workspace_id)
    event = _get_event(db, workspace.event_id)
    settings = load_workspace_settings(workspace.settings)
    status = WorkspaceStatus(workspace.status)

    scheduled: datetime | None = None
    remaining: int | None = None
    if status == WorkspaceStatus.WINDING_DOWN:
        scheduled = dissolution_date(event.end_date, settings.retention_period_days)
        remaining = days_until(scheduled, now)

    return LifecycleStatus(
        workspace_id=workspace.id,
        event_id=workspace.event_id,
        status=status,
        can_transition_to=allowed_targets(status),
        event_status=EventStatus(event.status),
        event_end_date=as_utc(event.end_date),
        retention_period_days=settings.retention_period_days,
        scheduled_dissolution=scheduled,
        days_until_dissolution=remaining,
        dissolved_at=as_utc(workspace.dissolved_at) if workspace.dissolved_at else None,
    )
