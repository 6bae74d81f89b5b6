"""保留期清扫。

逐个检查活动已结束的 WINDING_DOWN 工作空间，保留期已满则解散。
每个工作空间使用独立会话与事务，单个失败不影响其他工作空间。
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ewp_api.models.base import utc_now
from ewp_api.models.enums import EventStatus, WorkspaceStatus
from ewp_api.models.event import Event
from ewp_api.models.workspace import Workspace
from ewp_api.services.lifecycle import dissolve_expired_workspace

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """一次清扫的统计结果。"""

    candidates: int = 0
    dissolved: list[UUID] = field(default_factory=list)
    pending: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)


def _list_candidates(session_factory: Callable[[], Session], now: datetime) -> list[UUID]:
    """收尾期且活动已结束（完成、取消或结束时间已过）的工作空间。"""
    with session_factory() as db:
        stmt = (
            select(Workspace.id)
            .join(Event, Event.id == Workspace.event_id)
            .where(Workspace.status == WorkspaceStatus.WINDING_DOWN)
            .where(
                or_(
                    Event.status.in_((EventStatus.COMPLETED, EventStatus.CANCELLED)),
                    Event.end_date < now,
                )
            )
            .order_by(Workspace.created_at, Workspace.id)
        )
        return list(db.execute(stmt).scalars().all())


def sweep_dissolutions(
    session_factory: Callable[[], Session],
    *,
    now: datetime | None = None,
) -> SweepReport:
    """执行一次清扫，返回统计结果。"""
    now = now or utc_now()
    report = SweepReport()
    workspace_ids = _list_candidates(session_factory, now)
    report.candidates = len(workspace_ids)

    for workspace_id in workspace_ids:
        with session_factory() as db:
            try:
                dissolved = dissolve_expired_workspace(db, workspace_id, now=now)
                db.commit()
            except Exception:
                db.rollback()
                # 单个工作空间失败只记录，继续处理后续工作空间。
                logger.exception("dissolution sweep failed workspace_id=%s", workspace_id)
                report.failed.append(workspace_id)
                continue

        if dissolved:
            report.dissolved.append(workspace_id)
        else:
            report.pending.append(workspace_id)

    logger.info(
        "dissolution sweep finished candidates=%s dissolved=%s pending=%s failed=%s",
        report.candidates,
        len(report.dissolved),
        len(report.pending),
        len(report.failed),
    )
    return report
