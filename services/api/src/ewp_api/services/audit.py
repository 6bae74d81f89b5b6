"""工作空间审计服务。

审计表是生命周期事件的权威记录；写入失败只上报运行日志，
绝不影响主操作的结果。
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ewp_api.models.audit import WorkspaceAuditLog
from ewp_api.models.base import utc_now

logger = logging.getLogger(__name__)

# 生命周期动作统一使用的资源类型。
LIFECYCLE_RESOURCE = "WORKSPACE_LIFECYCLE"


def _client_ip(request: Request | None) -> str | None:
    """从代理头或连接信息中提取客户端 IP。"""
    if request is None:
        return None
    # 优先读取反向代理透传头，兼容网关/负载均衡场景。
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request | None) -> str | None:
    if request is None:
        return None
    return request.headers.get("user-agent")


def record_workspace_audit(
    db: Session,
    *,
    workspace_id: UUID,
    user_id: UUID | None,
    action: str,
    resource: str = LIFECYCLE_RESOURCE,
    resource_id: str | None = None,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
) -> None:
    """追加一条审计日志。

    写入放在 SAVEPOINT 中：审计失败只回滚这条记录，
    外层事务中的状态变更保持不变。
    """
    try:
        with db.begin_nested():
            db.add(
                WorkspaceAuditLog(
                    workspace_id=workspace_id,
                    user_id=user_id,
                    action=action,
                    resource=resource,
                    resource_id=resource_id if resource_id is not None else str(workspace_id),
                    details=details,
                    ip=_client_ip(request),
                    user_agent=_user_agent(request),
                    timestamp=utc_now(),
                )
            )
    except (SQLAlchemyError, TypeError, ValueError):
        logger.exception(
            "failed to record workspace audit workspace_id=%s action=%s",
            workspace_id,
            action,
        )


def list_workspace_audit_logs(
    db: Session,
    workspace_id: UUID,
    *,
    action: str | None = None,
    limit: int = 100,
) -> list[WorkspaceAuditLog]:
    """按时间倒序返回工作空间审计日志。"""
    stmt = select(WorkspaceAuditLog).where(WorkspaceAuditLog.workspace_id == workspace_id)
    if action:
        stmt = stmt.where(WorkspaceAuditLog.action == action)
    stmt = stmt.order_by(WorkspaceAuditLog.timestamp.desc(), WorkspaceAuditLog.id).limit(limit)
    return list(db.execute(stmt).scalars().all())
