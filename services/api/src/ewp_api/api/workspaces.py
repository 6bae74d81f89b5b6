"""工作空间生命周期接口。"""

from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session

from ewp_api.db.session import get_db
from ewp_api.dependencies import get_request_context
from ewp_api.exceptions import NotFound
from ewp_api.models.enums import WorkspaceStatus
from ewp_api.models.workspace import Workspace
from ewp_api.schemas.common import ErrorResponse, SuccessResponse
from ewp_api.schemas.responses import (
    AuditLogData,
    DepartureData,
    LifecycleStatusData,
    MemberPermissionData,
    RevocationData,
    StatusChangeData,
    WindDownData,
    WorkspaceData,
)
from ewp_api.schemas.workspace import (
    EmergencyRevokeRequest,
    MemberDepartureRequest,
    WindDownRequest,
    WorkspaceProvisionRequest,
    WorkspaceStatusUpdateRequest,
)
from ewp_api.services import (
    Capability,
    authorize_workspace_action,
    effective_capabilities,
    emergency_revoke_access,
    ensure_workspace_read_access,
    get_lifecycle_status,
    get_workspace_by_event,
    get_workspace_or_404,
    handle_early_departure,
    initiate_manual_wind_down,
    list_workspace_audit_logs,
    provision_workspace,
    update_workspace_status,
)
from ewp_api.utils.response import success, success_list

router = APIRouter(prefix="/workspaces", tags=["workspaces"])

_COMMON_ERRORS = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}
_TRANSITION_ERRORS = {**_COMMON_ERRORS, 409: {"model": ErrorResponse}}


def _workspace_data(workspace: Workspace) -> dict:
    return {
        "id": workspace.id,
        "event_id": workspace.event_id,
        "name": workspace.name,
        "description": workspace.description,
        "status": workspace.status,
        "settings": workspace.settings,
        "dissolved_at": workspace.dissolved_at,
        "created_at": workspace.created_at,
    }


@router.post(
    "/provision",
    summary="为活动创建工作空间",
    description="仅活动组织者可调用。创建所有者成员与默认频道后，工作空间进入 ACTIVE。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[WorkspaceData],
    responses={**_COMMON_ERRORS, 409: {"model": ErrorResponse}},
)
def provision(
    payload: WorkspaceProvisionRequest,
    request: Request,
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """创建工作空间。"""
    workspace = provision_workspace(
        db,
        event_id=payload.event_id,
        organizer_id=ctx.user_id,
        request=request,
    )
    db.commit()
    db.refresh(workspace)
    return success(request, _workspace_data(workspace))


@router.get(
    "/by-event/{event_id}",
    summary="按活动查询工作空间",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[WorkspaceData],
    responses=_COMMON_ERRORS,
)
def get_by_event(
    request: Request,
    event_id: UUID = Path(..., description="活动 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """返回活动对应的工作空间。"""
    workspace = get_workspace_by_event(db, event_id)
    if workspace is None:
        raise NotFound("该活动尚未创建工作空间。", event_id=str(event_id))
    ensure_workspace_read_access(db, workspace=workspace, user_id=ctx.user_id, request=request)
    return success(request, _workspace_data(workspace))


@router.get(
    "/{workspace_id}",
    summary="查询工作空间详情",
    description="有效成员或活动组织者可查看。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[WorkspaceData],
    responses=_COMMON_ERRORS,
)
def get_workspace(
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """返回工作空间详情。"""
    workspace = get_workspace_or_404(db, workspace_id)
    ensure_workspace_read_access(db, workspace=workspace, user_id=ctx.user_id, request=request)
    return success(request, _workspace_data(workspace))


@router.get(
    "/{workspace_id}/status",
    summary="查询生命周期状态",
    description="返回当前状态、可迁入状态以及收尾期的计划解散时间。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[LifecycleStatusData],
    responses=_COMMON_ERRORS,
)
def get_status(
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """返回生命周期快照。"""
    workspace = get_workspace_or_404(db, workspace_id)
    ensure_workspace_read_access(db, workspace=workspace, user_id=ctx.user_id, request=request)
    return success(request, asdict(get_lifecycle_status(db, workspace_id)))


@router.post(
    "/{workspace_id}/status",
    summary="迁移工作空间状态",
    description="需要 MANAGE_WORKSPACE 能力；迁入 DISSOLVED 时要求活动已结束。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[StatusChangeData],
    responses=_TRANSITION_ERRORS,
)
def change_status(
    payload: WorkspaceStatusUpdateRequest,
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """按迁移表直接变更状态。"""
    workspace = update_workspace_status(
        db,
        workspace_id=workspace_id,
        user_id=ctx.user_id,
        new_status=WorkspaceStatus(payload.status),
        reason=payload.reason,
        request=request,
    )
    db.commit()
    return success(request, {"workspace_id": workspace.id, "status": workspace.status})


def _wind_down(
    payload: WindDownRequest,
    request: Request,
    workspace_id: UUID,
    user_id: UUID,
    db: Session,
):
    scheduled = initiate_manual_wind_down(
        db,
        workspace_id=workspace_id,
        user_id=user_id,
        retention_period_days=payload.retention_period_days,
        request=request,
    )
    db.commit()
    return success(
        request,
        {
            "workspace_id": workspace_id,
            "status": WorkspaceStatus.WINDING_DOWN,
            "scheduled_dissolution": scheduled,
        },
    )


@router.post(
    "/{workspace_id}/wind-down",
    summary="手动进入收尾期",
    description="需要 MANAGE_WORKSPACE 能力。可同时调整保留天数，保留期满后由清扫任务解散。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[WindDownData],
    responses=_TRANSITION_ERRORS,
)
def wind_down(
    payload: WindDownRequest,
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """手动进入收尾期。"""
    return _wind_down(payload, request, workspace_id, ctx.user_id, db)


@router.post(
    "/{workspace_id}/dissolve",
    summary="发起解散",
    description="与 wind-down 等价：进入收尾期并按保留天数计划解散。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[WindDownData],
    responses=_TRANSITION_ERRORS,
)
def dissolve(
    payload: WindDownRequest,
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """发起解散（计划解散，不立即撤销访问）。"""
    return _wind_down(payload, request, workspace_id, ctx.user_id, db)


@router.post(
    "/{workspace_id}/emergency-revoke",
    summary="紧急撤销访问",
    description="需要 MANAGE_WORKSPACE 能力。立即解散工作空间并停用全部成员。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[RevocationData],
    responses=_TRANSITION_ERRORS,
)
def emergency_revoke(
    payload: EmergencyRevokeRequest,
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """紧急撤销。"""
    revoked = emergency_revoke_access(
        db,
        workspace_id=workspace_id,
        user_id=ctx.user_id,
        reason=payload.reason,
        request=request,
    )
    db.commit()
    return success(
        request,
        {"workspace_id": workspace_id, "status": WorkspaceStatus.DISSOLVED, "revoked_count": revoked},
    )


@router.post(
    "/{workspace_id}/members/{user_id}/depart",
    summary="成员提前离队",
    description="需要 MANAGE_TEAM 能力。停用成员并把其未完成任务转交给操作者。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[DepartureData],
    responses=_TRANSITION_ERRORS,
)
def depart_member(
    payload: MemberDepartureRequest,
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    user_id: UUID = Path(..., description="离队用户 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """处理成员提前离队。"""
    reassigned = handle_early_departure(
        db,
        workspace_id=workspace_id,
        departing_user_id=user_id,
        manager_id=ctx.user_id,
        reason=payload.reason,
        request=request,
    )
    db.commit()
    return success(
        request,
        {"workspace_id": workspace_id, "user_id": user_id, "reassigned_tasks": reassigned},
    )


@router.get(
    "/{workspace_id}/audit-logs",
    summary="查询审计日志",
    description="需要 VIEW_ANALYTICS 能力。按时间倒序返回。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[AuditLogData]],
    responses=_COMMON_ERRORS,
)
def get_audit_logs(
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    action: str | None = Query(default=None, description="按动作过滤，例如 WORKSPACE_DISSOLVED。"),
    limit: int = Query(default=100, ge=1, le=500, description="返回条数上限。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """返回审计日志。"""
    get_workspace_or_404(db, workspace_id)
    authorize_workspace_action(
        db,
        workspace_id=workspace_id,
        user_id=ctx.user_id,
        capability=Capability.VIEW_ANALYTICS,
        request=request,
    )
    logs = list_workspace_audit_logs(db, workspace_id, action=action, limit=limit)
    data = [AuditLogData.model_validate(item).model_dump() for item in logs]
    return success_list(request, data)


@router.get(
    "/{workspace_id}/permissions",
    summary="查询当前成员权限",
    description="返回当前用户在工作空间内的角色与有效能力点。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[MemberPermissionData],
    responses=_COMMON_ERRORS,
)
def get_my_permissions(
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """返回当前成员权限快照。"""
    workspace = get_workspace_or_404(db, workspace_id)
    member = ensure_workspace_read_access(db, workspace=workspace, user_id=ctx.user_id, request=request)
    if member is None:
        # 活动组织者但不是有效成员（例如工作空间已解散）。
        return success(
            request,
            {"workspace_id": workspace_id, "user_id": ctx.user_id, "role": "EVENT_ORGANIZER", "capabilities": []},
        )
    return success(
        request,
        {
            "workspace_id": workspace_id,
            "user_id": ctx.user_id,
            "role": member.role,
            "capabilities": sorted(capability.value for capability in effective_capabilities(member)),
        },
    )


