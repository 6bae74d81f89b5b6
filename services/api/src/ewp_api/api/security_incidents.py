"""安全事件接口。"""

from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session

from ewp_api.db.session import get_db
from ewp_api.dependencies import get_request_context
from ewp_api.models.enums import IncidentStatus
from ewp_api.schemas.common import ErrorResponse, SuccessResponse
from ewp_api.schemas.responses import IncidentResponseData, SecurityIncidentData
from ewp_api.schemas.workspace import SecurityIncidentReportRequest, SecurityIncidentResolveRequest
from ewp_api.services import (
    Capability,
    authorize_workspace_action,
    get_workspace_or_404,
    handle_security_incident,
    list_security_incidents,
    resolve_security_incident,
)
from ewp_api.utils.response import success, success_list

router = APIRouter(tags=["security-incidents"])

_ERRORS = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.post(
    "/workspaces/{workspace_id}/security-incidents",
    summary="上报安全事件",
    description="需要 MANAGE_WORKSPACE 能力。HIGH 及以上停用涉事成员，CRITICAL 额外锁定工作空间。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[IncidentResponseData],
    responses=_ERRORS,
)
def report_incident(
    payload: SecurityIncidentReportRequest,
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """登记并处置安全事件。"""
    get_workspace_or_404(db, workspace_id)
    # 处置会停用成员并锁定工作空间，按管理能力收口。
    authorize_workspace_action(
        db,
        workspace_id=workspace_id,
        user_id=ctx.user_id,
        capability=Capability.MANAGE_WORKSPACE,
        request=request,
    )
    result = handle_security_incident(
        db,
        workspace_id=workspace_id,
        incident_type=payload.incident_type,
        severity=payload.severity,
        description=payload.description,
        affected_users=payload.affected_users,
        affected_resources=payload.affected_resources,
        detected_by=ctx.user_id,
        request=request,
    )
    db.commit()
    db.refresh(result.incident)
    return success(
        request,
        {
            "incident": SecurityIncidentData.model_validate(result.incident).model_dump(),
            "response_actions": result.response_actions,
            "access_revoked": result.access_revoked,
            "workspace_locked": result.workspace_locked,
            "owners_notified": result.owners_notified,
        },
    )


@router.get(
    "/workspaces/{workspace_id}/security-incidents",
    summary="查询安全事件",
    description="需要 VIEW_ANALYTICS 能力。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[list[SecurityIncidentData]],
    responses=_ERRORS,
)
def get_incidents(
    request: Request,
    workspace_id: UUID = Path(..., description="工作空间 ID。"),
    incident_status: IncidentStatus | None = Query(default=None, alias="status", description="按处理状态过滤。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """返回工作空间安全事件。"""
    get_workspace_or_404(db, workspace_id)
    authorize_workspace_action(
        db,
        workspace_id=workspace_id,
        user_id=ctx.user_id,
        capability=Capability.VIEW_ANALYTICS,
        request=request,
    )
    incidents = list_security_incidents(db, workspace_id, status=incident_status)
    data = [SecurityIncidentData.model_validate(item).model_dump() for item in incidents]
    return success_list(request, data)


@router.post(
    "/security-incidents/{incident_id}/resolve",
    summary="关闭安全事件",
    description="需要 MANAGE_WORKSPACE 能力。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[SecurityIncidentData],
    responses=_ERRORS,
)
def resolve_incident(
    payload: SecurityIncidentResolveRequest,
    request: Request,
    incident_id: UUID = Path(..., description="安全事件 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """关闭安全事件。"""
    incident = resolve_security_incident(
        db,
        incident_id=incident_id,
        user_id=ctx.user_id,
        resolution=payload.resolution,
        request=request,
    )
    db.commit()
    db.refresh(incident)
    return success(request, SecurityIncidentData.model_validate(incident).model_dump())
