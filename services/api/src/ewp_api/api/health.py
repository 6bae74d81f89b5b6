"""健康检查接口。"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ewp_api.db.session import get_db
from ewp_api.models.enums import WorkspaceStatus
from ewp_api.models.workspace import Workspace
from ewp_api.schemas.common import ErrorResponse, SuccessResponse
from ewp_api.schemas.responses import HealthStatusData
from ewp_api.utils.response import success

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/live",
    summary="存活探针",
    description="只表示进程存活，不访问数据库。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def live(request: Request):
    return success(request, {"status": "ok"})


@router.get(
    "/ready",
    summary="就绪探针",
    description="确认数据库可用，并返回等待清扫的收尾期工作空间数量。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def ready(request: Request, db: Session = Depends(get_db)):
    """以一次计数查询同时验证数据库连通性。"""
    winding_down = db.execute(
        select(func.count()).select_from(Workspace).where(Workspace.status == WorkspaceStatus.WINDING_DOWN)
    ).scalar_one()
    return success(request, {"status": "ready", "winding_down_workspaces": winding_down})
