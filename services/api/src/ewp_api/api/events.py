"""活动域回调接口。"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.orm import Session

from ewp_api.db.session import get_db
from ewp_api.dependencies import get_request_context
from ewp_api.exceptions import NotAuthorized, NotFound
from ewp_api.models.event import Event
from ewp_api.schemas.common import ErrorResponse, SuccessResponse
from ewp_api.schemas.responses import EventStatusChangedData
from ewp_api.schemas.workspace import EventStatusChangedRequest
from ewp_api.services import on_event_status_changed
from ewp_api.utils.response import success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


@router.post(
    "/{event_id}/status-changed",
    summary="活动状态变更回调",
    description=(
        "活动状态变更后由活动域调用：COMPLETED 触发收尾，CANCELLED 触发立即解散，"
        "从 CANCELLED 恢复时尝试重新激活。调用方必须是活动组织者。"
    ),
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[EventStatusChangedData],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
def event_status_changed(
    payload: EventStatusChangedRequest,
    request: Request,
    event_id: UUID = Path(..., description="活动 ID。"),
    ctx=Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """同步活动状态并驱动工作空间生命周期。"""
    event = db.get(Event, event_id)
    if event is None:
        raise NotFound("活动不存在。", event_id=str(event_id))
    if event.organizer_id != ctx.user_id:
        raise NotAuthorized("只有活动组织者可以同步活动状态。", event_id=str(event_id))

    # 本地活动表是只读副本，先取存量状态作为变更前状态，再同步最新状态供解散前置校验使用。
    previous = event.status
    if payload.old_status is not None and payload.old_status != previous:
        logger.warning(
            "event hook old_status mismatch event_id=%s declared=%s stored=%s",
            event_id,
            payload.old_status,
            previous,
        )
    event.status = payload.new_status
    workspace = on_event_status_changed(
        db,
        event_id=event_id,
        new_status=payload.new_status,
        old_status=previous,
        request=request,
    )
    db.commit()
    return success(
        request,
        {
            "event_id": event_id,
            "workspace_id": workspace.id if workspace else None,
            "workspace_status": workspace.status if workspace else None,
        },
    )
