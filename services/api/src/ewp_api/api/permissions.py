"""权限目录接口。"""

from fastapi import APIRouter, Depends, Request, status

from ewp_api.dependencies import get_request_context
from ewp_api.schemas.common import ErrorResponse, SuccessResponse
from ewp_api.schemas.responses import PermissionCatalogData
from ewp_api.services import permission_catalog, role_permission_matrix
from ewp_api.utils.response import success

router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.get(
    "/catalog",
    summary="查询能力点目录",
    description="返回全部能力点编码与各角色的默认能力映射，供前端按钮/菜单鉴权使用。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[PermissionCatalogData],
    responses={401: {"model": ErrorResponse}},
)
def get_permission_catalog(
    request: Request,
    ctx=Depends(get_request_context),
):
    """返回能力点目录。"""
    return success(
        request,
        {"capabilities": permission_catalog(), "role_capabilities": role_permission_matrix()},
    )
