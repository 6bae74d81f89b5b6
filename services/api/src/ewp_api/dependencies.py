"""请求上下文依赖。

认证在这里完成：解析访问令牌并得到调用方用户 ID。
工作空间内的授权（成员关系与能力点）由服务层完成。
"""

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ewp_api.core.security import AuthenticatedPrincipal, parse_authorization_header

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class RequestContext:
    """请求上下文。"""

    # 当前请求用户 ID（来自令牌 sub）。
    user_id: UUID
    # 认证主体原始信息（来自 JWT）。
    principal: AuthenticatedPrincipal


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedPrincipal:
    """提取并解析当前请求认证主体。"""
    authorization = None
    if credentials is not None and credentials.credentials:
        authorization = f"{credentials.scheme} {credentials.credentials}"
    return parse_authorization_header(authorization)


def get_request_context(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
) -> RequestContext:
    """构造路由统一使用的请求上下文。"""
    return RequestContext(user_id=principal.user_id, principal=principal)
