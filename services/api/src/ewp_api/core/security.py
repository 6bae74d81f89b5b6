"""访问令牌解析与校验。

本服务不负责登录与签发令牌，只校验上游认证系统签发的令牌：
1. 从 Authorization 头中取出 Bearer 令牌。
2. 按配置使用 JWKS 或对称密钥验签。
3. 将 `sub` 声明解析为平台用户 ID。
"""

from dataclasses import dataclass
from functools import lru_cache
import re
from typing import Any
from uuid import UUID

import jwt
from fastapi import HTTPException, status
from jwt import InvalidTokenError, PyJWKClient

from ewp_api.core.config import get_settings

UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="unauthorized",
)
INVALID_SUBJECT = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={
        "code": "INVALID_SUBJECT",
        "message": "访问令牌中的用户标识不合法。",
        "details": {
            "reason": "subject_not_uuid",
            "suggestion": "请使用平台认证系统签发的访问令牌。",
        },
    },
)

_BEARER_PATTERN = re.compile(r"Bearer\s+([^,\s]+)", flags=re.IGNORECASE)


@dataclass
class AuthenticatedPrincipal:
    """统一认证主体对象。"""

    # 平台用户 ID（由 sub 解析）。
    user_id: UUID
    # 认证提供方（issuer）。
    provider: str
    # 可选邮箱，仅用于日志与通知展示。
    email: str | None
    # 原始声明集，便于下游扩展。
    claims: dict[str, Any]


@lru_cache
def _get_jwks_client(jwks_url: str) -> PyJWKClient:
    """缓存密钥集合客户端，减少重复网络开销。"""
    return PyJWKClient(jwks_url)


def _signing_key(token: str) -> Any:
    settings = get_settings()
    if not settings.auth_jwks_url:
        return settings.auth_jwt_secret
    # 生产建议使用 JWKS，支持密钥轮换。
    try:
        return _get_jwks_client(settings.auth_jwks_url).get_signing_key_from_jwt(token).key
    except jwt.PyJWKClientError as exc:
        raise UNAUTHORIZED from exc


def decode_access_token(token: str) -> dict[str, Any]:
    """按配置解码并校验令牌，失败统一视为未认证。"""
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            key=_signing_key(token),
            algorithms=settings.auth_algorithms,
            issuer=settings.auth_jwt_issuer,
            audience=settings.auth_jwt_audience,
            leeway=settings.auth_jwt_leeway_seconds,
            options={"verify_signature": True, "verify_aud": bool(settings.auth_jwt_audience)},
        )
    except InvalidTokenError as exc:
        raise UNAUTHORIZED from exc


def extract_bearer_token(authorization: str | None) -> str:
    """从 Authorization 头中提取 Bearer 令牌；重复头被逗号拼接时取最后一个。"""
    if not authorization:
        raise UNAUTHORIZED
    tokens = [token.strip() for token in _BEARER_PATTERN.findall(authorization) if token.strip()]
    if not tokens:
        raise UNAUTHORIZED
    return tokens[-1]


def subject_to_user_id(subject: object) -> UUID:
    """将 `sub` 声明解析为用户 ID。"""
    value = str(subject or "").strip()
    if not value:
        raise UNAUTHORIZED
    try:
        return UUID(value)
    except ValueError as exc:
        raise INVALID_SUBJECT from exc


def parse_authorization_header(authorization: str | None) -> AuthenticatedPrincipal:
    """解析认证头并返回认证主体。"""
    claims = decode_access_token(extract_bearer_token(authorization))
    user_id = subject_to_user_id(claims.get("sub"))

    email = claims.get("email")
    provider = claims.get("provider")
    issuer = str(provider if isinstance(provider, str) and provider else (claims.get("iss") or "jwt"))

    return AuthenticatedPrincipal(
        user_id=user_id,
        provider=issuer,
        email=email if isinstance(email, str) else None,
        claims=claims,
    )
