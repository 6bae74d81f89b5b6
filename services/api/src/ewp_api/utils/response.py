"""统一响应结构工具。

路由只返回字典，由这里补齐 request_id 与 meta，
异常处理器使用 error_payload 生成同一外形的错误体。
"""

from collections.abc import Sequence
from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from fastapi import Request

DEFAULT_ERROR_MESSAGE = "internal server error"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _request_id(request: Request) -> str:
    # 直接调用路由函数（单元测试、内部回调）时可能未经过中间件。
    return getattr(request.state, "request_id", None) or "-"


def _request_meta(request: Request) -> dict[str, Any]:
    return {
        "method": request.method.upper(),
        "path": request.url.path,
        "timestamp": _utc_now_iso(),
    }


def _elapsed_ms(request: Request) -> int | None:
    started_at = getattr(request.state, "request_started_at", None)
    if not isinstance(started_at, float):
        return None
    return int((perf_counter() - started_at) * 1000)


def success(request: Request, data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """构造统一成功响应结构。"""
    final_meta = {**_request_meta(request), "process_ms": _elapsed_ms(request)}
    if meta:
        final_meta.update(meta)
    return {"request_id": _request_id(request), "data": data, "meta": final_meta}


def success_list(request: Request, items: Sequence[Any]) -> dict[str, Any]:
    """列表接口的成功响应，meta 附带条数。"""
    return success(request, list(items), meta={"count": len(items)})


def error_payload(
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """构造统一错误响应结构。"""
    final_details = _request_meta(request)
    if details:
        final_details.update(details)
    return {
        "request_id": _request_id(request),
        "error": {"code": code, "message": message, "details": final_details},
    }
