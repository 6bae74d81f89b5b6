"""响应包裹结构。

成功：`{request_id, data, meta}`；失败：`{request_id, error: {code, message, details}}`。
仅用于接口文档展示，运行时由 utils.response 构造字典。
"""

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """允许直接从 ORM 对象构造。"""

    model_config = ConfigDict(from_attributes=True)


class ErrorPayload(BaseSchema):
    """错误主体。"""

    code: str = Field(description="错误码，例如 INVALID_TRANSITION、ACCESS_DENIED。")
    message: str = Field(description="可读错误信息。")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="错误上下文，例如状态迁移的 from_status/to_status 或缺少的能力点。",
    )


class ErrorResponse(BaseSchema):
    """统一错误响应。"""

    request_id: str = Field(description="请求追踪 ID，沿用上游 X-Request-Id 或由服务端生成。")
    error: ErrorPayload = Field(description="错误主体。")


T = TypeVar("T")


class SuccessResponse(BaseSchema, Generic[T]):
    """统一成功响应。"""

    request_id: str = Field(description="请求追踪 ID。")
    data: T = Field(description="业务数据。")
    meta: dict[str, Any] = Field(default_factory=dict, description="请求方法、路径、耗时，以及列表接口的 count。")
