"""工作空间相关请求结构。"""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from ewp_api.models.enums import EventStatus, IncidentSeverity, IncidentType


class WorkspaceProvisionRequest(BaseModel):
    """为活动创建工作空间请求体。"""

    event_id: UUID = Field(description="活动 ID，调用方必须是该活动的组织者。")


class WorkspaceStatusUpdateRequest(BaseModel):
    """直接迁移工作空间状态请求体。"""

    status: Literal["PROVISIONING", "ACTIVE", "WINDING_DOWN", "DISSOLVED"] = Field(
        description="目标状态，必须在状态迁移表允许的范围内。",
        examples=["WINDING_DOWN"],
    )
    reason: str | None = Field(default=None, max_length=512, description="变更原因，写入审计日志。")


class WindDownRequest(BaseModel):
    """手动进入收尾期请求体。"""

    retention_period_days: int | None = Field(
        default=None,
        ge=0,
        le=3650,
        description="覆盖工作空间保留天数；为空时沿用现有配置。",
        examples=[30],
    )


class EmergencyRevokeRequest(BaseModel):
    """紧急撤销访问请求体。"""

    reason: str = Field(min_length=1, max_length=512, description="撤销原因。", examples=["账号泄露"])


class MemberDepartureRequest(BaseModel):
    """成员提前离队请求体。"""

    reason: str | None = Field(default=None, max_length=512, description="离队原因。")


class EventStatusChangedRequest(BaseModel):
    """活动状态变更回调请求体。"""

    old_status: EventStatus | None = Field(
        default=None,
        description="调用方声明的变更前状态，仅用于核对；分发以本地存量状态为准。",
        examples=["ONGOING"],
    )
    new_status: EventStatus = Field(description="变更后活动状态。", examples=["COMPLETED"])


class SecurityIncidentReportRequest(BaseModel):
    """上报安全事件请求体。"""

    incident_type: IncidentType = Field(description="事件类型。", examples=["DATA_BREACH"])
    severity: IncidentSeverity = Field(description="严重级别。", examples=["HIGH"])
    description: str = Field(min_length=1, max_length=2000, description="事件描述。")
    affected_users: list[UUID] = Field(default_factory=list, description="涉事用户 ID 列表。")
    affected_resources: list[str] = Field(default_factory=list, description="涉事资源标识列表。")


class SecurityIncidentResolveRequest(BaseModel):
    """关闭安全事件请求体。"""

    resolution: str = Field(min_length=1, max_length=2000, description="处理结论。")
