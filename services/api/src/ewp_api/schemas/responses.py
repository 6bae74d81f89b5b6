"""接口成功响应 `data` 字段结构定义。

说明：
1. 所有业务接口统一返回 `SuccessResponse[data=...]`。
2. 本文件专注于定义各接口在 `data` 中的业务字段。
3. 字段描述会直接用于 Swagger 展示，便于联调时理解含义。
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator

from ewp_api.schemas.common import BaseSchema


class HealthStatusData(BaseSchema):
    """健康检查返回结构。"""

    status: str = Field(description="健康状态值，常见为 ok 或 ready。")
    winding_down_workspaces: int | None = Field(default=None, description="处于收尾期、等待清扫的工作空间数量。")


class WorkspaceData(BaseSchema):
    """工作空间信息结构。"""

    id: UUID = Field(description="工作空间 ID。")
    event_id: UUID = Field(description="所属活动 ID。")
    name: str = Field(description="工作空间名称。")
    description: str | None = Field(default=None, description="工作空间描述。")
    status: str = Field(description="工作空间生命周期状态。")
    settings: dict[str, Any] | None = Field(default=None, description="工作空间配置。")
    dissolved_at: datetime | None = Field(default=None, description="解散时间。")
    created_at: datetime | None = Field(default=None, description="创建时间。")


class LifecycleStatusData(BaseSchema):
    """生命周期状态快照结构。"""

    workspace_id: UUID = Field(description="工作空间 ID。")
    event_id: UUID = Field(description="所属活动 ID。")
    status: str = Field(description="当前状态。")
    can_transition_to: list[str] = Field(description="当前状态允许迁入的目标状态。")
    event_status: str = Field(description="活动状态。")
    event_end_date: datetime = Field(description="活动结束时间。")
    retention_period_days: int = Field(description="保留天数。")
    scheduled_dissolution: datetime | None = Field(default=None, description="计划解散时间，仅收尾期有值。")
    days_until_dissolution: int | None = Field(default=None, description="距计划解散的剩余天数。")
    dissolved_at: datetime | None = Field(default=None, description="解散时间。")


class StatusChangeData(BaseSchema):
    """状态迁移结果结构。"""

    workspace_id: UUID = Field(description="工作空间 ID。")
    status: str = Field(description="迁移后状态。")


class WindDownData(BaseSchema):
    """手动收尾结果结构。"""

    workspace_id: UUID = Field(description="工作空间 ID。")
    status: str = Field(description="迁移后状态，固定为 WINDING_DOWN。")
    scheduled_dissolution: datetime = Field(description="计划解散时间。")


class RevocationData(BaseSchema):
    """访问撤销结果结构。"""

    workspace_id: UUID = Field(description="工作空间 ID。")
    status: str = Field(description="迁移后状态。")
    revoked_count: int = Field(description="被停用的成员数量。")


class DepartureData(BaseSchema):
    """成员离队结果结构。"""

    workspace_id: UUID = Field(description="工作空间 ID。")
    user_id: UUID = Field(description="离队用户 ID。")
    reassigned_tasks: int = Field(description="转交的未完成任务数量。")


class EventStatusChangedData(BaseSchema):
    """活动状态回调处理结果结构。"""

    event_id: UUID = Field(description="活动 ID。")
    workspace_id: UUID | None = Field(default=None, description="关联工作空间 ID，无工作空间时为空。")
    workspace_status: str | None = Field(default=None, description="处理后的工作空间状态。")


class AuditLogData(BaseSchema):
    """审计日志条目结构。"""

    id: UUID = Field(description="审计日志 ID。")
    workspace_id: UUID = Field(description="工作空间 ID。")
    user_id: UUID | None = Field(default=None, description="操作用户 ID，系统操作为空。")
    action: str = Field(description="动作标识。")
    resource: str = Field(description="资源类型。")
    resource_id: str | None = Field(default=None, description="资源 ID。")
    details: dict[str, Any] | None = Field(default=None, description="动作详情。")
    ip: str | None = Field(default=None, description="来源 IP。")
    user_agent: str | None = Field(default=None, description="来源 User-Agent。")
    timestamp: datetime = Field(description="发生时间。")

    @field_validator("ip", mode="before")
    @classmethod
    def _ip_as_text(cls, value: Any) -> str | None:
        # PostgreSQL INET 列读出为 ipaddress 对象。
        return None if value is None else str(value)


class MemberPermissionData(BaseSchema):
    """当前成员权限快照结构。"""

    workspace_id: UUID = Field(description="工作空间 ID。")
    user_id: UUID = Field(description="用户 ID。")
    role: str = Field(description="成员角色。")
    capabilities: list[str] = Field(description="有效能力点列表。")


class PermissionCatalogData(BaseSchema):
    """能力点目录结构。"""

    capabilities: list[str] = Field(description="全部能力点编码。")
    role_capabilities: dict[str, list[str]] = Field(description="角色默认能力映射。")


class SecurityIncidentData(BaseSchema):
    """安全事件结构。"""

    id: UUID = Field(description="安全事件 ID。")
    workspace_id: UUID = Field(description="工作空间 ID。")
    user_id: UUID | None = Field(default=None, description="涉事用户 ID。")
    incident_type: str = Field(description="事件类型。")
    severity: str = Field(description="严重级别。")
    description: str = Field(description="事件描述。")
    details: dict[str, Any] | None = Field(default=None, description="事件详情。")
    status: str = Field(description="处理状态。")
    response_actions: list[str] | None = Field(default=None, description="已执行的处置动作。")
    detected_by: UUID | None = Field(default=None, description="上报人用户 ID。")
    detected_at: datetime = Field(description="发现时间。")
    responded_at: datetime | None = Field(default=None, description="开始处置时间。")
    resolved_at: datetime | None = Field(default=None, description="关闭时间。")


class IncidentResponseData(BaseSchema):
    """安全事件处置结果结构。"""

    incident: SecurityIncidentData = Field(description="安全事件。")
    response_actions: list[str] = Field(description="本次执行的处置动作。")
    access_revoked: int = Field(description="被停用的成员数量。")
    workspace_locked: bool = Field(description="工作空间是否被锁定。")
    owners_notified: int = Field(description="收到通知的所有者数量。")
