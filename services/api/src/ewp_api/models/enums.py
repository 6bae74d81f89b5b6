"""领域枚举定义。"""

from enum import StrEnum


class EventStatus(StrEnum):
    """活动状态（由活动域维护，本服务只读）。"""

    DRAFT = "DRAFT"  # 草稿，尚未发布。
    PUBLISHED = "PUBLISHED"  # 已发布，可报名。
    ONGOING = "ONGOING"  # 进行中。
    COMPLETED = "COMPLETED"  # 已完成，触发工作空间收尾。
    CANCELLED = "CANCELLED"  # 已取消，触发工作空间立即解散。


class WorkspaceStatus(StrEnum):
    """工作空间生命周期状态。"""

    PROVISIONING = "PROVISIONING"  # 创建中，默认频道与所有者尚未就绪。
    ACTIVE = "ACTIVE"  # 正常协作中。
    WINDING_DOWN = "WINDING_DOWN"  # 收尾中，保留期满后自动解散。
    DISSOLVED = "DISSOLVED"  # 已解散，终态。


class WorkspaceRole(StrEnum):
    """工作空间成员角色。"""

    WORKSPACE_OWNER = "WORKSPACE_OWNER"
    TEAM_LEAD = "TEAM_LEAD"
    EVENT_COORDINATOR = "EVENT_COORDINATOR"
    VOLUNTEER_MANAGER = "VOLUNTEER_MANAGER"
    TECHNICAL_SPECIALIST = "TECHNICAL_SPECIALIST"
    MARKETING_LEAD = "MARKETING_LEAD"
    GENERAL_VOLUNTEER = "GENERAL_VOLUNTEER"


class MemberStatus(StrEnum):
    """团队成员状态。"""

    ACTIVE = "ACTIVE"  # 可按权限访问工作空间。
    INACTIVE = "INACTIVE"  # 已离开或被撤销访问。


class ChannelType(StrEnum):
    """工作空间沟通频道类型。"""

    GENERAL = "GENERAL"
    ANNOUNCEMENT = "ANNOUNCEMENT"
    TASK_SPECIFIC = "TASK_SPECIFIC"
    ROLE_BASED = "ROLE_BASED"


class TaskStatus(StrEnum):
    """工作空间任务状态。"""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    COMPLETED = "COMPLETED"
    BLOCKED = "BLOCKED"


class IncidentType(StrEnum):
    """安全事件类型。"""

    UNAUTHORIZED_ACCESS_ATTEMPT = "UNAUTHORIZED_ACCESS_ATTEMPT"  # 权限校验失败自动上报。
    DATA_BREACH = "DATA_BREACH"
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"
    MALICIOUS_ACTIVITY = "MALICIOUS_ACTIVITY"
    POLICY_VIOLATION = "POLICY_VIOLATION"


class IncidentSeverity(StrEnum):
    """安全事件严重级别。"""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class IncidentStatus(StrEnum):
    """安全事件处理状态。"""

    DETECTED = "DETECTED"  # 已发现，尚未处置。
    RESPONDING = "RESPONDING"  # 处置中。
    RESOLVED = "RESOLVED"  # 已关闭。
