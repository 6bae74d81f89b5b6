"""工作空间结构化配置。

数据库中以 JSON 保存，读写统一经过 WorkspaceSettings 与
merge_workspace_settings，避免浅合并时丢失同级字段。
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ewp_api.core.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS: tuple[str, ...] = ("general", "announcements", "tasks")
DEFAULT_TASK_CATEGORIES: tuple[str, ...] = (
    "SETUP",
    "MARKETING",
    "LOGISTICS",
    "TECHNICAL",
    "REGISTRATION",
    "POST_EVENT",
)


def _default_retention_days() -> int:
    return get_settings().lifecycle_default_retention_days


class WorkspaceSettings(BaseModel):
    """工作空间配置记录。"""

    model_config = ConfigDict(extra="ignore")

    retention_period_days: int = Field(
        default_factory=_default_retention_days,
        ge=0,
        description="活动结束后保留的天数，期满自动解散。",
    )
    default_channels: list[str] = Field(default_factory=lambda: list(DEFAULT_CHANNELS))
    task_categories: list[str] = Field(default_factory=lambda: list(DEFAULT_TASK_CATEGORIES))
    allow_external_members: bool = False
    auto_invite_organizer: bool = True


class WorkspaceSettingsPatch(BaseModel):
    """配置局部更新，未显式提供的字段保持原值。"""

    model_config = ConfigDict(extra="forbid")

    retention_period_days: int | None = Field(default=None, ge=0)
    default_channels: list[str] | None = None
    task_categories: list[str] | None = None
    allow_external_members: bool | None = None
    auto_invite_organizer: bool | None = None


def load_workspace_settings(raw: dict[str, Any] | None) -> WorkspaceSettings:
    """从存储值解析配置；缺失或损坏时回退默认值。"""
    if not raw:
        return WorkspaceSettings()
    try:
        return WorkspaceSettings.model_validate(raw)
    except ValidationError:
        logger.warning("invalid workspace settings blob, falling back to defaults: %s", raw)
        return WorkspaceSettings()


def merge_workspace_settings(
    current: dict[str, Any] | WorkspaceSettings | None,
    patch: WorkspaceSettingsPatch,
) -> WorkspaceSettings:
    """合并配置。

    优先级：patch 中显式设置的字段 > 当前存储值 > 默认值。
    显式传入 None 与未传入等价，均不覆盖当前值。
    """
    base = current if isinstance(current, WorkspaceSettings) else load_workspace_settings(current)
    updates = {key: value for key, value in patch.model_dump(exclude_unset=True).items() if value is not None}
    return base.model_copy(update=updates)


def dump_workspace_settings(settings: WorkspaceSettings) -> dict[str, Any]:
    """转换为可写入 JSON 列的字典。"""
    return settings.model_dump(mode="json")
