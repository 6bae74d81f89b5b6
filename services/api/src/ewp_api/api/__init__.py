"""路由模块导出集合。"""

from . import events, health, permissions, security_incidents, workspaces

__all__ = [
    "events",
    "health",
    "permissions",
    "security_incidents",
    "workspaces",
]
