"""FastAPI 应用入口点。"""

import logging

from fastapi import FastAPI

from ewp_api.core.config import get_settings
from ewp_api.exceptions import register_exception_handlers
from ewp_api.middlewares import register_middlewares
from ewp_api.api.router import api_router

settings = get_settings()


def _setup_logging() -> None:
    """初始化日志输出格式与级别。"""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """创建并配置 FastAPI 应用实例。"""
    _setup_logging()
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        description=(
            "活动工作空间生命周期接口。\n\n"
            "所有业务接口统一返回：`{request_id, data, meta}`。\n"
            "通过访问令牌进行认证，令牌 `sub` 为平台用户 ID。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "permissions", "description": "工作空间能力点目录。"},
            {"name": "workspaces", "description": "工作空间创建、收尾、解散与成员变动。"},
            {"name": "events", "description": "活动域状态变更回调。"},
            {"name": "security-incidents", "description": "安全事件上报、处置与关闭。"},
        ],
    )

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
