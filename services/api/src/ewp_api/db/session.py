"""数据库会话管理。"""

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from ewp_api.core.config import get_settings

settings = get_settings()

# 全局数据库引擎，开启连接预检查以减少僵尸连接影响。
engine = create_engine(settings.database_url, future=True, pool_pre_ping=True)
# 统一会话工厂；路由层按请求获取会话，解散清扫任务按工作空间逐个获取会话。
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)


def get_db() -> Generator[Session, None, None]:
    """为每个请求提供独立数据库会话。

    生命周期操作只 flush，由路由在成功末尾统一 commit；
    请求异常时会话关闭即回滚，不留下半完成的状态变更。
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
