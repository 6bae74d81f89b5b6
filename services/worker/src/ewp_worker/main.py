"""解散清扫工作进程。

主流程:
1) 列出全部 WINDING_DOWN 工作空间
2) 逐个计算计划解散时间（活动结束时间 + 保留天数）
3) 已到期则解散并停用全部成员，未到期跳过
4) 单个工作空间失败只记录日志，不影响本轮其他工作空间
"""

import logging
import time
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from ewp_api.services.sweeper import SweepReport, sweep_dissolutions
from ewp_worker.config import get_settings

logger = logging.getLogger("ewp_worker")


def _setup_logging(level: str = "INFO") -> None:
    """初始化日志输出格式与级别。"""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _now_iso() -> str:
    """返回当前 UTC 时间的 ISO 字符串。"""
    return datetime.now(timezone.utc).isoformat()


def run_sweep(session_factory: sessionmaker[Session], worker_id: str) -> SweepReport:
    """执行一轮清扫并记录结果。"""
    report = sweep_dissolutions(session_factory)
    if report.failed:
        logger.warning(
            "sweep finished with failures worker_id=%s failed=%s",
            worker_id,
            [str(workspace_id) for workspace_id in report.failed],
        )
    return report


def main() -> None:
    """工作进程主循环。"""
    settings = get_settings()
    _setup_logging(settings.log_level)
    engine = create_engine(settings.database_url, future=True, pool_pre_ping=True)
    session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)

    logger.info("worker started worker_id=%s at=%s", settings.worker_id, _now_iso())

    while True:
        try:
            run_sweep(session_factory, settings.worker_id)
            if settings.worker_run_once:
                logger.info("worker finished single sweep worker_id=%s", settings.worker_id)
                return
            time.sleep(settings.worker_sweep_interval_seconds)
        except KeyboardInterrupt:
            logger.info("worker stopped")
            return
        except Exception:
            # 清扫前置步骤（如列出候选）失败，记录后等待下一轮。
            logger.exception("worker loop error worker_id=%s", settings.worker_id)
            if settings.worker_run_once:
                raise
            time.sleep(settings.worker_sweep_interval_seconds)


if __name__ == "__main__":
    main()
