"""
启动前数据库探测

后台服务依赖托管的 Postgres；容器编排时数据库可能晚于应用就绪，
这里用 tenacity 每秒探测一次，最多等待 5 分钟。
"""
import logging

from sqlalchemy import Engine
from sqlmodel import Session, select
from tenacity import after_log, before_log, retry, stop_after_attempt, wait_fixed

from app.core.db import engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

max_tries = 60 * 5
wait_seconds = 1


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def init(db_engine: Engine) -> None:
    """执行 select(1)，失败时记录日志并抛出，交给 tenacity 重试"""
    try:
        with Session(db_engine) as session:
            session.exec(select(1))
    except Exception as e:
        logger.error(e)
        raise e


def main() -> None:
    logger.info("Waiting for order database")
    init(engine)
    logger.info("Order database is reachable")


if __name__ == "__main__":  # pragma: no cover
    main()
