"""
本地建表脚本

仅在 ENVIRONMENT=local 时根据模型创建 orders / order_items /
profiles / cash_transactions 表，方便本地联调；其他环境不做结构变更。
"""
import logging

from sqlmodel import Session

from app.core.db import engine, init_db

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init() -> None:
    with Session(engine) as session:
        init_db(session)


def main() -> None:
    logger.info("Creating local tables")
    init()
    logger.info("Local tables ready")


if __name__ == "__main__":  # pragma: no cover
    main()
