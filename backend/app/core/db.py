"""
数据库连接模块

管理数据库引擎和会话的创建。
使用 SQLModel 的 create_engine 创建数据库连接池。

重要提示：
- 生产环境的表结构由托管数据库维护，本服务只读写既有表
- 确保在使用前导入所有模型（app.models），否则关系可能无法正确初始化
"""
from sqlmodel import Session, SQLModel, create_engine

from app import models  # noqa: F401  注册所有表到 metadata
from app.core.config import settings

# 创建数据库引擎（连接池）
engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI))


def init_db(session: Session) -> None:
    """
    初始化数据库

    仅在本地环境建表，方便开发调试；staging/production 的表由托管数据库管理，
    这里不做任何结构变更。

    Args:
        session: 数据库会话
    """
    if settings.ENVIRONMENT != "local":
        return
    SQLModel.metadata.create_all(session.get_bind())
