"""
基础模型模块

定义所有模型共用的基础类和工具函数。
"""
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel


def utc_now() -> datetime:
    """
    获取当前 UTC 时间

    Returns:
        当前 UTC 时区的日期时间对象
    """
    return datetime.now(timezone.utc)


def new_id() -> str:
    """生成字符串主键（UUID4，与托管数据库的 uuid 列保持一致）"""
    return str(uuid.uuid4())


__all__ = ["SQLModel", "new_id", "utc_now"]
