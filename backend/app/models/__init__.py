"""
数据库模型定义模块

本模块使用 SQLModel 定义所有数据库表结构。

模型按功能拆分：
- order.py: 订单与订单明细
- cash.py: 用户资料（余额）与余额流水
"""
from sqlmodel import SQLModel

from .base import new_id, utc_now
from .cash import CashTransaction, Profile
from .order import Order, OrderItem

__all__ = [
    "SQLModel",
    "new_id",
    "utc_now",
    "Order",
    "OrderItem",
    "Profile",
    "CashTransaction",
]
