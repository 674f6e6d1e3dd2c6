"""
API 路由聚合模块

将所有业务路由模块聚合到一个统一的 router 中。
这个 router 会被注册到主应用（app/main.py）上。

路由模块说明：
- admin_orders: 订单管理（列表、入账确认、退款 / 取消 / 强制完成、备注、批量删除）
- admin_cash: 余额管理（余额、流水、调整、聚合）
- utils: 工具相关（健康检查）
"""
from fastapi import APIRouter

from app.api.routes import (
    admin_cash,  # 余额路由
    admin_orders,  # 订单路由
    utils,  # 工具路由
)

api_router = APIRouter()

api_router.include_router(admin_orders.router)  # /admin/orders/*
api_router.include_router(admin_cash.router)  # /admin/cash/*
api_router.include_router(utils.router)  # /utils/*
