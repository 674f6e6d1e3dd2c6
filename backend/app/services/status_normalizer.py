"""
订单状态归一化

数据库里的订单状态来自多个历史版本的结算流程和 PG 回调，写法并不统一
（大小写、连字符、旧状态名）。这里把原始字符串映射到 6 个规范状态，
所有业务判断只使用规范状态；原始值（raw_status）始终保留用于审计和展示。
"""
from __future__ import annotations

import re
from typing import Any

from app.enums import OrderStatus

# 历史状态映射表，新增条目时请同时递增版本号
LEGACY_STATUS_MAP_VERSION = 1
LEGACY_STATUS_MAP: dict[str, OrderStatus] = {
    # 已收款
    "in_progress": OrderStatus.payment_confirmed,
    "processing": OrderStatus.payment_confirmed,
    "paid": OrderStatus.payment_confirmed,
    "payment_completed": OrderStatus.payment_confirmed,
    "confirmed": OrderStatus.payment_confirmed,
    # 已完成
    "complete": OrderStatus.completed,
    "done": OrderStatus.completed,
    "delivered": OrderStatus.completed,
    "success": OrderStatus.completed,
    # 已取消
    "canceled": OrderStatus.cancelled,
    "cancel": OrderStatus.cancelled,
    "void": OrderStatus.cancelled,
    "failed": OrderStatus.cancelled,
    "expired": OrderStatus.cancelled,
    # 已退款
    "refund": OrderStatus.refunded,
    "refund_completed": OrderStatus.refunded,
    "partially_refunded": OrderStatus.refunded,
    # 等待入账
    "waiting_deposit": OrderStatus.awaiting_deposit,
    "awaiting_payment": OrderStatus.awaiting_deposit,
    "virtual_account_issued": OrderStatus.awaiting_deposit,
    "deposit_waiting": OrderStatus.awaiting_deposit,
    # 待支付
    "created": OrderStatus.pending,
    "unpaid": OrderStatus.pending,
    "ready": OrderStatus.pending,
}

_CANONICAL = {s.value: s for s in OrderStatus}
_SEPARATORS = re.compile(r"[\s\-]+")

_PAYMENT_METHOD_ALIASES = {
    "bank": "bank_transfer",
    "banktransfer": "bank_transfer",
    "transfer": "bank_transfer",
    "deposit": "bank_transfer",
    "vbank": "virtual_account",
    "virtualaccount": "virtual_account",
}
DEPOSIT_METHODS = frozenset({"bank_transfer", "virtual_account"})


def _collapse(raw: Any) -> str:
    if raw is None:
        return ""
    if isinstance(raw, OrderStatus):
        return raw.value
    try:
        text = str(raw)
    except Exception:
        return ""
    return _SEPARATORS.sub("_", text.strip().lower())


def normalize_status(raw: Any) -> OrderStatus:
    """
    原始状态 -> 规范状态

    步骤：转小写，空白和连字符折叠为下划线，先查规范集合，
    再查历史映射表，都查不到时默认 pending。不会抛出异常，
    对规范值幂等。

    >>> normalize_status("Processing")
    <OrderStatus.payment_confirmed: 'payment_confirmed'>
    """
    key = _collapse(raw)
    if key in _CANONICAL:
        return _CANONICAL[key]
    return LEGACY_STATUS_MAP.get(key, OrderStatus.pending)


def normalize_payment_method(raw: Any) -> str | None:
    """支付方式归一化，空值返回 None"""
    key = _collapse(raw)
    if not key:
        return None
    return _PAYMENT_METHOD_ALIASES.get(key, key)


def is_deposit_method(raw: Any) -> bool:
    """是否为需要人工确认入账的支付方式（无通帐 / 虚拟账户）"""
    return normalize_payment_method(raw) in DEPOSIT_METHODS


def normalize_payment_status(raw: Any) -> str | None:
    key = _collapse(raw)
    return key or None
