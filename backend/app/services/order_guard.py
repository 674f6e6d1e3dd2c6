"""
订单操作守卫（OrderActionGuard）

所有改变订单状态的操作在执行前都要：
1. 直接从数据库重新读取订单当前状态（不信任内存中的旧副本，
   其他运营者或支付回调可能已经修改了订单）
2. 按状态迁移矩阵判断操作是否允许

不允许的操作直接拒绝，不发生任何网络调用或数据库写入。

状态迁移矩阵：

| 操作              | 前提（基于最新读取的状态）                                      |
|-------------------|-----------------------------------------------------------------|
| confirm_deposit   | 支付方式为无通帐/虚拟账户，支付状态为 awaiting_deposit/pending，  |
|                   | 订单状态为 pending/awaiting_deposit，且运营者已显式确认          |
| refund            | 状态为 payment_confirmed/completed                              |
| cancel            | 状态非终态                                                      |
| force_complete    | 状态不是 completed，也不是终态                                  |
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlmodel import Session

from app import crud
from app.api.errors import NotFoundError, StaleStateError, ValidationError
from app.crud.orders import OrderSnapshot
from app.enums import TERMINAL_STATUSES, OrderAction, OrderStatus
from app.services.status_normalizer import (
    is_deposit_method,
    normalize_payment_status,
)

logger = logging.getLogger(__name__)

REFUNDABLE_STATUSES = frozenset({OrderStatus.payment_confirmed, OrderStatus.completed})
DEPOSIT_CONFIRMABLE_STATUSES = frozenset({OrderStatus.pending, OrderStatus.awaiting_deposit})
DEPOSIT_PAYMENT_STATUSES = frozenset({"awaiting_deposit", "pending"})


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    reason: str | None = None


def effective_payment_status(snapshot: OrderSnapshot) -> str:
    """支付状态列为空的历史订单，退回使用规范订单状态"""
    return normalize_payment_status(snapshot.payment_status) or snapshot.status.value


def evaluate(
    action: OrderAction, snapshot: OrderSnapshot, *, acknowledged: bool = False
) -> GuardDecision:
    """
    纯判断函数：给定操作和状态快照，返回是否允许

    相同输入总是得到相同结果，与调用顺序和之前的尝试无关。
    """
    status = snapshot.status
    if status in TERMINAL_STATUSES:
        return GuardDecision(False, f"Order is already {status.value}")

    if action == OrderAction.confirm_deposit:
        if not is_deposit_method(snapshot.payment_method):
            return GuardDecision(
                False, f"Payment method {snapshot.payment_method!r} is not a bank deposit"
            )
        if effective_payment_status(snapshot) not in DEPOSIT_PAYMENT_STATUSES:
            return GuardDecision(
                False, f"Payment status {snapshot.payment_status!r} is not awaiting deposit"
            )
        if status not in DEPOSIT_CONFIRMABLE_STATUSES:
            return GuardDecision(False, f"Order is already {status.value}")
        if not acknowledged:
            return GuardDecision(False, "Deposit confirmation requires acknowledgement")
        return GuardDecision(True)

    if action == OrderAction.refund:
        if status not in REFUNDABLE_STATUSES:
            return GuardDecision(False, f"Order in status {status.value} cannot be refunded")
        return GuardDecision(True)

    if action == OrderAction.cancel:
        return GuardDecision(True)

    if action == OrderAction.force_complete:
        if status == OrderStatus.completed:
            return GuardDecision(False, "Order is already completed")
        return GuardDecision(True)

    return GuardDecision(False, f"Unknown action {action!r}")


def check(
    *,
    session: Session,
    order_id: str,
    action: OrderAction,
    acknowledged: bool = False,
) -> OrderSnapshot:
    """
    重新读取订单并校验操作

    Returns:
        OrderSnapshot: 最新状态快照（后续外部调用用它做期望状态 token）

    Raises:
        ValidationError: 入账确认缺少确认标记（不读库）
        NotFoundError: 订单不存在
        StaleStateError: 最新状态不满足操作前提
    """
    if action == OrderAction.confirm_deposit and not acknowledged:
        raise ValidationError(
            "Deposit confirmation requires explicit acknowledgement", code=400201
        )

    snapshot = crud.get_snapshot(session=session, order_id=order_id)
    if snapshot is None:
        raise NotFoundError("Order not found", code=404101)

    decision = evaluate(action, snapshot, acknowledged=acknowledged)
    if not decision.allowed:
        logger.warning(
            f"Rejected {action.value} on order {snapshot.order_number or order_id}: "
            f"{decision.reason} (raw_status={snapshot.raw_status!r})"
        )
        raise StaleStateError(decision.reason or "Action not allowed", code=409101)
    return snapshot
