"""
退款 / 取消 / 强制完成（RefundCancelCoordinator）

三种操作都通过外部函数执行，本地只负责守卫校验和结果处理：
- 取消（不退款）: cancel-order, doRefund=false
- 退款: cancel-order, doRefund=true；退款金额为 max(0, total_amount)，
  金额为 0 时需要运营者再次确认
- 强制完成: complete-order，仅用于人工异常处理

外部调用要么整体成功，要么什么都不改：函数报告终态后失效缓存并重新加载订单，
任何错误都保持本地状态不变。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlmodel import Session

from app import crud
from app.api.errors import ExternalCallError, ValidationError
from app.api.schemas import OrderData
from app.core.security import Operator
from app.enums import OrderAction, OrderStatus
from app.integrations.order_functions import FunctionResult, OrderFunctionsClient
from app.services import order_guard
from app.services.order_cache import OrderListCache, load_order
from app.services.status_normalizer import normalize_status

logger = logging.getLogger(__name__)

CANCEL_REPORTED = frozenset({OrderStatus.cancelled, OrderStatus.refunded})
FORCE_COMPLETE_REPORTED = frozenset({OrderStatus.completed, OrderStatus.payment_confirmed})


def refund_amount(total_amount: int | None) -> int:
    """退款金额，永远不为负（包括数据库中被写坏的负数金额）"""
    return max(0, total_amount or 0)


@dataclass(frozen=True)
class ActionResult:
    order: OrderData
    reported_status: OrderStatus
    refund_amount: int | None = None


class RefundCancelCoordinator:
    def __init__(self, *, functions: OrderFunctionsClient, cache: OrderListCache) -> None:
        self._functions = functions
        self._cache = cache

    def _finish(
        self,
        *,
        session: Session,
        order_id: str,
        result: FunctionResult,
        accepted: frozenset[OrderStatus],
        action: OrderAction,
        operator: Operator,
    ) -> tuple[OrderData, OrderStatus]:
        reported = normalize_status(result.status) if result.status else None
        if reported not in accepted:
            # 函数已返回 2xx，远端可能已经改了订单，缓存同样要失效
            self._cache.invalidate()
            logger.error(
                f"{action.value} on order {order_id} returned unexpected status {result.status!r}"
            )
            raise ExternalCallError(
                f"Unexpected status {result.status!r} reported by {action.value}",
                code=502401,
            )
        logger.info(
            f"{action.value} on order {order_id} by operator {operator.id} -> {reported.value}"
        )
        self._cache.invalidate()
        return load_order(session=session, order_id=order_id), reported

    def cancel(self, *, session: Session, order_id: str, operator: Operator) -> ActionResult:
        """
        取消订单（不退款）

        Raises:
            StaleStateError: 订单已是终态
            ExternalCallError: 取消函数失败
        """
        snapshot = order_guard.check(session=session, order_id=order_id, action=OrderAction.cancel)
        crud.assert_unchanged(session=session, snapshot=snapshot)
        result = self._functions.cancel_order(
            order_id=snapshot.id, do_refund=False, expected_status=snapshot.raw_status
        )
        order, reported = self._finish(
            session=session,
            order_id=snapshot.id,
            result=result,
            accepted=CANCEL_REPORTED,
            action=OrderAction.cancel,
            operator=operator,
        )
        return ActionResult(order=order, reported_status=reported)

    def refund(
        self,
        *,
        session: Session,
        order_id: str,
        operator: Operator,
        confirm_zero_amount: bool = False,
    ) -> ActionResult:
        """
        退款

        Args:
            confirm_zero_amount: 退款金额为 0 时必须为 True 才会继续

        Raises:
            StaleStateError: 订单状态不是 payment_confirmed/completed
            ValidationError: 退款金额为 0 且未再次确认
            ExternalCallError: 取消函数失败
        """
        snapshot = order_guard.check(session=session, order_id=order_id, action=OrderAction.refund)
        amount = refund_amount(snapshot.total_amount)
        if amount == 0 and not confirm_zero_amount:
            raise ValidationError(
                "Refund amount is 0; confirm_zero_amount is required to proceed", code=400301
            )
        crud.assert_unchanged(session=session, snapshot=snapshot)
        result = self._functions.cancel_order(
            order_id=snapshot.id, do_refund=True, expected_status=snapshot.raw_status
        )
        order, reported = self._finish(
            session=session,
            order_id=snapshot.id,
            result=result,
            accepted=CANCEL_REPORTED,
            action=OrderAction.refund,
            operator=operator,
        )
        return ActionResult(order=order, reported_status=reported, refund_amount=amount)

    def force_complete(
        self, *, session: Session, order_id: str, operator: Operator
    ) -> ActionResult:
        """
        强制完成（人工异常处理）

        守卫通过后无条件调用 complete-order。
        """
        snapshot = order_guard.check(
            session=session, order_id=order_id, action=OrderAction.force_complete
        )
        crud.assert_unchanged(session=session, snapshot=snapshot)
        result = self._functions.force_complete_order(
            order_id=snapshot.id, expected_status=snapshot.raw_status
        )
        order, reported = self._finish(
            session=session,
            order_id=snapshot.id,
            result=result,
            accepted=FORCE_COMPLETE_REPORTED,
            action=OrderAction.force_complete,
            operator=operator,
        )
        return ActionResult(order=order, reported_status=reported)
