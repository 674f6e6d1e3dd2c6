"""
手动入账确认（PaymentConfirmationService）

无通帐 / 虚拟账户订单需要运营者核对银行流水后手动确认。确认本身由外部订单
完成函数执行（标记已支付、余额充值入账、开放下载），这里负责：
- 经 OrderActionGuard 重新读取并校验订单
- 生成确定性的交易 token（同一订单重复点击不会产生不同 token）
- 调用完成函数，成功后失效缓存并从数据库重新加载订单
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlmodel import Session

from app import crud
from app.api.schemas import OrderData, OrderMetadataView
from app.core.config import settings
from app.core.security import Operator
from app.crud.orders import OrderSnapshot
from app.enums import OrderAction, OrderType
from app.integrations.order_functions import CompletionRequest, OrderFunctionsClient
from app.models import utc_now
from app.services import order_guard
from app.services.order_cache import OrderListCache, load_order
from app.services.status_normalizer import normalize_payment_method

logger = logging.getLogger(__name__)

MANUAL_PROVIDER = "manual"


def manual_transaction_token(order_id: str) -> str:
    """
    按订单 ID 生成确定性的交易 token

    同一订单总是得到相同 token，不同订单得到不同 token。
    """
    return f"manual-{uuid.uuid5(settings.MANUAL_TX_NAMESPACE, str(order_id)).hex}"


def is_cash_charge(snapshot: OrderSnapshot) -> bool:
    """余额充值订单：order_type 为 cash（或历史 metadata 标记）且没有订单明细"""
    if snapshot.item_count:
        return False
    if snapshot.order_type == OrderType.cash.value:
        return True
    return OrderMetadataView.from_raw(snapshot.metadata).is_cash_charge


@dataclass(frozen=True)
class ConfirmationResult:
    order: OrderData
    transaction_id: str
    cash_balance: int | None = None


class PaymentConfirmationService:
    def __init__(self, *, functions: OrderFunctionsClient, cache: OrderListCache) -> None:
        self._functions = functions
        self._cache = cache

    def confirm_deposit(
        self,
        *,
        session: Session,
        order_id: str,
        operator: Operator,
        acknowledged: bool,
        transaction_id: str | None = None,
        depositor_name: str | None = None,
    ) -> ConfirmationResult:
        """
        确认入账

        Args:
            session: 数据库会话
            order_id: 订单 ID
            operator: 当前运营者（写入审计元数据）
            acknowledged: 运营者显式确认标记，必须为 True
            transaction_id: 银行流水号；为空时使用确定性 token
            depositor_name: 入账人姓名；为空时沿用订单上已有的值

        Returns:
            ConfirmationResult: 重新加载的订单；余额充值订单附带刷新后的余额

        Raises:
            ValidationError: 未确认
            StaleStateError: 最新状态不允许确认入账
            ExternalCallError: 完成函数失败（原样返回错误），本地不做任何修改
        """
        snapshot = order_guard.check(
            session=session,
            order_id=order_id,
            action=OrderAction.confirm_deposit,
            acknowledged=acknowledged,
        )
        crud.assert_unchanged(session=session, snapshot=snapshot)

        token = (transaction_id or "").strip() or manual_transaction_token(snapshot.id)
        request = CompletionRequest(
            order_id=snapshot.id,
            payment_method=normalize_payment_method(snapshot.payment_method) or "bank_transfer",
            transaction_id=token,
            payment_confirmed_at=utc_now(),
            payment_provider=MANUAL_PROVIDER,
            depositor_name=depositor_name or snapshot.depositor_name,
            metadata={"operatorId": operator.id, "operatorEmail": operator.email},
        )
        self._functions.complete_order_after_payment(request)
        logger.info(
            f"Deposit confirmed for order {snapshot.order_number or snapshot.id} "
            f"tx={token} by operator {operator.id}"
        )

        cash_balance = None
        if is_cash_charge(snapshot):
            # 充值由完成函数入账，这里只重新读取余额
            profile = crud.get_profile(session=session, user_id=snapshot.user_id)
            cash_balance = profile.credits if profile else None

        self._cache.invalidate()
        return ConfirmationResult(
            order=load_order(session=session, order_id=snapshot.id),
            transaction_id=token,
            cash_balance=cash_balance,
        )
