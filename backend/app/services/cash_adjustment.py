"""
管理员余额调整（CashAdjustmentService）

校验顺序：
1. 金额必须是正整数（非正数、小数、非数字在任何读写之前拒绝）
2. 用户必须存在
3. 扣除时调整后的余额不能为负，否则不写入任何数据

通过后在同一事务内更新 profiles.credits 并追加一条 admin_add / admin_deduct 流水。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlmodel import Session

from app import crud
from app.api.errors import NotFoundError, ValidationError
from app.core.config import settings
from app.core.security import Operator
from app.enums import CashAdjustmentKind, CashTransactionType
from app.models import CashTransaction

logger = logging.getLogger(__name__)

_DEFAULT_DESCRIPTIONS = {
    CashAdjustmentKind.add: "Admin cash add",
    CashAdjustmentKind.deduct: "Admin cash deduct",
}


def parse_amount(raw: Any) -> int:
    """
    金额必须是正整数

    接受 int、整数值的 Decimal/float、数字字符串；bool 不算数字。

    Raises:
        ValidationError: 非正数、小数、超过上限或无法解析
    """
    if isinstance(raw, bool) or raw is None:
        raise ValidationError("Amount must be a positive integer", code=400401)
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a positive integer", code=400401)
    if not value.is_finite() or value != value.to_integral_value():
        raise ValidationError("Amount must be a whole number", code=400402)
    if value <= 0:
        raise ValidationError("Amount must be greater than 0", code=400403)
    if value > settings.CASH_ADJUSTMENT_MAX_AMOUNT:
        raise ValidationError(
            f"Amount must not exceed {settings.CASH_ADJUSTMENT_MAX_AMOUNT}", code=400404
        )
    return int(value)


@dataclass(frozen=True)
class AdjustmentResult:
    credits: int
    transaction: CashTransaction


class CashAdjustmentService:
    def adjust(
        self,
        *,
        session: Session,
        user_id: str,
        operator: Operator,
        kind: CashAdjustmentKind,
        amount: Any,
        description: str | None = None,
    ) -> AdjustmentResult:
        """
        增加或扣除余额

        Raises:
            ValidationError: 金额不合法
            NotFoundError: 用户不存在
            InsufficientCreditError: 扣除后余额为负，未写入
            StaleStateError: 余额在读取后被并发修改，未写入
            ExternalCallError: 账本写入失败，已回滚
        """
        value = parse_amount(amount)
        if crud.get_profile(session=session, user_id=user_id) is None:
            raise NotFoundError("Profile not found", code=404201)

        if kind == CashAdjustmentKind.add:
            delta, tx_type = value, CashTransactionType.admin_add
        else:
            delta, tx_type = -value, CashTransactionType.admin_deduct

        tx = crud.apply_cash_delta(
            session=session,
            user_id=user_id,
            delta=delta,
            tx_type=tx_type,
            created_by=operator.id,
            description=(description or "").strip() or _DEFAULT_DESCRIPTIONS[kind],
        )
        logger.info(f"Operator {operator.id} {kind.value} {value} for user {user_id}")
        return AdjustmentResult(credits=tx.balance_after, transaction=tx)


cash_adjustment_service = CashAdjustmentService()
