"""
余额管理路由模块

处理运营后台的余额接口，包括：
- 查询用户余额
- 查询余额流水（分页，只读）
- 管理员增加 / 扣除余额
- 按周期聚合流水
"""
from __future__ import annotations

from fastapi import APIRouter, Query

from app import crud
from app.api.deps import CurrentOperator, SessionDep
from app.api.schemas import (
    ApiEnvelope,
    CashAdjustData,
    CashAdjustRequest,
    CashBalanceData,
    CashSummaryBucket,
    CashSummaryData,
    CashTransactionPublic,
    CashTransactionsData,
)
from app.enums import CashTransactionType, SummaryPeriod
from app.models import CashTransaction
from app.services.cash_adjustment import cash_adjustment_service

router = APIRouter(prefix="/admin/cash", tags=["admin-cash"])


def _to_public(row: CashTransaction) -> CashTransactionPublic:
    return CashTransactionPublic(
        id=row.id,
        user_id=row.user_id,
        transaction_type=row.transaction_type,
        amount=row.amount,
        bonus_amount=row.bonus_amount,
        balance_after=row.balance_after,
        description=row.description,
        sheet_id=row.sheet_id,
        order_id=row.order_id,
        created_by=row.created_by,
        created_at=row.created_at,
    )


@router.get("/summary", response_model=ApiEnvelope)
def summary(
    session: SessionDep,
    _: CurrentOperator,
    period: SummaryPeriod = Query(default=SummaryPeriod.monthly),
    user_id: str | None = Query(default=None),
) -> ApiEnvelope:
    """
    按周期聚合流水

    请求路径: GET /api/v1/admin/cash/summary?period=monthly

    daily 最近 7 天，weekly 最近 8 周，monthly 最近 6 个月。
    """
    buckets = crud.summarize_cash(session=session, period=period, user_id=user_id)
    return ApiEnvelope(
        data=CashSummaryData(
            period=period, buckets=[CashSummaryBucket(**b) for b in buckets]  # type: ignore[arg-type]
        )
    )


@router.get("/{user_id}/balance", response_model=ApiEnvelope)
def balance(session: SessionDep, _: CurrentOperator, user_id: str) -> ApiEnvelope:
    """获取用户余额"""
    credits = crud.get_cash_balance(session=session, user_id=user_id)
    return ApiEnvelope(data=CashBalanceData(user_id=user_id, credits=credits))


@router.get("/{user_id}/transactions", response_model=ApiEnvelope)
def transactions(
    session: SessionDep,
    _: CurrentOperator,
    user_id: str,
    page: int = Query(default=1, ge=1),  # 页码，从 1 开始
    page_size: int = Query(default=20, ge=1, le=100),  # 每页数量，1-100
    transaction_type: CashTransactionType | None = Query(default=None),
) -> ApiEnvelope:
    """
    获取余额流水（分页）

    按时间倒序排列。流水只读，不提供修改或删除接口。

    请求路径: GET /api/v1/admin/cash/{user_id}/transactions?page=1&page_size=20
    """
    rows, count = crud.list_cash_transactions(
        session=session,
        user_id=user_id,
        page=page,
        page_size=page_size,
        tx_type=transaction_type,
    )
    return ApiEnvelope(
        data=CashTransactionsData(data=[_to_public(r) for r in rows], count=count)
    )


@router.post("/{user_id}/adjust", response_model=ApiEnvelope)
def adjust(
    session: SessionDep,
    operator: CurrentOperator,
    user_id: str,
    body: CashAdjustRequest,
) -> ApiEnvelope:
    """
    管理员增加 / 扣除余额

    请求路径: POST /api/v1/admin/cash/{user_id}/adjust

    Raises:
        ValidationError: 金额不是正整数
        InsufficientCreditError: 扣除后余额为负（不写入）
    """
    result = cash_adjustment_service.adjust(
        session=session,
        user_id=user_id,
        operator=operator,
        kind=body.kind,
        amount=body.amount,
        description=body.description,
    )
    return ApiEnvelope(
        data=CashAdjustData(credits=result.credits, transaction=_to_public(result.transaction))
    )
