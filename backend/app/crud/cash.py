"""
余额账本（CashLedger）

cash_transactions 是只追加的流水；profiles.credits 是冗余余额。
任何修改 credits 的写入都必须在同一事务里配一条流水，
且流水的 balance_after 等于写入后的 credits。
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import date, datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, func, select

from app.api.errors import (
    ExternalCallError,
    NotFoundError,
    StaleStateError,
    ValidationError,
    insufficient_credits,
)
from app.enums import CashTransactionType, SummaryPeriod
from app.models import CashTransaction, Profile, utc_now

logger = logging.getLogger(__name__)

# profiles.credits / cash_transactions 金额列为 BIGINT
BIGINT_MAX = 2**63 - 1

# 各聚合周期默认展示的桶数量
SUMMARY_BUCKETS = {
    SummaryPeriod.daily: 7,
    SummaryPeriod.weekly: 8,
    SummaryPeriod.monthly: 6,
}


def get_profile(*, session: Session, user_id: str) -> Profile | None:
    return session.get(Profile, user_id, populate_existing=True)


def get_balance(*, session: Session, user_id: str) -> int:
    """读取当前余额（直接查列，不走 identity map）"""
    credits = session.exec(select(Profile.credits).where(Profile.id == user_id)).first()
    if credits is None:
        raise NotFoundError("Profile not found", code=404201)
    return credits


def apply_delta(
    *,
    session: Session,
    user_id: str,
    delta: int,
    tx_type: CashTransactionType,
    created_by: str | None,
    description: str | None = None,
    bonus_amount: int = 0,
    sheet_id: str | None = None,
    order_id: str | None = None,
) -> CashTransaction:
    """
    变更余额并写入流水

    两次写入在同一事务内完成：
    1. UPDATE profiles SET credits = new WHERE id = ? AND credits = seen（CAS）
    2. INSERT cash_transactions(balance_after = new)
    任一步失败都会回滚。

    Raises:
        NotFoundError: 用户不存在
        InsufficientCreditError: 变更后余额为负，未写入
        ValidationError: 变更后余额超出 BIGINT 范围，未写入
        StaleStateError: 读取后余额被其他写入修改（CAS 未命中），未写入
        ExternalCallError: 数据库写入失败（已回滚）
    """
    current = get_balance(session=session, user_id=user_id)
    new_balance = current + delta + bonus_amount
    if new_balance < 0:
        raise insufficient_credits(current=current, required=-(delta + bonus_amount))
    if new_balance > BIGINT_MAX:
        raise ValidationError("Resulting balance is out of range", code=400405)

    now = utc_now()
    try:
        result = session.exec(
            update(Profile)
            .where(Profile.id == user_id, Profile.credits == current)
            .values(credits=new_balance, updated_at=now)
        )
        if result.rowcount != 1:
            raise StaleStateError(
                "Balance changed by another operation; reload and retry", code=409202
            )
        tx = CashTransaction(
            user_id=user_id,
            transaction_type=tx_type,
            amount=delta,
            bonus_amount=bonus_amount,
            balance_after=new_balance,
            description=description,
            sheet_id=sheet_id,
            order_id=order_id,
            created_by=created_by,
            created_at=now,
        )
        session.add(tx)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Cash ledger write failed for user {user_id}: {e}")
        raise ExternalCallError(str(e), code=502501)
    except Exception:
        session.rollback()
        raise

    session.refresh(tx)
    logger.info(
        f"Cash ledger {tx_type.value} user={user_id} delta={delta} "
        f"bonus={bonus_amount} balance_after={new_balance} by={created_by}"
    )
    return tx


def list_transactions(
    *,
    session: Session,
    user_id: str,
    page: int = 1,
    page_size: int = 20,
    tx_type: CashTransactionType | None = None,
) -> tuple[list[CashTransaction], int]:
    """分页查询流水（最新在前），返回 (流水列表, 总数)"""
    conditions = [CashTransaction.user_id == user_id]
    if tx_type is not None:
        conditions.append(CashTransaction.transaction_type == tx_type)

    count = session.exec(
        select(func.count()).select_from(CashTransaction).where(*conditions)
    ).one()
    rows = session.exec(
        select(CashTransaction)
        .where(*conditions)
        .order_by(CashTransaction.created_at.desc(), CashTransaction.id.desc())  # type: ignore[attr-defined]
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return list(rows), count


def ledger_sum(*, session: Session, user_id: str) -> int:
    """
    流水合计 Σ(amount + bonus_amount)

    只用于诊断比对，不会回写 credits。
    """
    total = session.exec(
        select(func.coalesce(func.sum(CashTransaction.amount + CashTransaction.bonus_amount), 0))
        .where(CashTransaction.user_id == user_id)
    ).one()
    return int(total)


def _bucket_start(day: date, period: SummaryPeriod) -> date:
    if period == SummaryPeriod.monthly:
        return day.replace(day=1)
    if period == SummaryPeriod.weekly:
        return day - timedelta(days=day.weekday())
    return day


def _bucket_label(start: date, period: SummaryPeriod) -> str:
    if period == SummaryPeriod.monthly:
        return f"{start.year}-{start.month:02d}"
    return f"{start.month:02d}-{start.day:02d}"


def _previous_start(start: date, period: SummaryPeriod) -> date:
    if period == SummaryPeriod.monthly:
        return (start - timedelta(days=1)).replace(day=1)
    if period == SummaryPeriod.weekly:
        return start - timedelta(days=7)
    return start - timedelta(days=1)


def summarize(
    *,
    session: Session,
    period: SummaryPeriod = SummaryPeriod.monthly,
    user_id: str | None = None,
    buckets: int | None = None,
    now: datetime | None = None,
) -> list[dict[str, int | str]]:
    """
    按周期聚合流水

    返回最近 N 个桶（旧的在前），每个桶包含各交易类型的合计。
    只读取流水，不读取 credits。
    """
    now = now or utc_now()
    n = buckets or SUMMARY_BUCKETS[period]

    starts: list[date] = []
    start = _bucket_start(now.date(), period)
    for _ in range(n):
        starts.append(start)
        start = _previous_start(start, period)
    starts.reverse()

    result: OrderedDict[date, dict[str, int | str]] = OrderedDict(
        (s, {
            "label": _bucket_label(s, period),
            "charged": 0,
            "used": 0,
            "admin_added": 0,
            "admin_deducted": 0,
            "count": 0,
        })
        for s in starts
    )

    since = datetime.combine(starts[0], datetime.min.time(), tzinfo=now.tzinfo)
    stmt = select(CashTransaction).where(CashTransaction.created_at >= since)
    if user_id:
        stmt = stmt.where(CashTransaction.user_id == user_id)

    for tx in session.exec(stmt).all():
        key = _bucket_start(tx.created_at.date(), period)
        bucket = result.get(key)
        if bucket is None:
            continue
        tx_type = CashTransactionType(tx.transaction_type)
        if tx_type == CashTransactionType.charge:
            bucket["charged"] += tx.amount + tx.bonus_amount  # type: ignore[operator]
        elif tx_type == CashTransactionType.use:
            bucket["used"] += -tx.amount  # type: ignore[operator]
        elif tx_type == CashTransactionType.admin_add:
            bucket["admin_added"] += tx.amount  # type: ignore[operator]
        else:
            bucket["admin_deducted"] += -tx.amount  # type: ignore[operator]
        bucket["count"] += 1  # type: ignore[operator]

    return list(result.values())
