"""订单读写（OrderStore）"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, delete, func, select

from app.api.errors import ExternalCallError, NotFoundError, StaleStateError, ValidationError
from app.enums import OrderStatus
from app.models import Order, OrderItem, utc_now
from app.services.status_normalizer import normalize_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderSnapshot:
    """
    直接从数据库读取的订单状态快照

    raw_status + updated_at 作为期望状态 token，写入前用于并发校验。
    """
    id: str
    order_number: str | None
    user_id: str
    raw_status: str | None
    status: OrderStatus
    payment_method: str | None
    payment_status: str | None
    total_amount: int
    order_type: str | None
    depositor_name: str | None
    transaction_id: str | None
    metadata: dict[str, Any] | None
    item_count: int
    updated_at: datetime


def get_order(*, session: Session, order_id: str) -> Order | None:
    return session.get(Order, order_id, populate_existing=True)


def get_items(*, session: Session, order_ids: list[str]) -> dict[str, list[OrderItem]]:
    """批量读取订单明细，按 order_id 分组并保持下单顺序"""
    grouped: dict[str, list[OrderItem]] = {oid: [] for oid in order_ids}
    if not order_ids:
        return grouped
    rows = session.exec(
        select(OrderItem)
        .where(OrderItem.order_id.in_(order_ids))  # type: ignore[union-attr]
        .order_by(OrderItem.created_at, OrderItem.id)
    ).all()
    for row in rows:
        grouped.setdefault(row.order_id, []).append(row)
    return grouped


def get_snapshot(*, session: Session, order_id: str) -> OrderSnapshot | None:
    """
    读取订单最新状态

    只查列不查实体，绕过 Session 的 identity map，保证拿到的是数据库当前值。
    """
    row = session.exec(
        select(
            Order.id,
            Order.order_number,
            Order.user_id,
            Order.status,
            Order.payment_method,
            Order.payment_status,
            Order.total_amount,
            Order.order_type,
            Order.depositor_name,
            Order.transaction_id,
            Order.order_metadata,
            Order.updated_at,
        ).where(Order.id == order_id)
    ).first()
    if row is None:
        return None
    item_count = session.exec(
        select(func.count()).select_from(OrderItem).where(OrderItem.order_id == order_id)
    ).one()
    return OrderSnapshot(
        id=row[0],
        order_number=row[1],
        user_id=row[2],
        raw_status=row[3],
        status=normalize_status(row[3]),
        payment_method=row[4],
        payment_status=row[5],
        total_amount=row[6] or 0,
        order_type=row[7],
        depositor_name=row[8],
        transaction_id=row[9],
        metadata=row[10],
        item_count=item_count,
        updated_at=row[11],
    )


def assert_unchanged(*, session: Session, snapshot: OrderSnapshot) -> None:
    """
    校验订单自快照以来没有被修改

    单条条件查询：id、原始状态、updated_at 都必须一致。

    Raises:
        StaleStateError: 订单已被其他会话或支付回调修改
    """
    status_clause = (
        Order.status.is_(None)  # type: ignore[union-attr]
        if snapshot.raw_status is None
        else Order.status == snapshot.raw_status
    )
    found = session.exec(
        select(func.count())
        .select_from(Order)
        .where(
            Order.id == snapshot.id,
            status_clause,
            Order.updated_at == snapshot.updated_at,
        )
    ).one()
    if not found:
        raise StaleStateError(
            f"Order {snapshot.order_number or snapshot.id} was modified concurrently",
            code=409002,
        )


def _raw_statuses_for(session: Session, status: OrderStatus) -> list[str]:
    # 历史数据的原始写法未知，先取出所有出现过的值再归一化匹配
    raws = session.exec(select(Order.status).distinct()).all()
    return [r for r in raws if r is not None and normalize_status(r) == status]


def list_orders(
    *,
    session: Session,
    page: int = 1,
    page_size: int = 20,
    status: OrderStatus | None = None,
    order_type: str | None = None,
    search: str | None = None,
) -> tuple[list[Order], int]:
    """分页查询订单（按创建时间倒序），返回 (订单列表, 总数)"""
    conditions = []
    if status is not None:
        raws = _raw_statuses_for(session, status)
        clause = Order.status.in_(raws)  # type: ignore[union-attr]
        if status == OrderStatus.pending:
            clause = or_(clause, Order.status.is_(None))  # type: ignore[union-attr]
        conditions.append(clause)
    if order_type:
        conditions.append(Order.order_type == order_type)
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                Order.order_number.ilike(pattern),  # type: ignore[union-attr]
                Order.depositor_name.ilike(pattern),  # type: ignore[union-attr]
            )
        )

    count = session.exec(select(func.count()).select_from(Order).where(*conditions)).one()
    stmt = (
        select(Order)
        .where(*conditions)
        .order_by(Order.created_at.desc(), Order.id.desc())  # type: ignore[attr-defined]
        .offset((page - 1) * page_size)
        .limit(page_size)
        .execution_options(populate_existing=True)
    )
    rows = list(session.exec(stmt).all())
    return rows, count


def append_payment_note(
    *, session: Session, order_id: str, note: str | None, note_type: str | None
) -> Order:
    """
    追加支付备注

    metadata.payment_notes 保存完整历史，payment_note 列只保存最新一条。
    """
    order = get_order(session=session, order_id=order_id)
    if not order:
        raise NotFoundError("Order not found", code=404101)

    timestamp = utc_now().isoformat()
    note_type = note_type or "unknown"
    message = note or "No reason given"

    metadata = dict(order.order_metadata or {})
    notes = list(metadata.get("payment_notes") or [])
    notes.append({"type": note_type, "message": message, "timestamp": timestamp})
    metadata["payment_notes"] = notes

    order.order_metadata = metadata
    order.payment_note = f"[{note_type}] {message} ({timestamp})"
    session.add(order)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Payment note write failed for order {order_id}: {e}")
        raise ExternalCallError(str(e), code=502502)
    session.refresh(order)
    return order


def bulk_delete(*, session: Session, order_ids: list[str]) -> int:
    """
    批量删除订单及其明细

    不涉及余额流水；流水中的 order_id 保留原值。不可撤销。
    """
    ids = sorted({oid for oid in order_ids if oid})
    if not ids:
        raise ValidationError("order_ids must not be empty", code=400101)
    try:
        session.exec(delete(OrderItem).where(OrderItem.order_id.in_(ids)))  # type: ignore[union-attr]
        result = session.exec(delete(Order).where(Order.id.in_(ids)))  # type: ignore[union-attr]
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Bulk delete of {len(ids)} orders failed: {e}")
        raise ExternalCallError(str(e), code=502503)
    return result.rowcount
