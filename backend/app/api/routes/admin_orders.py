"""
订单管理路由模块

运营后台的订单接口，包括：
- 订单列表（分页、按规范状态筛选）与详情
- 手动入账确认
- 退款 / 取消（不退款）/ 强制完成
- 支付备注
- 批量删除

所有改变订单状态的操作都会先重新读取订单并校验状态迁移，
成功后失效列表缓存并返回从数据库重新加载的订单。
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Query

from app import crud
from app.api.deps import (
    CurrentOperator,
    OrderCacheDep,
    PaymentConfirmationDep,
    RefundCancelDep,
    SessionDep,
)
from app.api.schemas import (
    ApiEnvelope,
    BulkDeleteData,
    BulkDeleteRequest,
    ConfirmDepositRequest,
    OrderActionData,
    PaymentNoteRequest,
    RefundRequest,
)
from app.enums import OrderStatus, OrderType
from app.services.order_cache import load_order

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"])


@router.get("", response_model=ApiEnvelope)
def list_orders(
    session: SessionDep,
    _: CurrentOperator,
    cache: OrderCacheDep,
    page: int = Query(default=1, ge=1),  # 页码，从 1 开始
    page_size: int = Query(default=20, ge=1, le=100),  # 每页数量，1-100
    status: OrderStatus | None = Query(default=None),  # 规范状态
    order_type: OrderType | None = Query(default=None),
    search: str | None = Query(default=None, max_length=64),  # 订单号 / 入账人
) -> ApiEnvelope:
    """
    获取订单列表（分页）

    请求路径: GET /api/v1/admin/orders?page=1&page_size=20&status=awaiting_deposit

    status 按归一化后的规范状态筛选，历史写法的订单也能查到。
    """
    data = cache.get_page(
        session=session,
        page=page,
        page_size=page_size,
        status=status,
        order_type=order_type.value if order_type else None,
        search=search.strip() if search and search.strip() else None,
    )
    return ApiEnvelope(data=data)


@router.get("/{order_id}", response_model=ApiEnvelope)
def get_order(session: SessionDep, _: CurrentOperator, order_id: str) -> ApiEnvelope:
    """
    获取订单详情（总是直接读数据库）

    Raises:
        NotFoundError: 订单不存在
    """
    return ApiEnvelope(data=load_order(session=session, order_id=order_id))


@router.post("/{order_id}/confirm-deposit", response_model=ApiEnvelope)
def confirm_deposit(
    session: SessionDep,
    operator: CurrentOperator,
    service: PaymentConfirmationDep,
    order_id: str,
    body: ConfirmDepositRequest,
) -> ApiEnvelope:
    """
    手动确认入账

    请求路径: POST /api/v1/admin/orders/{order_id}/confirm-deposit

    body.acknowledged 必须为 true。余额充值订单会同时返回刷新后的余额。
    """
    result = service.confirm_deposit(
        session=session,
        order_id=order_id,
        operator=operator,
        acknowledged=body.acknowledged,
        transaction_id=body.transaction_id,
        depositor_name=body.depositor_name,
    )
    return ApiEnvelope(
        data=OrderActionData(order=result.order, cash_balance=result.cash_balance)
    )


@router.post("/{order_id}/refund", response_model=ApiEnvelope)
def refund(
    session: SessionDep,
    operator: CurrentOperator,
    coordinator: RefundCancelDep,
    order_id: str,
    body: RefundRequest | None = None,
) -> ApiEnvelope:
    """
    退款

    请求路径: POST /api/v1/admin/orders/{order_id}/refund

    退款金额为 max(0, total_amount)；为 0 时需要 confirm_zero_amount=true。
    """
    result = coordinator.refund(
        session=session,
        order_id=order_id,
        operator=operator,
        confirm_zero_amount=bool(body and body.confirm_zero_amount),
    )
    return ApiEnvelope(
        data=OrderActionData(order=result.order, refund_amount=result.refund_amount)
    )


@router.post("/{order_id}/cancel", response_model=ApiEnvelope)
def cancel(
    session: SessionDep,
    operator: CurrentOperator,
    coordinator: RefundCancelDep,
    order_id: str,
) -> ApiEnvelope:
    """取消订单（不退款），请求路径: POST /api/v1/admin/orders/{order_id}/cancel"""
    result = coordinator.cancel(session=session, order_id=order_id, operator=operator)
    return ApiEnvelope(data=OrderActionData(order=result.order))


@router.post("/{order_id}/force-complete", response_model=ApiEnvelope)
def force_complete(
    session: SessionDep,
    operator: CurrentOperator,
    coordinator: RefundCancelDep,
    order_id: str,
) -> ApiEnvelope:
    """强制完成（仅用于人工异常处理）"""
    result = coordinator.force_complete(session=session, order_id=order_id, operator=operator)
    return ApiEnvelope(data=OrderActionData(order=result.order))


@router.post("/{order_id}/note", response_model=ApiEnvelope)
def add_payment_note(
    session: SessionDep,
    _: CurrentOperator,
    cache: OrderCacheDep,
    order_id: str,
    body: PaymentNoteRequest,
) -> ApiEnvelope:
    """
    追加支付备注

    payment_note 保存最新一条，metadata.payment_notes 保存完整历史。
    """
    crud.append_payment_note(
        session=session, order_id=order_id, note=body.note, note_type=body.note_type
    )
    cache.invalidate()
    return ApiEnvelope(data=load_order(session=session, order_id=order_id))


@router.post("/bulk-delete", response_model=ApiEnvelope)
def bulk_delete(
    session: SessionDep,
    operator: CurrentOperator,
    cache: OrderCacheDep,
    body: BulkDeleteRequest,
) -> ApiEnvelope:
    """
    批量删除订单（不可撤销，不影响余额流水）

    请求路径: POST /api/v1/admin/orders/bulk-delete
    """
    deleted = crud.bulk_delete(session=session, order_ids=body.order_ids)
    logger.info(f"Operator {operator.id} bulk-deleted {deleted} orders")
    cache.invalidate()
    return ApiEnvelope(data=BulkDeleteData(deleted=deleted))
