"""
订单列表读穿缓存

订单列表按查询条件缓存一小段时间；任何写操作之后都必须调用
invalidate()，再从数据库重新加载。涉及金额的状态迁移不会就地修改缓存中的订单。
"""
from __future__ import annotations

import time
from threading import Lock

from sqlmodel import Session

from app import crud
from app.api.errors import NotFoundError
from app.api.schemas import (
    OrderData,
    OrderItemData,
    OrderMetadataView,
    OrdersData,
    VirtualAccountInfo,
)
from app.core.config import settings
from app.enums import OrderStatus
from app.models import Order, OrderItem
from app.services.status_normalizer import normalize_status


def to_order_data(order: Order, items: list[OrderItem]) -> OrderData:
    """将订单模型转换为响应数据模型（状态在这里归一化，原始值保留在 raw_status）"""
    return OrderData(
        id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        total_amount=order.total_amount,
        status=normalize_status(order.status),
        raw_status=order.status,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        payment_note=order.payment_note,
        transaction_id=order.transaction_id,
        depositor_name=order.depositor_name,
        payment_confirmed_at=order.payment_confirmed_at,
        virtual_account_info=VirtualAccountInfo.from_raw(order.virtual_account_info),
        metadata=OrderMetadataView.from_raw(order.order_metadata),
        order_type=order.order_type,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[
            OrderItemData(
                id=i.id,
                sheet_id=i.sheet_id,
                sheet_title=i.sheet_title,
                price=i.price,
                download_attempt_count=i.download_attempt_count,
                last_downloaded_at=i.last_downloaded_at,
            )
            for i in items
        ],
    )


def load_order(*, session: Session, order_id: str) -> OrderData:
    """从数据库重新加载单个订单"""
    order = crud.get_order(session=session, order_id=order_id)
    if not order:
        raise NotFoundError("Order not found", code=404101)
    items = crud.get_items(session=session, order_ids=[order.id])
    return to_order_data(order, items[order.id])


_QueryKey = tuple[int, int, str | None, str | None, str | None]


class OrderListCache:
    """按查询条件缓存订单列表页"""

    def __init__(self, ttl_seconds: int) -> None:
        self._ttl = ttl_seconds
        self._lock = Lock()
        self._pages: dict[_QueryKey, tuple[float, OrdersData]] = {}

    def get_page(
        self,
        *,
        session: Session,
        page: int,
        page_size: int,
        status: OrderStatus | None = None,
        order_type: str | None = None,
        search: str | None = None,
    ) -> OrdersData:
        key: _QueryKey = (
            page,
            page_size,
            status.value if status else None,
            order_type,
            search,
        )
        now = time.monotonic()
        with self._lock:
            hit = self._pages.get(key)
            if hit and now - hit[0] < self._ttl:
                return hit[1]

        rows, count = crud.list_orders(
            session=session,
            page=page,
            page_size=page_size,
            status=status,
            order_type=order_type,
            search=search,
        )
        items = crud.get_items(session=session, order_ids=[o.id for o in rows])
        data = OrdersData(data=[to_order_data(o, items[o.id]) for o in rows], count=count)
        with self._lock:
            self._pages[key] = (now, data)
        return data

    def invalidate(self) -> None:
        with self._lock:
            self._pages.clear()


order_list_cache = OrderListCache(ttl_seconds=settings.ORDER_LIST_CACHE_TTL_SECONDS)
