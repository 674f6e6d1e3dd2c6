"""
订单模型模块

定义订单及订单明细的数据库模型。
订单由结算流程（外部）创建，本服务只读取并通过外部函数推进状态。
"""
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Column, DateTime, ForeignKey, Integer, String
from sqlmodel import Field, SQLModel

from .base import new_id, utc_now


class Order(SQLModel, table=True):
    """
    订单模型

    字段说明：
    - id: 主键（UUID 字符串）
    - order_number: 给人看的订单号
    - user_id: 下单用户（profiles.id）
    - total_amount: 订单金额（最小货币单位，创建后不可修改）
    - status: 原始状态字符串（可能是历史遗留写法，读取时再归一化）
    - payment_method / payment_status: 支付方式与支付状态（原始字符串）
    - payment_note: 最近一次支付备注
    - transaction_id: 支付平台交易 ID 或手动确认 token
    - depositor_name: 入账人姓名（无通帐时）
    - payment_confirmed_at: 收款确认时间
    - virtual_account_info: 虚拟账户信息（JSON）
    - order_metadata: 自由格式元数据（数据库列名 metadata）
    - order_type: product / cash / 空
    """
    __tablename__ = "orders"
    id: str = Field(default_factory=new_id, sa_column=Column(String(36), primary_key=True))
    order_number: str | None = Field(
        default=None, sa_column=Column(String(64), index=True, nullable=True)
    )
    user_id: str = Field(sa_column=Column(String(36), index=True, nullable=False))

    total_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    status: str | None = Field(default="pending", sa_column=Column(String(32), nullable=True))

    payment_method: str | None = Field(default=None, max_length=32)
    payment_status: str | None = Field(default=None, max_length=32)
    payment_note: str | None = Field(default=None)
    transaction_id: str | None = Field(default=None, max_length=128)
    depositor_name: str | None = Field(default=None, max_length=64)
    payment_confirmed_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    virtual_account_info: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )
    # "metadata" is reserved on declarative classes
    order_metadata: dict[str, Any] | None = Field(
        default=None, sa_column=Column("metadata", JSON, nullable=True)
    )
    order_type: str | None = Field(default=None, max_length=16)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class OrderItem(SQLModel, table=True):
    """
    订单明细模型

    标题和价格在下单时快照保存；乐谱被删除后 sheet_id 为空。
    """
    __tablename__ = "order_items"
    id: str = Field(default_factory=new_id, sa_column=Column(String(36), primary_key=True))
    order_id: str = Field(
        sa_column=Column(
            String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    sheet_id: str | None = Field(default=None, max_length=36)
    sheet_title: str | None = Field(default=None, max_length=255)
    price: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))

    download_attempt_count: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, default=0)
    )
    last_downloaded_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
