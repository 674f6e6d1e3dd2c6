"""
余额（cash）模型模块

定义用户资料（含余额）和余额交易流水。
"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Index, String
from sqlmodel import Field, SQLModel

from app.enums import CashTransactionType

from .base import new_id, utc_now


class Profile(SQLModel, table=True):
    """
    用户资料模型

    credits 是冗余保存的余额，必须始终等于该用户全部流水的
    Σ(amount + bonus_amount)。只允许通过 CashLedger 修改。
    """
    __tablename__ = "profiles"
    id: str = Field(default_factory=new_id, sa_column=Column(String(36), primary_key=True))
    email: str | None = Field(default=None, max_length=255)
    display_name: str | None = Field(default=None, max_length=64)
    credits: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class CashTransaction(SQLModel, table=True):
    """
    余额交易流水模型（只追加）

    每次余额变动都会写入一条记录，写入后不再修改或删除。

    字段说明：
    - transaction_type: 交易类型（charge/use/admin_add/admin_deduct）
    - amount: 变动金额（负数表示扣除）
    - bonus_amount: 赠送金额（充值活动）
    - balance_after: 交易后的余额快照
    - sheet_id / order_id: 关联乐谱 / 订单（订单被删除后仍保留原值）
    - created_by: 操作人（管理员调整时为运营者 ID）
    """
    __tablename__ = "cash_transactions"
    __table_args__ = (
        Index("idx_cash_tx_user_created", "user_id", "created_at"),
    )

    id: str = Field(default_factory=new_id, sa_column=Column(String(36), primary_key=True))
    user_id: str = Field(sa_column=Column(String(36), index=True, nullable=False))
    transaction_type: CashTransactionType = Field(sa_column=Column(String(16), nullable=False))

    amount: int = Field(sa_column=Column(BigInteger, nullable=False))
    bonus_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    balance_after: int = Field(sa_column=Column(BigInteger, nullable=False))

    description: str | None = Field(default=None, max_length=255)
    sheet_id: str | None = Field(default=None, max_length=36)
    order_id: str | None = Field(default=None, max_length=36)
    created_by: str | None = Field(default=None, max_length=36)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
