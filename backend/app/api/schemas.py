"""
API 请求/响应数据模型（Schema）

定义所有 API 接口的请求和响应数据结构。
使用 Pydantic 进行数据验证和序列化。这些模型不是数据库表，只用于数据交换。

另外提供订单 JSON 字段（virtual_account_info / metadata）的类型化视图，
统一处理"字段缺失"和"字段为空"的区别，避免在各处做属性探测。
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from app.enums import (
    CashAdjustmentKind,
    CashTransactionType,
    OrderStatus,
    SummaryPeriod,
)

# ============================================================
# 通用响应模型
# ============================================================


class TokenPayload(BaseModel):
    """
    运营者 JWT 载荷

    由外部认证服务签发：sub 为运营者 ID，role 为角色。
    """
    sub: str | None = None
    email: str | None = None
    role: str | None = None


class ApiEnvelope(BaseModel):
    """
    API 统一响应格式

    - code: 状态码（0 表示成功，非 0 表示错误）
    - message: 消息
    - data: 业务数据

    示例响应：
        {"code": 0, "message": "success", "data": {...}}
        {"code": 409001, "message": "Order is already refunded", "data": None}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


# ============================================================
# 订单 JSON 字段的类型化视图
# ============================================================


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


class VirtualAccountInfo(BaseModel):
    """
    虚拟账户信息

    PG 回调里的字段名写法不统一，这里兼容常见的几种。
    """
    bank_name: str | None = None
    account_number: str | None = None
    account_holder: str | None = None
    expires_at: str | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> VirtualAccountInfo | None:
        """列为空或不是对象时返回 None（缺失），否则返回解析后的结构"""
        if not isinstance(raw, dict):
            return None
        return cls(
            bank_name=_str_or_none(
                _first(raw, "bankName", "bank_name", "bank", "bankCode", "bank_code")
            ),
            account_number=_str_or_none(_first(raw, "accountNumber", "account_number")),
            account_holder=_str_or_none(
                _first(raw, "accountHolder", "account_holder", "remittee_name")
            ),
            expires_at=_str_or_none(
                _first(raw, "expiresAt", "expires_at", "expired_at", "valid_until")
            ),
        )


class PaymentNoteEntry(BaseModel):
    type: str
    message: str
    timestamp: str


class OrderMetadataView(BaseModel):
    """
    订单 metadata 的类型化视图

    present=False 表示数据库里 metadata 为空；extra 保留未识别的键。
    """
    present: bool = False
    type: str | None = None
    purpose: str | None = None
    bonus_amount: int | None = None
    completed_by: str | None = None
    payment_notes: list[PaymentNoteEntry] = []
    extra: dict[str, Any] = {}

    @classmethod
    def from_raw(cls, raw: Any) -> OrderMetadataView:
        if not isinstance(raw, dict):
            return cls()
        notes = []
        raw_notes = raw.get("payment_notes")
        if isinstance(raw_notes, list):
            for n in raw_notes:
                if isinstance(n, dict):
                    notes.append(
                        PaymentNoteEntry(
                            type=str(n.get("type") or "unknown"),
                            message=str(n.get("message") or ""),
                            timestamp=str(n.get("timestamp") or ""),
                        )
                    )
        bonus = raw.get("bonusAmount", raw.get("bonus_amount"))
        try:
            bonus_amount = int(bonus) if bonus is not None else None
        except (TypeError, ValueError):
            bonus_amount = None
        known = {"type", "purpose", "bonusAmount", "bonus_amount", "completedBy", "payment_notes"}
        return cls(
            present=True,
            type=_str_or_none(raw.get("type")),
            purpose=_str_or_none(raw.get("purpose")),
            bonus_amount=bonus_amount,
            completed_by=_str_or_none(raw.get("completedBy")),
            payment_notes=notes,
            extra={k: v for k, v in raw.items() if k not in known},
        )

    @property
    def is_cash_charge(self) -> bool:
        return "cash_charge" in (self.type, self.purpose)


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)


# ============================================================
# 订单
# ============================================================


class OrderItemData(BaseModel):
    id: str
    sheet_id: str | None = None  # 乐谱被删除后为空
    sheet_title: str | None = None
    price: int
    download_attempt_count: int = 0
    last_downloaded_at: datetime | None = None


class OrderData(BaseModel):
    """
    订单数据模型

    status 为归一化后的规范状态，raw_status 为数据库原始值。
    """
    id: str
    order_number: str | None = None
    user_id: str
    total_amount: int
    status: OrderStatus
    raw_status: str | None = None
    payment_method: str | None = None
    payment_status: str | None = None
    payment_note: str | None = None
    transaction_id: str | None = None
    depositor_name: str | None = None
    payment_confirmed_at: datetime | None = None
    virtual_account_info: VirtualAccountInfo | None = None
    metadata: OrderMetadataView
    order_type: str | None = None
    created_at: datetime
    updated_at: datetime
    items: list[OrderItemData] = []


class OrdersData(BaseModel):
    data: list[OrderData]
    count: int


class ConfirmDepositRequest(BaseModel):
    """
    手动入账确认请求

    acknowledged 必须显式为 true，防止误操作。
    未提供 transaction_id 时按订单 ID 生成确定性的 token。
    """
    acknowledged: bool = False
    transaction_id: str | None = Field(default=None, max_length=128)
    depositor_name: str | None = Field(default=None, max_length=64)


class RefundRequest(BaseModel):
    confirm_zero_amount: bool = False  # 退款金额为 0 时需要再次确认


class OrderActionData(BaseModel):
    """订单操作结果：重新从数据库读取的订单 + 可选的余额刷新"""
    order: OrderData
    refund_amount: int | None = None
    cash_balance: int | None = None


class PaymentNoteRequest(BaseModel):
    note: str | None = Field(default=None, max_length=500)
    note_type: str | None = Field(default=None, max_length=32)  # cancel / error / system_error


class BulkDeleteRequest(BaseModel):
    order_ids: list[str] = Field(default_factory=list, max_length=500)


class BulkDeleteData(BaseModel):
    deleted: int


# ============================================================
# 余额
# ============================================================


class CashBalanceData(BaseModel):
    user_id: str
    credits: int


class CashTransactionPublic(BaseModel):
    id: str
    user_id: str
    transaction_type: CashTransactionType
    amount: int
    bonus_amount: int
    balance_after: int
    description: str | None = None
    sheet_id: str | None = None
    order_id: str | None = None
    created_by: str | None = None
    created_at: datetime


class CashTransactionsData(BaseModel):
    data: list[CashTransactionPublic]
    count: int


class CashAdjustRequest(BaseModel):
    """
    管理员余额调整请求

    amount 使用 Decimal 接收，整数校验在服务层完成，
    这样小数 / 非正数会以业务错误（ValidationError）返回。
    """
    kind: CashAdjustmentKind
    amount: Decimal
    description: str | None = Field(default=None, max_length=255)


class CashAdjustData(BaseModel):
    credits: int
    transaction: CashTransactionPublic


class CashSummaryBucket(BaseModel):
    label: str
    charged: int = 0  # 充值（含赠送）
    used: int = 0  # 消费（正数）
    admin_added: int = 0
    admin_deducted: int = 0  # 正数
    count: int = 0


class CashSummaryData(BaseModel):
    period: SummaryPeriod
    buckets: list[CashSummaryBucket]
