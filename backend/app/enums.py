"""
枚举类型定义模块

定义应用中使用的所有枚举类型。
所有枚举都继承自 str 和 Enum，这样既可以用作字符串，又具有枚举的特性。
"""
from enum import Enum


class OrderStatus(str, Enum):
    """
    订单规范状态枚举

    所有业务判断只看这 6 个值，数据库里的原始字符串（raw_status）
    需要先经过 normalize_status 归一化：
    - pending: 待支付
    - awaiting_deposit: 等待入账（无通帐/虚拟账户）
    - payment_confirmed: 已确认收款
    - completed: 已完成（下载已开放 / 余额已到账）
    - cancelled: 已取消（终态）
    - refunded: 已退款（终态）
    """
    pending = "pending"
    awaiting_deposit = "awaiting_deposit"
    payment_confirmed = "payment_confirmed"
    completed = "completed"
    cancelled = "cancelled"
    refunded = "refunded"


TERMINAL_STATUSES = frozenset({OrderStatus.cancelled, OrderStatus.refunded})


class OrderType(str, Enum):
    """
    订单类型枚举

    - product: 乐谱购买
    - cash: 余额（cash）充值
    """
    product = "product"
    cash = "cash"


class OrderAction(str, Enum):
    """
    运营者对订单的写操作

    每个操作执行前都要经过 OrderActionGuard 的状态校验。
    """
    confirm_deposit = "confirm_deposit"
    refund = "refund"
    cancel = "cancel"
    force_complete = "force_complete"


class CashTransactionType(str, Enum):
    """
    余额交易类型枚举

    - charge: 充值（由结算流程写入）
    - use: 消费（购买乐谱扣除）
    - admin_add: 管理员手动增加
    - admin_deduct: 管理员手动扣除
    """
    charge = "charge"
    use = "use"
    admin_add = "admin_add"
    admin_deduct = "admin_deduct"


class CashAdjustmentKind(str, Enum):
    """管理员余额调整方向"""
    add = "add"
    deduct = "deduct"


class SummaryPeriod(str, Enum):
    """余额流水聚合周期"""
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
