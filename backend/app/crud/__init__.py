"""CRUD 操作模块"""
from .cash import (
    apply_delta as apply_cash_delta,
)
from .cash import (
    get_balance as get_cash_balance,
)
from .cash import (
    get_profile,
    ledger_sum,
)
from .cash import (
    list_transactions as list_cash_transactions,
)
from .cash import (
    summarize as summarize_cash,
)
from .orders import (
    OrderSnapshot,
    append_payment_note,
    assert_unchanged,
    bulk_delete,
    get_items,
    get_order,
    get_snapshot,
    list_orders,
)

__all__ = [
    "apply_cash_delta",
    "get_cash_balance",
    "get_profile",
    "ledger_sum",
    "list_cash_transactions",
    "summarize_cash",
    "OrderSnapshot",
    "append_payment_note",
    "assert_unchanged",
    "bulk_delete",
    "get_items",
    "get_order",
    "get_snapshot",
    "list_orders",
]
