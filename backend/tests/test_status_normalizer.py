from __future__ import annotations

import pytest

from app.enums import OrderStatus
from app.services.status_normalizer import (
    LEGACY_STATUS_MAP,
    LEGACY_STATUS_MAP_VERSION,
    is_deposit_method,
    normalize_payment_method,
    normalize_payment_status,
    normalize_status,
)


def test_legacy_processing_maps_to_payment_confirmed():
    assert normalize_status("Processing") == OrderStatus.payment_confirmed


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("awaiting_deposit", OrderStatus.awaiting_deposit),
        ("AWAITING-DEPOSIT", OrderStatus.awaiting_deposit),
        ("  Payment Confirmed ", OrderStatus.payment_confirmed),
        ("in-progress", OrderStatus.payment_confirmed),
        ("canceled", OrderStatus.cancelled),
        ("Refund_Completed", OrderStatus.refunded),
        ("done", OrderStatus.completed),
    ],
)
def test_case_separators_and_legacy_names(raw, expected):
    assert normalize_status(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "something-new", 42, object()])
def test_unknown_or_missing_defaults_to_pending(raw):
    assert normalize_status(raw) == OrderStatus.pending


def test_idempotent_on_canonical_values():
    for status in OrderStatus:
        assert normalize_status(status) == status
        assert normalize_status(status.value) == status
        assert normalize_status(normalize_status(status.value)) == status


def test_legacy_map_never_shadows_canonical_names():
    canonical = {s.value for s in OrderStatus}
    assert LEGACY_STATUS_MAP_VERSION >= 1
    assert not canonical & set(LEGACY_STATUS_MAP)
    assert all(isinstance(v, OrderStatus) for v in LEGACY_STATUS_MAP.values())


def test_payment_method_aliases():
    assert normalize_payment_method("Bank Transfer") == "bank_transfer"
    assert normalize_payment_method("vbank") == "virtual_account"
    assert normalize_payment_method("card") == "card"
    assert normalize_payment_method(None) is None

    assert is_deposit_method("BANK-TRANSFER") is True
    assert is_deposit_method("virtualaccount") is True
    assert is_deposit_method("card") is False
    assert is_deposit_method(None) is False


def test_payment_status_blank_is_none():
    assert normalize_payment_status("  ") is None
    assert normalize_payment_status("Awaiting Deposit") == "awaiting_deposit"
