from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from app import crud
from app.api.errors import ExternalCallError
from app.enums import CashTransactionType, OrderStatus
from app.models import CashTransaction
from app.services.payment_confirmation import manual_transaction_token


def test_confirm_deposit_completes_order(client, db, functions, headers, order_factory):
    order = order_factory(
        status="awaiting_deposit",
        payment_method="bank_transfer",
        payment_status="awaiting_deposit",
        total_amount=15000,
        depositor_name="Kim Minji",
    )

    r = client.post(
        f"/api/v1/admin/orders/{order.id}/confirm-deposit",
        headers=headers,
        json={"acknowledged": True},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["code"] == 0
    assert body["data"]["order"]["status"] == "completed"
    assert body["data"]["cash_balance"] is None

    assert len(functions.calls) == 1
    name, payload = functions.calls[0]
    assert name == "complete"
    assert payload["orderId"] == order.id
    assert payload["paymentMethod"] == "bank_transfer"
    assert payload["paymentProvider"] == "manual"
    assert payload["transactionId"] == manual_transaction_token(order.id)
    assert payload["depositorName"] == "Kim Minji"
    assert payload["metadata"]["operatorId"] == "operator-1"

    snap = crud.get_snapshot(session=db, order_id=order.id)
    assert snap is not None and snap.status == OrderStatus.completed


def test_confirm_deposit_requires_acknowledgement(client, functions, headers, order_factory):
    order = order_factory(status="awaiting_deposit", payment_method="bank_transfer")

    r = client.post(
        f"/api/v1/admin/orders/{order.id}/confirm-deposit", headers=headers, json={}
    )
    assert r.status_code == 400
    assert r.json()["code"] == 400201
    assert functions.calls == []


def test_confirm_deposit_rejects_card_and_paid_orders(client, functions, headers, order_factory):
    card = order_factory(status="pending", payment_method="card")
    paid = order_factory(status="processing", payment_method="bank_transfer", payment_status="paid")

    for order in (card, paid):
        r = client.post(
            f"/api/v1/admin/orders/{order.id}/confirm-deposit",
            headers=headers,
            json={"acknowledged": True},
        )
        assert r.status_code == 409
        assert r.json()["code"] == 409101
    assert functions.calls == []


def test_confirm_deposit_cash_charge_returns_refreshed_balance(
    client, db, functions, headers, order_factory, profile_factory
):
    profile = profile_factory(credits=1000)
    order = order_factory(
        user_id=profile.id,
        status="awaiting_deposit",
        payment_method="virtual_account",
        payment_status="awaiting_deposit",
        total_amount=5000,
        order_type="cash",
        items=0,
        order_metadata={"type": "cash_charge", "bonusAmount": 500},
    )

    r = client.post(
        f"/api/v1/admin/orders/{order.id}/confirm-deposit",
        headers=headers,
        json={"acknowledged": True, "transaction_id": "BANK-20260101-77"},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["cash_balance"] == 6500
    assert data["order"]["metadata"]["bonus_amount"] == 500
    assert functions.calls[0][1]["transactionId"] == "BANK-20260101-77"

    assert crud.get_cash_balance(session=db, user_id=profile.id) == 6500
    assert crud.ledger_sum(session=db, user_id=profile.id) == 5500  # seeded 1000 had no tx row


def test_confirm_deposit_external_failure_leaves_order_untouched(
    client, db, functions, headers, order_factory
):
    order = order_factory(status="awaiting_deposit", payment_method="bank_transfer")
    functions.fail_with = "Order already processed by webhook"

    r = client.post(
        f"/api/v1/admin/orders/{order.id}/confirm-deposit",
        headers=headers,
        json={"acknowledged": True},
    )
    assert r.status_code == 502
    body = r.json()
    assert body["code"] == 502101
    assert body["message"] == "Order already processed by webhook"

    snap = crud.get_snapshot(session=db, order_id=order.id)
    assert snap is not None and snap.raw_status == "awaiting_deposit"


def test_cancel_refunded_order_is_rejected_without_external_call(
    client, functions, headers, order_factory
):
    order = order_factory(status="refunded")

    r = client.post(f"/api/v1/admin/orders/{order.id}/cancel", headers=headers)
    assert r.status_code == 409
    assert r.json()["code"] == 409101
    assert functions.calls == []


def test_cancel_passes_expected_status(client, functions, headers, order_factory):
    order = order_factory(status="Awaiting-Deposit", payment_method="bank_transfer")

    r = client.post(f"/api/v1/admin/orders/{order.id}/cancel", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["order"]["status"] == "cancelled"
    assert functions.calls == [
        ("cancel", {"orderId": order.id, "doRefund": False, "expectedStatus": "Awaiting-Deposit"})
    ]


def test_refund_paid_order(client, functions, headers, order_factory):
    order = order_factory(status="payment_confirmed", total_amount=12000)

    r = client.post(f"/api/v1/admin/orders/{order.id}/refund", headers=headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["refund_amount"] == 12000
    assert data["order"]["status"] == "refunded"
    assert functions.calls[0][1]["doRefund"] is True


def test_refund_unpaid_order_rejected(client, functions, headers, order_factory):
    order = order_factory(status="awaiting_deposit", payment_method="bank_transfer")

    r = client.post(f"/api/v1/admin/orders/{order.id}/refund", headers=headers)
    assert r.status_code == 409
    assert functions.calls == []


def test_refund_zero_or_negative_amount_needs_confirmation(client, functions, headers, order_factory):
    order = order_factory(status="completed", total_amount=-300)

    r = client.post(f"/api/v1/admin/orders/{order.id}/refund", headers=headers)
    assert r.status_code == 400
    assert r.json()["code"] == 400301
    assert functions.calls == []

    r = client.post(
        f"/api/v1/admin/orders/{order.id}/refund",
        headers=headers,
        json={"confirm_zero_amount": True},
    )
    assert r.status_code == 200
    assert r.json()["data"]["refund_amount"] == 0


def test_force_complete(client, functions, headers, order_factory):
    order = order_factory(status="payment_confirmed")

    r = client.post(f"/api/v1/admin/orders/{order.id}/force-complete", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["order"]["status"] == "completed"

    r = client.post(f"/api/v1/admin/orders/{order.id}/force-complete", headers=headers)
    assert r.status_code == 409
    assert len(functions.calls) == 1


def test_unexpected_reported_status_is_an_error(client, functions, headers, order_factory):
    order = order_factory(status="pending")
    functions.reported_status = "pending"

    r = client.post(f"/api/v1/admin/orders/{order.id}/cancel", headers=headers)
    assert r.status_code == 502
    assert r.json()["code"] == 502401


def test_order_list_cache_is_invalidated_after_mutation(client, headers, order_factory):
    order = order_factory(status="payment_confirmed")

    r = client.get("/api/v1/admin/orders?status=payment_confirmed", headers=headers)
    assert r.json()["data"]["count"] == 1

    r = client.post(f"/api/v1/admin/orders/{order.id}/refund", headers=headers)
    assert r.status_code == 200

    r = client.get("/api/v1/admin/orders?status=payment_confirmed", headers=headers)
    assert r.json()["data"]["count"] == 0
    r = client.get("/api/v1/admin/orders?status=refunded", headers=headers)
    assert r.json()["data"]["data"][0]["id"] == order.id


def test_list_filters_by_canonical_status(client, headers, order_factory):
    order_factory(status="Processing")
    order_factory(status="in-progress")
    order_factory(status=None)
    order_factory(status="pending", order_type="cash", items=0)

    r = client.get("/api/v1/admin/orders?status=payment_confirmed", headers=headers)
    data = r.json()["data"]
    assert data["count"] == 2
    assert {o["raw_status"] for o in data["data"]} == {"Processing", "in-progress"}
    assert all(o["status"] == "payment_confirmed" for o in data["data"])

    r = client.get("/api/v1/admin/orders?status=pending", headers=headers)
    assert r.json()["data"]["count"] == 2

    r = client.get("/api/v1/admin/orders?order_type=cash", headers=headers)
    assert r.json()["data"]["count"] == 1

    r = client.get("/api/v1/admin/orders?page=1&page_size=3", headers=headers)
    data = r.json()["data"]
    assert data["count"] == 4
    assert len(data["data"]) == 3


def test_get_order_detail_and_not_found(client, headers, order_factory):
    order = order_factory(
        status="awaiting_deposit",
        payment_method="virtual_account",
        items=2,
        virtual_account_info={"bankName": "Shinhan", "accountNumber": "110-123-456789"},
    )

    r = client.get(f"/api/v1/admin/orders/{order.id}", headers=headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert len(data["items"]) == 2
    assert data["virtual_account_info"]["bank_name"] == "Shinhan"
    assert data["metadata"]["present"] is False

    r = client.get("/api/v1/admin/orders/missing", headers=headers)
    assert r.status_code == 404
    assert r.json()["code"] == 404101


def test_payment_note_keeps_history(client, headers, order_factory):
    order = order_factory(status="pending")

    client.post(
        f"/api/v1/admin/orders/{order.id}/note",
        headers=headers,
        json={"note": "Customer asked to cancel", "note_type": "cancel"},
    )
    r = client.post(f"/api/v1/admin/orders/{order.id}/note", headers=headers, json={})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["payment_note"].startswith("[unknown] No reason given (")
    notes = data["metadata"]["payment_notes"]
    assert [n["type"] for n in notes] == ["cancel", "unknown"]


def test_bulk_delete_leaves_ledger_untouched(client, db, headers, order_factory, profile_factory):
    profile = profile_factory(credits=0)
    crud.apply_cash_delta(
        session=db,
        user_id=profile.id,
        delta=3000,
        tx_type=CashTransactionType.charge,
        created_by=None,
    )
    orders = [order_factory(user_id=profile.id, status="completed") for _ in range(2)]
    tx = db.exec(select(CashTransaction)).one()
    tx.order_id = orders[0].id
    db.add(tx)
    db.commit()

    r = client.post(
        "/api/v1/admin/orders/bulk-delete",
        headers=headers,
        json={"order_ids": [o.id for o in orders] + ["missing"]},
    )
    assert r.status_code == 200
    assert r.json()["data"]["deleted"] == 2

    r = client.get("/api/v1/admin/orders", headers=headers)
    assert r.json()["data"]["count"] == 0

    rows = db.exec(select(CashTransaction)).all()
    assert len(rows) == 1
    assert rows[0].order_id == orders[0].id
    assert crud.get_cash_balance(session=db, user_id=profile.id) == 3000

    r = client.post("/api/v1/admin/orders/bulk-delete", headers=headers, json={"order_ids": []})
    assert r.status_code == 400


def test_admin_role_required(client, token_headers, order_factory):
    order = order_factory(status="pending")

    r = client.get("/api/v1/admin/orders", headers=token_headers(role="customer"))
    assert r.status_code == 403
    assert r.json()["code"] == 403000

    r = client.post(f"/api/v1/admin/orders/{order.id}/cancel", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401

    r = client.get("/api/v1/admin/orders")
    assert r.status_code in (401, 403)


def test_missing_reported_status_still_refreshes_list(client, functions, headers, order_factory):
    order = order_factory(status="pending")

    r = client.get("/api/v1/admin/orders?status=pending", headers=headers)
    assert r.json()["data"]["count"] == 1

    # The function cancels the row but answers without a status.
    functions.omit_status = True
    r = client.post(f"/api/v1/admin/orders/{order.id}/cancel", headers=headers)
    assert r.status_code == 502
    assert r.json()["code"] == 502401

    r = client.get("/api/v1/admin/orders?status=pending", headers=headers)
    assert r.json()["data"]["count"] == 0
    r = client.get("/api/v1/admin/orders?status=cancelled", headers=headers)
    assert [o["id"] for o in r.json()["data"]["data"]] == [order.id]


def test_store_failures_surface_as_external_errors(db, order_factory, monkeypatch):
    order = order_factory(status="pending")

    def _fail() -> None:
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "commit", _fail)

    with pytest.raises(ExternalCallError) as exc:
        crud.append_payment_note(session=db, order_id=order.id, note="late", note_type="error")
    assert exc.value.code == 502502
    assert "database is locked" in exc.value.message

    with pytest.raises(ExternalCallError) as exc:
        crud.bulk_delete(session=db, order_ids=[order.id])
    assert exc.value.code == 502503

    monkeypatch.undo()
    snap = crud.get_snapshot(session=db, order_id=order.id)
    assert snap is not None
    assert crud.get_order(session=db, order_id=order.id).payment_note is None  # type: ignore[union-attr]
