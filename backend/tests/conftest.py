from __future__ import annotations

from collections.abc import Generator
from datetime import timedelta
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, delete

from app import crud
from app.api.deps import get_db
from app.api.errors import ExternalCallError
from app.core import security
from app.enums import CashTransactionType
from app.integrations.order_functions import (
    CompletionRequest,
    FunctionResult,
    OrderFunctionsClient,
    get_order_functions,
)
from app.main import app
from app.models import CashTransaction, Order, OrderItem, Profile, utc_now
from app.services.order_cache import order_list_cache


class FakeOrderFunctions(OrderFunctionsClient):
    """
    In-process stand-in for the hosted order functions.

    Applies the same row changes the real functions make, records every call,
    and can be switched to fail with a given error message.
    """

    def __init__(self, engine) -> None:  # type: ignore[no-untyped-def]
        super().__init__(base_url="http://functions.test", service_key="test")
        self._engine = engine
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_with: str | None = None
        self.reported_status: str | None = None
        # apply the row change but leave status out of the response
        self.omit_status = False

    def _maybe_fail(self, code: int) -> None:
        if self.fail_with:
            raise ExternalCallError(self.fail_with, code=code)

    def _set_status(self, order_id: str, status: str, **fields: Any) -> Order:
        with Session(self._engine) as session:
            order = session.get(Order, order_id)
            assert order is not None
            order.status = status
            for key, value in fields.items():
                setattr(order, key, value)
            order.updated_at = utc_now()
            session.add(order)
            session.commit()
            session.refresh(order)
            return order

    def complete_order_after_payment(self, request: CompletionRequest) -> FunctionResult:
        self.calls.append(("complete", request.to_payload()))
        self._maybe_fail(502101)
        order = self._set_status(
            request.order_id,
            "completed",
            payment_status="paid",
            transaction_id=request.transaction_id,
            depositor_name=request.depositor_name,
            payment_confirmed_at=request.payment_confirmed_at,
        )
        if order.order_type == "cash":
            with Session(self._engine) as session:
                bonus = int((order.order_metadata or {}).get("bonusAmount") or 0)
                crud.apply_cash_delta(
                    session=session,
                    user_id=order.user_id,
                    delta=order.total_amount,
                    bonus_amount=bonus,
                    tx_type=CashTransactionType.charge,
                    created_by=None,
                    order_id=order.id,
                )
        return FunctionResult(status="completed", raw={"success": True})

    def cancel_order(
        self, *, order_id: str, do_refund: bool, expected_status: str | None = None
    ) -> FunctionResult:
        self.calls.append(
            ("cancel", {"orderId": order_id, "doRefund": do_refund, "expectedStatus": expected_status})
        )
        self._maybe_fail(502201)
        status = self.reported_status or ("refunded" if do_refund else "cancelled")
        self._set_status(order_id, status)
        return FunctionResult(status=None if self.omit_status else status, raw={"success": True})

    def force_complete_order(
        self, *, order_id: str, expected_status: str | None = None
    ) -> FunctionResult:
        self.calls.append(("force_complete", {"orderId": order_id, "expectedStatus": expected_status}))
        self._maybe_fail(502301)
        status = self.reported_status or "completed"
        self._set_status(order_id, status)
        return FunctionResult(status=None if self.omit_status else status, raw={"success": True})


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        # Clean tables after each test (children first).
        session.rollback()
        session.exec(delete(OrderItem))
        session.exec(delete(Order))
        session.exec(delete(CashTransaction))
        session.exec(delete(Profile))
        session.commit()


@pytest.fixture(scope="function")
def functions(engine) -> FakeOrderFunctions:
    return FakeOrderFunctions(engine)


@pytest.fixture(scope="function")
def client(engine, functions) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_order_functions] = lambda: functions
    order_list_cache.invalidate()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    order_list_cache.invalidate()


def admin_headers(operator_id: str = "operator-1", role: str | None = "admin") -> dict[str, str]:
    token = security.create_access_token(
        operator_id, timedelta(minutes=5), email=f"{operator_id}@example.com", role=role
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers() -> dict[str, str]:
    return admin_headers()


def make_profile(db: Session, *, credits: int = 0, user_id: str | None = None) -> Profile:
    profile = Profile(credits=credits, email="user@example.com")
    if user_id:
        profile.id = user_id
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def make_order(
    db: Session,
    *,
    user_id: str = "user-1",
    status: str | None = "pending",
    payment_method: str | None = "card",
    payment_status: str | None = None,
    total_amount: int = 10000,
    order_type: str | None = "product",
    items: int = 1,
    **fields: Any,
) -> Order:
    order = Order(
        user_id=user_id,
        status=status,
        payment_method=payment_method,
        payment_status=payment_status,
        total_amount=total_amount,
        order_type=order_type,
        **fields,
    )
    db.add(order)
    db.commit()
    db.refresh(order)
    for i in range(items):
        db.add(
            OrderItem(
                order_id=order.id,
                sheet_id=f"sheet-{i}",
                sheet_title=f"Nocturne No.{i + 1}",
                price=total_amount // max(items, 1),
            )
        )
    db.commit()
    return order


@pytest.fixture
def order_factory(db):  # type: ignore[no-untyped-def]
    def _make(**kwargs: Any) -> Order:
        return make_order(db, **kwargs)

    return _make


@pytest.fixture
def profile_factory(db):  # type: ignore[no-untyped-def]
    def _make(**kwargs: Any) -> Profile:
        return make_profile(db, **kwargs)

    return _make


@pytest.fixture
def token_headers():  # type: ignore[no-untyped-def]
    return admin_headers
