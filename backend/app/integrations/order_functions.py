"""
外部订单函数集成模块

封装三个由托管后端提供的订单函数：
- orders/complete: 订单完成（标记已支付、余额充值入账、开放下载）
- cancel-order: 取消订单，可选退款
- complete-order: 强制完成（仅用于人工异常处理）

这些函数的副作用对本服务是不透明的。调用失败时原样返回函数给出的错误，
不自动重试；超时由 ORDER_FUNCTIONS_TIMEOUT_SECONDS 控制（默认不设超时）。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from app.api.errors import ExternalCallError
from app.core.config import settings

logger = logging.getLogger(__name__)

_ORDER_COMPLETION_PATH = "/orders/complete"
_CANCEL_ORDER_PATH = "/cancel-order"
_COMPLETE_ORDER_PATH = "/complete-order"


@dataclass(frozen=True)
class CompletionRequest:
    """订单完成函数的请求参数"""
    order_id: str
    payment_method: str
    transaction_id: str
    payment_confirmed_at: datetime
    payment_provider: str = "manual"
    depositor_name: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "orderId": self.order_id,
            "paymentMethod": self.payment_method,
            "transactionId": self.transaction_id,
            "paymentConfirmedAt": self.payment_confirmed_at.isoformat(),
            "depositorName": self.depositor_name,
            "paymentProvider": self.payment_provider,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class FunctionResult:
    """
    外部函数调用结果

    status 为函数报告的订单状态（取消 / 强制完成时返回）。
    """
    status: str | None = None
    message: str | None = None
    raw: dict[str, Any] | None = None


def _error_text(data: Any, fallback: str) -> str:
    # 优先使用函数自己返回的错误描述
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict):
            err = err.get("message")
        details = data.get("details")
        if err and details:
            return f"{err}: {details}"
        if err:
            return str(err)
        if details:
            return str(details)
    return fallback


class OrderFunctionsClient:
    """
    订单函数 HTTP 客户端

    所有请求都是 POST JSON，使用服务端密钥作为 Bearer token。
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        service_key: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or settings.ORDER_FUNCTIONS_BASE_URL).rstrip("/")
        self._service_key = service_key if service_key is not None else settings.ORDER_FUNCTIONS_SERVICE_KEY
        self._timeout = timeout if timeout is not None else settings.ORDER_FUNCTIONS_TIMEOUT_SECONDS

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._service_key:
            headers["Authorization"] = f"Bearer {self._service_key}"
        return headers

    def _post(self, path: str, payload: dict[str, Any], *, code: int) -> dict[str, Any]:
        """
        发送请求并解析响应

        Raises:
            ExternalCallError: 网络错误、非 2xx 响应或 success=false 时，
                               message 为函数返回的原始错误
        """
        url = f"{self._base_url}{path}"
        try:
            with httpx.Client(timeout=self._timeout) as client:
                r = client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Order function {path} unreachable: {e}")
            raise ExternalCallError(str(e), code=code)

        try:
            data = r.json()
        except ValueError:
            data = None

        if r.status_code >= 400:
            message = _error_text(data, r.text or f"HTTP {r.status_code}")
            logger.error(f"Order function {path} failed: {r.status_code} {message}")
            raise ExternalCallError(message, code=code)

        if not isinstance(data, dict):
            raise ExternalCallError(f"Invalid response from {path}", code=code + 1)

        if data.get("success") is False:
            message = _error_text(data, f"{path} reported failure")
            logger.error(f"Order function {path} reported failure: {message}")
            raise ExternalCallError(message, code=code)

        return data

    def complete_order_after_payment(self, request: CompletionRequest) -> FunctionResult:
        """调用订单完成函数（手动入账确认使用）"""
        data = self._post(_ORDER_COMPLETION_PATH, request.to_payload(), code=502101)
        return FunctionResult(
            status=data.get("status"),
            message=data.get("message"),
            raw=data,
        )

    def cancel_order(
        self, *, order_id: str, do_refund: bool, expected_status: str | None = None
    ) -> FunctionResult:
        """
        调用取消函数

        Args:
            order_id: 订单 ID
            do_refund: True 表示退款，False 表示仅取消
            expected_status: 调用方读取到的原始状态，函数可据此做条件更新
        """
        payload = {"orderId": order_id, "doRefund": do_refund, "expectedStatus": expected_status}
        data = self._post(_CANCEL_ORDER_PATH, payload, code=502201)
        return FunctionResult(status=data.get("status"), message=data.get("message"), raw=data)

    def force_complete_order(
        self, *, order_id: str, expected_status: str | None = None
    ) -> FunctionResult:
        """调用强制完成函数"""
        payload = {"orderId": order_id, "expectedStatus": expected_status}
        data = self._post(_COMPLETE_ORDER_PATH, payload, code=502301)
        return FunctionResult(status=data.get("status"), message=data.get("message"), raw=data)


_client: OrderFunctionsClient | None = None


def get_order_functions() -> OrderFunctionsClient:
    """获取全局订单函数客户端（首次调用时按配置创建）"""
    global _client
    if _client is None:
        _client = OrderFunctionsClient()
    return _client
