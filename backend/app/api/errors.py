"""
自定义异常模块

定义应用特定的异常类，用于统一的错误处理。
所有业务异常都继承自 AppError，在 main.py 中有统一的异常处理器。

错误分类：
- ValidationError: 运营者输入错误，在任何网络 / 数据库调用之前拒绝
- NotFoundError: 记录不存在
- StaleStateError: 重新读取到的最新状态不再满足操作前提，在写入前拒绝
- ExternalCallError: 数据库写入或外部函数调用本身失败，原样返回外部错误

所有失败都不会自动重试，需要运营者重新发起。
"""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    """
    应用自定义异常类

    用于业务逻辑中的错误处理，包含：
    - code: 业务错误码（用于前端区分不同错误）
    - message: 错误消息
    - status_code: HTTP 状态码（400, 404, 500 等）

    使用示例：
        raise AppError(code=409201, message="Insufficient credits", status_code=409)
    """

    def __init__(self, *, code: int, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.data: dict[str, Any] | None = None


class ValidationError(AppError):
    """运营者输入不合法（金额非正整数、缺少确认标记等）"""

    def __init__(self, message: str, *, code: int = 400001) -> None:
        super().__init__(code=code, message=message, status_code=400)


class NotFoundError(AppError):
    def __init__(self, message: str, *, code: int = 404001) -> None:
        super().__init__(code=code, message=message, status_code=404)


class StaleStateError(AppError):
    """
    状态已过期

    重新读取的订单 / 余额状态不满足操作前提（已是终态、支付方式不符、
    并发会话已修改等）。抛出时保证没有发生任何写入。
    """

    def __init__(self, message: str, *, code: int = 409001) -> None:
        super().__init__(code=code, message=message, status_code=409)


class InsufficientCreditError(StaleStateError):
    def __init__(self, *, current: int, required: int) -> None:
        super().__init__(
            f"Insufficient credits: balance {current}, requested {required}",
            code=409201,
        )
        self.current = current
        self.required = required
        self.data = {"current": current, "required": required}


class ExternalCallError(AppError):
    """
    外部调用失败

    message 原样携带外部函数返回的错误，不做包装，也不自动重试。
    """

    def __init__(self, message: str, *, code: int = 502001, status_code: int = 502) -> None:
        super().__init__(code=code, message=message, status_code=status_code)


def insufficient_credits(*, current: int, required: int) -> InsufficientCreditError:
    """
    创建"余额不足"异常（便捷函数）

    使用示例：
        if balance < amount:
            raise insufficient_credits(current=balance, required=amount)
    """
    return InsufficientCreditError(current=current, required=required)
