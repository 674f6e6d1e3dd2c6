"""
FastAPI 依赖注入模块

提供可复用的依赖项，用于路由处理函数中：
- SessionDep: 每个请求一个数据库会话
- CurrentOperator: 从 Bearer token 解析的运营者（必须是 admin）
- 订单服务（外部函数客户端 + 订单列表缓存）
"""
from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError
from sqlmodel import Session

from app.api.schemas import TokenPayload
from app.core import security
from app.core.db import engine
from app.integrations.order_functions import OrderFunctionsClient, get_order_functions
from app.services.order_cache import OrderListCache, order_list_cache
from app.services.payment_confirmation import PaymentConfirmationService
from app.services.refund_cancel import RefundCancelCoordinator

# 从请求头的 Authorization: Bearer <token> 中提取 token
reusable_oauth2 = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    """
    获取数据库会话（依赖注入）

    使用 yield 确保会话在请求结束后自动关闭。
    """
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]
TokenDep = Annotated[HTTPAuthorizationCredentials, Depends(reusable_oauth2)]


def get_current_operator(token: TokenDep) -> security.Operator:
    """
    获取当前运营者（依赖注入）

    Raises:
        HTTPException: token 无效时 401，非管理员 403
    """
    try:
        payload = security.decode_access_token(token.credentials)
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    if not token_data.sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    operator = security.Operator(id=token_data.sub, email=token_data.email, role=token_data.role)
    if not operator.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return operator


CurrentOperator = Annotated[security.Operator, Depends(get_current_operator)]


def get_order_cache() -> OrderListCache:
    return order_list_cache


OrderFunctionsDep = Annotated[OrderFunctionsClient, Depends(get_order_functions)]
OrderCacheDep = Annotated[OrderListCache, Depends(get_order_cache)]


def get_payment_confirmation(
    functions: OrderFunctionsDep, cache: OrderCacheDep
) -> PaymentConfirmationService:
    return PaymentConfirmationService(functions=functions, cache=cache)


def get_refund_cancel(functions: OrderFunctionsDep, cache: OrderCacheDep) -> RefundCancelCoordinator:
    return RefundCancelCoordinator(functions=functions, cache=cache)


PaymentConfirmationDep = Annotated[PaymentConfirmationService, Depends(get_payment_confirmation)]
RefundCancelDep = Annotated[RefundCancelCoordinator, Depends(get_refund_cancel)]
