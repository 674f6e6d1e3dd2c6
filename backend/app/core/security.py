"""
运营者身份

运营者 token 由外部认证服务签发（HS256，共享 SECRET_KEY）。
这里只负责解析 token 并给出运营者身份；测试和本地脚本用
create_access_token 生成 token。
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from app.core.config import settings

ALGORITHM = "HS256"
ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Operator:
    """
    当前运营者

    id 会写入每条管理员流水的 created_by，以及订单完成函数的审计元数据。
    """
    id: str
    email: str | None = None
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def create_access_token(
    subject: str | Any,
    expires_delta: timedelta,
    *,
    email: str | None = None,
    role: str | None = ADMIN_ROLE,
) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode: dict[str, Any] = {"exp": expire, "sub": str(subject)}
    if email:
        to_encode["email"] = email
    if role:
        to_encode["role"] = role
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """解析 token，失败时抛出 jwt.InvalidTokenError"""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
