"""
运营后台配置

所有配置项来自环境变量或项目根目录的 .env（pydantic-settings），
优先级：环境变量 > .env > 默认值。

分组：
- 基础：API 前缀、运营者 token 密钥、运行环境、CORS、Sentry
- 数据库：POSTGRES_* 拼出 SQLALCHEMY_DATABASE_URI
- 订单函数：外部完成 / 取消 / 强制完成函数的地址、密钥、超时
- 订单列表缓存与手动入账 token 命名空间
"""
import secrets
import uuid
import warnings
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    PostgresDsn,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    """CORS 源：接受逗号分隔字符串或 JSON 列表"""
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="../.env",  # backend/ 的上一级
        env_ignore_empty=True,
        extra="ignore",
    )

    API_V1_STR: str = "/api/v1"
    # 运营者 JWT 由外部认证服务签发，与本服务共享此密钥
    SECRET_KEY: str = secrets.token_urlsafe(32)
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    PROJECT_NAME: str = "Sheet Store Back Office"
    SENTRY_DSN: HttpUrl | None = None

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> PostgresDsn:
        return PostgresDsn.build(
            scheme="postgresql+psycopg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )

    ORDER_FUNCTIONS_BASE_URL: str = "http://localhost:54321/functions/v1"
    ORDER_FUNCTIONS_SERVICE_KEY: str | None = None  # Bearer
    # None 表示不设超时，慢调用会一直阻塞当前操作
    ORDER_FUNCTIONS_TIMEOUT_SECONDS: float | None = None

    # 写操作之后总会主动失效，TTL 只限制只读场景下的陈旧时间
    ORDER_LIST_CACHE_TTL_SECONDS: int = 30

    # 单次管理员调整的金额上限（最小货币单位）
    CASH_ADJUSTMENT_MAX_AMOUNT: int = 1_000_000_000

    MANUAL_TX_NAMESPACE: uuid.UUID = uuid.UUID("6f1c2a52-8d0e-4b8e-9a57-3f0b5d1e7c21")

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        # "changethis" 在本地只警告，其他环境直接拒绝启动
        if value != "changethis":
            return
        message = (
            f'{var_name} is still "changethis"; set a real value before deploying.'
        )
        if self.ENVIRONMENT == "local":
            warnings.warn(message, stacklevel=1)
        else:
            raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        for name in ("SECRET_KEY", "POSTGRES_PASSWORD", "ORDER_FUNCTIONS_SERVICE_KEY"):
            self._check_default_secret(name, getattr(self, name))
        return self


settings = Settings()  # type: ignore
