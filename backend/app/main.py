"""
FastAPI 应用主入口

负责：
1. 创建 FastAPI 应用实例
2. 配置全局中间件（CORS、Sentry）
3. 注册全局异常处理器（统一 {code, message, data} 响应）
4. 注册运营后台 API 路由

运行方式：
    uvicorn app.main:app --reload
"""
from typing import Any

import sentry_sdk
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from app.api.errors import AppError
from app.api.main import api_router
from app.core.config import settings


def custom_generate_unique_id(route: APIRoute) -> str:
    """OpenAPI 操作 ID：{tag}-{route_name}，如 "admin-orders-refund" """
    if not route.tags:
        return route.name
    return f"{route.tags[0]}-{route.name}"


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":  # pragma: no cover
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
)


def _envelope(status_code: int, code: Any, message: str, data: Any = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": code, "message": message, "data": data},
    )


@app.exception_handler(AppError)
async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
    """
    业务异常处理器

    ValidationError / NotFoundError / StaleStateError / ExternalCallError
    都在这里转换为统一响应；余额不足时 data 带上当前余额和所需金额。
    """
    return _envelope(exc.status_code, exc.code, exc.message, exc.data)


@app.exception_handler(HTTPException)
async def http_error_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """
    HTTP 异常处理器

    detail 为 {"code", "message"} 字典时原样使用，
    否则按 状态码 * 1000 生成错误码（如 401 -> 401000）。
    """
    if isinstance(exc.detail, dict) and {"code", "message"} <= set(exc.detail.keys()):
        return _envelope(exc.status_code, exc.detail.get("code"), str(exc.detail.get("message")))
    return _envelope(exc.status_code, exc.status_code * 1000, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    # 请求体 / 查询参数校验失败，data.errors 为 pydantic 的错误列表
    return _envelope(422, 422000, "Validation error", {"errors": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    errors = []
    for err in exc.errors():
        # ctx 里可能带有异常对象（如 Decimal 校验），只保留可序列化字段
        errors.append({k: v for k, v in err.items() if k in ("type", "loc", "msg")})
    return errors


if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)
