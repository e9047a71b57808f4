"""Exception handlers for the link API.

ApplicationError 按 category 映射状态码，响应体统一为 ErrorResponse:
- ValidationError / 请求体或查询参数格式错误 -> 400
- LinkNotFoundError -> 404
- StorageError / 其他 -> 500
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.schemas.common import ErrorResponse
from domains.core import ApplicationError

logger = logging.getLogger(__name__)


def _error_response(status_code: int, error: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error.model_dump(mode="json"))


def register_exception_handlers(app: FastAPI) -> None:
    """注册 ApplicationError、请求校验错误和兜底异常的处理器"""

    @app.exception_handler(ApplicationError)
    async def application_error_handler(request: Request, exc: ApplicationError) -> JSONResponse:
        status_code = exc.http_status_code
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} 失败: {exc}", exc_info=exc.cause)
        else:
            logger.warning(f"{request.method} {request.url.path} 被拒绝: {exc}")

        return _error_response(status_code, ErrorResponse(
            error=exc.message,
            code=exc.code,
            details=exc.details,
        ))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())[1:]) or None,
                "message": error.get("msg", ""),
            }
            for error in exc.errors()
        ]
        logger.warning(f"{request.method} {request.url.path} 参数无效: {errors}")

        return _error_response(400, ErrorResponse(
            error="请求参数无效",
            code="VALIDATION_ERROR",
            details={"validation_errors": errors},
        ))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"{request.method} {request.url.path} 未处理异常: {type(exc).__name__}: {exc}")

        return _error_response(500, ErrorResponse(
            error=f"Internal server error: {type(exc).__name__}",
            code="INTERNAL_ERROR",
        ))


__all__ = [
    "register_exception_handlers",
]
