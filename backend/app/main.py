"""FastAPI application entry point."""

import time
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.core.config import settings
from app.core.events import create_start_handler, create_stop_handler
from app.core.exceptions import register_exception_handlers
from app.routes.v1.router import api_router
from domains.core.logging import bind_request_context, clear_request_context, configure_logging, get_logger

configure_logging(service_name="eln-links-api")
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    请求日志中间件

    沿用调用方传入的 X-Request-ID（没有则生成），绑定到日志上下文并回写到响应头，
    同一请求在服务层和存储层的日志可以按 request_id 串起来。
    """

    SKIP_PATHS = ("/health", "/docs", "/redoc", "/favicon.ico", f"{settings.API_V1_STR}/openapi.json")

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path.startswith(self.SKIP_PATHS):
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:8]
        bind_request_context(request_id, method=request.method, path=request.url.path)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "http_request_error",
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
                error_type=type(e).__name__,
                error=str(e),
            )
            raise
        else:
            logger.info(
                "http_request",
                query=str(request.query_params),
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_request_context()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """启动时创建关联服务，关闭时释放数据库连接"""
    await create_start_handler()()
    yield
    await create_stop_handler()()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="电子实验记录本实体关联 REST API",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    # 后添加的中间件先执行
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(api_router, prefix=settings.API_V1_STR)
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": settings.VERSION}

    return app


app = create_application()


def run():
    """命令行启动 API 服务"""
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    run()
