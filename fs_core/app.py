"""
FleetStock FastAPI 主应用
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from fs_core import __version__
from fs_core.config import get_settings
from fs_core.utils.logger import setup_logging, get_logger
from fs_core.utils.errors import FleetStockException
from fs_core.database import get_db_manager
from fs_core.event_bus import get_event_bus
from fs_core.middleware.logging import LoggingMiddleware
from fs_core.api import api_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    settings = get_settings()

    logger.info("Starting FleetStock application", version=__version__,
                document_store=settings.document_store)

    db_manager = None
    event_bus = None
    try:
        if settings.document_store == "sql":
            db_manager = get_db_manager()
            db_healthy = await db_manager.check_connection()
            if not db_healthy:
                logger.error("Database connection check failed")
                raise RuntimeError("Database connection failed")

        if settings.event_bus_enabled:
            event_bus = get_event_bus()
            await event_bus.initialize()

        logger.info("FleetStock application started successfully")

    except Exception:
        logger.error("Failed to start application", exc_info=True)
        raise

    yield  # 应用运行期间

    logger.info("Shutting down FleetStock application")

    try:
        if event_bus is not None:
            await event_bus.shutdown()

        if db_manager is not None:
            await db_manager.close()

        logger.info("FleetStock application shutdown complete")

    except Exception:
        logger.error("Error during application shutdown", exc_info=True)


def create_app() -> FastAPI:
    """创建 FastAPI 应用"""
    settings = get_settings()

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        enable_pii_masking=settings.log_pii_masking,
    )

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="FleetStock inventory location and condition reconciliation API",
        docs_url="/docs" if settings.api_debug else None,
        redoc_url="/redoc" if settings.api_debug else None,
        lifespan=lifespan,
        openapi_url="/openapi.json" if settings.api_debug else None
    )

    # 开发模式允许所有来源
    allowed_origins = ["*"] if settings.api_debug else settings.cors_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.exception_handler(FleetStockException)
    async def fleetstock_exception_handler(request: Request, exc: FleetStockException):
        """处理 FleetStock 自定义异常"""
        if exc.status >= 500:
            logger.error("Request failed", code=exc.code, detail=exc.detail)
        return exc.to_response(request)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理 Pydantic 验证异常"""
        logger.warning("Request validation failed", path=request.url.path, errors=jsonable_errors(exc))
        return JSONResponse(
            status_code=422,
            content={
                "ok": False,
                "error": {
                    "type": "about:blank",
                    "title": "Validation Error",
                    "status": 422,
                    "detail": "Request validation failed",
                    "code": "VALIDATION_ERROR",
                    "validation_errors": jsonable_errors(exc),
                }
            }
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """处理 FastAPI HTTP 异常"""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "ok": False,
                "error": {
                    "type": "about:blank",
                    "title": exc.detail,
                    "status": exc.status_code,
                    "detail": exc.detail,
                    "code": f"HTTP_{exc.status_code}"
                }
            }
        )

    @app.exception_handler(500)
    async def internal_server_error_handler(request: Request, exc: Exception):
        """处理未捕获的服务器错误"""
        logger.error("Unhandled server error", exc_info=True)

        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": {
                    "type": "about:blank",
                    "title": "Internal Server Error",
                    "status": 500,
                    "detail": "An internal server error occurred",
                    "code": "INTERNAL_SERVER_ERROR"
                }
            }
        )

    @app.get("/healthz")
    async def health_check():
        """健康检查端点"""
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """pydantic 错误里的 ctx 可能包含异常对象，只保留可序列化字段"""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


# 创建应用实例
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "fs_core.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
        log_level=settings.log_level.lower(),
        access_log=False,  # 使用自定义日志中间件
    )
