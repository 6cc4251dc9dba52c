"""
请求日志中间件

为每个入站请求绑定 trace_id / portal / user_id 日志上下文，并记录耗时和状态码。
portal 区分管理端（admin）和司机端（driver）的调用。
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from fs_core.utils.logger import get_logger, log_context


# 不记录日志的路径
SKIP_LOG_PATHS = {
    "/healthz",
    "/favicon.ico",
}

TRACE_HEADER = "X-Trace-Id"
PORTAL_HEADER = "X-Portal"
USER_HEADER = "X-User-Id"


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求日志中间件"""

    def __init__(self, app, logger=None):
        super().__init__(app)
        self.logger = logger or get_logger("middleware.logging")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # 上游已经带了 trace_id 就沿用
        trace_id = request.headers.get(TRACE_HEADER) or str(uuid.uuid4())
        request.state.trace_id = trace_id

        method = request.method
        path = request.url.path
        skip = path in SKIP_LOG_PATHS
        start_time = time.time()

        with log_context(
            trace_id=trace_id,
            portal=request.headers.get(PORTAL_HEADER),
            user_id=request.headers.get(USER_HEADER),
        ):
            if not skip:
                self.logger.info(
                    "API request",
                    direction="inbound",
                    method=method,
                    path=path,
                    client_ip=self._get_client_ip(request),
                )

            try:
                response = await call_next(request)
            except Exception as e:
                self.logger.error(
                    "API request failed",
                    direction="inbound",
                    method=method,
                    path=path,
                    latency_ms=int((time.time() - start_time) * 1000),
                    result="error",
                    err=str(e),
                    exc_info=True
                )
                raise

            if not skip:
                resp_log_data = {
                    "direction": "inbound",
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "latency_ms": int((time.time() - start_time) * 1000),
                    "result": "success" if response.status_code < 400 else "error",
                }
                if response.status_code >= 400:
                    self.logger.warning("API response error", **resp_log_data)
                else:
                    self.logger.info("API response", **resp_log_data)

            response.headers[TRACE_HEADER] = trace_id
            return response

    def _get_client_ip(self, request: Request) -> str:
        """获取客户端 IP"""
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"
