"""
FleetStock 错误处理系统
遵循 RFC7807 Problem Details 标准
"""
from typing import Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ProblemDetail(BaseModel):
    """RFC7807 Problem Details 模型"""
    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: Optional[str] = None
    instance: Optional[str] = None
    code: Optional[str] = None  # 业务错误码

    class Config:
        extra = "allow"
        json_schema_extra = {
            "example": {
                "type": "about:blank",
                "title": "Validation Failed",
                "status": 422,
                "detail": "cannot split 3 units from a partition holding 2",
                "code": "SPLIT_EXCEEDS_QUANTITY"
            }
        }


class FleetStockException(Exception):
    """FleetStock 基础异常类"""

    def __init__(
        self,
        status: int,
        code: str,
        title: str,
        detail: Optional[str] = None,
        **kwargs
    ):
        self.status = status
        self.code = code
        self.title = title
        self.detail = detail
        self.extra = kwargs
        super().__init__(detail or title)

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        """转换为 Problem Details 格式"""
        return ProblemDetail(
            type="about:blank",
            title=self.title,
            status=self.status,
            detail=self.detail,
            instance=instance,
            code=self.code,
            **self.extra
        )

    def to_response(self, request: Optional[Request] = None) -> JSONResponse:
        """转换为 JSON 响应"""
        instance = str(request.url) if request else None
        problem = self.to_problem_detail(instance)

        return JSONResponse(
            status_code=self.status,
            content={
                "ok": False,
                "error": problem.model_dump(exclude_none=True)
            }
        )


class NotFoundError(FleetStockException):
    """404 未找到"""
    def __init__(self, code: str, resource: str):
        super().__init__(
            status=404,
            code=code,
            title="Not Found",
            detail=f"{resource} not found"
        )


class ConflictError(FleetStockException):
    """409 冲突（并发修改）"""
    def __init__(self, code: str, detail: str):
        super().__init__(
            status=409,
            code=code,
            title="Conflict",
            detail=detail
        )


class ValidationError(FleetStockException):
    """422 验证失败"""
    def __init__(self, code: str, detail: str):
        super().__init__(
            status=422,
            code=code,
            title="Validation Failed",
            detail=detail
        )


class StoreError(FleetStockException):
    """503 文档存储不可用

    detail 保留底层异常的类型和原始消息，便于前端直接展示诊断信息
    """
    def __init__(self, code: str = "STORE_ERROR", detail: str = "Document store operation failed"):
        super().__init__(
            status=503,
            code=code,
            title="Store Unavailable",
            detail=detail
        )

    @classmethod
    def wrap(cls, operation: str, exc: BaseException) -> "StoreError":
        """包装底层异常"""
        return cls(detail=f"{operation} failed: {type(exc).__name__}: {exc}")
