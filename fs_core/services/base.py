"""
基础服务类
"""
from typing import TypeVar, Generic, Optional, Dict, Any, Awaitable, Callable
from dataclasses import dataclass

from fs_core.config import get_settings
from fs_core.document_store import DocumentStore
from fs_core.utils.logger import get_logger
from fs_core.utils.errors import ConflictError

T = TypeVar('T')


@dataclass
class ServiceResult(Generic[T]):
    """服务执行结果"""
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> "ServiceResult[T]":
        """成功结果"""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def error(cls, error: str, error_code: Optional[str] = None) -> "ServiceResult[T]":
        """失败结果"""
        return cls(success=False, error=error, error_code=error_code)


class BaseService:
    """基础服务类"""

    def __init__(self, store: DocumentStore, event_bus=None):
        self.settings = get_settings()
        self.store = store
        self.event_bus = event_bus
        self.logger = get_logger(self.__class__.__name__)

    async def execute_with_conflict_retry(
        self,
        operation: Callable[..., Awaitable[T]],
        *args,
        retries: int = 0,
        **kwargs
    ) -> T:
        """遇到版本冲突时重新执行整个读-改-写操作，最多重试 retries 次"""
        attempt = 0
        while True:
            try:
                return await operation(*args, **kwargs)
            except ConflictError:
                if attempt >= retries:
                    raise
                attempt += 1
                self.logger.warning(
                    "Concurrent modification detected, retrying",
                    operation=operation.__name__,
                    attempt=attempt,
                )

    async def publish_event(self, topic: str, payload: Dict[str, Any]) -> None:
        """发布事件；失败只记录日志，不影响主流程"""
        if self.event_bus is None:
            return
        try:
            await self.event_bus.publish(topic, payload, key=payload.get("item_id"))
        except Exception:
            self.logger.error("Failed to publish event", topic=topic, exc_info=True)
