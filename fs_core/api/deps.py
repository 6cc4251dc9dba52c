"""
API 依赖注入
"""
from typing import Optional

from fastapi import Depends

from fs_core.config import get_settings
from fs_core.database import get_db_manager
from fs_core.document_store import DocumentStore, InMemoryDocumentStore, SqlDocumentStore
from fs_core.event_bus import get_event_bus
from fs_core.services import ReconciliationService

# 内存后端在进程内共享
_memory_store: Optional[InMemoryDocumentStore] = None


def get_document_store() -> DocumentStore:
    """按配置选择文档存储后端"""
    global _memory_store
    settings = get_settings()
    if settings.document_store == "memory":
        if _memory_store is None:
            _memory_store = InMemoryDocumentStore()
        return _memory_store
    return SqlDocumentStore(get_db_manager())


async def get_reconciliation_service(
    store: DocumentStore = Depends(get_document_store),
) -> ReconciliationService:
    """依赖注入：获取对账服务"""
    settings = get_settings()
    event_bus = get_event_bus() if settings.event_bus_enabled else None
    return ReconciliationService(store, event_bus)
