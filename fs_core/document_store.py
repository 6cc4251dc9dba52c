"""
FleetStock 文档存储

对账引擎只通过这里读写文档：
- get_item / update_item（浅合并 + 可选版本校验）/ add_item / query
- 每个文档带 version，每次写入 +1；expected_version 不一致时抛出 ConflictError

实现：
- SqlDocumentStore: PostgreSQL JSONB（documents 表）
- InMemoryDocumentStore: 进程内存，用于开发和测试
"""
import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from fs_core.database import DatabaseManager
from fs_core.models.documents import Document
from fs_core.utils.errors import ConflictError, NotFoundError, StoreError
from fs_core.utils.logger import get_logger

logger = get_logger(__name__)

# 由存储层维护，不能通过 update_item 写入
RESERVED_FIELDS = ("id", "version")


def _new_id() -> str:
    return uuid.uuid4().hex


def _strip_reserved(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in RESERVED_FIELDS}


def _conflict(collection: str, doc_id: str, expected: int, actual: int) -> ConflictError:
    return ConflictError(
        code="DOCUMENT_VERSION_CONFLICT",
        detail=f"{collection}/{doc_id} was modified concurrently "
               f"(expected version {expected}, found {actual}); re-read and retry"
    )


class DocumentStore(ABC):
    """文档存储接口"""

    @abstractmethod
    async def get_item(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """读取文档，返回包含 id 和 version 的字典；不存在返回 None"""

    @abstractmethod
    async def update_item(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        """浅合并 fields 到文档，返回新版本号"""

    @abstractmethod
    async def add_item(self, collection: str, fields: Dict[str, Any]) -> str:
        """创建文档，返回文档ID"""

    @abstractmethod
    async def query(self, collection: str, filters: Dict[str, str]) -> List[Dict[str, Any]]:
        """按顶层字符串字段做等值过滤"""

    async def query_incidents(self, filters: Dict[str, str], collection: str = "incidents") -> List[Dict[str, Any]]:
        return await self.query(collection, filters)

    async def list_items(self, collection: str) -> List[Dict[str, Any]]:
        return await self.query(collection, {})


class InMemoryDocumentStore(DocumentStore):
    """内存文档存储"""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._versions: Dict[str, Dict[str, int]] = {}
        self._lock = asyncio.Lock()

    def _snapshot(self, collection: str, doc_id: str) -> Dict[str, Any]:
        data = copy.deepcopy(self._collections[collection][doc_id])
        return {**data, "id": doc_id, "version": self._versions[collection][doc_id]}

    async def get_item(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            if doc_id not in self._collections.get(collection, {}):
                return None
            return self._snapshot(collection, doc_id)

    async def update_item(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        async with self._lock:
            docs = self._collections.get(collection, {})
            if doc_id not in docs:
                raise NotFoundError(code="DOCUMENT_NOT_FOUND", resource=f"{collection}/{doc_id}")

            current = self._versions[collection][doc_id]
            if expected_version is not None and current != expected_version:
                raise _conflict(collection, doc_id, expected_version, current)

            docs[doc_id].update(copy.deepcopy(_strip_reserved(fields)))
            self._versions[collection][doc_id] = current + 1
            return current + 1

    async def add_item(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        async with self._lock:
            doc_id = doc_id or _new_id()
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(_strip_reserved(fields))
            self._versions.setdefault(collection, {})[doc_id] = 1
            return doc_id

    async def query(self, collection: str, filters: Dict[str, str]) -> List[Dict[str, Any]]:
        async with self._lock:
            docs = self._collections.get(collection, {})
            return [
                self._snapshot(collection, doc_id)
                for doc_id, data in docs.items()
                if all(data.get(key) == value for key, value in filters.items())
            ]


class SqlDocumentStore(DocumentStore):
    """PostgreSQL 文档存储

    条件写入：事务内 SELECT ... FOR UPDATE 读取当前版本，校验后写回
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    async def get_item(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            async with self.db_manager.read_session() as session:
                doc = await session.get(Document, (collection, doc_id))
                return copy.deepcopy(doc.to_document()) if doc else None
        except SQLAlchemyError as e:
            logger.error("Document read failed", collection=collection, doc_id=doc_id, exc_info=True)
            raise StoreError.wrap(f"get {collection}/{doc_id}", e)

    async def update_item(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        try:
            async with self.db_manager.transaction() as session:
                doc = await session.get(Document, (collection, doc_id), with_for_update=True)
                if doc is None:
                    raise NotFoundError(code="DOCUMENT_NOT_FOUND", resource=f"{collection}/{doc_id}")
                if expected_version is not None and doc.version != expected_version:
                    raise _conflict(collection, doc_id, expected_version, doc.version)

                # 重新赋值整个字典，JSON 列才会被标记为已修改
                doc.data = {**doc.data, **_strip_reserved(fields)}
                doc.version = doc.version + 1
                doc.updated_at = datetime.now(timezone.utc)
                return doc.version
        except SQLAlchemyError as e:
            logger.error("Document update failed", collection=collection, doc_id=doc_id, exc_info=True)
            raise StoreError.wrap(f"update {collection}/{doc_id}", e)

    async def add_item(self, collection: str, fields: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or _new_id()
        try:
            async with self.db_manager.transaction() as session:
                session.add(Document(
                    collection=collection,
                    id=doc_id,
                    data=_strip_reserved(fields),
                    version=1,
                ))
            return doc_id
        except SQLAlchemyError as e:
            logger.error("Document insert failed", collection=collection, exc_info=True)
            raise StoreError.wrap(f"add {collection}", e)

    async def query(self, collection: str, filters: Dict[str, str]) -> List[Dict[str, Any]]:
        stmt = select(Document).where(Document.collection == collection)
        for key, value in filters.items():
            stmt = stmt.where(Document.data[key].as_string() == value)
        stmt = stmt.order_by(Document.created_at, Document.id)

        try:
            async with self.db_manager.read_session() as session:
                result = await session.execute(stmt)
                return [copy.deepcopy(doc.to_document()) for doc in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("Document query failed", collection=collection, filters=filters, exc_info=True)
            raise StoreError.wrap(f"query {collection}", e)
