"""
文档存储数据模型
每个集合（inventory / incidents）的文档以 JSONB 形式保存，version 用于乐观并发控制
"""
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, Integer, String, Index, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Document(Base):
    """文档表"""
    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True, comment="集合名")
    id: Mapped[str] = mapped_column(String(64), primary_key=True, comment="文档ID")

    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
        comment="文档内容"
    )

    # 每次写入 +1
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, comment="文档版本")

    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        comment="创建时间"
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
        comment="最后更新时间"
    )

    __table_args__ = (
        Index('ix_documents_collection', 'collection'),
        Index('ix_documents_updated', 'updated_at'),
    )

    def to_document(self) -> Dict[str, Any]:
        """返回带 id 和 version 的文档内容"""
        return {**self.data, "id": self.id, "version": self.version}
