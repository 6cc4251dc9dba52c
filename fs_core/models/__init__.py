"""
FleetStock 数据模型包
"""
from .base import Base
from .documents import Document

__all__ = [
    "Base",
    "Document",
]
