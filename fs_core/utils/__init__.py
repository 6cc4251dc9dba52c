"""
FleetStock 实用工具模块
"""

from .logger import get_logger, log_context, setup_logging
from .errors import (
    FleetStockException,
    ValidationError,
    NotFoundError,
    ConflictError,
    StoreError,
)

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "FleetStockException",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StoreError",
]
