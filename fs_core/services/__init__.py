"""
FleetStock 核心服务模块
"""
from .base import BaseService, ServiceResult
from .reconciliation import ReconciliationService, ReportDefectResult, RestoreResult

__all__ = [
    "BaseService",
    "ServiceResult",
    "ReconciliationService",
    "ReportDefectResult",
    "RestoreResult",
]
