"""
FleetStock API 路由模块
"""
from fastapi import APIRouter

from .inventory import router as inventory_router
from .incidents import router as incidents_router

# 创建主路由器
api_router = APIRouter()

api_router.include_router(inventory_router, prefix="/inventory", tags=["Inventory"])
api_router.include_router(incidents_router, prefix="/incidents", tags=["Incidents"])

__all__ = ["api_router"]
