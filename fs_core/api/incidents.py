"""
事故 API 路由
"""
from fastapi import APIRouter, Depends

from fs_core.services import ReconciliationService
from .deps import get_reconciliation_service
from .models import ApiResponse

router = APIRouter()


@router.get("/{incident_id}", response_model=ApiResponse[dict])
async def get_incident(
    incident_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """获取事故详情"""
    incident = await service.incidents.get_incident(incident_id)
    return ApiResponse.success(incident.to_dict())


@router.post("/{incident_id}/resolve", response_model=ApiResponse[dict])
async def resolve_incident(
    incident_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """手动关闭事故；重复关闭返回 resolved=false"""
    resolved = await service.resolve_incident(incident_id)
    return ApiResponse.success({"incident_id": incident_id, "resolved": resolved})
