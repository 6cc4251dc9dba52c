"""
库存对账 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header

from fs_core.services import ReconciliationService
from fs_core.services.conditions import MaterialCondition, condition_catalog
from .deps import get_reconciliation_service
from .models import AddLocationRequest, ApiResponse, ReportDefectRequest, RestoreRequest

router = APIRouter()


@router.get("/conditions", response_model=ApiResponse[list])
async def list_conditions():
    """物料状态目录（含显示文案）"""
    return ApiResponse.success(condition_catalog())


@router.get("/kpis", response_model=ApiResponse[dict])
async def get_inventory_kpis(
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """库存运营指标"""
    return ApiResponse.success(await service.inventory_kpis())


@router.post("/status-migration", response_model=ApiResponse[dict])
async def migrate_legacy_statuses(
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """把旧格式的状态和位置迁移为新格式"""
    result = await service.migrate_legacy_statuses()
    return ApiResponse.success(result.data, metadata=result.metadata)


@router.get("/{item_id}", response_model=ApiResponse[dict])
async def get_item(
    item_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """获取物品及其位置台账"""
    item = await service.get_item(item_id)
    return ApiResponse.success(item.to_dict())


@router.get("/{item_id}/audit", response_model=ApiResponse[dict])
async def audit_item(
    item_id: str,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """检查物品台账完整性"""
    return ApiResponse.success(await service.audit_item(item_id))


@router.post("/{item_id}/locations", response_model=ApiResponse[dict])
async def add_location(
    item_id: str,
    body: AddLocationRequest,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """新增位置分区"""
    item = await service.add_location(
        item_id,
        body.location_type,
        body.location_id,
        body.quantity,
        status=body.status,
    )
    return ApiResponse.success(item.to_dict())


@router.post("/{item_id}/locations/{partition_index}/defects", response_model=ApiResponse[dict])
async def report_defect(
    item_id: str,
    partition_index: int,
    body: ReportDefectRequest,
    x_user_id: Optional[str] = Header(default=None),
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """上报故障"""
    result = await service.report_defect(
        item_id,
        partition_index,
        body.condition,
        body.reporter_id or x_user_id,
        vehicle_id=body.vehicle_id,
        title=body.title,
        description=body.description,
        images=body.images,
    )
    return ApiResponse.success(result.to_dict())


@router.post("/{item_id}/locations/{partition_index}/ordered", response_model=ApiResponse[dict])
async def mark_ordered(
    item_id: str,
    partition_index: int,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """标记为已下单更换"""
    await service.mark_ordered(item_id, partition_index)
    return ApiResponse.success({
        "item_id": item_id,
        "partition_index": partition_index,
        "status": MaterialCondition.ORDERED.value,
    })


@router.post("/{item_id}/locations/{partition_index}/repair", response_model=ApiResponse[dict])
async def send_to_repair(
    item_id: str,
    partition_index: int,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """故障分区送入维修池"""
    item = await service.send_to_repair(item_id, partition_index)
    return ApiResponse.success(item.to_dict())


@router.post("/{item_id}/locations/{partition_index}/write-off", response_model=ApiResponse[dict])
async def write_off_unit(
    item_id: str,
    partition_index: int,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """报废一个故障单位"""
    result = await service.write_off_unit(item_id, partition_index)
    return ApiResponse.success(result.to_dict())


@router.post("/{item_id}/restore", response_model=ApiResponse[dict])
async def restore_to_stock(
    item_id: str,
    body: RestoreRequest,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """恢复入库"""
    result = await service.restore_to_stock(
        item_id,
        body.incident_id,
        body.destination_type,
        body.destination_id,
    )
    return ApiResponse.success(result.to_dict())
