"""
库存对账服务

对外暴露的对账操作。每个操作都是：读取物品快照 → 纯函数计算新台账 →
带版本号单次写回 locations。事故记录是独立的第二次写入，总是排在库存写入之后；
事故写入失败只记录并在结果中返回，不回滚库存。事件发布放在最后且不影响结果。
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fs_core.event_bus import (
    TOPIC_DEFECT_REPORTED,
    TOPIC_INCIDENT_RESOLVED,
    TOPIC_MARKED_ORDERED,
    TOPIC_SENT_TO_REPAIR,
    TOPIC_STOCK_RESTORED,
    TOPIC_UNIT_WRITTEN_OFF,
)
from fs_core.utils.errors import FleetStockException, NotFoundError, ValidationError
from .base import BaseService, ServiceResult
from .conditions import (
    MaterialCondition,
    RESTORABLE_CONDITIONS,
    check_mark_ordered,
    check_report_defect,
    check_restorable,
    normalize_condition,
    require_condition,
)
from .incident_linkage import Incident, IncidentLinkage
from .location_ledger import (
    InventoryItem,
    Location,
    LocationKind,
    LocationPartition,
    add_partition,
    find_ledger_issues,
    get_partition,
    relocate_partition,
    remove_or_decrement,
    set_status,
    split_partition,
)
from .restoration import STRATEGY_INCIDENT, RestorationResolver, parse_destination

# 上报故障时隔离的单位数：即使分区有多个单位，也只拆出 1 个
DEFECT_ISOLATE_QUANTITY = 1


@dataclass
class ReportDefectResult:
    item_id: str
    incident_id: Optional[str]
    locations: List[Dict[str, Any]]
    version: int
    incident_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "incident_id": self.incident_id,
            "locations": self.locations,
            "version": self.version,
            "incident_error": self.incident_error,
        }


@dataclass
class RestoreResult:
    item_id: str
    restored: bool
    incident_id: Optional[str] = None
    incident_resolved: bool = False
    strategy: Optional[str] = None
    source_index: Optional[int] = None
    destination_index: Optional[int] = None
    locations: List[Dict[str, Any]] = field(default_factory=list)
    version: Optional[int] = None
    incident_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "restored": self.restored,
            "incident_id": self.incident_id,
            "incident_resolved": self.incident_resolved,
            "strategy": self.strategy,
            "source_index": self.source_index,
            "destination_index": self.destination_index,
            "locations": self.locations,
            "version": self.version,
            "incident_error": self.incident_error,
        }


class ReconciliationService(BaseService):
    """库存对账服务"""

    def __init__(self, store, event_bus=None):
        super().__init__(store, event_bus)
        self.collection = self.settings.inventory_collection
        self.incidents = IncidentLinkage(store, self.settings.incidents_collection)
        self.resolver = RestorationResolver()

    async def get_item(self, item_id: str) -> InventoryItem:
        doc = await self.store.get_item(self.collection, item_id)
        if doc is None:
            raise NotFoundError(code="INVENTORY_ITEM_NOT_FOUND", resource=f"Inventory item {item_id}")
        return InventoryItem.from_document(doc)

    async def _write_locations(
        self,
        item: InventoryItem,
        locations: List[LocationPartition],
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> int:
        """以读取时的版本号写回整个 locations 数组"""
        fields: Dict[str, Any] = {"locations": [p.to_document() for p in locations]}
        if item.legacy_migrated:
            # 已经落地到 locations，清掉旧的单位置字段
            fields.update({"vehicleId": None, "warehouseId": None})
        if extra_fields:
            fields.update(extra_fields)
        return await self.store.update_item(
            self.collection, item.id, fields, expected_version=item.version
        )

    async def report_defect(
        self,
        item_id: str,
        partition_index: int,
        condition,
        reporter_id: Optional[str],
        vehicle_id: Optional[str] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> ReportDefectResult:
        """上报故障：从分区隔离 1 个单位并创建关联事故"""
        target = require_condition(condition)
        item = await self.get_item(item_id)
        partition = get_partition(item.locations, partition_index)
        check_report_defect(partition.status, target)

        locations = split_partition(item.locations, partition_index, DEFECT_ISOLATE_QUANTITY, target)
        version = await self._write_locations(item, locations)
        self.logger.info(
            "Defect reported",
            item_id=item.id,
            partition_index=partition_index,
            condition=target.value,
            split=partition.quantity > DEFECT_ISOLATE_QUANTITY,
        )

        if vehicle_id is None and partition.location.kind == LocationKind.VEHICLE:
            vehicle_id = partition.location.id

        incident_id = None
        incident_error = None
        try:
            incident_id = await self.incidents.create_linked_incident(
                item, partition, target, reporter_id, vehicle_id,
                title=title, description=description, images=images,
            )
        except Exception as e:
            # 库存已经写入，事故创建失败不回滚
            incident_error = str(e)
            self.logger.error("Linked incident creation failed", item_id=item.id, exc_info=True)

        await self.publish_event(TOPIC_DEFECT_REPORTED, {
            "item_id": item.id,
            "partition_index": partition_index,
            "condition": target.value,
            "incident_id": incident_id,
            "vehicle_id": vehicle_id,
            "reported_by": reporter_id,
        })

        return ReportDefectResult(
            item_id=item.id,
            incident_id=incident_id,
            locations=[p.to_document() for p in locations],
            version=version,
            incident_error=incident_error,
        )

    async def mark_ordered(self, item_id: str, partition_index: int) -> None:
        """已下单更换：原地改状态，不拆分、不改数量"""
        item = await self.get_item(item_id)
        partition = get_partition(item.locations, partition_index)
        check_mark_ordered(partition.status)

        locations = set_status(item.locations, partition_index, MaterialCondition.ORDERED)
        await self._write_locations(item, locations)
        self.logger.info("Partition marked as ordered", item_id=item.id, partition_index=partition_index)

        await self.publish_event(TOPIC_MARKED_ORDERED, {
            "item_id": item.id,
            "partition_index": partition_index,
            "previous_condition": partition.status.value,
        })

    async def restore_to_stock(
        self,
        item_id: str,
        incident_id: Optional[str],
        destination_type: Optional[str],
        destination_id: Optional[str],
    ) -> RestoreResult:
        """恢复入库：一个故障单位回到目标位置的可用库存，并关闭关联事故"""
        destination = parse_destination(destination_type, destination_id)
        # 不依赖分区下标，版本冲突时可以安全地重新读取再执行
        return await self.execute_with_conflict_retry(
            self._restore_once,
            item_id,
            incident_id,
            destination,
            retries=self.settings.restore_conflict_retries,
        )

    async def _restore_once(
        self,
        item_id: str,
        incident_id: Optional[str],
        destination: Location,
    ) -> RestoreResult:
        item = await self.get_item(item_id)

        incident: Optional[Incident]
        if incident_id:
            incident = await self.incidents.get_incident(incident_id)
            if incident.inventory_item_id and incident.inventory_item_id != item.id:
                raise ValidationError(
                    code="INCIDENT_ITEM_MISMATCH",
                    detail=f"Incident {incident_id} belongs to item {incident.inventory_item_id}, not {item.id}"
                )
            if not incident.is_active:
                self.logger.info("Incident already resolved, nothing to restore",
                                 item_id=item.id, incident_id=incident_id)
                return RestoreResult(
                    item_id=item.id,
                    restored=False,
                    incident_id=incident_id,
                    locations=item.locations_document(),
                    version=item.version,
                )
        else:
            incident = await self.incidents.find_active_incident_for_item(item.id)

        plan = self.resolver.restore(item, incident, destination)
        version = await self._write_locations(item, plan.locations)
        self.logger.info(
            "Stock restored",
            item_id=item.id,
            source_index=plan.source_index,
            source_condition=plan.source.status.value,
            destination=destination.to_document(),
            strategy=plan.strategy,
        )

        result = RestoreResult(
            item_id=item.id,
            restored=True,
            strategy=plan.strategy,
            source_index=plan.source_index,
            destination_index=plan.destination_index,
            locations=[p.to_document() for p in plan.locations],
            version=version,
        )

        # 自动找到的事故只有在确实定位到它的分区时才关闭
        if incident is not None and (incident_id or plan.strategy == STRATEGY_INCIDENT):
            result.incident_id = incident.id
            result.incident_resolved, result.incident_error = await self._resolve_quietly(incident.id)

        await self.publish_event(TOPIC_STOCK_RESTORED, {
            "item_id": item.id,
            "incident_id": result.incident_id,
            "destination": destination.to_document(),
            "strategy": plan.strategy,
        })
        return result

    async def _resolve_quietly(self, incident_id: str):
        """关闭事故；失败不影响已经完成的库存写入"""
        try:
            resolved = await self.incidents.resolve_incident(incident_id)
        except Exception as e:
            self.logger.error("Incident resolution failed", incident_id=incident_id, exc_info=True)
            return False, str(e)

        if resolved:
            await self.publish_event(TOPIC_INCIDENT_RESOLVED, {"incident_id": incident_id})
        return resolved, None

    async def resolve_incident(self, incident_id: str) -> bool:
        """管理员手动关闭事故（不触发库存变动）"""
        resolved = await self.incidents.resolve_incident(incident_id)
        if resolved:
            await self.publish_event(TOPIC_INCIDENT_RESOLVED, {"incident_id": incident_id})
        return resolved

    async def add_location(
        self,
        item_id: str,
        location_type: str,
        location_id: str,
        quantity: int,
        status=None,
    ) -> InventoryItem:
        """为物品新增一个位置分区，不能超过未分配数量"""
        if location_type not in (LocationKind.WAREHOUSE.value, LocationKind.VEHICLE.value):
            raise ValidationError(
                code="INVALID_LOCATION",
                detail=f"Stock can only be assigned to a warehouse or a vehicle, got {location_type!r}"
            )
        partition = LocationPartition(
            Location(LocationKind(location_type), location_id),
            quantity,
            normalize_condition(status),
        )

        item = await self.get_item(item_id)
        locations = add_partition(item.locations, partition, total_quantity=item.quantity)
        version = await self._write_locations(item, locations)
        self.logger.info("Location added", item_id=item.id, location=partition.to_document())

        item.locations = locations
        item.version = version
        item.legacy_migrated = False
        return item

    async def write_off_unit(self, item_id: str, partition_index: int) -> RestoreResult:
        """报废一个故障单位：台账减 1，物品总量减 1"""
        item = await self.get_item(item_id)
        partition = get_partition(item.locations, partition_index)
        check_restorable(partition.status, "write off")

        locations = remove_or_decrement(item.locations, partition_index, 1)
        version = await self._write_locations(item, locations, {"quantity": item.quantity - 1})
        self.logger.info("Unit written off", item_id=item.id, partition_index=partition_index,
                         condition=partition.status.value)

        result = RestoreResult(
            item_id=item.id,
            restored=False,
            source_index=partition_index,
            locations=[p.to_document() for p in locations],
            version=version,
        )

        incident = await self.incidents.find_active_incident_for_item(
            item.id, partition.location, exact=True
        )
        if incident is not None:
            result.incident_id = incident.id
            result.incident_resolved, result.incident_error = await self._resolve_quietly(incident.id)

        await self.publish_event(TOPIC_UNIT_WRITTEN_OFF, {
            "item_id": item.id,
            "location": partition.location.to_document(),
            "condition": partition.status.value,
            "incident_id": result.incident_id,
        })
        return result

    async def send_to_repair(self, item_id: str, partition_index: int) -> InventoryItem:
        """整个故障分区送入维修池，保持状态"""
        item = await self.get_item(item_id)
        partition = get_partition(item.locations, partition_index)
        check_restorable(partition.status, "send to repair")
        if partition.location.is_repair_pool:
            raise ValidationError(
                code="ALREADY_IN_REPAIR_POOL",
                detail=f"Partition {partition_index} is already in the repair pool"
            )

        locations, _ = relocate_partition(item.locations, partition_index, Location.repair_pool())
        version = await self._write_locations(item, locations)
        self.logger.info("Partition sent to repair", item_id=item.id, partition_index=partition_index,
                         quantity=partition.quantity)

        await self.publish_event(TOPIC_SENT_TO_REPAIR, {
            "item_id": item.id,
            "from": partition.location.to_document(),
            "quantity": partition.quantity,
            "condition": partition.status.value,
        })

        item.locations = locations
        item.version = version
        item.legacy_migrated = False
        return item

    async def audit_item(self, item_id: str) -> Dict[str, Any]:
        """检查单个物品的台账完整性"""
        doc = await self.store.get_item(self.collection, item_id)
        if doc is None:
            raise NotFoundError(code="INVENTORY_ITEM_NOT_FOUND", resource=f"Inventory item {item_id}")
        return {"item_id": item_id, "issues": find_ledger_issues(doc)}

    async def audit_all(self) -> List[Dict[str, Any]]:
        """返回所有存在问题的物品"""
        reports = []
        for doc in await self.store.list_items(self.collection):
            issues = find_ledger_issues(doc)
            if issues:
                reports.append({"item_id": doc["id"], "name": doc.get("name"), "issues": issues})
        return reports

    async def migrate_legacy_statuses(self) -> ServiceResult[Dict[str, Any]]:
        """把旧状态（new / ok / broken / 缺失）和旧的单位置字段迁移为新格式"""
        docs = await self.store.list_items(self.collection)
        migrated = []
        failed = []

        for doc in docs:
            if not needs_migration(doc):
                continue

            try:
                item = InventoryItem.from_document(doc)
                await self._write_locations(item, item.locations)
                migrated.append(item.id)
            except FleetStockException as e:
                self.logger.error("Legacy migration failed", item_id=doc.get("id"), code=e.code)
                failed.append({"item_id": doc.get("id"), "code": e.code, "error": str(e)})

        self.logger.info("Legacy status migration finished",
                         scanned=len(docs), migrated=len(migrated), failed=len(failed))
        return ServiceResult.ok(
            {"migrated": migrated, "failed": failed},
            metadata={"scanned": len(docs)},
        )

    async def inventory_kpis(self) -> Dict[str, Any]:
        """运营指标：总量、已分配、故障数量、利用率、故障率"""
        total_items = 0
        assigned_items = 0
        broken_items = 0
        by_condition = {condition.value: 0 for condition in MaterialCondition}

        for doc in await self.store.list_items(self.collection):
            try:
                item = InventoryItem.from_document(doc)
            except FleetStockException:
                self.logger.warning("Skipping unreadable inventory item", item_id=doc.get("id"))
                continue

            total_items += item.quantity
            assigned_items += item.assigned_quantity
            for partition in item.locations:
                by_condition[partition.status.value] += partition.quantity
                if partition.status in RESTORABLE_CONDITIONS:
                    broken_items += partition.quantity

        def rate(part: int) -> float:
            return round(part / total_items * 100, 2) if total_items > 0 else 0.0

        return {
            "total_items": total_items,
            "assigned_items": assigned_items,
            "unassigned_items": total_items - assigned_items,
            "broken_items": broken_items,
            "utilization_rate": rate(assigned_items),
            "breakage_rate": rate(broken_items),
            "by_condition": by_condition,
        }


def needs_migration(doc: Dict[str, Any]) -> bool:
    """文档是否还带有旧格式：旧状态写法、维修池哨兵ID、或只有单位置字段"""
    rows = doc.get("locations") or []
    if not rows:
        return bool(doc.get("vehicleId") or doc.get("warehouseId")) and int(doc.get("quantity") or 0) > 0
    for row in rows:
        try:
            normalized = LocationPartition.from_document(row).to_document()
        except FleetStockException:
            # 无法解析的行交给迁移流程报告
            return True
        if normalized != {key: row.get(key) for key in normalized}:
            return True
    return False
