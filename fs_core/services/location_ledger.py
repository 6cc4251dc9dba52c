"""
库存位置台账

一个库存物品的数量按 (位置, 状态) 拆分为若干分区。这里的操作都是纯函数：
不修改传入的列表，返回新列表；持久化由调用方负责。

不变式：
- 台账中不存在数量 <= 0 的分区
- 拆分 / 合并 / 转移不改变分区数量总和
- (type, id, status) 三元组在一个物品内唯一（拆分会产生同位置、不同状态的两行，
  同状态的行总是合并）
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from fs_core.utils.errors import ValidationError
from .conditions import (
    MaterialCondition,
    is_legacy_status,
    normalize_condition,
)

# 旧数据里用来表示维修池的哨兵ID
REPAIR_POOL_SENTINEL = "REPAIR_POOL"


class LocationKind(str, Enum):
    WAREHOUSE = "warehouse"
    VEHICLE = "vehicle"
    REPAIR_POOL = "repair_pool"


@dataclass(frozen=True)
class Location:
    """位置：Warehouse(id) | Vehicle(id) | RepairPool"""
    kind: LocationKind
    id: Optional[str] = None

    def __post_init__(self):
        if self.kind == LocationKind.REPAIR_POOL:
            if self.id is not None:
                raise ValidationError(
                    code="INVALID_LOCATION",
                    detail="The repair pool does not take an id"
                )
        elif not self.id:
            raise ValidationError(
                code="INVALID_LOCATION",
                detail=f"A {self.kind.value} location requires an id"
            )

    @classmethod
    def warehouse(cls, warehouse_id: str) -> "Location":
        return cls(LocationKind.WAREHOUSE, warehouse_id)

    @classmethod
    def vehicle(cls, vehicle_id: str) -> "Location":
        return cls(LocationKind.VEHICLE, vehicle_id)

    @classmethod
    def repair_pool(cls) -> "Location":
        return cls(LocationKind.REPAIR_POOL)

    @classmethod
    def parse(cls, location_type: Optional[str], location_id: Optional[str]) -> "Location":
        """从文档字段解析位置，兼容 REPAIR_POOL 哨兵ID"""
        if location_type == LocationKind.REPAIR_POOL.value or location_id == REPAIR_POOL_SENTINEL:
            return cls.repair_pool()
        try:
            kind = LocationKind(location_type)
        except ValueError:
            raise ValidationError(
                code="INVALID_LOCATION",
                detail=f"Unknown location type: {location_type!r}"
            )
        return cls(kind, location_id)

    @property
    def is_repair_pool(self) -> bool:
        return self.kind == LocationKind.REPAIR_POOL

    def to_document(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "id": self.id}


@dataclass(frozen=True)
class LocationPartition:
    """台账中的一行：某位置上某状态的若干单位"""
    location: Location
    quantity: int
    status: MaterialCondition = MaterialCondition.NEW_FUNCTIONAL

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "LocationPartition":
        return cls(
            location=Location.parse(data.get("type"), data.get("id")),
            quantity=int(data.get("quantity") or 0),
            status=normalize_condition(data.get("status")),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            **self.location.to_document(),
            "quantity": self.quantity,
            "status": self.status.value,
        }

    def matches(self, location: Location, status: MaterialCondition) -> bool:
        return self.location == location and self.status == status


@dataclass
class InventoryItem:
    """库存物品（文档读取后的视图）"""
    id: str
    name: str = ""
    sku: str = ""
    category: str = "misc"
    quantity: int = 0
    locations: List[LocationPartition] = field(default_factory=list)
    version: Optional[int] = None
    # 读取时从旧的单位置字段（vehicleId / warehouseId）合成了 locations
    legacy_migrated: bool = False

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "InventoryItem":
        """从文档构建，旧的单位置字段在读取时迁移"""
        quantity = int(doc.get("quantity") or 0)
        raw_locations = doc.get("locations") or []
        legacy_migrated = False

        if raw_locations:
            locations = [LocationPartition.from_document(row) for row in raw_locations]
        else:
            locations = []
            legacy = None
            if doc.get("warehouseId"):
                legacy = Location.warehouse(doc["warehouseId"])
            elif doc.get("vehicleId"):
                legacy = Location.vehicle(doc["vehicleId"])
            if legacy is not None and quantity > 0:
                locations = [LocationPartition(legacy, quantity)]
                legacy_migrated = True

        return cls(
            id=str(doc["id"]),
            name=doc.get("name") or "",
            sku=doc.get("sku") or "",
            category=doc.get("category") or "misc",
            quantity=quantity,
            locations=locations,
            version=doc.get("version"),
            legacy_migrated=legacy_migrated,
        )

    def locations_document(self) -> List[Dict[str, Any]]:
        return locations_to_document(self.locations)

    @property
    def assigned_quantity(self) -> int:
        return assigned_quantity(self.locations)

    @property
    def unallocated_quantity(self) -> int:
        return self.quantity - self.assigned_quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "quantity": self.quantity,
            "assigned_quantity": self.assigned_quantity,
            "unallocated_quantity": self.unallocated_quantity,
            "locations": self.locations_document(),
            "version": self.version,
        }


def locations_to_document(locations: List[LocationPartition]) -> List[Dict[str, Any]]:
    return [partition.to_document() for partition in locations]


def assigned_quantity(locations: List[LocationPartition]) -> int:
    return sum(partition.quantity for partition in locations)


def _check_amount(amount: int) -> None:
    if not isinstance(amount, int) or amount <= 0:
        raise ValidationError(
            code="INVALID_QUANTITY",
            detail=f"Quantity must be a positive integer, got {amount!r}"
        )


def get_partition(locations: List[LocationPartition], index: int) -> LocationPartition:
    """按下标取分区；下标失效（客户端状态过期）时报错"""
    if not isinstance(index, int) or index < 0 or index >= len(locations):
        raise ValidationError(
            code="PARTITION_INDEX_OUT_OF_RANGE",
            detail=f"Partition index {index!r} does not exist "
                   f"(item has {len(locations)} partitions); re-read the item and retry"
        )
    return locations[index]


def add_partition(
    locations: List[LocationPartition],
    partition: LocationPartition,
    total_quantity: Optional[int] = None,
) -> List[LocationPartition]:
    """新增位置

    同一 (type, id) 已存在时拒绝，应修改已有行。给出物品总量时，
    不允许超过未分配数量。
    """
    _check_amount(partition.quantity)

    if any(existing.location == partition.location for existing in locations):
        raise ValidationError(
            code="LOCATION_ALREADY_ASSIGNED",
            detail=f"{partition.location.kind.value} {partition.location.id!r} is already assigned; "
                   f"edit the existing entry instead"
        )

    if total_quantity is not None:
        remaining = total_quantity - assigned_quantity(locations)
        if partition.quantity > remaining:
            raise ValidationError(
                code="INSUFFICIENT_UNALLOCATED_QUANTITY",
                detail=f"Cannot assign {partition.quantity} units, only {remaining} unallocated"
            )

    return [*locations, partition]


def split_partition(
    locations: List[LocationPartition],
    index: int,
    amount: int,
    new_status: MaterialCondition,
) -> List[LocationPartition]:
    """从分区中拆出 amount 个单位并设置为新状态

    amount == 数量时原行直接改状态；否则原行减少 amount，末尾追加新行。
    同位置已有新状态的行时，拆出的单位并入该行。
    """
    target = get_partition(locations, index)
    _check_amount(amount)
    if amount > target.quantity:
        raise ValidationError(
            code="SPLIT_EXCEEDS_QUANTITY",
            detail=f"Cannot split {amount} units from a partition holding {target.quantity}"
        )

    if _has_other_row(locations, index, target.location, new_status):
        remaining = remove_or_decrement(locations, index, amount)
        result, _ = increment_or_append(remaining, target.location, new_status, amount)
        return result

    result = list(locations)
    if amount == target.quantity:
        result[index] = replace(target, status=new_status)
    else:
        result[index] = replace(target, quantity=target.quantity - amount)
        result.append(replace(target, quantity=amount, status=new_status))
    return result


def _has_other_row(
    locations: List[LocationPartition],
    index: int,
    location: Location,
    status: MaterialCondition,
) -> bool:
    existing = find_destination(locations, location, status)
    return existing is not None and existing != index


def set_status(
    locations: List[LocationPartition],
    index: int,
    status: MaterialCondition,
) -> List[LocationPartition]:
    """原地修改状态，不改变数量；同位置已有该状态的行时整行并入"""
    target = get_partition(locations, index)
    if _has_other_row(locations, index, target.location, status):
        remaining = remove_or_decrement(locations, index, target.quantity)
        result, _ = increment_or_append(remaining, target.location, status, target.quantity)
        return result

    result = list(locations)
    result[index] = replace(target, status=status)
    return result


def remove_or_decrement(
    locations: List[LocationPartition],
    index: int,
    amount: int = 1,
) -> List[LocationPartition]:
    """减少分区数量，归零时删除该行"""
    target = get_partition(locations, index)
    _check_amount(amount)
    if amount > target.quantity:
        raise ValidationError(
            code="DECREMENT_EXCEEDS_QUANTITY",
            detail=f"Cannot remove {amount} units from a partition holding {target.quantity}"
        )

    result = list(locations)
    if amount == target.quantity:
        del result[index]
    else:
        result[index] = replace(target, quantity=target.quantity - amount)
    return result


def find_destination(
    locations: List[LocationPartition],
    location: Location,
    status: MaterialCondition,
) -> Optional[int]:
    """查找 (type, id, status) 完全匹配的分区下标"""
    for index, partition in enumerate(locations):
        if partition.matches(location, status):
            return index
    return None


def increment_or_append(
    locations: List[LocationPartition],
    location: Location,
    status: MaterialCondition,
    amount: int = 1,
) -> Tuple[List[LocationPartition], int]:
    """匹配行加数量，否则追加新行；返回 (新台账, 目标下标)"""
    _check_amount(amount)
    result = list(locations)
    index = find_destination(result, location, status)
    if index is None:
        result.append(LocationPartition(location, amount, status))
        return result, len(result) - 1

    result[index] = replace(result[index], quantity=result[index].quantity + amount)
    return result, index


def relocate_partition(
    locations: List[LocationPartition],
    index: int,
    location: Location,
) -> Tuple[List[LocationPartition], int]:
    """整行搬到新位置（保持状态），与目标位置同状态的行合并"""
    target = get_partition(locations, index)
    remaining = remove_or_decrement(locations, index, target.quantity)
    return increment_or_append(remaining, location, target.status, target.quantity)


def find_ledger_issues(document: Dict[str, Any]) -> List[str]:
    """检查原始库存文档的台账完整性，返回问题描述列表"""
    issues = []
    rows = document.get("locations") or []
    total = int(document.get("quantity") or 0)
    seen = set()
    assigned = 0

    if not rows and (document.get("vehicleId") or document.get("warehouseId")):
        issues.append("uses legacy single-location fields instead of locations")

    for index, row in enumerate(rows):
        quantity = int(row.get("quantity") or 0)
        assigned += max(quantity, 0)
        if quantity <= 0:
            issues.append(f"partition {index} has non-positive quantity {quantity}")

        raw_status = row.get("status")
        if is_legacy_status(raw_status):
            issues.append(f"partition {index} has legacy status {raw_status!r}")
            status = normalize_condition(raw_status).value
        else:
            try:
                status = normalize_condition(raw_status).value
            except ValidationError:
                issues.append(f"partition {index} has unknown status {raw_status!r}")
                status = raw_status

        key = (row.get("type"), row.get("id"), status)
        if key in seen:
            issues.append(f"partition {index} duplicates {key}")
        seen.add(key)

    if assigned > total:
        issues.append(f"over-allocated: {assigned} assigned, quantity is {total}")

    return issues
