"""
恢复入库

把一个修好 / 换新的单位从故障分区移回可用库存：源分区减 1，
目标位置的 new_functional 分区加 1（没有则新建）。总数量不变。
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple

from fs_core.utils.errors import NotFoundError, ValidationError
from .conditions import MaterialCondition, RESTORABLE_CONDITIONS
from .incident_linkage import Incident
from .location_ledger import (
    InventoryItem,
    Location,
    LocationKind,
    LocationPartition,
    increment_or_append,
    remove_or_decrement,
)

STRATEGY_INCIDENT = "incident"
STRATEGY_HEURISTIC = "heuristic"


@dataclass
class RestorationPlan:
    """一次恢复入库的计算结果"""
    source_index: int
    source: LocationPartition
    destination: Location
    destination_index: int
    locations: List[LocationPartition]
    strategy: str


def parse_destination(destination_type: Optional[str], destination_id: Optional[str]) -> Location:
    """目标位置必须是仓库或车辆，且ID非空"""
    if not destination_type or not destination_id:
        raise ValidationError(
            code="MISSING_DESTINATION",
            detail="A destination type and id are required to restore stock"
        )
    if destination_type not in (LocationKind.WAREHOUSE.value, LocationKind.VEHICLE.value):
        raise ValidationError(
            code="INVALID_DESTINATION",
            detail=f"Stock can only be restored into a warehouse or a vehicle, got {destination_type!r}"
        )
    return Location(LocationKind(destination_type), destination_id)


def _first_restorable(
    locations: List[LocationPartition],
    location: Optional[Location],
    order: Tuple[MaterialCondition, ...],
) -> Optional[int]:
    for status in order:
        for index, partition in enumerate(locations):
            if partition.status != status:
                continue
            if location is None or partition.location == location:
                return index
    return None


class RestorationResolver:
    """恢复入库解析器"""

    def locate_broken_partition(
        self,
        locations: List[LocationPartition],
        incident: Optional[Incident] = None,
    ) -> Tuple[int, str]:
        """定位要扣减的故障分区，返回 (下标, 策略)

        有事故时按事故记录的来源位置查找（优先事故记录的状态），其次维修池；
        都找不到时退回启发式：依次查找 totally_broken / working_urgent_change / ordered。
        """
        if incident is not None:
            order = RESTORABLE_CONDITIONS
            if incident.condition in RESTORABLE_CONDITIONS:
                order = (incident.condition,) + tuple(c for c in RESTORABLE_CONDITIONS if c != incident.condition)

            for location in (incident.source_location, Location.repair_pool()):
                if location is None:
                    continue
                index = _first_restorable(locations, location, order)
                if index is not None:
                    return index, STRATEGY_INCIDENT

        index = _first_restorable(locations, None, RESTORABLE_CONDITIONS)
        if index is None:
            raise NotFoundError(
                code="BROKEN_PARTITION_NOT_FOUND",
                resource="Broken, urgent-change or ordered partition",
            )
        return index, STRATEGY_HEURISTIC

    def restore(
        self,
        item: InventoryItem,
        incident: Optional[Incident],
        destination: Location,
    ) -> RestorationPlan:
        """计算恢复一个单位后的台账"""
        source_index, strategy = self.locate_broken_partition(item.locations, incident)
        source = item.locations[source_index]

        remaining = remove_or_decrement(item.locations, source_index, 1)
        locations, destination_index = increment_or_append(
            remaining, destination, MaterialCondition.NEW_FUNCTIONAL, 1
        )

        return RestorationPlan(
            source_index=source_index,
            source=source,
            destination=destination,
            destination_index=destination_index,
            locations=locations,
            strategy=strategy,
        )
