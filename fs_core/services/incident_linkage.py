"""
事故关联

把一次物料故障绑定到一条事故记录上，并在恢复入库时定位、关闭该事故。
事故只是可选的标注：没有事故时恢复入库照样可以进行。
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fs_core.document_store import DocumentStore
from fs_core.utils.errors import NotFoundError
from fs_core.utils.logger import get_logger
from .conditions import (
    CONDITION_LABELS,
    IncidentPriority,
    IncidentStatus,
    MaterialCondition,
    normalize_condition,
    priority_for_condition,
)
from .location_ledger import InventoryItem, Location, LocationPartition

logger = get_logger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Incident:
    """事故记录（文档视图）"""
    id: str
    title: str
    description: str
    priority: IncidentPriority
    status: IncidentStatus
    vehicle_id: Optional[str] = None
    reported_by_user_id: Optional[str] = None
    inventory_item_id: Optional[str] = None
    source_location: Optional[Location] = None
    condition: Optional[MaterialCondition] = None
    images: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status != IncidentStatus.RESOLVED

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Incident":
        source = doc.get("sourceLocation")
        if source:
            source_location = Location.parse(source.get("type"), source.get("id"))
        elif doc.get("sourceVehicleId"):
            source_location = Location.vehicle(doc["sourceVehicleId"])
        else:
            source_location = None

        return cls(
            id=str(doc["id"]),
            title=doc.get("title") or "",
            description=doc.get("description") or "",
            priority=IncidentPriority(doc.get("priority") or IncidentPriority.MEDIUM.value),
            status=IncidentStatus(doc.get("status") or IncidentStatus.OPEN.value),
            vehicle_id=doc.get("vehicleId"),
            reported_by_user_id=doc.get("reportedByUserId"),
            inventory_item_id=doc.get("inventoryItemId"),
            source_location=source_location,
            condition=normalize_condition(doc["condition"]) if doc.get("condition") else None,
            images=list(doc.get("images") or []),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "status": self.status.value,
            "vehicle_id": self.vehicle_id,
            "reported_by_user_id": self.reported_by_user_id,
            "inventory_item_id": self.inventory_item_id,
            "source_location": self.source_location.to_document() if self.source_location else None,
            "condition": self.condition.value if self.condition else None,
            "images": self.images,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class IncidentLinkage:
    """事故关联"""

    def __init__(self, store: DocumentStore, collection: str = "incidents"):
        self.store = store
        self.collection = collection

    async def create_linked_incident(
        self,
        item: InventoryItem,
        partition: LocationPartition,
        condition: MaterialCondition,
        reporter_id: Optional[str],
        vehicle_id: Optional[str],
        title: Optional[str] = None,
        description: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> str:
        """为故障创建一条 open 状态的事故，返回事故ID"""
        now = utc_now_iso()
        fields = {
            "title": title or f"{CONDITION_LABELS[condition]}: {item.name or item.sku or item.id}",
            "description": description or "",
            "priority": priority_for_condition(condition).value,
            "status": IncidentStatus.OPEN.value,
            "vehicleId": vehicle_id,
            "reportedByUserId": reporter_id,
            "inventoryItemId": item.id,
            "sourceLocation": partition.location.to_document(),
            "condition": condition.value,
            "images": list(images or []),
            "createdAt": now,
            "updatedAt": now,
        }
        incident_id = await self.store.add_item(self.collection, fields)
        logger.info(
            "Linked incident created",
            incident_id=incident_id,
            item_id=item.id,
            condition=condition.value,
            priority=fields["priority"],
        )
        return incident_id

    async def get_incident(self, incident_id: str) -> Incident:
        doc = await self.store.get_item(self.collection, incident_id)
        if doc is None:
            raise NotFoundError(code="INCIDENT_NOT_FOUND", resource=f"Incident {incident_id}")
        return Incident.from_document(doc)

    async def find_active_incident_for_item(
        self,
        item_id: str,
        location: Optional[Location] = None,
        exact: bool = False,
    ) -> Optional[Incident]:
        """查找物品的未解决事故

        同一物品多个分区同时故障时，优先返回来源位置匹配的事故；否则返回第一条。
        exact=True 时只返回来源位置匹配的事故。
        """
        docs = await self.store.query_incidents({"inventoryItemId": item_id}, collection=self.collection)
        active = [
            incident
            for incident in (Incident.from_document(doc) for doc in docs)
            if incident.is_active
        ]
        if not active:
            return None

        if location is not None:
            for incident in active:
                if incident.source_location == location:
                    return incident
            if exact:
                return None

        if len(active) > 1:
            logger.warning(
                "Multiple active incidents for item, picking the first",
                item_id=item_id,
                incident_ids=[incident.id for incident in active],
            )
        return active[0]

    async def resolve_incident(self, incident_id: str) -> bool:
        """标记为已解决；已解决的事故直接返回 False（幂等）"""
        incident = await self.get_incident(incident_id)
        if not incident.is_active:
            logger.info("Incident already resolved", incident_id=incident_id)
            return False

        await self.store.update_item(
            self.collection,
            incident_id,
            {"status": IncidentStatus.RESOLVED.value, "updatedAt": utc_now_iso()},
        )
        logger.info("Incident resolved", incident_id=incident_id)
        return True
