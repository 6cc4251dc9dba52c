"""
事故关联测试
"""
import pytest

from fs_core.services.conditions import IncidentStatus, MaterialCondition
from fs_core.services.incident_linkage import Incident, IncidentLinkage
from fs_core.services.location_ledger import InventoryItem, Location, LocationPartition
from fs_core.utils.errors import NotFoundError


@pytest.fixture
def linkage(store) -> IncidentLinkage:
    return IncidentLinkage(store)


@pytest.fixture
def item() -> InventoryItem:
    return InventoryItem(id="item-1", name="Extintor 6kg", quantity=2)


async def create(linkage, item, location, condition=MaterialCondition.TOTALLY_BROKEN):
    return await linkage.create_linked_incident(
        item, LocationPartition(location, 1), condition, "driver-7", location.id
    )


@pytest.mark.asyncio
async def test_create_linked_incident(linkage, item, store):
    incident_id = await create(linkage, item, Location.vehicle("V1"))

    doc = await store.get_item("incidents", incident_id)
    assert doc["status"] == "open"
    assert doc["priority"] == "high"
    assert doc["inventoryItemId"] == "item-1"
    assert doc["vehicleId"] == "V1"
    assert doc["reportedByUserId"] == "driver-7"
    assert doc["sourceLocation"] == {"type": "vehicle", "id": "V1"}
    assert doc["title"] == "Completamente roto: Extintor 6kg"
    assert doc["createdAt"] == doc["updatedAt"]


@pytest.mark.asyncio
async def test_urgent_change_is_medium_priority(linkage, item, store):
    incident_id = await create(linkage, item, Location.vehicle("V1"), MaterialCondition.WORKING_URGENT_CHANGE)
    doc = await store.get_item("incidents", incident_id)
    assert doc["priority"] == "medium"


@pytest.mark.asyncio
async def test_find_active_prefers_matching_location(linkage, item):
    await create(linkage, item, Location.vehicle("V1"))
    second = await create(linkage, item, Location.vehicle("V2"))

    found = await linkage.find_active_incident_for_item("item-1", Location.vehicle("V2"))

    assert found.id == second


@pytest.mark.asyncio
async def test_find_active_exact_match_only(linkage, item):
    await create(linkage, item, Location.vehicle("V1"))

    assert await linkage.find_active_incident_for_item("item-1", Location.vehicle("V2"), exact=True) is None
    assert await linkage.find_active_incident_for_item("item-1", Location.vehicle("V2")) is not None


@pytest.mark.asyncio
async def test_find_active_ignores_resolved(linkage, item):
    incident_id = await create(linkage, item, Location.vehicle("V1"))
    await linkage.resolve_incident(incident_id)

    assert await linkage.find_active_incident_for_item("item-1") is None


@pytest.mark.asyncio
async def test_closed_incident_still_counts_as_active(linkage, item, store):
    incident_id = await create(linkage, item, Location.vehicle("V1"))
    await store.update_item("incidents", incident_id, {"status": "closed"})

    found = await linkage.find_active_incident_for_item("item-1")

    assert found.id == incident_id
    assert found.is_active


@pytest.mark.asyncio
async def test_resolve_is_idempotent(linkage, item, store):
    incident_id = await create(linkage, item, Location.vehicle("V1"))

    assert await linkage.resolve_incident(incident_id) is True
    first = await store.get_item("incidents", incident_id)
    assert await linkage.resolve_incident(incident_id) is False
    second = await store.get_item("incidents", incident_id)

    assert first["status"] == second["status"] == "resolved"
    assert first["updatedAt"] == second["updatedAt"]


@pytest.mark.asyncio
async def test_get_missing_incident(linkage):
    with pytest.raises(NotFoundError) as exc:
        await linkage.get_incident("nope")
    assert exc.value.code == "INCIDENT_NOT_FOUND"


def test_incident_reads_legacy_source_vehicle():
    incident = Incident.from_document({
        "id": "i1",
        "title": "x",
        "priority": "high",
        "status": "in_progress",
        "sourceVehicleId": "V3",
    })
    assert incident.source_location == Location.vehicle("V3")
    assert incident.status == IncidentStatus.IN_PROGRESS
    assert incident.is_active
