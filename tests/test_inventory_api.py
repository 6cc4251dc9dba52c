"""
HTTP 接口测试（内存文档存储，不启动 lifespan）
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

from fs_core.api.deps import get_document_store
from fs_core.app import app
from .factories import row

PREFIX = "/api/fs/v1"


@pytest.fixture
def client(store):
    app.dependency_overrides[get_document_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def item_id(store):
    return asyncio.run(store.add_item("inventory", {
        "name": "Extintor 6kg",
        "quantity": 4,
        "locations": [row("vehicle", "V1", 3)],
    }, doc_id="item-1"))


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_conditions(client):
    response = client.get(f"{PREFIX}/inventory/conditions")

    body = response.json()
    assert body["ok"] is True
    assert {c["value"] for c in body["data"]} >= {"new_functional", "totally_broken", "ordered"}


def test_get_item(client, item_id):
    response = client.get(f"{PREFIX}/inventory/{item_id}")

    data = response.json()["data"]
    assert data["unallocated_quantity"] == 1
    assert data["locations"] == [row("vehicle", "V1", 3)]
    assert response.headers["X-Trace-Id"]


def test_defect_and_restore_flow(client, store, item_id):
    response = client.post(
        f"{PREFIX}/inventory/{item_id}/locations/0/defects",
        json={"condition": "totally_broken"},
        headers={"X-User-Id": "driver-7"},
    )
    assert response.status_code == 200
    incident_id = response.json()["data"]["incident_id"]

    incident = client.get(f"{PREFIX}/incidents/{incident_id}").json()["data"]
    assert incident["reported_by_user_id"] == "driver-7"
    assert incident["vehicle_id"] == "V1"
    assert incident["status"] == "open"

    response = client.post(f"{PREFIX}/inventory/{item_id}/restore", json={
        "incident_id": incident_id,
        "destination_type": "warehouse",
        "destination_id": "W1",
    })
    data = response.json()["data"]
    assert data["restored"] is True
    assert data["incident_resolved"] is True
    assert data["locations"] == [row("vehicle", "V1", 2), row("warehouse", "W1", 1)]

    incident = client.get(f"{PREFIX}/incidents/{incident_id}").json()["data"]
    assert incident["status"] == "resolved"


def test_mark_ordered(client, item_id):
    client.post(f"{PREFIX}/inventory/{item_id}/locations/0/defects", json={"condition": "working_urgent_change"})

    response = client.post(f"{PREFIX}/inventory/{item_id}/locations/1/ordered")

    assert response.json()["data"]["status"] == "ordered"
    locations = client.get(f"{PREFIX}/inventory/{item_id}").json()["data"]["locations"]
    assert locations[1] == row("vehicle", "V1", 1, "ordered")


def test_missing_item_is_404(client):
    response = client.get(f"{PREFIX}/inventory/ghost")

    assert response.status_code == 404
    body = response.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "INVENTORY_ITEM_NOT_FOUND"


def test_missing_destination_is_422(client, item_id):
    response = client.post(f"{PREFIX}/inventory/{item_id}/restore", json={"destination_type": "warehouse"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "MISSING_DESTINATION"


def test_stale_partition_index(client, item_id):
    response = client.post(f"{PREFIX}/inventory/{item_id}/locations/5/ordered")

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "PARTITION_INDEX_OUT_OF_RANGE"


def test_add_location_request_validation(client, item_id):
    response = client.post(f"{PREFIX}/inventory/{item_id}/locations", json={
        "location_type": "vehicle", "location_id": "V2", "quantity": 0,
    })

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_add_location(client, item_id):
    response = client.post(f"{PREFIX}/inventory/{item_id}/locations", json={
        "location_type": "warehouse", "location_id": "W1", "quantity": 1,
    })

    data = response.json()["data"]
    assert data["unallocated_quantity"] == 0
    assert data["locations"][-1] == row("warehouse", "W1", 1)


def test_resolve_incident_twice(client, item_id):
    defect = client.post(f"{PREFIX}/inventory/{item_id}/locations/0/defects", json={"condition": "totally_broken"})
    incident_id = defect.json()["data"]["incident_id"]

    first = client.post(f"{PREFIX}/incidents/{incident_id}/resolve").json()["data"]
    second = client.post(f"{PREFIX}/incidents/{incident_id}/resolve").json()["data"]

    assert first["resolved"] is True
    assert second["resolved"] is False


def test_kpis_and_migration(client, store):
    asyncio.run(store.add_item("inventory", {
        "quantity": 2, "locations": [row("vehicle", "V1", 2, "ok")],
    }, doc_id="legacy"))

    migration = client.post(f"{PREFIX}/inventory/status-migration").json()
    kpis = client.get(f"{PREFIX}/inventory/kpis").json()["data"]

    assert migration["data"]["migrated"] == ["legacy"]
    assert migration["metadata"]["scanned"] == 1
    assert kpis["total_items"] == 2
    assert kpis["utilization_rate"] == 100.0


def test_audit_endpoint(client, item_id):
    response = client.get(f"{PREFIX}/inventory/{item_id}/audit")
    assert response.json()["data"] == {"item_id": item_id, "issues": []}
