"""
Pytest 配置和 fixtures
"""
import pytest
import pytest_asyncio

from fs_core.database import DatabaseManager
from fs_core.document_store import InMemoryDocumentStore, SqlDocumentStore
from fs_core.services import ReconciliationService
from .factories import RecordingEventBus


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def service(store, event_bus) -> ReconciliationService:
    return ReconciliationService(store, event_bus)


@pytest.fixture
def seed_item(store):
    """写入一条库存物品，返回物品ID"""
    async def _seed(locations=None, quantity=None, item_id="item-1", **extra) -> str:
        locations = locations or []
        if quantity is None:
            quantity = sum(row["quantity"] for row in locations)
        fields = {
            "name": "Extintor 6kg",
            "sku": "EXT-6",
            "category": "safety",
            "quantity": quantity,
            "locations": locations,
            **extra,
        }
        return await store.add_item("inventory", fields, doc_id=item_id)
    return _seed


@pytest_asyncio.fixture
async def db_manager():
    """数据库管理器 fixture；没有可用的 PostgreSQL 时跳过"""
    manager = DatabaseManager()
    if not await manager.check_connection():
        await manager.close()
        pytest.skip("PostgreSQL is not available")

    await manager.create_tables()
    yield manager

    await manager.drop_tables()
    await manager.close()


@pytest.fixture
def sql_store(db_manager) -> SqlDocumentStore:
    return SqlDocumentStore(db_manager)
