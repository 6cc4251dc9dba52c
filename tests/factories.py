"""
测试数据和替身
"""
import uuid
from typing import Any, Dict, List, Optional, Tuple


class RecordingEventBus:
    """记录发布的事件，代替 Redis 事件总线"""

    def __init__(self, fail: bool = False):
        self.events: List[Tuple[str, Dict[str, Any], Optional[str]]] = []
        self.fail = fail

    async def publish(self, topic: str, payload: Dict[str, Any], key: Optional[str] = None) -> str:
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.events.append((topic, payload, key))
        return str(uuid.uuid4())

    def topics(self) -> List[str]:
        return [topic for topic, _, _ in self.events]


def row(location_type: str, location_id: Optional[str], quantity: int, status: str = "new_functional") -> Dict[str, Any]:
    """台账行的文档形式"""
    return {"type": location_type, "id": location_id, "quantity": quantity, "status": status}
