"""
物料状态机

定义物料状态（condition）取值、历史别名归一化规则，以及对账引擎关心的状态转换。
其他状态修改属于管理员自由编辑，不经过这里。
"""
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from fs_core.utils.errors import ValidationError


class MaterialCondition(str, Enum):
    """物料状态"""
    PENDING_MANAGEMENT = "pending_management"
    NEW_FUNCTIONAL = "new_functional"
    WORKING_URGENT_CHANGE = "working_urgent_change"
    TOTALLY_BROKEN = "totally_broken"
    ORDERED = "ordered"
    RESOLVED = "resolved"


class IncidentPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IncidentStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


# 旧版本文档中的状态写法
LEGACY_ALIASES: Dict[str, MaterialCondition] = {
    "new": MaterialCondition.NEW_FUNCTIONAL,
    "ok": MaterialCondition.NEW_FUNCTIONAL,
    "broken": MaterialCondition.TOTALLY_BROKEN,
}

CONDITION_LABELS: Dict[MaterialCondition, str] = {
    MaterialCondition.PENDING_MANAGEMENT: "Pendiente de gestionar",
    MaterialCondition.NEW_FUNCTIONAL: "Nuevo o funcional",
    MaterialCondition.WORKING_URGENT_CHANGE: "Funciona pero urge un cambio",
    MaterialCondition.TOTALLY_BROKEN: "Completamente roto",
    MaterialCondition.ORDERED: "Pedido",
    MaterialCondition.RESOLVED: "Resuelto",
}

# 可以上报为故障的目标状态
DEFECT_CONDITIONS: Tuple[MaterialCondition, ...] = (
    MaterialCondition.TOTALLY_BROKEN,
    MaterialCondition.WORKING_URGENT_CHANGE,
)

# 可以恢复入库的源状态，顺序即启发式查找的优先级
RESTORABLE_CONDITIONS: Tuple[MaterialCondition, ...] = (
    MaterialCondition.TOTALLY_BROKEN,
    MaterialCondition.WORKING_URGENT_CHANGE,
    MaterialCondition.ORDERED,
)

# 司机端只能选择的状态
DRIVER_CONDITIONS: Tuple[MaterialCondition, ...] = (
    MaterialCondition.NEW_FUNCTIONAL,
    MaterialCondition.WORKING_URGENT_CHANGE,
)

_DEFECT_PRIORITY = {
    MaterialCondition.TOTALLY_BROKEN: IncidentPriority.HIGH,
    MaterialCondition.WORKING_URGENT_CHANGE: IncidentPriority.MEDIUM,
}


def is_legacy_status(value: Optional[str]) -> bool:
    """文档中的原始状态是否需要迁移（缺失或旧写法）"""
    return not value or value in LEGACY_ALIASES


def normalize_condition(value: Union[str, MaterialCondition, None]) -> MaterialCondition:
    """归一化状态，缺失视为 new_functional"""
    if isinstance(value, MaterialCondition):
        return value
    if not value:
        return MaterialCondition.NEW_FUNCTIONAL
    if value in LEGACY_ALIASES:
        return LEGACY_ALIASES[value]
    try:
        return MaterialCondition(value)
    except ValueError:
        raise ValidationError(
            code="UNKNOWN_CONDITION",
            detail=f"Unknown material condition: {value!r}"
        )


def require_condition(value: Union[str, MaterialCondition, None]) -> MaterialCondition:
    """调用方必须显式给出状态"""
    if value is None or value == "":
        raise ValidationError(
            code="MISSING_CONDITION",
            detail="A target condition is required"
        )
    return normalize_condition(value)


def _illegal(action: str, current: MaterialCondition, target: Optional[MaterialCondition] = None) -> ValidationError:
    detail = f"Cannot {action} a partition in condition {current.value!r}"
    if target is not None:
        detail += f" (target {target.value!r})"
    return ValidationError(code="ILLEGAL_CONDITION_TRANSITION", detail=detail)


def check_report_defect(current: MaterialCondition, target: MaterialCondition) -> None:
    """上报故障：new_functional → working_urgent_change | totally_broken"""
    if target not in DEFECT_CONDITIONS:
        raise ValidationError(
            code="INVALID_DEFECT_CONDITION",
            detail=f"Defect condition must be one of "
                   f"{[c.value for c in DEFECT_CONDITIONS]}, got {target.value!r}"
        )
    if current != MaterialCondition.NEW_FUNCTIONAL:
        raise _illegal("report a defect on", current, target)


def check_mark_ordered(current: MaterialCondition) -> None:
    """已下单：working_urgent_change | totally_broken → ordered"""
    if current not in DEFECT_CONDITIONS:
        raise _illegal("mark as ordered", current)


def check_restorable(current: MaterialCondition, action: str = "restore") -> None:
    """恢复入库 / 报废 / 送修 的源状态检查"""
    if current not in RESTORABLE_CONDITIONS:
        raise _illegal(action, current)


def priority_for_condition(condition: MaterialCondition) -> IncidentPriority:
    """由故障状态推导事故优先级"""
    return _DEFECT_PRIORITY.get(condition, IncidentPriority.MEDIUM)


def condition_catalog() -> list:
    """状态目录（含显示文案和司机端可选标记）"""
    return [
        {
            "value": condition.value,
            "label": CONDITION_LABELS[condition],
            "driver_selectable": condition in DRIVER_CONDITIONS,
            "restorable": condition in RESTORABLE_CONDITIONS,
        }
        for condition in MaterialCondition
    ]
