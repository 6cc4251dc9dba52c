"""
FleetStock 日志系统

structlog 和标准库 logging（uvicorn、sqlalchemy 等）共用一条处理链，
由 ProcessorFormatter 统一渲染：json 格式下每条记录是一行合法的 JSON。

字段：ts, level, logger, action, trace_id, portal, user_id，以及调用方传入的
关键字字段（item_id, latency_ms, result, err ...）。
司机上报的事故标题、描述里经常带有联系方式，输出前做脱敏。
"""
import logging
import re
import sys
from typing import Any, Optional

import structlog

# 事故文本中出现的邮箱、电话、凭据
PII_PATTERNS = (
    (re.compile(r"([A-Za-z0-9])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})"), r"\1***@\2"),
    (re.compile(r"(?<![\w-])(?:\+\d{1,3}[\s-]?)?\d{3}[\s-]?\d{3}[\s-]?(\d{3})(?![\w-])"), r"***\1"),
    (re.compile(r"(?i)\b(token|api[_-]?key|secret|password)([\"']?\s*[:=]\s*[\"']?)[^\"'\s,}]+"), r"\1\2***"),
)

NOISY_LOGGERS = ("asyncio", "uvicorn.access", "sqlalchemy.engine")


def mask_text(text: str) -> str:
    for pattern, replacement in PII_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _mask(value: Any) -> Any:
    if isinstance(value, str):
        return mask_text(value)
    if isinstance(value, dict):
        return {key: _mask(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_mask(item) for item in value]
    return value


def mask_pii(logger, method_name, event_dict):
    """递归脱敏所有字符串字段"""
    return {
        key: value if key.startswith("_") else _mask(value)
        for key, value in event_dict.items()
    }


def rename_fields(logger, method_name, event_dict):
    """event -> action, exception -> err"""
    event_dict["action"] = event_dict.pop("event", None)
    if "exception" in event_dict:
        event_dict["err"] = event_dict.pop("exception")
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "json", enable_pii_masking: bool = True) -> None:
    """配置日志系统，输出到 stdout"""
    level = getattr(logging, log_level.upper())

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if enable_pii_masking:
        shared_processors.append(mask_pii)
    shared_processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"))

    if log_format == "json":
        renderers = [
            structlog.processors.format_exc_info,
            rename_fields,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *renderers],
    ))

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取日志记录器"""
    return structlog.get_logger(name)


def log_context(
    trace_id: Optional[str] = None,
    portal: Optional[str] = None,
    user_id: Optional[str] = None,
):
    """绑定请求级别的日志上下文（with 语句内有效），空值不绑定"""
    fields = {"trace_id": trace_id, "portal": portal, "user_id": user_id}
    return structlog.contextvars.bound_contextvars(
        **{key: value for key, value in fields.items() if value}
    )
