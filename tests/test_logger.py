"""
日志输出测试
"""
import contextlib
import io
import json
import logging

import pytest

from fs_core.utils.logger import get_logger, log_context, mask_text, setup_logging


@pytest.fixture
def json_lines():
    # 在 fixture 阶段 pytest 的 stdout 与测试执行阶段不同，这里把 handler 绑定到自己的缓冲区
    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        setup_logging(log_level="INFO", log_format="json")

    def _read():
        return [json.loads(line) for line in buffer.getvalue().splitlines() if line.strip()]

    yield _read
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)


def test_structlog_event_is_one_json_object(json_lines):
    with log_context(trace_id="trace-1", portal="driver"):
        get_logger("fs_core.tests").info("Defect reported", item_id="item-1", partition_index=0)

    record = json_lines()[-1]
    assert record["action"] == "Defect reported"
    assert record["level"] == "info"
    assert record["logger"] == "fs_core.tests"
    assert record["item_id"] == "item-1"
    assert record["trace_id"] == "trace-1"
    assert record["portal"] == "driver"
    assert "user_id" not in record
    assert "ts" in record
    assert "timestamp" not in record


def test_stdlib_record_with_quotes(json_lines):
    logging.getLogger("uvicorn.error").warning('Invalid header "X-Portal"')

    record = json_lines()[-1]
    assert record["action"] == 'Invalid header "X-Portal"'
    assert record["level"] == "warning"
    assert record["logger"] == "uvicorn.error"


def test_exception_is_rendered_as_err(json_lines):
    try:
        raise RuntimeError("deadline exceeded")
    except RuntimeError:
        get_logger("fs_core.tests").error("Linked incident creation failed", exc_info=True)

    record = json_lines()[-1]
    assert "RuntimeError: deadline exceeded" in record["err"]
    assert "exception" not in record


def test_incident_text_is_masked(json_lines):
    get_logger("fs_core.tests").info(
        "Incident created",
        description="Llamar a Ana al +34 612 345 678 o ana.lopez@example.com",
        images=["https://cdn.example.com/a.jpg?token=abc123"],
    )

    record = json_lines()[-1]
    assert "612 345" not in record["description"]
    assert "***678" in record["description"]
    assert "a***@example.com" in record["description"]
    assert "abc123" not in record["images"][0]


def test_identifiers_are_not_masked():
    assert mask_text("3f2a9c1e-7b4d-4e11-9a2f-123456789012") == "3f2a9c1e-7b4d-4e11-9a2f-123456789012"
    assert mask_text("item-1") == "item-1"
