import json
import logging

from mangamachine.core.logging import RequestIdFilter, StructuredJsonFormatter
from mangamachine.core.request_context import log_context, reset_request_id, set_request_id


def _record(msg="hello", **extra):
    record = logging.LogRecord("mangamachine.test", logging.INFO, __file__, 1, msg, None, None)
    record.__dict__.update(extra)
    return record


def test_formatter_includes_context_fields():
    token = set_request_id("req-1")
    try:
        with log_context(panel_number=4, provider="gemini"):
            record = _record(attempt=2)
            RequestIdFilter().filter(record)
    finally:
        reset_request_id(token)

    payload = json.loads(StructuredJsonFormatter().format(record))
    assert payload["message"] == "hello"
    assert payload["request_id"] == "req-1"
    assert payload["panel_number"] == "4"
    assert payload["provider"] == "gemini"
    assert payload["attempt"] == 2


def test_context_is_restored_after_scope():
    with log_context(panel_number=1):
        pass
    record = _record()
    RequestIdFilter().filter(record)
    assert record.panel_number == ""
    assert record.request_id == "unknown"
