"""
Tests for JSON log lines and the request context.
"""
import json
import logging
from datetime import datetime, timezone

from trivyview.utils.log import JsonFormatter
from trivyview.utils.req_ctx import get_req_ctx, new_trace_id, set_req_ctx, update_req_ctx


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="trivyview.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=42,
        msg="archive of %s failed",
        args=("scan.json",),
        exc_info=None,
        func="archive"
    )
    record.__dict__.update(extra)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_common_fields(self):
        line = JsonFormatter().format(make_record())
        data = json.loads(line)

        assert data["level"] == "WARNING"
        assert data["msg"] == "archive of scan.json failed"
        assert data["function"] == "archive"
        assert data["file"].endswith("test_log.py:42")
        assert "trace_id" not in data

    def test_extra_fields_are_kept(self):
        when = datetime(2024, 5, 1, tzinfo=timezone.utc)

        data = json.loads(JsonFormatter({"service": "trivyview"}).format(
            make_record(original_key="active/scan.json", when=when, raw=b"abc")
        ))

        assert data["original_key"] == "active/scan.json"
        assert data["when"] == "2024-05-01T00:00:00+00:00"
        assert data["raw"] == "abc"
        assert data["service"] == "trivyview"

    def test_request_context_is_added(self):
        with set_req_ctx({"trace_id": "t-1", "path": "/api/files", "method": "GET"}):
            data = json.loads(JsonFormatter().format(make_record()))

        assert data["trace_id"] == "t-1"
        assert data["url"] == "/api/files"
        assert data["method"] == "GET"

    def test_exception_is_formatted(self):
        try:
            raise ValueError("boom")
        except ValueError:
            import sys
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestRequestContext:
    """Tests for the request context helpers."""

    def test_context_is_reset(self):
        with set_req_ctx({"trace_id": "t-1"}):
            update_req_ctx(method="POST")
            assert get_req_ctx("method") == "POST"

        assert get_req_ctx("trace_id") is None
        assert get_req_ctx("trace_id", "none") == "none"

    def test_update_without_context_is_ignored(self):
        update_req_ctx(method="POST")
        assert get_req_ctx("method") is None

    def test_trace_id_from_headers(self):
        assert new_trace_id({"X-Request-ID": " abc "}) == "abc"
        assert len(new_trace_id({})) == 32
        assert len(new_trace_id(None)) == 32
