"""
Tests for JSON structured logging, trace ids and secret redaction.
"""

import json
import logging

from dynaproxy.core.structured_logger import (
    StructuredLogger,
    TraceContext,
    current_trace_id,
    get_logger,
    redact_headers,
)


def _last_entry(caplog) -> dict:
    return json.loads(caplog.records[-1].getMessage())


class TestStructuredLogger:
    def test_emits_json_with_component_and_fields(self, caplog):
        logger = get_logger("Forwarder")

        with caplog.at_level(logging.INFO, logger="dynaproxy"):
            logger.info("Proxying request", method="GET", target="http://localhost:8001/")

        entry = _last_entry(caplog)
        assert entry["component"] == "Forwarder"
        assert entry["message"] == "Proxying request"
        assert entry["method"] == "GET"
        assert entry["level"] == "INFO"
        assert caplog.records[-1].name == "dynaproxy.Forwarder"

    def test_trace_id_included_inside_context(self, caplog):
        logger = StructuredLogger("Test")

        with caplog.at_level(logging.INFO, logger="dynaproxy"):
            with TraceContext("req-42") as trace_id:
                logger.info("inside")
            logger.info("outside")

        inside, outside = (json.loads(r.getMessage()) for r in caplog.records[-2:])
        assert trace_id == "req-42"
        assert inside["trace_id"] == "req-42"
        assert "trace_id" not in outside

    def test_api_keys_are_redacted(self, caplog):
        logger = StructuredLogger("Test")

        with caplog.at_level(logging.INFO, logger="dynaproxy"):
            logger.info("Using key sk-ant-abc123", header="Bearer abc.def")

        assert "sk-ant-abc123" not in caplog.text
        assert "abc.def" not in caplog.text

    def test_disabled_level_emits_nothing(self, caplog):
        logger = StructuredLogger("Quiet")

        with caplog.at_level(logging.WARNING, logger="dynaproxy"):
            logger.debug("hidden")

        assert not [r for r in caplog.records if r.name == "dynaproxy.Quiet"]


class TestTraceContext:
    def test_generates_short_id(self):
        with TraceContext() as trace_id:
            assert len(trace_id) == 8
            assert current_trace_id() == trace_id
        assert current_trace_id() is None


def test_redact_headers_masks_credentials_only():
    headers = {"Authorization": "Bearer x", "Cookie": "a=b", "X-Api-Key": "k", "Accept": "*/*"}

    assert redact_headers(headers) == {
        "Authorization": "[REDACTED]",
        "Cookie": "[REDACTED]",
        "X-Api-Key": "[REDACTED]",
        "Accept": "*/*",
    }
