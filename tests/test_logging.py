"""
Tests for log sanitizing and request log levels.
"""

import json
import logging

import pytest
from fastapi import Request, Response

from cinema_pos.middleware.logging import LoggingMiddleware
from cinema_pos.utils.auth import create_operator_token
from cinema_pos.utils.logging_config import JSONFormatter, SensitiveDataFilter


class RecordingHandler(logging.Handler):
    def __init__(self):
        super().__init__(level=logging.DEBUG)
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def middleware_records():
    target = logging.getLogger("cinema_pos.middleware.logging")
    handler = RecordingHandler()
    previous = target.level
    target.addHandler(handler)
    target.setLevel(logging.DEBUG)
    yield handler.records
    target.removeHandler(handler)
    target.setLevel(previous)


def make_request(method: str, path: str) -> Request:
    return Request({
        "type": "http",
        "method": method,
        "path": path,
        "headers": [],
        "query_string": b"",
    })


def make_record(msg, **extra) -> logging.LogRecord:
    record = logging.LogRecord("cinema_pos.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSensitiveDataFilter:
    def test_masks_tokens_in_messages(self):
        token = create_operator_token("cashier-1", "T1").access_token
        record = make_record(f"Bearer {token} rejected")

        SensitiveDataFilter().filter(record)

        assert token not in record.msg
        assert "***MASKED***" in record.msg

    def test_masks_holder_and_authorization_fields(self):
        record = make_record(
            "Seat held",
            details={"seat_id": "A1", "holder": "sess-123", "headers": {"Authorization": "Bearer x"}},
        )

        SensitiveDataFilter().filter(record)

        assert record.details["seat_id"] == "A1"
        assert record.details["holder"] == "***MASKED***"
        assert record.details["headers"]["Authorization"] == "***MASKED***"


def test_json_formatter_keeps_extra_fields():
    record = make_record("Business event: seat_held", event_type="seat_held", seat_id="A1")
    record.request_id = "req-1"

    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "Business event: seat_held"
    assert entry["request_id"] == "req-1"
    assert entry["extra"] == {"event_type": "seat_held", "seat_id": "A1"}


class TestRequestLogLevels:
    def test_seat_conflict_is_not_a_warning(self, middleware_records):
        middleware = LoggingMiddleware(app=None)

        middleware._log_response(make_request("POST", "/api/v1/rooms/hold-seat"), Response(status_code=409), "r1", 0.01)

        assert [r.levelno for r in middleware_records] == [logging.INFO]

    def test_other_client_errors_warn(self, middleware_records):
        middleware = LoggingMiddleware(app=None)

        middleware._log_response(make_request("GET", "/api/v1/rooms/unknown"), Response(status_code=404), "r1", 0.01)

        assert [r.levelno for r in middleware_records] == [logging.WARNING]

    def test_slow_request_adds_warning(self, middleware_records):
        middleware = LoggingMiddleware(app=None)

        middleware._log_response(
            make_request("POST", "/api/v1/bookings"),
            Response(status_code=201),
            "r1",
            LoggingMiddleware.SLOW_REQUEST_SECONDS + 1,
        )

        assert [r.levelno for r in middleware_records] == [logging.INFO, logging.WARNING]
        assert middleware_records[-1].slow_request is True

    def test_seat_event_stream_logged_once_on_open(self, middleware_records):
        middleware = LoggingMiddleware(app=None)

        middleware._log_request(make_request("GET", "/api/v1/showtimes/s1/seat-events"), "r1")

        assert middleware_records[0].getMessage().startswith("Seat event stream opened")
