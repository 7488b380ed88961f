from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import MappingProxyType

import pytest

from aws_audit_guard.utils.concurrency import call_blocking
from aws_audit_guard.utils.hashing import request_hash
from aws_audit_guard.utils.jsonschema import validate_payload_structured
from aws_audit_guard.utils.masking import redact_sensitive_fields, sanitize_log_value
from aws_audit_guard.utils.serialization import json_default, to_plain, truncate_json
from aws_audit_guard.utils.time import parse_duration, parse_iso


def test_validate_payload_structured():
    schema = {
        "type": "object",
        "properties": {
            "a": {"type": "integer"},
            "b": {"enum": ["x", "y"]},
            "c": {"type": "string", "minLength": 5},
        },
        "required": ["a"],
    }

    # Valid
    assert validate_payload_structured(schema, {"a": 1}) == []

    # Invalid: missing required
    errors = validate_payload_structured(schema, {})
    assert len(errors) == 1
    assert errors[0].type == "missing_required"
    assert errors[0].path == "a"

    # Invalid: type mismatch
    errors = validate_payload_structured(schema, {"a": "bad"})
    assert len(errors) == 1
    assert errors[0].type == "invalid_type"
    assert errors[0].got == "str"

    # Invalid: enum
    errors = validate_payload_structured(schema, {"a": 1, "b": "z"})
    assert len(errors) == 1
    assert errors[0].type == "enum_violation"

    # Invalid: minLength
    errors = validate_payload_structured(schema, {"a": 1, "c": "abc"})
    assert len(errors) == 1
    assert errors[0].type == "min_length_violation"


def test_validate_payload_structured_orders_mixed_paths():
    schema = {
        "type": "object",
        "properties": {
            "items": {"type": "array", "items": {"type": "integer"}},
            "name": {"type": "string"},
        },
    }

    errors = validate_payload_structured(schema, {"items": [1, "x", "y"], "name": 3})

    assert [e.path for e in errors] == ["items.1", "items.2", "name"]


def test_violation_to_dict_drops_empty_fields():
    (violation,) = validate_payload_structured(
        {"type": "object", "required": ["k"]}, {}
    )

    assert set(violation.to_dict()) == {"type", "message", "path", "expected", "hint"}


def test_json_default():
    dt = datetime(2023, 1, 1, tzinfo=timezone.utc)
    assert json_default(dt) == dt.isoformat()
    assert json_default(Decimal("10")) == 10
    assert json_default(Decimal("10.5")) == 10.5
    assert json_default(b"hello") == "hello"
    assert json_default(b"\xff\xfe") == "//4="
    assert json_default(MappingProxyType({"a": 1})) == {"a": 1}
    assert json_default(frozenset({1})) == [1]


def test_to_plain_normalizes_sdk_values():
    value = {"when": datetime(2023, 1, 1, tzinfo=timezone.utc), "ids": ("a", "b")}

    assert to_plain(value) == {"when": "2023-01-01T00:00:00+00:00", "ids": ["a", "b"]}


def test_truncate_json():
    assert truncate_json({"a": 1}, 100) == '{"a": 1}'
    truncated = truncate_json({"a": "x" * 50}, 20)
    assert len(truncated) == 20
    assert truncated.endswith("...")


def test_redact_sensitive_fields():
    value = {
        "Bucket": "b",
        "SecretAccessKey": "s3cr3t",
        "nested": [{"session_token": "t", "Name": "ok"}],
        "Authorization": "Bearer abc",
    }

    assert redact_sensitive_fields(value) == {
        "Bucket": "b",
        "SecretAccessKey": "***",
        "nested": [{"session_token": "***", "Name": "ok"}],
        "Authorization": "***",
    }


def test_redact_sensitive_fields_depth_limit():
    deep: dict = {}
    cursor = deep
    for _ in range(30):
        cursor["child"] = {}
        cursor = cursor["child"]

    redacted = redact_sensitive_fields(deep, max_depth=3)

    assert redacted == {"child": {"child": {"child": "***"}}}


def test_sanitize_log_value():
    assert sanitize_log_value("line1\nline2\r\x00") == "line1_line2__"
    assert sanitize_log_value("tab\tkept") == "tab\tkept"


def test_request_hash_is_order_independent():
    first = request_hash("storage", "put", {"a": 1, "b": 2})
    second = request_hash("storage", "put", {"b": 2, "a": 1})

    assert first == second
    assert first.startswith("sha256:")
    assert request_hash("storage", "get", {"a": 1, "b": 2}) != first


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("5m", timedelta(minutes=5)),
        ("30s", timedelta(seconds=30)),
        ("250ms", timedelta(milliseconds=250)),
        ("1h", timedelta(hours=1)),
        ("2d", timedelta(days=2)),
        ("45", timedelta(seconds=45)),
        (90, timedelta(seconds=90)),
        (timedelta(minutes=1), timedelta(minutes=1)),
    ],
)
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


@pytest.mark.parametrize("raw", ["soon", "5 weeks", True, ""])
def test_parse_duration_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_parse_iso_treats_naive_as_utc():
    assert parse_iso("2026-01-01T12:00:00") == datetime(2026, 1, 1, 12, tzinfo=timezone.utc)
    assert parse_iso("2026-01-01T12:00:00Z").tzinfo is not None


@pytest.mark.asyncio
async def test_call_blocking_runs_sync_and_async_callables():
    async def coro(value):
        return value * 2

    assert await call_blocking(lambda value: value + 1, 1) == 2
    assert await call_blocking(coro, 4) == 8
