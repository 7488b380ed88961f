"""JSON serialization utilities."""

from __future__ import annotations

import base64
import datetime
import decimal
import json
from collections.abc import Mapping
from types import MappingProxyType


def json_default(obj: object) -> object:
    """JSON serializer for SDK values not serializable by the json module."""
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, decimal.Decimal):
        if obj == obj.to_integral_value():
            return int(obj)
        f = float(obj)
        if decimal.Decimal(str(f)) != obj:
            return str(obj)
        return f
    if isinstance(obj, bytes):
        try:
            return obj.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(obj).decode("utf-8")
    if isinstance(obj, MappingProxyType):
        return dict(obj)
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


def to_json_line(record: Mapping[str, object]) -> str:
    """Serialize one record as a single UTF-8 safe JSON line (without newline)."""
    return json.dumps(record, ensure_ascii=False, separators=(",", ":"), default=json_default)


def to_plain(value: object) -> object:
    """Round-trip through JSON so stored payloads hold only JSON-native values."""
    return json.loads(json.dumps(value, ensure_ascii=False, default=json_default))


def truncate_json(payload: object, limit: int) -> str:
    serialized = json.dumps(payload, default=json_default, ensure_ascii=True)
    if len(serialized) <= limit:
        return serialized
    return serialized[: limit - 3] + "..."
