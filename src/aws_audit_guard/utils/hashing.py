"""Hashing helpers."""

from __future__ import annotations

import hashlib
import json

from aws_audit_guard.utils.serialization import json_default


def sha256_bytes(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def request_hash(service: str, operation: str, params: object) -> str:
    """Stable fingerprint of a request, independent of parameter ordering."""
    material = json.dumps(
        {"service": service, "operation": operation, "params": params},
        sort_keys=True,
        ensure_ascii=True,
        default=json_default,
    )
    return sha256_bytes(material.encode("utf-8"))
