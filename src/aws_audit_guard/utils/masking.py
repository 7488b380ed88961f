"""Sensitive-field masking for audit payloads and log lines.

``redact_sensitive_fields`` replaces values whose keys match a sensitive
marker. The executor applies it to request parameters before they are
written to the audit trail.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

_MAX_REDACT_DEPTH = 20

# Substring match, case-insensitive.
SENSITIVE_KEY_MARKERS: tuple[str, ...] = (
    "password",
    "secret",
    "token",
    "accesskey",
    "sessiontoken",
    "apikey",
    "credential",
    "authorization",
    "routingkey",
)

# Control characters are replaced to prevent log injection.
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")


def _is_sensitive(key: str) -> bool:
    normalized = key.lower().replace("_", "").replace("-", "")
    return any(marker in normalized for marker in SENSITIVE_KEY_MARKERS)


def redact_sensitive_fields(
    value: object,
    *,
    mask: str = "***",
    depth: int = 0,
    max_depth: int = _MAX_REDACT_DEPTH,
) -> object:
    """Recursively replace sensitive values in mappings and lists.

    When ``max_depth`` is exceeded the entire sub-tree is replaced with *mask*.
    """
    if depth >= max_depth:
        return mask
    if isinstance(value, Mapping):
        redacted: dict[str, object] = {}
        for key, val in value.items():
            if _is_sensitive(str(key)):
                redacted[key] = mask
            else:
                redacted[key] = redact_sensitive_fields(
                    val, mask=mask, depth=depth + 1, max_depth=max_depth,
                )
        return redacted
    if isinstance(value, (list, tuple)):
        return [
            redact_sensitive_fields(
                item, mask=mask, depth=depth + 1, max_depth=max_depth,
            )
            for item in value
        ]
    return value


def sanitize_log_value(value: str) -> str:
    return _CONTROL_CHAR_RE.sub("_", value)
