"""Data models for audit events and queries."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import uuid4

from aws_audit_guard.utils.serialization import to_plain
from aws_audit_guard.utils.time import parse_iso, utc_now_iso


class EventKind(str, Enum):
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    OPERATION_SUCCESS = "operation_success"
    OPERATION_FAILURE = "operation_failure"
    ALERT_DISPATCHED = "alert_dispatched"
    ALERT_DISPATCH_FAILURE = "alert_dispatch_failure"


class Outcome(str, Enum):
    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    CLIENT_ERROR = "client_error"
    TRANSPORT_ERROR = "transport_error"
    UNEXPECTED_ERROR = "unexpected_error"
    CONNECTION_ERROR = "connection_error"
    ALERT_DISPATCH_FAILURE = "alert_dispatch_failure"


_RECORD_FIELDS = (
    "event_id",
    "timestamp",
    "kind",
    "actor",
    "resource",
    "outcome",
    "error_code",
    "duration_ms",
    "session_id",
    "payload",
)


@dataclass(frozen=True)
class AuditEvent:
    """Immutable record of one lifecycle or operation outcome."""

    kind: EventKind
    actor: str
    resource: str
    outcome: Outcome
    error_code: str | None = None
    duration_ms: int | None = None
    session_id: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", EventKind(self.kind))
        object.__setattr__(self, "outcome", Outcome(self.outcome))
        # Payloads are stored as JSON-native values so a stored event compares
        # equal to the event that was appended.
        object.__setattr__(self, "payload", MappingProxyType(to_plain(dict(self.payload))))

    @property
    def occurred_at(self) -> datetime:
        return parse_iso(self.timestamp)

    def to_record(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "kind": self.kind.value,
            "actor": self.actor,
            "resource": self.resource,
            "outcome": self.outcome.value,
            "error_code": self.error_code,
            "duration_ms": self.duration_ms,
            "session_id": self.session_id,
            "payload": dict(self.payload),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> AuditEvent:
        missing = [name for name in _RECORD_FIELDS if name not in record]
        if missing:
            raise ValueError(f"Audit record is missing fields: {', '.join(missing)}")
        return cls(**{name: record[name] for name in _RECORD_FIELDS})


@dataclass(frozen=True)
class AuditQuery:
    """Filter for ``AuditSink.query``. Unset attributes match everything.

    ``since`` and ``until`` are inclusive bounds on the event timestamp.
    """

    kinds: frozenset[EventKind] | None = None
    outcomes: frozenset[Outcome] | None = None
    since: datetime | None = None
    until: datetime | None = None
    session_id: str | None = None
    actor: str | None = None
    event_id: str | None = None

    @classmethod
    def for_kinds(cls, kinds: Iterable[EventKind | str], **kwargs: Any) -> AuditQuery:
        return cls(kinds=frozenset(EventKind(k) for k in kinds), **kwargs)

    def matches(self, event: AuditEvent) -> bool:
        if self.event_id is not None and event.event_id != self.event_id:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.outcomes is not None and event.outcome not in self.outcomes:
            return False
        if self.session_id is not None and event.session_id != self.session_id:
            return False
        if self.actor is not None and event.actor != self.actor:
            return False
        if self.since is not None or self.until is not None:
            occurred = event.occurred_at
            if self.since is not None and occurred < self.since:
                return False
            if self.until is not None and occurred > self.until:
                return False
        return True
