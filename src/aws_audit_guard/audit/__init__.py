"""Audit event model and sinks."""

from __future__ import annotations

from aws_audit_guard.audit.db import SqliteAuditSink
from aws_audit_guard.audit.models import AuditEvent, AuditQuery, EventKind, Outcome
from aws_audit_guard.audit.sink import AuditSink, AuditSinkError, JsonlAuditSink
from aws_audit_guard.config import StorageSettings


def open_sink(settings: StorageSettings) -> AuditSink:
    """Open the configured audit sink. The caller owns it and must close it."""
    if settings.backend == "sqlite":
        return SqliteAuditSink(settings.sqlite_path, wal=settings.sqlite_wal)
    return JsonlAuditSink(settings.audit_log_path)


__all__ = [
    "AuditEvent",
    "AuditQuery",
    "AuditSink",
    "AuditSinkError",
    "EventKind",
    "JsonlAuditSink",
    "Outcome",
    "SqliteAuditSink",
    "open_sink",
]
