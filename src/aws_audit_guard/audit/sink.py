"""Append-only audit sinks.

Every sink is durable before ``append`` returns and exposes a lazy
``query`` that yields events in append order. Appends are serialized with a
lock so a record is never interleaved with another writer's record.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Protocol, runtime_checkable

from aws_audit_guard.audit.models import AuditEvent, AuditQuery
from aws_audit_guard.utils.serialization import to_json_line

logger = logging.getLogger(__name__)


class AuditSinkError(RuntimeError):
    """Raised when the audit sink cannot persist or read events."""


@runtime_checkable
class AuditSink(Protocol):
    """Durable append-only event store.

    ``query`` yields events in append order. An event's ``timestamp`` is taken
    when it is built, before the sink lock, so under concurrent writers append
    order and timestamp order can differ by the time spent waiting for the lock.
    """

    durable: bool

    def append(self, event: AuditEvent) -> None: ...

    def query(self, query: AuditQuery | None = None) -> Iterator[AuditEvent]: ...

    def close(self) -> None: ...


class JsonlAuditSink:
    """Newline-delimited JSON audit log, one self-contained record per line."""

    durable = True

    def __init__(self, path: str, fsync: bool = True) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._fsync = fsync
        self._lock = threading.Lock()
        self._closed = False
        self._repair_torn_tail()
        self._handle = self._path.open("a", encoding="utf-8", newline="\n")

    @property
    def path(self) -> Path:
        return self._path

    def _repair_torn_tail(self) -> None:
        # A crash mid-write leaves a record without its newline; terminate it so
        # the next record starts on a fresh line. Readers skip the torn record.
        if not self._path.exists() or self._path.stat().st_size == 0:
            return
        with self._path.open("rb+") as handle:
            handle.seek(-1, os.SEEK_END)
            if handle.read(1) != b"\n":
                logger.warning("Audit log %s ends with a torn record; terminating it", self._path)
                handle.write(b"\n")

    def append(self, event: AuditEvent) -> None:
        line = to_json_line(event.to_record()) + "\n"
        with self._lock:
            if self._closed:
                raise AuditSinkError("Audit sink is closed")
            try:
                self._handle.write(line)
                self._handle.flush()
                if self._fsync:
                    os.fsync(self._handle.fileno())
            except OSError as exc:
                raise AuditSinkError(f"Failed to append audit event: {exc}") from exc

    def query(self, query: AuditQuery | None = None) -> Iterator[AuditEvent]:
        if self._closed:
            raise AuditSinkError("Audit sink is closed")
        return self._iter_events(query or AuditQuery())

    def _iter_events(self, query: AuditQuery) -> Iterator[AuditEvent]:
        if not self._path.exists():
            return
        # Only newline-terminated records are decoded.
        with self._path.open("rb") as handle:
            for lineno, raw in enumerate(handle, start=1):
                if not raw.endswith(b"\n"):
                    # Record still being written by a concurrent appender.
                    return
                if not raw.strip():
                    continue
                try:
                    event = AuditEvent.from_record(json.loads(raw.decode("utf-8")))
                except (ValueError, TypeError) as exc:
                    logger.warning(
                        "Skipping unreadable audit record %s:%d: %s", self._path, lineno, exc
                    )
                    continue
                if query.matches(event):
                    yield event

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._handle.close()
            self._closed = True

    def __enter__(self) -> JsonlAuditSink:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
