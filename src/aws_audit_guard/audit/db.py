"""SQLite audit sink."""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Mapping, Sequence

from aws_audit_guard.audit.models import AuditEvent, AuditQuery
from aws_audit_guard.audit.sink import AuditSinkError
from aws_audit_guard.utils.serialization import json_default

_SqlValue = str | bytes | int | float | None
_SqlParams = Sequence[_SqlValue] | Mapping[str, _SqlValue]

_QUERY_BATCH_SIZE = 500


class SqliteAuditSink:
    """Audit events in an append-only SQLite table.

    ``seq`` preserves append order. Update and delete are rejected by
    triggers, so stored history cannot be rewritten through this connection
    or any other.
    """

    durable = True

    def __init__(self, path: str, wal: bool = True) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=FULL")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS audit_events (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id TEXT NOT NULL UNIQUE,
                timestamp TEXT NOT NULL,
                kind TEXT NOT NULL,
                actor TEXT NOT NULL,
                resource TEXT NOT NULL,
                outcome TEXT NOT NULL,
                error_code TEXT,
                duration_ms INTEGER,
                session_id TEXT,
                payload TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_audit_events_kind_seq
                ON audit_events(kind, seq);
            CREATE INDEX IF NOT EXISTS idx_audit_events_session_id
                ON audit_events(session_id);

            CREATE TRIGGER IF NOT EXISTS audit_events_no_update
                BEFORE UPDATE ON audit_events
                BEGIN SELECT RAISE(ABORT, 'audit events are immutable'); END;

            CREATE TRIGGER IF NOT EXISTS audit_events_no_delete
                BEFORE DELETE ON audit_events
                BEGIN SELECT RAISE(ABORT, 'audit events are immutable'); END;
            """
        )
        self._conn.commit()

    def fetch_one(self, query: str, params: _SqlParams) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchone()

    def append(self, event: AuditEvent) -> None:
        record = event.to_record()
        with self._lock:
            if self._closed:
                raise AuditSinkError("Audit sink is closed")
            try:
                self._conn.execute(
                    """
                    INSERT INTO audit_events (
                        event_id, timestamp, kind, actor, resource, outcome,
                        error_code, duration_ms, session_id, payload
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record["event_id"],
                        record["timestamp"],
                        record["kind"],
                        record["actor"],
                        record["resource"],
                        record["outcome"],
                        record["error_code"],
                        record["duration_ms"],
                        record["session_id"],
                        json.dumps(record["payload"], ensure_ascii=False, default=json_default),
                    ),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise AuditSinkError(f"Failed to append audit event: {exc}") from exc

    def query(self, query: AuditQuery | None = None) -> Iterator[AuditEvent]:
        if self._closed:
            raise AuditSinkError("Audit sink is closed")
        return self._iter_events(query or AuditQuery())

    def _iter_events(self, query: AuditQuery) -> Iterator[AuditEvent]:
        clauses = ["seq > ?"]
        filters: list[_SqlValue] = []
        if query.kinds is not None:
            if not query.kinds:
                return
            clauses.append(f"kind IN ({','.join('?' for _ in query.kinds)})")
            filters.extend(sorted(kind.value for kind in query.kinds))
        if query.session_id is not None:
            clauses.append("session_id = ?")
            filters.append(query.session_id)
        if query.event_id is not None:
            clauses.append("event_id = ?")
            filters.append(query.event_id)
        sql = (
            f"SELECT * FROM audit_events WHERE {' AND '.join(clauses)} "
            f"ORDER BY seq LIMIT {_QUERY_BATCH_SIZE}"
        )

        last_seq = 0
        while True:
            with self._lock:
                if self._closed:
                    raise AuditSinkError("Audit sink closed during query")
                rows = self._conn.execute(sql, [last_seq, *filters]).fetchall()
            for row in rows:
                last_seq = row["seq"]
                event = self._row_to_event(row)
                if query.matches(event):
                    yield event
            if len(rows) < _QUERY_BATCH_SIZE:
                return

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> AuditEvent:
        data = dict(row)
        data.pop("seq")
        data["payload"] = json.loads(data["payload"])
        return AuditEvent.from_record(data)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True
