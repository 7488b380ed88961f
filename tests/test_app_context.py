from __future__ import annotations

import pytest

from aws_audit_guard.app import build_app_context
from aws_audit_guard.audit.db import SqliteAuditSink
from aws_audit_guard.audit.models import AuditQuery, EventKind
from aws_audit_guard.audit.sink import AuditSinkError, JsonlAuditSink
from aws_audit_guard.config import Settings
from aws_audit_guard.execution.executor import OperationRequest
from aws_audit_guard.monitor.engine import MonitorState
from fakes import FakeConnector, make_event


def _settings(tmp_path, backend: str = "jsonl") -> Settings:
    rules = tmp_path / "rules.yaml"
    rules.write_text(
        "rules:\n"
        "  - name: any-failure\n"
        "    event_kind: operation_failure\n"
        "    threshold: 1\n"
        "    window: 5m\n"
        "    channels: [log]\n"
        "channels:\n"
        "  log: {kind: log}\n",
        encoding="utf-8",
    )
    operations = tmp_path / "operations.yaml"
    operations.write_text(
        "services:\n  storage:\n    list:\n      resource: bucket\n", encoding="utf-8"
    )
    return Settings.model_validate(
        {
            "actor": "ci",
            "storage": {
                "backend": backend,
                "audit_log_path": str(tmp_path / "audit.jsonl"),
                "sqlite_path": str(tmp_path / "audit.sqlite"),
            },
            "execution": {"operations_path": str(operations)},
            "monitor": {"rules_path": str(rules), "interval_seconds": 5, "backoff_seconds": 10},
        }
    )


@pytest.mark.parametrize(
    ("backend", "sink_type"), [("jsonl", JsonlAuditSink), ("sqlite", SqliteAuditSink)]
)
def test_context_opens_configured_sink(tmp_path, backend, sink_type) -> None:
    ctx = build_app_context(_settings(tmp_path, backend), connector=FakeConnector())
    try:
        assert isinstance(ctx.sink, sink_type)
        assert ctx.registry.get("storage", "list") is not None
    finally:
        ctx.close()

    with pytest.raises(AuditSinkError):
        ctx.sink.append(make_event())


@pytest.mark.asyncio
async def test_components_share_one_sink(tmp_path) -> None:
    ctx = build_app_context(_settings(tmp_path), connector=FakeConnector())
    try:
        async with ctx.sessions.session("storage", "r1") as session:
            await ctx.executor.execute(session, OperationRequest("list", {"bucket": "b"}))

        kinds = [event.kind for event in ctx.sink.query(AuditQuery())]
        assert kinds == [
            EventKind.SESSION_START,
            EventKind.OPERATION_SUCCESS,
            EventKind.SESSION_END,
        ]
        assert {event.actor for event in ctx.sink.query()} == {"ci"}
    finally:
        ctx.close()


def test_build_monitor_uses_configured_rules(tmp_path) -> None:
    ctx = build_app_context(_settings(tmp_path), connector=FakeConnector())
    try:
        monitor = ctx.build_monitor()
        assert [rule.name for rule in monitor.rules] == ["any-failure"]
        assert monitor.state is MonitorState.IDLE
    finally:
        ctx.close()
