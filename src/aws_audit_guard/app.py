"""Application context assembly."""

from __future__ import annotations

from dataclasses import dataclass

from aws_audit_guard.audit import AuditSink, open_sink
from aws_audit_guard.config import Settings, load_settings
from aws_audit_guard.execution.aws_client import Boto3Connector
from aws_audit_guard.execution.executor import OperationExecutor
from aws_audit_guard.execution.schemas import OperationRegistry, load_operations
from aws_audit_guard.execution.session import Connector, SessionManager
from aws_audit_guard.monitor.engine import SecurityMonitor
from aws_audit_guard.monitor.loader import build_channels, load_alerting


@dataclass
class AppContext:
    """Process-wide dependency container.

    The audit sink is opened when the context is built and closed by
    ``close()``; every component receives it explicitly.
    """

    settings: Settings
    sink: AuditSink
    registry: OperationRegistry
    sessions: SessionManager
    executor: OperationExecutor

    def build_monitor(self) -> SecurityMonitor:
        alerting = load_alerting(self.settings.monitor.rules_path)
        return SecurityMonitor(
            self.sink,
            alerting.rules,
            build_channels(alerting),
            interval_seconds=self.settings.monitor.interval_seconds,
            backoff_seconds=self.settings.monitor.backoff_seconds,
        )

    def close(self) -> None:
        self.sink.close()


def build_app_context(
    settings: Settings | None = None,
    connector: Connector | None = None,
) -> AppContext:
    settings = settings or load_settings()
    registry = load_operations(settings.execution.operations_path)
    sink = open_sink(settings.storage)
    connector = connector or Boto3Connector(settings.aws, settings.execution)
    return AppContext(
        settings=settings,
        sink=sink,
        registry=registry,
        sessions=SessionManager(connector, sink, actor=settings.actor),
        executor=OperationExecutor(sink, registry, settings.execution, actor=settings.actor),
    )
