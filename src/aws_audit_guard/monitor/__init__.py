"""Threshold alerting over the audit event stream."""

from __future__ import annotations

from aws_audit_guard.monitor.channels import (
    ChannelDispatchError,
    LogChannel,
    MessagePostChannel,
    NotificationChannel,
    PagerChannel,
    WebhookChannel,
)
from aws_audit_guard.monitor.engine import MonitorState, SecurityMonitor
from aws_audit_guard.monitor.loader import AlertingConfig, build_channels, load_alerting
from aws_audit_guard.monitor.rules import Alert, AlertRule

__all__ = [
    "Alert",
    "AlertRule",
    "AlertingConfig",
    "ChannelDispatchError",
    "LogChannel",
    "MessagePostChannel",
    "MonitorState",
    "NotificationChannel",
    "PagerChannel",
    "SecurityMonitor",
    "WebhookChannel",
    "build_channels",
    "load_alerting",
]
