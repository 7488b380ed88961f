"""Loader for alert_rules.yaml.

Rules and channels are read once when the monitor starts; changes to the
file take effect on restart.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from aws_audit_guard.monitor.channels import (
    LogChannel,
    MessagePostChannel,
    NotificationChannel,
    PagerChannel,
    WebhookChannel,
)
from aws_audit_guard.monitor.rules import AlertRule

logger = logging.getLogger(__name__)


class ChannelConfig(BaseModel):
    kind: Literal["log", "message", "webhook", "pager"] = Field(default="log")
    url: str | None = None
    routing_key: str | None = None
    severity: str = Field(default="critical")
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)

    @field_validator("headers", mode="before")
    @classmethod
    def _validate_headers(cls, v: Any) -> dict:
        return v or {}

    @model_validator(mode="after")
    def _check_transport(self) -> ChannelConfig:
        if self.kind != "log" and not self.url:
            raise ValueError(f"channel kind '{self.kind}' requires a url")
        if self.kind == "pager" and not self.routing_key:
            raise ValueError("channel kind 'pager' requires a routing_key")
        return self


class AlertingConfig(BaseModel):
    rules: list[AlertRule] = Field(default_factory=list)
    channels: dict[str, ChannelConfig] = Field(default_factory=dict)

    @field_validator("rules", mode="before")
    @classmethod
    def _validate_rules(cls, v: Any) -> list:
        return v or []

    @field_validator("channels", mode="before")
    @classmethod
    def _validate_channels(cls, v: Any) -> dict:
        return v or {}

    @model_validator(mode="after")
    def _check_rule_names(self) -> AlertingConfig:
        names = [rule.name for rule in self.rules]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate rule names: {', '.join(duplicates)}")
        return self

    @classmethod
    def from_yaml(cls, data: object) -> AlertingConfig:
        # A bare list is shorthand for a rules-only file.
        if isinstance(data, list):
            data = {"rules": data}
        return cls.model_validate(data)


def build_channel(channel_id: str, config: ChannelConfig) -> NotificationChannel:
    if config.kind == "message":
        return MessagePostChannel(
            channel_id, config.url, timeout=config.timeout_seconds, headers=config.headers
        )
    if config.kind == "webhook":
        return WebhookChannel(
            channel_id, config.url, timeout=config.timeout_seconds, headers=config.headers
        )
    if config.kind == "pager":
        return PagerChannel(
            channel_id,
            config.url,
            routing_key=config.routing_key,
            severity=config.severity,
            timeout=config.timeout_seconds,
            headers=config.headers,
        )
    return LogChannel(channel_id)


def build_channels(config: AlertingConfig) -> dict[str, NotificationChannel]:
    """Instantiate configured channels.

    Channel ids referenced by a rule but not configured fall back to a
    ``LogChannel`` so the alert still reaches the operational log.
    """
    channels = {
        channel_id: build_channel(channel_id, channel_config)
        for channel_id, channel_config in config.channels.items()
    }
    for rule in config.rules:
        for channel_id in rule.channels:
            if channel_id not in channels:
                logger.warning(
                    "Rule %s references unconfigured channel %s; using log channel",
                    rule.name,
                    channel_id,
                )
                channels[channel_id] = LogChannel(channel_id)
    return channels


def load_alerting(path: str) -> AlertingConfig:
    rules_path = Path(path)
    if not rules_path.exists():
        raise FileNotFoundError(f"Alert rules file not found: {rules_path}")
    with rules_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return AlertingConfig.from_yaml(data)
