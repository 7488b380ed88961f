"""Alert rule and alert definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from aws_audit_guard.audit.models import EventKind, Outcome
from aws_audit_guard.utils.time import parse_duration, utc_now


class AlertRule(BaseModel):
    """Threshold-and-window condition over audit events.

    Fires when at least ``threshold`` events of ``event_kind`` (optionally
    restricted to ``outcome``) fall inside the trailing ``window``.
    """

    name: str = ""
    event_kind: EventKind
    threshold: int = Field(ge=1)
    window: timedelta
    channels: list[str] = Field(default_factory=list)
    outcome: Outcome | None = None

    @field_validator("window", mode="before")
    @classmethod
    def _parse_window(cls, value: Any) -> timedelta:
        window = parse_duration(value)
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        return window

    @field_validator("channels", mode="before")
    @classmethod
    def _validate_channels(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(item) for item in value]

    @model_validator(mode="after")
    def _default_name(self) -> AlertRule:
        if not self.name:
            suffix = f":{self.outcome.value}" if self.outcome else ""
            seconds = int(self.window.total_seconds())
            self.name = f"{self.event_kind.value}{suffix}>={self.threshold}/{seconds}s"
        return self


@dataclass(frozen=True)
class Alert:
    rule: AlertRule
    count: int
    window_start: datetime
    window_end: datetime
    alert_id: str = field(default_factory=lambda: uuid4().hex)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def dedup_key(self) -> str:
        return f"{self.rule.name}@{self.window_start.isoformat()}"

    @property
    def summary(self) -> str:
        return (
            f"{self.count} {self.rule.event_kind.value} events within "
            f"{int(self.rule.window.total_seconds())}s (threshold {self.rule.threshold}) "
            f"for rule '{self.rule.name}'"
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "rule": self.rule.name,
            "event_kind": self.rule.event_kind.value,
            "outcome": self.rule.outcome.value if self.rule.outcome else None,
            "threshold": self.rule.threshold,
            "window_seconds": self.rule.window.total_seconds(),
            "count": self.count,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "created_at": self.created_at.isoformat(),
            "summary": self.summary,
        }
