"""Notification channels for alerts.

Every channel implements ``send(alert)``: ``True`` means the alert was
delivered. A failure is either ``False`` or an exception; the monitor
records both the same way.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from aws_audit_guard.monitor.rules import Alert

logger = logging.getLogger(__name__)

_SOURCE = "aws-audit-guard"


class ChannelDispatchError(RuntimeError):
    """Raised when a channel transport rejects or fails to deliver an alert."""


@runtime_checkable
class NotificationChannel(Protocol):
    channel_id: str

    async def send(self, alert: Alert) -> bool: ...


class LogChannel:
    """Write alerts to the operational log."""

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id

    async def send(self, alert: Alert) -> bool:
        logger.warning(
            "ALERT channel=%s rule=%s count=%d window=%s..%s",
            self.channel_id,
            alert.rule.name,
            alert.count,
            alert.window_start.isoformat(),
            alert.window_end.isoformat(),
        )
        return True


class _HttpChannel:
    def __init__(
        self,
        channel_id: str,
        url: str,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.channel_id = channel_id
        self._url = url
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._client = client

    def build_body(self, alert: Alert) -> dict[str, Any]:
        raise NotImplementedError

    async def send(self, alert: Alert) -> bool:
        body = self.build_body(alert)
        try:
            if self._client is not None:
                resp = await self._client.post(
                    self._url, json=body, headers=self._headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(self._url, json=body, headers=self._headers)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise ChannelDispatchError(
                f"{type(self).__name__} '{self.channel_id}' delivery failed: {exc}"
            ) from exc
        return True


class MessagePostChannel(_HttpChannel):
    """Post a human-readable message to a chat incoming-webhook URL."""

    def build_body(self, alert: Alert) -> dict[str, Any]:
        lines = [
            f":rotating_light: *{alert.rule.name}*",
            alert.summary,
            f"window: {alert.window_start.isoformat()} .. {alert.window_end.isoformat()}",
        ]
        return {"text": "\n".join(lines)}


class WebhookChannel(_HttpChannel):
    """POST the full alert document as JSON."""

    def build_body(self, alert: Alert) -> dict[str, Any]:
        return {"source": _SOURCE, "alert": alert.to_payload()}


class PagerChannel(_HttpChannel):
    """Trigger a page through an events API (PagerDuty Events v2 shape)."""

    def __init__(
        self,
        channel_id: str,
        url: str,
        routing_key: str,
        severity: str = "critical",
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(channel_id, url, timeout=timeout, headers=headers, client=client)
        self._routing_key = routing_key
        self._severity = severity

    def build_body(self, alert: Alert) -> dict[str, Any]:
        return {
            "routing_key": self._routing_key,
            "event_action": "trigger",
            "dedup_key": alert.dedup_key,
            "payload": {
                "summary": alert.summary,
                "source": _SOURCE,
                "severity": self._severity,
                "timestamp": alert.created_at.isoformat(),
                "custom_details": alert.to_payload(),
            },
        }
