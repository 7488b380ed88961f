"""Background security monitor.

The monitor cycles ``idle -> evaluating -> idle`` on a fixed interval and
falls into ``backoff`` for a longer wait when a cycle fails. It only stops
when ``stop()`` is called or its task is cancelled, and both take effect at
an idle boundary: a cycle that already started always finishes its alert
dispatch first.

De-duplication: a rule dispatches at most one alert per triggering window.
A new alert is raised only once the trailing window no longer overlaps the
window of the previous alert for that rule.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from enum import Enum

from aws_audit_guard.audit.models import AuditEvent, AuditQuery, EventKind, Outcome
from aws_audit_guard.audit.sink import AuditSink
from aws_audit_guard.monitor.channels import NotificationChannel
from aws_audit_guard.monitor.rules import Alert, AlertRule
from aws_audit_guard.utils.masking import sanitize_log_value
from aws_audit_guard.utils.time import utc_now

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    EVALUATING = "evaluating"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class SecurityMonitor:
    def __init__(
        self,
        sink: AuditSink,
        rules: Iterable[AlertRule],
        channels: Mapping[str, NotificationChannel],
        interval_seconds: float = 60.0,
        backoff_seconds: float = 300.0,
        actor: str = "security-monitor",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sink = sink
        self._rules = list(rules)
        self._channels = dict(channels)
        self._interval = interval_seconds
        self._backoff = backoff_seconds
        self._actor = actor
        self._clock = clock
        self._state = MonitorState.IDLE
        self._stop_event = asyncio.Event()
        self._last_alert_window_end: dict[str, datetime] = {}
        self._consecutive_failures = 0

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def rules(self) -> list[AlertRule]:
        return list(self._rules)

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def stop(self) -> None:
        """Request shutdown at the next idle boundary."""
        self._stop_event.set()

    async def run(self) -> None:
        logger.info(
            "Security monitor started rules=%d interval=%.1fs backoff=%.1fs",
            len(self._rules),
            self._interval,
            self._backoff,
        )
        try:
            while not self._stop_event.is_set():
                self._state = MonitorState.EVALUATING
                cycle = asyncio.ensure_future(self._run_cycle())
                try:
                    succeeded = await asyncio.shield(cycle)
                except asyncio.CancelledError:
                    await asyncio.wait([cycle])
                    raise
                if succeeded:
                    self._state = MonitorState.IDLE
                    await self._wait(self._interval)
                else:
                    self._state = MonitorState.BACKOFF
                    await self._wait(self._backoff)
                    self._state = MonitorState.IDLE
        finally:
            self._state = MonitorState.STOPPED
            logger.info("Security monitor stopped")

    async def _wait(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _run_cycle(self) -> bool:
        try:
            await self.evaluate_once()
        except Exception:
            self._consecutive_failures += 1
            logger.exception(
                "Security monitor evaluation failed (consecutive=%d); backing off %.1fs",
                self._consecutive_failures,
                self._backoff,
            )
            return False
        self._consecutive_failures = 0
        return True

    async def evaluate_once(self, now: datetime | None = None) -> list[Alert]:
        """Evaluate every rule once and dispatch the alerts that fire."""
        now = now or self._clock()
        alerts: list[Alert] = []
        for rule in self._rules:
            alert = await self._evaluate_rule(rule, now)
            if alert is None:
                continue
            await self._dispatch(alert)
            alerts.append(alert)
        return alerts

    async def _evaluate_rule(self, rule: AlertRule, now: datetime) -> Alert | None:
        window_start = now - rule.window
        query = AuditQuery(
            kinds=frozenset({rule.event_kind}),
            outcomes=frozenset({rule.outcome}) if rule.outcome else None,
            since=window_start,
            until=now,
        )
        count = await asyncio.to_thread(self._count, query)
        if count < rule.threshold:
            return None

        last_end = self._last_alert_window_end.get(rule.name)
        if last_end is not None and last_end >= window_start:
            logger.debug("Alert suppressed rule=%s count=%d (window overlaps)", rule.name, count)
            return None

        self._last_alert_window_end[rule.name] = now
        return Alert(rule=rule, count=count, window_start=window_start, window_end=now)

    def _count(self, query: AuditQuery) -> int:
        return sum(1 for _ in self._sink.query(query))

    async def _dispatch(self, alert: Alert) -> None:
        logger.warning("Alert raised: %s", alert.summary)
        await asyncio.gather(
            *(self._send(alert, channel_id) for channel_id in alert.rule.channels)
        )

    async def _send(self, alert: Alert, channel_id: str) -> None:
        channel = self._channels.get(channel_id)
        error: str | None = None
        error_code: str | None = None
        if channel is None:
            error, error_code = f"Unknown notification channel '{channel_id}'", "UnknownChannel"
        else:
            try:
                if not await channel.send(alert):
                    error, error_code = "Channel reported delivery failure", "DeliveryFailed"
            except Exception as exc:
                error, error_code = str(exc), type(exc).__name__

        payload: dict[str, object] = {**alert.to_payload(), "channel": channel_id}
        if error is None:
            event = AuditEvent(
                kind=EventKind.ALERT_DISPATCHED,
                actor=self._actor,
                resource=f"alert-rule:{alert.rule.name}",
                outcome=Outcome.SUCCESS,
                payload=payload,
            )
        else:
            logger.error(
                "Alert dispatch failed rule=%s channel=%s error=%s",
                alert.rule.name,
                channel_id,
                sanitize_log_value(error),
            )
            event = AuditEvent(
                kind=EventKind.ALERT_DISPATCH_FAILURE,
                actor=self._actor,
                resource=f"alert-rule:{alert.rule.name}",
                outcome=Outcome.ALERT_DISPATCH_FAILURE,
                error_code=error_code,
                payload={**payload, "error": error},
            )
        await asyncio.to_thread(self._sink.append, event)
