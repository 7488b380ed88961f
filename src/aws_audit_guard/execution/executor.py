"""Audited execution of named remote operations.

Every request handed to ``OperationExecutor.execute`` yields exactly one
terminal audit event: ``operation_success`` or ``operation_failure``.
Failures are always re-raised to the caller after they are recorded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from aws_audit_guard.audit.models import AuditEvent, EventKind, Outcome
from aws_audit_guard.audit.sink import AuditSink
from aws_audit_guard.config import ExecutionSettings
from aws_audit_guard.execution.errors import OperationValidationError, describe
from aws_audit_guard.execution.schemas import (
    OperationRegistry,
    OperationSpec,
    describe_resource,
)
from aws_audit_guard.execution.session import Session
from aws_audit_guard.utils.concurrency import call_blocking
from aws_audit_guard.utils.hashing import request_hash
from aws_audit_guard.utils.jsonschema import validate_payload_structured
from aws_audit_guard.utils.masking import redact_sensitive_fields
from aws_audit_guard.utils.serialization import truncate_json

logger = logging.getLogger(__name__)

_RESPONSE_SUMMARY_LIMIT = 2000


@dataclass(frozen=True)
class OperationRequest:
    operation: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    actor: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))


@dataclass(frozen=True)
class OperationResult:
    operation: str
    resource: str
    data: Any
    duration_ms: int
    attempts: int
    event_id: str


class OperationExecutor:
    """Validate, invoke, time and audit operations against open sessions.

    Calls are not serialized; concurrent requests against the same session
    are safe as long as its capability is reentrant.
    """

    def __init__(
        self,
        sink: AuditSink,
        registry: OperationRegistry,
        settings: ExecutionSettings | None = None,
        actor: str = "system",
    ) -> None:
        self._sink = sink
        self._registry = registry
        self._settings = settings or ExecutionSettings()
        self._actor = actor

    async def execute(self, session: Session, request: OperationRequest) -> OperationResult:
        params = dict(request.parameters)
        spec = self._registry.get(session.service, request.operation)
        resource = describe_resource(
            session.service,
            session.region,
            request.operation,
            params,
            spec.resource if spec else None,
        )
        actor = request.actor or self._actor
        payload: dict[str, Any] = {
            "service": session.service,
            "region": session.region,
            "operation": request.operation,
            "parameters": redact_sensitive_fields(params),
            "request_hash": request_hash(session.service, request.operation, params),
        }

        session.begin_operation()
        try:
            if not session.is_open:
                exc = OperationValidationError(
                    f"Session {session.session_id} is not open (state={session.state.value})"
                )
                await self._record_failure(session, actor, resource, payload, exc, None, 0)
                raise exc

            validation_error = self._validate(session.service, request.operation, params, spec)
            if validation_error is not None:
                await self._record_failure(
                    session, actor, resource, payload, validation_error, None, 0
                )
                raise validation_error

            return await self._invoke(
                session, request.operation, params, actor, resource, payload
            )
        finally:
            session.end_operation()

    def _validate(
        self,
        service: str,
        operation: str,
        params: dict[str, Any],
        spec: OperationSpec | None,
    ) -> OperationValidationError | None:
        if spec is None:
            if self._settings.allow_undeclared_operations:
                return None
            return OperationValidationError(
                f"No schema declared for operation {service}:{operation}"
            )
        violations = validate_payload_structured(spec.schema_, params)
        if not violations:
            return None
        return OperationValidationError(
            "Input validation failed: " + "; ".join(v.message for v in violations),
            violations,
        )

    async def _invoke(
        self,
        session: Session,
        operation: str,
        params: dict[str, Any],
        actor: str,
        resource: str,
        payload: dict[str, Any],
    ) -> OperationResult:
        max_retries = self._settings.max_retries
        attempt = 0
        recorded = False
        started = time.perf_counter()

        # Cancellation during a call or a backoff wait still records the failure.
        try:
            while True:
                attempt += 1
                try:
                    data = await call_blocking(session.capability.invoke, operation, params)
                    break
                except Exception as exc:
                    classified = describe(exc)
                    if attempt <= max_retries and classified.retryable:
                        delay = self._settings.retry_base_delay_seconds * (2 ** (attempt - 1))
                        logger.warning(
                            "Retrying operation=%s attempt=%d kind=%s code=%s delay=%.2fs",
                            operation,
                            attempt,
                            classified.kind.value,
                            classified.code,
                            delay,
                        )
                        await asyncio.sleep(delay)
                        continue
                    duration_ms = int((time.perf_counter() - started) * 1000)
                    recorded = True
                    await asyncio.shield(
                        self._record_failure(
                            session, actor, resource, payload, exc, duration_ms, attempt
                        )
                    )
                    raise
        except asyncio.CancelledError as exc:
            if not recorded:
                duration_ms = int((time.perf_counter() - started) * 1000)
                await asyncio.shield(
                    self._record_failure(
                        session, actor, resource, payload, exc, duration_ms, attempt
                    )
                )
            raise

        duration_ms = int((time.perf_counter() - started) * 1000)
        event = AuditEvent(
            kind=EventKind.OPERATION_SUCCESS,
            actor=actor,
            resource=resource,
            outcome=Outcome.SUCCESS,
            duration_ms=duration_ms,
            session_id=session.session_id,
            payload={
                **payload,
                "attempts": attempt,
                "response_summary": truncate_json(
                    redact_sensitive_fields(data), _RESPONSE_SUMMARY_LIMIT
                ),
            },
        )
        await asyncio.to_thread(self._sink.append, event)
        logger.info(
            "Operation succeeded operation=%s resource=%s duration_ms=%d attempts=%d",
            operation,
            resource,
            duration_ms,
            attempt,
        )
        return OperationResult(
            operation=operation,
            resource=resource,
            data=data,
            duration_ms=duration_ms,
            attempts=attempt,
            event_id=event.event_id,
        )

    async def _record_failure(
        self,
        session: Session,
        actor: str,
        resource: str,
        payload: dict[str, Any],
        failure: BaseException,
        duration_ms: int | None,
        attempts: int,
    ) -> None:
        classified = describe(failure)
        event_payload = {**payload, "attempts": attempts, "error": classified.to_payload()}
        if isinstance(failure, OperationValidationError) and failure.violations:
            event_payload["violations"] = [v.to_dict() for v in failure.violations]
        event = AuditEvent(
            kind=EventKind.OPERATION_FAILURE,
            actor=actor,
            resource=resource,
            outcome=Outcome(classified.kind.value),
            error_code=classified.code,
            duration_ms=duration_ms,
            session_id=session.session_id,
            payload=event_payload,
        )
        await asyncio.to_thread(self._sink.append, event)
        logger.warning(
            "Operation failed operation=%s resource=%s kind=%s code=%s",
            payload["operation"],
            resource,
            classified.kind.value,
            classified.code,
        )
