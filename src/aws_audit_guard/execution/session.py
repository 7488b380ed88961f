"""Session lifecycle for remote service connections."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from aws_audit_guard.audit.models import AuditEvent, EventKind, Outcome
from aws_audit_guard.audit.sink import AuditSink
from aws_audit_guard.execution.errors import SessionConnectionError, describe
from aws_audit_guard.utils.concurrency import call_blocking
from aws_audit_guard.utils.time import utc_now

logger = logging.getLogger(__name__)


class RemoteCapability(Protocol):
    def invoke(self, operation: str, params: dict[str, Any]) -> Any: ...


class Connector(Protocol):
    def connect(self, service: str, region: str | None) -> RemoteCapability: ...

    def disconnect(self, capability: RemoteCapability) -> None: ...


class SessionState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Session:
    """One logical connection to a service scope.

    Owned by the ``SessionManager`` that opened it. ``inflight`` counts
    operations currently executing so ``close`` can wait for them.
    """

    service: str
    region: str | None
    capability: RemoteCapability = field(repr=False)
    session_id: str = field(default_factory=lambda: uuid4().hex)
    opened_at: datetime = field(default_factory=utc_now)
    state: SessionState = SessionState.OPEN
    inflight: int = 0
    _drained: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def __post_init__(self) -> None:
        self._drained.set()

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    @property
    def resource(self) -> str:
        return f"{self.service}:{self.region or '-'}"

    def begin_operation(self) -> None:
        self.inflight += 1
        self._drained.clear()

    def end_operation(self) -> None:
        self.inflight -= 1
        if self.inflight <= 0:
            self.inflight = 0
            self._drained.set()

    async def wait_drained(self) -> None:
        await self._drained.wait()


class SessionManager:
    """Open and close sessions, auditing every transition."""

    def __init__(self, connector: Connector, sink: AuditSink, actor: str = "system") -> None:
        self._connector = connector
        self._sink = sink
        self._actor = actor

    @property
    def actor(self) -> str:
        return self._actor

    async def _emit(self, event: AuditEvent) -> None:
        await asyncio.to_thread(self._sink.append, event)

    async def open(self, service: str, region: str | None) -> Session:
        resource = f"{service}:{region or '-'}"
        try:
            capability = await call_blocking(self._connector.connect, service, region)
        except Exception as exc:
            classified = describe(exc)
            code = getattr(exc, "code", None) or classified.code or type(exc).__name__
            await self._emit(
                AuditEvent(
                    kind=EventKind.SESSION_START,
                    actor=self._actor,
                    resource=resource,
                    outcome=Outcome.CONNECTION_ERROR,
                    error_code=str(code),
                    payload={
                        "service": service,
                        "region": region,
                        "error": classified.to_payload(),
                    },
                )
            )
            logger.warning("Failed to open session resource=%s error=%s", resource, exc)
            if isinstance(exc, SessionConnectionError):
                raise
            raise SessionConnectionError(
                f"Failed to open session for {resource}: {exc}", code=str(code)
            ) from exc

        session = Session(service=service, region=region, capability=capability)
        try:
            await self._emit(
                AuditEvent(
                    kind=EventKind.SESSION_START,
                    actor=self._actor,
                    resource=session.resource,
                    outcome=Outcome.SUCCESS,
                    session_id=session.session_id,
                    payload={
                        "service": service,
                        "region": region,
                        "opened_at": session.opened_at.isoformat(),
                    },
                )
            )
        except BaseException:
            # The caller never receives this session, so nobody else can close it.
            session.state = SessionState.CLOSED
            await self._release(capability)
            raise
        logger.info("Session opened session_id=%s resource=%s", session.session_id, resource)
        return session

    async def _release(self, capability: RemoteCapability) -> None:
        disconnect = getattr(self._connector, "disconnect", None)
        if disconnect is None:
            return
        try:
            await call_blocking(disconnect, capability)
        except Exception as exc:
            logger.error("Failed to release unaudited connection error=%s", exc)

    async def close(self, session: Session, *, suppress_errors: bool = False) -> None:
        """Close *session*. A no-op if it is already closing or closed.

        With ``suppress_errors`` a failed disconnect is recorded in the
        ``session_end`` event and logged instead of raised.
        """
        if session.state is not SessionState.OPEN:
            return
        session.state = SessionState.CLOSING
        await session.wait_drained()

        failure: Exception | None = None
        disconnect = getattr(self._connector, "disconnect", None)
        if disconnect is not None:
            try:
                await call_blocking(disconnect, session.capability)
            except Exception as exc:
                failure = exc
        session.state = SessionState.CLOSED
        # Requests that raced the close may still be recording their rejection.
        await session.wait_drained()

        duration_ms = int((utc_now() - session.opened_at).total_seconds() * 1000)
        payload: dict[str, object] = {"service": session.service, "region": session.region}
        error_code = None
        if failure is not None:
            classified = describe(failure)
            error_code = str(getattr(failure, "code", None) or type(failure).__name__)
            payload["error"] = classified.to_payload()
        await self._emit(
            AuditEvent(
                kind=EventKind.SESSION_END,
                actor=self._actor,
                resource=session.resource,
                outcome=Outcome.SUCCESS if failure is None else Outcome.CONNECTION_ERROR,
                error_code=error_code,
                duration_ms=duration_ms,
                session_id=session.session_id,
                payload=payload,
            )
        )

        if failure is None:
            logger.info("Session closed session_id=%s", session.session_id)
            return
        if suppress_errors:
            logger.error(
                "Session close failed during cleanup session_id=%s error=%s",
                session.session_id,
                failure,
            )
            return
        if isinstance(failure, SessionConnectionError):
            raise failure
        raise SessionConnectionError(
            f"Failed to close session {session.session_id}: {failure}"
        ) from failure

    @asynccontextmanager
    async def session(self, service: str, region: str | None) -> AsyncIterator[Session]:
        """Scoped acquisition: the session is closed on every exit path.

        If the body raised, close failures are recorded but never replace the
        original exception.
        """
        session = await self.open(service, region)
        try:
            yield session
        except BaseException:
            await self.close(session, suppress_errors=True)
            raise
        await self.close(session)
