"""Session management, classification and audited execution."""

from __future__ import annotations

from aws_audit_guard.execution.errors import (
    ClassifiedError,
    ErrorKind,
    OperationValidationError,
    RemoteServiceError,
    SessionConnectionError,
    classify,
    describe,
)
from aws_audit_guard.execution.executor import (
    OperationExecutor,
    OperationRequest,
    OperationResult,
)
from aws_audit_guard.execution.session import Session, SessionManager, SessionState

__all__ = [
    "ClassifiedError",
    "ErrorKind",
    "OperationExecutor",
    "OperationRequest",
    "OperationResult",
    "OperationValidationError",
    "RemoteServiceError",
    "Session",
    "SessionConnectionError",
    "SessionManager",
    "SessionState",
    "classify",
    "describe",
]
