"""Exception types and the error classifier.

``classify`` is a total function: every failure value, exception or not,
maps to exactly one ``ErrorKind``. ``describe`` returns the same kind
together with the diagnostic code and message, copied unmodified from the
original failure.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from botocore.exceptions import BotoCoreError, ClientError, ParamValidationError

from aws_audit_guard.utils.jsonschema import SchemaViolation


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "validation_error"
    CLIENT_ERROR = "client_error"
    TRANSPORT_ERROR = "transport_error"
    UNEXPECTED_ERROR = "unexpected_error"


class OperationValidationError(ValueError):
    """Raised when a request is rejected before dispatch."""

    code = "ValidationError"

    def __init__(self, message: str, violations: Sequence[SchemaViolation] = ()) -> None:
        super().__init__(message)
        self.violations = list(violations)


class RemoteServiceError(Exception):
    """Explicit rejection by the remote service, carrying its error code.

    Capabilities other than boto3 raise this so their rejections classify the
    same way a botocore ``ClientError`` does.
    """

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message


class SessionConnectionError(ConnectionError):
    """Raised when a session cannot be opened or closed."""

    def __init__(self, message: str, code: str = "ConnectionFailed") -> None:
        super().__init__(message)
        self.code = code


_RETRYABLE_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "RequestThrottled",
        "TooManyRequestsException",
    }
)


@dataclass(frozen=True)
class ClassifiedError:
    kind: ErrorKind
    code: str | None
    message: str
    error_type: str
    retryable: bool = False

    def to_payload(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "type": self.error_type,
            "retryable": self.retryable,
        }


def _client_error_details(exc: ClientError) -> tuple[str | None, str]:
    error = exc.response.get("Error", {}) if isinstance(exc.response, dict) else {}
    code = error.get("Code")
    message = error.get("Message") or str(exc)
    return (str(code) if code is not None else None), str(message)


def describe(failure: object) -> ClassifiedError:
    """Classify *failure* and capture its diagnostic code and message."""
    error_type = type(failure).__name__

    if isinstance(failure, OperationValidationError):
        return ClassifiedError(ErrorKind.VALIDATION_ERROR, failure.code, str(failure), error_type)
    if isinstance(failure, ParamValidationError):
        return ClassifiedError(
            ErrorKind.VALIDATION_ERROR, "ParamValidationError", str(failure), error_type
        )

    if isinstance(failure, ClientError):
        code, message = _client_error_details(failure)
        return ClassifiedError(
            ErrorKind.CLIENT_ERROR, code, message, error_type, code in _RETRYABLE_CODES
        )
    if isinstance(failure, RemoteServiceError):
        return ClassifiedError(
            ErrorKind.CLIENT_ERROR,
            failure.code,
            str(failure),
            error_type,
            failure.code in _RETRYABLE_CODES,
        )

    if isinstance(failure, (BotoCoreError, ConnectionError, TimeoutError, OSError)):
        code = getattr(failure, "code", None)
        return ClassifiedError(
            ErrorKind.TRANSPORT_ERROR,
            code if isinstance(code, str) else None,
            str(failure),
            error_type,
            retryable=True,
        )

    message = str(failure) if isinstance(failure, BaseException) else repr(failure)
    return ClassifiedError(ErrorKind.UNEXPECTED_ERROR, None, message, error_type)


def classify(failure: object) -> ErrorKind:
    return describe(failure).kind
