from __future__ import annotations

import pytest
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    ParamValidationError,
    ReadTimeoutError,
)

from aws_audit_guard.execution.errors import (
    ErrorKind,
    OperationValidationError,
    RemoteServiceError,
    SessionConnectionError,
    classify,
    describe,
)
from aws_audit_guard.utils.jsonschema import SchemaViolation


def _client_error(code: str, message: str = "denied") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, "PutObject")


def test_access_denied_is_client_error_with_code_preserved() -> None:
    described = describe(_client_error("AccessDenied", "User is not authorized"))

    assert described.kind is ErrorKind.CLIENT_ERROR
    assert described.code == "AccessDenied"
    assert described.message == "User is not authorized"
    assert described.error_type == "ClientError"
    assert described.retryable is False


def test_throttling_client_error_is_retryable() -> None:
    described = describe(_client_error("ThrottlingException", "Rate exceeded"))

    assert described.kind is ErrorKind.CLIENT_ERROR
    assert described.retryable is True


def test_remote_service_error_classifies_like_client_error() -> None:
    described = describe(RemoteServiceError("NoSuchBucket", "bucket is gone"))

    assert described.kind is ErrorKind.CLIENT_ERROR
    assert described.code == "NoSuchBucket"
    assert described.message == "bucket is gone"


@pytest.mark.parametrize(
    "failure",
    [
        OperationValidationError(
            "missing key",
            [
                SchemaViolation(
                    type="missing_required",
                    message="'key' is a required property",
                    path="key",
                )
            ],
        ),
        ParamValidationError(report="Missing required parameter in input: \"Bucket\""),
    ],
)
def test_validation_failures(failure: Exception) -> None:
    assert classify(failure) is ErrorKind.VALIDATION_ERROR


@pytest.mark.parametrize(
    "failure",
    [
        EndpointConnectionError(endpoint_url="https://s3.r1.amazonaws.com"),
        ReadTimeoutError(endpoint_url="https://s3.r1.amazonaws.com"),
        NoCredentialsError(),
        ConnectionResetError("peer reset"),
        TimeoutError("timed out"),
        SessionConnectionError("cannot connect", code="NoCredentials"),
    ],
)
def test_transport_failures_are_retryable(failure: Exception) -> None:
    described = describe(failure)

    assert described.kind is ErrorKind.TRANSPORT_ERROR
    assert described.retryable is True


def test_transport_error_keeps_string_code() -> None:
    described = describe(SessionConnectionError("cannot connect", code="NoCredentials"))

    assert described.code == "NoCredentials"
    assert described.message == "cannot connect"


@pytest.mark.parametrize(
    "failure",
    [KeyError("missing"), RuntimeError("boom"), "plain string", 42, None],
)
def test_everything_else_is_unexpected(failure: object) -> None:
    described = describe(failure)

    assert described.kind is ErrorKind.UNEXPECTED_ERROR
    assert described.code is None
    assert described.retryable is False


def test_non_exception_message_uses_repr() -> None:
    assert describe({"status": 500}).message == "{'status': 500}"


def test_payload_shape() -> None:
    payload = describe(_client_error("AccessDenied")).to_payload()

    assert payload == {
        "kind": "client_error",
        "code": "AccessDenied",
        "message": "denied",
        "type": "ClientError",
        "retryable": False,
    }


def test_validation_error_keeps_structured_violations() -> None:
    violation = SchemaViolation(type="missing_required", message="'key' is required", path="key")
    failure = OperationValidationError("missing key", [violation])

    assert failure.violations == [violation]
    assert describe(failure).code == "ValidationError"
