from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from aws_audit_guard.config import AWSSettings, ExecutionSettings
from aws_audit_guard.execution.aws_client import (
    Boto3Capability,
    Boto3Connector,
    _snake_case,
)
from aws_audit_guard.execution.errors import SessionConnectionError


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("PutObject", "put_object"),
        ("DescribeDBInstances", "describe_db_instances"),
        ("ListObjectsV2", "list_objects_v2"),
        ("get_caller_identity", "get_caller_identity"),
    ],
)
def test_snake_case(name: str, expected: str) -> None:
    assert _snake_case(name) == expected


def test_invoke_calls_client_method() -> None:
    client = MagicMock()
    client.put_object.return_value = {"ETag": "abc"}
    capability = Boto3Capability(client)

    assert capability.invoke("PutObject", {"Bucket": "b", "Key": "k"}) == {"ETag": "abc"}
    client.put_object.assert_called_once_with(Bucket="b", Key="k")


def test_invoke_reads_and_truncates_streaming_body() -> None:
    client = MagicMock()
    client.get_object.return_value = {"Body": io.BytesIO(b"x" * 50), "ContentLength": 50}
    capability = Boto3Capability(client, max_output_characters=10)

    response = capability.invoke("GetObject", {"Bucket": "b", "Key": "k"})

    assert response["Body"] == "xxxxxxx..."
    assert response["ContentLength"] == 50


def test_invoke_unknown_method_raises() -> None:
    capability = Boto3Capability(object())

    with pytest.raises(AttributeError, match="no_such_thing"):
        capability.invoke("NoSuchThing", {})


def test_close_closes_client() -> None:
    client = MagicMock()
    Boto3Capability(client).close()
    client.close.assert_called_once_with()


def _connector(**aws: object) -> Boto3Connector:
    return Boto3Connector(AWSSettings(**aws), ExecutionSettings())


def test_connect_builds_client_with_single_attempt_retries() -> None:
    session = MagicMock()
    with patch("aws_audit_guard.execution.aws_client.boto3.Session", return_value=session) as ctor:
        capability = _connector(default_region="r0").connect("s3", "r1")

    ctor.assert_called_once_with(profile_name=None, region_name="r1")
    service, = session.client.call_args.args
    config = session.client.call_args.kwargs["config"]
    assert service == "s3"
    assert config.retries["max_attempts"] == 1
    assert capability.client is session.client.return_value


def test_connect_without_credentials_fails() -> None:
    session = MagicMock()
    session.get_credentials.return_value = None
    with patch("aws_audit_guard.execution.aws_client.boto3.Session", return_value=session):
        with pytest.raises(SessionConnectionError) as excinfo:
            _connector().connect("s3", "r1")

    assert excinfo.value.code == "NoCredentials"


def test_connect_maps_rejected_identity() -> None:
    session = MagicMock()
    session.client.return_value.get_caller_identity.side_effect = ClientError(
        {"Error": {"Code": "InvalidClientTokenId", "Message": "bad token"}},
        "GetCallerIdentity",
    )
    with patch("aws_audit_guard.execution.aws_client.boto3.Session", return_value=session):
        with pytest.raises(SessionConnectionError) as excinfo:
            _connector(verify_identity=True).connect("s3", "r1")

    assert excinfo.value.code == "InvalidClientTokenId"


def test_connect_maps_botocore_errors() -> None:
    session = MagicMock()
    session.client.side_effect = EndpointConnectionError(endpoint_url="https://sts")
    with patch("aws_audit_guard.execution.aws_client.boto3.Session", return_value=session):
        with pytest.raises(SessionConnectionError) as excinfo:
            _connector().connect("s3", "r1")

    assert excinfo.value.code == "EndpointConnectionError"


def test_disconnect_closes_capability() -> None:
    capability = MagicMock(spec=Boto3Capability)
    _connector().disconnect(capability)
    capability.close.assert_called_once_with()
