"""boto3-backed remote capability.

``Boto3Connector`` opens one boto3 client per session; ``Boto3Capability``
exposes it through the generic ``invoke(operation, params)`` contract the
executor depends on.
"""

from __future__ import annotations

import base64
import logging
import re
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from aws_audit_guard.config import AWSSettings, ExecutionSettings
from aws_audit_guard.execution.errors import SessionConnectionError

logger = logging.getLogger(__name__)

_STREAMING_KEYS = ("Body", "Payload", "body", "AudioStream", "audioStream")


def _snake_case(name: str) -> str:
    """Convert PascalCase to snake_case, handling acronyms correctly.

    Examples:
        DescribeDBInstances -> describe_db_instances
        PutObject -> put_object
        put_object -> put_object
    """
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def _truncate_text(value: str, max_chars: int) -> str:
    if len(value) <= max_chars:
        return value
    return value[: max_chars - 3] + "..."


def _read_streaming_fields(response: dict[str, Any], max_output_characters: int) -> None:
    max_chars = max(1, max_output_characters)
    for key in _STREAMING_KEYS:
        obj = response.get(key)
        if obj is None or not callable(getattr(obj, "read", None)):
            continue
        try:
            content = obj.read(max_chars + 1)
        except (OSError, BotoCoreError) as exc:
            logger.warning("Failed to read streaming field '%s': %s", key, exc)
            response[key] = "<Error reading stream>"
            continue
        if isinstance(content, bytes):
            try:
                text = content.decode("utf-8")
            except UnicodeDecodeError:
                text = base64.b64encode(content).decode("utf-8")
            response[key] = _truncate_text(text, max_chars)
        else:
            text = str(content) if content is not None else ""
            response[key] = _truncate_text(text, max_chars)


class Boto3Capability:
    """Invoke named operations on one boto3 service client."""

    def __init__(self, client: Any, max_output_characters: int = 20_000) -> None:
        self._client = client
        self._max_output_characters = max_output_characters

    @property
    def client(self) -> Any:
        return self._client

    def invoke(self, operation: str, params: dict[str, Any]) -> dict[str, Any]:
        method_name = _snake_case(operation)
        method = getattr(self._client, method_name, None)
        if method is None or not callable(method):
            raise AttributeError(f"boto3 client has no method '{method_name}'")
        response = method(**params)
        if isinstance(response, dict):
            _read_streaming_fields(response, self._max_output_characters)
            return response
        return {"result": response}

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if callable(close):
            close()


class Boto3Connector:
    """Build boto3 clients for sessions."""

    def __init__(self, aws: AWSSettings, execution: ExecutionSettings) -> None:
        self._aws = aws
        self._execution = execution

    def _client_config(self, service: str) -> Config:
        base: dict[str, object] = {
            "read_timeout": self._execution.sdk_timeout_seconds,
            "connect_timeout": self._execution.sdk_timeout_seconds,
            # Retries are owned by the executor so each attempt is accounted for.
            "retries": {"max_attempts": 1, "mode": "standard"},
        }
        if service == "s3":
            base["request_checksum_calculation"] = "when_required"
            base["response_checksum_validation"] = "when_required"
        return Config(**base)

    def connect(self, service: str, region: str | None) -> Boto3Capability:
        try:
            session = boto3.Session(
                profile_name=self._aws.default_profile,
                region_name=region or self._aws.default_region,
            )
            if session.get_credentials() is None:
                raise SessionConnectionError(
                    "No AWS credentials available for session", code="NoCredentials"
                )
            if self._aws.verify_identity:
                self._verify_identity(session)
            client = session.client(service, config=self._client_config(service))
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            raise SessionConnectionError(f"Credentials rejected: {exc}", code=code) from exc
        except BotoCoreError as exc:
            raise SessionConnectionError(
                f"Failed to connect to {service}: {exc}", code=type(exc).__name__
            ) from exc
        return Boto3Capability(client, self._execution.max_output_characters)

    def _verify_identity(self, session: boto3.Session) -> None:
        sts = session.client(
            "sts",
            region_name=self._aws.sts_region,
            config=Config(
                connect_timeout=self._execution.sdk_timeout_seconds,
                read_timeout=self._execution.sdk_timeout_seconds,
                retries={"max_attempts": 2},
            ),
        )
        identity = sts.get_caller_identity()
        logger.info("Verified AWS identity arn=%s", identity.get("Arn"))

    def disconnect(self, capability: Boto3Capability) -> None:
        capability.close()
