from __future__ import annotations

import os

import pytest

from aws_audit_guard.audit.sink import JsonlAuditSink
from aws_audit_guard.execution.schemas import OperationRegistry


def pytest_sessionstart(session: pytest.Session) -> None:
    # Opening a session must never reach STS during unit test runs.
    os.environ.setdefault("AWS_VERIFY_IDENTITY", "false")


@pytest.fixture
def sink(tmp_path):
    audit_sink = JsonlAuditSink(str(tmp_path / "audit.jsonl"))
    yield audit_sink
    audit_sink.close()


@pytest.fixture
def registry() -> OperationRegistry:
    return OperationRegistry.from_mapping(
        {
            "services": {
                "storage": {
                    "put": {
                        "resource": ["bucket", "key"],
                        "schema": {
                            "type": "object",
                            "required": ["bucket", "key"],
                            "properties": {
                                "bucket": {"type": "string"},
                                "key": {"type": "string"},
                                "body": {"type": "string"},
                                "api_token": {"type": "string"},
                            },
                        },
                    },
                    "list": {"resource": "bucket"},
                }
            }
        }
    )
