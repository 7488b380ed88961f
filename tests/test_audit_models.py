from __future__ import annotations

import dataclasses
from datetime import timedelta

import pytest

from aws_audit_guard.audit.models import AuditEvent, AuditQuery, EventKind, Outcome
from fakes import BASE_TIME, make_event


def test_event_defaults_are_unique_and_utc() -> None:
    first = AuditEvent(EventKind.SESSION_START, "alice", "storage:r1", Outcome.SUCCESS)
    second = AuditEvent(EventKind.SESSION_START, "alice", "storage:r1", Outcome.SUCCESS)

    assert first.event_id != second.event_id
    assert first.occurred_at.utcoffset() == timedelta(0)


def test_event_is_immutable() -> None:
    event = make_event(payload={"code": "AccessDenied"})

    with pytest.raises(dataclasses.FrozenInstanceError):
        event.outcome = Outcome.SUCCESS  # type: ignore[misc]
    with pytest.raises(TypeError):
        event.payload["code"] = "Other"  # type: ignore[index]


def test_event_record_round_trip() -> None:
    event = make_event(
        error_code="AccessDenied",
        duration_ms=12,
        session_id="s-1",
        payload={"nested": {"values": [1, 2, 3]}, "flag": True},
    )

    restored = AuditEvent.from_record(event.to_record())

    assert restored == event
    assert restored.to_record() == event.to_record()


def test_from_record_rejects_missing_fields() -> None:
    record = make_event().to_record()
    del record["outcome"]

    with pytest.raises(ValueError, match="outcome"):
        AuditEvent.from_record(record)


def test_from_record_rejects_unknown_kind() -> None:
    record = make_event().to_record()
    record["kind"] = "made_up"

    with pytest.raises(ValueError):
        AuditEvent.from_record(record)


def test_query_matches_filters() -> None:
    event = make_event(session_id="s-1", at=BASE_TIME)

    assert AuditQuery().matches(event)
    assert AuditQuery.for_kinds(["operation_failure"]).matches(event)
    assert not AuditQuery.for_kinds([EventKind.OPERATION_SUCCESS]).matches(event)
    assert AuditQuery(outcomes=frozenset({Outcome.CLIENT_ERROR})).matches(event)
    assert not AuditQuery(session_id="s-2").matches(event)
    assert not AuditQuery(actor="someone-else").matches(event)


def test_query_time_bounds_are_inclusive() -> None:
    event = make_event(at=BASE_TIME)

    assert AuditQuery(since=BASE_TIME, until=BASE_TIME).matches(event)
    assert not AuditQuery(since=BASE_TIME + timedelta(seconds=1)).matches(event)
    assert not AuditQuery(until=BASE_TIME - timedelta(seconds=1)).matches(event)
