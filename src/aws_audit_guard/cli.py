"""Command-line entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from collections.abc import Sequence
from pathlib import Path

from aws_audit_guard import __version__
from aws_audit_guard.app import AppContext, build_app_context
from aws_audit_guard.audit.models import AuditQuery, EventKind
from aws_audit_guard.execution.executor import OperationRequest
from aws_audit_guard.logging_utils import configure_logging
from aws_audit_guard.monitor.engine import SecurityMonitor
from aws_audit_guard.utils.masking import sanitize_log_value
from aws_audit_guard.utils.serialization import json_default, to_json_line
from aws_audit_guard.utils.time import parse_duration, utc_now

logger = logging.getLogger(__name__)


def _parse_params(raw: str | None) -> dict[str, object]:
    if not raw:
        return {}
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object for --params, got {type(parsed).__name__}")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aws-audit-guard",
        description="Audited execution and alerting for AWS service calls.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("monitor", help="Run the security monitor until interrupted.")

    invoke = sub.add_parser("invoke", help="Execute one audited operation.")
    invoke.add_argument("service")
    invoke.add_argument("operation")
    invoke.add_argument("--region", default=None)
    invoke.add_argument(
        "--params", default=None, help="JSON object, or @path to a JSON file."
    )

    events = sub.add_parser("events", help="Print audit events as JSON lines.")
    events.add_argument(
        "--kind",
        action="append",
        choices=[kind.value for kind in EventKind],
        help="Event kind to include (repeatable).",
    )
    events.add_argument("--since", default=None, help="Trailing duration, e.g. 15m or 24h.")
    events.add_argument("--session", default=None, help="Restrict to one session id.")
    return parser


async def _run_monitor(monitor: SecurityMonitor) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, monitor.stop)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms (e.g. Windows).
            pass
    await monitor.run()


async def _invoke(ctx: AppContext, args: argparse.Namespace) -> dict[str, object]:
    request = OperationRequest(operation=args.operation, parameters=_parse_params(args.params))
    async with ctx.sessions.session(args.service, args.region) as session:
        result = await ctx.executor.execute(session, request)
    return {
        "operation": result.operation,
        "resource": result.resource,
        "duration_ms": result.duration_ms,
        "attempts": result.attempts,
        "event_id": result.event_id,
        "result": result.data,
    }


def _print_events(ctx: AppContext, args: argparse.Namespace) -> None:
    query = AuditQuery(
        kinds=frozenset(EventKind(kind) for kind in args.kind) if args.kind else None,
        since=utc_now() - parse_duration(args.since) if args.since else None,
        session_id=args.session,
    )
    for event in ctx.sink.query(query):
        sys.stdout.write(to_json_line(event.to_record()) + "\n")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    ctx = build_app_context()
    try:
        if args.command == "monitor":
            asyncio.run(_run_monitor(ctx.build_monitor()))
        elif args.command == "invoke":
            try:
                output = asyncio.run(_invoke(ctx, args))
            except Exception as exc:
                logger.error("Operation failed: %s", sanitize_log_value(str(exc)))
                return 1
            print(json.dumps(output, indent=2, ensure_ascii=False, default=json_default))
        elif args.command == "events":
            _print_events(ctx, args)
    finally:
        ctx.close()
    return 0


def run_entrypoint() -> None:
    sys.exit(main())


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
