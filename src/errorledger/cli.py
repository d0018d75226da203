from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Annotated, Any, Callable, TypeVar

import typer

from .config import resolve_env_file
from .core.clock import parse_stamp
from .core.policies import BusinessImpact, ErrorType, ResolutionStatus
from .errors import InvalidTransition, RecordNotFound, StoreUnavailable
from .models.error_record import ErrorRecord
from .runtime.app import RuntimeContainer, build_runtime
from .services.query_service import RecordFilter

T = TypeVar("T")

app = typer.Typer(add_completion=False, help="errorledger: centralized error ingestion and deduplication")


def _json_print(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _record_dict(record: ErrorRecord) -> dict[str, Any]:
    return record.model_dump(mode="json")


def _parse_dt(value: str | None, option: str) -> datetime | None:
    if value is None:
        return None
    try:
        return parse_stamp(value)
    except ValueError as exc:
        raise typer.BadParameter(f"not an ISO8601 timestamp: {value!r}", param_hint=option) from exc


def _runtime() -> RuntimeContainer:
    # stdout carries the JSON output; keep log lines in the log file
    return build_runtime(log_to_stream=False)


def _load_payload(path: str) -> dict[str, Any]:
    text = sys.stdin.read() if path == "-" else Path(path).read_text(encoding="utf-8")
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise typer.BadParameter("JSON payload must be an object")
    return payload


@app.command()
def ingest(
    error_type: Annotated[str | None, typer.Option("--type", help="Apex | Flow | LWC | Integration")] = None,
    source: Annotated[str | None, typer.Option(help="Where the error was raised, e.g. ClassName.method")] = None,
    message: Annotated[str | None, typer.Option(help="Error message")] = None,
    details: Annotated[str | None, typer.Option(help="Stack trace or other detail")] = None,
    context: Annotated[str | None, typer.Option(help="Free-text context")] = None,
    impact: Annotated[str | None, typer.Option(help="Critical | High | Medium | Low")] = None,
    environment: Annotated[str | None, typer.Option(help="Environment name")] = None,
    affected_user: Annotated[str | None, typer.Option(help="Affected user identifier")] = None,
    api_endpoint: Annotated[str | None, typer.Option(help="Integration API endpoint")] = None,
    external_system: Annotated[str | None, typer.Option(help="Integration external system")] = None,
    record_object: Annotated[str | None, typer.Option(help="Related record object type")] = None,
    record_id: Annotated[str | None, typer.Option(help="Related record id")] = None,
    submitted_by: Annotated[str | None, typer.Option(help="Submitting user")] = None,
    payload: Annotated[str | None, typer.Option("--json", help="Read the event from a JSON file ('-' for stdin)")] = None,
) -> None:
    event: dict[str, Any] = _load_payload(payload) if payload else {}
    flags = {
        "error_type": error_type,
        "source": source,
        "message": message,
        "details": details,
        "context": context,
        "business_impact": impact,
        "environment": environment,
        "affected_user": affected_user,
        "api_endpoint": api_endpoint,
        "external_system": external_system,
        "record_object": record_object,
        "record_id": record_id,
        "submitted_by": submitted_by,
    }
    event.update({k: v for k, v in flags.items() if v is not None})
    runtime = _runtime()
    try:
        result = runtime.ingestion.ingest(event)
        ack = result.ack()
        if result.ok:
            ack["notify_critical"] = result.notify_critical
            ack["reopened"] = result.reopened
        _json_print(ack)
        if not result.ok:
            raise typer.Exit(code=1)
    finally:
        runtime.close()


@app.command("list")
def list_cmd(
    since: Annotated[str | None, typer.Option(help="Last occurrence at or after (ISO8601)")] = None,
    until: Annotated[str | None, typer.Option(help="Last occurrence at or before (ISO8601)")] = None,
    error_type: Annotated[ErrorType | None, typer.Option("--type", case_sensitive=False)] = None,
    impact: Annotated[BusinessImpact | None, typer.Option(case_sensitive=False)] = None,
    assigned_to: Annotated[str | None, typer.Option()] = None,
    status: Annotated[ResolutionStatus | None, typer.Option(case_sensitive=False)] = None,
    source: Annotated[str | None, typer.Option()] = None,
    environment: Annotated[str | None, typer.Option()] = None,
    limit: int = typer.Option(100, min=1, max=1000, help="Maximum number of records"),
    offset: int = typer.Option(0, min=0, help="Records to skip"),
) -> None:
    record_filter = RecordFilter(
        since=_parse_dt(since, "--since"),
        until=_parse_dt(until, "--until"),
        error_type=error_type,
        business_impact=impact,
        assigned_to=assigned_to,
        status=status,
        source=source,
        environment=environment,
    )
    runtime = _runtime()
    try:
        records = runtime.query.list_records(record_filter, limit=limit, offset=offset)
        _json_print(
            {
                "records": [_record_dict(r) for r in records],
                "count": len(records),
                "total": runtime.query.count(record_filter),
                "limit": limit,
                "offset": offset,
            }
        )
    finally:
        runtime.close()


@app.command()
def show(fingerprint: str = typer.Argument(..., help="Record fingerprint")) -> None:
    runtime = _runtime()
    try:
        _json_print(_record_dict(_or_exit(lambda: runtime.query.get(fingerprint))))
    finally:
        runtime.close()


@app.command()
def history(fingerprint: str = typer.Argument(..., help="Record fingerprint")) -> None:
    runtime = _runtime()
    try:
        transitions = _or_exit(lambda: runtime.query.history(fingerprint))
        _json_print([t.model_dump(mode="json") for t in transitions])
    finally:
        runtime.close()


@app.command()
def stats(
    hours: float | None = typer.Option(None, help="Only records seen in the last N hours"),
) -> None:
    runtime = _runtime()
    try:
        since = runtime.clock.now() - timedelta(hours=hours) if hours is not None else None
        _json_print(runtime.query.summary(since=since))
    finally:
        runtime.close()


@app.command()
def assign(
    fingerprint: str = typer.Argument(..., help="Record fingerprint"),
    to: str = typer.Option(..., "--to", help="User to assign the record to"),
    actor: str = typer.Option("operator", help="Who performs the action"),
    note: str | None = typer.Option(None, help="Optional note"),
) -> None:
    _operator_action(lambda rt: rt.store.assign(fingerprint, to, actor=actor, note=note))


@app.command()
def start(
    fingerprint: str = typer.Argument(..., help="Record fingerprint"),
    actor: str = typer.Option("operator", help="Who performs the action"),
    note: str | None = typer.Option(None, help="Optional note"),
) -> None:
    _operator_action(lambda rt: rt.store.start_work(fingerprint, actor=actor, note=note))


@app.command()
def resolve(
    fingerprint: str = typer.Argument(..., help="Record fingerprint"),
    actor: str = typer.Option("operator", help="Who performs the action"),
    note: str | None = typer.Option(None, help="Optional note"),
) -> None:
    _operator_action(lambda rt: rt.store.resolve(fingerprint, actor=actor, note=note))


@app.command()
def ignore(
    fingerprint: str = typer.Argument(..., help="Record fingerprint"),
    actor: str = typer.Option("operator", help="Who performs the action"),
    note: str | None = typer.Option(None, help="Optional note"),
) -> None:
    _operator_action(lambda rt: rt.store.ignore(fingerprint, actor=actor, note=note))


@app.command()
def reopen(
    fingerprint: str = typer.Argument(..., help="Record fingerprint"),
    actor: str = typer.Option("operator", help="Who performs the action"),
    note: str | None = typer.Option(None, help="Optional note"),
) -> None:
    _operator_action(lambda rt: rt.store.reopen(fingerprint, actor=actor, note=note))


@app.command()
def doctor() -> None:
    runtime = _runtime()
    try:
        env_file = resolve_env_file()
        report = {
            "db_integrity": runtime.repos.maintenance.integrity_check(),
            "db_path": str(runtime.settings.storage.db_path),
            "log_path": str(runtime.settings.logging.log_path),
            "config_env_file": str(env_file) if env_file else None,
            "fingerprint": {
                "strategy": runtime.settings.fingerprint.strategy.value,
                "max_length": runtime.settings.fingerprint.max_length,
            },
            "reopen_policy": runtime.settings.ingestion.reopen_policy.value,
            "records_total": runtime.query.count(),
            "open_critical": runtime.query.count_open_critical(),
            "seen_last_1h": runtime.query.count(RecordFilter(since=runtime.clock.now() - timedelta(hours=1))),
        }
        _json_print(report)
    finally:
        runtime.close()


@app.command("export-csv")
def export_csv(
    table: str = typer.Argument(..., help="Table name to export"),
    out: Path = typer.Option(Path("ledger_data/exports"), help="Output directory"),
) -> None:
    allowed = {"error_records", "status_transitions"}
    if table not in allowed:
        raise typer.BadParameter(f"Unsupported table '{table}'. Allowed: {sorted(allowed)}")
    runtime = _runtime()
    try:
        out_file = runtime.repos.maintenance.export_csv(table=table, out_path=out / f"{table}.csv")
        typer.echo(str(out_file))
    finally:
        runtime.close()


def _operator_action(action: Callable[[RuntimeContainer], ErrorRecord]) -> None:
    runtime = _runtime()
    try:
        _json_print(_record_dict(_or_exit(lambda: action(runtime))))
    finally:
        runtime.close()


def _or_exit(fn: Callable[[], T]) -> T:
    try:
        return fn()
    except (RecordNotFound, InvalidTransition, StoreUnavailable, ValueError) as exc:
        _json_print({"ok": False, "error": str(exc)})
        raise typer.Exit(code=1) from exc


if __name__ == "__main__":
    app()
