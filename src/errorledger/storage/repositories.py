from __future__ import annotations

import csv
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable

from ..core.clock import parse_stamp, to_stamp
from ..core.lifecycle import StatusChange
from ..core.policies import ResolutionStatus
from ..models.error_event import ErrorEvent
from ..models.error_record import ErrorRecord, StatusTransition
from .db import Database

SYSTEM_ACTOR = "system"


def _dt_from_str(value: str | None) -> datetime | None:
    return parse_stamp(value) if value is not None else None


@dataclass(slots=True)
class UpsertRow:
    record: ErrorRecord
    created: bool
    reopened: bool
    previous_status: ResolutionStatus | None


class ErrorRecordRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def upsert(
        self,
        *,
        fingerprint: str,
        event: ErrorEvent,
        now: datetime,
        reopen_from: Iterable[ResolutionStatus] = (),
        assignee: str | None = None,
    ) -> UpsertRow:
        now_s = to_stamp(now)
        reopen_from = {ResolutionStatus(s) for s in reopen_from}
        with self.db.transaction(immediate=True) as conn:
            prev = conn.execute(
                "SELECT resolution_status FROM error_records WHERE fingerprint = ?",
                (fingerprint,),
            ).fetchone()
            previous_status = ResolutionStatus(prev["resolution_status"]) if prev else None
            reopen = previous_status in reopen_from
            conn.execute(
                """
                INSERT INTO error_records (
                    fingerprint, error_type, source, message, details, context,
                    affected_user, business_impact, environment, api_endpoint,
                    external_system, record_object, record_id, submitted_by,
                    occurrence_count, first_occurrence, last_occurrence,
                    assigned_to, resolution_status, status_changed_at, reopened_count
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?, ?, 'New', ?, 0)
                ON CONFLICT(fingerprint) DO UPDATE SET
                    message = excluded.message,
                    details = excluded.details,
                    context = excluded.context,
                    occurrence_count = error_records.occurrence_count + 1,
                    last_occurrence = MAX(error_records.last_occurrence, excluded.last_occurrence),
                    resolution_status = CASE WHEN ? THEN 'New' ELSE error_records.resolution_status END,
                    status_changed_at = CASE WHEN ? THEN excluded.status_changed_at
                                             ELSE error_records.status_changed_at END,
                    reopened_count = error_records.reopened_count + CASE WHEN ? THEN 1 ELSE 0 END
                """,
                (
                    fingerprint,
                    event.error_type.value,
                    event.source,
                    event.message,
                    event.details,
                    event.context,
                    event.affected_user,
                    event.business_impact.value if event.business_impact else None,
                    event.environment,
                    event.api_endpoint,
                    event.external_system,
                    event.record_object,
                    event.record_id,
                    event.submitted_by,
                    now_s,
                    now_s,
                    assignee,
                    now_s,
                    int(reopen),
                    int(reopen),
                    int(reopen),
                ),
            )
            if reopen and previous_status is not None:
                self._insert_transition(
                    conn,
                    fingerprint=fingerprint,
                    change=StatusChange(previous_status, ResolutionStatus.NEW, "reopen"),
                    actor=SYSTEM_ACTOR,
                    note="new occurrence",
                    now=now,
                )
            row = conn.execute("SELECT * FROM error_records WHERE fingerprint = ?", (fingerprint,)).fetchone()
        return UpsertRow(
            record=self._from_row(row),
            created=previous_status is None,
            reopened=reopen,
            previous_status=previous_status,
        )

    def apply_transition(
        self,
        *,
        fingerprint: str,
        decide: Callable[[ErrorRecord], StatusChange],
        actor: str,
        now: datetime,
        note: str | None = None,
        assigned_to: str | None = None,
    ) -> ErrorRecord | None:
        """Run ``decide`` against the current row and persist its change in one write transaction.

        Returns None when no record has the fingerprint. Exceptions raised by
        ``decide`` roll the transaction back untouched.
        """
        with self.db.transaction(immediate=True) as conn:
            row = conn.execute("SELECT * FROM error_records WHERE fingerprint = ?", (fingerprint,)).fetchone()
            if not row:
                return None
            change = decide(self._from_row(row))
            conn.execute(
                """
                UPDATE error_records SET
                    resolution_status = ?,
                    status_changed_at = ?,
                    assigned_to = COALESCE(?, assigned_to)
                WHERE fingerprint = ?
                """,
                (change.to_status.value, to_stamp(now), assigned_to, fingerprint),
            )
            self._insert_transition(conn, fingerprint=fingerprint, change=change, actor=actor, note=note, now=now)
            row = conn.execute("SELECT * FROM error_records WHERE fingerprint = ?", (fingerprint,)).fetchone()
        return self._from_row(row)

    def _insert_transition(
        self,
        conn: sqlite3.Connection,
        *,
        fingerprint: str,
        change: StatusChange,
        actor: str,
        now: datetime,
        note: str | None = None,
    ) -> None:
        conn.execute(
            """
            INSERT INTO status_transitions (fingerprint, from_status, to_status, action, actor, note, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                fingerprint,
                change.from_status.value,
                change.to_status.value,
                change.action,
                actor,
                note,
                to_stamp(now),
            ),
        )

    def get(self, fingerprint: str) -> ErrorRecord | None:
        with self.db.read_only() as conn:
            row = conn.execute("SELECT * FROM error_records WHERE fingerprint = ?", (fingerprint,)).fetchone()
            return self._from_row(row) if row else None

    def list_records(
        self,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        error_type: str | None = None,
        business_impact: str | None = None,
        assigned_to: str | None = None,
        status: str | None = None,
        source: str | None = None,
        environment: str | None = None,
        exclude_statuses: Iterable[str] = (),
        limit: int | None = None,
        offset: int = 0,
        order_by: str = "last_occurrence",
    ) -> list[ErrorRecord]:
        clauses, params = self._where(
            since=since,
            until=until,
            error_type=error_type,
            business_impact=business_impact,
            assigned_to=assigned_to,
            status=status,
            source=source,
            environment=environment,
            exclude_statuses=exclude_statuses,
        )
        order = {
            "last_occurrence": "last_occurrence DESC, id DESC",
            "occurrence_count": "occurrence_count DESC, last_occurrence DESC",
        }[order_by]
        sql = "SELECT * FROM error_records"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {order}"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([int(limit), int(offset)])
        with self.db.read_only() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [self._from_row(r) for r in rows]

    def count(self, **filters: Any) -> int:
        clauses, params = self._where(**filters)
        sql = "SELECT COUNT(*) AS c FROM error_records"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        with self.db.read_only() as conn:
            row = conn.execute(sql, tuple(params)).fetchone()
            return int(row["c"] or 0) if row else 0

    def count_by(self, column: str, *, since: datetime | None = None) -> dict[str, int]:
        if column not in {"error_type", "business_impact", "resolution_status", "environment", "assigned_to"}:
            raise ValueError(f"Unsupported group column '{column}'")
        clauses, params = self._where(since=since)
        sql = f"SELECT {column} AS k, COUNT(*) AS c FROM error_records"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" GROUP BY {column} ORDER BY c DESC, k ASC"
        with self.db.read_only() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return {str(r["k"]) if r["k"] is not None else "-": int(r["c"]) for r in rows}

    def totals(self, *, since: datetime | None = None) -> dict[str, int]:
        clauses, params = self._where(since=since)
        sql = "SELECT COUNT(*) AS records, COALESCE(SUM(occurrence_count), 0) AS occurrences FROM error_records"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        with self.db.read_only() as conn:
            row = conn.execute(sql, tuple(params)).fetchone()
        if not row:
            return {"records": 0, "occurrences": 0}
        return {"records": int(row["records"] or 0), "occurrences": int(row["occurrences"] or 0)}

    def _where(
        self,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        error_type: str | None = None,
        business_impact: str | None = None,
        assigned_to: str | None = None,
        status: str | None = None,
        source: str | None = None,
        environment: str | None = None,
        exclude_statuses: Iterable[str] = (),
    ) -> tuple[list[str], list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if since is not None:
            clauses.append("last_occurrence >= ?")
            params.append(to_stamp(since))
        if until is not None:
            clauses.append("last_occurrence <= ?")
            params.append(to_stamp(until))
        for column, value in (
            ("error_type", error_type),
            ("business_impact", business_impact),
            ("assigned_to", assigned_to),
            ("resolution_status", status),
            ("source", source),
            ("environment", environment),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(str(value))
        excluded = sorted(str(s) for s in exclude_statuses)
        if excluded:
            clauses.append(f"resolution_status NOT IN ({', '.join('?' * len(excluded))})")
            params.extend(excluded)
        return clauses, params

    def _from_row(self, row: Any) -> ErrorRecord:
        return ErrorRecord(
            fingerprint=row["fingerprint"],
            error_type=row["error_type"],
            source=row["source"],
            message=row["message"],
            details=row["details"],
            context=row["context"],
            affected_user=row["affected_user"],
            business_impact=row["business_impact"],
            environment=row["environment"],
            api_endpoint=row["api_endpoint"],
            external_system=row["external_system"],
            record_object=row["record_object"],
            record_id=row["record_id"],
            submitted_by=row["submitted_by"],
            occurrence_count=row["occurrence_count"],
            first_occurrence=_dt_from_str(row["first_occurrence"]),
            last_occurrence=_dt_from_str(row["last_occurrence"]),
            assigned_to=row["assigned_to"],
            resolution_status=row["resolution_status"],
            status_changed_at=_dt_from_str(row["status_changed_at"]),
            reopened_count=row["reopened_count"],
        )


class TransitionRepository:
    def __init__(self, db: Database) -> None:
        self.db = db

    def list_for(self, fingerprint: str) -> list[StatusTransition]:
        with self.db.read_only() as conn:
            rows = conn.execute(
                "SELECT * FROM status_transitions WHERE fingerprint = ? ORDER BY id ASC",
                (fingerprint,),
            ).fetchall()
        return [
            StatusTransition(
                id=r["id"],
                fingerprint=r["fingerprint"],
                from_status=r["from_status"],
                to_status=r["to_status"],
                action=r["action"],
                actor=r["actor"],
                note=r["note"],
                created_at=_dt_from_str(r["created_at"]),
            )
            for r in rows
        ]


class MaintenanceRepository:
    TABLES = frozenset({"error_records", "status_transitions"})

    def __init__(self, db: Database) -> None:
        self.db = db

    def export_csv(self, *, table: str, out_path: Path) -> Path:
        if table not in self.TABLES:
            raise ValueError(f"Unsupported table '{table}'. Allowed: {sorted(self.TABLES)}")
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with self.db.read_only() as conn:
            cur = conn.execute(f"SELECT * FROM {table}")
            rows = cur.fetchall()
            fieldnames = [col[0] for col in cur.description or []]
        with out_path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for row in rows:
                writer.writerow(dict(row))
        return out_path

    def integrity_check(self) -> str:
        with self.db.read_only() as conn:
            row = conn.execute("PRAGMA integrity_check;").fetchone()
            return str(row[0]) if row else "unknown"


@dataclass(slots=True)
class Repositories:
    records: ErrorRecordRepository
    transitions: TransitionRepository
    maintenance: MaintenanceRepository


def build_repositories(db: Database) -> Repositories:
    return Repositories(
        records=ErrorRecordRepository(db),
        transitions=TransitionRepository(db),
        maintenance=MaintenanceRepository(db),
    )
