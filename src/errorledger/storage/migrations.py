from __future__ import annotations

from .db import Database


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS error_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    fingerprint TEXT NOT NULL,
    error_type TEXT NOT NULL,
    source TEXT NOT NULL,
    message TEXT NOT NULL,
    details TEXT,
    context TEXT,
    affected_user TEXT,
    business_impact TEXT NOT NULL,
    environment TEXT NOT NULL,
    api_endpoint TEXT,
    external_system TEXT,
    record_object TEXT,
    record_id TEXT,
    submitted_by TEXT,
    occurrence_count INTEGER NOT NULL DEFAULT 1 CHECK (occurrence_count >= 1),
    first_occurrence TEXT NOT NULL,
    last_occurrence TEXT NOT NULL,
    assigned_to TEXT,
    resolution_status TEXT NOT NULL DEFAULT 'New',
    status_changed_at TEXT NOT NULL,
    reopened_count INTEGER NOT NULL DEFAULT 0
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_error_records_fingerprint ON error_records(fingerprint);
CREATE INDEX IF NOT EXISTS idx_error_records_last_occurrence ON error_records(last_occurrence DESC);
CREATE INDEX IF NOT EXISTS idx_error_records_type ON error_records(error_type, last_occurrence DESC);
CREATE INDEX IF NOT EXISTS idx_error_records_impact ON error_records(business_impact, last_occurrence DESC);
CREATE INDEX IF NOT EXISTS idx_error_records_status ON error_records(resolution_status, last_occurrence DESC);
CREATE INDEX IF NOT EXISTS idx_error_records_assigned_to ON error_records(assigned_to, last_occurrence DESC);

CREATE TABLE IF NOT EXISTS status_transitions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    fingerprint TEXT NOT NULL,
    from_status TEXT NOT NULL,
    to_status TEXT NOT NULL,
    action TEXT NOT NULL,
    actor TEXT NOT NULL,
    note TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY(fingerprint) REFERENCES error_records(fingerprint) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_status_transitions_fingerprint ON status_transitions(fingerprint, id);
"""


def apply_migrations(db: Database) -> None:
    with db.transaction() as conn:
        conn.executescript(SCHEMA_SQL)
