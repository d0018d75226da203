from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import IngestionSettings
from ..core.clock import Clock, SystemClock
from ..core.fingerprint import Fingerprinter
from ..core.lifecycle import OperatorAction, StatusChange, apply_action, reopen_statuses
from ..errors import RecordNotFound
from ..models.error_event import ErrorEvent
from ..models.error_record import ErrorRecord
from ..storage.db import guard_store
from ..storage.repositories import Repositories


@dataclass(slots=True)
class UpsertOutcome:
    record: ErrorRecord
    created: bool
    reopened: bool


class ErrorStore:
    """Sole writer of error records: occurrence upserts and operator status changes."""

    def __init__(
        self,
        *,
        repos: Repositories,
        settings: IngestionSettings,
        fingerprinter: Fingerprinter | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.repos = repos
        self.settings = settings
        self.fingerprinter = fingerprinter or Fingerprinter()
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("errorledger.store")

    def upsert(self, event: ErrorEvent) -> UpsertOutcome:
        fp = self.fingerprinter(event)
        if event.business_impact is None or not event.environment:
            event = event.model_copy(
                update={
                    "business_impact": event.business_impact or self.settings.default_business_impact,
                    "environment": event.environment or self.settings.default_environment,
                }
            )
        assignee = event.submitted_by if self.settings.auto_assign_to_submitter else None
        row = guard_store(
            lambda: self.repos.records.upsert(
                fingerprint=fp,
                event=event,
                now=self.clock.now(),
                reopen_from=reopen_statuses(self.settings.reopen_policy),
                assignee=assignee,
            )
        )
        record = row.record
        if row.created:
            self.logger.info(
                "error_record_created",
                extra={"event": {"fingerprint": fp[:80], "type": record.error_type.value, "source": record.source}},
            )
        elif row.reopened:
            self.logger.info(
                "error_record_reopened",
                extra={
                    "event": {
                        "fingerprint": fp[:80],
                        "from": row.previous_status.value if row.previous_status else None,
                        "count": record.occurrence_count,
                    }
                },
            )
        else:
            self.logger.debug(
                "error_record_incremented",
                extra={"event": {"fingerprint": fp[:80], "count": record.occurrence_count}},
            )
        return UpsertOutcome(record=record, created=row.created, reopened=row.reopened)

    def get(self, fingerprint: str) -> ErrorRecord:
        record = guard_store(lambda: self.repos.records.get(fingerprint))
        if record is None:
            raise RecordNotFound(fingerprint)
        return record

    def assign(self, fingerprint: str, assignee: str, *, actor: str, note: str | None = None) -> ErrorRecord:
        if not assignee or not assignee.strip():
            raise ValueError("assignee must not be blank")
        return self._transition(
            fingerprint, OperatorAction.ASSIGN, actor=actor, note=note, assigned_to=assignee.strip()
        )

    def start_work(self, fingerprint: str, *, actor: str, note: str | None = None) -> ErrorRecord:
        return self._transition(fingerprint, OperatorAction.START, actor=actor, note=note)

    def resolve(self, fingerprint: str, *, actor: str, note: str | None = None) -> ErrorRecord:
        return self._transition(fingerprint, OperatorAction.RESOLVE, actor=actor, note=note)

    def ignore(self, fingerprint: str, *, actor: str, note: str | None = None) -> ErrorRecord:
        return self._transition(fingerprint, OperatorAction.IGNORE, actor=actor, note=note)

    def reopen(self, fingerprint: str, *, actor: str, note: str | None = None) -> ErrorRecord:
        return self._transition(fingerprint, OperatorAction.REOPEN, actor=actor, note=note)

    def _transition(
        self,
        fingerprint: str,
        action: OperatorAction,
        *,
        actor: str,
        note: str | None = None,
        assigned_to: str | None = None,
    ) -> ErrorRecord:
        def decide(current: ErrorRecord) -> StatusChange:
            return apply_action(current.resolution_status, action)

        record = guard_store(
            lambda: self.repos.records.apply_transition(
                fingerprint=fingerprint,
                decide=decide,
                actor=actor,
                now=self.clock.now(),
                note=note,
                assigned_to=assigned_to,
            )
        )
        if record is None:
            raise RecordNotFound(fingerprint)
        self.logger.info(
            "error_record_status_changed",
            extra={
                "event": {
                    "fingerprint": fingerprint[:80],
                    "action": action.value,
                    "status": record.resolution_status.value,
                    "actor": actor,
                }
            },
        )
        return record
