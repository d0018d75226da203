from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..config import QuerySettings
from ..core.policies import TERMINAL_STATUSES, BusinessImpact, ErrorType, ResolutionStatus
from ..errors import RecordNotFound
from ..models.error_record import ErrorRecord, StatusTransition
from ..storage.db import guard_store
from ..storage.repositories import Repositories

MAX_LIMIT = 1000


@dataclass(slots=True)
class RecordFilter:
    since: datetime | None = None
    until: datetime | None = None
    error_type: ErrorType | None = None
    business_impact: BusinessImpact | None = None
    assigned_to: str | None = None
    status: ResolutionStatus | None = None
    source: str | None = None
    environment: str | None = None

    def as_kwargs(self) -> dict[str, object]:
        return {
            "since": self.since,
            "until": self.until,
            "error_type": self.error_type.value if self.error_type else None,
            "business_impact": self.business_impact.value if self.business_impact else None,
            "assigned_to": self.assigned_to,
            "status": self.status.value if self.status else None,
            "source": self.source,
            "environment": self.environment,
        }


@dataclass(slots=True)
class QueryService:
    """Read-only access for dashboards and reporting consumers."""

    repos: Repositories
    settings: QuerySettings

    def list_records(
        self,
        record_filter: RecordFilter | None = None,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ErrorRecord]:
        limit = self._checked_limit(limit)
        if offset < 0:
            raise ValueError("offset must be 0 or greater")
        record_filter = record_filter or RecordFilter()
        order_by = "occurrence_count" if self.settings.order == "occurrence_count_desc" else "last_occurrence"
        return guard_store(
            lambda: self.repos.records.list_records(
                **record_filter.as_kwargs(),
                limit=limit,
                offset=offset,
                order_by=order_by,
            )
        )

    def count(self, record_filter: RecordFilter | None = None) -> int:
        kwargs = (record_filter or RecordFilter()).as_kwargs()
        return guard_store(lambda: self.repos.records.count(**kwargs))

    def get(self, fingerprint: str) -> ErrorRecord:
        record = guard_store(lambda: self.repos.records.get(fingerprint))
        if record is None:
            raise RecordNotFound(fingerprint)
        return record

    def history(self, fingerprint: str) -> list[StatusTransition]:
        self.get(fingerprint)
        return guard_store(lambda: self.repos.transitions.list_for(fingerprint))

    def open_critical(self, *, limit: int | None = None) -> list[ErrorRecord]:
        """Unresolved Critical records, most recently seen first."""
        limit = self._checked_limit(limit)
        return guard_store(
            lambda: self.repos.records.list_records(
                business_impact=BusinessImpact.CRITICAL.value,
                exclude_statuses=TERMINAL_STATUSES,
                limit=limit,
                order_by="last_occurrence",
            )
        )

    def count_open_critical(self) -> int:
        return guard_store(
            lambda: self.repos.records.count(
                business_impact=BusinessImpact.CRITICAL.value,
                exclude_statuses=TERMINAL_STATUSES,
            )
        )

    def summary(self, *, since: datetime | None = None) -> dict[str, object]:
        return guard_store(lambda: self._summary(since))

    def _summary(self, since: datetime | None) -> dict[str, object]:
        records = self.repos.records
        top = records.list_records(since=since, limit=self.settings.top_recurring, order_by="occurrence_count")
        return {
            **records.totals(since=since),
            "by_type": records.count_by("error_type", since=since),
            "by_impact": records.count_by("business_impact", since=since),
            "by_status": records.count_by("resolution_status", since=since),
            "top_recurring": [
                {
                    "fingerprint": r.fingerprint,
                    "source": r.source,
                    "message": r.message[:200],
                    "occurrence_count": r.occurrence_count,
                    "last_occurrence": r.last_occurrence.isoformat(),
                    "status": r.resolution_status.value,
                }
                for r in top
            ],
        }

    def _checked_limit(self, limit: int | None) -> int:
        limit = self.settings.default_limit if limit is None else int(limit)
        if limit < 1 or limit > MAX_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LIMIT}")
        return limit
