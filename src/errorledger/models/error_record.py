from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from ..core.policies import BusinessImpact, ErrorType, ResolutionStatus


class ErrorRecord(BaseModel):
    fingerprint: str
    error_type: ErrorType
    source: str
    message: str
    details: str | None = None
    context: str | None = None
    affected_user: str | None = None
    business_impact: BusinessImpact
    environment: str
    api_endpoint: str | None = None
    external_system: str | None = None
    record_object: str | None = None
    record_id: str | None = None
    submitted_by: str | None = None
    occurrence_count: int = 1
    first_occurrence: datetime
    last_occurrence: datetime
    assigned_to: str | None = None
    resolution_status: ResolutionStatus = ResolutionStatus.NEW
    status_changed_at: datetime
    reopened_count: int = 0

    @property
    def is_open(self) -> bool:
        return self.resolution_status not in (ResolutionStatus.RESOLVED, ResolutionStatus.IGNORED)


class StatusTransition(BaseModel):
    id: int | None = None
    fingerprint: str
    from_status: ResolutionStatus
    to_status: ResolutionStatus
    action: str
    actor: str
    note: str | None = None
    created_at: datetime
