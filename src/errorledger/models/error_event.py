from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field

from ..core.policies import BusinessImpact, ErrorType


class ErrorEvent(BaseModel):
    error_type: ErrorType = Field(validation_alias=AliasChoices("error_type", "type"))
    source: str
    message: str
    details: str | None = None
    context: str | None = None
    affected_user: str | None = None
    business_impact: BusinessImpact | None = None
    environment: str | None = None
    api_endpoint: str | None = None
    external_system: str | None = None
    record_object: str | None = None
    record_id: str | None = None
    submitted_by: str | None = None
