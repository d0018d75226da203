from __future__ import annotations

from enum import StrEnum


class ErrorType(StrEnum):
    APEX = "Apex"
    FLOW = "Flow"
    LWC = "LWC"
    INTEGRATION = "Integration"


class BusinessImpact(StrEnum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ResolutionStatus(StrEnum):
    NEW = "New"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "InProgress"
    RESOLVED = "Resolved"
    IGNORED = "Ignored"


class ReopenPolicy(StrEnum):
    REOPEN_RESOLVED = "reopen_resolved"
    REOPEN_ALL = "reopen_all"
    NEVER = "never"


class FingerprintStrategy(StrEnum):
    TRUNCATE = "truncate"
    SHA256 = "sha256"


TERMINAL_STATUSES = frozenset({ResolutionStatus.RESOLVED, ResolutionStatus.IGNORED})
