from __future__ import annotations

from typing import Any


class ErrorLedgerError(Exception):
    """Base class for every error raised by errorledger."""


class IngestError(ErrorLedgerError):
    code = "ingest_error"

    def to_dict(self) -> dict[str, Any]:
        return {"error_code": self.code, "message": str(self)}


class ValidationError(IngestError):
    """A producer event is missing a required field or carries an invalid value."""

    code = "validation_error"

    def __init__(self, message: str, *, problems: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.problems = dict(problems or {})

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["problems"] = self.problems
        return payload


class StoreUnavailable(IngestError):
    """The persistence layer could not complete the read or write."""

    code = "store_unavailable"


class RecordNotFound(ErrorLedgerError):
    def __init__(self, fingerprint: str) -> None:
        super().__init__(f"no error record with fingerprint {fingerprint!r}")
        self.fingerprint = fingerprint


class InvalidTransition(ErrorLedgerError):
    def __init__(self, status: str, action: str) -> None:
        super().__init__(f"cannot {action} a record in status {status}")
        self.status = status
        self.action = action
