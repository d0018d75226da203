from __future__ import annotations

import logging
import random
import time
import traceback
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from pydantic import ValidationError as PydanticValidationError

from ..config import IngestionSettings, StoreRetrySettings
from ..core.policies import BusinessImpact, ErrorType
from ..errors import IngestError, StoreUnavailable, ValidationError
from ..models.error_event import ErrorEvent
from ..models.error_record import ErrorRecord
from .error_store import ErrorStore

REQUIRED_FIELDS = ("error_type", "source", "message")

_DETAIL_FIELDS = frozenset({"details", "context"})
_SHORT_FIELDS = (
    "source",
    "affected_user",
    "environment",
    "api_endpoint",
    "external_system",
    "record_object",
    "record_id",
    "submitted_by",
)


@dataclass(slots=True)
class IngestResult:
    record: ErrorRecord | None = None
    error: IngestError | None = None
    created: bool = False
    reopened: bool = False
    notify_critical: bool = False
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and self.record is not None

    def unwrap(self) -> ErrorRecord:
        if self.error is not None:
            raise self.error
        assert self.record is not None
        return self.record

    def ack(self) -> dict[str, Any]:
        if not self.ok:
            assert self.error is not None
            return {"ok": False, **self.error.to_dict()}
        assert self.record is not None
        return {
            "ok": True,
            "fingerprint": self.record.fingerprint,
            "occurrence_count": self.record.occurrence_count,
            "created": self.created,
        }


def _cap(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value[:limit]


class IngestionService:
    def __init__(
        self,
        *,
        store: ErrorStore,
        settings: IngestionSettings,
        retry: StoreRetrySettings | None = None,
        logger: logging.Logger | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.settings = settings
        self.retry = retry or StoreRetrySettings()
        self.logger = logger or logging.getLogger("errorledger.ingestion")
        self.sleep_fn = sleep_fn

    def ingest(self, raw: ErrorEvent | Mapping[str, Any]) -> IngestResult:
        try:
            event = self.normalize(self.validate(raw))
        except ValidationError as exc:
            self.logger.warning(
                "ingest_rejected",
                extra={"event": {"code": exc.code, "problems": exc.problems}},
            )
            return IngestResult(error=exc)

        attempts = max(1, int(self.retry.attempts))
        last_exc: StoreUnavailable | None = None
        for attempt in range(1, attempts + 1):
            try:
                outcome = self.store.upsert(event)
            except StoreUnavailable as exc:
                last_exc = exc
                self.logger.warning(
                    "ingest_store_retry",
                    extra={"event": {"attempt": attempt, "of": attempts, "error": str(exc)}},
                )
                if attempt < attempts:
                    self.sleep_fn(self._backoff(attempt))
                continue
            record = outcome.record
            return IngestResult(
                record=record,
                created=outcome.created,
                reopened=outcome.reopened,
                notify_critical=self._needs_critical_notice(record, outcome.created, outcome.reopened),
                attempts=attempt,
            )

        self.logger.error(
            "ingest_store_unavailable",
            extra={
                "event": {
                    "attempts": attempts,
                    "type": event.error_type.value,
                    "source": event.source,
                    "error": str(last_exc),
                }
            },
        )
        return IngestResult(error=last_exc, attempts=attempts)

    def validate(self, raw: ErrorEvent | Mapping[str, Any]) -> ErrorEvent:
        if isinstance(raw, ErrorEvent):
            data: dict[str, Any] = raw.model_dump()
        elif isinstance(raw, Mapping):
            data = dict(raw)
            if "error_type" not in data and "type" in data:
                data["error_type"] = data.pop("type")
        else:
            raise ValidationError(
                f"unsupported event payload: {type(raw).__name__}",
                problems={"event": "expected a mapping or ErrorEvent"},
            )

        problems: dict[str, str] = {}
        for name in REQUIRED_FIELDS:
            value = data.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                problems[name] = "required"
        if problems:
            raise ValidationError(
                f"missing required field(s): {', '.join(sorted(problems))}",
                problems=problems,
            )

        try:
            return ErrorEvent.model_validate(data)
        except PydanticValidationError as exc:
            for err in exc.errors():
                loc = ".".join(str(p) for p in err.get("loc", ())) or "event"
                problems[loc] = str(err.get("msg", "invalid"))
            raise ValidationError(
                f"invalid field(s): {', '.join(sorted(problems))}",
                problems=problems,
            ) from exc

    def normalize(self, event: ErrorEvent) -> ErrorEvent:
        cfg = self.settings
        update: dict[str, Any] = {}
        for name in ("message", *_DETAIL_FIELDS, *_SHORT_FIELDS):
            value = getattr(event, name)
            if isinstance(value, str):
                value = value.strip() or None
            if name == "message":
                value = _cap(value, cfg.max_message_length)
            elif name in _DETAIL_FIELDS:
                value = _cap(value, cfg.max_detail_length)
            else:
                value = _cap(value, cfg.max_field_length)
            update[name] = value
        update["environment"] = update["environment"] or cfg.default_environment
        update["business_impact"] = event.business_impact or cfg.default_business_impact
        return event.model_copy(update=update)

    def report_exception(
        self,
        exc: BaseException,
        *,
        error_type: ErrorType | str = ErrorType.APEX,
        source: str | None = None,
        business_impact: BusinessImpact | str | None = None,
        **fields: Any,
    ) -> IngestResult:
        """Ingest a caught exception.

        The message is ``"<ExceptionClass>: <text>"``, details hold the
        formatted traceback, and the source defaults to the ``module.function``
        of the innermost traceback frame.
        """
        payload: dict[str, Any] = {
            "error_type": error_type,
            "source": source or _exception_source(exc),
            "message": f"{exc.__class__.__name__}: {exc}",
            "details": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            "business_impact": business_impact,
            **fields,
        }
        return self.ingest(payload)

    def _needs_critical_notice(self, record: ErrorRecord, created: bool, reopened: bool) -> bool:
        if not self.settings.notify_on_critical:
            return False
        return record.business_impact == BusinessImpact.CRITICAL and (created or reopened)

    def _backoff(self, attempt: int) -> float:
        base = self.retry.backoff_sec * (2 ** (attempt - 1))
        jitter = random.uniform(0, self.retry.jitter_max_sec) if self.retry.jitter_max_sec > 0 else 0.0
        return base + jitter


def _exception_source(exc: BaseException) -> str:
    tb = exc.__traceback__
    if tb is None:
        return f"{type(exc).__module__}.{type(exc).__qualname__}"
    while tb.tb_next is not None:
        tb = tb.tb_next
    frame = tb.tb_frame
    module = frame.f_globals.get("__name__", "unknown")
    return f"{module}.{frame.f_code.co_qualname}"
