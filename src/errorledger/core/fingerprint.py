"""Deduplication keys for error events.

Only ``message`` and ``source`` take part in the key; timestamps, users,
record references and the rest of the event context never do.

The default ``truncate`` strategy concatenates message and source and cuts
the result at ``max_length`` characters. Two long errors that share the
first ``max_length`` characters therefore merge into one record. The
``sha256`` strategy hashes the full text instead and keeps them apart.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from .policies import FingerprintStrategy

if TYPE_CHECKING:
    from ..config import FingerprintSettings

DEFAULT_MAX_LENGTH = 255
EMPTY_FINGERPRINT = ""


class Fingerprintable(Protocol):
    message: str | None
    source: str | None


def truncated_fingerprint(message: str | None, source: str | None, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    return f"{message or ''}{source or ''}"[:max_length]


def hashed_fingerprint(message: str | None, source: str | None) -> str:
    message = message or ""
    source = source or ""
    if not message and not source:
        return EMPTY_FINGERPRINT
    # unit separator keeps ("ab", "c") and ("a", "bc") apart
    raw = f"{message}\x1f{source}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def fingerprint(
    event: Fingerprintable,
    *,
    strategy: FingerprintStrategy = FingerprintStrategy.TRUNCATE,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    if strategy == FingerprintStrategy.SHA256:
        return hashed_fingerprint(event.message, event.source)
    return truncated_fingerprint(event.message, event.source, max_length)


@dataclass(slots=True, frozen=True)
class Fingerprinter:
    strategy: FingerprintStrategy = FingerprintStrategy.TRUNCATE
    max_length: int = DEFAULT_MAX_LENGTH

    @classmethod
    def from_settings(cls, cfg: FingerprintSettings) -> "Fingerprinter":
        return cls(strategy=FingerprintStrategy(cfg.strategy), max_length=int(cfg.max_length))

    def __call__(self, event: Fingerprintable) -> str:
        return fingerprint(event, strategy=self.strategy, max_length=self.max_length)
