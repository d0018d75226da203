from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.policies import BusinessImpact, FingerprintStrategy, ReopenPolicy


class LoggingSettings(BaseModel):
    level: str = "INFO"
    jsonl: bool = True
    log_dir: Path = Path("ledger_data/logs")
    log_file: str = "errorledger.log"
    max_bytes: int = 4 * 1024 * 1024
    backup_count: int = 5
    max_field_chars: PositiveInt = 512

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.log_file


class StorageSettings(BaseModel):
    db_path: Path = Path("ledger_data/errorledger.sqlite3")
    wal: bool = True
    busy_timeout_ms: int = 5000


class StoreRetrySettings(BaseModel):
    attempts: int = Field(default=3, ge=1, le=3)
    backoff_sec: float = 0.05
    jitter_max_sec: float = 0.05


class FingerprintSettings(BaseModel):
    strategy: FingerprintStrategy = FingerprintStrategy.TRUNCATE
    max_length: PositiveInt = 255


class IngestionSettings(BaseModel):
    auto_assign_to_submitter: bool = False
    notify_on_critical: bool = True
    max_message_length: PositiveInt = 32768
    max_detail_length: PositiveInt = 32768
    max_field_length: PositiveInt = 255
    default_environment: str = "production"
    default_business_impact: BusinessImpact = BusinessImpact.MEDIUM
    reopen_policy: ReopenPolicy = ReopenPolicy.REOPEN_RESOLVED


class QuerySettings(BaseModel):
    default_limit: int = Field(default=100, ge=1, le=1000)
    top_recurring: int = 10
    order: Literal["last_occurrence_desc", "occurrence_count_desc"] = "last_occurrence_desc"


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ERRORLEDGER_",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=False,
    )

    env: str = "dev"
    app_name: str = "errorledger"

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    store_retry: StoreRetrySettings = Field(default_factory=StoreRetrySettings)
    fingerprint: FingerprintSettings = Field(default_factory=FingerprintSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)

    @property
    def data_dir(self) -> Path:
        return self.storage.db_path.parent

    def ensure_runtime_dirs(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.logging.log_dir.mkdir(parents=True, exist_ok=True)


def load_settings() -> AppSettings:
    env_file = resolve_env_file()
    settings = AppSettings(_env_file=env_file) if env_file else AppSettings()
    settings.ensure_runtime_dirs()
    return settings


def resolve_env_file() -> Path | None:
    """Resolve a deterministic .env file path for local and service runs."""
    candidates: list[Path] = []
    explicit = os.getenv("ERRORLEDGER_ENV_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())

    candidates.append(Path.cwd() / ".env")
    candidates.append(Path(__file__).resolve().parents[2] / ".env")

    seen: set[str] = set()
    for path in candidates:
        resolved = path.resolve()
        key = str(resolved)
        if key in seen:
            continue
        seen.add(key)
        if resolved.is_file():
            return resolved
    return None
