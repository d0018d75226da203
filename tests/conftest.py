from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

import pytest

from errorledger.config import AppSettings, IngestionSettings, StoreRetrySettings
from errorledger.core.clock import FrozenClock
from errorledger.core.fingerprint import Fingerprinter
from errorledger.services.error_store import ErrorStore
from errorledger.services.ingestion_service import IngestionService
from errorledger.services.query_service import QueryService
from errorledger.storage.db import Database
from errorledger.storage.migrations import apply_migrations
from errorledger.storage.repositories import build_repositories


def _logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger


@pytest.fixture()
def temp_db(tmp_path: Path) -> Database:
    db = Database(tmp_path / "test.sqlite3", wal=True)
    apply_migrations(db)
    return db


@pytest.fixture()
def repos(temp_db: Database):
    return build_repositories(temp_db)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 9, 0, tzinfo=UTC))


@pytest.fixture()
def ingestion_settings() -> IngestionSettings:
    return IngestionSettings()


@pytest.fixture()
def store(repos, clock, ingestion_settings) -> ErrorStore:
    return ErrorStore(
        repos=repos,
        settings=ingestion_settings,
        fingerprinter=Fingerprinter(),
        clock=clock,
        logger=_logger("test_errorledger_store"),
    )


@pytest.fixture()
def ingestion(store, ingestion_settings) -> IngestionService:
    return IngestionService(
        store=store,
        settings=ingestion_settings,
        retry=StoreRetrySettings(attempts=3, backoff_sec=0.0, jitter_max_sec=0.0),
        logger=_logger("test_errorledger_ingestion"),
        sleep_fn=lambda _: None,
    )


@pytest.fixture()
def query(repos) -> QueryService:
    return QueryService(repos=repos, settings=AppSettings(_env_file=None).query)
