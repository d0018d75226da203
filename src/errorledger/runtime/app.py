from __future__ import annotations

import logging
from dataclasses import dataclass
from logging import Logger

from ..config import AppSettings, load_settings
from ..core.clock import Clock, SystemClock
from ..core.fingerprint import Fingerprinter
from ..services.error_store import ErrorStore
from ..services.ingestion_service import IngestionService
from ..services.query_service import QueryService
from ..storage.db import Database
from ..storage.migrations import apply_migrations
from ..storage.repositories import Repositories, build_repositories
from .logging_setup import setup_logging


@dataclass(slots=True)
class RuntimeContainer:
    settings: AppSettings
    db: Database
    repos: Repositories
    store: ErrorStore
    ingestion: IngestionService
    query: QueryService
    logger: Logger
    clock: Clock

    def close(self) -> None:
        for handler in self.logger.handlers:
            handler.flush()


def build_runtime(
    settings: AppSettings | None = None,
    *,
    clock: Clock | None = None,
    log_to_stream: bool = True,
) -> RuntimeContainer:
    settings = settings or load_settings()
    logger = setup_logging(settings.logging, stream=log_to_stream)
    clock = clock or SystemClock()

    db = Database.from_settings(settings.storage)
    apply_migrations(db)
    repos = build_repositories(db)

    store = ErrorStore(
        repos=repos,
        settings=settings.ingestion,
        fingerprinter=Fingerprinter.from_settings(settings.fingerprint),
        clock=clock,
        logger=logging.getLogger(f"{logger.name}.store"),
    )
    ingestion = IngestionService(
        store=store,
        settings=settings.ingestion,
        retry=settings.store_retry,
        logger=logging.getLogger(f"{logger.name}.ingestion"),
    )
    query = QueryService(repos=repos, settings=settings.query)

    return RuntimeContainer(
        settings=settings,
        db=db,
        repos=repos,
        store=store,
        ingestion=ingestion,
        query=query,
        logger=logger,
        clock=clock,
    )
