from __future__ import annotations

import json
import logging

from errorledger.config import LoggingSettings
from errorledger.runtime.logging_setup import JsonLineFormatter, setup_logging


def test_json_line_formatter_merges_event_fields() -> None:
    record = logging.LogRecord("errorledger.store", logging.INFO, __file__, 1, "error_record_created", None, None)
    record.event = {"fingerprint": "boomA.b", "type": "Apex"}
    payload = json.loads(JsonLineFormatter().format(record))
    assert payload["msg"] == "error_record_created"
    assert payload["logger"] == "errorledger.store"
    assert payload["fingerprint"] == "boomA.b"
    assert payload["type"] == "Apex"


def test_setup_logging_writes_jsonl_file(tmp_path) -> None:
    cfg = LoggingSettings(log_dir=tmp_path / "logs", log_file="test.log")
    logger = setup_logging(cfg, logger_name="errorledger_test_logging", stream=False)
    logging.getLogger("errorledger_test_logging.child").info("hello", extra={"event": {"n": 1}})
    for handler in logger.handlers:
        handler.flush()
    lines = cfg.log_path.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[-1])["n"] == 1
    assert len(logger.handlers) == 1
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_json_line_formatter_clips_long_values_and_keeps_reserved_keys() -> None:
    record = logging.LogRecord("errorledger.ingestion", logging.WARNING, __file__, 1, "ingest_rejected", None, None)
    record.event = {"msg": "shadow", "details": "x" * 50}
    payload = json.loads(JsonLineFormatter(max_field_chars=10).format(record))
    assert payload["msg"] == "ingest_rej...(+5 chars)"
    assert payload["event_msg"] == "shadow"
    assert payload["details"] == "xxxxxxxxxx...(+40 chars)"
    assert payload["ts"].endswith("Z")


def test_setup_logging_twice_does_not_duplicate_handlers(tmp_path) -> None:
    cfg = LoggingSettings(log_dir=tmp_path / "logs", log_file="again.log")
    setup_logging(cfg, logger_name="errorledger_test_relog", stream=False)
    logger = setup_logging(cfg, logger_name="errorledger_test_relog", stream=True)
    assert len(logger.handlers) == 2
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
