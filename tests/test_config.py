from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from errorledger.config import AppSettings, StoreRetrySettings
from errorledger.core.fingerprint import Fingerprinter
from errorledger.core.policies import BusinessImpact, FingerprintStrategy, ReopenPolicy


def test_defaults() -> None:
    settings = AppSettings(_env_file=None)
    assert settings.fingerprint.strategy == FingerprintStrategy.TRUNCATE
    assert settings.fingerprint.max_length == 255
    assert settings.ingestion.reopen_policy == ReopenPolicy.REOPEN_RESOLVED
    assert settings.ingestion.auto_assign_to_submitter is False
    assert settings.ingestion.default_business_impact == BusinessImpact.MEDIUM
    assert settings.store_retry.attempts == 3
    assert settings.data_dir == Path("ledger_data")


def test_nested_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("ERRORLEDGER_FINGERPRINT__STRATEGY", "sha256")
    monkeypatch.setenv("ERRORLEDGER_INGESTION__AUTO_ASSIGN_TO_SUBMITTER", "true")
    monkeypatch.setenv("ERRORLEDGER_INGESTION__MAX_DETAIL_LENGTH", "1000")
    monkeypatch.setenv("ERRORLEDGER_INGESTION__REOPEN_POLICY", "never")
    settings = AppSettings(_env_file=None)
    assert settings.fingerprint.strategy == FingerprintStrategy.SHA256
    assert settings.ingestion.auto_assign_to_submitter is True
    assert settings.ingestion.max_detail_length == 1000
    assert settings.ingestion.reopen_policy == ReopenPolicy.NEVER
    assert Fingerprinter.from_settings(settings.fingerprint).strategy == FingerprintStrategy.SHA256


def test_env_file_is_read(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("ERRORLEDGER_INGESTION__DEFAULT_ENVIRONMENT=staging\n", encoding="utf-8")
    settings = AppSettings(_env_file=env_file)
    assert settings.ingestion.default_environment == "staging"


def test_retry_budget_is_bounded() -> None:
    with pytest.raises(ValidationError):
        StoreRetrySettings(attempts=5)
    with pytest.raises(ValidationError):
        StoreRetrySettings(attempts=0)
