from __future__ import annotations

from datetime import timedelta

import pytest

from errorledger.config import IngestionSettings
from errorledger.core.fingerprint import Fingerprinter
from errorledger.core.policies import BusinessImpact, ErrorType, FingerprintStrategy, ReopenPolicy, ResolutionStatus
from errorledger.errors import InvalidTransition, RecordNotFound
from errorledger.models.error_event import ErrorEvent
from errorledger.services.error_store import ErrorStore


def _event(**overrides) -> ErrorEvent:
    payload = {
        "error_type": "Apex",
        "source": "InvoiceService.post",
        "message": "System.DmlException: REQUIRED_FIELD_MISSING",
        "details": "stack line 1",
        "context": "batch 1",
    }
    payload.update(overrides)
    return ErrorEvent(**payload)


def test_first_upsert_creates_record_with_count_one(store, clock) -> None:
    outcome = store.upsert(_event())
    record = outcome.record

    assert outcome.created is True
    assert outcome.reopened is False
    assert record.occurrence_count == 1
    assert record.first_occurrence == clock.now()
    assert record.last_occurrence == clock.now()
    assert record.resolution_status == ResolutionStatus.NEW
    assert record.business_impact == BusinessImpact.MEDIUM
    assert record.environment == "production"
    assert record.fingerprint == "System.DmlException: REQUIRED_FIELD_MISSINGInvoiceService.post"


def test_repeat_upsert_increments_and_latest_detail_wins(store, repos, clock) -> None:
    first = store.upsert(_event(affected_user="005aa")).record
    clock.advance(minutes=5)
    second = store.upsert(_event(details=None, context="batch 2", affected_user="005xx")).record

    assert second.fingerprint == first.fingerprint
    assert second.occurrence_count == 2
    assert second.first_occurrence == first.first_occurrence
    assert second.last_occurrence == first.first_occurrence + timedelta(minutes=5)
    assert second.details is None
    assert second.context == "batch 2"
    assert second.affected_user == "005aa"
    assert repos.records.count() == 1


def test_repeat_upsert_keeps_classification_of_first_occurrence(store, query) -> None:
    first = store.upsert(
        _event(business_impact="Critical", environment="production", record_object="Invoice__c", record_id="a01A")
    ).record
    repeat = store.upsert(_event(business_impact=None, environment=None, record_id="a01B")).record
    other = store.upsert(_event(error_type="Flow", business_impact="Low", environment="uat")).record

    assert repeat.occurrence_count == 2
    assert other.occurrence_count == 3
    assert other.business_impact == BusinessImpact.CRITICAL
    assert other.error_type == ErrorType.APEX
    assert other.environment == "production"
    assert other.record_object == "Invoice__c"
    assert other.record_id == "a01A"
    assert [r.fingerprint for r in query.open_critical()] == [first.fingerprint]


def test_last_occurrence_never_moves_backwards(store, clock) -> None:
    first = store.upsert(_event()).record
    clock.advance(minutes=-10)
    second = store.upsert(_event()).record
    assert second.last_occurrence == first.last_occurrence
    assert second.first_occurrence == first.first_occurrence


def test_distinct_fingerprints_create_distinct_records(store, repos) -> None:
    store.upsert(_event())
    store.upsert(_event(message="Other failure"))
    store.upsert(_event(source="InvoiceService.cancel"))
    assert repos.records.count() == 3


def test_sha256_strategy_keeps_long_messages_with_shared_prefix_apart(repos, clock) -> None:
    store = ErrorStore(
        repos=repos,
        settings=IngestionSettings(),
        fingerprinter=Fingerprinter(strategy=FingerprintStrategy.SHA256),
        clock=clock,
    )
    prefix = "x" * 255
    first = store.upsert(_event(message=prefix + "a" * 45)).record
    second = store.upsert(_event(message=prefix + "b" * 45)).record

    assert first.fingerprint != second.fingerprint
    assert len(first.fingerprint) == 64
    assert first.occurrence_count == second.occurrence_count == 1
    assert repos.records.count() == 2


def test_resolved_record_reopens_to_new_on_new_occurrence(store, query, clock) -> None:
    fp = store.upsert(_event()).record.fingerprint
    store.resolve(fp, actor="ops")
    clock.advance(hours=1)

    outcome = store.upsert(_event())

    assert outcome.reopened is True
    assert outcome.record.resolution_status == ResolutionStatus.NEW
    assert outcome.record.reopened_count == 1
    assert outcome.record.status_changed_at == clock.now()
    assert query.get(fp).resolution_status == ResolutionStatus.NEW
    transitions = query.history(fp)
    assert [(t.from_status, t.to_status, t.actor) for t in transitions] == [
        (ResolutionStatus.NEW, ResolutionStatus.RESOLVED, "ops"),
        (ResolutionStatus.RESOLVED, ResolutionStatus.NEW, "system"),
    ]


def test_ignored_record_stays_ignored_under_default_policy(store) -> None:
    fp = store.upsert(_event()).record.fingerprint
    store.ignore(fp, actor="ops")
    outcome = store.upsert(_event())
    assert outcome.reopened is False
    assert outcome.record.resolution_status == ResolutionStatus.IGNORED
    assert outcome.record.occurrence_count == 2


@pytest.mark.parametrize(
    ("policy", "closing_action", "expected"),
    [
        (ReopenPolicy.REOPEN_ALL, "ignore", ResolutionStatus.NEW),
        (ReopenPolicy.NEVER, "resolve", ResolutionStatus.RESOLVED),
    ],
)
def test_configured_reopen_policy(repos, clock, policy, closing_action, expected) -> None:
    store = ErrorStore(
        repos=repos,
        settings=IngestionSettings(reopen_policy=policy),
        fingerprinter=Fingerprinter(),
        clock=clock,
    )
    fp = store.upsert(_event()).record.fingerprint
    getattr(store, closing_action)(fp, actor="ops")
    assert store.upsert(_event()).record.resolution_status == expected


def test_operator_lifecycle_and_assignment(store) -> None:
    fp = store.upsert(_event()).record.fingerprint

    assigned = store.assign(fp, "dev.one", actor="lead")
    assert assigned.resolution_status == ResolutionStatus.ASSIGNED
    assert assigned.assigned_to == "dev.one"

    started = store.start_work(fp, actor="dev.one")
    assert started.resolution_status == ResolutionStatus.IN_PROGRESS
    assert started.assigned_to == "dev.one"

    resolved = store.resolve(fp, actor="dev.one", note="fixed in release 42")
    assert resolved.resolution_status == ResolutionStatus.RESOLVED

    with pytest.raises(InvalidTransition):
        store.start_work(fp, actor="dev.one")

    reopened = store.reopen(fp, actor="lead")
    assert reopened.resolution_status == ResolutionStatus.NEW


def test_invalid_transition_leaves_record_untouched(store, query) -> None:
    fp = store.upsert(_event()).record.fingerprint
    with pytest.raises(InvalidTransition):
        store.reopen(fp, actor="ops")
    assert query.get(fp).resolution_status == ResolutionStatus.NEW
    assert query.history(fp) == []


def test_actions_on_unknown_fingerprint_raise(store) -> None:
    with pytest.raises(RecordNotFound):
        store.resolve("missing", actor="ops")
    with pytest.raises(RecordNotFound):
        store.get("missing")


def test_auto_assign_sets_assignee_on_creation_only(repos, clock) -> None:
    store = ErrorStore(
        repos=repos,
        settings=IngestionSettings(auto_assign_to_submitter=True),
        clock=clock,
    )
    first = store.upsert(_event(submitted_by="alice")).record
    assert first.assigned_to == "alice"
    assert first.resolution_status == ResolutionStatus.NEW

    second = store.upsert(_event(submitted_by="bob")).record
    assert second.assigned_to == "alice"
    assert second.submitted_by == "alice"


def test_auto_assign_disabled_by_default(store) -> None:
    record = store.upsert(_event(submitted_by="alice")).record
    assert record.assigned_to is None
    assert record.submitted_by == "alice"
