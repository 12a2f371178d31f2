from datetime import datetime

import pytest

from funfarm_rewards.db.models import Profile, RewardTransaction
from funfarm_rewards.errors import (
    BulkPartialFailure, ConcurrentClaimConflict, DataUnavailable, UserNotFound, ValidationError
)
from funfarm_rewards.schemas import ReconciliationDirection, ReconciliationResult
from funfarm_rewards.services.reconciliation_service import reconciliation_service


def utc(day, hour, minute=0):
    return datetime(2025, 1, day, hour, minute)


@pytest.fixture
def over_credited(factory):
    """Persisted 500,000 against a recomputed 300,000"""
    factory.profile(
        "u1",
        pending_reward=400000,
        approved_reward=100000,
        welcome_bonus_claimed=True,
        wallet_bonus_claimed=True,
    )
    for i in range(10):
        factory.post("u1", utc(20, 2, i), quality=True)
    return "u1"


def test_over_credit_is_positive_and_flagged(db, over_credited):
    result = reconciliation_service.reconcile_user(db, over_credited)

    assert result.persisted_total == 500000
    assert result.recomputed_total == 300000
    assert result.daily_total == 200000
    assert result.bonus_total == 100000
    assert result.delta == 200000
    assert result.direction == ReconciliationDirection.over_credit
    assert result.large_discrepancy
    assert result.target_pending == 200000
    assert result.quality_posts == 10


def test_under_credit_is_negative(db, factory):
    factory.profile("u1", pending_reward=0)
    factory.post("u1", utc(20, 2), quality=True)

    result = reconciliation_service.reconcile_user(db, "u1")

    assert result.delta == -20000
    assert result.direction == ReconciliationDirection.under_credit
    assert not result.large_discrepancy


def test_unknown_user(db):
    with pytest.raises(UserNotFound):
        reconciliation_service.reconcile_user(db, "nobody")


def test_reset_is_idempotent_and_leaves_paid_balances_alone(db, over_credited):
    first = reconciliation_service.reset_pending_reward(db, over_credited, 200000, reason="manual review")
    second = reconciliation_service.reset_pending_reward(db, over_credited, 200000)

    assert first.changed
    assert first.previous_pending == 400000
    assert not second.changed

    profile = db.get(Profile, over_credited)
    assert profile.pending_reward == 200000
    assert profile.approved_reward == 100000
    assert profile.camly_balance == 0

    ledger = db.query(RewardTransaction).filter(RewardTransaction.kind == "reset").all()
    assert len(ledger) == 1
    assert ledger[0].amount == -200000
    assert ledger[0].pending_after == 200000


def test_reset_with_stale_expectation_conflicts(db, over_credited):
    with pytest.raises(ConcurrentClaimConflict):
        reconciliation_service.reset_pending_reward(db, over_credited, 0, expected_pending=123)

    assert db.get(Profile, over_credited).pending_reward == 400000


def test_reset_rejects_negative_values(db, over_credited):
    with pytest.raises(ValidationError):
        reconciliation_service.reset_pending_reward(db, over_credited, -1000)


def test_reset_to_recomputed_balances_the_user(db, over_credited):
    outcome = reconciliation_service.reset_to_recomputed(db, over_credited, actor_id="admin-1")
    assert outcome.pending_reward == 200000

    result = reconciliation_service.reconcile_user(db, over_credited)
    assert result.delta == 0
    assert result.direction == ReconciliationDirection.balanced

    again = reconciliation_service.reset_to_recomputed(db, over_credited)
    assert not again.changed


def test_reset_to_recomputed_honors_expected_pending_and_reason(db, over_credited):
    with pytest.raises(ConcurrentClaimConflict):
        reconciliation_service.reset_to_recomputed(db, over_credited, expected_pending=1)
    assert db.get(Profile, over_credited).pending_reward == 400000

    reconciliation_service.reset_to_recomputed(
        db, over_credited, expected_pending=400000, reason="ticket 42", actor_id="admin-1"
    )

    entry = db.query(RewardTransaction).filter(RewardTransaction.kind == "reset").one()
    assert entry.amount == -200000
    assert entry.reason.startswith("ticket 42 (reconciliation: recomputed 300000")


def fake_result(user_id):
    return ReconciliationResult(user_id=user_id, persisted_total=1000, recomputed_total=1000)


def test_population_continues_past_failing_users(session_factory, monkeypatch):
    def reconcile(db, user_id, cutoff=None):
        if user_id == "u2":
            raise DataUnavailable("timeout", retryable=True)
        return fake_result(user_id)

    monkeypatch.setattr(reconciliation_service, "reconcile_user", reconcile)
    progress = []

    report = reconciliation_service.reconcile_population(
        session_factory,
        user_ids=["u3", "u1", "u2"],
        batch_size=2,
        on_progress=lambda done, total: progress.append((done, total)),
    )

    assert [r.user_id for r in report.results] == ["u1", "u3"]
    assert [f.user_id for f in report.failures] == ["u2"]
    assert report.failures[0].retryable
    assert progress == [(2, 3), (3, 3)]

    with pytest.raises(BulkPartialFailure) as excinfo:
        report.raise_for_failures()
    assert excinfo.value.report is report
    assert str(excinfo.value) == "1 of 3 users failed"


def test_population_can_be_cancelled_between_batches(session_factory, monkeypatch):
    monkeypatch.setattr(reconciliation_service, "reconcile_user", lambda db, user_id, cutoff=None: fake_result(user_id))
    calls = []

    def should_cancel():
        calls.append(1)
        return len(calls) > 1

    report = reconciliation_service.reconcile_population(
        session_factory, user_ids=["u1", "u2", "u3", "u4"], batch_size=2, should_cancel=should_cancel
    )

    assert report.cancelled
    assert report.processed == 2
    assert [r.user_id for r in report.results] == ["u1", "u2"]


def test_population_skips_banned_users(session_factory, factory):
    factory.profile("u1")
    factory.profile("u2", pending_reward=50000)
    factory.profile("u3", banned=True)

    report = reconciliation_service.reconcile_population(session_factory, batch_size=1)

    assert report.total == 2
    assert [r.user_id for r in report.results] == ["u1", "u2"]
    assert report.results[1].delta == 50000
    assert not report.has_failures


def test_population_rejects_bad_batch_size(session_factory):
    with pytest.raises(ValidationError):
        reconciliation_service.reconcile_population(session_factory, user_ids=["u1"], batch_size=-1)
