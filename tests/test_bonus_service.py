import pytest

from funfarm_rewards.db.models import BlacklistedWallet, Profile, RewardTransaction
from funfarm_rewards.errors import ConcurrentClaimConflict, UserNotFound, ValidationError
from funfarm_rewards.schemas import BonusKind
from funfarm_rewards.services.bonus_service import bonus_service


def pending_of(db, user_id):
    db.expire_all()
    return db.get(Profile, user_id).pending_reward


def test_welcome_bonus_is_credited_exactly_once(db, factory):
    factory.profile("u1")

    outcome = bonus_service.claim_bonus(db, "u1", "welcome")
    with pytest.raises(ConcurrentClaimConflict):
        bonus_service.claim_bonus(db, "u1", BonusKind.welcome)

    assert outcome.amount == 50000
    assert outcome.pending_reward == 50000
    assert pending_of(db, "u1") == 50000
    assert db.get(Profile, "u1").welcome_bonus_claimed
    assert db.query(RewardTransaction).filter(RewardTransaction.kind == "welcome_bonus").count() == 1


def test_bonus_kinds_are_independent(db, factory):
    factory.profile("u1", wallet_address="0xabc")

    bonus_service.claim_bonus(db, "u1", "welcome")
    bonus_service.claim_bonus(db, "u1", "wallet")
    bonus_service.claim_bonus(db, "u1", "verification")

    assert pending_of(db, "u1") == 150000


def test_wallet_bonus_requires_clean_wallet(db, factory):
    factory.profile("no-wallet")
    factory.profile("blacklisted", wallet_address="0xDEAD")
    db.add(BlacklistedWallet(wallet_address="0xdead", reason="shared wallet"))
    db.commit()

    with pytest.raises(ValidationError):
        bonus_service.claim_bonus(db, "no-wallet", "wallet")
    with pytest.raises(ValidationError):
        bonus_service.claim_bonus(db, "blacklisted", "wallet")
    assert pending_of(db, "blacklisted") == 0


def test_claim_rejects_unknown_users_kinds_and_banned_users(db, factory):
    factory.profile("banned", banned=True)

    with pytest.raises(UserNotFound):
        bonus_service.claim_bonus(db, "nobody", "welcome")
    with pytest.raises(ValidationError):
        bonus_service.claim_bonus(db, "banned", "welcome")
    with pytest.raises(ValidationError):
        bonus_service.claim_bonus(db, "banned", "daily")


def test_activity_credit_is_applied_once_per_reference(db, factory):
    factory.profile("u1", pending_reward=5000)

    outcome = bonus_service.credit_activity(db, "u1", 10000, "like_received", "like:42")
    with pytest.raises(ConcurrentClaimConflict):
        bonus_service.credit_activity(db, "u1", 10000, "like_received", "like:42")
    bonus_service.credit_activity(db, "u1", 1000, "like_received", "like:43")

    assert outcome.pending_reward == 15000
    assert pending_of(db, "u1") == 16000
    assert db.query(RewardTransaction).filter(RewardTransaction.kind == "activity").count() == 2


def test_activity_credit_validates_amount(db, factory):
    factory.profile("u1")

    for amount in (0, -1000, 1500, True):
        with pytest.raises(ValidationError):
            bonus_service.credit_activity(db, "u1", amount, "like_received", "like:1")
    with pytest.raises(ValidationError):
        bonus_service.credit_activity(db, "u1", 1000, "like_received", "")
