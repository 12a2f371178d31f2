"""
Bonus Service - one-time bonuses and explicit activity credits

Every credit is a conditional UPDATE plus a ledger row in
reward_transactions, committed together. A claim that loses the race
(flag already set, ledger reference already used) raises
ConcurrentClaimConflict and writes nothing.
"""
import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from funfarm_rewards.config import settings
from funfarm_rewards.db.models import BlacklistedWallet, Profile, RewardTransaction
from funfarm_rewards.errors import (
    ConcurrentClaimConflict, UserNotFound, ValidationError, store_errors
)
from funfarm_rewards.schemas import BonusKind, ClaimOutcome, CreditOutcome
from funfarm_rewards.services.abuse_service import normalize_wallet

logger = logging.getLogger(__name__)

BONUS_FLAGS = {
    BonusKind.welcome: "welcome_bonus_claimed",
    BonusKind.wallet: "wallet_bonus_claimed",
    BonusKind.verification: "verification_bonus_claimed",
}


def bonus_amount(kind: BonusKind) -> int:
    return {
        BonusKind.welcome: settings.REWARD_WELCOME_BONUS,
        BonusKind.wallet: settings.REWARD_WALLET_BONUS,
        BonusKind.verification: settings.REWARD_VERIFICATION_BONUS,
    }[kind]


class BonusService:
    """Credits pending_reward through guarded, ledgered writes"""

    def _load_active_profile(self, db: Session, user_id: str) -> Profile:
        with store_errors(f"loading profile {user_id}"):
            profile = db.get(Profile, user_id)
        if profile is None:
            raise UserNotFound(user_id)
        if profile.banned:
            raise ValidationError(f"User {user_id} is banned")
        return profile

    def is_wallet_blacklisted(self, db: Session, wallet_address: str) -> bool:
        wallet = normalize_wallet(wallet_address)
        if not wallet:
            return False
        with store_errors("checking wallet blacklist"):
            hit = db.query(BlacklistedWallet.wallet_address).filter(
                func.lower(BlacklistedWallet.wallet_address) == wallet
            ).first()
        return hit is not None

    def _pending_of(self, db: Session, user_id: str) -> int:
        return db.execute(select(Profile.pending_reward).where(Profile.id == user_id)).scalar_one()

    def claim_bonus(
        self,
        db: Session,
        user_id: str,
        kind: str,
        actor_id: Optional[str] = None
    ) -> ClaimOutcome:
        """
        Credit a one-time bonus.

        The flag is checked and set by the same UPDATE, so two concurrent
        claims give exactly one credit; the loser gets ConcurrentClaimConflict.
        """
        try:
            kind = BonusKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown bonus kind: {kind!r}")

        profile = self._load_active_profile(db, user_id)
        if kind == BonusKind.wallet:
            if not normalize_wallet(profile.wallet_address):
                raise ValidationError(f"User {user_id} has no wallet connected")
            if self.is_wallet_blacklisted(db, profile.wallet_address):
                raise ValidationError(f"Wallet of user {user_id} is blacklisted")

        flag = BONUS_FLAGS[kind]
        amount = bonus_amount(kind)

        with store_errors(f"claiming {kind.value} bonus for user {user_id}"):
            try:
                result = db.execute(
                    update(Profile)
                    .where(
                        Profile.id == user_id,
                        getattr(Profile, flag).is_(False),
                        Profile.banned.is_(False),
                    )
                    .values({flag: True, "pending_reward": Profile.pending_reward + amount})
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    db.rollback()
                    logger.warning(f"{kind.value} bonus for user {user_id} already claimed")
                    raise ConcurrentClaimConflict(f"{kind.value} bonus already claimed by user {user_id}")

                pending = self._pending_of(db, user_id)
                db.add(RewardTransaction(
                    user_id=user_id,
                    kind=f"{kind.value}_bonus",
                    amount=amount,
                    reason=f"{kind.value} bonus",
                    reference_id=kind.value,
                    pending_after=pending,
                    actor_id=actor_id,
                ))
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.warning(f"{kind.value} bonus ledger entry for user {user_id} already exists")
                raise ConcurrentClaimConflict(f"{kind.value} bonus already claimed by user {user_id}")
            except SQLAlchemyError:
                db.rollback()
                raise

        logger.info(f"Credited {kind.value} bonus of {amount} to user {user_id}")
        return ClaimOutcome(user_id=user_id, kind=kind, amount=amount, pending_reward=pending)

    def credit_activity(
        self,
        db: Session,
        user_id: str,
        amount: int,
        reason: str,
        reference_id: str,
        actor_id: Optional[str] = None
    ) -> CreditOutcome:
        """
        Explicit credit for one rewarded interaction.

        `reference_id` identifies the interaction (for example a like id);
        crediting the same reference twice raises ConcurrentClaimConflict.
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError(f"Credit amount must be a positive integer, got {amount!r}")
        if amount % settings.REWARD_UNIT:
            raise ValidationError(f"Credit amount {amount} is not a multiple of {settings.REWARD_UNIT}")
        if not reference_id:
            raise ValidationError("reference_id is required")
        if not reason:
            raise ValidationError("reason is required")

        self._load_active_profile(db, user_id)

        with store_errors(f"crediting user {user_id}"):
            try:
                ledger = RewardTransaction(
                    user_id=user_id,
                    kind="activity",
                    amount=amount,
                    reason=reason,
                    reference_id=reference_id,
                    actor_id=actor_id,
                )
                db.add(ledger)
                db.flush()
                db.execute(
                    update(Profile)
                    .where(Profile.id == user_id)
                    .values(pending_reward=Profile.pending_reward + amount)
                    .execution_options(synchronize_session=False)
                )
                pending = self._pending_of(db, user_id)
                ledger.pending_after = pending
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.warning(f"Credit {reference_id} for user {user_id} already applied")
                raise ConcurrentClaimConflict(f"Reference {reference_id} already credited to user {user_id}")
            except SQLAlchemyError:
                db.rollback()
                raise

        logger.info(f"Credited {amount} to user {user_id} for {reason} ({reference_id})")
        return CreditOutcome(
            user_id=user_id, amount=amount, reason=reason, reference_id=reference_id, pending_reward=pending
        )


# Singleton instance
bonus_service = BonusService()
