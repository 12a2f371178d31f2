"""
Reconciliation Reporter - compares persisted balances with recomputed rewards

delta = (pending + approved + claimed) - recomputed lifetime total.
Positive means the stored balance is higher than activity justifies.

The only write here is the explicit pending-reward reset, a compare-and-swap
UPDATE that never touches approved_reward or camly_balance.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from funfarm_rewards.config import settings
from funfarm_rewards.db.models import Profile, RewardTransaction
from funfarm_rewards.errors import (
    ConcurrentClaimConflict, DataUnavailable, RewardsError, UserNotFound,
    ValidationError, store_errors
)
from funfarm_rewards.schemas import (
    ReconciliationDirection, ReconciliationReport, ReconciliationResult,
    ResetOutcome, UserBalanceState, UserFailure
)
from funfarm_rewards.services.activity_service import activity_service
from funfarm_rewards.services.reward_engine import check_balance, reward_engine

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
CancelCheck = Callable[[], bool]


def balance_state(profile: Profile) -> UserBalanceState:
    """Balance fields of a profile; negative values are rejected"""
    return check_balance(UserBalanceState(
        pending_reward=profile.pending_reward or 0,
        approved_reward=profile.approved_reward or 0,
        camly_balance=profile.camly_balance or 0,
        welcome_bonus_claimed=bool(profile.welcome_bonus_claimed),
        wallet_bonus_claimed=bool(profile.wallet_bonus_claimed),
        verification_bonus_claimed=bool(profile.verification_bonus_claimed),
    ))


class ReconciliationService:
    """Per-user and population-wide reconciliation, plus the reset write"""

    def load_profile(self, db: Session, user_id: str) -> Profile:
        with store_errors(f"loading profile {user_id}"):
            profile = db.get(Profile, user_id)
        if profile is None:
            raise UserNotFound(user_id)
        return profile

    def reconcile_user(
        self,
        db: Session,
        user_id: str,
        cutoff: Optional[datetime] = None
    ) -> ReconciliationResult:
        """Recompute one user's lifetime reward and compare it with the store"""
        profile = self.load_profile(db, user_id)
        balance = balance_state(profile)
        display_name = profile.display_name

        days = activity_service.aggregate(db, user_id, cutoff=cutoff)
        lifetime = reward_engine.compute_lifetime(user_id, days.values(), balance)

        persisted_total = balance.persisted_total
        delta = persisted_total - lifetime.total
        if delta > 0:
            direction = ReconciliationDirection.over_credit
        elif delta < 0:
            direction = ReconciliationDirection.under_credit
        else:
            direction = ReconciliationDirection.balanced

        result = ReconciliationResult(
            user_id=user_id,
            display_name=display_name,
            persisted_pending=balance.pending_reward,
            persisted_approved=balance.approved_reward,
            persisted_claimed=balance.camly_balance,
            persisted_total=persisted_total,
            recomputed_total=lifetime.total,
            daily_total=lifetime.daily_total,
            bonus_total=lifetime.bonus_total,
            delta=delta,
            direction=direction,
            large_discrepancy=abs(delta) > settings.RECONCILE_LARGE_DISCREPANCY,
            # approved and claimed amounts are never corrected, only pending absorbs the delta
            target_pending=max(0, lifetime.total - balance.approved_reward - balance.camly_balance),
            quality_posts=sum(d.quality_posts for d in lifetime.days),
            normal_posts=sum(d.normal_posts for d in lifetime.days),
            likes=sum(d.likes_first_tier + d.likes_later_tier for d in lifetime.days),
            comments=sum(d.quality_comments + d.normal_comments for d in lifetime.days),
            shares=sum(d.quality_shares + d.normal_shares for d in lifetime.days),
            friendships=sum(d.friendships for d in lifetime.days),
            warnings=lifetime.warnings,
        )
        if result.large_discrepancy:
            logger.warning(f"Large discrepancy for user {user_id}: delta={delta} ({direction.value})")
        return result

    def _reconcile_isolated(self, session_factory, user_id: str, cutoff: datetime) -> ReconciliationResult:
        db = session_factory()
        try:
            return self.reconcile_user(db, user_id, cutoff=cutoff)
        finally:
            db.close()

    def active_user_ids(self, db: Session) -> List[str]:
        with store_errors("listing users"):
            rows = db.query(Profile.id).filter(Profile.banned.is_(False)).order_by(Profile.id).all()
        return [row[0] for row in rows]

    def reconcile_population(
        self,
        session_factory,
        user_ids: Optional[List[str]] = None,
        batch_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck] = None,
        cutoff: Optional[datetime] = None
    ) -> ReconciliationReport:
        """
        Reconcile many users in small parallel batches.

        Each user runs in its own thread with its own session. A failing
        user is recorded in `failures` and the run continues; call
        `raise_for_failures()` on the report to turn failures into
        BulkPartialFailure. `should_cancel` is checked between batches.
        """
        batch_size = batch_size or settings.RECONCILE_BATCH_SIZE
        if batch_size < 1:
            raise ValidationError(f"batch_size must be at least 1, got {batch_size}")
        cutoff = cutoff or datetime.utcnow()

        if user_ids is None:
            db = session_factory()
            try:
                user_ids = self.active_user_ids(db)
            finally:
                db.close()
        user_ids = sorted(set(user_ids))

        report = ReconciliationReport(cutoff=cutoff, total=len(user_ids))
        logger.info(f"Reconciling {report.total} users in batches of {batch_size}")

        for start in range(0, len(user_ids), batch_size):
            if should_cancel and should_cancel():
                report.cancelled = True
                logger.info(f"Reconciliation cancelled after {report.processed} of {report.total} users")
                break

            batch = user_ids[start:start + batch_size]
            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                futures = {
                    user_id: pool.submit(self._reconcile_isolated, session_factory, user_id, cutoff)
                    for user_id in batch
                }
                for user_id, future in futures.items():
                    try:
                        report.results.append(future.result())
                    except RewardsError as e:
                        retryable = isinstance(e, DataUnavailable) and e.retryable
                        logger.warning(f"Reconciliation failed for user {user_id}: {e}")
                        report.failures.append(UserFailure(user_id=user_id, error=str(e), retryable=retryable))
                    except Exception as e:
                        logger.exception(f"Unexpected error reconciling user {user_id}")
                        report.failures.append(UserFailure(user_id=user_id, error=repr(e), retryable=False))

            report.processed += len(batch)
            if on_progress:
                on_progress(report.processed, report.total)

        report.results.sort(key=lambda r: r.user_id)
        report.failures.sort(key=lambda f: f.user_id)
        logger.info(
            f"Reconciliation finished: {len(report.results)} ok, {len(report.failures)} failed"
            f"{' (cancelled)' if report.cancelled else ''}"
        )
        return report

    def reset_pending_reward(
        self,
        db: Session,
        user_id: str,
        value: int,
        expected_pending: Optional[int] = None,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None
    ) -> ResetOutcome:
        """
        Set pending_reward to `value`.

        Setting the value it already holds is a no-op. When
        `expected_pending` is given and the stored value differs, or the
        row changes between read and write, ConcurrentClaimConflict is
        raised and nothing is written.
        """
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"Reset value must be a non-negative integer, got {value!r}")

        profile = self.load_profile(db, user_id)
        current = profile.pending_reward or 0

        if expected_pending is not None and current != expected_pending:
            logger.warning(
                f"Reset of user {user_id} rejected: expected pending {expected_pending}, found {current}"
            )
            raise ConcurrentClaimConflict(
                f"pending_reward of user {user_id} is {current}, expected {expected_pending}"
            )
        if current == value:
            logger.info(f"Reset of user {user_id} to {value} is a no-op")
            return ResetOutcome(user_id=user_id, previous_pending=current, pending_reward=value, changed=False)

        with store_errors(f"resetting pending reward of user {user_id}"):
            try:
                result = db.execute(
                    update(Profile)
                    .where(Profile.id == user_id, Profile.pending_reward == current)
                    .values(pending_reward=value)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    db.rollback()
                    raise ConcurrentClaimConflict(f"pending_reward of user {user_id} changed during reset")
                db.add(RewardTransaction(
                    user_id=user_id,
                    kind="reset",
                    amount=value - current,
                    reason=reason or "pending reward reset",
                    pending_after=value,
                    actor_id=actor_id,
                ))
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                raise

        logger.info(f"Reset pending reward of user {user_id}: {current} -> {value} (actor={actor_id})")
        return ResetOutcome(user_id=user_id, previous_pending=current, pending_reward=value, changed=True)

    def reset_to_recomputed(
        self,
        db: Session,
        user_id: str,
        expected_pending: Optional[int] = None,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None,
        cutoff: Optional[datetime] = None
    ) -> ResetOutcome:
        """
        Reconcile one user and move pending_reward to the recomputed target.

        `expected_pending` guards the write the same way as in
        reset_pending_reward; without it the value read by the
        reconciliation is used.
        """
        result = self.reconcile_user(db, user_id, cutoff=cutoff)
        note = f"reconciliation: recomputed {result.recomputed_total}, delta {result.delta}"
        return self.reset_pending_reward(
            db,
            user_id,
            result.target_pending,
            expected_pending=result.persisted_pending if expected_pending is None else expected_pending,
            reason=f"{reason} ({note})" if reason else note,
            actor_id=actor_id,
        )


# Singleton instance
reconciliation_service = ReconciliationService()
