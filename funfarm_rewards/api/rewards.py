"""
Rewards Router - per-day and lifetime rewards, bonus claims and credits
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from funfarm_rewards.dependencies import get_actor_id, get_db, verify_api_key
from funfarm_rewards.schemas import (
    BonusKind, ClaimOutcome, CreditOutcome, LifetimeReward, RewardBreakdown
)
from funfarm_rewards.services.activity_service import activity_service
from funfarm_rewards.services.bonus_service import bonus_service
from funfarm_rewards.services.reconciliation_service import balance_state, reconciliation_service
from funfarm_rewards.services.reward_engine import reward_engine

router = APIRouter(dependencies=[Depends(verify_api_key)])


class CreditRequest(BaseModel):
    """Request model for an explicit activity credit"""
    amount: int = Field(..., description="CAMLY amount, a positive multiple of 1000")
    reason: str = Field(..., description="What is being rewarded, e.g. 'like_received'")
    reference_id: str = Field(..., description="Id of the rewarded interaction; credited at most once")

    class Config:
        json_schema_extra = {
            "example": {
                "amount": 10000,
                "reason": "like_received",
                "reference_id": "like:8f14e45f"
            }
        }


@router.get("/{user_id}/daily", response_model=List[RewardBreakdown])
async def get_daily_rewards(
    user_id: str,
    start_date: Optional[date] = Query(None, description="First local day (inclusive)"),
    end_date: Optional[date] = Query(None, description="Last local day (inclusive)"),
    db: Session = Depends(get_db)
):
    """
    Per-day reward breakdown of a user.

    Days are Vietnam calendar days (UTC+7). Caps are applied before
    weighting: 10 posts, 50 likes, 50 comments, 50 shares and 10
    friendships per day.
    """
    days = activity_service.aggregate(db, user_id, start_date=start_date, end_date=end_date)
    return [reward_engine.compute_day(day) for day in days.values()]


@router.get("/{user_id}/lifetime", response_model=LifetimeReward)
async def get_lifetime_reward(
    user_id: str,
    db: Session = Depends(get_db)
):
    """
    Lifetime reward of a user: every day's reward plus the one-time
    bonuses whose claim flag is set.
    """
    profile = reconciliation_service.load_profile(db, user_id)
    balance = balance_state(profile)
    days = activity_service.aggregate(db, user_id)
    return reward_engine.compute_lifetime(user_id, days.values(), balance)


@router.post("/{user_id}/bonuses/{kind}", response_model=ClaimOutcome)
async def claim_bonus(
    user_id: str,
    kind: BonusKind,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """
    Claim a one-time bonus (welcome, wallet or verification).

    Returns 409 when the bonus was already claimed.
    """
    return bonus_service.claim_bonus(db, user_id, kind, actor_id=actor_id)


@router.post("/{user_id}/credits", response_model=CreditOutcome)
async def credit_activity(
    user_id: str,
    request: CreditRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id)
):
    """
    Credit one rewarded interaction to pending_reward.

    Returns 409 when the reference was already credited.
    """
    return bonus_service.credit_activity(
        db,
        user_id,
        amount=request.amount,
        reason=request.reason,
        reference_id=request.reference_id,
        actor_id=actor_id
    )
