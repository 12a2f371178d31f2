"""
Reward Rule Engine - turns UserActivityDay records into CAMLY rewards

Pure computation: no I/O and no state beyond the rule values. Daily caps
are applied before weighting. A missing or malformed list of one action
type pays zero for that type and leaves a warning; the rest of the day is
still computed.
"""
import logging
from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from funfarm_rewards.config import settings
from funfarm_rewards.errors import ValidationError
from funfarm_rewards.schemas import (
    CommentActivity, FriendshipActivity, LifetimeReward, LikeActivity, PostActivity,
    RewardBreakdown, ShareActivity, UserActivityDay, UserBalanceState
)
from funfarm_rewards.services.activity_service import local_date, to_utc

logger = logging.getLogger(__name__)

ACTION_ADAPTERS = {
    "posts": TypeAdapter(Optional[List[PostActivity]]),
    "likes": TypeAdapter(Optional[List[LikeActivity]]),
    "comments": TypeAdapter(Optional[List[CommentActivity]]),
    "shares": TypeAdapter(Optional[List[ShareActivity]]),
    "friendships": TypeAdapter(Optional[List[FriendshipActivity]]),
}


class RewardRules(BaseModel):
    """Weights, caps and bonuses, in CAMLY units"""
    unit: int = 1000
    quality_post: int = 20000
    normal_post: int = 5000
    quality_comment: int = 5000
    normal_comment: int = 1000
    quality_share: int = 10000
    normal_share: int = 4000
    like_first_tier: int = 10000
    like_later_tier: int = 1000
    like_first_tier_size: int = 3
    friendship: int = 50000
    welcome_bonus: int = 50000
    wallet_bonus: int = 50000
    verification_bonus: int = 50000
    max_posts_per_day: int = 10
    max_likes_per_day: int = 50
    max_comments_per_day: int = 50
    max_shares_per_day: int = 50
    max_friendships_per_day: int = 10
    daily_cap: Optional[int] = None
    utc_offset_hours: int = 7

    @classmethod
    def from_settings(cls) -> "RewardRules":
        return cls(
            unit=settings.REWARD_UNIT,
            quality_post=settings.REWARD_QUALITY_POST,
            normal_post=settings.REWARD_NORMAL_POST,
            quality_comment=settings.REWARD_QUALITY_COMMENT,
            normal_comment=settings.REWARD_NORMAL_COMMENT,
            quality_share=settings.REWARD_QUALITY_SHARE,
            normal_share=settings.REWARD_NORMAL_SHARE,
            like_first_tier=settings.REWARD_LIKE_FIRST_TIER,
            like_later_tier=settings.REWARD_LIKE_LATER_TIER,
            like_first_tier_size=settings.REWARD_LIKE_FIRST_TIER_SIZE,
            friendship=settings.REWARD_FRIENDSHIP,
            welcome_bonus=settings.REWARD_WELCOME_BONUS,
            wallet_bonus=settings.REWARD_WALLET_BONUS,
            verification_bonus=settings.REWARD_VERIFICATION_BONUS,
            max_posts_per_day=settings.REWARD_MAX_POSTS_PER_DAY,
            max_likes_per_day=settings.REWARD_MAX_LIKES_PER_DAY,
            max_comments_per_day=settings.REWARD_MAX_COMMENTS_PER_DAY,
            max_shares_per_day=settings.REWARD_MAX_SHARES_PER_DAY,
            max_friendships_per_day=settings.REWARD_MAX_FRIENDSHIPS_PER_DAY,
            daily_cap=settings.REWARD_DAILY_CAP,
            utc_offset_hours=settings.REWARD_UTC_OFFSET_HOURS,
        )

    def check(self) -> "RewardRules":
        """Reject rule values that could produce a non-unit total"""
        if self.unit <= 0:
            raise ValidationError(f"Reward unit must be positive, got {self.unit}")
        amounts = {
            "quality_post": self.quality_post,
            "normal_post": self.normal_post,
            "quality_comment": self.quality_comment,
            "normal_comment": self.normal_comment,
            "quality_share": self.quality_share,
            "normal_share": self.normal_share,
            "like_first_tier": self.like_first_tier,
            "like_later_tier": self.like_later_tier,
            "friendship": self.friendship,
            "welcome_bonus": self.welcome_bonus,
            "wallet_bonus": self.wallet_bonus,
            "verification_bonus": self.verification_bonus,
        }
        if self.daily_cap is not None:
            amounts["daily_cap"] = self.daily_cap
        for name, value in amounts.items():
            if value < 0 or value % self.unit:
                raise ValidationError(f"{name}={value} is not a non-negative multiple of {self.unit}")
        limits = {
            "like_first_tier_size": self.like_first_tier_size,
            "max_posts_per_day": self.max_posts_per_day,
            "max_likes_per_day": self.max_likes_per_day,
            "max_comments_per_day": self.max_comments_per_day,
            "max_shares_per_day": self.max_shares_per_day,
            "max_friendships_per_day": self.max_friendships_per_day,
        }
        for name, value in limits.items():
            if value < 0:
                raise ValidationError(f"{name} must not be negative, got {value}")
        return self


def check_balance(balance: UserBalanceState) -> UserBalanceState:
    for field in ("pending_reward", "approved_reward", "camly_balance"):
        value = getattr(balance, field)
        if value < 0:
            raise ValidationError(f"{field} must not be negative, got {value}")
    return balance


class RewardEngine:
    """Applies the reward rules to activity days"""

    def __init__(self, rules: Optional[RewardRules] = None):
        self.rules = (rules or RewardRules.from_settings()).check()

    # ------------------------------------------
    # Record validation
    # ------------------------------------------
    def _valid_records(
        self,
        records: Optional[List[Any]],
        required: Tuple[str, ...],
        label: str,
        day: date,
        warnings: List[str]
    ) -> Optional[List[Any]]:
        """The records of one action type, or None when they cannot be trusted"""
        if records is None:
            warnings.append(f"{label}: data unavailable, counted as zero")
            return None
        for record in records:
            missing = [name for name in required if not getattr(record, name, None)]
            if missing:
                warnings.append(f"{label}: record missing {', '.join(missing)}, counted as zero")
                return None
            if local_date(record.created_at, self.rules.utc_offset_hours) != day:
                warnings.append(f"{label}: record dated outside {day.isoformat()}, counted as zero")
                return None
        return records

    @staticmethod
    def _coerce_day(day: Union[UserActivityDay, Dict[str, Any]]) -> UserActivityDay:
        """
        Framing fields (user_id, day) must be valid. Each action list is
        checked on its own; one that does not parse is set to None so it
        pays zero with a warning instead of failing the whole day.
        """
        if isinstance(day, UserActivityDay):
            activity = day
        elif isinstance(day, dict):
            framing = {k: v for k, v in day.items() if k not in ACTION_ADAPTERS}
            try:
                activity = UserActivityDay.model_validate(framing)
            except PydanticValidationError as e:
                raise ValidationError(f"Malformed activity day: {e}") from e
            for field, adapter in ACTION_ADAPTERS.items():
                if field not in day:
                    continue
                try:
                    setattr(activity, field, adapter.validate_python(day[field]))
                except PydanticValidationError as e:
                    logger.warning(
                        f"User {activity.user_id} on {activity.day}: unreadable {field} "
                        f"({e.error_count()} errors)"
                    )
                    setattr(activity, field, None)
        else:
            raise ValidationError(f"Malformed activity day: expected a mapping, got {type(day).__name__}")
        if not activity.user_id:
            raise ValidationError("Activity day has no user_id")
        return activity

    # ------------------------------------------
    # Per-type counting
    # ------------------------------------------
    def _count_posts(self, posts) -> Tuple[int, int]:
        ordered = sorted(posts, key=lambda p: (to_utc(p.created_at), p.post_id))
        counted = ordered[:self.rules.max_posts_per_day]
        quality = sum(1 for p in counted if p.quality)
        return quality, len(counted) - quality

    def _count_likes(self, likes) -> Tuple[int, int]:
        """
        Posts are visited in order of their first like of the day (ties by
        post id); each post's likes are consumed from one shared budget,
        the first few of every post at the higher rate.
        """
        by_post: Dict[str, List[Any]] = defaultdict(list)
        for like in likes:
            by_post[like.post_id].append(like)
        for post_likes in by_post.values():
            post_likes.sort(key=lambda l: (to_utc(l.created_at), l.liker_id))
        post_order = sorted(by_post, key=lambda pid: (to_utc(by_post[pid][0].created_at), pid))

        remaining = self.rules.max_likes_per_day
        first_tier = later_tier = 0
        for post_id in post_order:
            if remaining <= 0:
                break
            taken = min(len(by_post[post_id]), remaining)
            high = min(self.rules.like_first_tier_size, taken)
            first_tier += high
            later_tier += taken - high
            remaining -= taken
        return first_tier, later_tier

    @staticmethod
    def _count_tiered(records, id_field: str, limit: int) -> Tuple[int, int]:
        ordered = sorted(records, key=lambda r: (to_utc(r.created_at), getattr(r, id_field)))
        counted = ordered[:limit]
        quality = sum(1 for r in counted if r.quality)
        return quality, len(counted) - quality

    def _count_friendships(self, friendships) -> int:
        earliest: Dict[str, datetime] = {}
        for friendship in friendships:
            key = friendship.pair_key
            ts = to_utc(friendship.created_at)
            if key not in earliest or ts < earliest[key]:
                earliest[key] = ts
        return min(len(earliest), self.rules.max_friendships_per_day)

    # ------------------------------------------
    # Public API
    # ------------------------------------------
    def compute_day(self, day: Union[UserActivityDay, Dict[str, Any]]) -> RewardBreakdown:
        """Weighted, capped reward of one user for one day"""
        activity = self._coerce_day(day)
        rules = self.rules
        warnings: List[str] = []
        breakdown = RewardBreakdown(user_id=activity.user_id, day=activity.day)

        posts = self._valid_records(activity.posts, ("post_id", "created_at"), "posts", activity.day, warnings)
        if posts:
            breakdown.quality_posts, breakdown.normal_posts = self._count_posts(posts)

        likes = self._valid_records(
            activity.likes, ("post_id", "liker_id", "created_at"), "likes", activity.day, warnings
        )
        if likes:
            breakdown.likes_first_tier, breakdown.likes_later_tier = self._count_likes(likes)

        comments = self._valid_records(
            activity.comments, ("comment_id", "created_at"), "comments", activity.day, warnings
        )
        if comments:
            breakdown.quality_comments, breakdown.normal_comments = self._count_tiered(
                comments, "comment_id", rules.max_comments_per_day
            )

        shares = self._valid_records(activity.shares, ("share_id", "created_at"), "shares", activity.day, warnings)
        if shares:
            breakdown.quality_shares, breakdown.normal_shares = self._count_tiered(
                shares, "share_id", rules.max_shares_per_day
            )

        friendships = self._valid_records(
            activity.friendships, ("user_a", "user_b", "created_at"), "friendships", activity.day, warnings
        )
        if friendships:
            breakdown.friendships = self._count_friendships(friendships)

        breakdown.post_reward = (
            breakdown.quality_posts * rules.quality_post + breakdown.normal_posts * rules.normal_post
        )
        breakdown.like_reward = (
            breakdown.likes_first_tier * rules.like_first_tier + breakdown.likes_later_tier * rules.like_later_tier
        )
        breakdown.comment_reward = (
            breakdown.quality_comments * rules.quality_comment + breakdown.normal_comments * rules.normal_comment
        )
        breakdown.share_reward = (
            breakdown.quality_shares * rules.quality_share + breakdown.normal_shares * rules.normal_share
        )
        breakdown.friendship_reward = breakdown.friendships * rules.friendship

        breakdown.total = (
            breakdown.post_reward + breakdown.like_reward + breakdown.comment_reward
            + breakdown.share_reward + breakdown.friendship_reward
        )
        breakdown.capped_total = breakdown.total
        if rules.daily_cap is not None and breakdown.total > rules.daily_cap:
            breakdown.capped_total = rules.daily_cap
            warnings.append(f"daily total {breakdown.total} capped at {rules.daily_cap}")

        breakdown.warnings = warnings
        for warning in warnings:
            logger.warning(f"User {activity.user_id} on {activity.day}: {warning}")
        return breakdown

    def compute_lifetime(
        self,
        user_id: str,
        days: Iterable[Union[UserActivityDay, Dict[str, Any]]],
        balance: Optional[UserBalanceState] = None
    ) -> LifetimeReward:
        """
        Sum of every day's (capped) reward plus the one-time bonuses whose
        claim flag is set. Calling it again on the same input gives the same
        total; bonuses are never counted twice.
        """
        if not user_id:
            raise ValidationError("user_id is required")
        balance = check_balance(balance or UserBalanceState())
        rules = self.rules

        breakdowns = []
        for day in days:
            activity = self._coerce_day(day)
            if activity.user_id != user_id:
                raise ValidationError(f"Activity day for {activity.user_id} passed for user {user_id}")
            breakdowns.append(self.compute_day(activity))
        breakdowns.sort(key=lambda b: b.day)

        seen_days = set()
        for breakdown in breakdowns:
            if breakdown.day in seen_days:
                raise ValidationError(f"Duplicate activity day {breakdown.day} for user {user_id}")
            seen_days.add(breakdown.day)

        lifetime = LifetimeReward(
            user_id=user_id,
            days=breakdowns,
            daily_total=sum(b.capped_total for b in breakdowns),
            welcome_bonus=rules.welcome_bonus if balance.welcome_bonus_claimed else 0,
            wallet_bonus=rules.wallet_bonus if balance.wallet_bonus_claimed else 0,
            verification_bonus=rules.verification_bonus if balance.verification_bonus_claimed else 0,
            warnings=[f"{b.day.isoformat()}: {w}" for b in breakdowns for w in b.warnings],
        )
        lifetime.total = lifetime.daily_total + lifetime.bonus_total
        return lifetime


# Singleton instance
reward_engine = RewardEngine()
