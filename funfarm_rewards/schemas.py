"""
Pydantic models shared by the reward core, the API and the worker.
"""
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field

from funfarm_rewards.errors import BulkPartialFailure


# ============================================
# ENUMS
# ============================================
class SuspicionLevel(str, Enum):
    very_high = "very_high"
    high = "high"
    medium = "medium"
    low = "low"


class WalletGroupSeverity(str, Enum):
    elevated = "elevated"
    critical = "critical"


class ReconciliationDirection(str, Enum):
    over_credit = "over_credit"
    under_credit = "under_credit"
    balanced = "balanced"


class BonusKind(str, Enum):
    welcome = "welcome"
    wallet = "wallet"
    verification = "verification"


# ============================================
# ACTIVITY RECORDS
# ============================================
# Fields are optional so a malformed row read from the store can still be
# represented; the rule engine rejects it per action type with a warning.
class PostActivity(BaseModel):
    post_id: Optional[str] = None
    created_at: Optional[datetime] = None
    quality: bool = False


class LikeActivity(BaseModel):
    post_id: Optional[str] = None
    liker_id: Optional[str] = None
    created_at: Optional[datetime] = None


class CommentActivity(BaseModel):
    comment_id: Optional[str] = None
    post_id: Optional[str] = None
    created_at: Optional[datetime] = None
    quality: bool = False


class ShareActivity(BaseModel):
    share_id: Optional[str] = None
    post_id: Optional[str] = None
    created_at: Optional[datetime] = None
    quality: bool = False


class FriendshipActivity(BaseModel):
    user_a: Optional[str] = None
    user_b: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def pair_key(self) -> Optional[str]:
        if not self.user_a or not self.user_b:
            return None
        return "-".join(sorted((self.user_a, self.user_b)))


class UserActivityDay(BaseModel):
    """Everything one user did (or received) on one local calendar day.

    A list set to None means that action type could not be read.
    """
    user_id: str
    day: date
    wallet_connected: bool = False
    posts: Optional[List[PostActivity]] = Field(default_factory=list)
    likes: Optional[List[LikeActivity]] = Field(default_factory=list)
    comments: Optional[List[CommentActivity]] = Field(default_factory=list)
    shares: Optional[List[ShareActivity]] = Field(default_factory=list)
    friendships: Optional[List[FriendshipActivity]] = Field(default_factory=list)

    @computed_field
    @property
    def quality_posts(self) -> int:
        return sum(1 for p in self.posts or [] if p.quality)

    @computed_field
    @property
    def normal_posts(self) -> int:
        return sum(1 for p in self.posts or [] if not p.quality)

    @computed_field
    @property
    def likes_received(self) -> int:
        return len(self.likes or [])

    @computed_field
    @property
    def quality_comments(self) -> int:
        return sum(1 for c in self.comments or [] if c.quality)

    @computed_field
    @property
    def normal_comments(self) -> int:
        return sum(1 for c in self.comments or [] if not c.quality)

    @computed_field
    @property
    def quality_shares(self) -> int:
        return sum(1 for s in self.shares or [] if s.quality)

    @computed_field
    @property
    def normal_shares(self) -> int:
        return sum(1 for s in self.shares or [] if not s.quality)

    @computed_field
    @property
    def friendships_confirmed(self) -> int:
        return len({f.pair_key for f in self.friendships or [] if f.pair_key})


# ============================================
# REWARD SCHEMAS
# ============================================
class RewardBreakdown(BaseModel):
    """Capped, weighted rewards for one user on one day."""
    user_id: str
    day: date
    quality_posts: int = 0
    normal_posts: int = 0
    likes_first_tier: int = 0
    likes_later_tier: int = 0
    quality_comments: int = 0
    normal_comments: int = 0
    quality_shares: int = 0
    normal_shares: int = 0
    friendships: int = 0
    post_reward: int = 0
    like_reward: int = 0
    comment_reward: int = 0
    share_reward: int = 0
    friendship_reward: int = 0
    total: int = 0
    capped_total: int = 0
    warnings: List[str] = []


class LifetimeReward(BaseModel):
    user_id: str
    days: List[RewardBreakdown] = []
    daily_total: int = 0
    welcome_bonus: int = 0
    wallet_bonus: int = 0
    verification_bonus: int = 0
    total: int = 0
    warnings: List[str] = []

    @computed_field
    @property
    def bonus_total(self) -> int:
        return self.welcome_bonus + self.wallet_bonus + self.verification_bonus


class UserBalanceState(BaseModel):
    pending_reward: int = 0
    approved_reward: int = 0
    camly_balance: int = 0
    welcome_bonus_claimed: bool = False
    wallet_bonus_claimed: bool = False
    verification_bonus_claimed: bool = False

    @property
    def persisted_total(self) -> int:
        return self.pending_reward + self.approved_reward + self.camly_balance


# ============================================
# ABUSE SCHEMAS
# ============================================
class UserSnapshot(BaseModel):
    """The profile fields the abuse detector looks at."""
    user_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    avatar_verified: bool = False
    email_verified: bool = False
    violation_level: int = 0
    pending_reward: int = 0
    approved_reward: int = 0
    camly_balance: int = 0
    wallet_address: Optional[str] = None
    banned: bool = False
    posts_count: int = 0
    comments_count: int = 0
    created_at: Optional[datetime] = None


class SuspicionRecord(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    pending_reward: int = 0
    score: int = 0
    level: SuspicionLevel = SuspicionLevel.low
    reasons: List[str] = []
    fake_identity: List[str] = []
    wallet_group: Optional[str] = None


class WalletGroup(BaseModel):
    wallet_address: str
    user_ids: List[str]
    banned_user_ids: List[str] = []
    total_pending: int = 0
    total_approved: int = 0
    severity: WalletGroupSeverity = WalletGroupSeverity.elevated

    @computed_field
    @property
    def size(self) -> int:
        return len(self.user_ids)


class BanRecommendation(BaseModel):
    user_id: str
    reason: str
    wallet_address: Optional[str] = None
    blacklist_wallet: bool = False


class AbuseReport(BaseModel):
    generated_at: datetime
    scanned_users: int = 0
    suspicious: List[SuspicionRecord] = []
    wallet_groups: List[WalletGroup] = []
    fake_identities: List[SuspicionRecord] = []
    incomplete_profiles: List[SuspicionRecord] = []
    recommendations: List[BanRecommendation] = []


# ============================================
# RECONCILIATION SCHEMAS
# ============================================
class ReconciliationResult(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    persisted_pending: int = 0
    persisted_approved: int = 0
    persisted_claimed: int = 0
    persisted_total: int = 0
    recomputed_total: int = 0
    daily_total: int = 0
    bonus_total: int = 0
    delta: int = 0
    direction: ReconciliationDirection = ReconciliationDirection.balanced
    large_discrepancy: bool = False
    target_pending: int = 0
    quality_posts: int = 0
    normal_posts: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    friendships: int = 0
    warnings: List[str] = []


class UserFailure(BaseModel):
    user_id: str
    error: str
    retryable: bool = False


class ReconciliationReport(BaseModel):
    cutoff: datetime
    total: int = 0
    processed: int = 0
    cancelled: bool = False
    results: List[ReconciliationResult] = []
    failures: List[UserFailure] = []

    @computed_field
    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def raise_for_failures(self) -> None:
        if self.failures:
            raise BulkPartialFailure(self)


class ResetOutcome(BaseModel):
    user_id: str
    previous_pending: int
    pending_reward: int
    changed: bool


class ClaimOutcome(BaseModel):
    user_id: str
    kind: BonusKind
    amount: int
    pending_reward: int


class CreditOutcome(BaseModel):
    user_id: str
    amount: int
    reason: str
    reference_id: str
    pending_reward: int
