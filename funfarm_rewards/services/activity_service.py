"""
Activity Aggregator - collects a user's rewardable activity per local day

Reads posts, likes, comments, shares and accepted friendships from the data
store and groups them into UserActivityDay records keyed by the local
calendar date (Vietnam day, UTC+7 by default). Reading never writes.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from sqlalchemy import or_
from sqlalchemy.orm import Session, aliased

from funfarm_rewards.config import settings
from funfarm_rewards.db.models import Comment, Follower, Post, PostLike, Profile
from funfarm_rewards.errors import UserNotFound, ValidationError, store_errors
from funfarm_rewards.schemas import (
    CommentActivity, FriendshipActivity, LikeActivity, PostActivity,
    ShareActivity, UserActivityDay
)

logger = logging.getLogger(__name__)

CONTENT_POST_TYPES = ("post", "product")
SHARE_POST_TYPE = "share"

DayLike = Union[date, datetime, str]


# ============================================
# TIME HELPERS
# ============================================
def to_utc(ts: datetime) -> datetime:
    """Naive UTC datetime; naive input is taken to already be UTC"""
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def local_date(ts: datetime, offset_hours: Optional[int] = None) -> date:
    """Calendar date of a timestamp in the reward time zone"""
    if offset_hours is None:
        offset_hours = settings.REWARD_UTC_OFFSET_HOURS
    return (to_utc(ts) + timedelta(hours=offset_hours)).date()


def local_day_bounds(day: date, offset_hours: Optional[int] = None) -> Tuple[datetime, datetime]:
    """UTC [start, end) instants of a local calendar day"""
    if offset_hours is None:
        offset_hours = settings.REWARD_UTC_OFFSET_HOURS
    start = datetime.combine(day, time.min) - timedelta(hours=offset_hours)
    return start, start + timedelta(days=1)


def parse_day(value: Optional[DayLike], field: str = "date") -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError(f"Unparseable {field}: {value!r}")
    raise ValidationError(f"Unsupported {field} type: {type(value).__name__}")


def parse_range(
    start_date: Optional[DayLike],
    end_date: Optional[DayLike]
) -> Tuple[Optional[date], Optional[date]]:
    start = parse_day(start_date, "start_date")
    end = parse_day(end_date, "end_date")
    if start and end and start > end:
        raise ValidationError(f"start_date {start} is after end_date {end}")
    return start, end


# ============================================
# QUALITY TIERS
# ============================================
def _has_media(images: Any, video_url: Optional[str]) -> bool:
    if isinstance(images, str):
        images = [images]
    if any(isinstance(url, str) and url.strip() for url in images or []):
        return True
    return bool(video_url and video_url.strip())


def is_quality_post(content: Optional[str], images: Any = None, video_url: Optional[str] = None) -> bool:
    """Long text plus at least one image or a video"""
    return len(content or "") > settings.QUALITY_POST_MIN_CHARS and _has_media(images, video_url)


def is_quality_comment(content: Optional[str]) -> bool:
    return len(content or "") > settings.QUALITY_COMMENT_MIN_CHARS


def is_quality_share(share_comment: Optional[str]) -> bool:
    return len(share_comment or "") >= settings.QUALITY_SHARE_MIN_CHARS


# ============================================
# PURE AGGREGATION
# ============================================
def _dedupe_friendships(friendships: Iterable[FriendshipActivity]) -> List[FriendshipActivity]:
    """Keep the earliest row of every unordered pair"""
    seen: Set[str] = set()
    kept = []
    ordered = sorted(
        friendships,
        key=lambda f: (f.created_at is None, to_utc(f.created_at) if f.created_at else datetime.min,
                       f.pair_key or "")
    )
    for friendship in ordered:
        key = friendship.pair_key
        if key is None:
            kept.append(friendship)
            continue
        if key in seen:
            continue
        seen.add(key)
        kept.append(friendship)
    return kept


def build_activity_days(
    user_id: str,
    posts: Iterable[PostActivity] = (),
    likes: Iterable[LikeActivity] = (),
    comments: Iterable[CommentActivity] = (),
    shares: Iterable[ShareActivity] = (),
    friendships: Iterable[FriendshipActivity] = (),
    wallet_connected: bool = False,
    start_date: Optional[DayLike] = None,
    end_date: Optional[DayLike] = None,
    offset_hours: Optional[int] = None
) -> Dict[date, UserActivityDay]:
    """
    Group activity records into per-day buckets.

    Records without a timestamp cannot be placed on a day and are dropped
    with a warning. Days outside [start_date, end_date] are left out.
    """
    if not user_id:
        raise ValidationError("user_id is required")
    start, end = parse_range(start_date, end_date)

    days: Dict[date, UserActivityDay] = {}

    def bucket(record) -> Optional[UserActivityDay]:
        if record.created_at is None:
            logger.warning(f"Dropping {type(record).__name__} without timestamp for user {user_id}")
            return None
        day = local_date(record.created_at, offset_hours)
        if (start and day < start) or (end and day > end):
            return None
        if day not in days:
            days[day] = UserActivityDay(user_id=user_id, day=day, wallet_connected=wallet_connected)
        return days[day]

    for post in posts:
        target = bucket(post)
        if target:
            target.posts.append(post)
    for like in likes:
        target = bucket(like)
        if target:
            target.likes.append(like)
    for comment in comments:
        target = bucket(comment)
        if target:
            target.comments.append(comment)
    for share in shares:
        target = bucket(share)
        if target:
            target.shares.append(share)
    for friendship in _dedupe_friendships(friendships):
        target = bucket(friendship)
        if target:
            target.friendships.append(friendship)

    return dict(sorted(days.items()))


# ============================================
# STORE-BACKED AGGREGATION
# ============================================
class ActivityService:
    """Reads activity rows for a user and builds UserActivityDay records"""

    def _time_filters(self, column, start: Optional[date], end: Optional[date], cutoff: Optional[datetime]):
        filters = []
        if start:
            filters.append(column >= local_day_bounds(start)[0])
        if end:
            filters.append(column < local_day_bounds(end)[1])
        if cutoff:
            filters.append(column <= to_utc(cutoff))
        return filters

    def banned_user_ids(self, db: Session) -> Set[str]:
        if not settings.REWARD_EXCLUDE_BANNED_ACTORS:
            return set()
        rows = db.query(Profile.id).filter(Profile.banned.is_(True)).all()
        return {row[0] for row in rows}

    def _read_posts(self, db, user_id, start, end, cutoff) -> List[PostActivity]:
        rows = db.query(Post).filter(
            Post.author_id == user_id,
            Post.post_type.in_(CONTENT_POST_TYPES),
            *self._time_filters(Post.created_at, start, end, cutoff)
        ).all()
        return [
            PostActivity(
                post_id=p.id,
                created_at=p.created_at,
                quality=is_quality_post(p.content, p.images, p.video_url)
            )
            for p in rows
        ]

    def _read_likes(self, db, user_id, start, end, cutoff, banned) -> List[LikeActivity]:
        rows = db.query(PostLike).join(Post, Post.id == PostLike.post_id).filter(
            Post.author_id == user_id,
            PostLike.user_id != user_id,
            *self._time_filters(PostLike.created_at, start, end, cutoff)
        ).all()
        return [
            LikeActivity(post_id=like.post_id, liker_id=like.user_id, created_at=like.created_at)
            for like in rows
            if like.user_id not in banned
        ]

    def _read_comments(self, db, user_id, start, end, cutoff, banned) -> List[CommentActivity]:
        rows = db.query(Comment).join(Post, Post.id == Comment.post_id).filter(
            Post.author_id == user_id,
            Comment.author_id != user_id,
            *self._time_filters(Comment.created_at, start, end, cutoff)
        ).all()
        return [
            CommentActivity(
                comment_id=c.id,
                post_id=c.post_id,
                created_at=c.created_at,
                quality=is_quality_comment(c.content)
            )
            for c in rows
            if c.author_id not in banned
        ]

    def _read_shares(self, db, user_id, start, end, cutoff, banned) -> List[ShareActivity]:
        Original = aliased(Post)
        rows = db.query(Post).join(Original, Original.id == Post.original_post_id).filter(
            Original.author_id == user_id,
            Post.post_type == SHARE_POST_TYPE,
            Post.author_id != user_id,
            *self._time_filters(Post.created_at, start, end, cutoff)
        ).all()
        return [
            ShareActivity(
                share_id=s.id,
                post_id=s.original_post_id,
                created_at=s.created_at,
                quality=is_quality_share(s.share_comment)
            )
            for s in rows
            if s.author_id not in banned
        ]

    def _read_friendships(self, db, user_id, start, end, cutoff, banned) -> List[FriendshipActivity]:
        rows = db.query(Follower).filter(
            Follower.status == "accepted",
            or_(Follower.follower_id == user_id, Follower.following_id == user_id),
            Follower.follower_id != Follower.following_id,
            *self._time_filters(Follower.created_at, start, end, cutoff)
        ).all()
        friendships = []
        for row in rows:
            other = row.following_id if row.follower_id == user_id else row.follower_id
            if other in banned:
                continue
            friendships.append(FriendshipActivity(
                user_a=row.follower_id, user_b=row.following_id, created_at=row.created_at
            ))
        return friendships

    def aggregate(
        self,
        db: Session,
        user_id: str,
        start_date: Optional[DayLike] = None,
        end_date: Optional[DayLike] = None,
        cutoff: Optional[datetime] = None
    ) -> Dict[date, UserActivityDay]:
        """
        Build the per-day activity of a user.

        Raises UserNotFound for an unknown user and DataUnavailable when the
        store cannot be read. A user with no activity gets an empty dict.
        """
        start, end = parse_range(start_date, end_date)

        with store_errors(f"reading activity for user {user_id}"):
            profile = db.get(Profile, user_id)
            if profile is None:
                raise UserNotFound(user_id)
            banned = self.banned_user_ids(db)
            posts = self._read_posts(db, user_id, start, end, cutoff)
            likes = self._read_likes(db, user_id, start, end, cutoff, banned)
            comments = self._read_comments(db, user_id, start, end, cutoff, banned)
            shares = self._read_shares(db, user_id, start, end, cutoff, banned)
            friendships = self._read_friendships(db, user_id, start, end, cutoff, banned)

        days = build_activity_days(
            user_id,
            posts=posts,
            likes=likes,
            comments=comments,
            shares=shares,
            friendships=friendships,
            wallet_connected=bool(profile.wallet_address),
            start_date=start,
            end_date=end
        )
        logger.debug(
            f"Aggregated {len(days)} active days for user {user_id} "
            f"({len(posts)} posts, {len(likes)} likes, {len(comments)} comments, "
            f"{len(shares)} shares, {len(friendships)} friendships)"
        )
        return days


# Singleton instance
activity_service = ActivityService()
