from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

from funfarm_rewards.errors import DataUnavailable, UserNotFound, ValidationError
from funfarm_rewards.schemas import FriendshipActivity, PostActivity
from funfarm_rewards.services.activity_service import (
    activity_service, build_activity_days, is_quality_comment, is_quality_post,
    is_quality_share, local_date, parse_range
)
from funfarm_rewards.services.reward_engine import reward_engine


def utc(day, hour, minute=0):
    return datetime(2025, 1, day, hour, minute)


def test_quality_post_needs_long_text_and_media():
    assert is_quality_post("x" * 101, images=["https://cdn.example/a.jpg"])
    assert is_quality_post("x" * 101, video_url="https://cdn.example/a.mp4")
    assert not is_quality_post("x" * 100, images=["https://cdn.example/a.jpg"])
    assert not is_quality_post("x" * 101)
    assert not is_quality_post("x" * 101, images=["  "], video_url=" ")


def test_quality_comment_and_share_thresholds():
    assert is_quality_comment("x" * 21)
    assert not is_quality_comment("x" * 20)
    assert not is_quality_comment(None)
    assert is_quality_share("x" * 20)
    assert not is_quality_share("x" * 19)


def test_local_date_uses_vietnam_day():
    assert local_date(datetime(2025, 1, 20, 16, 59)) == date(2025, 1, 20)
    assert local_date(datetime(2025, 1, 20, 17, 0)) == date(2025, 1, 21)
    aware = datetime(2025, 1, 21, 0, 30, tzinfo=timezone(timedelta(hours=7)))
    assert local_date(aware) == date(2025, 1, 21)


def test_parse_range_rejects_bad_input():
    assert parse_range("2025-01-01", None) == (date(2025, 1, 1), None)
    with pytest.raises(ValidationError):
        parse_range("2025-02-01", "2025-01-01")
    with pytest.raises(ValidationError):
        parse_range("2025-13-01", None)
    with pytest.raises(ValidationError):
        parse_range(20250101, None)


def test_build_activity_days_buckets_by_local_date():
    posts = [
        PostActivity(post_id="p1", created_at=utc(20, 10)),
        PostActivity(post_id="p2", created_at=utc(20, 18)),
    ]
    days = build_activity_days("u1", posts=posts)

    assert list(days) == [date(2025, 1, 20), date(2025, 1, 21)]
    assert days[date(2025, 1, 21)].normal_posts == 1


def test_friendship_pair_is_kept_on_its_earliest_day_only():
    friendships = [
        FriendshipActivity(user_a="u2", user_b="u1", created_at=utc(21, 3)),
        FriendshipActivity(user_a="u1", user_b="u2", created_at=utc(20, 3)),
    ]
    days = build_activity_days("u1", friendships=friendships)

    assert list(days) == [date(2025, 1, 20)]
    assert days[date(2025, 1, 20)].friendships_confirmed == 1


def test_build_activity_days_applies_date_range():
    posts = [PostActivity(post_id=f"p{d}", created_at=utc(d, 5)) for d in (18, 19, 20)]
    days = build_activity_days("u1", posts=posts, start_date="2025-01-19", end_date="2025-01-19")

    assert list(days) == [date(2025, 1, 19)]


def test_aggregate_reads_interactions_from_other_users(db, factory):
    factory.profile("u1", wallet_address="0xabc")
    factory.profile("u2")
    factory.profile("u3")
    factory.profile("banned", banned=True)

    quality = factory.post("u1", utc(20, 1), quality=True)
    factory.post("u1", utc(20, 2))
    factory.like(quality, "u2", utc(20, 3))
    factory.like(quality, "u1", utc(20, 3))
    factory.like(quality, "banned", utc(20, 3))
    factory.comment(quality, "u2", utc(20, 4), content="Mình muốn đặt 2kg rau cải nhé")
    factory.comment(quality, "u1", utc(20, 4), content="Cảm ơn bạn đã ủng hộ vườn")
    factory.share("u3", quality, utc(20, 5), comment="Rau nhà bạn này rất ngon, nên thử")
    factory.share("u1", quality, utc(20, 5), comment="Chia sẻ lại bài của chính mình")
    factory.follow("u1", "u2", utc(20, 6))
    factory.follow("u2", "u1", utc(20, 6))
    factory.follow("u1", "u3", utc(20, 6), status="pending")

    days = activity_service.aggregate(db, "u1")

    assert list(days) == [date(2025, 1, 20)]
    day = days[date(2025, 1, 20)]
    assert day.wallet_connected
    assert day.quality_posts == 1
    assert day.normal_posts == 1
    assert day.likes_received == 1
    assert day.quality_comments == 1
    assert day.quality_shares == 1
    assert day.friendships_confirmed == 1

    breakdown = reward_engine.compute_day(day)
    assert breakdown.total == 20000 + 5000 + 10000 + 5000 + 10000 + 50000


def test_aggregate_honours_cutoff_and_range(db, factory):
    factory.profile("u1")
    factory.post("u1", utc(19, 5))
    factory.post("u1", utc(20, 5))
    factory.post("u1", utc(21, 5))

    assert list(activity_service.aggregate(db, "u1", cutoff=utc(20, 12))) == [
        date(2025, 1, 19), date(2025, 1, 20)
    ]
    assert list(activity_service.aggregate(db, "u1", start_date="2025-01-20", end_date="2025-01-20")) == [
        date(2025, 1, 20)
    ]


def test_aggregate_unknown_user(db):
    with pytest.raises(UserNotFound):
        activity_service.aggregate(db, "nobody")


class BrokenSession:
    def __init__(self, error):
        self.error = error

    def get(self, *args, **kwargs):
        raise self.error


def test_store_errors_are_not_read_as_zero_activity():
    down = OperationalError("SELECT 1", {}, Exception("connection refused"))
    with pytest.raises(DataUnavailable) as excinfo:
        activity_service.aggregate(BrokenSession(down), "u1")
    assert excinfo.value.retryable

    schema = ProgrammingError("SELECT 1", {}, Exception("no such column"))
    with pytest.raises(DataUnavailable) as excinfo:
        activity_service.aggregate(BrokenSession(schema), "u1")
    assert not excinfo.value.retryable
