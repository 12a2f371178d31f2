#!/usr/bin/env python3
"""
Database Seeder for FUN FARM Rewards

Populates the database with synthetic farmers and their activity so the
reward, abuse and reconciliation endpoints have something to chew on.

Usage:
    # From project root with venv activated:
    python scripts/seed_database.py

    # With options:
    python scripts/seed_database.py --users 100 --days 30 --clear

Features:
    - Creates profiles with wallets, avatars and bonus flags
    - Creates posts (quality and normal), shares, likes and comments
    - Creates accepted friendships, some recorded in both directions
    - Plants abuse patterns: shared wallets, fake names, temp-mail
      addresses, inflated pending rewards
"""
import argparse
import random
import sys
from datetime import datetime, timedelta
from uuid import uuid4

# Configuration
DEFAULT_NUM_USERS = 60
DEFAULT_NUM_DAYS = 30

FIRST_NAMES = [
    "Minh", "Lan", "Hung", "Mai", "Tuan", "Thao", "Duc", "Linh", "Quang", "Hoa",
    "Nam", "Trang", "Phuc", "Ngoc", "Bao", "Anh", "Khoa", "Vy", "Long", "My"
]

LAST_NAMES = ["Nguyen", "Tran", "Le", "Pham", "Hoang", "Vo", "Dang", "Bui", "Do", "Ngo"]

FAKE_NAMES = ["user12345", "test", "12345678", "abc99999", "admin1"]

EMAIL_DOMAINS = ["gmail.com", "yahoo.com", "outlook.com"]
TEMP_DOMAINS = ["yopmail.com", "mailinator.com", "10minutemail.com"]

LONG_TEXT = (
    "Hôm nay vườn rau sạch của gia đình đã thu hoạch lứa cải đầu tiên, "
    "không dùng thuốc trừ sâu, tưới bằng nước giếng và bón phân hữu cơ tự ủ."
)
SHORT_TEXTS = ["Chào buổi sáng!", "Rau mới hái", "Giá tốt", "Ai mua không?"]
COMMENTS = ["Đẹp quá", "Mình muốn đặt hàng 2kg, giao về quận 7 được không ạ?", "Tuyệt", "Bao nhiêu tiền một ký vậy bạn?"]


def random_date(start: datetime, end: datetime) -> datetime:
    """Generate random datetime between start and end"""
    delta = end - start
    random_seconds = random.randint(0, int(delta.total_seconds()))
    return start + timedelta(seconds=random_seconds)


def random_wallet() -> str:
    return "0x" + uuid4().hex + uuid4().hex[:8]


def seed_database(
    num_users: int = DEFAULT_NUM_USERS,
    num_days: int = DEFAULT_NUM_DAYS,
    clear_existing: bool = False
):
    """Main seeding function"""
    from funfarm_rewards.db.database import SessionLocal, init_db
    from funfarm_rewards.db import models

    print("=" * 60)
    print("FUN FARM Rewards Database Seeder")
    print("=" * 60)
    print(f"Users: {num_users}")
    print(f"Days: {num_days}")
    print()

    init_db()
    db = SessionLocal()
    now = datetime.utcnow()
    window_start = now - timedelta(days=num_days)

    try:
        if clear_existing:
            print("Clearing existing data...")
            # Order matters due to foreign keys
            for model in (
                models.RewardTransaction, models.PostLike, models.Comment, models.Follower,
                models.Post, models.BlacklistedWallet, models.Profile
            ):
                db.query(model).delete()
            db.commit()
            print("  Done clearing tables")

        # =====================================================================
        # 1. Profiles
        # =====================================================================
        print("\n1. Seeding profiles...")
        shared_wallet = random_wallet()
        profiles = []
        for i in range(num_users):
            first, last = random.choice(FIRST_NAMES), random.choice(LAST_NAMES)
            name = f"{last} {first}"
            domain = random.choice(EMAIL_DOMAINS)
            wallet = random_wallet() if random.random() < 0.7 else None
            if i < len(FAKE_NAMES):
                name = FAKE_NAMES[i]
                domain = random.choice(TEMP_DOMAINS)
            if i % 15 == 0:
                # Same wallet with varying case
                wallet = shared_wallet.upper() if i % 2 else shared_wallet
            profile = models.Profile(
                id=f"seed-user-{i + 1:04d}",
                display_name=name,
                email=f"{first.lower()}{random.randint(1, 999)}@{domain}",
                avatar_url=f"https://cdn.funfarm.example/avatars/{i}.jpg" if random.random() < 0.8 else None,
                avatar_verified=random.random() < 0.5,
                email_verified=True,
                wallet_address=wallet,
                violation_level=1 if random.random() < 0.05 else 0,
                welcome_bonus_claimed=True,
                wallet_bonus_claimed=wallet is not None,
                pending_reward=random.choice([0, 50000, 150000, 2500000, 6000000]),
                approved_reward=random.choice([0, 0, 100000]),
                created_at=window_start - timedelta(days=random.randint(1, 60))
            )
            db.add(profile)
            profiles.append(profile)
        db.commit()
        print(f"  Created {len(profiles)} profiles ({num_users // 15 + 1} sharing one wallet)")

        # =====================================================================
        # 2. Posts and shares
        # =====================================================================
        print("\n2. Seeding posts...")
        posts = []
        for profile in profiles:
            for _ in range(random.randint(0, num_days // 2)):
                quality = random.random() < 0.4
                post = models.Post(
                    id=str(uuid4()),
                    author_id=profile.id,
                    content=LONG_TEXT if quality else random.choice(SHORT_TEXTS),
                    images=[f"https://cdn.funfarm.example/posts/{uuid4().hex}.jpg"] if quality else [],
                    post_type=random.choice(["post", "post", "product"]),
                    created_at=random_date(window_start, now)
                )
                db.add(post)
                posts.append(post)
        db.commit()

        share_count = 0
        for _ in range(len(posts) // 4):
            original = random.choice(posts)
            sharer = random.choice(profiles)
            if sharer.id == original.author_id:
                continue
            db.add(models.Post(
                id=str(uuid4()),
                author_id=sharer.id,
                post_type="share",
                original_post_id=original.id,
                share_comment=random.choice(COMMENTS),
                created_at=random_date(original.created_at, now)
            ))
            share_count += 1
        db.commit()
        print(f"  Created {len(posts)} posts and {share_count} shares")

        # =====================================================================
        # 3. Likes and comments
        # =====================================================================
        print("\n3. Seeding likes and comments...")
        like_count = comment_count = 0
        for post in posts:
            likers = random.sample(profiles, k=min(len(profiles), random.randint(0, 8)))
            for liker in likers:
                if liker.id == post.author_id:
                    continue
                db.add(models.PostLike(
                    post_id=post.id,
                    user_id=liker.id,
                    created_at=random_date(post.created_at, min(now, post.created_at + timedelta(days=2)))
                ))
                like_count += 1
            for _ in range(random.randint(0, 3)):
                commenter = random.choice(profiles)
                if commenter.id == post.author_id:
                    continue
                db.add(models.Comment(
                    id=str(uuid4()),
                    post_id=post.id,
                    author_id=commenter.id,
                    content=random.choice(COMMENTS),
                    created_at=random_date(post.created_at, min(now, post.created_at + timedelta(days=2)))
                ))
                comment_count += 1
        db.commit()
        print(f"  Created {like_count} likes and {comment_count} comments")

        # =====================================================================
        # 4. Friendships
        # =====================================================================
        print("\n4. Seeding friendships...")
        friendship_count = 0
        pairs = set()
        for _ in range(num_users * 2):
            a, b = random.sample(profiles, k=2)
            key = tuple(sorted((a.id, b.id)))
            if key in pairs:
                continue
            pairs.add(key)
            accepted_at = random_date(window_start, now)
            db.add(models.Follower(follower_id=a.id, following_id=b.id, status="accepted", created_at=accepted_at))
            if random.random() < 0.5:
                # Mutual accept recorded as a second row
                db.add(models.Follower(follower_id=b.id, following_id=a.id, status="accepted", created_at=accepted_at))
            friendship_count += 1
        db.commit()
        print(f"  Created {friendship_count} friendships")

        print("\n" + "=" * 60)
        print("✅ Database seeding complete!")
        print("=" * 60)

    except Exception as e:
        db.rollback()
        print(f"\n❌ Error during seeding: {e}")
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="Seed FUN FARM Rewards database with synthetic data"
    )
    parser.add_argument(
        "--users", "-u",
        type=int,
        default=DEFAULT_NUM_USERS,
        help=f"Number of profiles (default: {DEFAULT_NUM_USERS})"
    )
    parser.add_argument(
        "--days", "-d",
        type=int,
        default=DEFAULT_NUM_DAYS,
        help=f"Days of activity to generate (default: {DEFAULT_NUM_DAYS})"
    )
    parser.add_argument(
        "--clear", "-c",
        action="store_true",
        help="Clear existing data before seeding"
    )

    args = parser.parse_args()

    seed_database(
        num_users=args.users,
        num_days=args.days,
        clear_existing=args.clear
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
