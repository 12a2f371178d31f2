"""
SQLAlchemy ORM Models for FUN FARM Rewards Service

These mirror the tables of the FUN FARM data store that the reward core
reads; `reward_transactions` is the ledger the core itself writes.
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, Text, Boolean, DateTime,
    ForeignKey, JSON, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from funfarm_rewards.db.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, index=True)
    display_name = Column(String(255))
    email = Column(String(255), index=True)
    avatar_url = Column(Text)
    avatar_verified = Column(Boolean, default=False, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    profile_type = Column(String(50), default="farmer")
    wallet_address = Column(String(64), index=True)
    violation_level = Column(Integer, default=0, nullable=False)

    # Balances (CAMLY units)
    pending_reward = Column(BigInteger, default=0, nullable=False)
    approved_reward = Column(BigInteger, default=0, nullable=False)
    camly_balance = Column(BigInteger, default=0, nullable=False)

    # One-time bonus flags
    welcome_bonus_claimed = Column(Boolean, default=False, nullable=False)
    wallet_bonus_claimed = Column(Boolean, default=False, nullable=False)
    verification_bonus_claimed = Column(Boolean, default=False, nullable=False)

    banned = Column(Boolean, default=False, nullable=False, index=True)
    ban_reason = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    # Relationships
    posts = relationship("Post", back_populates="author", foreign_keys="Post.author_id")
    transactions = relationship("RewardTransaction", back_populates="profile")


class Post(Base):
    __tablename__ = "posts"

    id = Column(String(36), primary_key=True, index=True)
    author_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    content = Column(Text)
    images = Column(JSONType)
    video_url = Column(Text)
    post_type = Column(String(20), default="post", nullable=False)  # post, product, share
    share_comment = Column(Text)
    original_post_id = Column(String(36), ForeignKey("posts.id"), index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_posts_author_created", "author_id", "created_at"),
    )

    # Relationships
    author = relationship("Profile", back_populates="posts", foreign_keys=[author_id])
    likes = relationship("PostLike", back_populates="post")
    comments = relationship("Comment", back_populates="post")


class PostLike(Base):
    __tablename__ = "post_likes"

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(String(36), ForeignKey("posts.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("post_id", "user_id", name="unique_post_like"),
    )

    # Relationships
    post = relationship("Post", back_populates="likes")


class Comment(Base):
    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, index=True)
    post_id = Column(String(36), ForeignKey("posts.id"), nullable=False, index=True)
    author_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    content = Column(Text)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    # Relationships
    post = relationship("Post", back_populates="comments")


class Follower(Base):
    __tablename__ = "followers"

    id = Column(Integer, primary_key=True, index=True)
    follower_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    following_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, accepted
    created_at = Column(DateTime, server_default=func.now(), nullable=False)


class BlacklistedWallet(Base):
    __tablename__ = "blacklisted_wallets"

    wallet_address = Column(String(64), primary_key=True)
    reason = Column(Text)
    is_permanent = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())


class RewardTransaction(Base):
    """Append-only ledger of every credit and reset performed by the core."""

    __tablename__ = "reward_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("profiles.id"), nullable=False, index=True)
    kind = Column(String(40), nullable=False)  # welcome_bonus, wallet_bonus, verification_bonus, activity, reset
    amount = Column(BigInteger, nullable=False)
    reason = Column(Text)
    reference_id = Column(String(100))
    pending_after = Column(BigInteger)
    actor_id = Column(String(36))
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "kind", "reference_id", name="unique_reward_reference"),
        Index("idx_reward_tx_user_created", "user_id", "created_at"),
    )

    # Relationships
    profile = relationship("Profile", back_populates="transactions")
