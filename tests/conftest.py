import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["API_KEY"] = "test-api-key"

from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from funfarm_rewards.db.database import Base  # noqa: E402
from funfarm_rewards.db import models  # noqa: E402

QUALITY_TEXT = "Rau cải hữu cơ vừa thu hoạch sáng nay, tưới nước giếng, không thuốc trừ sâu, giao tận nhà trong ngày cho bà con."


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class Factory:
    """Inserts rows with explicit timestamps"""

    def __init__(self, db):
        self.db = db

    def profile(self, user_id, **fields):
        fields.setdefault("display_name", f"Farmer {user_id}")
        fields.setdefault("avatar_url", f"https://cdn.example/{user_id}.jpg")
        fields.setdefault("avatar_verified", True)
        profile = models.Profile(id=user_id, **fields)
        self.db.add(profile)
        self.db.commit()
        return profile

    def post(self, author_id, created_at, quality=False, **fields):
        if quality:
            fields.setdefault("content", QUALITY_TEXT)
            fields.setdefault("images", ["https://cdn.example/p.jpg"])
        else:
            fields.setdefault("content", "Chào buổi sáng")
        post = models.Post(id=fields.pop("id", str(uuid4())), author_id=author_id, created_at=created_at, **fields)
        self.db.add(post)
        self.db.commit()
        return post

    def share(self, sharer_id, original, created_at, comment=""):
        return self.post(
            sharer_id, created_at,
            content=None, post_type="share", original_post_id=original.id, share_comment=comment,
        )

    def like(self, post, user_id, created_at):
        like = models.PostLike(post_id=post.id, user_id=user_id, created_at=created_at)
        self.db.add(like)
        self.db.commit()
        return like

    def comment(self, post, author_id, created_at, content="Đẹp quá"):
        comment = models.Comment(
            id=str(uuid4()), post_id=post.id, author_id=author_id, content=content, created_at=created_at
        )
        self.db.add(comment)
        self.db.commit()
        return comment

    def follow(self, follower_id, following_id, created_at, status="accepted"):
        row = models.Follower(
            follower_id=follower_id, following_id=following_id, status=status, created_at=created_at
        )
        self.db.add(row)
        self.db.commit()
        return row


@pytest.fixture
def factory(db):
    return Factory(db)
