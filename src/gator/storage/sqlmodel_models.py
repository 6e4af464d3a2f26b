"""SQLModel ORM tables for the gator store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    __tablename__ = "users"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("name", name="uq_users_name"),)

    id: str = Field(primary_key=True)
    name: str
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Feed(SQLModel, table=True):
    __tablename__ = "feeds"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("url", name="uq_feeds_url"),)

    id: str = Field(primary_key=True)
    name: str
    url: str
    user_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    last_fetched_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True, index=True),
    )


class FeedFollow(SQLModel, table=True):
    __tablename__ = "feed_follows"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("user_id", "feed_id", name="uq_feed_follows_user_feed"),
    )

    id: str = Field(primary_key=True)
    user_id: str = Field(
        sa_column=Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    )
    feed_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("feeds.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Post(SQLModel, table=True):
    __tablename__ = "posts"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("url", name="uq_posts_url"),)

    id: str = Field(primary_key=True)
    feed_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("feeds.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    title: str = Field(sa_column=Column(Text, nullable=False))
    description: str | None = Field(default=None, sa_column=Column(Text))
    url: str
    published_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True, index=True),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
