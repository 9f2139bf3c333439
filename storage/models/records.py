"""
Archive Record ORM Models.

============================================================
PURPOSE
============================================================
Typed records decoded from a user's archive by the parse stage.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Stage: PARSED
- Mutability: append-only, except the conflict flag
- Source: archive decoder
- Consumers: extraction stages, data export

============================================================
MODELS
============================================================
- FriendRecord: friend list entry (unique per owner + name)
- PostRecord: a post (unique per owner + timestamp)
  - PostMediaRecord, PlaceRecord, TagRecord
- ReactionRecord: a reaction (unique per owner + timestamp)
- CommentRecord: a comment (unique per owner + timestamp)
  - CommentMediaRecord

============================================================
"""

import uuid
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storage.models.base import Base, OwnedRecordMixin


# ============================================================
# FRIENDS
# ============================================================

class FriendRecord(OwnedRecordMixin, Base):
    """Friend list entry of an account."""

    __tablename__ = "friends"

    friend_name: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("data_owner_id", "friend_name", name="uq_friends_owner_name"),
    )


# ============================================================
# POSTS
# ============================================================

class PostRecord(OwnedRecordMixin, Base):
    """
    A post of an account.

    Posts with a timestamp colliding with an existing post of the
    same owner are flagged through conflict_flag, not duplicated.
    """

    __tablename__ = "posts"

    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)

    post: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    update_timestamp: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    external_context_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_context_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_context_source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event_start_timestamp: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    event_end_timestamp: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    media_attached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    conflict_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    media_items: Mapped[List["PostMediaRecord"]] = relationship(
        back_populates="post",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="PostMediaRecord.media_index",
    )
    places: Mapped[List["PlaceRecord"]] = relationship(
        back_populates="post",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    tags: Mapped[List["TagRecord"]] = relationship(
        back_populates="post",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("data_owner_id", "timestamp", name="uq_posts_owner_timestamp"),
    )


class PostMediaRecord(OwnedRecordMixin, Base):
    """Media attached to a post, unique on its natural key."""

    __tablename__ = "post_media"

    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    media_index: Mapped[int] = mapped_column(Integer, nullable=False)
    media_uri: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_uri: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    filename_extension: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    post: Mapped["PostRecord"] = relationship(back_populates="media_items")

    __table_args__ = (
        UniqueConstraint(
            "timestamp", "media_index", "data_owner_id", "post_id",
            name="uq_post_media_natural_key",
        ),
    )


class PlaceRecord(OwnedRecordMixin, Base):
    """Place attached to a post."""

    __tablename__ = "places"

    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    post: Mapped["PostRecord"] = relationship(back_populates="places")


class TagRecord(OwnedRecordMixin, Base):
    """A friend tagged in a post or a comment."""

    __tablename__ = "tags"

    post_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=True
    )
    comment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True
    )
    friend_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("friends.id", ondelete="CASCADE"), nullable=False
    )
    friend_name: Mapped[str] = mapped_column(Text, nullable=False)

    post: Mapped[Optional["PostRecord"]] = relationship(back_populates="tags")
    comment: Mapped[Optional["CommentRecord"]] = relationship(back_populates="tags")


# ============================================================
# REACTIONS
# ============================================================

class ReactionRecord(OwnedRecordMixin, Base):
    """A reaction left by the account owner."""

    __tablename__ = "reactions"

    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actor: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reaction: Mapped[str] = mapped_column(String(32), nullable=False)

    __table_args__ = (
        UniqueConstraint("data_owner_id", "timestamp", name="uq_reactions_owner_timestamp"),
    )


# ============================================================
# COMMENTS
# ============================================================

class CommentRecord(OwnedRecordMixin, Base):
    """A comment written by the account owner."""

    __tablename__ = "comments"

    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    weekday: Mapped[int] = mapped_column(Integer, nullable=False)
    author: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_context_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_context_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_context_source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_attached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    conflict_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    media_items: Mapped[List["CommentMediaRecord"]] = relationship(
        back_populates="comment",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    tags: Mapped[List["TagRecord"]] = relationship(
        back_populates="comment",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("data_owner_id", "timestamp", name="uq_comments_owner_timestamp"),
    )


class CommentMediaRecord(OwnedRecordMixin, Base):
    """Media attached to a comment, unique on its natural key."""

    __tablename__ = "comment_media"

    comment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("comments.id", ondelete="CASCADE"), nullable=False
    )
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    media_index: Mapped[int] = mapped_column(Integer, nullable=False)
    media_uri: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_uri: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    filename_extension: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    comment: Mapped["CommentRecord"] = relationship(back_populates="media_items")

    __table_args__ = (
        UniqueConstraint(
            "timestamp", "media_index", "data_owner_id", "comment_id",
            name="uq_comment_media_natural_key",
        ),
    )
