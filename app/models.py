from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    and_,
)
from sqlalchemy.orm import Mapped, declared_attr, foreign, mapped_column, relationship

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


# ---------------------------------------------------------------------------
# Polymorphic join table: Tag <-> (Article | Tiding)
# ---------------------------------------------------------------------------
taggables = Table(
    "taggables",
    Base.metadata,
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
    Column("taggable_type", String(50), primary_key=True),
    Column("taggable_id", Integer, primary_key=True),
    Index("ix_taggables_taggable", "taggable_type", "taggable_id"),
)


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.USER.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    articles: Mapped[List["Article"]] = relationship(
        "Article", back_populates="owner", lazy="noload", order_by="Article.id.desc()"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


# ---------------------------------------------------------------------------
# Tag
# ---------------------------------------------------------------------------
class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)


# ---------------------------------------------------------------------------
# Polymorphic owners
# ---------------------------------------------------------------------------
class Publication:
    """
    Columns and relations shared by articles and tidings.

    ``morph_type`` is the discriminator written to ``taggables.taggable_type``
    and ``comments.commentable_type``.  Both relations are view-only: join
    rows are written by the services, which know the discriminator.
    """

    morph_type = ""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    @declared_attr
    def owner_id(cls) -> Mapped[int]:
        return mapped_column(
            Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
        )

    @declared_attr
    def tags(cls) -> Mapped[List["Tag"]]:
        return relationship(
            "Tag",
            secondary=taggables,
            primaryjoin=lambda: and_(
                cls.id == foreign(taggables.c.taggable_id),
                taggables.c.taggable_type == cls.morph_type,
            ),
            secondaryjoin=lambda: Tag.id == foreign(taggables.c.tag_id),
            order_by=lambda: Tag.name,
            viewonly=True,
            lazy="noload",
        )

    @declared_attr
    def comments(cls) -> Mapped[List["Comment"]]:
        return relationship(
            "Comment",
            primaryjoin=lambda: and_(
                cls.id == foreign(Comment.commentable_id),
                Comment.commentable_type == cls.morph_type,
            ),
            order_by=lambda: Comment.id,
            viewonly=True,
            lazy="noload",
        )


# ---------------------------------------------------------------------------
# Article
# ---------------------------------------------------------------------------
class Article(Publication, Base):
    __tablename__ = "articles"
    __table_args__ = (
        Index("ix_articles_is_published_owner_id", "is_published", "owner_id"),
    )

    morph_type = "article"

    owner: Mapped["User"] = relationship("User", back_populates="articles", lazy="noload")
    history: Mapped[List["ArticleHistory"]] = relationship(
        "ArticleHistory",
        back_populates="article",
        order_by="ArticleHistory.id",
        lazy="noload",
    )


# ---------------------------------------------------------------------------
# Tiding (news item)
# ---------------------------------------------------------------------------
class Tiding(Publication, Base):
    __tablename__ = "tidings"

    morph_type = "tiding"

    owner: Mapped["User"] = relationship("User", lazy="noload")


# Discriminator -> model, used wherever a polymorphic row is resolved.
PUBLICATION_MODELS: dict[str, type[Publication]] = {
    Article.morph_type: Article,
    Tiding.morph_type: Tiding,
}


# ---------------------------------------------------------------------------
# Comment (polymorphic)
# ---------------------------------------------------------------------------
class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        Index("ix_comments_commentable", "commentable_type", "commentable_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    commentable_type: Mapped[str] = mapped_column(String(50), nullable=False)
    commentable_id: Mapped[int] = mapped_column(Integer, nullable=False)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    owner: Mapped["User"] = relationship("User", lazy="noload")


# ---------------------------------------------------------------------------
# ArticleHistory (pivot Article <-> User carrying the diff of one update)
# ---------------------------------------------------------------------------
class ArticleHistory(Base):
    __tablename__ = "article_histories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    article_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Nullable: edits made outside a request (scripts, migrations) have no editor.
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    before: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    after: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    article: Mapped["Article"] = relationship("Article", back_populates="history", lazy="noload")
    editor: Mapped[Optional["User"]] = relationship("User", lazy="noload")
