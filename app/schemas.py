from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.models import UserRole


# --- Tag ---

class TagResponse(BaseModel):
    id: int
    name: str
    slug: str
    model_config = ConfigDict(from_attributes=True)


class TagUsage(TagResponse):
    articles: int
    tidings: int


# --- User ---

class UserBase(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    email: str = Field(max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    role: UserRole = UserRole.USER


class UserCreate(UserBase):
    pass


class UserResponse(UserBase):
    id: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UserDetail(UserResponse):
    articles: list["PublicationResponse"] = []


# --- Comment ---

class CommentCreate(BaseModel):
    body: str = Field(min_length=1)


class CommentResponse(BaseModel):
    id: int
    body: str
    commentable_type: str
    commentable_id: int
    owner_id: int
    author: str | None
    created_at: datetime


# --- Articles and tidings ---

_SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class PublicationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=255, pattern=_SLUG_PATTERN)
    description: str | None = Field(None, max_length=500)
    text: str
    is_published: bool = False
    tags: list[str] = []  # tag names


class PublicationUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=255, pattern=_SLUG_PATTERN)
    description: str | None = Field(None, max_length=500)
    text: str | None = None
    is_published: bool | None = None
    tags: list[str] | None = None


class PublicationResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: str | None
    is_published: bool
    owner_id: int
    created_at: datetime
    updated_at: datetime
    tags: list[TagResponse] = []


class PublicationDetail(PublicationResponse):
    text: str
    owner: str | None = None


# --- History ---

class HistoryEntry(BaseModel):
    id: int
    article_id: int
    user_id: int | None
    editor: str | None
    before: dict[str, Any]
    after: dict[str, Any]
    created_at: datetime
    updated_at: datetime


# --- Pagination ---

class SimplePage(BaseModel):
    items: list[PublicationResponse]
    page: int
    page_size: int
    has_more: bool


# --- Statistics ---

class ArticleNameLength(BaseModel):
    name: str
    slug: str
    length: int


class ArticleCount(BaseModel):
    name: str
    slug: str
    total: int


class TopAuthor(BaseModel):
    owner_id: int
    name: str
    total: int


class StatisticsResponse(BaseModel):
    articles_count: int
    max_count_articles_user: TopAuthor | None
    article_max_length_name: ArticleNameLength | None
    article_min_length_name: ArticleNameLength | None
    avg_count_articles: int
    most_updated_article: ArticleCount | None
    most_discussed_article: ArticleCount | None
    cache_info: dict = {}


# Required for forward-reference resolution (UserDetail.articles)
UserDetail.model_rebuild()
