from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import PaginationParams, get_viewer, require_viewer
from app.models import Article, User
from app.schemas import (
    CommentCreate,
    CommentResponse,
    HistoryEntry,
    PublicationCreate,
    PublicationDetail,
    PublicationUpdate,
    SimplePage,
)
from app.services import article_service, comment_service

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])

NOT_FOUND = "Article not found"


@router.get("", response_model=SimplePage)
async def list_articles(
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(db, viewer, pagination.page)


@router.get("/{slug}", response_model=PublicationDetail)
async def get_article(
    slug: str,
    viewer: User | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article(db, slug, viewer)
    if not article:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return article


@router.post("", status_code=201, response_model=PublicationDetail)
async def create_article(
    data: PublicationCreate,
    viewer: User = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.create_article(db, data, viewer)


@router.put("/{slug}", response_model=PublicationDetail)
async def update_article(
    slug: str,
    data: PublicationUpdate,
    viewer: User = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.update_article(db, slug, data, viewer)
    if not article:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return article


@router.delete("/{slug}", status_code=204)
async def delete_article(
    slug: str,
    viewer: User = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    deleted = await article_service.delete_article(db, slug, viewer)
    if not deleted:
        raise HTTPException(status_code=404, detail=NOT_FOUND)


@router.get("/{slug}/history", response_model=list[HistoryEntry])
async def get_history(
    slug: str,
    viewer: User | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    history = await article_service.get_history(db, slug, viewer)
    if history is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return history


@router.get("/{slug}/history/latest", response_model=HistoryEntry)
async def get_last_change(
    slug: str,
    viewer: User | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    entry = await article_service.last_change_in_history(db, slug, viewer)
    if entry is None:
        raise HTTPException(status_code=404, detail="No recorded changes")
    return entry


@router.get("/{slug}/comments", response_model=list[CommentResponse])
async def list_comments(
    slug: str,
    viewer: User | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    comments = await comment_service.list_comments(db, Article, slug, viewer)
    if comments is None:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return comments


@router.post("/{slug}/comments", status_code=201, response_model=CommentResponse)
async def add_comment(
    slug: str,
    data: CommentCreate,
    viewer: User = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.add_comment(db, Article, slug, data, viewer)
    if not comment:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return comment
