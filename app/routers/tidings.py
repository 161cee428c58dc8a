from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import PaginationParams, get_viewer, require_viewer
from app.models import Tiding, User
from app.schemas import (
    CommentCreate,
    CommentResponse,
    PublicationCreate,
    PublicationDetail,
    PublicationUpdate,
    SimplePage,
)
from app.services import comment_service, tiding_service

router = APIRouter(prefix="/api/v1/tidings", tags=["tidings"])

NOT_FOUND = "Tiding not found"


@router.get("", response_model=SimplePage)
async def list_tidings(
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await tiding_service.get_tidings(db, viewer, pagination.page)


@router.get("/{slug}", response_model=PublicationDetail)
async def get_tiding(
    slug: str,
    viewer: User | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    tiding = await tiding_service.get_tiding(db, slug, viewer)
    if not tiding:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return tiding


@router.post("", status_code=201, response_model=PublicationDetail)
async def create_tiding(
    data: PublicationCreate,
    viewer: User = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await tiding_service.create_tiding(db, data, viewer)


@router.put("/{slug}", response_model=PublicationDetail)
async def update_tiding(
    slug: str,
    data: PublicationUpdate,
    viewer: User = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    tiding = await tiding_service.update_tiding(db, slug, data, viewer)
    if not tiding:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return tiding


@router.delete("/{slug}", status_code=204)
async def delete_tiding(
    slug: str,
    viewer: User = Depends(require_viewer),
    db: AsyncSession = Depends(get_db),
):
    if not await tiding_service.delete_tiding(db, slug, viewer):
        raise HTTPException(status_code=404, detail=NOT_FOUND)


@router.get("/{slug}/comments", response_model=list[CommentResponse])
async def list_comments(
    slug: str,
    viewer: User | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    comments = await comment_service.list_comments(db, Tiding, slug, viewer)
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
    comment = await comment_service.add_comment(db, Tiding, slug, data, viewer)
    if not comment:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    return comment
