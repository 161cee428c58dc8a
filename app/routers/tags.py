from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import PaginationParams, get_viewer
from app.models import Article, Tiding, User
from app.schemas import SimplePage, TagUsage
from app.services import tag_service

router = APIRouter(prefix="/api/v1/tags", tags=["tags"])


@router.get("", response_model=list[TagUsage])
async def tag_cloud(db: AsyncSession = Depends(get_db)):
    return await tag_service.tag_cloud(db)


@router.get("/{tag}/articles", response_model=SimplePage)
async def articles_by_tag(
    tag: str,
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    page = await tag_service.list_by_tag(db, Article, tag, viewer, pagination.page)
    if page is None:
        raise HTTPException(status_code=404, detail="Tag not found")
    return page


@router.get("/{tag}/tidings", response_model=SimplePage)
async def tidings_by_tag(
    tag: str,
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    page = await tag_service.list_by_tag(db, Tiding, tag, viewer, pagination.page)
    if page is None:
        raise HTTPException(status_code=404, detail="Tag not found")
    return page
