"""Tiding (news item) service: publication CRUD without history."""
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Tiding, User
from app.schemas import PublicationCreate, PublicationUpdate
from app.services import publication_service


async def get_tidings(db: AsyncSession, viewer: User | None = None, page: int = 1) -> dict:
    return await publication_service.list_publications(db, Tiding, viewer, page)


async def get_tiding(db: AsyncSession, slug: str, viewer: User | None = None) -> dict | None:
    return await publication_service.get_publication(db, Tiding, slug, viewer)


async def create_tiding(db: AsyncSession, data: PublicationCreate, owner: User) -> dict:
    return await publication_service.create_publication(db, Tiding, data, owner)


async def update_tiding(
    db: AsyncSession, slug: str, data: PublicationUpdate, editor: User
) -> dict | None:
    return await publication_service.update_publication(db, Tiding, slug, data, editor)


async def delete_tiding(db: AsyncSession, slug: str, actor: User) -> bool:
    return await publication_service.delete_publication(db, Tiding, slug, actor)
