"""
Comment service: comments attach polymorphically to articles and tidings.

A comment can only be added to, or listed for, a publication the viewer
is allowed to see; a hidden publication looks exactly like a missing one.
Comments are append-only through the API.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.models import Comment, Publication, User
from app.schemas import CommentCreate
from app.services import publication_service


def _comment_to_dict(comment: Comment, author: User | None) -> dict:
    return {
        "id": comment.id,
        "body": comment.body,
        "commentable_type": comment.commentable_type,
        "commentable_id": comment.commentable_id,
        "owner_id": comment.owner_id,
        "author": author.name if author is not None else None,
        "created_at": comment.created_at.isoformat(),
    }


async def add_comment(
    db: AsyncSession,
    model: type[Publication],
    slug: str,
    data: CommentCreate,
    author: User,
) -> dict | None:
    """
    Append a comment by *author* to the publication identified by *slug*.

    Returns None when the target does not exist or is hidden from *author*.
    """
    target = await publication_service.get_visible(db, model, slug, author)
    if target is None:
        return None

    comment = Comment(
        body=data.body,
        commentable_type=model.morph_type,
        commentable_id=target.id,
        owner_id=author.id,
    )
    db.add(comment)
    await db.flush()
    return _comment_to_dict(comment, author)


async def list_comments(
    db: AsyncSession,
    model: type[Publication],
    slug: str,
    viewer: User | None = None,
) -> list[dict] | None:
    """Return the comments of a visible publication, oldest first."""
    target = await publication_service.get_visible(db, model, slug, viewer)
    if target is None:
        return None
    q = (
        select(Comment)
        .where(
            Comment.commentable_type == model.morph_type,
            Comment.commentable_id == target.id,
        )
        .options(joinedload(Comment.owner))
        .order_by(Comment.id)
    )
    comments = (await db.execute(q)).scalars().all()
    return [_comment_to_dict(c, c.owner) for c in comments]
