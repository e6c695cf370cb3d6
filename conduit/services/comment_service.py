"""
Comment service: comments on an article, listed oldest first.

Only the comment's author may delete it.  Comments never touch the
listing cache: they are not part of any article payload.
"""
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from conduit.exceptions import PermissionDeniedError
from conduit.models import Article, Comment, User
from conduit.schemas import CommentCreate
from conduit.services.profile_service import is_followed_by, profile_to_dict

logger = logging.getLogger(__name__)


def _comment_to_dict(comment: Comment, following: bool) -> dict:
    return {
        "id": str(comment.id),
        "body": comment.body,
        "createdAt": comment.created_at.isoformat(),
        "updatedAt": comment.updated_at.isoformat(),
        "author": profile_to_dict(comment.author, following),
    }


def _comment_rows(viewer_id: uuid.UUID | None):
    return select(
        Comment,
        is_followed_by(Comment.author_id, viewer_id).label("following"),
    ).options(joinedload(Comment.author))


async def list_comments(db: AsyncSession, article: Article, viewer_id: uuid.UUID | None) -> list[dict]:
    q = (
        _comment_rows(viewer_id)
        .where(Comment.article_id == article.id)
        .order_by(Comment.created_at.asc())
    )
    rows = (await db.execute(q)).all()
    return [_comment_to_dict(row.Comment, row.following) for row in rows]


async def add_comment(db: AsyncSession, article: Article, author: User, data: CommentCreate) -> dict:
    """
    Append a comment by *author* to *article*.

    The author never follows themselves, so ``following`` is false in the
    returned payload.
    """
    comment = Comment(body=data.body, article_id=article.id, author_id=author.id)
    comment.author = author
    db.add(comment)
    await db.flush()
    logger.info("Comment %s added to %s by %s", comment.id, article.slug, author.username)
    return _comment_to_dict(comment, False)


async def delete_comment(db: AsyncSession, article: Article, comment_id: uuid.UUID, user: User) -> bool:
    """
    Delete *comment_id* from *article*.

    Returns False when no such comment exists on that article; raises
    ``PermissionDeniedError`` when *user* did not write it.
    """
    result = await db.execute(
        select(Comment).where(Comment.id == comment_id, Comment.article_id == article.id)
    )
    comment = result.scalar_one_or_none()
    if comment is None:
        return False
    if comment.author_id != user.id:
        raise PermissionDeniedError(context={"comment_id": str(comment_id), "user": user.username})

    await db.delete(comment)
    await db.flush()
    return True
