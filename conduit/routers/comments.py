import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import get_current_user, get_optional_user
from conduit.models import Article, User
from conduit.schemas import CommentEnvelope, CommentListResponse, CreateCommentRequest
from conduit.services import article_service, comment_service

router = APIRouter(prefix="/api/articles/{slug}/comments", tags=["comments"])


async def _article_or_404(db: AsyncSession, slug: str) -> Article:
    article = await article_service.get_article_model(db, slug)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


@router.get("", response_model=CommentListResponse)
async def list_comments(
    slug: str,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    article = await _article_or_404(db, slug)
    comments = await comment_service.list_comments(db, article, viewer.id if viewer else None)
    return {"comments": comments}


@router.post("", status_code=201, response_model=CommentEnvelope)
async def add_comment(
    slug: str,
    payload: CreateCommentRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await _article_or_404(db, slug)
    return {"comment": await comment_service.add_comment(db, article, current_user, payload.comment)}


@router.delete("/{comment_id}", status_code=204)
async def delete_comment(
    slug: str,
    comment_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await _article_or_404(db, slug)
    deleted = await comment_service.delete_comment(db, article, comment_id, current_user)
    if not deleted:
        raise HTTPException(status_code=404, detail="Comment not found")
