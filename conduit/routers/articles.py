from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import PaginationParams, get_current_user, get_optional_user
from conduit.models import User
from conduit.schemas import (
    ArticleEnvelope,
    ArticleListResponse,
    CreateArticleRequest,
    UpdateArticleRequest,
)
from conduit.services import article_service

router = APIRouter(prefix="/api/articles", tags=["articles"])


@router.get("", response_model=ArticleListResponse)
async def list_articles(
    tag: Optional[str] = None,
    author: Optional[str] = None,
    favorited: Optional[str] = None,
    pagination: PaginationParams = Depends(),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.list_articles(
        db,
        viewer_id=viewer.id if viewer else None,
        tag=tag,
        author=author,
        favorited=favorited,
        limit=pagination.limit,
        offset=pagination.offset,
    )


@router.get("/feed", response_model=ArticleListResponse)
async def feed_articles(
    pagination: PaginationParams = Depends(),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.feed_articles(
        db, current_user.id, limit=pagination.limit, offset=pagination.offset
    )


@router.get("/{slug}", response_model=ArticleEnvelope)
async def get_article(
    slug: str,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.get_article(db, slug, viewer.id if viewer else None)
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"article": article}


@router.post("", status_code=201, response_model=ArticleEnvelope)
async def create_article(
    payload: CreateArticleRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.create_article(db, current_user, payload.article)}


@router.put("/{slug}", response_model=ArticleEnvelope)
async def update_article(
    slug: str,
    payload: UpdateArticleRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.update_article(db, slug, current_user, payload.article)
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"article": article}


@router.delete("/{slug}", status_code=204)
async def delete_article(
    slug: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    deleted = await article_service.delete_article(db, slug, current_user)
    if not deleted:
        raise HTTPException(status_code=404, detail="Article not found")


@router.post("/{slug}/favorite", response_model=ArticleEnvelope)
async def favorite_article(
    slug: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.favorite_article(db, slug, current_user)
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"article": article}


@router.delete("/{slug}/favorite", response_model=ArticleEnvelope)
async def unfavorite_article(
    slug: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.unfavorite_article(db, slug, current_user)
    if not article:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"article": article}
