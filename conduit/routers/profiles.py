from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import get_current_user, get_optional_user
from conduit.models import User
from conduit.schemas import ProfileEnvelope
from conduit.services import profile_service

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


@router.get("/{username}", response_model=ProfileEnvelope)
async def get_profile(
    username: str,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await profile_service.get_profile(db, username, viewer.id if viewer else None)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"profile": profile}


@router.post("/{username}/follow", response_model=ProfileEnvelope)
async def follow(
    username: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await profile_service.follow_user(db, username, current_user)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"profile": profile}


@router.delete("/{username}/follow", response_model=ProfileEnvelope)
async def unfollow(
    username: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await profile_service.unfollow_user(db, username, current_user)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"profile": profile}
