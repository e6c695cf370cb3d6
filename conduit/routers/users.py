from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import get_current_user
from conduit.models import User
from conduit.schemas import LoginRequest, RegisterRequest, UpdateUserRequest, UserEnvelope
from conduit.services import user_service

router = APIRouter(prefix="/api", tags=["users"])


@router.post("/users", status_code=201, response_model=UserEnvelope)
async def register(payload: RegisterRequest, db: AsyncSession = Depends(get_db)):
    return {"user": await user_service.register_user(db, payload.user)}


@router.post("/users/login", response_model=UserEnvelope)
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    return {"user": await user_service.login_user(db, payload.user)}


@router.get("/user", response_model=UserEnvelope)
async def get_current(current_user: User = Depends(get_current_user)):
    return {"user": user_service.current_user(current_user)}


@router.put("/user", response_model=UserEnvelope)
async def update_current(
    payload: UpdateUserRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"user": await user_service.update_user(db, current_user, payload.user)}
