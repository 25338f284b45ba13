import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guptify.core.database import get_db, rollback_and_reload
from guptify.core.errors import AuthenticationError, MetadataWriteError, QueryError, ValidationError
from guptify.core.security import (
    create_session,
    get_password_hash,
    get_token_claims,
    verify_password,
)
from guptify.models.revoked_token import RevokedToken
from guptify.models.user import User
from guptify.schemas.file import MessageResponse
from guptify.schemas.user import AuthResponse, UserCreate, UserResponse, UserSignIn

logger = logging.getLogger("guptify")

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/signup", response_model=AuthResponse)
async def signup(user: UserCreate, db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(select(User).where(User.email == user.email))
    except SQLAlchemyError as e:
        raise QueryError(str(e))
    if result.scalars().first():
        raise ValidationError("Email already registered")

    db_user = User(email=user.email, hashed_password=get_password_hash(user.password))
    db.add(db_user)
    try:
        await db.commit()
    except IntegrityError:
        await rollback_and_reload(db)
        raise ValidationError("Email already registered")
    except SQLAlchemyError as e:
        await rollback_and_reload(db)
        raise MetadataWriteError(str(e))
    await db.refresh(db_user)

    logger.info("User %s signed up", db_user.id)
    return AuthResponse(user=UserResponse.model_validate(db_user), session=create_session(db_user))


@router.post("/signin", response_model=AuthResponse)
async def signin(credentials: UserSignIn, db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(select(User).where(User.email == credentials.email))
    except SQLAlchemyError as e:
        raise QueryError(str(e))
    user = result.scalars().first()

    if not user or not verify_password(credentials.password, user.hashed_password):
        raise AuthenticationError("Invalid login credentials")
    if not user.is_active:
        raise AuthenticationError("Account disabled")

    return AuthResponse(user=UserResponse.model_validate(user), session=create_session(user))


@router.post("/signout", response_model=MessageResponse)
async def signout(claims: dict = Depends(get_token_claims), db: AsyncSession = Depends(get_db)):
    db.add(RevokedToken(jti=claims["jti"], expires_at=datetime.utcfromtimestamp(claims["exp"])))
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await rollback_and_reload(db)
        raise MetadataWriteError(str(e))
    return MessageResponse(message="Signed out successfully")
