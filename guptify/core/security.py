import uuid
from datetime import datetime, timedelta

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from guptify.core.config import settings
from guptify.core.database import get_db
from guptify.core.errors import AuthenticationError, QueryError
from guptify.models.revoked_token import RevokedToken
from guptify.models.user import User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_session(user: User) -> dict:
    """Issue a bearer token for ``user`` in the shape returned by signup/signin."""
    expires_in = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    token = create_access_token(data={"sub": user.email}, expires_delta=timedelta(seconds=expires_in))
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_in": expires_in,
        "expires_at": datetime.utcnow() + timedelta(seconds=expires_in),
    }


async def get_token_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> dict:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")

    try:
        claims = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid token")
    if not claims.get("sub") or not claims.get("jti"):
        raise AuthenticationError("Invalid token")

    try:
        revoked = await db.get(RevokedToken, claims["jti"])
    except SQLAlchemyError as e:
        raise QueryError(str(e))
    if revoked is not None:
        raise AuthenticationError("Invalid token")
    return claims


async def get_current_user(
    claims: dict = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
) -> User:
    try:
        result = await db.execute(select(User).where(User.email == claims["sub"]))
    except SQLAlchemyError as e:
        raise QueryError(str(e))
    user = result.scalars().first()
    if user is None or not user.is_active:
        raise AuthenticationError("Invalid token")
    return user
