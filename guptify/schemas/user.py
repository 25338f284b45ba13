from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, constr


class UserCreate(BaseModel):
    email: EmailStr
    password: constr(min_length=6)


class UserSignIn(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: EmailStr
    created_at: datetime
    is_active: bool


class Session(BaseModel):
    access_token: str
    token_type: str
    expires_in: int
    expires_at: datetime


class AuthResponse(BaseModel):
    user: UserResponse
    session: Session
