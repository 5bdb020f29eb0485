from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.auth.dependencies import get_current_user
from backend.core.errors import BookingError, to_http_exception
from backend.database import get_db
from backend.models.user import User
from backend.routes.common import database_unavailable, ensure_database_ready
from backend.services import users

router = APIRouter(tags=['auth'])


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3)
    password: str = Field(min_length=6)
    name: str = Field(min_length=1)
    email: EmailStr
    mobile: str | None = None
    address: str | None = None

    @field_validator('username')
    @classmethod
    def normalize_username(cls, value: str) -> str:
        return value.strip()

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('mobile', 'address')
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class LoginRequest(BaseModel):
    username: str = Field(min_length=3)
    password: str = Field(min_length=6)


class UpdateProfileRequest(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    mobile: str | None = None
    address: str | None = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower()

    @field_validator('mobile', 'address')
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


class UserResponse(BaseModel):
    id: int
    username: str
    name: str
    email: str
    mobile: str | None = None
    address: str | None = None
    is_admin: bool
    blocked_until: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = 'bearer'
    user: UserResponse


def _token_for(user: User) -> TokenResponse:
    token = jwt_handler.create_access_token(user.username, is_admin=user.is_admin)
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@router.post('/register', response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        user = users.create_user(
            db,
            username=data.username,
            password=data.password,
            name=data.name,
            email=data.email,
            mobile=data.mobile,
            address=data.address,
        )
        return _token_for(user)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.post('/login', response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        user = users.authenticate(db, data.username.strip(), data.password)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Invalid username or password.',
        )
    return _token_for(user)


@router.get('/me', response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch('/me', response_model=UserResponse)
def update_me(
    data: UpdateProfileRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return users.update_user(db, current_user, data.model_dump(exclude_unset=True))
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.patch('/me/password')
def change_my_password(
    data: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        users.change_password(db, current_user, data.current_password, data.new_password)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
    return {'message': 'Password updated successfully.'}


@router.delete('/me')
def delete_me(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        users.delete_user(db, current_user)
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
    return {'message': 'User account deleted successfully.'}
