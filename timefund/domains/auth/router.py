from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from timefund.api.deps import get_current_user
from timefund.core.config import settings
from timefund.core.logging import get_logger
from timefund.core.permissions import EMPLOYEE, SELF_REGISTER_ROLES
from timefund.core.security import create_access_token, hash_password, verify_password
from timefund.db.session import get_session
from timefund.domains.users.router import UserOut, sanitize, save_new_user, username_taken
from timefund.models.user import User

router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_logger(__name__)


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        return value.strip()


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=8, max_length=72)
    full_name: str | None = Field(default=None, max_length=200)
    email: str | None = None
    role: str | None = None

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        username = value.strip()
        if not username:
            raise ValueError("Username is required")
        return username

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        if value is None:
            return value
        email = value.strip()
        if "@" not in email:
            raise ValueError("Invalid email format")
        return email


@router.post("/register", response_model=UserOut, status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_session)) -> UserOut:
    if username_taken(db, payload.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")

    role = payload.role if payload.role in SELF_REGISTER_ROLES else EMPLOYEE
    user = User(
        username=payload.username,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        email=payload.email,
        role=role,
        language=settings.default_language,
    )
    save_new_user(db, user)

    logger.info("user_registered", username=user.username, role=role, requested_role=payload.role)
    return sanitize(user)


@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_session)) -> LoginResponse:
    logger.info("login_attempt", username=payload.username)
    user = db.query(User).filter(User.username == payload.username).one_or_none()

    if not verify_password(payload.password, user.password_hash if user else None):
        logger.info("login_failed", username=payload.username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(user.id, user.username, user.role)
    logger.info("login_success", username=user.username, role=user.role)

    return LoginResponse(access_token=token, user=sanitize(user))


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)) -> UserOut:
    return sanitize(current_user)
