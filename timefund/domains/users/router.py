from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from timefund.api.deps import get_current_user, require_permission
from timefund.core.config import settings
from timefund.core.logging import get_logger
from timefund.core.permissions import PROJECT_MANAGER, Role, has_permission
from timefund.core.security import hash_password
from timefund.db.session import get_session
from timefund.domains.common import apply_search, apply_sort, forbidden, get_or_404
from timefund.models import Department, DepartmentUser, Project, ProjectUser
from timefund.models.user import User

router = APIRouter(prefix="/users", tags=["users"])
logger = get_logger(__name__)


def _check_email(value: str | None) -> str | None:
    if value is None:
        return value
    email = value.strip()
    if "@" not in email:
        raise ValueError("Invalid email format")
    return email


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    password: str = Field(..., min_length=8, max_length=72)
    full_name: str | None = Field(default=None, max_length=200)
    email: str | None = None
    role: Role = PROJECT_MANAGER

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return _check_email(value)


class UserUpdate(BaseModel):
    full_name: str | None = Field(default=None, max_length=200)
    email: str | None = None
    role: Role | None = None
    language: str | None = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return _check_email(value)

    @field_validator("language")
    @classmethod
    def validate_language(cls, value: str | None) -> str | None:
        if value is not None and value not in settings.supported_languages:
            raise ValueError(f"Unsupported language: {value}")
        return value


class UserOut(BaseModel):
    id: int
    username: str
    full_name: str | None = None
    email: str | None = None
    role: str
    language: str
    created_at: datetime


class UserProjectOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    budget: float
    contract_number: str | None = None
    project_role: str
    workload: float


class UserDepartmentOut(BaseModel):
    id: int
    name: str
    description: str | None = None


class UserDetailOut(UserOut):
    projects: list[UserProjectOut] = []
    departments: list[UserDepartmentOut] = []


def username_taken(db: Session, username: str) -> bool:
    return db.query(User.id).filter(User.username == username).first() is not None


def save_new_user(db: Session, user: User) -> User:
    """Insert ``user``; a unique-constraint race on the username becomes a 409."""
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("user_insert_conflict", username=user.username)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists") from exc
    db.refresh(user)
    return user


def sanitize(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        email=user.email,
        role=user.role,
        language=user.language or settings.default_language,
        created_at=user.created_at or datetime.utcnow(),
    )


@router.get("", response_model=list[UserOut])
def list_users(
    search: str | None = None,
    role: Role | None = None,
    sort: Literal["username", "full_name", "email", "role"] | None = None,
    order: Literal["asc", "desc"] = "asc",
    db: Session = Depends(get_session),
    _: User = Depends(get_current_user),
) -> list[UserOut]:
    query = apply_search(db.query(User), search, User.username, User.full_name, User.email)
    if role:
        query = query.filter(User.role == role)
    if sort:
        query = apply_sort(query, getattr(User, sort), order, User.id.asc())
    else:
        query = query.order_by(User.id.asc())
    return [sanitize(user) for user in query.all()]


@router.post("", response_model=UserOut, status_code=201)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_session),
    current_user: User = Depends(require_permission("create_users")),
) -> UserOut:
    username = payload.username.strip()
    if username_taken(db, username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")

    user = User(
        username=username,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        email=payload.email,
        role=payload.role,
        language=settings.default_language,
    )

    save_new_user(db, user)

    logger.info("user_created", username=username, role=payload.role, created_by=current_user.id)
    return sanitize(user)


@router.get("/{user_id}", response_model=UserDetailOut)
def get_user(
    user_id: int,
    db: Session = Depends(get_session),
    _: User = Depends(get_current_user),
) -> UserDetailOut:
    user = get_or_404(db, User, user_id, "User")

    project_rows = (
        db.query(Project, ProjectUser)
        .join(ProjectUser, ProjectUser.project_id == Project.id)
        .filter(ProjectUser.user_id == user.id)
        .order_by(Project.name.asc())
        .all()
    )
    department_rows = (
        db.query(Department)
        .join(DepartmentUser, DepartmentUser.department_id == Department.id)
        .filter(DepartmentUser.user_id == user.id)
        .order_by(Department.name.asc())
        .all()
    )

    return UserDetailOut(
        **sanitize(user).model_dump(),
        projects=[
            UserProjectOut(
                id=project.id,
                name=project.name,
                description=project.description,
                start_date=project.start_date,
                end_date=project.end_date,
                budget=float(project.budget or 0),
                contract_number=project.contract_number,
                project_role=link.role,
                workload=float(link.workload or 0),
            )
            for project, link in project_rows
        ],
        departments=[
            UserDepartmentOut(id=dept.id, name=dept.name, description=dept.description)
            for dept in department_rows
        ],
    )


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> UserOut:
    if payload.role is not None and not has_permission(current_user.role, "change_roles"):
        raise forbidden("Not authorized to change roles")

    user = get_or_404(db, User, user_id, "User")

    if current_user.id != user.id and not has_permission(current_user.role, "manage_users"):
        raise forbidden("Not authorized to update other users")

    changes = payload.model_dump(exclude_unset=True)
    for field in ("full_name", "email", "language"):
        if field in changes and changes[field] is not None:
            setattr(user, field, changes[field])
    if payload.role is not None:
        user.role = payload.role

    db.commit()
    db.refresh(user)

    logger.info("user_updated", target_user=user.id, fields=sorted(changes))
    return sanitize(user)
