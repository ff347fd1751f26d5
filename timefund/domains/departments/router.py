from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from timefund.api.deps import get_current_user, require_permission
from timefund.core.logging import get_logger
from timefund.db.session import get_session, transaction
from timefund.domains.common import apply_search, apply_sort, get_or_404
from timefund.models import Department, DepartmentUser, User

router = APIRouter(prefix="/departments", tags=["departments"])
logger = get_logger(__name__)


class DepartmentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    users: list[int] | None = None


class DepartmentMemberOut(BaseModel):
    id: int
    username: str
    full_name: str | None = None
    email: str | None = None
    role: str


class DepartmentOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    created_at: datetime | None = None
    users: list[DepartmentMemberOut] = []


def _serialize(department: Department) -> DepartmentOut:
    return DepartmentOut(
        id=department.id,
        name=department.name,
        description=department.description,
        created_at=department.created_at,
        users=[
            DepartmentMemberOut(
                id=link.user.id,
                username=link.user.username,
                full_name=link.user.full_name,
                email=link.user.email,
                role=link.user.role,
            )
            for link in sorted(department.members, key=lambda link: link.user_id)
        ],
    )


def _replace_members(db: Session, department: Department, user_ids: list[int]) -> None:
    unique_ids = list(dict.fromkeys(user_ids))
    if unique_ids:
        found = {row.id for row in db.query(User.id).filter(User.id.in_(unique_ids))}
        missing = [user_id for user_id in unique_ids if user_id not in found]
        if missing:
            raise HTTPException(status_code=404, detail=f"User not found: {missing[0]}")
    department.members.clear()
    db.flush()
    for user_id in unique_ids:
        department.members.append(DepartmentUser(user_id=user_id))


@router.get("", response_model=list[DepartmentOut])
def list_departments(
    search: str | None = None,
    sort: Literal["name", "description"] | None = None,
    order: Literal["asc", "desc"] = "asc",
    db: Session = Depends(get_session),
    _: User = Depends(get_current_user),
) -> list[DepartmentOut]:
    query = apply_search(db.query(Department), search, Department.name, Department.description)
    if sort:
        query = apply_sort(query, getattr(Department, sort), order, Department.id.asc())
    else:
        query = query.order_by(Department.id.asc())
    return [_serialize(department) for department in query.all()]


@router.post("", response_model=DepartmentOut, status_code=201)
def create_department(
    payload: DepartmentIn,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_departments")),
) -> DepartmentOut:
    with transaction(db):
        department = Department(name=payload.name.strip(), description=payload.description)
        db.add(department)
        db.flush()
        if payload.users:
            _replace_members(db, department, payload.users)

    db.refresh(department)
    logger.info("department_created", department_id=department.id)
    return _serialize(department)


@router.get("/{department_id}", response_model=DepartmentOut)
def get_department(
    department_id: int,
    db: Session = Depends(get_session),
    _: User = Depends(get_current_user),
) -> DepartmentOut:
    return _serialize(get_or_404(db, Department, department_id, "Department"))


@router.put("/{department_id}", response_model=DepartmentOut)
def update_department(
    department_id: int,
    payload: DepartmentIn,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_departments")),
) -> DepartmentOut:
    department = get_or_404(db, Department, department_id, "Department")

    with transaction(db):
        department.name = payload.name.strip()
        department.description = payload.description
        if payload.users is not None:
            _replace_members(db, department, payload.users)

    db.refresh(department)
    return _serialize(department)


@router.delete("/{department_id}", status_code=204)
def delete_department(
    department_id: int,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("delete_departments")),
) -> Response:
    department = get_or_404(db, Department, department_id, "Department")
    db.delete(department)
    db.commit()
    logger.info("department_deleted", department_id=department_id)
    return Response(status_code=204)
