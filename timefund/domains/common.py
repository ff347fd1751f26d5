from __future__ import annotations

from typing import Any, Type, TypeVar

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from timefund.core.permissions import has_permission, is_employee
from timefund.models import ProjectUser, User

ModelT = TypeVar("ModelT")


def get_or_404(db: Session, model: Type[ModelT], ident: Any, label: str) -> ModelT:
    row = db.get(model, ident)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return row


def forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def is_project_member(db: Session, project_id: int, user_id: int) -> bool:
    return db.get(ProjectUser, (project_id, user_id)) is not None


def ensure_project_visible(db: Session, project_id: int, user: User, detail: str) -> None:
    """Employees may only look at projects they are assigned to."""
    if is_employee(user.role) and not is_project_member(db, project_id, user.id):
        raise forbidden(detail)


def can_view_all_entries(user: User) -> bool:
    return has_permission(user.role, "view_all_time_entries")


def apply_search(query: Query, search: str | None, *columns) -> Query:
    if not search:
        return query
    pattern = f"%{search.strip()}%"
    return query.filter(or_(*(column.ilike(pattern) for column in columns)))


def apply_sort(query: Query, column, order: str, *tiebreakers) -> Query:
    ordering = column.desc() if order == "desc" else column.asc()
    return query.order_by(ordering, *tiebreakers)
