from __future__ import annotations

import calendar
import datetime as dt
import re
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, selectinload

from timefund.api.deps import get_current_user
from timefund.core.logging import get_logger
from timefund.core.permissions import is_employee
from timefund.db.session import get_session
from timefund.domains.common import (
    can_view_all_entries,
    ensure_project_visible,
    forbidden,
    get_or_404,
)
from timefund.models import EntryType, FundingSource, Project, TimeEntry, TimeEntryFunding, User

from .allocation import AllocationError
from .service import NotAssignedError, create_entry, update_entry

router = APIRouter(prefix="/time-entries", tags=["time-entries"])
logger = get_logger(__name__)
MONTH_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


class DistributionIn(BaseModel):
    funding_source_id: int
    percentage: float = Field(..., ge=0, le=100)


class TimeEntryCreate(BaseModel):
    user_id: int
    project_id: int
    date: dt.date
    hours: Decimal = Field(..., gt=0, le=24, decimal_places=2)
    description: str | None = None
    entry_type: EntryType = "work"
    funding_distribution: list[DistributionIn] | None = None


class TimeEntryUpdate(BaseModel):
    date: dt.date | None = None
    hours: Decimal | None = Field(default=None, gt=0, le=24, decimal_places=2)
    description: str | None = None
    entry_type: EntryType | None = None
    funding_distribution: list[DistributionIn] | None = None


class FundingShareOut(BaseModel):
    funding_source_id: int
    name: str | None = None
    percentage: float
    hours: float


class TimeEntryOut(BaseModel):
    id: int
    user_id: int
    user_name: str | None = None
    project_id: int
    project_name: str | None = None
    date: dt.date
    hours: float
    description: str | None = None
    entry_type: str
    funding_sources: list[str] = []
    funding_distribution: list[FundingShareOut] = []
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class FundedEntryOut(BaseModel):
    id: int
    user_id: int
    user_name: str | None = None
    username: str
    project_id: int
    project_name: str
    date: dt.date
    hours: float
    description: str | None = None
    entry_type: str
    funding_source_id: int
    funding_source_name: str
    percentage: float
    funding_hours: float


def _serialize(entry: TimeEntry) -> TimeEntryOut:
    shares = [
        FundingShareOut(
            funding_source_id=row.funding_source_id,
            name=row.funding_source.name if row.funding_source else None,
            percentage=float(row.percentage),
            hours=float(row.hours),
        )
        for row in entry.funding
    ]
    return TimeEntryOut(
        id=entry.id,
        user_id=entry.user_id,
        user_name=(entry.user.full_name or entry.user.username) if entry.user else None,
        project_id=entry.project_id,
        project_name=entry.project.name if entry.project else None,
        date=entry.date,
        hours=float(entry.hours),
        description=entry.description,
        entry_type=entry.entry_type,
        funding_sources=sorted({share.name for share in shares if share.name}),
        funding_distribution=shares,
        created_at=entry.created_at,
        updated_at=entry.updated_at,
    )


def _entry_query(db: Session):
    return db.query(TimeEntry).options(
        selectinload(TimeEntry.funding).selectinload(TimeEntryFunding.funding_source),
        selectinload(TimeEntry.user),
        selectinload(TimeEntry.project),
    )


def _ensure_owner_or_manager(entry_user_id: int, current_user: User, action: str) -> None:
    if current_user.id != entry_user_id and not can_view_all_entries(current_user):
        raise forbidden(f"Not authorized to {action}")


def _month_bounds(month: str) -> tuple[dt.date, dt.date]:
    match = MONTH_PATTERN.match(month)
    if not match:
        raise HTTPException(status_code=400, detail="Month must use the YYYY-MM format")
    year, month_number = int(match.group(1)), int(match.group(2))
    last_day = calendar.monthrange(year, month_number)[1]
    return dt.date(year, month_number, 1), dt.date(year, month_number, last_day)


@router.get("/user/{user_id}", response_model=list[TimeEntryOut])
def list_user_entries(
    user_id: int,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[TimeEntryOut]:
    _ensure_owner_or_manager(user_id, current_user, "view this user's time entries")
    rows = (
        _entry_query(db)
        .filter(TimeEntry.user_id == user_id)
        .order_by(TimeEntry.date.desc(), TimeEntry.id.desc())
        .all()
    )
    return [_serialize(row) for row in rows]


@router.get("/project/{project_id}", response_model=list[TimeEntryOut])
def list_project_entries(
    project_id: int,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[TimeEntryOut]:
    ensure_project_visible(db, project_id, current_user, "Not authorized to view this project's time entries")
    rows = (
        _entry_query(db)
        .join(User, User.id == TimeEntry.user_id)
        .filter(TimeEntry.project_id == project_id)
        .order_by(TimeEntry.date.desc(), User.full_name.asc(), TimeEntry.id.desc())
        .all()
    )
    return [_serialize(row) for row in rows]


@router.get("/funding-source/{source_id}", response_model=list[FundedEntryOut])
def list_funding_source_entries(
    source_id: int,
    month: str | None = Query(default=None, description="Restrict to a month, YYYY-MM"),
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[FundedEntryOut]:
    query = (
        db.query(TimeEntryFunding, TimeEntry, User, Project, FundingSource)
        .join(TimeEntry, TimeEntry.id == TimeEntryFunding.time_entry_id)
        .join(User, User.id == TimeEntry.user_id)
        .join(Project, Project.id == TimeEntry.project_id)
        .join(FundingSource, FundingSource.id == TimeEntryFunding.funding_source_id)
        .filter(TimeEntryFunding.funding_source_id == source_id)
    )
    if month:
        start, end = _month_bounds(month)
        query = query.filter(TimeEntry.date >= start, TimeEntry.date <= end)
    if is_employee(current_user.role):
        query = query.filter(TimeEntry.user_id == current_user.id)

    rows = query.order_by(TimeEntry.date.desc(), Project.name.asc(), User.full_name.asc()).all()
    return [
        FundedEntryOut(
            id=entry.id,
            user_id=user.id,
            user_name=user.full_name,
            username=user.username,
            project_id=project.id,
            project_name=project.name,
            date=entry.date,
            hours=float(entry.hours),
            description=entry.description,
            entry_type=entry.entry_type,
            funding_source_id=source.id,
            funding_source_name=source.name,
            percentage=float(share.percentage),
            funding_hours=float(share.hours),
        )
        for share, entry, user, project, source in rows
    ]


@router.post("", response_model=TimeEntryOut, status_code=201)
def create_time_entry(
    payload: TimeEntryCreate,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> TimeEntryOut:
    if is_employee(current_user.role) and current_user.id != payload.user_id:
        raise forbidden("Not authorized to create time entries for other users")

    get_or_404(db, User, payload.user_id, "User")
    get_or_404(db, Project, payload.project_id, "Project")

    try:
        entry = create_entry(
            db,
            user_id=payload.user_id,
            project_id=payload.project_id,
            entry_date=payload.date,
            hours=payload.hours,
            description=payload.description,
            entry_type=payload.entry_type,
            distribution=[item.model_dump() for item in payload.funding_distribution or []],
        )
    except (NotAssignedError, AllocationError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return _serialize(entry)


@router.get("/{entry_id}", response_model=TimeEntryOut)
def get_time_entry(
    entry_id: int,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> TimeEntryOut:
    entry = get_or_404(db, TimeEntry, entry_id, "Time entry")
    _ensure_owner_or_manager(entry.user_id, current_user, "access this time entry")
    return _serialize(entry)


@router.put("/{entry_id}", response_model=TimeEntryOut)
def update_time_entry(
    entry_id: int,
    payload: TimeEntryUpdate,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> TimeEntryOut:
    entry = get_or_404(db, TimeEntry, entry_id, "Time entry")
    _ensure_owner_or_manager(entry.user_id, current_user, "update this time entry")

    try:
        entry = update_entry(
            db,
            entry,
            hours=payload.hours,
            entry_date=payload.date,
            description=payload.description,
            entry_type=payload.entry_type,
            distribution=[item.model_dump() for item in payload.funding_distribution or []],
        )
    except AllocationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return _serialize(entry)


@router.delete("/{entry_id}", status_code=204)
def delete_time_entry(
    entry_id: int,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Response:
    entry = get_or_404(db, TimeEntry, entry_id, "Time entry")
    _ensure_owner_or_manager(entry.user_id, current_user, "delete this time entry")

    db.delete(entry)
    db.commit()
    logger.info("time_entry_deleted", time_entry_id=entry_id)
    return Response(status_code=204)
