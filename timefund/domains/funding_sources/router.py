from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from timefund.api.deps import get_current_user, require_permission
from timefund.core.logging import get_logger
from timefund.db.session import get_session
from timefund.domains.common import get_or_404
from timefund.models import FundingSource, Project, ProjectFunding, TimeEntryFunding, User

router = APIRouter(prefix="/funding-sources", tags=["funding-sources"])
logger = get_logger(__name__)


class FundingSourceIn(BaseModel):
    name: str | None = Field(default=None, max_length=100)
    description: str | None = None


class FundingSourceOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    created_at: datetime | None = None


class FundedProjectOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    amount: float
    percentage: float


def _require_name(payload: FundingSourceIn) -> str:
    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    return name


def _serialize(source: FundingSource) -> FundingSourceOut:
    return FundingSourceOut(
        id=source.id,
        name=source.name,
        description=source.description,
        created_at=source.created_at,
    )


@router.get("", response_model=list[FundingSourceOut])
def list_funding_sources(
    db: Session = Depends(get_session),
    _: User = Depends(get_current_user),
) -> list[FundingSourceOut]:
    rows = db.query(FundingSource).order_by(FundingSource.name.asc(), FundingSource.id.asc()).all()
    return [_serialize(row) for row in rows]


@router.post("", response_model=FundingSourceOut, status_code=201)
def create_funding_source(
    payload: FundingSourceIn,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_funding_sources")),
) -> FundingSourceOut:
    source = FundingSource(name=_require_name(payload), description=payload.description)
    db.add(source)
    db.commit()
    db.refresh(source)

    logger.info("funding_source_created", funding_source_id=source.id)
    return _serialize(source)


@router.get("/{source_id}", response_model=FundingSourceOut)
def get_funding_source(
    source_id: int,
    db: Session = Depends(get_session),
    _: User = Depends(get_current_user),
) -> FundingSourceOut:
    return _serialize(get_or_404(db, FundingSource, source_id, "Funding source"))


@router.put("/{source_id}", response_model=FundingSourceOut)
def update_funding_source(
    source_id: int,
    payload: FundingSourceIn,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_funding_sources")),
) -> FundingSourceOut:
    name = _require_name(payload)
    source = get_or_404(db, FundingSource, source_id, "Funding source")
    source.name = name
    source.description = payload.description
    db.commit()
    db.refresh(source)
    return _serialize(source)


@router.delete("/{source_id}", status_code=204)
def delete_funding_source(
    source_id: int,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_funding_sources")),
) -> Response:
    project_uses = (
        db.query(func.count())
        .select_from(ProjectFunding)
        .filter(ProjectFunding.funding_source_id == source_id)
        .scalar()
    )
    if project_uses:
        logger.info("funding_source_delete_rejected", funding_source_id=source_id, projects=project_uses)
        raise HTTPException(
            status_code=400,
            detail="Cannot delete funding source because it is in use by one or more projects",
        )

    entry_uses = (
        db.query(func.count())
        .select_from(TimeEntryFunding)
        .filter(TimeEntryFunding.funding_source_id == source_id)
        .scalar()
    )
    if entry_uses:
        logger.info("funding_source_delete_rejected", funding_source_id=source_id, time_entries=entry_uses)
        raise HTTPException(
            status_code=400,
            detail="Cannot delete funding source because time entries are charged to it",
        )

    source = get_or_404(db, FundingSource, source_id, "Funding source")
    db.delete(source)
    db.commit()
    logger.info("funding_source_deleted", funding_source_id=source_id)
    return Response(status_code=204)


@router.get("/{source_id}/projects", response_model=list[FundedProjectOut])
def list_funded_projects(
    source_id: int,
    db: Session = Depends(get_session),
    _: User = Depends(get_current_user),
) -> list[FundedProjectOut]:
    rows = (
        db.query(Project, ProjectFunding)
        .join(ProjectFunding, ProjectFunding.project_id == Project.id)
        .filter(ProjectFunding.funding_source_id == source_id)
        .order_by(Project.name.asc())
        .all()
    )
    return [
        FundedProjectOut(
            id=project.id,
            name=project.name,
            description=project.description,
            amount=float(link.amount or 0),
            percentage=float(link.percentage or 0),
        )
        for project, link in rows
    ]
