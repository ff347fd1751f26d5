from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from timefund.api.deps import get_current_user, require_permission
from timefund.core.logging import get_logger
from timefund.core.permissions import PROJECT_MANAGER, is_employee
from timefund.db.session import get_session, transaction
from timefund.domains.common import (
    apply_search,
    apply_sort,
    ensure_project_visible,
    get_or_404,
)
from timefund.domains.time_entries.allocation import AllocationError, prepare_distribution
from timefund.models import FundingSource, Project, ProjectFunding, ProjectUser, User

router = APIRouter(prefix="/projects", tags=["projects"])
logger = get_logger(__name__)

CREATOR_DEFAULT_WORKLOAD = 40


class MemberIn(BaseModel):
    id: int
    project_role: str = "employee"
    workload: float = Field(default=0, ge=0)


class FundingIn(BaseModel):
    funding_source_id: int
    amount: float = Field(default=0, ge=0)
    percentage: float = Field(default=0, ge=0, le=100)


class ProjectIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    budget: float = Field(default=0, ge=0)
    contract_number: str | None = Field(default=None, max_length=100)
    min_workload: float = Field(default=0, ge=0)
    users: list[MemberIn] | None = None
    funding_sources: list[FundingIn] | None = None


class ProjectMemberOut(BaseModel):
    id: int
    username: str
    full_name: str | None = None
    email: str | None = None
    role: str
    project_role: str
    workload: float


class ProjectOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    budget: float
    contract_number: str | None = None
    min_workload: float
    created_by: int | None = None
    created_at: datetime | None = None
    users: list[ProjectMemberOut] = []


class AssignUserRequest(BaseModel):
    userId: int
    role: str = "employee"
    workload: float = Field(default=0, ge=0)


class UpdateAssignmentRequest(BaseModel):
    role: str = "employee"
    workload: float = Field(default=0, ge=0)


class BatchMemberIn(BaseModel):
    user_id: int
    role: str = "employee"
    workload: float = Field(default=0, ge=0)


class FundingDistributionRequest(BaseModel):
    funding_distributions: list[FundingIn]


class ProjectFundingOut(BaseModel):
    project_id: int
    funding_source_id: int
    name: str
    description: str | None = None
    amount: float
    percentage: float


def _serialize(project: Project) -> ProjectOut:
    return ProjectOut(
        id=project.id,
        name=project.name,
        description=project.description,
        start_date=project.start_date,
        end_date=project.end_date,
        budget=float(project.budget or 0),
        contract_number=project.contract_number,
        min_workload=float(project.min_workload or 0),
        created_by=project.created_by,
        created_at=project.created_at,
        users=[
            ProjectMemberOut(
                id=link.user.id,
                username=link.user.username,
                full_name=link.user.full_name,
                email=link.user.email,
                role=link.user.role,
                project_role=link.role,
                workload=float(link.workload or 0),
            )
            for link in sorted(project.members, key=lambda link: link.user_id)
        ],
    )


def _check_dates(payload: ProjectIn) -> None:
    if payload.start_date and payload.end_date and payload.end_date < payload.start_date:
        raise HTTPException(status_code=400, detail="End date must not be before start date")


def _ensure_users_exist(db: Session, user_ids: list[int]) -> None:
    if not user_ids:
        return
    found = {row.id for row in db.query(User.id).filter(User.id.in_(user_ids))}
    missing = sorted(set(user_ids) - found)
    if missing:
        raise HTTPException(status_code=404, detail=f"User not found: {missing[0]}")


def _replace_members(db: Session, project: Project, members: list[tuple[int, str, float]]) -> None:
    ids = [user_id for user_id, _, _ in members]
    if len(ids) != len(set(ids)):
        raise HTTPException(status_code=400, detail="A user may only be assigned once per project")
    _ensure_users_exist(db, ids)
    project.members.clear()
    db.flush()
    for user_id, role, workload in members:
        project.members.append(ProjectUser(user_id=user_id, role=role or "employee", workload=workload))


def _replace_funding(db: Session, project: Project, items: list[FundingIn]) -> None:
    try:
        shares = prepare_distribution([item.model_dump() for item in items])
    except AllocationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    ids = [share.funding_source_id for share in shares]
    found = {row.id for row in db.query(FundingSource.id).filter(FundingSource.id.in_(ids))}
    missing = sorted(set(ids) - found)
    if missing:
        raise HTTPException(status_code=404, detail=f"Funding source not found: {missing[0]}")

    project.funding.clear()
    db.flush()
    for share in shares:
        project.funding.append(
            ProjectFunding(
                funding_source_id=share.funding_source_id,
                amount=share.amount,
                percentage=share.percentage,
            )
        )


@router.get("", response_model=list[ProjectOut])
def list_projects(
    search: str | None = None,
    sort: Literal["name", "start_date", "end_date", "budget", "created_at"] | None = None,
    order: Literal["asc", "desc"] = "asc",
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[ProjectOut]:
    query = db.query(Project)
    if is_employee(current_user.role):
        query = query.join(ProjectUser, ProjectUser.project_id == Project.id).filter(
            ProjectUser.user_id == current_user.id
        )
    query = apply_search(query, search, Project.name, Project.description)
    if sort:
        query = apply_sort(query, getattr(Project, sort), order, Project.id.asc())
    else:
        query = query.order_by(Project.created_at.desc(), Project.id.desc())
    return [_serialize(project) for project in query.all()]


@router.get("/{project_id}", response_model=ProjectOut)
def get_project(
    project_id: int,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> ProjectOut:
    project = get_or_404(db, Project, project_id, "Project")
    ensure_project_visible(db, project.id, current_user, "You do not have access to this project")
    return _serialize(project)


@router.post("", response_model=ProjectOut, status_code=201)
def create_project(
    payload: ProjectIn,
    db: Session = Depends(get_session),
    current_user: User = Depends(require_permission("manage_projects")),
) -> ProjectOut:
    _check_dates(payload)
    members = [(member.id, member.project_role, member.workload) for member in payload.users or []]
    if not any(user_id == current_user.id for user_id, _, _ in members):
        members.append((current_user.id, PROJECT_MANAGER, CREATOR_DEFAULT_WORKLOAD))

    with transaction(db):
        project = Project(
            name=payload.name.strip(),
            description=payload.description,
            start_date=payload.start_date,
            end_date=payload.end_date,
            budget=payload.budget,
            contract_number=payload.contract_number,
            min_workload=payload.min_workload,
            created_by=current_user.id,
        )
        db.add(project)
        db.flush()
        _replace_members(db, project, members)
        if payload.funding_sources:
            _replace_funding(db, project, payload.funding_sources)

    db.refresh(project)
    logger.info("project_created", project_id=project.id, members=len(members))
    return _serialize(project)


@router.put("/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: int,
    payload: ProjectIn,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_projects")),
) -> ProjectOut:
    _check_dates(payload)
    project = get_or_404(db, Project, project_id, "Project")

    with transaction(db):
        project.name = payload.name.strip()
        project.description = payload.description
        project.start_date = payload.start_date
        project.end_date = payload.end_date
        project.budget = payload.budget
        project.contract_number = payload.contract_number
        project.min_workload = payload.min_workload

        if payload.users is not None:
            _replace_members(
                db,
                project,
                [(member.id, member.project_role, member.workload) for member in payload.users],
            )
        if payload.funding_sources is not None:
            if payload.funding_sources:
                _replace_funding(db, project, payload.funding_sources)
            else:
                project.funding.clear()

    db.refresh(project)
    logger.info("project_updated", project_id=project.id)
    return _serialize(project)


@router.delete("/{project_id}", status_code=204)
def delete_project(
    project_id: int,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_projects")),
) -> Response:
    project = get_or_404(db, Project, project_id, "Project")
    db.delete(project)
    db.commit()
    logger.info("project_deleted", project_id=project_id)
    return Response(status_code=204)


@router.post("/{project_id}/users", response_model=ProjectOut, status_code=201)
def assign_user(
    project_id: int,
    payload: AssignUserRequest,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_project_users")),
) -> ProjectOut:
    project = get_or_404(db, Project, project_id, "Project")
    get_or_404(db, User, payload.userId, "User")

    if db.get(ProjectUser, (project.id, payload.userId)) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already assigned to project")

    project.members.append(ProjectUser(user_id=payload.userId, role=payload.role, workload=payload.workload))
    db.commit()
    db.refresh(project)

    logger.info("project_user_assigned", project_id=project.id, assigned_user=payload.userId)
    return _serialize(project)


@router.put("/{project_id}/users/{user_id}", response_model=ProjectOut)
def update_assignment(
    project_id: int,
    user_id: int,
    payload: UpdateAssignmentRequest,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_project_users")),
) -> ProjectOut:
    link = db.get(ProjectUser, (project_id, user_id))
    if link is None:
        raise HTTPException(status_code=404, detail="User not assigned to project")

    link.role = payload.role
    link.workload = payload.workload
    db.commit()

    project = db.get(Project, project_id)
    db.refresh(project)
    return _serialize(project)


@router.delete("/{project_id}/users/{user_id}", status_code=204)
def remove_assignment(
    project_id: int,
    user_id: int,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_project_users")),
) -> Response:
    link = db.get(ProjectUser, (project_id, user_id))
    if link is None:
        raise HTTPException(status_code=404, detail="User not assigned to project")

    db.delete(link)
    db.commit()
    logger.info("project_user_removed", project_id=project_id, removed_user=user_id)
    return Response(status_code=204)


@router.put("/{project_id}/users", response_model=ProjectOut)
def replace_assignments(
    project_id: int,
    payload: list[BatchMemberIn],
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_project_users")),
) -> ProjectOut:
    project = get_or_404(db, Project, project_id, "Project")

    with transaction(db):
        _replace_members(db, project, [(item.user_id, item.role, item.workload) for item in payload])

    db.refresh(project)
    logger.info("project_users_replaced", project_id=project.id, members=len(payload))
    return _serialize(project)


@router.get("/{project_id}/funding", response_model=list[ProjectFundingOut])
def get_project_funding(
    project_id: int,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[ProjectFundingOut]:
    project = get_or_404(db, Project, project_id, "Project")
    ensure_project_visible(db, project.id, current_user, "You do not have access to this project")
    return _funding_rows(db, project.id)


@router.post("/{project_id}/funding", response_model=list[ProjectFundingOut], status_code=201)
def set_project_funding(
    project_id: int,
    payload: FundingDistributionRequest,
    db: Session = Depends(get_session),
    _: User = Depends(require_permission("manage_project_funding")),
) -> list[ProjectFundingOut]:
    if not payload.funding_distributions:
        raise HTTPException(status_code=400, detail="Funding distributions are required")

    project = get_or_404(db, Project, project_id, "Project")
    with transaction(db):
        _replace_funding(db, project, payload.funding_distributions)

    logger.info(
        "project_funding_replaced",
        project_id=project.id,
        sources=[item.funding_source_id for item in payload.funding_distributions],
    )
    return _funding_rows(db, project.id)


def _funding_rows(db: Session, project_id: int) -> list[ProjectFundingOut]:
    rows = (
        db.query(ProjectFunding, FundingSource)
        .join(FundingSource, FundingSource.id == ProjectFunding.funding_source_id)
        .filter(ProjectFunding.project_id == project_id)
        .order_by(FundingSource.name.asc())
        .all()
    )
    return [
        ProjectFundingOut(
            project_id=link.project_id,
            funding_source_id=source.id,
            name=source.name,
            description=source.description,
            amount=float(link.amount or 0),
            percentage=float(link.percentage or 0),
        )
        for link, source in rows
    ]
