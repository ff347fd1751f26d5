from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session, selectinload

from timefund.api.deps import get_current_user
from timefund.core.logging import get_logger
from timefund.core.permissions import has_permission, is_employee
from timefund.db.session import get_session
from timefund.domains.common import forbidden, get_or_404, is_project_member
from timefund.models import FundingSource, Project, ProjectFunding, ProjectUser, TimeEntry, TimeEntryFunding, User

from .renderers import PDF_MEDIA_TYPE, XLSX_MEDIA_TYPE, render_pdf, render_xlsx
from .reports import ReportPeriod, accounting_report, accounting_rows, supervisory_report, supervisory_rows

router = APIRouter(prefix="/exports", tags=["exports"])
logger = get_logger(__name__)

ReportFormat = Literal["json", "pdf", "xlsx"]


def _require_exporter(user: User) -> None:
    if not has_permission(user.role, "export_reports"):
        raise forbidden("Not authorized for this operation")


def _load_project(db: Session, project_id: int | None) -> Project:
    if project_id is None:
        raise HTTPException(status_code=400, detail="Project ID is required")
    return get_or_404(db, Project, project_id, "Project")


def _period(start_date: date | None, end_date: date | None) -> ReportPeriod:
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=400, detail="End date must not be before start date")
    return ReportPeriod(start_date=start_date, end_date=end_date)


def _apply_period(query, period: ReportPeriod):
    if period.start_date:
        query = query.filter(TimeEntry.date >= period.start_date)
    if period.end_date:
        query = query.filter(TimeEntry.date <= period.end_date)
    return query


def _project_summary(project: Project) -> dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "contract_number": project.contract_number,
        "start_date": project.start_date.isoformat() if project.start_date else None,
        "end_date": project.end_date.isoformat() if project.end_date else None,
        "budget": float(project.budget or 0),
    }


def _attachment(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _distribution_label(entry: TimeEntry) -> str:
    return ", ".join(
        f"{row.funding_source.name}: {float(row.percentage):g}%"
        for row in entry.funding
        if row.funding_source is not None
    )


def _project_entry_rows(
    db: Session, project: Project, period: ReportPeriod, funding_source_id: int | None
) -> list[dict[str, Any]]:
    query = (
        db.query(TimeEntry)
        .options(
            selectinload(TimeEntry.funding).selectinload(TimeEntryFunding.funding_source),
            selectinload(TimeEntry.user),
        )
        .filter(TimeEntry.project_id == project.id)
    )
    query = _apply_period(query, period)
    entries = query.order_by(TimeEntry.date.asc(), TimeEntry.id.asc()).all()

    rows = []
    for entry in entries:
        hours = float(entry.hours)
        if funding_source_id is not None:
            share = next((row for row in entry.funding if row.funding_source_id == funding_source_id), None)
            if share is None:
                continue
            hours = float(share.hours)
        rows.append(
            {
                "Date": entry.date.isoformat(),
                "Employee": entry.user.full_name or entry.user.username,
                "Type": entry.entry_type,
                "Hours": round(hours, 2),
                "Funding": _distribution_label(entry),
                "Description": entry.description or "",
            }
        )
    return rows


def _project_export(
    db: Session,
    project_id: int | None,
    start_date: date | None,
    end_date: date | None,
    funding_source_id: int | None,
    current_user: User,
) -> tuple[Project, list[tuple[str, Any]], list[dict[str, Any]]]:
    _require_exporter(current_user)
    project = _load_project(db, project_id)
    period = _period(start_date, end_date)
    if funding_source_id is not None:
        get_or_404(db, FundingSource, funding_source_id, "Funding source")

    rows = _project_entry_rows(db, project, period, funding_source_id)
    summary = [
        ("Project", project.name),
        ("Project ID", project.id),
        ("Contract number", project.contract_number or "N/A"),
        ("Start date", project.start_date or "Not set"),
        ("End date", project.end_date or "Not set"),
        ("Budget", f"{float(project.budget or 0):.2f} hours"),
        ("Date range", period.label()),
        ("Total hours", f"{sum(row['Hours'] for row in rows):.2f}"),
        ("Generated on", datetime.utcnow().strftime("%Y-%m-%d %H:%M UTC")),
    ]
    return project, summary, rows


@router.get("/pdf")
def export_pdf(
    project_id: int | None = Query(default=None, alias="projectId"),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    funding_source_id: int | None = Query(default=None, alias="fundingSourceId"),
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Response:
    project, summary, rows = _project_export(db, project_id, start_date, end_date, funding_source_id, current_user)
    content = render_pdf("Project Report", summary, rows)
    logger.info("export_generated", kind="pdf", project_id=project.id, rows=len(rows))
    return _attachment(content, PDF_MEDIA_TYPE, f"project-{project.id}-export.pdf")


@router.get("/xlsx")
def export_xlsx(
    project_id: int | None = Query(default=None, alias="projectId"),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    funding_source_id: int | None = Query(default=None, alias="fundingSourceId"),
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> Response:
    project, summary, rows = _project_export(db, project_id, start_date, end_date, funding_source_id, current_user)
    content = render_xlsx("Project Report", summary, rows)
    logger.info("export_generated", kind="xlsx", project_id=project.id, rows=len(rows))
    return _attachment(content, XLSX_MEDIA_TYPE, f"project-{project.id}-export.xlsx")


@router.get("/accounting")
def export_accounting(
    project_id: int | None = Query(default=None, alias="projectId"),
    funding_source_id: int | None = Query(default=None, alias="fundingSourceId"),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    format: ReportFormat = "json",
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    _require_exporter(current_user)
    if project_id is None or funding_source_id is None:
        raise HTTPException(status_code=400, detail="Project ID and Funding Source ID are required")

    project = _load_project(db, project_id)
    source = get_or_404(db, FundingSource, funding_source_id, "Funding source")
    link = db.get(ProjectFunding, (project.id, source.id))
    if link is None:
        raise HTTPException(status_code=404, detail="This funding source is not associated with the project")

    period = _period(start_date, end_date)
    query = (
        db.query(TimeEntry, TimeEntryFunding, User)
        .join(TimeEntryFunding, TimeEntryFunding.time_entry_id == TimeEntry.id)
        .join(User, User.id == TimeEntry.user_id)
        .filter(TimeEntry.project_id == project.id, TimeEntryFunding.funding_source_id == source.id)
    )
    rows = _apply_period(query, period).all()

    report = accounting_report(
        project={"id": project.id, "name": project.name, "contract_number": project.contract_number},
        funding_source={
            "id": source.id,
            "name": source.name,
            "allocation": float(link.amount or 0),
            "percentage": float(link.percentage or 0),
        },
        period=period,
        entries=[
            {
                "id": entry.id,
                "date": entry.date,
                "hours": entry.hours,
                "description": entry.description,
                "entry_type": entry.entry_type,
                "user_id": user.id,
                "user_name": user.full_name or user.username,
                "percentage": share.percentage,
                "funded_hours": share.hours,
            }
            for entry, share, user in rows
        ],
    )
    logger.info("export_generated", kind="accounting", format=format, project_id=project.id, entries=len(rows))

    if format == "json":
        return report

    summary = [
        ("Project", project.name),
        ("Contract number", project.contract_number or "N/A"),
        ("Funding source", source.name),
        ("Allocation", f"{float(link.amount or 0):.2f}"),
        ("Share", f"{float(link.percentage or 0):g}%"),
        ("Date range", period.label()),
        ("Total funded hours", f"{report['grand_total']:.2f}"),
    ]
    filename = f"accounting-report-{project.id}-{source.id}"
    if format == "pdf":
        return _attachment(
            render_pdf("Accounting Report", summary, accounting_rows(report)), PDF_MEDIA_TYPE, f"{filename}.pdf"
        )
    return _attachment(
        render_xlsx("Accounting Report", summary, accounting_rows(report)), XLSX_MEDIA_TYPE, f"{filename}.xlsx"
    )


@router.get("/supervisory")
def export_supervisory(
    project_id: int | None = Query(default=None, alias="projectId"),
    user_id: int | None = Query(default=None, alias="userId"),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    format: ReportFormat = "json",
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    if project_id is None:
        raise HTTPException(status_code=400, detail="Project ID is required")

    # non-exporters never see a 404 for project ids
    if not has_permission(current_user.role, "export_reports"):
        if not is_employee(current_user.role):
            raise forbidden("Not authorized for this operation")
        if user_id is not None and user_id != current_user.id:
            raise forbidden("Not authorized to export other users' time entries")
        if not is_project_member(db, project_id, current_user.id):
            raise forbidden("You do not have access to this project")
        user_id = current_user.id

    project = _load_project(db, project_id)

    period = _period(start_date, end_date)
    query = (
        db.query(TimeEntry)
        .options(
            selectinload(TimeEntry.funding).selectinload(TimeEntryFunding.funding_source),
            selectinload(TimeEntry.user),
        )
        .filter(TimeEntry.project_id == project.id)
    )
    if user_id is not None:
        query = query.filter(TimeEntry.user_id == user_id)
    entries = _apply_period(query, period).all()

    workload_query = db.query(ProjectUser).filter(ProjectUser.project_id == project.id)
    if user_id is not None:
        workload_query = workload_query.filter(ProjectUser.user_id == user_id)
    workloads = {link.user_id: float(link.workload or 0) for link in workload_query}

    report = supervisory_report(
        project=_project_summary(project),
        period=period,
        entries=[
            {
                "id": entry.id,
                "date": entry.date,
                "hours": entry.hours,
                "description": entry.description,
                "entry_type": entry.entry_type,
                "user_id": entry.user_id,
                "user_name": entry.user.full_name or entry.user.username,
                "email": entry.user.email,
                "funding_distribution": _distribution_label(entry),
            }
            for entry in entries
        ],
        workloads=workloads,
    )
    logger.info("export_generated", kind="supervisory", format=format, project_id=project.id, entries=len(entries))

    if format == "json":
        return report

    summary = [
        ("Project", project.name),
        ("Contract number", project.contract_number or "N/A"),
        ("Date range", period.label()),
    ] + [
        (user["user_name"], f"{user['total_hours']:.2f} h booked, {user['workload']:g} h/week allocated")
        for user in report["users"]
    ]
    filename = f"dlut-report-{project.id}" + (f"-user-{user_id}" if user_id else "")
    if format == "pdf":
        return _attachment(
            render_pdf("Supervisory Report", summary, supervisory_rows(report)), PDF_MEDIA_TYPE, f"{filename}.pdf"
        )
    return _attachment(
        render_xlsx("Supervisory Report", summary, supervisory_rows(report)), XLSX_MEDIA_TYPE, f"{filename}.xlsx"
    )
