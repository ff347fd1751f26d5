"""Time entry persistence with funding allocation.

Entry rows and their funding rows are always written in one transaction.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy.orm import Session

from timefund.core.logging import get_logger
from timefund.core.observability import get_meter, get_tracer
from timefund.db.session import transaction
from timefund.models import FundingSource, ProjectFunding, ProjectUser, TimeEntry, TimeEntryFunding

from .allocation import AllocationError, Share, make_shares, prepare_distribution, split_hours

logger = get_logger(__name__)
tracer = get_tracer(__name__)
entries_created = get_meter(__name__).create_counter(
    "time_entries_created", unit="1", description="Time entries recorded"
)


class NotAssignedError(Exception):
    """The user is not a member of the project being booked against."""


def project_distribution(db: Session, project_id: int) -> list[Share]:
    rows = (
        db.query(ProjectFunding)
        .filter(ProjectFunding.project_id == project_id)
        .order_by(ProjectFunding.funding_source_id.asc())
        .all()
    )
    return make_shares(rows)


def _resolve_distribution(db: Session, project_id: int, supplied: Iterable | None) -> list[Share]:
    supplied = list(supplied or [])
    if supplied:
        shares = prepare_distribution(supplied)
        _ensure_sources_exist(db, shares)
        return shares

    shares = project_distribution(db, project_id)
    if shares:
        try:
            prepare_distribution(shares)
        except AllocationError as exc:
            raise AllocationError(f"Project funding distribution is invalid: {exc}") from exc
    return shares


def _ensure_sources_exist(db: Session, shares: Sequence[Share]) -> None:
    ids = [share.funding_source_id for share in shares]
    found = {row.id for row in db.query(FundingSource.id).filter(FundingSource.id.in_(ids))}
    missing = [source_id for source_id in ids if source_id not in found]
    if missing:
        raise AllocationError(f"Unknown funding source: {missing[0]}")


def _write_funding(db: Session, entry: TimeEntry, hours, shares: Sequence[Share]) -> None:
    with tracer.start_as_current_span("time_entry.allocate") as span:
        span.set_attribute("time_entry.hours", float(hours))
        span.set_attribute("time_entry.sources", len(shares))
        entry.funding.clear()
        db.flush()
        for row in split_hours(hours, shares):
            entry.funding.append(
                TimeEntryFunding(
                    funding_source_id=row.funding_source_id,
                    percentage=row.percentage,
                    hours=row.hours,
                )
            )


def create_entry(
    db: Session,
    *,
    user_id: int,
    project_id: int,
    entry_date: date,
    hours: Decimal,
    description: str | None,
    entry_type: str,
    distribution: Iterable | None = None,
) -> TimeEntry:
    if db.get(ProjectUser, (project_id, user_id)) is None:
        raise NotAssignedError("User is not assigned to this project")

    with transaction(db):
        shares = _resolve_distribution(db, project_id, distribution)
        entry = TimeEntry(
            user_id=user_id,
            project_id=project_id,
            date=entry_date,
            hours=hours,
            description=description,
            entry_type=entry_type,
        )
        db.add(entry)
        db.flush()
        _write_funding(db, entry, hours, shares)

    db.refresh(entry)
    entries_created.add(1, {"entry_type": entry_type})
    logger.info(
        "time_entry_created",
        time_entry_id=entry.id,
        project_id=project_id,
        hours=float(hours),
        sources=len(shares),
        defaulted=not distribution,
    )
    return entry


def update_entry(
    db: Session,
    entry: TimeEntry,
    *,
    hours: Decimal | None = None,
    entry_date: date | None = None,
    description: str | None = None,
    entry_type: str | None = None,
    distribution: Iterable | None = None,
) -> TimeEntry:
    distribution = list(distribution or [])

    with transaction(db):
        hours_changed = hours is not None and Decimal(hours) != Decimal(entry.hours)
        if hours is not None:
            entry.hours = hours
        if entry_date is not None:
            entry.date = entry_date
        if description is not None:
            entry.description = description
        if entry_type is not None:
            entry.entry_type = entry_type

        if distribution:
            shares = prepare_distribution(distribution)
            _ensure_sources_exist(db, shares)
            _write_funding(db, entry, entry.hours, shares)
        elif hours_changed and entry.funding:
            # keep stored percentages, re-split the new total
            _write_funding(db, entry, entry.hours, make_shares(entry.funding))

    db.refresh(entry)
    logger.info(
        "time_entry_updated",
        time_entry_id=entry.id,
        redistributed=bool(distribution) or hours_changed,
    )
    return entry
