from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from timefund.core.logging import configure_logging, get_logger
from timefund.core.security import hash_password
from timefund.db.session import session_scope
from timefund.domains.time_entries.allocation import make_shares, split_hours
from timefund.models import (
    Department,
    DepartmentUser,
    FundingSource,
    Project,
    ProjectFunding,
    ProjectUser,
    TimeEntry,
    TimeEntryFunding,
    User,
)

logger = get_logger(__name__)

DEV_PASSWORD = "password123"


def seed(session: Session) -> None:
    if session.query(User).filter(User.username == "admin").first() is not None:
        logger.info("seed_skipped", reason="admin user already present")
        return

    password_hash = hash_password(DEV_PASSWORD)
    admin = User(username="admin", password_hash=password_hash, full_name="Admin User", role="admin")
    manager = User(
        username="pm",
        password_hash=password_hash,
        full_name="Paula Manager",
        email="pm@example.com",
        role="project_manager",
    )
    hr = User(username="hr", password_hash=password_hash, full_name="Harry Resources", role="hr")
    employee = User(
        username="employee",
        password_hash=password_hash,
        full_name="Ada Lovelace",
        email="ada@example.com",
        role="employee",
        language="lv",
    )
    session.add_all([admin, manager, hr, employee])
    session.flush()

    research = FundingSource(name="Research Grant", description="National research council grant")
    structural = FundingSource(name="Structural Fund", description="EU structural funding")
    session.add_all([research, structural])
    session.flush()

    project = Project(
        name="Demo Project",
        description="Seeded project with a 60/40 funding split",
        start_date=date(2024, 1, 1),
        end_date=date(2025, 12, 31),
        budget=Decimal("1200"),
        contract_number="CN-2024-001",
        created_by=manager.id,
    )
    project.members = [
        ProjectUser(user_id=manager.id, role="project_manager", workload=Decimal("40")),
        ProjectUser(user_id=employee.id, role="employee", workload=Decimal("20")),
    ]
    project.funding = [
        ProjectFunding(funding_source_id=research.id, amount=Decimal("6000"), percentage=Decimal("60")),
        ProjectFunding(funding_source_id=structural.id, amount=Decimal("4000"), percentage=Decimal("40")),
    ]
    session.add(project)

    department = Department(name="Engineering", description="Research engineering")
    department.members = [DepartmentUser(user_id=employee.id), DepartmentUser(user_id=manager.id)]
    session.add(department)
    session.flush()

    shares = make_shares(project.funding)
    start = date.today() - timedelta(days=4)
    for offset, hours in enumerate(["8", "7.5", "6"]):
        entry = TimeEntry(
            user_id=employee.id,
            project_id=project.id,
            date=start + timedelta(days=offset),
            hours=Decimal(hours),
            description="Seeded work",
            entry_type="work",
        )
        entry.funding = [
            TimeEntryFunding(funding_source_id=row.funding_source_id, percentage=row.percentage, hours=row.hours)
            for row in split_hours(Decimal(hours), shares)
        ]
        session.add(entry)

    session.flush()
    logger.info("seed_complete", users=4, projects=1, funding_sources=2)


if __name__ == "__main__":
    configure_logging()
    with session_scope() as session:
        seed(session)
