from .department import Department, DepartmentUser
from .funding import FundingSource, ProjectFunding
from .project import Project, ProjectUser
from .time_entry import EntryType, TimeEntry, TimeEntryFunding
from .user import User

__all__ = [
    "User",
    "Project",
    "ProjectUser",
    "Department",
    "DepartmentUser",
    "FundingSource",
    "ProjectFunding",
    "TimeEntry",
    "TimeEntryFunding",
    "EntryType",
]
