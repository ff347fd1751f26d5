"""Role matrix shared by the routers.

Admins pass every gate; the other roles are listed per action.
"""

from __future__ import annotations

from typing import Literal

Role = Literal["admin", "project_manager", "hr", "employee"]

ADMIN = "admin"
PROJECT_MANAGER = "project_manager"
HR = "hr"
EMPLOYEE = "employee"

ROLES: tuple[str, ...] = (ADMIN, PROJECT_MANAGER, HR, EMPLOYEE)
SELF_REGISTER_ROLES: tuple[str, ...] = (PROJECT_MANAGER, EMPLOYEE)

PERMISSION_MATRIX: dict[str, tuple[str, ...]] = {
    "manage_projects": (PROJECT_MANAGER,),
    "manage_project_users": (PROJECT_MANAGER,),
    "manage_project_funding": (PROJECT_MANAGER,),
    "manage_funding_sources": (PROJECT_MANAGER,),
    "manage_departments": (PROJECT_MANAGER,),
    "delete_departments": (),
    "create_users": (HR,),
    "manage_users": (HR,),
    "change_roles": (HR,),
    "view_all_time_entries": (PROJECT_MANAGER, HR),
    "export_reports": (PROJECT_MANAGER, HR),
}


def has_permission(role: str | None, permission: str) -> bool:
    if role is None:
        return False
    if role == ADMIN:
        return True
    return role in PERMISSION_MATRIX.get(permission, ())


def is_employee(role: str | None) -> bool:
    return role == EMPLOYEE
