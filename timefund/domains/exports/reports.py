from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List

ReportRow = Dict[str, Any]

ALL_TIME = "All time"


@dataclass
class ReportPeriod:
    start_date: date | None = None
    end_date: date | None = None

    def as_dict(self) -> Dict[str, str]:
        return {
            "start_date": self.start_date.isoformat() if self.start_date else ALL_TIME,
            "end_date": self.end_date.isoformat() if self.end_date else ALL_TIME,
        }

    def label(self) -> str:
        bounds = self.as_dict()
        return f"{bounds['start_date']} to {bounds['end_date']}"


def _round(value: float) -> float:
    return round(value, 2)


def accounting_report(
    project: ReportRow,
    funding_source: ReportRow,
    period: ReportPeriod,
    entries: Iterable[ReportRow],
) -> ReportRow:
    """Funded hours for one project and source, grouped by month then user.

    Each entry row carries ``id``, ``date``, ``hours``, ``description``,
    ``entry_type``, ``user_id``, ``user_name``, ``percentage`` and
    ``funded_hours``.
    """
    months: Dict[str, Dict[str, Any]] = {}
    user_totals: Dict[int, Dict[str, Any]] = {}
    grand_total = 0.0

    for entry in sorted(entries, key=lambda row: (row["date"], row.get("user_name") or "")):
        month_key = entry["date"].strftime("%Y-%m")
        funded = float(entry.get("funded_hours") or 0.0)
        user_id = entry["user_id"]

        month = months.setdefault(month_key, {"month": month_key, "users": {}, "total": 0.0})
        bucket = month["users"].setdefault(
            user_id,
            {"user_id": user_id, "user_name": entry["user_name"], "entries": [], "total": 0.0},
        )
        bucket["entries"].append(
            {
                "id": entry["id"],
                "date": entry["date"].isoformat(),
                "hours": _round(float(entry["hours"])),
                "description": entry.get("description"),
                "entry_type": entry.get("entry_type"),
                "percentage": _round(float(entry.get("percentage") or 0.0)),
                "funded_hours": _round(funded),
            }
        )
        bucket["total"] += funded
        month["total"] += funded

        totals = user_totals.setdefault(
            user_id, {"user_id": user_id, "user_name": entry["user_name"], "total": 0.0}
        )
        totals["total"] += funded
        grand_total += funded

    monthly_reports = []
    for month in months.values():
        users = list(month["users"].values())
        for user in users:
            user["total"] = _round(user["total"])
        monthly_reports.append({"month": month["month"], "users": users, "total": _round(month["total"])})

    for totals in user_totals.values():
        totals["total"] = _round(totals["total"])

    return {
        "project": project,
        "funding_source": funding_source,
        "period": period.as_dict(),
        "monthly_reports": monthly_reports,
        "user_totals": list(user_totals.values()),
        "grand_total": _round(grand_total),
    }


def supervisory_report(
    project: ReportRow,
    period: ReportPeriod,
    entries: Iterable[ReportRow],
    workloads: Dict[int, float],
) -> ReportRow:
    """Booked hours per user on a project alongside their allocated workload.

    Entry rows carry ``id``, ``date``, ``hours``, ``description``,
    ``entry_type``, ``user_id``, ``user_name``, ``email`` and
    ``funding_distribution`` (a display string).
    """
    users: Dict[int, Dict[str, Any]] = {}
    hours_by_type: Dict[int, Dict[str, float]] = defaultdict(lambda: defaultdict(float))

    for entry in sorted(entries, key=lambda row: (row.get("user_name") or "", row["date"])):
        user_id = entry["user_id"]
        hours = float(entry["hours"])
        bucket = users.setdefault(
            user_id,
            {
                "user_id": user_id,
                "user_name": entry["user_name"],
                "email": entry.get("email"),
                "entries": [],
                "total_hours": 0.0,
                "workload": float(workloads.get(user_id, 0.0)),
            },
        )
        bucket["entries"].append(
            {
                "id": entry["id"],
                "date": entry["date"].isoformat(),
                "hours": _round(hours),
                "description": entry.get("description"),
                "entry_type": entry.get("entry_type"),
                "funding_distribution": entry.get("funding_distribution", ""),
            }
        )
        bucket["total_hours"] += hours
        hours_by_type[user_id][entry.get("entry_type") or "work"] += hours

    for user_id, bucket in users.items():
        bucket["total_hours"] = _round(bucket["total_hours"])
        bucket["hours_by_type"] = {key: _round(value) for key, value in hours_by_type[user_id].items()}

    return {
        "project": project,
        "period": period.as_dict(),
        "users": list(users.values()),
    }


def accounting_rows(report: ReportRow) -> List[ReportRow]:
    """Flatten an accounting report into table rows for document rendering."""
    rows: List[ReportRow] = []
    for month in report["monthly_reports"]:
        for user in month["users"]:
            for entry in user["entries"]:
                rows.append(
                    {
                        "Month": month["month"],
                        "Employee": user["user_name"],
                        "Date": entry["date"],
                        "Type": entry["entry_type"],
                        "Hours": entry["hours"],
                        "Percent": entry["percentage"],
                        "Funded hours": entry["funded_hours"],
                    }
                )
    return rows


def supervisory_rows(report: ReportRow) -> List[ReportRow]:
    rows: List[ReportRow] = []
    for user in report["users"]:
        for entry in user["entries"]:
            rows.append(
                {
                    "Employee": user["user_name"],
                    "Date": entry["date"],
                    "Type": entry["entry_type"],
                    "Hours": entry["hours"],
                    "Funding": entry["funding_distribution"],
                    "Description": entry["description"] or "",
                }
            )
    return rows
