from __future__ import annotations

from datetime import date
from decimal import Decimal

from timefund.domains.exports.reports import (
    ReportPeriod,
    accounting_report,
    accounting_rows,
    supervisory_report,
    supervisory_rows,
)


def _funded(entry_id, day, user_id, user_name, hours, percentage, funded):
    return {
        "id": entry_id,
        "date": day,
        "hours": Decimal(hours),
        "description": None,
        "entry_type": "work",
        "user_id": user_id,
        "user_name": user_name,
        "percentage": Decimal(percentage),
        "funded_hours": Decimal(funded),
    }


def test_period_labels_open_bounds():
    assert ReportPeriod().as_dict() == {"start_date": "All time", "end_date": "All time"}
    assert ReportPeriod(date(2024, 1, 1), date(2024, 3, 31)).label() == "2024-01-01 to 2024-03-31"


def test_accounting_report_groups_by_month_and_user():
    entries = [
        _funded(1, date(2024, 3, 4), 7, "Ada", "8", "60", "4.80"),
        _funded(2, date(2024, 3, 5), 7, "Ada", "5", "60", "3.00"),
        _funded(3, date(2024, 3, 5), 8, "Bob", "2.5", "60", "1.50"),
        _funded(4, date(2024, 4, 1), 7, "Ada", "1", "60", "0.60"),
    ]

    report = accounting_report(
        project={"id": 1, "name": "Apollo"},
        funding_source={"id": 2, "name": "Grant"},
        period=ReportPeriod(),
        entries=entries,
    )

    assert [month["month"] for month in report["monthly_reports"]] == ["2024-03", "2024-04"]
    march = report["monthly_reports"][0]
    assert march["total"] == 9.3
    assert [(user["user_name"], user["total"], len(user["entries"])) for user in march["users"]] == [
        ("Ada", 7.8, 2),
        ("Bob", 1.5, 1),
    ]
    assert {row["user_name"]: row["total"] for row in report["user_totals"]} == {"Ada": 8.4, "Bob": 1.5}
    assert report["grand_total"] == 9.9
    assert report["period"] == {"start_date": "All time", "end_date": "All time"}


def test_accounting_rows_flatten_entries():
    report = accounting_report(
        project={"id": 1},
        funding_source={"id": 2},
        period=ReportPeriod(),
        entries=[_funded(1, date(2024, 3, 4), 7, "Ada", "8", "60", "4.80")],
    )

    assert accounting_rows(report) == [
        {
            "Month": "2024-03",
            "Employee": "Ada",
            "Date": "2024-03-04",
            "Type": "work",
            "Hours": 8.0,
            "Percent": 60.0,
            "Funded hours": 4.8,
        }
    ]


def test_empty_accounting_report():
    report = accounting_report({"id": 1}, {"id": 2}, ReportPeriod(), [])

    assert report["monthly_reports"] == []
    assert report["user_totals"] == []
    assert report["grand_total"] == 0


def test_supervisory_report_totals_and_workload():
    entries = [
        {
            "id": 1,
            "date": date(2024, 3, 4),
            "hours": Decimal("8"),
            "description": "Design",
            "entry_type": "work",
            "user_id": 7,
            "user_name": "Ada",
            "email": "ada@example.com",
            "funding_distribution": "Grant: 100%",
        },
        {
            "id": 2,
            "date": date(2024, 3, 5),
            "hours": Decimal("8"),
            "description": None,
            "entry_type": "vacation",
            "user_id": 7,
            "user_name": "Ada",
            "email": "ada@example.com",
            "funding_distribution": "Grant: 100%",
        },
    ]

    report = supervisory_report({"id": 1}, ReportPeriod(), entries, workloads={7: 20.0})

    [user] = report["users"]
    assert user["total_hours"] == 16.0
    assert user["workload"] == 20.0
    assert user["hours_by_type"] == {"work": 8.0, "vacation": 8.0}
    assert [row["Type"] for row in supervisory_rows(report)] == ["work", "vacation"]
    assert supervisory_rows(report)[1]["Description"] == ""
