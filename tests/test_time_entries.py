from __future__ import annotations

import json
from decimal import Decimal
from typing import get_args

import pytest

from timefund.models import EntryType, FundingSource, TimeEntryFunding


def _book(client, auth, user, project_id, **fields):
    payload = {"user_id": user.id, "project_id": project_id, "date": "2024-03-04", "hours": 8}
    payload.update(fields)
    return client.post("/api/time-entries", json=payload, headers=auth(user))


def _funded_hours(db, entry_id):
    rows = db.query(TimeEntryFunding).filter_by(time_entry_id=entry_id).all()
    return {row.funding_source_id: row.hours for row in rows}


def test_entry_defaults_to_project_distribution(client, db, funded_project, employee, auth):
    response = _book(client, auth, employee, funded_project["project_id"], hours=7.5)

    assert response.status_code == 201
    body = response.json()
    assert body["hours"] == 7.5
    assert body["entry_type"] == "work"
    assert body["funding_sources"] == ["Research Grant", "Structural Fund"]
    assert _funded_hours(db, body["id"]) == {
        funded_project["research_id"]: Decimal("4.50"),
        funded_project["structural_id"]: Decimal("3.00"),
    }


def test_explicit_distribution_overrides_project_default(client, db, funded_project, employee, auth):
    response = _book(
        client,
        auth,
        employee,
        funded_project["project_id"],
        funding_distribution=[{"funding_source_id": funded_project["structural_id"], "percentage": 100}],
    )

    assert response.status_code == 201
    assert _funded_hours(db, response.json()["id"]) == {funded_project["structural_id"]: Decimal("8.00")}


def test_funded_hours_always_sum_to_entry_hours(client, db, funded_project, manager, auth):
    third = client.post("/api/funding-sources", json={"name": "Third"}, headers=auth(manager)).json()["id"]
    distribution = [
        {"funding_source_id": funded_project["research_id"], "percentage": 33.33},
        {"funding_source_id": funded_project["structural_id"], "percentage": 33.33},
        {"funding_source_id": third, "percentage": 33.34},
    ]

    response = _book(
        client, auth, manager, funded_project["project_id"], hours=1, funding_distribution=distribution
    )

    assert response.status_code == 201
    split = _funded_hours(db, response.json()["id"])
    assert sum(split.values()) == Decimal("1.00")
    assert split[third] == Decimal("0.34")


def test_distribution_must_total_one_hundred(client, funded_project, employee, auth):
    response = _book(
        client,
        auth,
        employee,
        funded_project["project_id"],
        funding_distribution=[
            {"funding_source_id": funded_project["research_id"], "percentage": 50},
            {"funding_source_id": funded_project["structural_id"], "percentage": 40},
        ],
    )

    assert response.status_code == 400
    assert "add up to 100" in response.json()["detail"]
    assert client.get(f"/api/time-entries/user/{employee.id}", headers=auth(employee)).json() == []


def test_unknown_source_in_distribution_rejected(client, funded_project, employee, auth):
    response = _book(
        client,
        auth,
        employee,
        funded_project["project_id"],
        funding_distribution=[{"funding_source_id": 999, "percentage": 100}],
    )

    assert response.status_code == 400


def test_unassigned_user_cannot_book(client, funded_project, make_user, auth):
    outsider = make_user("outsider")

    response = _book(client, auth, outsider, funded_project["project_id"])

    assert response.status_code == 400
    assert response.json()["detail"] == "User is not assigned to this project"


def test_project_without_funding_books_unfunded_entry(client, manager, employee, auth):
    project = client.post(
        "/api/projects",
        json={"name": "Unfunded", "users": [{"id": employee.id}]},
        headers=auth(manager),
    ).json()

    response = _book(client, auth, employee, project["id"])

    assert response.status_code == 201
    assert response.json()["funding_distribution"] == []


@pytest.mark.parametrize("hours", [0, -1, 24.5])
def test_hours_out_of_range_rejected(client, funded_project, employee, auth, hours):
    response = _book(client, auth, employee, funded_project["project_id"], hours=hours)

    assert response.status_code == 422


@pytest.mark.parametrize("entry_type", get_args(EntryType))
def test_every_entry_type_accepted(client, funded_project, employee, auth, entry_type):
    response = _book(client, auth, employee, funded_project["project_id"], entry_type=entry_type)

    assert response.status_code == 201
    assert response.json()["entry_type"] == entry_type


def test_invalid_entry_type_rejected(client, funded_project, employee, auth):
    response = _book(client, auth, employee, funded_project["project_id"], entry_type="party")

    assert response.status_code == 422


def test_employee_cannot_book_for_someone_else(client, funded_project, employee, manager, auth):
    response = client.post(
        "/api/time-entries",
        json={"user_id": manager.id, "project_id": funded_project["project_id"], "date": "2024-03-04", "hours": 2},
        headers=auth(employee),
    )

    assert response.status_code == 403
    assert response.json()["detail"] == "Not authorized to create time entries for other users"


def test_manager_can_book_for_team_member(client, funded_project, employee, manager, auth):
    response = client.post(
        "/api/time-entries",
        json={"user_id": employee.id, "project_id": funded_project["project_id"], "date": "2024-03-04", "hours": 2},
        headers=auth(manager),
    )

    assert response.status_code == 201
    assert response.json()["user_id"] == employee.id


def test_booking_unknown_project_returns_404(client, employee, auth):
    response = _book(client, auth, employee, 999)

    assert response.status_code == 404
    assert response.json()["detail"] == "Project not found"


def test_update_hours_resplits_stored_percentages(client, db, funded_project, employee, auth):
    entry = _book(client, auth, employee, funded_project["project_id"]).json()

    response = client.put(f"/api/time-entries/{entry['id']}", json={"hours": 5}, headers=auth(employee))

    assert response.status_code == 200
    assert _funded_hours(db, entry["id"]) == {
        funded_project["research_id"]: Decimal("3.00"),
        funded_project["structural_id"]: Decimal("2.00"),
    }


def test_update_with_new_distribution(client, db, funded_project, employee, auth):
    entry = _book(client, auth, employee, funded_project["project_id"]).json()

    response = client.put(
        f"/api/time-entries/{entry['id']}",
        json={
            "description": "moved",
            "funding_distribution": [{"funding_source_id": funded_project["research_id"], "percentage": 100}],
        },
        headers=auth(employee),
    )

    assert response.status_code == 200
    assert response.json()["description"] == "moved"
    assert _funded_hours(db, entry["id"]) == {funded_project["research_id"]: Decimal("8.00")}


def test_invalid_update_leaves_entry_untouched(client, db, funded_project, employee, auth):
    entry = _book(client, auth, employee, funded_project["project_id"]).json()

    response = client.put(
        f"/api/time-entries/{entry['id']}",
        json={"hours": 4, "funding_distribution": [{"funding_source_id": funded_project["research_id"], "percentage": 30}]},
        headers=auth(employee),
    )

    assert response.status_code == 400
    stored = client.get(f"/api/time-entries/{entry['id']}", headers=auth(employee)).json()
    assert stored["hours"] == 8.0
    assert sum(share["hours"] for share in stored["funding_distribution"]) == 8.0


def test_other_employee_cannot_touch_entry(client, funded_project, employee, make_user, auth):
    entry = _book(client, auth, employee, funded_project["project_id"]).json()
    other = make_user("other")

    assert client.get(f"/api/time-entries/{entry['id']}", headers=auth(other)).status_code == 403
    assert client.put(f"/api/time-entries/{entry['id']}", json={"hours": 1}, headers=auth(other)).status_code == 403
    assert client.delete(f"/api/time-entries/{entry['id']}", headers=auth(other)).status_code == 403
    assert client.get(f"/api/time-entries/user/{employee.id}", headers=auth(other)).status_code == 403


def test_delete_entry_removes_funding_rows(client, db, funded_project, employee, auth):
    entry = _book(client, auth, employee, funded_project["project_id"]).json()

    response = client.delete(f"/api/time-entries/{entry['id']}", headers=auth(employee))

    assert response.status_code == 204
    assert db.query(TimeEntryFunding).filter_by(time_entry_id=entry["id"]).count() == 0
    assert client.get(f"/api/time-entries/{entry['id']}", headers=auth(employee)).status_code == 404


def test_project_entries_visible_to_members_only(client, funded_project, employee, hr, make_user, auth):
    _book(client, auth, employee, funded_project["project_id"])
    outsider = make_user("outsider")
    project_id = funded_project["project_id"]

    assert len(client.get(f"/api/time-entries/project/{project_id}", headers=auth(employee)).json()) == 1
    assert len(client.get(f"/api/time-entries/project/{project_id}", headers=auth(hr)).json()) == 1
    assert client.get(f"/api/time-entries/project/{project_id}", headers=auth(outsider)).status_code == 403


def test_funding_source_entries_filtered_by_month(client, funded_project, employee, manager, auth):
    project_id = funded_project["project_id"]
    _book(client, auth, employee, project_id, date="2024-03-04")
    _book(client, auth, employee, project_id, date="2024-04-02")
    _book(client, auth, manager, project_id, date="2024-03-05")
    url = f"/api/time-entries/funding-source/{funded_project['research_id']}"

    march = client.get(url, params={"month": "2024-03"}, headers=auth(manager)).json()
    own = client.get(url, headers=auth(employee)).json()
    bad_month = client.get(url, params={"month": "March"}, headers=auth(manager))

    assert len(march) == 2
    assert all(row["funding_hours"] == 4.8 for row in march)
    assert {row["user_id"] for row in own} == {employee.id}
    assert len(own) == 2
    assert bad_month.status_code == 400


def _sources(db, count):
    sources = [FundingSource(name=f"Source {index}") for index in range(1, count + 1)]
    db.add_all(sources)
    db.commit()
    return [source.id for source in sources]


def test_project_split_rejected_when_stored_form_exceeds_one_hundred(client, db, manager, auth):
    source_ids = _sources(db, 7)
    percentages = ["14.286"] * 6 + ["14.284"]

    response = client.post(
        "/api/projects",
        json={
            "name": "Seven ways",
            "funding_sources": [
                {"funding_source_id": source_id, "percentage": percentage}
                for source_id, percentage in zip(source_ids, percentages)
            ],
        },
        headers=auth(manager),
    )

    assert response.status_code == 400
    assert "got 100.02" in response.json()["detail"]


def test_seven_source_project_books_default_entries(client, db, manager, auth):
    source_ids = _sources(db, 7)
    percentages = ["14.29"] * 6 + ["14.26"]
    project = client.post(
        "/api/projects",
        json={
            "name": "Seven ways",
            "funding_sources": [
                {"funding_source_id": source_id, "percentage": percentage}
                for source_id, percentage in zip(source_ids, percentages)
            ],
        },
        headers=auth(manager),
    )
    assert project.status_code == 201

    response = _book(client, auth, manager, project.json()["id"], hours=8)

    assert response.status_code == 201
    funded = _funded_hours(db, response.json()["id"])
    assert set(funded) == set(source_ids)
    assert sum(funded.values()) == Decimal("8.00")


def test_three_decimal_distribution_is_stored_and_reused(client, db, manager, auth):
    source_ids = _sources(db, 3)
    project = client.post(
        "/api/projects",
        json={
            "name": "Thirds",
            "funding_sources": [
                {"funding_source_id": source_ids[0], "percentage": "33.333"},
                {"funding_source_id": source_ids[1], "percentage": "33.333"},
                {"funding_source_id": source_ids[2], "percentage": "33.334"},
            ],
        },
        headers=auth(manager),
    )
    assert project.status_code == 201
    project_id = project.json()["id"]

    funding = client.get(f"/api/projects/{project_id}/funding", headers=auth(manager)).json()
    assert [row["percentage"] for row in funding] == [33.33, 33.33, 33.33]

    response = _book(client, auth, manager, project_id, hours=3)

    assert response.status_code == 201
    assert sum(_funded_hours(db, response.json()["id"]).values()) == Decimal("3.00")


def test_created_entry_is_logged_with_actor(client, funded_project, employee, auth, capsys):
    capsys.readouterr()

    response = _book(client, auth, employee, funded_project["project_id"])

    assert response.status_code == 201
    events = []
    for line in capsys.readouterr().out.splitlines():
        try:
            events.append(json.loads(line))
        except ValueError:
            continue
    created = [event for event in events if event.get("event") == "time_entry_created"]
    assert len(created) == 1
    assert created[0]["user_id"] == employee.id
    assert created[0]["role"] == "employee"
