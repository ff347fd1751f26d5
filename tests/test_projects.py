from __future__ import annotations

from timefund.models import FundingSource, ProjectFunding, ProjectUser


def _source(db, name: str) -> int:
    source = FundingSource(name=name)
    db.add(source)
    db.commit()
    return source.id


def test_create_project_adds_creator_as_manager(client, manager, auth):
    response = client.post(
        "/api/projects",
        json={"name": "Apollo", "budget": 120, "start_date": "2024-01-01", "end_date": "2024-12-31"},
        headers=auth(manager),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Apollo"
    assert body["created_by"] == manager.id
    assert body["users"] == [
        {
            "id": manager.id,
            "username": "manager",
            "full_name": "Manager",
            "email": "pm@example.com",
            "role": "project_manager",
            "project_role": "project_manager",
            "workload": 40.0,
        }
    ]


def test_create_project_with_members_and_funding(client, db, manager, employee, auth):
    research = _source(db, "Research")
    structural = _source(db, "Structural")

    response = client.post(
        "/api/projects",
        json={
            "name": "Gemini",
            "users": [{"id": employee.id, "project_role": "employee", "workload": 10}],
            "funding_sources": [
                {"funding_source_id": research, "amount": 3000, "percentage": 75},
                {"funding_source_id": structural, "amount": 1000, "percentage": 25},
            ],
        },
        headers=auth(manager),
    )

    assert response.status_code == 201
    project_id = response.json()["id"]
    assert {user["id"] for user in response.json()["users"]} == {manager.id, employee.id}

    funding = client.get(f"/api/projects/{project_id}/funding", headers=auth(manager)).json()
    assert [(row["name"], row["percentage"]) for row in funding] == [("Research", 75.0), ("Structural", 25.0)]


def test_create_project_derives_percentages_from_amounts(client, db, manager, auth):
    first = _source(db, "First")
    second = _source(db, "Second")

    response = client.post(
        "/api/projects",
        json={
            "name": "Derived",
            "funding_sources": [
                {"funding_source_id": first, "amount": 1000},
                {"funding_source_id": second, "amount": 3000},
            ],
        },
        headers=auth(manager),
    )

    assert response.status_code == 201
    funding = client.get(f"/api/projects/{response.json()['id']}/funding", headers=auth(manager)).json()
    assert [row["percentage"] for row in funding] == [25.0, 75.0]


def test_create_project_rejects_unbalanced_funding(client, db, manager, auth):
    source = _source(db, "Half")

    response = client.post(
        "/api/projects",
        json={"name": "Broken", "funding_sources": [{"funding_source_id": source, "percentage": 50}]},
        headers=auth(manager),
    )

    assert response.status_code == 400
    assert "add up to 100" in response.json()["detail"]
    assert client.get("/api/projects", headers=auth(manager)).json() == []


def test_create_project_rejects_inverted_dates(client, manager, auth):
    response = client.post(
        "/api/projects",
        json={"name": "Backwards", "start_date": "2024-06-01", "end_date": "2024-01-01"},
        headers=auth(manager),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "End date must not be before start date"


def test_create_project_unknown_member_rolls_back(client, manager, auth):
    response = client.post(
        "/api/projects",
        json={"name": "Ghosts", "users": [{"id": 999}]},
        headers=auth(manager),
    )

    assert response.status_code == 404
    assert client.get("/api/projects", headers=auth(manager)).json() == []


def test_employee_cannot_create_project(client, employee, auth):
    response = client.post("/api/projects", json={"name": "Nope"}, headers=auth(employee))

    assert response.status_code == 403


def test_employee_only_sees_assigned_projects(client, funded_project, make_user, employee, manager, auth):
    client.post("/api/projects", json={"name": "Other"}, headers=auth(manager))

    mine = client.get("/api/projects", headers=auth(employee)).json()
    everything = client.get("/api/projects", headers=auth(manager)).json()

    assert [project["name"] for project in mine] == ["Apollo"]
    assert sorted(project["name"] for project in everything) == ["Apollo", "Other"]


def test_employee_cannot_read_unassigned_project(client, manager, make_user, auth):
    outsider = make_user("outsider")
    project_id = client.post("/api/projects", json={"name": "Secret"}, headers=auth(manager)).json()["id"]

    response = client.get(f"/api/projects/{project_id}", headers=auth(outsider))

    assert response.status_code == 403
    assert response.json()["detail"] == "You do not have access to this project"


def test_project_search_and_sort(client, manager, auth):
    for name in ("Zeta", "Alpha", "Alphabet"):
        client.post("/api/projects", json={"name": name}, headers=auth(manager))

    searched = client.get("/api/projects", params={"search": "alpha"}, headers=auth(manager)).json()
    ordered = client.get(
        "/api/projects", params={"sort": "name", "order": "asc"}, headers=auth(manager)
    ).json()

    assert sorted(project["name"] for project in searched) == ["Alpha", "Alphabet"]
    assert [project["name"] for project in ordered] == ["Alpha", "Alphabet", "Zeta"]


def test_update_project_replaces_members_and_clears_funding(client, db, funded_project, manager, employee, auth):
    project_id = funded_project["project_id"]

    response = client.put(
        f"/api/projects/{project_id}",
        json={
            "name": "Apollo II",
            "budget": 800,
            "users": [{"id": manager.id, "project_role": "project_manager", "workload": 30}],
            "funding_sources": [],
        },
        headers=auth(manager),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Apollo II"
    assert body["budget"] == 800.0
    assert [user["id"] for user in body["users"]] == [manager.id]
    assert db.query(ProjectFunding).filter_by(project_id=project_id).count() == 0


def test_update_project_keeps_members_when_omitted(client, funded_project, manager, auth):
    project_id = funded_project["project_id"]

    response = client.put(f"/api/projects/{project_id}", json={"name": "Renamed"}, headers=auth(manager))

    assert response.status_code == 200
    assert len(response.json()["users"]) == 2
    assert len(client.get(f"/api/projects/{project_id}/funding", headers=auth(manager)).json()) == 2


def test_delete_project_cascades(client, db, funded_project, manager, auth):
    project_id = funded_project["project_id"]

    response = client.delete(f"/api/projects/{project_id}", headers=auth(manager))

    assert response.status_code == 204
    assert client.get(f"/api/projects/{project_id}", headers=auth(manager)).status_code == 404
    assert db.query(ProjectUser).filter_by(project_id=project_id).count() == 0
    assert db.query(ProjectFunding).filter_by(project_id=project_id).count() == 0


def test_assign_update_and_remove_user(client, funded_project, make_user, manager, auth):
    project_id = funded_project["project_id"]
    newcomer = make_user("newcomer")

    assigned = client.post(
        f"/api/projects/{project_id}/users",
        json={"userId": newcomer.id, "role": "employee", "workload": 8},
        headers=auth(manager),
    )
    duplicate = client.post(
        f"/api/projects/{project_id}/users", json={"userId": newcomer.id}, headers=auth(manager)
    )
    updated = client.put(
        f"/api/projects/{project_id}/users/{newcomer.id}",
        json={"role": "researcher", "workload": 16},
        headers=auth(manager),
    )
    removed = client.delete(f"/api/projects/{project_id}/users/{newcomer.id}", headers=auth(manager))
    removed_again = client.delete(f"/api/projects/{project_id}/users/{newcomer.id}", headers=auth(manager))

    assert assigned.status_code == 201
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "User already assigned to project"
    member = next(user for user in updated.json()["users"] if user["id"] == newcomer.id)
    assert member["project_role"] == "researcher"
    assert member["workload"] == 16.0
    assert removed.status_code == 204
    assert removed_again.status_code == 404
    assert removed_again.json()["detail"] == "User not assigned to project"


def test_batch_replace_assignments(client, funded_project, make_user, manager, auth):
    project_id = funded_project["project_id"]
    newcomer = make_user("newcomer")

    response = client.put(
        f"/api/projects/{project_id}/users",
        json=[
            {"user_id": manager.id, "role": "project_manager", "workload": 20},
            {"user_id": newcomer.id, "role": "employee", "workload": 5},
        ],
        headers=auth(manager),
    )

    assert response.status_code == 200
    assert [(user["id"], user["workload"]) for user in response.json()["users"]] == [
        (manager.id, 20.0),
        (newcomer.id, 5.0),
    ]


def test_batch_replace_rejects_duplicates(client, funded_project, manager, auth):
    project_id = funded_project["project_id"]

    response = client.put(
        f"/api/projects/{project_id}/users",
        json=[{"user_id": manager.id}, {"user_id": manager.id}],
        headers=auth(manager),
    )

    assert response.status_code == 400
    assert len(client.get(f"/api/projects/{project_id}", headers=auth(manager)).json()["users"]) == 2


def test_set_project_funding(client, db, funded_project, manager, auth):
    project_id = funded_project["project_id"]
    third = _source(db, "Third")

    response = client.post(
        f"/api/projects/{project_id}/funding",
        json={
            "funding_distributions": [
                {"funding_source_id": funded_project["research_id"], "percentage": 50},
                {"funding_source_id": third, "percentage": 50},
            ]
        },
        headers=auth(manager),
    )

    assert response.status_code == 201
    assert sorted(row["name"] for row in response.json()) == ["Research Grant", "Third"]


def test_set_project_funding_requires_rows(client, funded_project, manager, auth):
    response = client.post(
        f"/api/projects/{funded_project['project_id']}/funding",
        json={"funding_distributions": []},
        headers=auth(manager),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Funding distributions are required"


def test_set_project_funding_unknown_source(client, funded_project, manager, auth):
    response = client.post(
        f"/api/projects/{funded_project['project_id']}/funding",
        json={"funding_distributions": [{"funding_source_id": 999, "percentage": 100}]},
        headers=auth(manager),
    )

    assert response.status_code == 404
    assert len(client.get(f"/api/projects/{funded_project['project_id']}/funding", headers=auth(manager)).json()) == 2
