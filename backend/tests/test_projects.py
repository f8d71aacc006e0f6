# Overview: Tests for client and project ownership, lifecycle and their API routes.

from datetime import date

import pytest

from albaranes.models import Client, Project
from albaranes.services import delivery_note_service, project_service
from albaranes.validation import AuthorizationError, ConflictError, NotFoundError, ValidationError


def _note(user, project):
    return delivery_note_service.create_delivery_note(
        user,
        project_id=project.id,
        items=[{"description": "Consulting", "quantity": 1, "unit": "hour", "unit_price": 50}],
    )


def test_owner_can_access_project(db_session, user, project):
    assert project_service.get_project_for_user(project.id, user) is project


def test_outsider_cannot_access_project(db_session, other_user, project):
    with pytest.raises(AuthorizationError):
        project_service.get_project_for_user(project.id, other_user)


def test_assigned_user_can_access_project(db_session, other_user, project):
    project.assigned_users.append(other_user)
    db_session.commit()
    assert project_service.can_access_project(other_user, project)
    assert project in project_service.list_projects(other_user)


def test_deleted_project_is_missing(db_session, user, project):
    project.is_deleted = True
    db_session.commit()
    with pytest.raises(NotFoundError):
        project_service.get_project_for_user(project.id, user)


def test_company_owner_requires_membership(db_session, user):
    with pytest.raises(ValidationError):
        project_service.resolve_owner(user, "company")


def test_company_owned_client_visible_to_members(db_session, user, company):
    record = project_service.create_client(user, name="Empresa Cliente", cif="C1", owner_type="company")
    assert record.owner_type == "company"
    assert record.owner_id == company.id
    assert project_service.list_clients(user) == [record]


def test_client_and_project_routes(client, auth_headers):
    response = client.post("/api/clients", json={
        "name": "Acme",
        "cif": "B12345678",
        "address": {"street": "Gran Via 2", "city": "Madrid"},
    }, headers=auth_headers)
    assert response.status_code == 201
    created = response.get_json()["client"]
    assert created["address"]["city"] == "Madrid"

    response = client.post("/api/projects", json={
        "name": "Office refit",
        "client_id": created["id"],
        "start_date": "2024-01-31",
    }, headers=auth_headers)
    assert response.status_code == 201
    project = response.get_json()["project"]
    assert project["start_date"] == "2024-01-31"

    listed = client.get(f"/api/projects?client_id={created['id']}", headers=auth_headers)
    assert [p["id"] for p in listed.get_json()["projects"]] == [project["id"]]
    assert client.get(f"/api/projects/{project['id']}", headers=auth_headers).status_code == 200
    assert client.get("/api/clients", headers=auth_headers).get_json()["clients"][0]["name"] == "Acme"


def test_project_validation(client, auth_headers):
    assert client.post("/api/projects", json={"name": "No client"}, headers=auth_headers).status_code == 400
    response = client.post("/api/projects", json={"name": "Ghost", "client_id": 999}, headers=auth_headers)
    assert response.status_code == 404


def test_health(client, db_session):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["database"]["status"] == "ok"


class TestClientLifecycle:

    def test_update_client(self, db_session, user, customer):
        updated = project_service.update_client(customer.id, user, name="Cliente Renombrado", phone="911000000")
        assert updated.name == "Cliente Renombrado"
        assert updated.phone == "911000000"
        assert updated.cif == "A22222222"

    def test_unknown_field_rejected(self, db_session, user, customer):
        with pytest.raises(ValidationError):
            project_service.update_client(customer.id, user, owner_id=42)

    def test_outsider_cannot_update(self, db_session, other_user, customer):
        with pytest.raises(AuthorizationError):
            project_service.update_client(customer.id, other_user, name="Mine now")

    def test_archived_client_is_read_only_and_hidden(self, db_session, user, customer):
        project_service.set_client_archived(customer.id, user, True)

        with pytest.raises(ConflictError):
            project_service.update_client(customer.id, user, name="Too late")
        assert project_service.list_clients(user) == []
        assert project_service.list_clients(user, include_archived=True) == [customer]

        project_service.set_client_archived(customer.id, user, False)
        assert project_service.update_client(customer.id, user, name="Back").name == "Back"

    def test_search(self, db_session, user, customer):
        assert project_service.list_clients(user, search="compras@") == [customer]
        assert project_service.list_clients(user, search="a222") == [customer]
        assert project_service.list_clients(user, search="nobody") == []

    def test_delete_refused_while_projects_exist(self, db_session, user, customer, project):
        with pytest.raises(ConflictError):
            project_service.delete_client(customer.id, user)

        project_service.delete_project(project.id, user)
        project_service.delete_client(customer.id, user)
        assert customer.is_deleted
        with pytest.raises(NotFoundError):
            project_service.get_client_for_user(customer.id, user)

    def test_purge_refused_while_referenced(self, db_session, user, customer, project):
        project_service.delete_project(project.id, user)
        project_service.delete_client(customer.id, user)

        with pytest.raises(ConflictError):
            project_service.purge_client(customer.id, user)

        project_service.purge_project(project.id, user)
        project_service.purge_client(customer.id, user)
        assert db_session.get(Client, customer.id) is None


class TestProjectLifecycle:

    def test_update_project(self, db_session, user, other_user, project):
        updated = project_service.update_project(
            project.id, user,
            name="Reforma completa",
            status="completed",
            end_date=date(2024, 6, 30),
            assigned_user_ids=[other_user.id],
        )
        assert updated.name == "Reforma completa"
        assert updated.status == "completed"
        assert updated.end_date == date(2024, 6, 30)
        assert updated.assigned_users == [other_user]

    def test_bad_status(self, db_session, user, project):
        with pytest.raises(ValidationError):
            project_service.update_project(project.id, user, status="paused")

    def test_assigned_user_cannot_modify(self, db_session, other_user, project):
        project.assigned_users.append(other_user)
        db_session.commit()
        assert project_service.get_project_for_user(project.id, other_user) is project
        with pytest.raises(AuthorizationError):
            project_service.update_project(project.id, other_user, name="Hijack")
        with pytest.raises(AuthorizationError):
            project_service.delete_project(project.id, other_user)

    def test_move_to_foreign_client_forbidden(self, db_session, user, other_user, project):
        foreign = project_service.create_client(other_user, name="Ajeno", cif="X1")
        with pytest.raises(AuthorizationError):
            project_service.update_project(project.id, user, client_id=foreign.id)

    def test_archived_project_is_read_only_and_hidden(self, db_session, user, project):
        project_service.set_project_archived(project.id, user, True)

        with pytest.raises(ConflictError):
            project_service.update_project(project.id, user, name="Too late")
        assert project_service.list_projects(user) == []
        assert project_service.list_projects(user, include_archived=True) == [project]

        project_service.set_project_archived(project.id, user, False)
        assert project_service.list_projects(user) == [project]

    def test_delete_refused_while_notes_exist(self, db_session, user, project):
        note = _note(user, project)
        with pytest.raises(ConflictError):
            project_service.delete_project(project.id, user)

        delivery_note_service.delete_delivery_note(note.id, user)
        project_service.delete_project(project.id, user)
        assert project_service.get_project(project.id) is None

    def test_purge_refused_while_notes_reference_it(self, db_session, user, project):
        note = _note(user, project)
        delivery_note_service.delete_delivery_note(note.id, user)
        project_service.delete_project(project.id, user)

        with pytest.raises(ConflictError):
            project_service.purge_project(project.id, user)
        assert db_session.get(Project, project.id) is not None

    def test_purge_unreferenced_project(self, db_session, user, other_user, project):
        project.assigned_users.append(other_user)
        db_session.commit()
        project_id = project.id

        project_service.purge_project(project_id, user)
        assert db_session.get(Project, project_id) is None


def test_client_lifecycle_routes(client, auth_headers, auth_headers_for, other_user, customer):
    url = f"/api/clients/{customer.id}"

    response = client.put(url, json={"name": "Cliente Editado", "address": {"city": "Sevilla"}},
                          headers=auth_headers)
    assert response.status_code == 200
    body = response.get_json()["client"]
    assert body["name"] == "Cliente Editado"
    assert body["address"]["city"] == "Sevilla"
    assert body["address"]["street"] == "Calle Mayor 1"

    assert client.put(url, json={"name": ""}, headers=auth_headers).status_code == 400
    assert client.put(url, json=["name"], headers=auth_headers).status_code == 400
    assert client.put(url, json={"name": "X"}, headers=auth_headers_for(other_user)).status_code == 403

    assert client.patch(f"{url}/archive", headers=auth_headers).get_json()["client"]["is_archived"] is True
    assert client.put(url, json={"name": "Y"}, headers=auth_headers).status_code == 409
    assert client.get("/api/clients", headers=auth_headers).get_json()["clients"] == []
    listed = client.get("/api/clients?include_archived=true", headers=auth_headers).get_json()["clients"]
    assert [c["id"] for c in listed] == [customer.id]
    assert client.patch(f"{url}/unarchive", headers=auth_headers).status_code == 200

    assert client.delete(url, headers=auth_headers).status_code == 200
    assert client.get(url, headers=auth_headers).status_code == 404
    assert client.delete(f"{url}/permanent", headers=auth_headers).status_code == 200
    assert client.delete(f"{url}/permanent", headers=auth_headers).status_code == 404


def test_project_lifecycle_routes(client, auth_headers, project, consulting_item):
    url = f"/api/projects/{project.id}"

    response = client.put(url, json={"description": "Planta 2", "start_date": "2024-02-01", "status": "completed"},
                          headers=auth_headers)
    assert response.status_code == 200
    body = response.get_json()["project"]
    assert body["description"] == "Planta 2"
    assert body["start_date"] == "2024-02-01"
    assert body["status"] == "completed"
    assert client.put(url, json={"start_date": "02/01/2024"}, headers=auth_headers).status_code == 400

    assert client.patch(f"{url}/archive", headers=auth_headers).status_code == 200
    assert client.get("/api/projects", headers=auth_headers).get_json()["projects"] == []
    assert client.patch(f"{url}/unarchive", headers=auth_headers).status_code == 200

    created = client.post("/api/deliverynote", json={"project_id": project.id, "items": [consulting_item]},
                          headers=auth_headers)
    note_id = created.get_json()["delivery_note"]["id"]
    assert client.delete(url, headers=auth_headers).status_code == 409
    assert client.delete(f"/api/deliverynote/{note_id}", headers=auth_headers).status_code == 200
    assert client.delete(url, headers=auth_headers).status_code == 200
    assert client.delete(f"{url}/permanent", headers=auth_headers).status_code == 409
