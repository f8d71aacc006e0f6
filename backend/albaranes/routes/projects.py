# Overview: Flask API routes for clients and projects; parses input and returns JSON responses.

from datetime import date

from flask import Blueprint, request, jsonify, g, current_app

from ..services import project_service
from ..validation import ApiError, ValidationError, coerce_id, json_object, optional_text, require_text
from ..decorators import require_auth


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")
projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


def _optional_date(data: dict, key: str) -> date | None:
    value = data.get(key)
    if not value:
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{key} must be a YYYY-MM-DD date")


# =============================================================================
# CLIENTS
# =============================================================================

@clients_bp.post("")
@require_auth
def create_client_route():
    """
    Request body:
    {
        "name": "Acme",
        "cif": "B12345678",
        "owner_type": "user" | "company",  (optional, default: user)
        "contact_name", "email", "phone": optional strings,
        "address": {"street", "city", "postal_code", "country"}  (optional)
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        address = data.get("address") or {}
        if not isinstance(address, dict):
            raise ValidationError("address must be an object")

        client = project_service.create_client(
            g.current_user,
            name=require_text(data, "name"),
            cif=require_text(data, "cif"),
            owner_type=data.get("owner_type"),
            contact_name=optional_text(data, "contact_name"),
            email=optional_text(data, "email"),
            phone=optional_text(data, "phone"),
            street=optional_text(address, "street"),
            city=optional_text(address, "city"),
            postal_code=optional_text(address, "postal_code"),
            country=optional_text(address, "country"),
        )
        return jsonify({"client": client.to_dict()}), 201

    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("")
@require_auth
def list_clients_route():
    """Query params: include_archived=true, search (name, tax id, contact, email)."""
    clients = project_service.list_clients(
        g.current_user,
        include_archived=request.args.get("include_archived", "").lower() == "true",
        search=request.args.get("search") or None,
    )
    return jsonify({"clients": [c.to_dict() for c in clients]}), 200


@clients_bp.get("/<int:client_id>")
@require_auth
def get_client_route(client_id: int):
    try:
        client = project_service.get_client_for_user(client_id, g.current_user)
        return jsonify({"client": client.to_dict()}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code


def _client_changes(data: dict) -> dict:
    """Only the keys present in the body; name and cif may not be blanked."""
    changes = {}
    for key in ("name", "cif"):
        if key in data:
            changes[key] = require_text(data, key)
    for key in ("contact_name", "email", "phone"):
        if key in data:
            changes[key] = optional_text(data, key)

    if "address" in data:
        address = data.get("address") or {}
        if not isinstance(address, dict):
            raise ValidationError("address must be an object")
        for key in ("street", "city", "postal_code", "country"):
            if key in address:
                changes[key] = optional_text(address, key)
    return changes


@clients_bp.put("/<int:client_id>")
@require_auth
def update_client_route(client_id: int):
    """
    Update a client. Body as for creation; omitted keys are left unchanged.

    Returns:
        200: Updated client
        409: Client is archived
    """
    try:
        data = json_object(request.get_json(silent=True))
        client = project_service.update_client(client_id, g.current_user, **_client_changes(data))
        return jsonify({"client": client.to_dict()}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.patch("/<int:client_id>/archive")
@require_auth
def archive_client_route(client_id: int):
    try:
        client = project_service.set_client_archived(client_id, g.current_user, True)
        return jsonify({"client": client.to_dict(), "message": "Client archived"}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code


@clients_bp.patch("/<int:client_id>/unarchive")
@require_auth
def unarchive_client_route(client_id: int):
    try:
        client = project_service.set_client_archived(client_id, g.current_user, False)
        return jsonify({"client": client.to_dict(), "message": "Client restored"}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code


@clients_bp.delete("/<int:client_id>")
@require_auth
def delete_client_route(client_id: int):
    """Soft delete. 409 while the client has projects."""
    try:
        project_service.delete_client(client_id, g.current_user)
        return jsonify({"message": "Client deleted"}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.delete("/<int:client_id>/permanent")
@require_auth
def purge_client_route(client_id: int):
    """Permanent delete. 409 while projects or delivery notes reference the client."""
    try:
        project_service.purge_client(client_id, g.current_user)
        return jsonify({"message": "Client permanently deleted"}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to permanently delete client")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PROJECTS
# =============================================================================

@projects_bp.post("")
@require_auth
def create_project_route():
    """
    Request body:
    {
        "name": "Office refit",
        "client_id": 1,
        "description": "...",  (optional)
        "start_date": "2024-01-31", "end_date": "...",  (optional)
        "owner_type": "user" | "company",  (optional)
        "assigned_user_ids": [2, 3]  (optional)
    }
    """
    try:
        data = json_object(request.get_json(silent=True))
        if data.get("client_id") is None:
            raise ValidationError("client_id is required")

        assigned = data.get("assigned_user_ids") or []
        if not isinstance(assigned, list):
            raise ValidationError("assigned_user_ids must be a list")

        project = project_service.create_project(
            g.current_user,
            name=require_text(data, "name"),
            client_id=coerce_id(data["client_id"], "client_id"),
            description=optional_text(data, "description"),
            start_date=_optional_date(data, "start_date"),
            end_date=_optional_date(data, "end_date"),
            owner_type=data.get("owner_type"),
            assigned_user_ids=[coerce_id(v, "assigned_user_ids") for v in assigned],
        )
        return jsonify({"project": project.to_dict()}), 201

    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create project")
        return jsonify({"error": "Internal server error"}), 500


@projects_bp.get("")
@require_auth
def list_projects_route():
    client_id = request.args.get("client_id", type=int)
    projects = project_service.list_projects(
        g.current_user,
        client_id=client_id,
        include_archived=request.args.get("include_archived", "").lower() == "true",
    )
    return jsonify({"projects": [p.to_dict() for p in projects]}), 200


@projects_bp.get("/<int:project_id>")
@require_auth
def get_project_route(project_id: int):
    try:
        project = project_service.get_project_for_user(project_id, g.current_user)
        return jsonify({"project": project.to_dict()}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code


@projects_bp.put("/<int:project_id>")
@require_auth
def update_project_route(project_id: int):
    """
    Update a project. Accepts name, description, client_id, start_date,
    end_date, status and assigned_user_ids; omitted keys are left unchanged.

    Returns:
        200: Updated project
        403: Caller does not own the project
        409: Project is archived
    """
    try:
        data = json_object(request.get_json(silent=True))
        changes = {}
        if "name" in data:
            changes["name"] = require_text(data, "name")
        if "description" in data:
            changes["description"] = optional_text(data, "description")
        for key in ("start_date", "end_date"):
            if key in data:
                changes[key] = _optional_date(data, key)
        if "status" in data:
            changes["status"] = require_text(data, "status")

        client_id = data.get("client_id")
        assigned = data.get("assigned_user_ids")
        if assigned is not None and not isinstance(assigned, list):
            raise ValidationError("assigned_user_ids must be a list")

        project = project_service.update_project(
            project_id,
            g.current_user,
            client_id=coerce_id(client_id, "client_id") if client_id is not None else None,
            assigned_user_ids=[coerce_id(v, "assigned_user_ids") for v in assigned] if assigned is not None else None,
            **changes,
        )
        return jsonify({"project": project.to_dict()}), 200

    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update project")
        return jsonify({"error": "Internal server error"}), 500


@projects_bp.patch("/<int:project_id>/archive")
@require_auth
def archive_project_route(project_id: int):
    try:
        project = project_service.set_project_archived(project_id, g.current_user, True)
        return jsonify({"project": project.to_dict(), "message": "Project archived"}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code


@projects_bp.patch("/<int:project_id>/unarchive")
@require_auth
def unarchive_project_route(project_id: int):
    try:
        project = project_service.set_project_archived(project_id, g.current_user, False)
        return jsonify({"project": project.to_dict(), "message": "Project restored"}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code


@projects_bp.delete("/<int:project_id>")
@require_auth
def delete_project_route(project_id: int):
    """Soft delete. 409 while the project has delivery notes."""
    try:
        project_service.delete_project(project_id, g.current_user)
        return jsonify({"message": "Project deleted"}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete project")
        return jsonify({"error": "Internal server error"}), 500


@projects_bp.delete("/<int:project_id>/permanent")
@require_auth
def purge_project_route(project_id: int):
    """Permanent delete. 409 while any delivery note references the project."""
    try:
        project_service.purge_project(project_id, g.current_user)
        return jsonify({"message": "Project permanently deleted"}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to permanently delete project")
        return jsonify({"error": "Internal server error"}), 500
