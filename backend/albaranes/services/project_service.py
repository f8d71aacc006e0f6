# Overview: Service-layer operations for clients and projects; ownership checks live here.

"""
Clients and Projects

OWNERSHIP: A client or project is owned by a user (UserOwner) or by a
company (CompanyOwner). A user sees what they own, what their company
owns, and (for projects) anything they are assigned to. Only owners
modify, archive or delete.

LIFECYCLE:
- archived records are read-only until unarchived and hidden from lists
  unless include_archived is requested
- soft delete hides the record everywhere; refused while live children
  exist (projects of a client, delivery notes of a project)
- permanent delete is refused while anything references the record,
  soft-deleted children included
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Client,
    CompanyOwner,
    DeliveryNote,
    OWNER_TYPE_COMPANY,
    OWNER_TYPE_USER,
    Owner,
    Project,
    User,
    UserOwner,
    project_assignments,
)
from ..validation import AuthorizationError, ConflictError, NotFoundError, ValidationError


PROJECT_STATUSES = ("active", "completed", "canceled")

CLIENT_FIELDS = (
    "name", "cif", "contact_name", "email", "phone",
    "street", "city", "postal_code", "country",
)
PROJECT_FIELDS = ("name", "description", "start_date", "end_date", "status")


def resolve_owner(user: User, owner_type: str | None) -> Owner:
    """Owner for a new record: the user, or the user's company when asked for."""
    if owner_type in (None, OWNER_TYPE_USER):
        return UserOwner(user.id)
    if owner_type == OWNER_TYPE_COMPANY:
        if not user.company_id:
            raise ValidationError("User does not belong to a company")
        return CompanyOwner(user.company_id)
    raise ValidationError(f"owner_type must be '{OWNER_TYPE_USER}' or '{OWNER_TYPE_COMPANY}'")


def is_owner(user: User, owner: Owner) -> bool:
    if isinstance(owner, UserOwner):
        return owner.id == user.id
    return user.company_id is not None and owner.id == user.company_id


def _owner_filter(model, user: User):
    clauses = [and_(model.owner_type == OWNER_TYPE_USER, model.owner_id == user.id)]
    if user.company_id:
        clauses.append(and_(model.owner_type == OWNER_TYPE_COMPANY, model.owner_id == user.company_id))
    return or_(*clauses)


def _apply_changes(record, changes: dict, allowed: tuple) -> None:
    unknown = set(changes) - set(allowed)
    if unknown:
        raise ValidationError(f"Cannot update: {', '.join(sorted(unknown))}")
    for field, value in changes.items():
        setattr(record, field, value)


def _commit_or_conflict(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(message)


# =============================================================================
# CLIENTS
# =============================================================================

def create_client(user: User, *, name: str, cif: str, owner_type: str | None = None, **fields) -> Client:
    client = Client(name=name, cif=cif, **fields)
    client.owner = resolve_owner(user, owner_type)
    db.session.add(client)
    db.session.commit()
    return client


def list_clients(user: User, *, include_archived: bool = False, search: str | None = None) -> list[Client]:
    query = db.session.query(Client).filter(_owner_filter(Client, user), Client.is_deleted.is_(False))
    if not include_archived:
        query = query.filter(Client.is_archived.is_(False))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Client.name.ilike(pattern),
            Client.cif.ilike(pattern),
            Client.contact_name.ilike(pattern),
            Client.email.ilike(pattern),
        ))
    return query.order_by(Client.name).all()


def get_client_for_user(client_id: int, user: User) -> Client:
    client = db.session.get(Client, client_id)
    if not client or client.is_deleted:
        raise NotFoundError(f"Client {client_id} not found")
    if not is_owner(user, client.owner):
        raise AuthorizationError("No access to this client")
    return client


def update_client(client_id: int, user: User, **changes) -> Client:
    """
    Update client fields (see CLIENT_FIELDS).

    Raises:
        ConflictError: Client is archived
    """
    client = get_client_for_user(client_id, user)
    if client.is_archived:
        raise ConflictError("Archived clients cannot be edited")
    _apply_changes(client, changes, CLIENT_FIELDS)
    db.session.commit()
    return client


def set_client_archived(client_id: int, user: User, archived: bool) -> Client:
    client = get_client_for_user(client_id, user)
    client.is_archived = archived
    db.session.commit()
    return client


def delete_client(client_id: int, user: User) -> Client:
    """Soft delete; refused while the client has projects that are not deleted."""
    client = get_client_for_user(client_id, user)
    live_projects = (
        db.session.query(Project)
        .filter(Project.client_id == client.id, Project.is_deleted.is_(False))
        .count()
    )
    if live_projects:
        raise ConflictError("Client has projects and cannot be deleted")
    client.is_deleted = True
    db.session.commit()
    return client


def purge_client(client_id: int, user: User) -> None:
    """Permanent delete. Refused while any project or delivery note references the client."""
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFoundError(f"Client {client_id} not found")
    if not is_owner(user, client.owner):
        raise AuthorizationError("No access to this client")

    projects = db.session.query(Project).filter(Project.client_id == client.id).count()
    notes = db.session.query(DeliveryNote).filter(DeliveryNote.client_id == client.id).count()
    if projects or notes:
        raise ConflictError("Client is still referenced by projects or delivery notes")

    db.session.delete(client)
    _commit_or_conflict("Client is still referenced and cannot be removed")


# =============================================================================
# PROJECTS
# =============================================================================

def get_project(project_id: int) -> Project | None:
    """Project lookup by id; soft-deleted projects count as missing."""
    project = db.session.get(Project, project_id)
    if not project or project.is_deleted:
        return None
    return project


def can_access_project(user: User, project: Project) -> bool:
    if any(assigned.id == user.id for assigned in project.assigned_users):
        return True
    return is_owner(user, project.owner)


def get_project_for_user(project_id: int, user: User) -> Project:
    project = get_project(project_id)
    if not project:
        raise NotFoundError(f"Project {project_id} not found")
    if not can_access_project(user, project):
        raise AuthorizationError("No access to this project")
    return project


def _owned_project(project_id: int, user: User) -> Project:
    project = get_project(project_id)
    if not project:
        raise NotFoundError(f"Project {project_id} not found")
    if not is_owner(user, project.owner):
        raise AuthorizationError("Only the project owner can change this project")
    return project


def _assigned_users(user_ids: list[int]) -> list[User]:
    users = []
    for assigned_id in user_ids:
        assigned = db.session.get(User, assigned_id)
        if not assigned:
            raise ValidationError(f"User {assigned_id} not found")
        users.append(assigned)
    return users


def create_project(
    user: User,
    *,
    name: str,
    client_id: int,
    description: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    owner_type: str | None = None,
    assigned_user_ids: list[int] | None = None,
) -> Project:
    client = get_client_for_user(client_id, user)

    project = Project(
        name=name,
        description=description,
        client_id=client.id,
        start_date=start_date,
        end_date=end_date,
        status="active",
    )
    project.owner = resolve_owner(user, owner_type)
    project.assigned_users.extend(_assigned_users(assigned_user_ids or []))

    db.session.add(project)
    db.session.commit()
    return project


def update_project(
    project_id: int,
    user: User,
    *,
    client_id: int | None = None,
    assigned_user_ids: list[int] | None = None,
    **changes,
) -> Project:
    """
    Update project fields (see PROJECT_FIELDS), its client and its assigned users.

    Raises:
        ConflictError: Project is archived
        ValidationError: Unknown status
    """
    project = _owned_project(project_id, user)
    if project.is_archived:
        raise ConflictError("Archived projects cannot be edited")

    status = changes.get("status")
    if status is not None and status not in PROJECT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PROJECT_STATUSES)}")

    if client_id is not None and client_id != project.client_id:
        project.client_id = get_client_for_user(client_id, user).id
    if assigned_user_ids is not None:
        project.assigned_users = _assigned_users(assigned_user_ids)
    _apply_changes(project, changes, PROJECT_FIELDS)

    db.session.commit()
    return project


def set_project_archived(project_id: int, user: User, archived: bool) -> Project:
    project = _owned_project(project_id, user)
    project.is_archived = archived
    db.session.commit()
    return project


def delete_project(project_id: int, user: User) -> Project:
    """Soft delete; refused while the project has delivery notes that are not deleted."""
    project = _owned_project(project_id, user)
    live_notes = (
        db.session.query(DeliveryNote)
        .filter(DeliveryNote.project_id == project.id, DeliveryNote.is_deleted.is_(False))
        .count()
    )
    if live_notes:
        raise ConflictError("Project has delivery notes and cannot be deleted")
    project.is_deleted = True
    db.session.commit()
    return project


def purge_project(project_id: int, user: User) -> None:
    """Permanent delete. Refused while any delivery note references the project."""
    project = db.session.get(Project, project_id)
    if not project:
        raise NotFoundError(f"Project {project_id} not found")
    if not is_owner(user, project.owner):
        raise AuthorizationError("Only the project owner can change this project")

    if db.session.query(DeliveryNote).filter(DeliveryNote.project_id == project.id).count():
        raise ConflictError("Project is still referenced by delivery notes")

    project.assigned_users = []
    db.session.delete(project)
    _commit_or_conflict("Project is still referenced and cannot be removed")


def list_projects(user: User, client_id: int | None = None, *, include_archived: bool = False) -> list[Project]:
    assigned = db.session.query(project_assignments.c.project_id).filter(
        project_assignments.c.user_id == user.id
    )
    query = db.session.query(Project).filter(
        or_(_owner_filter(Project, user), Project.id.in_(assigned)),
        Project.is_deleted.is_(False),
    )
    if not include_archived:
        query = query.filter(Project.is_archived.is_(False))
    if client_id:
        query = query.filter(Project.client_id == client_id)
    return query.order_by(Project.created_at.desc(), Project.id.desc()).all()
