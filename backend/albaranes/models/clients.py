from __future__ import annotations

from ..extensions import db
from albaranes.time_utils import to_utc_z
from .tenancy import OwnedMixin


project_assignments = db.Table(
    "project_assignments",
    db.Column("project_id", db.Integer, db.ForeignKey("projects.id"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
)


class Client(OwnedMixin, db.Model):
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_owner", "owner_type", "owner_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    cif = db.Column(db.String(32), nullable=False)
    contact_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    # Postal address
    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    postal_code = db.Column(db.String(16), nullable=True)
    country = db.Column(db.String(120), nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def address_line(self) -> str:
        return ", ".join(part for part in (self.street, self.city, self.postal_code, self.country) if part)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cif": self.cif,
            "contact_name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "address": {
                "street": self.street,
                "city": self.city,
                "postal_code": self.postal_code,
                "country": self.country,
            },
            "owner_type": self.owner_type,
            "owner_id": self.owner_id,
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
        }


class Project(OwnedMixin, db.Model):
    __tablename__ = "projects"
    __table_args__ = (
        db.Index("ix_projects_owner", "owner_type", "owner_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")  # active, completed, canceled

    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    client = db.relationship("Client", backref=db.backref("projects", lazy=True))
    assigned_users = db.relationship("User", secondary=project_assignments, lazy="subquery")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "client_id": self.client_id,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "status": self.status,
            "owner_type": self.owner_type,
            "owner_id": self.owner_id,
            "assigned_user_ids": [u.id for u in self.assigned_users],
            "is_archived": self.is_archived,
            "created_at": to_utc_z(self.created_at),
        }
