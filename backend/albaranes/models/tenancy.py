from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..extensions import db
from albaranes.time_utils import to_utc_z


OWNER_TYPE_USER = "user"
OWNER_TYPE_COMPANY = "company"


@dataclass(frozen=True)
class UserOwner:
    id: int
    kind = OWNER_TYPE_USER


@dataclass(frozen=True)
class CompanyOwner:
    id: int
    kind = OWNER_TYPE_COMPANY


Owner = Union[UserOwner, CompanyOwner]


def owner_from_columns(owner_type: str, owner_id: int) -> Owner:
    if owner_type == OWNER_TYPE_USER:
        return UserOwner(owner_id)
    if owner_type == OWNER_TYPE_COMPANY:
        return CompanyOwner(owner_id)
    raise ValueError(f"Unknown owner type {owner_type!r}")


class OwnedMixin:
    """
    Administrative owner of a client or project: a user or a company.

    Stored as (owner_type, owner_id); read and written through `owner`.
    """
    owner_type = db.Column(db.String(16), nullable=False)
    owner_id = db.Column(db.Integer, nullable=False)

    @property
    def owner(self) -> Owner:
        return owner_from_columns(self.owner_type, self.owner_id)

    @owner.setter
    def owner(self, value: Owner) -> None:
        self.owner_type = value.kind
        self.owner_id = value.id


class Company(db.Model):
    """
    Company account. Users that belong to a company share access to the
    clients, projects and delivery notes the company owns.
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    cif = db.Column(db.String(32), nullable=False, unique=True, index=True)  # Tax id (NIF/CIF)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(512), nullable=True)

    admin_user_id = db.Column(db.Integer, nullable=True)  # users.id

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cif": self.cif,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "admin_user_id": self.admin_user_id,
            "created_at": to_utc_z(self.created_at),
        }
