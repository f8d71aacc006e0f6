from .tenancy import Company, CompanyOwner, Owner, UserOwner, OWNER_TYPE_COMPANY, OWNER_TYPE_USER
from .auth import User, SessionToken
from .clients import Client, Project, project_assignments
from .delivery_notes import DeliveryNote, DeliveryNoteItem, DELIVERY_NOTE_STATUSES

__all__ = [
    'Company', 'CompanyOwner', 'Owner', 'UserOwner', 'OWNER_TYPE_COMPANY', 'OWNER_TYPE_USER',
    'User', 'SessionToken',
    'Client', 'Project', 'project_assignments',
    'DeliveryNote', 'DeliveryNoteItem', 'DELIVERY_NOTE_STATUSES',
]
