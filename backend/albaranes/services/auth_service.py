# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Passwords are hashed with bcrypt (cost factor 12). Users register
themselves; a user may then create a company and becomes its admin.
Session tokens are managed separately (see session_service.py).
"""

import re

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Company, User
from ..validation import AuthorizationError, ConflictError, NotFoundError, ValidationError


EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Requirements: at least 8 characters, one letter and one digit.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(name: str, email: str, password: str, role: str = "user") -> User:
    """
    Register a user.

    Raises:
        ValidationError: Bad email or weak password
        ConflictError: Email already registered
    """
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("A valid email is required")
    if not name or not name.strip():
        raise ValidationError("name is required")

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("Email already registered")

    user = User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already registered")
    return user


def authenticate(email: str, password: str) -> User | None:
    """Return the active user matching email/password, else None."""
    user = db.session.query(User).filter_by(email=(email or "").strip().lower()).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password or "", user.password_hash):
        return None
    return user


def create_company(admin: User, name: str, cif: str, email: str | None = None,
                   phone: str | None = None, address: str | None = None) -> Company:
    """
    Create a company with admin as its first member.

    Raises:
        ConflictError: admin already belongs to a company, or cif is taken
    """
    if admin.company_id:
        raise ConflictError("User already belongs to a company")

    company = Company(name=name, cif=cif, email=email, phone=phone, address=address)
    db.session.add(company)
    try:
        db.session.flush()
        company.admin_user_id = admin.id
        admin.company_id = company.id
        admin.role = "admin"
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Company with tax id {cif} already exists")
    return company


def update_profile(user: User, name: str | None = None, email: str | None = None) -> User:
    """
    Change the caller's name and/or email.

    Raises:
        ValidationError: Blank name or bad email
        ConflictError: Email belongs to another user
    """
    if name is not None:
        if not name.strip():
            raise ValidationError("name is required")
        user.name = name.strip()

    if email is not None:
        email = email.strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("A valid email is required")
        taken = db.session.query(User).filter(User.email == email, User.id != user.id).first()
        if taken:
            raise ConflictError("Email already registered")
        user.email = email

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already registered")
    return user


COMPANY_FIELDS = ("name", "cif", "email", "phone", "address")


def update_company(user: User, **changes) -> Company:
    """
    Update the caller's company. Only its admin may do so.

    Raises:
        NotFoundError: User has no company
        AuthorizationError: User is not the company admin
        ConflictError: cif belongs to another company
    """
    company = user.company
    if not company:
        raise NotFoundError("User does not belong to a company")
    if company.admin_user_id != user.id:
        raise AuthorizationError("Only the company admin can update the company")

    unknown = set(changes) - set(COMPANY_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update: {', '.join(sorted(unknown))}")
    for field, value in changes.items():
        setattr(company, field, value)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Company with tax id {changes.get('cif')} already exists")
    return company
