# Overview: Bearer session tokens for API callers; issue, check and revoke.

"""
Bearer Sessions

Tokens are random, returned to the client once, and stored only as a
SHA-256 hash. Sessions expire after SESSION_ABSOLUTE_TIMEOUT_HOURS and are
revoked after SESSION_IDLE_TIMEOUT_HOURS without use.
"""

import secrets
import hashlib
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from albaranes.time_utils import utcnow


TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _hours(key: str) -> timedelta:
    return timedelta(hours=current_app.config[key])


def _active_record(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.is_revoked.is_(False))
        .one_or_none()
    )


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for an active user.

    Returns (record, token). Only the hash of token is stored.

    Raises:
        ValueError: Unknown or inactive user
    """
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise ValueError(f"No active user with id {user_id}")

    token = generate_token()
    issued_at = utcnow()
    record = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=issued_at,
        last_used_at=issued_at,
        expires_at=issued_at + _hours("SESSION_ABSOLUTE_TIMEOUT_HOURS"),
        user_agent=user_agent,
        ip_address=ip_address,
    )
    db.session.add(record)
    db.session.commit()
    return record, token


def _revoke(record: SessionToken, reason: str) -> None:
    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> User | None:
    """
    User behind token, or None.

    Idle sessions and sessions of deactivated users are revoked on sight;
    a successful check refreshes last_used_at.
    """
    record = _active_record(token)
    if record is None:
        return None

    now = utcnow()
    if record.expires_at < now:
        return None
    if now - record.last_used_at > _hours("SESSION_IDLE_TIMEOUT_HOURS"):
        _revoke(record, "Idle timeout")
        return None
    if record.user is None or not record.user.is_active:
        _revoke(record, "User account deactivated")
        return None

    record.last_used_at = now
    db.session.commit()
    return record.user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """False when no active session matches token."""
    record = _active_record(token)
    if record is None:
        return False
    _revoke(record, reason)
    return True
