# Overview: Service-layer operations for delivery notes; creation, PDF publishing, signing, deletion.

"""
Delivery Note Lifecycle

STATE MACHINE:
    draft -> sent -> signed
    draft | sent -> canceled

CREATE is two-phase:
1. create_delivery_note: validate, persist as draft. Number and totals
   are assigned by the before_flush hook at save time. Must succeed or
   the whole call fails.
2. publish_delivery_note_pdf: render, store, set pdf_url and move draft
   -> sent. Run right after phase 1 on a best-effort basis (failures are
   logged, the note stays draft) and callable again on its own, without
   touching number or totals.

SIGN is all-or-nothing: signature upload, re-render and signed PDF upload
all happen before any field of the note changes. Any failure leaves the
note exactly as it was.

ACCESS: A note is visible to its creator and to members of its company.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Client, DeliveryNote, DeliveryNoteItem, DELIVERY_NOTE_STATUSES, User
from ..validation import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RenderOrStoreError,
    ValidationError,
    coerce_id,
    validate_line_items,
)
from . import pdf_service, project_service, storage_service
from albaranes.time_utils import end_of_day, utcnow


STATUS_DRAFT = "draft"
STATUS_SENT = "sent"
STATUS_SIGNED = "signed"
STATUS_CANCELED = "canceled"


def can_access_note(user: User, note: DeliveryNote) -> bool:
    if note.creator_id == user.id:
        return True
    return note.company_id is not None and note.company_id == user.company_id


def get_delivery_note(note_id: int, user: User) -> DeliveryNote:
    note = db.session.get(DeliveryNote, note_id)
    if not note:
        raise NotFoundError(f"Delivery note {note_id} not found")
    if not can_access_note(user, note):
        raise AuthorizationError("No access to this delivery note")
    return note


NUMBER_CONSTRAINT_MARKERS = ("uq_delivery_notes_number", "delivery_notes.number")


def _is_number_collision(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return any(marker in message for marker in NUMBER_CONSTRAINT_MARKERS)


def _commit() -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        if _is_number_collision(exc):
            raise ConflictError("Delivery note number already issued; please retry")
        raise ConflictError("Delivery note conflicts with existing data")
    except ConflictError:
        db.session.rollback()
        raise


# =============================================================================
# CREATION
# =============================================================================

def create_delivery_note(
    user: User,
    project_id,
    items,
    notes: str | None = None,
) -> DeliveryNote:
    """
    Create a delivery note and try to publish its PDF.

    Args:
        user: Caller; must have access to the project
        project_id: Owning project
        items: Raw item dicts (description, quantity, unit, unit_price?)
        notes: Free text

    Returns:
        The persisted note: "sent" with pdf_url when publishing worked,
        otherwise "draft" without pdf_url

    Raises:
        ValidationError: Missing project id or malformed items
        NotFoundError: Project does not exist
        AuthorizationError: Caller has no access to the project
        ConflictError: Number collided with a concurrent create
    """
    if project_id in (None, ""):
        raise ValidationError("project_id is required")
    project_id = coerce_id(project_id, "project_id")
    line_items = validate_line_items(items)

    project = project_service.get_project_for_user(project_id, user)

    note = DeliveryNote(
        project_id=project.id,
        client_id=project.client_id,
        creator_id=user.id,
        company_id=user.company_id,
        notes=notes,
        status=STATUS_DRAFT,
        date=utcnow(),
    )
    note.items = [
        DeliveryNoteItem.from_line_item(line, position)
        for position, line in enumerate(line_items)
    ]

    db.session.add(note)
    _commit()
    current_app.logger.info("Created delivery note %s (id=%s)", note.number, note.id)

    try:
        publish_delivery_note_pdf(note)
    except RenderOrStoreError:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to render or store PDF for delivery note %s; left as draft", note.number
        )

    return note


def publish_delivery_note_pdf(note: DeliveryNote) -> DeliveryNote:
    """
    Render and store the unsigned PDF, then record pdf_url (draft -> sent).

    Safe to repeat: the artifact name is stable, so a retry overwrites it.

    Raises:
        ConflictError: Note is signed, canceled or deleted
        RenderOrStoreError: Rendering or storage failed; note unchanged
    """
    if note.status in (STATUS_SIGNED, STATUS_CANCELED) or note.is_deleted:
        raise ConflictError(f"Cannot publish a PDF for a {note.status} delivery note")

    project = note.project
    client = db.session.get(Client, note.client_id)

    pdf_bytes = pdf_service.render_delivery_note(note, project, client)
    pdf_url = storage_service.store_pdf(pdf_bytes, f"delivery-note-{note.number}.pdf")

    note.pdf_url = pdf_url
    if note.status == STATUS_DRAFT:
        note.status = STATUS_SENT
    _commit()
    return note


def publish_pending_pdfs(limit: int = 100) -> tuple[int, int]:
    """Retry phase 2 for drafts without a PDF. Returns (published, failed)."""
    pending = (
        db.session.query(DeliveryNote)
        .filter(
            DeliveryNote.status == STATUS_DRAFT,
            DeliveryNote.pdf_url.is_(None),
            DeliveryNote.is_deleted.is_(False),
        )
        .order_by(DeliveryNote.id)
        .limit(limit)
        .all()
    )

    published = failed = 0
    for note in pending:
        try:
            publish_delivery_note_pdf(note)
            published += 1
        except RenderOrStoreError:
            db.session.rollback()
            current_app.logger.exception("Retry failed for delivery note %s", note.number)
            failed += 1
    return published, failed


# =============================================================================
# SIGNING
# =============================================================================

def sign_delivery_note(note_id: int, user: User, signature_image: str, signed_by: str) -> DeliveryNote:
    """
    Counter-sign a delivery note exactly once.

    Raises:
        ValidationError: Missing signer name or undecodable image
        NotFoundError / AuthorizationError: As for get_delivery_note
        ConflictError: Already signed, canceled or deleted
        RenderOrStoreError: Any artifact step failed; note unchanged
    """
    if not isinstance(signed_by, str) or not signed_by.strip():
        raise ValidationError("signed_by is required")
    image_bytes = storage_service.decode_signature_image(signature_image)

    note = get_delivery_note(note_id, user)
    if note.status == STATUS_SIGNED:
        raise ConflictError("Delivery note is already signed")
    if note.status == STATUS_CANCELED or note.is_deleted:
        raise ConflictError(f"Cannot sign a {'deleted' if note.is_deleted else note.status} delivery note")

    signed_by = signed_by.strip()
    signed_at = utcnow()

    signature_url = storage_service.store_signature(image_bytes, f"{note.id}.png")
    signed_pdf = pdf_service.render_delivery_note(
        note,
        note.project,
        db.session.get(Client, note.client_id),
        signature_image=image_bytes,
        signed_by=signed_by,
        signed_at=signed_at,
    )
    signed_pdf_url = storage_service.store_pdf(signed_pdf, f"signed-delivery-note-{note.number}.pdf")

    note.signature_date = signed_at
    note.signature_image = signature_url
    note.signed_by = signed_by
    note.signed_pdf_url = signed_pdf_url
    note.status = STATUS_SIGNED
    _commit()

    current_app.logger.info("Delivery note %s signed by %s", note.number, signed_by)
    return note


# =============================================================================
# CANCEL / DELETE
# =============================================================================

def cancel_delivery_note(note_id: int, user: User) -> DeliveryNote:
    note = get_delivery_note(note_id, user)
    if note.status not in (STATUS_DRAFT, STATUS_SENT):
        raise ConflictError(f"Cannot cancel a {note.status} delivery note")
    note.status = STATUS_CANCELED
    _commit()
    return note


def delete_delivery_note(note_id: int, user: User) -> DeliveryNote:
    """Soft delete. Signed notes cannot be deleted."""
    note = get_delivery_note(note_id, user)
    if note.status == STATUS_SIGNED:
        raise ConflictError("Signed delivery notes cannot be deleted")
    note.is_deleted = True
    _commit()
    return note


# =============================================================================
# QUERIES
# =============================================================================

def list_delivery_notes(
    user: User,
    *,
    project_id: int | None = None,
    client_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    to_date_inclusive_day: bool = True,
) -> list[DeliveryNote]:
    """
    Notes the user can see (own, or their company's), newest first.
    Soft-deleted notes are never listed. to_date covers its whole day
    unless to_date_inclusive_day is False.
    """
    visibility = [DeliveryNote.creator_id == user.id]
    if user.company_id:
        visibility.append(DeliveryNote.company_id == user.company_id)

    query = db.session.query(DeliveryNote).filter(
        or_(*visibility),
        DeliveryNote.is_deleted.is_(False),
    )

    if project_id:
        query = query.filter(DeliveryNote.project_id == project_id)
    if client_id:
        query = query.filter(DeliveryNote.client_id == client_id)
    if status:
        if status not in DELIVERY_NOTE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(DELIVERY_NOTE_STATUSES)}")
        query = query.filter(DeliveryNote.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(DeliveryNote.number.ilike(pattern), DeliveryNote.notes.ilike(pattern)))
    if from_date:
        query = query.filter(DeliveryNote.date >= from_date)
    if to_date:
        query = query.filter(DeliveryNote.date <= (end_of_day(to_date) if to_date_inclusive_day else to_date))

    return query.order_by(DeliveryNote.date.desc(), DeliveryNote.id.desc()).all()


def get_pdf_url(note_id: int, user: User, signed: bool = False) -> str:
    """Signed PDF URL when requested and available, otherwise the original PDF URL."""
    note = get_delivery_note(note_id, user)
    pdf_url = note.signed_pdf_url if signed and note.signed_pdf_url else note.pdf_url
    if not pdf_url:
        raise NotFoundError("PDF not found")
    return pdf_url
