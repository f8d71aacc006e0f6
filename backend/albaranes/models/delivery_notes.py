from __future__ import annotations

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from ..extensions import db
from ..validation import ConflictError
from ..services import numbering_service
from ..services.totals_service import LineItem, compute_totals
from albaranes.time_utils import to_utc_z, utcnow


DELIVERY_NOTE_STATUSES = ("draft", "sent", "signed", "canceled")


class DeliveryNote(db.Model):
    """
    Delivery note (albaran): dated, numbered record of goods or services
    delivered under a project.

    LIFECYCLE:
    1. draft:    persisted, number and total assigned, no PDF yet
    2. sent:     PDF rendered and stored (pdf_url set)
    3. signed:   counter-signed, signed PDF stored; immutable from here on
    4. canceled: withdrawn from draft or sent

    Soft deletion (is_deleted) is separate from status and never applies
    to signed notes.

    DERIVED FIELDS (assigned in the before_flush hook below):
    - number: on first flush only, never reassigned
    - item amounts and total: on every flush
    """
    __tablename__ = "delivery_notes"
    __table_args__ = (
        db.UniqueConstraint("number", name="uq_delivery_notes_number"),
        db.Index("ix_delivery_notes_created", "created_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "ALB-2310-0001")
    number = db.column_property(db.Column(db.String(64), nullable=False), active_history=True)
    date = db.column_property(
        db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow), active_history=True
    )

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    creator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)

    total = db.Column(db.Float, nullable=False, default=0.0)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    # Signature (present iff status == "signed")
    signature_date = db.Column(db.DateTime(timezone=True), nullable=True)
    signature_image = db.Column(db.String(1024), nullable=True)
    signed_by = db.Column(db.String(255), nullable=True)

    pdf_url = db.Column(db.String(1024), nullable=True)
    signed_pdf_url = db.Column(db.String(1024), nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", backref=db.backref("delivery_notes", lazy=True))
    client = db.relationship("Client")
    creator = db.relationship("User", foreign_keys=[creator_id])
    company = db.relationship("Company")
    items = db.relationship(
        "DeliveryNoteItem",
        back_populates="delivery_note",
        order_by="DeliveryNoteItem.position",
        cascade="all, delete-orphan",
    )

    @property
    def signature(self) -> dict | None:
        if self.signature_date is None:
            return None
        return {
            "date": to_utc_z(self.signature_date),
            "image": self.signature_image,
            "signed_by": self.signed_by,
        }

    def recalculate_totals(self, removed=()) -> None:
        """Recompute item amounts and total, skipping items in `removed` (pending deletes)."""
        live = [item for item in self.items if item not in removed]
        priced, total = compute_totals(item.to_line_item() for item in live)
        for item, line in zip(live, priced):
            item.amount = line.amount
        self.total = total

    def __repr__(self) -> str:
        return f"<DeliveryNote id={self.id} number={self.number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "date": to_utc_z(self.date),
            "project_id": self.project_id,
            "client_id": self.client_id,
            "creator_id": self.creator_id,
            "company_id": self.company_id,
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "notes": self.notes,
            "status": self.status,
            "signature": self.signature,
            "pdf_url": self.pdf_url,
            "signed_pdf_url": self.signed_pdf_url,
            "is_deleted": self.is_deleted,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DeliveryNoteItem(db.Model):
    """Line item. `amount` is derived from quantity and unit_price, never client supplied."""
    __tablename__ = "delivery_note_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    delivery_note_id = db.Column(db.Integer, db.ForeignKey("delivery_notes.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(16), nullable=False)  # hour, unit, kg, meter, liter
    unit_price = db.Column(db.Float, nullable=True)
    amount = db.Column(db.Float, nullable=False, default=0.0)

    delivery_note = db.relationship("DeliveryNote", back_populates="items")

    @classmethod
    def from_line_item(cls, line: LineItem, position: int) -> "DeliveryNoteItem":
        return cls(
            position=position,
            description=line.description,
            quantity=line.quantity,
            unit=line.unit,
            unit_price=line.unit_price,
        )

    def to_line_item(self) -> LineItem:
        return LineItem(
            description=self.description,
            quantity=self.quantity,
            unit=self.unit,
            unit_price=self.unit_price,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "description": self.description,
            "quantity": self.quantity,
            "unit": self.unit,
            "unit_price": self.unit_price,
            "amount": self.amount,
        }


def _touched_delivery_notes(session) -> list[DeliveryNote]:
    notes: dict[int, DeliveryNote] = {}
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        if isinstance(obj, DeliveryNote):
            note = obj
        elif isinstance(obj, DeliveryNoteItem) and obj.delivery_note is not None:
            note = obj.delivery_note
        else:
            continue
        if note not in session.deleted:
            notes[id(note)] = note
    return list(notes.values())


def _guard_immutable(note: DeliveryNote) -> None:
    state = inspect(note)
    if state.transient or state.pending:
        return
    for field in ("number", "date"):
        history = state.attrs[field].history
        if history.deleted and history.deleted[0] is not None:
            raise ConflictError(f"Delivery note {field} cannot be changed once assigned")


@event.listens_for(Session, "before_flush")
def _prepare_delivery_notes(session, flush_context, instances):
    """
    Runs right before every flush that touches a delivery note:
    - rejects changes to an assigned number/date
    - numbers new notes, reading the last issued number now (at save time)
    - recomputes item amounts and the note total
    """
    with session.no_autoflush:
        notes = _touched_delivery_notes(session)
        if not notes:
            return

        for note in notes:
            _guard_immutable(note)

        unnumbered = [n for n in notes if n.number is None]
        for note in unnumbered:
            if note.date is None:
                note.date = utcnow()
        unnumbered.sort(key=lambda n: n.date)

        previous = None
        for note in unnumbered:
            if previous is None:
                note.number = numbering_service.next_number_for_save(session, note.date)
            else:
                note.number = numbering_service.allocate_number(note.date, previous)
            previous = note.number

        for note in notes:
            note.recalculate_totals(removed=session.deleted)
