# Overview: Flask API routes for delivery notes; parses input and returns JSON responses.

# backend/albaranes/routes/delivery_notes.py
"""
Delivery Note API Routes

- Create notes for a project (numbered and totalled on save, PDF published best-effort)
- List/search notes visible to the caller
- Fetch PDFs (original or signed), re-run PDF publishing
- Sign once, cancel, soft delete

Failures map to: 400 validation, 403 ownership, 404 missing,
409 conflict (double sign, deleting a signed note, number collision),
500 rendering/storage or unexpected errors.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import delivery_note_service
from ..validation import ApiError, ValidationError, coerce_id, json_object
from ..decorators import require_auth
from albaranes.time_utils import is_date_only, parse_iso_datetime


delivery_notes_bp = Blueprint("delivery_notes", __name__, url_prefix="/api/deliverynote")


def _parse_date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date")


# =============================================================================
# CREATION
# =============================================================================

@delivery_notes_bp.post("")
@require_auth
def create_delivery_note_route():
    """
    Create a delivery note.

    Request body:
    {
        "project_id": 1,
        "items": [
            {"description": "Consulting", "quantity": 5, "unit": "hour", "unit_price": 50}
        ],
        "notes": "Monthly report included"  (optional)
    }

    Returns:
        201: The persisted note. status "sent" with pdf_url, or "draft"
             without pdf_url when the PDF could not be produced
        400: Invalid input
        403: No access to the project
        404: Project not found
        409: Number collision with a concurrent create
    """
    try:
        data = json_object(request.get_json(silent=True))
        notes = data.get("notes")
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string")

        note = delivery_note_service.create_delivery_note(
            g.current_user,
            project_id=data.get("project_id"),
            items=data.get("items"),
            notes=notes,
        )
        return jsonify({"delivery_note": note.to_dict()}), 201

    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create delivery note")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@delivery_notes_bp.get("")
@require_auth
def list_delivery_notes_route():
    """
    Query params: project_id, client_id, status, search, from_date, to_date
    (a plain YYYY-MM-DD to_date includes that whole day).
    """
    try:
        args = request.args
        project_id = args.get("project_id")
        client_id = args.get("client_id")

        notes = delivery_note_service.list_delivery_notes(
            g.current_user,
            project_id=coerce_id(project_id, "project_id") if project_id else None,
            client_id=coerce_id(client_id, "client_id") if client_id else None,
            status=args.get("status") or None,
            search=args.get("search") or None,
            from_date=_parse_date_arg("from_date"),
            to_date=_parse_date_arg("to_date"),
            to_date_inclusive_day=is_date_only(args.get("to_date")),
        )
        return jsonify({"delivery_notes": [n.to_dict() for n in notes]}), 200

    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list delivery notes")
        return jsonify({"error": "Internal server error"}), 500


@delivery_notes_bp.get("/<int:note_id>")
@require_auth
def get_delivery_note_route(note_id: int):
    try:
        note = delivery_note_service.get_delivery_note(note_id, g.current_user)
        return jsonify({"delivery_note": note.to_dict()}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load delivery note")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PDF
# =============================================================================

@delivery_notes_bp.get("/<int:note_id>/pdf")
@require_auth
def get_delivery_note_pdf_route(note_id: int):
    """?signed=true returns the signed PDF when one exists."""
    try:
        signed = request.args.get("signed", "").lower() == "true"
        pdf_url = delivery_note_service.get_pdf_url(note_id, g.current_user, signed=signed)
        return jsonify({"pdf_url": pdf_url}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load delivery note PDF")
        return jsonify({"error": "Internal server error"}), 500


@delivery_notes_bp.post("/<int:note_id>/pdf")
@require_auth
def publish_delivery_note_pdf_route(note_id: int):
    """
    Re-run PDF publishing for a note whose PDF is missing or stale.

    Returns:
        200: Note with pdf_url (status "sent")
        409: Note is signed, canceled or deleted
        500: Rendering or storage failed again
    """
    try:
        note = delivery_note_service.get_delivery_note(note_id, g.current_user)
        note = delivery_note_service.publish_delivery_note_pdf(note)
        return jsonify({"delivery_note": note.to_dict()}), 200
    except ApiError as e:
        if e.status_code >= 500:
            current_app.logger.exception("Failed to publish delivery note PDF")
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to publish delivery note PDF")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SIGN / CANCEL / DELETE
# =============================================================================

@delivery_notes_bp.post("/<int:note_id>/sign")
@require_auth
def sign_delivery_note_route(note_id: int):
    """
    Request body:
    {
        "signature_image": "data:image/png;base64,...",
        "signed_by": "Pedro Client"
    }

    Returns:
        200: Signed note (status "signed", signature, signed_pdf_url)
        400: Missing/invalid signature or signer
        409: Already signed (or canceled/deleted)
        500: Signature or PDF storage failed; note unchanged
    """
    try:
        data = json_object(request.get_json(silent=True))
        note = delivery_note_service.sign_delivery_note(
            note_id,
            g.current_user,
            signature_image=data.get("signature_image"),
            signed_by=data.get("signed_by"),
        )
        return jsonify({"delivery_note": note.to_dict()}), 200

    except ApiError as e:
        if e.status_code >= 500:
            current_app.logger.exception("Failed to sign delivery note %s", note_id)
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to sign delivery note")
        return jsonify({"error": "Internal server error"}), 500


@delivery_notes_bp.post("/<int:note_id>/cancel")
@require_auth
def cancel_delivery_note_route(note_id: int):
    try:
        note = delivery_note_service.cancel_delivery_note(note_id, g.current_user)
        return jsonify({"delivery_note": note.to_dict()}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel delivery note")
        return jsonify({"error": "Internal server error"}), 500


@delivery_notes_bp.delete("/<int:note_id>")
@require_auth
def delete_delivery_note_route(note_id: int):
    """Soft delete. 409 for signed notes."""
    try:
        delivery_note_service.delete_delivery_note(note_id, g.current_user)
        return jsonify({"message": "Delivery note deleted"}), 200
    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete delivery note")
        return jsonify({"error": "Internal server error"}), 500
