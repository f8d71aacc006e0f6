# Overview: Tests for PDF rendering and the local artifact store.

import base64
import os

import pytest

from albaranes.services import pdf_service, storage_service
from albaranes.services.pdf_service import RenderError
from albaranes.services.storage_service import LocalArtifactStore, StorageError
from albaranes.validation import ValidationError


class _Item:
    def __init__(self, description, quantity, unit, unit_price, amount):
        self.description = description
        self.quantity = quantity
        self.unit = unit
        self.unit_price = unit_price
        self.amount = amount


class _Note:
    number = "ALB-2310-0001"
    date = None
    total = 250.0
    notes = "Line one\nLine two"

    def __init__(self, items):
        self.items = items


class TestRender:

    def test_renders_pdf_bytes(self, db_session, project, customer):
        pdf = pdf_service.render_delivery_note(
            _Note([_Item("Consulting", 5, "hour", 50, 250)]), project, customer
        )
        assert pdf.startswith(b"%PDF")

    def test_empty_items_still_render(self, db_session, project, customer):
        assert pdf_service.render_delivery_note(_Note([]), project, customer).startswith(b"%PDF")

    def test_unreadable_signature_renders_placeholder(self, db_session, project, customer):
        pdf = pdf_service.render_delivery_note(
            _Note([]), project, customer, signature_image=b"not an image", signed_by="Pedro"
        )
        assert pdf.startswith(b"%PDF")

    def test_missing_client_is_render_error(self, db_session, project):
        with pytest.raises(RenderError):
            pdf_service.render_delivery_note(_Note([]), project, None)


class TestLocalArtifactStore:

    def test_store_overwrites(self, app, tmp_path):
        store = LocalArtifactStore(str(tmp_path), "http://files.example/", "albaranes")

        url = store.store(b"first", "delivery-note-ALB-2310-0001.pdf", "application/pdf")
        store.store(b"second", "delivery-note-ALB-2310-0001.pdf", "application/pdf")

        assert url == "http://files.example/albaranes/delivery-note-ALB-2310-0001.pdf"
        with open(os.path.join(tmp_path, "albaranes", "delivery-note-ALB-2310-0001.pdf"), "rb") as fh:
            assert fh.read() == b"second"

    def test_empty_payload_rejected(self, app, tmp_path):
        store = LocalArtifactStore(str(tmp_path), "http://files.example", "albaranes")
        with pytest.raises(StorageError):
            store.store(b"", "empty.pdf", "application/pdf")

    def test_path_components_stripped(self):
        assert storage_service.safe_name("../../etc/passwd") == "passwd"


class TestSignatureDecoding:

    def test_data_uri_and_bare_base64(self, signature_image):
        with_header = storage_service.decode_signature_image(signature_image)
        bare = storage_service.decode_signature_image(signature_image.split(",", 1)[1])
        assert with_header == bare
        assert with_header.startswith(b"\x89PNG")

    def test_invalid_base64(self):
        with pytest.raises(ValidationError):
            storage_service.decode_signature_image("data:image/png;base64,@@@")

    def test_round_trip_bytes(self):
        payload = base64.b64encode(b"sig").decode()
        assert storage_service.decode_signature_image(payload) == b"sig"
