# Overview: Artifact storage for rendered PDFs and signature images.

"""
Artifact Storage

Artifacts are written under STORAGE_DIR/STORAGE_PREFIX and addressed by
STORAGE_BASE_URL/STORAGE_PREFIX/<name>. Storing the same name twice
overwrites the previous file, so a retried upload is harmless.
"""

from __future__ import annotations

import base64
import binascii
import os
import re

from flask import current_app

from ..validation import RenderOrStoreError, ValidationError
from albaranes.time_utils import epoch_millis, utcnow


PDF_CONTENT_TYPE = "application/pdf"
PNG_CONTENT_TYPE = "image/png"

_DATA_URI_PREFIX = re.compile(r"^data:image/\w+;base64,")
_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


class StorageError(RenderOrStoreError):
    """Raised when an artifact cannot be written."""
    pass


class LocalArtifactStore:
    def __init__(self, root: str, base_url: str, prefix: str):
        self.root = root
        self.base_url = base_url.rstrip("/")
        self.prefix = prefix.strip("/")

    def path_for(self, name: str) -> str:
        return os.path.join(self.root, self.prefix, name)

    def url_for(self, name: str) -> str:
        return f"{self.base_url}/{self.prefix}/{name}"

    def store(self, data: bytes, suggested_name: str, content_type: str) -> str:
        """Write data and return its public URL."""
        if not data:
            raise StorageError(f"Refusing to store empty {content_type} artifact")

        name = safe_name(suggested_name)
        path = self.path_for(name)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "wb") as fh:
                fh.write(data)
        except OSError as exc:
            raise StorageError(f"Could not store {name}: {exc}") from exc

        current_app.logger.info("Stored %s (%s, %d bytes)", name, content_type, len(data))
        return self.url_for(name)


def safe_name(name: str) -> str:
    cleaned = _SAFE_NAME.sub("-", os.path.basename(name)).strip("-.")
    if not cleaned:
        raise StorageError(f"Invalid artifact name {name!r}")
    return cleaned


def get_store() -> LocalArtifactStore:
    config = current_app.config
    return LocalArtifactStore(
        root=config["STORAGE_DIR"],
        base_url=config["STORAGE_BASE_URL"],
        prefix=config["STORAGE_PREFIX"],
    )


def store_pdf(pdf_bytes: bytes, file_name: str) -> str:
    return get_store().store(pdf_bytes, file_name, PDF_CONTENT_TYPE)


def decode_signature_image(signature_image: str) -> bytes:
    """
    Decode a base64 signature image, with or without a data URI header.

    Raises:
        ValidationError: If the payload is not valid base64 or is empty
    """
    if not isinstance(signature_image, str) or not signature_image.strip():
        raise ValidationError("signature_image is required")

    payload = _DATA_URI_PREFIX.sub("", signature_image.strip())
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("signature_image must be base64 encoded")
    if not data:
        raise ValidationError("signature_image is empty")
    return data


def store_signature(image_bytes: bytes, file_name: str) -> str:
    # Timestamp keeps earlier signature files for the same note distinct
    unique_name = f"signature-{epoch_millis(utcnow())}-{file_name}"
    return get_store().store(image_bytes, unique_name, PNG_CONTENT_TYPE)
