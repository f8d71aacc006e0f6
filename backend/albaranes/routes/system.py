# backend/albaranes/routes/system.py
"""
System health endpoint and stored artifact downloads.
"""

import os
import time
from flask import Blueprint, abort, current_app, jsonify, send_from_directory
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from albaranes.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "ok", "latency_ms": round((time.time() - start_time) * 1000, 2)}
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database health check failed")
        return {"status": "error", "error": str(exc)}


def check_storage_health() -> dict:
    root = current_app.config["STORAGE_DIR"]
    writable = os.path.isdir(root) and os.access(root, os.W_OK)
    return {"status": "ok" if writable or not os.path.exists(root) else "error", "path": root}


@system_bp.get("/health")
def health():
    database = check_database_health()
    storage = check_storage_health()
    healthy = database["status"] == "ok" and storage["status"] == "ok"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "time": to_utc_z(utcnow()),
        "database": database,
        "storage": storage,
    }), 200 if healthy else 503


@system_bp.get("/files/<path:filename>")
def stored_file(filename: str):
    """Serve artifacts written by the local artifact store."""
    root = current_app.config["STORAGE_DIR"]
    if not os.path.isdir(root):
        abort(404)
    return send_from_directory(root, filename)
