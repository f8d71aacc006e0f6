# Overview: Flask API routes for auth and company operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import auth_service, session_service
from ..validation import ApiError, json_object, optional_text, require_text
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")
companies_bp = Blueprint("companies", __name__, url_prefix="/api/companies")


def _session_payload(user) -> dict:
    _, token = session_service.create_session(
        user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return {"user": user.to_dict(), "token": token}


@auth_bp.post("/register")
def register_route():
    """
    Register a user and open a session.

    Request body: {"name": "...", "email": "...", "password": "..."}

    Returns:
        201: {"user": {...}, "token": "..."}
        400: Invalid input
        409: Email already registered
    """
    try:
        data = json_object(request.get_json(silent=True))
        user = auth_service.create_user(
            name=require_text(data, "name"),
            email=require_text(data, "email"),
            password=data.get("password"),
        )
        return jsonify(_session_payload(user)), 201

    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    try:
        data = json_object(request.get_json(silent=True))
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        return jsonify(_session_payload(user)), 200

    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.patch("/profile")
@require_auth
def update_profile_route():
    """
    Request body: {"name"?: "...", "email"?: "..."}

    Returns:
        200: {"user": {...}}
        400: Invalid input
        409: Email already registered
    """
    try:
        data = json_object(request.get_json(silent=True))
        user = auth_service.update_profile(
            g.current_user,
            name=require_text(data, "name") if "name" in data else None,
            email=require_text(data, "email") if "email" in data else None,
        )
        return jsonify({"user": user.to_dict()}), 200

    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return jsonify({"error": "Internal server error"}), 500


@companies_bp.post("")
@require_auth
def create_company_route():
    """
    Create a company; the caller becomes its admin and first member.

    Request body: {"name": "...", "cif": "...", "email"?, "phone"?, "address"?}
    """
    try:
        data = json_object(request.get_json(silent=True))
        company = auth_service.create_company(
            g.current_user,
            name=require_text(data, "name"),
            cif=require_text(data, "cif"),
            email=optional_text(data, "email"),
            phone=optional_text(data, "phone"),
            address=optional_text(data, "address"),
        )
        return jsonify({"company": company.to_dict()}), 201

    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create company")
        return jsonify({"error": "Internal server error"}), 500


@companies_bp.get("/mine")
@require_auth
def my_company_route():
    company = g.current_user.company
    if not company:
        return jsonify({"error": "User does not belong to a company"}), 404
    return jsonify({"company": company.to_dict()}), 200


@companies_bp.patch("/mine")
@require_auth
def update_my_company_route():
    """
    Update the caller's company; admin only.

    Request body: any of {"name", "cif", "email", "phone", "address"}
    """
    try:
        data = json_object(request.get_json(silent=True))
        changes = {}
        for key in ("name", "cif"):
            if key in data:
                changes[key] = require_text(data, key)
        for key in ("email", "phone", "address"):
            if key in data:
                changes[key] = optional_text(data, key)

        company = auth_service.update_company(g.current_user, **changes)
        return jsonify({"company": company.to_dict()}), 200

    except ApiError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update company")
        return jsonify({"error": "Internal server error"}), 500
