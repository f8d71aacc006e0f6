from __future__ import annotations

import math
from typing import Any

from .services.totals_service import LineItem, VALID_UNITS


class ApiError(Exception):
    """Domain failure with the HTTP status the routes report it as."""
    status_code = 500


class ValidationError(ApiError, ValueError):
    """400-level input problem."""
    status_code = 400


class AuthorizationError(ApiError):
    """403-level ownership failure."""
    status_code = 403


class NotFoundError(ApiError):
    """404-level missing project, client or delivery note."""
    status_code = 404


class ConflictError(ApiError, ValueError):
    """409-level business rule conflict (e.g., duplicate number, double sign)."""
    status_code = 409


class RenderOrStoreError(ApiError):
    """PDF rendering or artifact storage failed."""
    status_code = 500


def json_object(payload: Any) -> dict:
    """Request body as a dict; a missing body is an empty object."""
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def require_text(data: dict, key: str, *, label: str | None = None) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label or key} is required")
    return value.strip()


def optional_text(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value.strip() or None


def coerce_number(value: Any, field: str) -> float:
    """
    Accept ints, floats and plain numeric strings; reject bools, NaN and infinity.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            number = float(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{field} must be a finite number")
    return number


def coerce_id(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer id")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer id")


def validate_line_items(raw_items: Any) -> list[LineItem]:
    """
    Validate the item list of a delivery note creation request.

    Each item needs a non-empty description, a non-negative quantity and a
    unit from VALID_UNITS; unit_price is optional but never negative.
    Client supplied amounts are ignored (always recomputed).
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one item is required")

    items: list[LineItem] = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")

        description = raw.get("description")
        if not isinstance(description, str) or not description.strip():
            raise ValidationError(f"items[{index}].description is required")

        if raw.get("quantity") is None:
            raise ValidationError(f"items[{index}].quantity is required")
        quantity = coerce_number(raw["quantity"], f"items[{index}].quantity")
        if quantity < 0:
            raise ValidationError(f"items[{index}].quantity cannot be negative")

        unit = raw.get("unit")
        if unit not in VALID_UNITS:
            raise ValidationError(
                f"items[{index}].unit must be one of: {', '.join(VALID_UNITS)}"
            )

        unit_price = None
        if raw.get("unit_price") is not None:
            unit_price = coerce_number(raw["unit_price"], f"items[{index}].unit_price")
            if unit_price < 0:
                raise ValidationError(f"items[{index}].unit_price cannot be negative")

        items.append(
            LineItem(
                description=description.strip(),
                quantity=quantity,
                unit=unit,
                unit_price=unit_price,
            )
        )

    return items
