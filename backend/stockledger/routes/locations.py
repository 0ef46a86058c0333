# Overview: Flask API routes for the location registry.

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError
from ..extensions import db
from ..models import Location
from ..services import location_service
from ..validation import ModelValidationPolicy, enforce_rules_location, validate_payload


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={"type", "name", "city", "is_active"},
    required_on_create={"type", "name"},
)


@locations_bp.get("")
def list_locations_route():
    try:
        include_inactive = request.args.get("include_inactive") in ("1", "true")
        rows = location_service.list_locations(type=request.args.get("type"), include_inactive=include_inactive)
        return jsonify({"items": [loc.to_dict() for loc in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to list locations")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.get("/<int:location_id>")
def get_location_route(location_id: int):
    try:
        location = location_service.get_location(location_id, require_active=False)
        return jsonify({"location": location.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get location")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.post("")
def create_location_route():
    try:
        patch = validate_payload(
            model=Location, payload=request.get_json(silent=True), policy=LOCATION_POLICY, partial=False,
        )
        enforce_rules_location(patch)
        location = location_service.create_location(**patch)
        return jsonify({"location": location.to_dict()}), 201
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create location")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.patch("/<int:location_id>")
def update_location_route(location_id: int):
    try:
        patch = validate_payload(
            model=Location, payload=request.get_json(silent=True), policy=LOCATION_POLICY, partial=True,
        )
        enforce_rules_location(patch)
        location = location_service.update_location(location_id, patch)
        return jsonify({"location": location.to_dict()}), 200
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update location")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.delete("/<int:location_id>")
def deactivate_location_route(location_id: int):
    """Soft delete: movements keep referencing the location."""
    try:
        location = location_service.deactivate_location(location_id)
        return jsonify({"location": location.to_dict()}), 200
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate location")
        return jsonify({"error": "Internal server error"}), 500
