# Overview: Flask API routes for document series administration.

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError
from ..extensions import db
from ..models import DocumentSeries
from ..services import series_service
from ..validation import ModelValidationPolicy, enforce_rules_series, validate_payload


series_bp = Blueprint("series", __name__, url_prefix="/api/series")


SERIES_POLICY = ModelValidationPolicy(
    writable_fields={"code", "name", "scope", "prefix", "year", "next_number", "padding", "is_active"},
    required_on_create={"code", "name", "scope"},
)


@series_bp.get("")
def list_series_route():
    try:
        return jsonify({"items": [s.to_dict() for s in series_service.list_series()]}), 200
    except Exception:
        current_app.logger.exception("Failed to list series")
        return jsonify({"error": "Internal server error"}), 500


@series_bp.post("")
def create_series_route():
    try:
        patch = validate_payload(
            model=DocumentSeries, payload=request.get_json(silent=True), policy=SERIES_POLICY, partial=False,
        )
        enforce_rules_series(patch)
        series = series_service.create_series(**patch)
        return jsonify({"series": series.to_dict()}), 201
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create series")
        return jsonify({"error": "Internal server error"}), 500


@series_bp.patch("/<string:code>")
def update_series_route(code: str):
    """Edits to next_number / padding / is_active apply from the next allocation."""
    try:
        patch = validate_payload(
            model=DocumentSeries, payload=request.get_json(silent=True), policy=SERIES_POLICY, partial=True,
        )
        patch.pop("code", None)
        enforce_rules_series(patch)
        series = series_service.update_series(code, patch)
        return jsonify({"series": series.to_dict()}), 200
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update series")
        return jsonify({"error": "Internal server error"}), 500


@series_bp.delete("/<string:code>")
def delete_series_route(code: str):
    try:
        series_service.delete_series(code)
        return jsonify({"deleted": code}), 200
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete series")
        return jsonify({"error": "Internal server error"}), 500
