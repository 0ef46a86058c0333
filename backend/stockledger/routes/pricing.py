# Overview: Flask API routes for price rules and quotes.

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError, ValidationError
from ..extensions import db
from ..models import PriceRule
from ..services import pricing_service
from ..validation import ModelValidationPolicy, enforce_rules_price_rule, validate_payload


pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/pricing")


PRICE_RULE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "target", "scope", "category_id", "supplier_id", "type", "value", "priority", "is_active"},
    required_on_create={"name", "target", "type", "value"},
)


@pricing_bp.get("/quote")
def quote_route():
    """?sku=X-1&channel=B2C -> {sku, channel, base_cents, price_cents, applied_rule}"""
    try:
        sku = request.args.get("sku")
        channel = (request.args.get("channel") or "B2C").upper()
        if not sku:
            raise ValidationError("sku required")
        return jsonify(pricing_service.quote(sku, channel)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to quote price")
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.get("/rules")
def list_rules_route():
    try:
        return jsonify({"items": [r.to_dict() for r in pricing_service.list_rules()]}), 200
    except Exception:
        current_app.logger.exception("Failed to list price rules")
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.post("/rules")
def create_rule_route():
    try:
        patch = validate_payload(
            model=PriceRule, payload=request.get_json(silent=True), policy=PRICE_RULE_POLICY, partial=False,
        )
        enforce_rules_price_rule(patch)
        rule = pricing_service.create_rule(patch)
        return jsonify({"rule": rule.to_dict()}), 201
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create price rule")
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.patch("/rules/<int:rule_id>")
def update_rule_route(rule_id: int):
    try:
        patch = validate_payload(
            model=PriceRule, payload=request.get_json(silent=True), policy=PRICE_RULE_POLICY, partial=True,
        )
        enforce_rules_price_rule(patch)
        rule = pricing_service.update_rule(rule_id, patch)
        return jsonify({"rule": rule.to_dict()}), 200
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update price rule")
        return jsonify({"error": "Internal server error"}), 500


@pricing_bp.delete("/rules/<int:rule_id>")
def delete_rule_route(rule_id: int):
    try:
        pricing_service.delete_rule(rule_id)
        return jsonify({"deleted": rule_id}), 200
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete price rule")
        return jsonify({"error": "Internal server error"}), 500
