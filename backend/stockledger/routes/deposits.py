# Overview: Flask API routes for the deposit (consignment) workflow.

# backend/stockledger/routes/deposits.py
"""
Deposit API Routes

- GET  /api/deposits/customers                     customers with deposit history
- GET  /api/deposits/customers/<id>                pending deposit items
- POST /api/deposits/customers/<id>/place          warehouse -> customer
- POST /api/deposits/customers/<id>/convert        deposit -> sale
- POST /api/deposits/customers/<id>/return         customer -> warehouse
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError, ValidationError
from ..extensions import db
from ..services import deposit_service


deposits_bp = Blueprint("deposits", __name__, url_prefix="/api/deposits")


def _payload() -> dict:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


@deposits_bp.get("/customers")
def list_deposit_customers_route():
    try:
        return jsonify({"items": deposit_service.list_deposit_customers()}), 200
    except Exception:
        current_app.logger.exception("Failed to list deposit customers")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/customers/<int:customer_id>")
def get_customer_deposit_route(customer_id: int):
    try:
        return jsonify(deposit_service.get_customer_deposit(customer_id)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get customer deposit")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.post("/customers/<int:customer_id>/place")
def place_deposit_route(customer_id: int):
    """
    Request body:
    {
        "warehouse_id": 1,
        "lines": [{"sku": "X-1", "quantity": 3}]
    }
    """
    try:
        data = _payload()
        if data.get("warehouse_id") is None:
            raise ValidationError("warehouse_id required")
        movement = deposit_service.place_deposit(
            customer_id,
            data["warehouse_id"],
            data.get("lines"),
            occurred_at=data.get("occurred_at"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to place deposit")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.post("/customers/<int:customer_id>/convert")
def convert_deposit_route(customer_id: int):
    """
    Request body:
    {
        "channel": "B2B",   (default)
        "lines": [{"sku": "X-1", "quantity": 2, "unit_price_cents": 1500}]
    }
    """
    try:
        data = _payload()
        movement = deposit_service.convert(
            customer_id,
            data.get("lines"),
            channel=(data.get("channel") or "B2B"),
            occurred_at=data.get("occurred_at"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            payment_status=data.get("payment_status"),
            paid_amount_cents=data.get("paid_amount_cents"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to convert deposit")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.post("/customers/<int:customer_id>/return")
def return_deposit_route(customer_id: int):
    try:
        data = _payload()
        if data.get("warehouse_id") is None:
            raise ValidationError("warehouse_id required")
        movement = deposit_service.return_to_warehouse(
            customer_id,
            data["warehouse_id"],
            data.get("lines"),
            occurred_at=data.get("occurred_at"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to return deposit")
        return jsonify({"error": "Internal server error"}), 500
