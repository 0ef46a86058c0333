# Overview: Flask API routes for the movement ledger; parses input and returns JSON responses.

# backend/stockledger/routes/movements.py
"""
Movement Ledger API Routes

- POST   /api/movements                 record a movement
- GET    /api/movements                 list (sale types by default)
- GET    /api/movements/<id>            detail with lines
- PATCH  /api/movements/<id>            reference / notes / occurred_at
- DELETE /api/movements/<id>            administrative deletion
- PATCH  /api/movements/<id>/payment    payment status
- POST   /api/movements/<id>/returns    return against a sale
- GET    /api/movements/<id>/returns    sold / returned / remaining per sku

Ledger errors are returned as {"error", "code", "category", "details"}.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError, ValidationError
from ..extensions import db
from ..services import movement_service, payment_service, return_service
from ..time_utils import normalize_datetime


movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


def _parse_bool(value, field: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value


def _parse_date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return normalize_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@movements_bp.post("")
def record_movement_route():
    """
    Record a movement.

    Request body:
    {
        "type": "b2c_sale",
        "from_location_id": 1,
        "lines": [{"sku": "X-1", "quantity": 2, "unit_price_cents": 1999}],
        "payment_status": "partial",       (sale types only)
        "paid_amount_cents": 1000,         (partial only)
        "allow_negative_stock": false
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")

        movement = movement_service.record_movement(
            data.get("type"),
            data.get("lines"),
            channel=data.get("channel"),
            from_location_id=data.get("from_location_id"),
            to_location_id=data.get("to_location_id"),
            occurred_at=data.get("occurred_at"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            payment_status=data.get("payment_status"),
            paid_amount_cents=data.get("paid_amount_cents"),
            allow_negative_stock=_parse_bool(data.get("allow_negative_stock"), "allow_negative_stock"),
            customer_id=data.get("customer_id"),
            related_movement_id=data.get("related_movement_id"),
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record movement")
        return jsonify({"error": "Internal server error"}), 500


@movements_bp.get("")
def list_movements_route():
    try:
        raw_types = request.args.get("types")
        types = [t.strip() for t in raw_types.split(",") if t.strip()] if raw_types else None
        limit = min(request.args.get("limit", 50, type=int), 500)
        offset = max(request.args.get("offset", 0, type=int), 0)

        rows, total = movement_service.list_movements(
            types=types,
            date_from=_parse_date_arg("date_from"),
            date_to=_parse_date_arg("date_to"),
            location_id=request.args.get("location_id", type=int),
            customer_id=request.args.get("customer_id", type=int),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "items": [m.to_dict(include_lines=False) for m in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list movements")
        return jsonify({"error": "Internal server error"}), 500


@movements_bp.get("/<int:movement_id>")
def get_movement_route(movement_id: int):
    try:
        movement = movement_service.get_movement(movement_id)
        return jsonify({"movement": movement.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get movement")
        return jsonify({"error": "Internal server error"}), 500


@movements_bp.patch("/<int:movement_id>")
def update_movement_route(movement_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        movement = movement_service.update_movement(movement_id, data)
        return jsonify({"movement": movement.to_dict()}), 200

    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update movement")
        return jsonify({"error": "Internal server error"}), 500


@movements_bp.delete("/<int:movement_id>")
def delete_movement_route(movement_id: int):
    try:
        movement_service.delete_movement(movement_id)
        return jsonify({"deleted": movement_id}), 200
    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete movement")
        return jsonify({"error": "Internal server error"}), 500


@movements_bp.patch("/<int:movement_id>/payment")
def update_payment_route(movement_id: int):
    """
    Request body:
    {
        "payment_status": "pending" | "partial" | "paid",
        "paid_amount_cents": 4000   (partial only)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        status = data.get("payment_status")
        if not status:
            raise ValidationError("payment_status required")

        movement = payment_service.update_payment(movement_id, status, data.get("paid_amount_cents"))
        return jsonify({"movement": movement.to_dict(include_lines=False)}), 200

    except LedgerError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update payment")
        return jsonify({"error": "Internal server error"}), 500


@movements_bp.post("/<int:movement_id>/returns")
def record_return_route(movement_id: int):
    """
    Request body:
    {
        "warehouse_id": 1,     (optional, defaults to the sale's warehouse)
        "lines": [{"sku": "X-1", "quantity": 1}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        movement = return_service.record_return(
            movement_id,
            data.get("lines"),
            warehouse_id=data.get("warehouse_id"),
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
        current_app.logger.exception("Failed to record return")
        return jsonify({"error": "Internal server error"}), 500


@movements_bp.get("/<int:movement_id>/returns")
def return_summary_route(movement_id: int):
    try:
        summary = return_service.get_return_summary(movement_id)
        summary["returns"] = [
            m.to_dict(include_lines=False) for m in return_service.get_sale_returns(movement_id)
        ]
        return jsonify(summary), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get return summary")
        return jsonify({"error": "Internal server error"}), 500
