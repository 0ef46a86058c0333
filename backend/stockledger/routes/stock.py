# Overview: Flask API routes for derived stock balances.

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError, ValidationError
from ..services import stock_service
from ..services.location_service import get_location
from ..time_utils import normalize_datetime, to_utc_z


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _as_of():
    raw = request.args.get("as_of")
    if not raw:
        return None
    try:
        return normalize_datetime(raw)
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 datetime")


@stock_bp.get("/<int:location_id>")
def location_balances_route(location_id: int):
    """
    Balances per sku at a location, computed from the movement history.

    ?as_of=ISO-8601 gives the historical balance (inclusive).
    ?report=1 lists the whole catalog with quantities.
    """
    try:
        as_of = _as_of()
        if request.args.get("report") in ("1", "true"):
            return jsonify({"location_id": location_id, "items": stock_service.get_stock_report(location_id)}), 200

        get_location(location_id, require_active=False)
        balances = stock_service.get_balances(location_id, as_of)
        return jsonify({
            "location_id": location_id,
            "as_of": to_utc_z(as_of),
            "balances": [{"sku": sku, "quantity": qty} for sku, qty in balances.items()],
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute balances")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:location_id>/<string:sku>")
def sku_balance_route(location_id: int, sku: str):
    try:
        as_of = _as_of()
        get_location(location_id, require_active=False)
        quantity = stock_service.get_balance(sku, location_id, as_of)
        return jsonify({"location_id": location_id, "sku": sku, "quantity": quantity, "as_of": to_utc_z(as_of)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute balance")
        return jsonify({"error": "Internal server error"}), 500
