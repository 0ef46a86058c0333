# Overview: Flask API routes for read-only sales reports.

from flask import Blueprint, current_app, jsonify, request

from ..errors import LedgerError
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _filters() -> dict:
    channel = request.args.get("channel")
    return {
        "date_from": request.args.get("date_from"),
        "date_to": request.args.get("date_to"),
        "channel": channel.upper() if channel else None,
    }


@reports_bp.get("/sales-by-sku")
def sales_by_sku_route():
    try:
        return jsonify({"items": reporting_service.sales_by_sku(**_filters())}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales by sku report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/sales-by-category")
def sales_by_category_route():
    try:
        return jsonify({"items": reporting_service.sales_by_category(**_filters())}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales by category report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/sales-by-month")
def sales_by_month_route():
    try:
        return jsonify({"items": reporting_service.sales_by_month(**_filters())}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales by month report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/summary")
def sales_summary_route():
    try:
        return jsonify({"items": reporting_service.sales_summary(**_filters())}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales summary")
        return jsonify({"error": "Internal server error"}), 500
