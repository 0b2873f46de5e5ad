# Overview: Flask API routes for analytics; parses input and returns JSON responses.

"""
Analytics Routes

Category revenue, product rankings, per-color breakdown and the weekly
demand forecast. All figures come from completed sales only.
"""

from flask import Blueprint, jsonify, current_app

from ..decorators import require_auth
from ..services import forecast_service, reporting_service


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("/category-revenue")
@require_auth
def category_revenue_route():
    try:
        return jsonify(reporting_service.category_revenue()), 200
    except Exception:
        current_app.logger.exception("Failed to compute category revenue")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/rankings")
@require_auth
def rankings_route():
    try:
        return jsonify(reporting_service.rankings()), 200
    except Exception:
        current_app.logger.exception("Failed to compute rankings")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/forecast")
@require_auth
def forecast_route():
    try:
        weeks = current_app.config.get("FORECAST_WEEKS", 8)
        return jsonify(forecast_service.demand_forecast(weeks=weeks)), 200
    except Exception:
        current_app.logger.exception("Failed to compute forecast")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/color-breakdown")
@require_auth
def color_breakdown_route():
    try:
        return jsonify(reporting_service.color_breakdown()), 200
    except Exception:
        current_app.logger.exception("Failed to compute color breakdown")
        return jsonify({"error": "Internal server error"}), 500
