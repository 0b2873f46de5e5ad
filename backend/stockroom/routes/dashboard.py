# Overview: Flask API routes for the dashboard; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth
from ..services import reporting_service
from ..validation import ValidationError, coerce_int, normalize_channel


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_auth
def stats_route():
    try:
        channel = normalize_channel(request.args.get("channel"))
        return jsonify(reporting_service.dashboard_stats(channel=channel)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute dashboard stats")
        return jsonify({"error": "Internal server error"}), 500


@dashboard_bp.get("/monthly")
@require_auth
def monthly_route():
    """Monthly revenue (thousands) and units. Query: channel, from, to."""
    try:
        channel = normalize_channel(request.args.get("channel"))
        result = reporting_service.monthly_series(
            channel=channel,
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute monthly series")
        return jsonify({"error": "Internal server error"}), 500


@dashboard_bp.get("/top-sellers")
@require_auth
def top_sellers_route():
    try:
        channel = normalize_channel(request.args.get("channel"))
        limit = request.args.get("limit")
        if limit is not None:
            limit = coerce_int(limit, "limit")
            if limit <= 0:
                raise ValidationError("limit must be > 0")
        return jsonify(reporting_service.top_sellers(channel=channel, limit=limit)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute top sellers")
        return jsonify({"error": "Internal server error"}), 500
