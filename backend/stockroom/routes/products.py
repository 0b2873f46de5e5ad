# Overview: Flask API routes for products operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import products_service, inventory_service
from ..validation import ConflictError, NotFoundError, ValidationError
from ..decorators import require_auth, require_role


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    try:
        return jsonify(products_service.list_products()), 200
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        return jsonify(products_service.create_product(payload)), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        return jsonify(products_service.update_product(product_id, payload)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


# ================================================================================
# VARIANTS AND IMAGE
# ================================================================================

@products_bp.patch("/<int:product_id>/variants")
@require_auth
def replace_variants_route(product_id: int):
    """Replace every variant of a product with the supplied list."""
    data = request.get_json(silent=True) or {}
    try:
        inventory_service.replace_variants(product_id, data.get("variants"))
        return jsonify(products_service.get_product(product_id)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to replace variants")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>/image")
@require_auth
def set_image_route(product_id: int):
    data = request.get_json(silent=True) or {}
    try:
        result = products_service.set_product_image(product_id, data.get("image_url"))
        return jsonify({"ok": True, **result}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to set product image")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role("admin")
def delete_product_route(product_id: int):
    try:
        image_url = products_service.delete_product(product_id)
        return jsonify({"ok": True, "image_url": image_url}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
