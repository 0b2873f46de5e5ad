# Overview: Flask API routes for transactions; parses input and returns JSON responses.

"""
Transactions API

Request bodies use camelCase keys (paymentMethod, productId, unitPrice,
itemId); they are translated to the service layer's snake_case here.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..services.sales_service import SaleError
from ..validation import NotFoundError, ValidationError
from ..decorators import require_auth


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _pick(data: dict, camel: str, snake: str):
    value = data.get(camel)
    return data.get(snake) if value is None else value


def _sale_items(items):
    if not isinstance(items, list):
        return items
    return [
        {
            "product_id": _pick(item, "productId", "product_id"),
            "color": item.get("color"),
            "size": item.get("size"),
            "channel": item.get("channel"),
            "quantity": item.get("quantity"),
            "unit_price": _pick(item, "unitPrice", "unit_price"),
        } if isinstance(item, dict) else item
        for item in items
    ]


def _replacement_items(items):
    if not isinstance(items, list):
        return items
    return [
        {
            "item_id": _pick(item, "itemId", "item_id"),
            "quantity": item.get("quantity"),
            "unit_price": _pick(item, "unitPrice", "unit_price"),
        } if isinstance(item, dict) else item
        for item in items
    ]


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    try:
        txns = sales_service.list_transactions()
        return jsonify([t.to_dict() for t in txns]), 200
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<txn_id>")
@require_auth
def get_transaction_route(txn_id: str):
    try:
        return jsonify(sales_service.get_transaction(txn_id).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    """
    Record a sale (optionally as a reservation) or a manual cash in/out.

    Sale items naming color and size take stock from the matching variant.
    """
    data = request.get_json(silent=True) or {}
    try:
        txn = sales_service.create_transaction(
            txn_type=data.get("type"),
            total=data.get("total"),
            payment_method=_pick(data, "paymentMethod", "payment_method"),
            description=data.get("description"),
            items=_sale_items(data.get("items")),
            status=data.get("status"),
            location=data.get("location"),
            actor=g.current_user.username,
        )
        return jsonify(txn.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.delete("/<txn_id>")
@require_auth
def delete_transaction_route(txn_id: str):
    try:
        sales_service.delete_transaction(txn_id)
        return jsonify({"ok": True, "id": txn_id}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete transaction")
        return jsonify({"error": "Internal server error"}), 500


# ================================================================================
# SALE LIFECYCLE
# ================================================================================

@transactions_bp.patch("/<txn_id>/edit")
@require_auth
def edit_sale_route(txn_id: str):
    """Edit a completed sale's items, prices or payment method."""
    data = request.get_json(silent=True) or {}
    try:
        txn = sales_service.edit_sale(
            txn_id,
            items=_replacement_items(data.get("items")),
            payment_method=_pick(data, "paymentMethod", "payment_method"),
        )
        return jsonify(txn.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to edit sale")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.patch("/<txn_id>/finalize")
@require_auth
def finalize_sale_route(txn_id: str):
    """Complete a reservation. Stock was already taken when it was reserved."""
    data = request.get_json(silent=True) or {}
    try:
        txn = sales_service.finalize_sale(
            txn_id,
            items=_replacement_items(data.get("items")),
            payment_method=_pick(data, "paymentMethod", "payment_method"),
        )
        return jsonify(txn.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to finalize sale")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.patch("/<txn_id>")
@require_auth
def update_transaction_route(txn_id: str):
    data = request.get_json(silent=True) or {}
    try:
        txn = sales_service.update_transaction_header(
            txn_id,
            description=data.get("description"),
            total=data.get("total"),
            payment_method=_pick(data, "paymentMethod", "payment_method"),
        )
        return jsonify(txn.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to update transaction")
        return jsonify({"error": "Internal server error"}), 500
