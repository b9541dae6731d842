# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import CoreError, InvalidRequest
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import purchasing_service
from ..services.purchasing_service import PurchaseOrderLine, PurchaseOrderRequest, ReceivedItem
from ..validation import parse_datetime_arg, require_int, require_str


purchasing_bp = Blueprint("purchasing", __name__, url_prefix="/api/purchase-orders")


def _object_list(data: dict, key: str) -> list[dict]:
    value = data.get(key)
    if not isinstance(value, list) or not value or not all(isinstance(v, dict) for v in value):
        raise InvalidRequest(f"{key} must be a non-empty list of objects")
    return value


@purchasing_bp.post("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_purchase_order_route():
    """Body: {supplier_name, invoice_no?, order_date?, items: [{product_id, quantity_ordered, cost_cents}]}"""
    try:
        data = request.get_json(silent=True) or {}
        order_date = parse_datetime_arg("order_date", data.get("order_date"))
        po_request = PurchaseOrderRequest(
            supplier_name=require_str(data, "supplier_name"),
            invoice_no=data.get("invoice_no"),
            order_date=order_date.date() if order_date else None,
            created_by_id=g.actor.id,
            lines=[
                PurchaseOrderLine(
                    product_id=require_int(raw, "product_id"),
                    quantity_ordered=require_int(raw, "quantity_ordered"),
                    cost_cents=require_int(raw, "cost_cents"),
                )
                for raw in _object_list(data, "items")
            ],
        )
        result = purchasing_service.create_purchase_order(po_request)
        return jsonify({"purchase_order": result.to_dict()}), 201
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchasing_bp.get("/<int:po_id>")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def get_purchase_order_route(po_id: int):
    try:
        result = purchasing_service.get_purchase_order(po_id)
        return jsonify({"purchase_order": result.to_dict()})
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchasing_bp.post("/<int:po_id>/receive")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def receive_purchase_order_route(po_id: int):
    """Body: {items: [{product_id, quantity}]}"""
    try:
        data = request.get_json(silent=True) or {}
        received = [
            ReceivedItem(product_id=require_int(raw, "product_id"), quantity=require_int(raw, "quantity"))
            for raw in _object_list(data, "items")
        ]
        result = purchasing_service.receive_purchase_order(po_id, received, g.actor.id)
        return jsonify({"purchase_order": result.to_dict()})
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return jsonify({"error": "Internal server error"}), 500
