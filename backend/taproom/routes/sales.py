# Overview: Flask API routes for sales; parses input and returns JSON responses.

"""Sales API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import CoreError, InvalidRequest
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import sales_service
from ..services.inventory_guard import OrderLine
from ..services.sales_service import Discount, SaleRequest
from ..validation import optional_int, parse_datetime_arg, require_int, require_str


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _sale_request_from_json(data: dict) -> SaleRequest:
    raw_lines = data.get("lines")
    if not isinstance(raw_lines, list) or not raw_lines:
        raise InvalidRequest("lines must be a non-empty list")
    lines = []
    for raw in raw_lines:
        if not isinstance(raw, dict):
            raise InvalidRequest("each line must be an object with product_id and quantity")
        lines.append(OrderLine(product_id=require_int(raw, "product_id"), quantity=require_int(raw, "quantity")))

    discount = None
    if data.get("discount") is not None:
        raw_discount = data["discount"]
        if not isinstance(raw_discount, dict):
            raise InvalidRequest("discount must be an object with name and amount_cents")
        discount = Discount(name=require_str(raw_discount, "name"), amount_cents=require_int(raw_discount, "amount_cents"))

    return SaleRequest(
        lines=lines,
        payment_method=require_str(data, "payment_method").upper(),
        server_id=g.actor.id,
        customer_type=require_str(data, "customer_type") if "customer_type" in data else "Walk-in",
        discount=discount,
    )


@sales_bp.post("")
@require_actor
def create_sale_route():
    """
    Record a completed sale served by the acting user.

    Body: {lines: [{product_id, quantity}], payment_method, customer_type?, discount?: {name, amount_cents}}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sales_service.process_sale(_sale_request_from_json(data))
        return jsonify(result.to_dict()), 201
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_actor
def get_sale_route(sale_id: int):
    try:
        sale, items = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(), "items": [item.to_dict() for item in items]})
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def list_sales_route():
    try:
        sales = sales_service.list_sales(
            served_by_id=optional_int(request.args, "served_by_id"),
            since=parse_datetime_arg("since", request.args.get("since")),
        )
        return jsonify({"sales": [sale.to_dict() for sale in sales]})
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500
