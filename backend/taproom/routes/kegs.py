# Overview: Flask API routes for the keg lifecycle; parses input and returns JSON responses.

"""
Keg Routes

SECURITY:
- Receiving kegs requires MANAGER or ADMIN.
- Tapping and closing are open to any active staff member behind the bar.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import CoreError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import keg_service
from ..validation import optional_int, require_int


kegs_bp = Blueprint("kegs", __name__, url_prefix="/api/kegs")


@kegs_bp.post("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def add_kegs_route():
    try:
        data = request.get_json(silent=True) or {}
        kegs = keg_service.add_keg_instances(
            require_int(data, "product_id"),
            require_int(data, "count"),
            g.actor.id,
        )
        return jsonify({"kegs": [keg.to_dict() for keg in kegs]}), 201
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add keg instances")
        return jsonify({"error": "Internal server error"}), 500


@kegs_bp.post("/<int:keg_id>/tap")
@require_actor
def tap_keg_route(keg_id: int):
    try:
        keg = keg_service.tap_keg(keg_id, g.actor.id)
        return jsonify({"keg": keg.to_dict()})
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to tap keg")
        return jsonify({"error": "Internal server error"}), 500


@kegs_bp.post("/<int:keg_id>/close")
@require_actor
def close_keg_route(keg_id: int):
    """Body: {confirm_write_off?: bool}. 409 write_off_confirmation_required when residual is large."""
    try:
        data = request.get_json(silent=True) or {}
        result = keg_service.close_keg(keg_id, g.actor.id, confirm_write_off=bool(data.get("confirm_write_off")))
        return jsonify(result.to_dict())
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to close keg")
        return jsonify({"error": "Internal server error"}), 500


@kegs_bp.get("")
@require_actor
def list_kegs_route():
    try:
        status = request.args.get("status")
        kegs = keg_service.list_keg_instances(
            product_id=optional_int(request.args, "product_id"),
            status=status.upper() if status else None,
        )
        return jsonify({"kegs": [keg.to_dict() for keg in kegs]})
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list kegs")
        return jsonify({"error": "Internal server error"}), 500


@kegs_bp.get("/<int:keg_id>/summary")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def keg_summary_route(keg_id: int):
    try:
        return jsonify(keg_service.keg_sales_summary(keg_id))
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to summarise keg sales")
        return jsonify({"error": "Internal server error"}), 500
