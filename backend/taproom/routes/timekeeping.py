# Overview: Flask API routes for shift timekeeping; parses input and returns JSON responses.

"""
Timekeeping Routes

SECURITY:
- Clock in and clearance act on the calling user only.
- Approve, reject, reopen, heal and listing other users' logs require MANAGER or ADMIN.
- Admin clock-out requires ADMIN (also enforced by the service).
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import CoreError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import healing_service, timekeeping_service
from ..validation import optional_int, parse_datetime_arg, require_int, require_str


timekeeping_bp = Blueprint("timekeeping", __name__, url_prefix="/api/timekeeping")


@timekeeping_bp.post("/clock-in")
@require_actor
def clock_in_route():
    try:
        result = timekeeping_service.clock_in(g.actor.id)
        return jsonify(result.to_dict()), 201
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to clock in")
        return jsonify({"error": "Internal server error"}), 500


@timekeeping_bp.post("/clearance")
@require_actor
def request_clearance_route():
    """Clock out and declare drawer cash. Body: {declared_amount_cents}"""
    try:
        data = request.get_json(silent=True) or {}
        result = timekeeping_service.request_clearance(g.actor.id, require_int(data, "declared_amount_cents"))
        return jsonify(result.to_dict())
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to request shift clearance")
        return jsonify({"error": "Internal server error"}), 500


@timekeeping_bp.post("/admin-clock-out")
@require_actor
@require_role(ROLE_ADMIN)
def admin_clock_out_route():
    try:
        result = timekeeping_service.admin_self_clock_out(g.actor.id)
        return jsonify(result.to_dict())
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed admin clock out")
        return jsonify({"error": "Internal server error"}), 500


@timekeeping_bp.post("/logs/<int:log_id>/approve")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def approve_shift_route(log_id: int):
    """Body: {counted_amount_cents}"""
    try:
        data = request.get_json(silent=True) or {}
        result = timekeeping_service.approve_shift(log_id, g.actor.id, require_int(data, "counted_amount_cents"))
        return jsonify(result.to_dict())
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to approve shift")
        return jsonify({"error": "Internal server error"}), 500


@timekeeping_bp.post("/logs/<int:log_id>/reject")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def reject_shift_route(log_id: int):
    """Body: {reason}"""
    try:
        data = request.get_json(silent=True) or {}
        result = timekeeping_service.reject_shift(log_id, require_str(data, "reason"), manager_id=g.actor.id)
        return jsonify(result.to_dict())
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to reject shift")
        return jsonify({"error": "Internal server error"}), 500


@timekeeping_bp.post("/logs/<int:log_id>/reopen")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def reopen_shift_route(log_id: int):
    try:
        result = timekeeping_service.reopen_rejected_shift(log_id, g.actor.id)
        return jsonify(result.to_dict())
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to reopen shift")
        return jsonify({"error": "Internal server error"}), 500


@timekeeping_bp.post("/heal")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def heal_user_route():
    """Body: {user_id}. Returns {healed: bool}."""
    try:
        data = request.get_json(silent=True) or {}
        healed = healing_service.heal_user(require_int(data, "user_id"), actor_id=g.actor.id)
        return jsonify({"healed": healed})
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to heal clock state")
        return jsonify({"error": "Internal server error"}), 500


@timekeeping_bp.get("/status")
@require_actor
def get_status_route():
    try:
        return jsonify(timekeeping_service.get_clock_status(g.actor.id))
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get clock status")
        return jsonify({"error": "Internal server error"}), 500


@timekeeping_bp.get("/expected-sales")
@require_actor
def expected_sales_route():
    """Sales since the caller's clock-in (or ?since=...) per payment method."""
    try:
        since = parse_datetime_arg("since", request.args.get("since")) or g.actor.clock_in_at
        if since is None:
            return jsonify({"error": "Not clocked in; pass since"}), 400
        expected = timekeeping_service.compute_expected_sales(g.actor.id, since)
        return jsonify({"expected_sales": expected.to_dict()})
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to compute expected sales")
        return jsonify({"error": "Internal server error"}), 500


@timekeeping_bp.get("/logs")
@require_actor
def list_logs_route():
    """Managers may list any user's logs; everyone else sees their own."""
    try:
        user_id = optional_int(request.args, "user_id")
        if g.actor.role not in (ROLE_ADMIN, ROLE_MANAGER):
            user_id = g.actor.id
        status = request.args.get("status")
        logs = timekeeping_service.list_time_logs(user_id=user_id, status=status.upper() if status else None)
        return jsonify({"time_logs": [log.to_dict() for log in logs]})
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list time logs")
        return jsonify({"error": "Internal server error"}), 500
