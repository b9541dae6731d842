# Overview: Flask API routes for reading the activity (audit) log.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import CoreError
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import activity_service
from ..validation import optional_int


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


@activity_bp.get("")
@require_actor
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def list_activity_route():
    """Newest first. Query: ?category=shift&limit=50"""
    try:
        entries = activity_service.list_activity(
            category=request.args.get("category"),
            limit=optional_int(request.args, "limit"),
        )
        return jsonify({"activity": [entry.to_dict() for entry in entries]})
    except CoreError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list activity")
        return jsonify({"error": "Internal server error"}), 500
