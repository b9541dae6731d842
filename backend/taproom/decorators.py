# Overview: Request decorators that resolve the acting user for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import LedgerError
from .services.ledger_store import get_ledger_store


def require_actor(f):
    """
    Resolve the acting user from the X-User-Id header into g.actor.

    The header is set by the authentication layer in front of the API.
    The user is re-read on every request so role and active status are current.
    Returns 401 if the header is missing, malformed, or names no active user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-User-Id", "")
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        try:
            actor = get_ledger_store().get("users", int(raw))
        except LedgerError as e:
            return jsonify(e.to_dict()), e.http_status

        if actor is None or not actor.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require g.actor to hold one of the given roles. Apply after @require_actor."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "actor"):
                return jsonify({"error": "Authentication required"}), 401
            if g.actor.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "code": "permission_denied",
                    "required_roles": list(roles),
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
