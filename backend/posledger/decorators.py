# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

USER_HEADER = "X-User-Id"


def require_user(f):
    """
    Require a caller identity.

    Authentication happens upstream; the gateway forwards the authenticated
    user identifier in the X-User-Id header. Sets:
    - g.user_id: the acting user identifier (string)

    Returns 401 if the header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = (request.headers.get(USER_HEADER) or "").strip()
        if not user_id:
            return jsonify({"error": "Authentication required"}), 401

        g.user_id = user_id
        return f(*args, **kwargs)

    return decorated_function
