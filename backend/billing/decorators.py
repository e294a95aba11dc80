# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .validation import ValidationError, require_franchise_id

FRANCHISE_HEADER = "X-Franchise-Id"


def require_franchise(f):
    """
    Require a tenant context and expose it as g.franchise_id.

    The surrounding console authenticates the user and forwards the
    franchise id in the X-Franchise-Id header. Routes pass g.franchise_id
    explicitly into every service call; services never read request state.

    Returns 400 if the header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.franchise_id = require_franchise_id(request.headers.get(FRANCHISE_HEADER))
        except ValidationError:
            return jsonify({"error": f"{FRANCHISE_HEADER} header required"}), 400
        return f(*args, **kwargs)

    return decorated_function
