# Overview: Request decorators for API routes (operator identity and role checks).

from functools import wraps
from flask import request, jsonify, g

from .models import OperatorRole


def _header_role() -> OperatorRole | None:
    raw = (request.headers.get("X-Operator-Role") or "").strip()
    if not raw:
        return OperatorRole.VIEWER
    for role in OperatorRole:
        if role.value.lower() == raw.lower():
            return role
    return None


def require_operator(f):
    """
    Require an operator identity on the request.

    Sets the following Flask g attributes:
    - g.operator: display name from X-Operator (used as actor/cashier)
    - g.operator_role: OperatorRole from X-Operator-Role (defaults to Viewer)

    There is no authentication; the role is a plain attribute comparison.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        operator = (request.headers.get("X-Operator") or "").strip()
        if not operator:
            return jsonify({"error": "Operator required (X-Operator header)"}), 401

        role = _header_role()
        if role is None:
            allowed = ", ".join(r.value for r in OperatorRole)
            return jsonify({"error": f"Unknown operator role (expected one of: {allowed})"}), 401

        g.operator = operator
        g.operator_role = role
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: OperatorRole):
    """
    Require one of the given roles. Admin always passes.

    Must be stacked under @require_operator.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            role = getattr(g, "operator_role", None)
            if role is None:
                return jsonify({"error": "Operator required (X-Operator header)"}), 401
            if role != OperatorRole.ADMIN and role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": [r.value for r in roles],
                    "role": role.value,
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
