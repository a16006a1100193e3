# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, g

from .responses import fail
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _load_context(token: str) -> bool:
    context = session_service.validate_session(token)
    if not context:
        return False
    g.current_user = context.user
    g.session_context = context
    g.session_token = token
    return True


def current_user():
    return getattr(g, "current_user", None)


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user, g.session_context and g.session_token.
    Returns 401 on a missing, expired or revoked token, or a deactivated account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return fail("Authentication required", 401)
        if not _load_context(token):
            return fail("Invalid or expired token", 401)
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """
    Attach the user when a valid token is sent; otherwise continue as guest.

    An invalid token is still rejected so a stale client does not silently
    place orders as a guest.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = None
        token = _bearer_token()
        if token and not _load_context(token):
            return fail("Invalid or expired token", 401)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated user to hold one of roles. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = current_user()
            if user is None:
                return fail("Authentication required", 401)
            if user.role not in roles:
                return fail(
                    "Permission denied",
                    403,
                    required_roles=list(roles),
                )
            return f(*args, **kwargs)

        return decorated_function
    return decorator
