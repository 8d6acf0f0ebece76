# Overview: Request and scope decorators for API routes.

from functools import wraps
from flask import request, g, current_app

from .services import session_service
from .validation import AuthForbiddenError, AuthRequiredError


def get_request_token() -> str | None:
    """
    Extract a session token from the request.

    Authorization: Bearer <token> takes precedence over the session cookie.
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token

    token = request.cookies.get(current_app.config["SESSION_COOKIE_NAME"])
    return token or None


def resolve_session():
    """
    Resolve (and refresh) the request's session and store it on g.

    Returns a SessionContext, or None for anonymous requests. Always
    re-validates: g outlives a single request when an app context is
    already pushed.
    """
    g.session_context = session_service.validate_session(get_request_token())
    return g.session_context


def require_auth(f):
    """
    Require a valid session.

    Sets g.session_context and g.scope. Raises AuthRequiredError (401) when
    the token is missing, unknown or expired.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        context = resolve_session()
        if context is None:
            raise AuthRequiredError("Invalid or expired session")
        g.scope = context.scope
        return f(*args, **kwargs)

    return decorated_function


def require_scope(*allowed_scopes):
    """
    Require the session scope to be one of allowed_scopes.

    ADMIN_SCOPE always passes. Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            context = g.get("session_context")
            if context is None:
                raise AuthRequiredError("Authentication required")

            if context.scope == current_app.config["ADMIN_SCOPE"]:
                return f(*args, **kwargs)

            if context.scope not in allowed_scopes:
                current_app.logger.warning(
                    "Scope %s denied on %s %s", context.scope, request.method, request.path
                )
                raise AuthForbiddenError(f"Requires one of: {', '.join(allowed_scopes)}")

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_elevated(f):
    """Shorthand for @require_auth + @require_scope(*ELEVATED_SCOPES)."""
    @wraps(f)
    @require_auth
    def decorated_function(*args, **kwargs):
        allowed = current_app.config["ELEVATED_SCOPES"]
        return require_scope(*allowed)(f)(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the ADMIN_SCOPE (owner)."""
    @wraps(f)
    @require_auth
    def decorated_function(*args, **kwargs):
        if g.scope != current_app.config["ADMIN_SCOPE"]:
            raise AuthForbiddenError("Owner access required")
        return f(*args, **kwargs)

    return decorated_function
