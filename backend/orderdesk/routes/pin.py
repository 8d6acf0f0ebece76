# Overview: Flask API routes for PIN setup, login and sessions; parses input and returns JSON responses.

# backend/orderdesk/routes/pin.py
"""
PIN Authentication API routes

SECURITY FEATURES:
- PIN creation gated by the SETUP_SECRET
- Login throttling per client address, with growing lockouts
- Session token returned in the body and as an HttpOnly cookie
- Responses never reveal which slot a PIN belongs to
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import throttle
from ..services import auth_service
from ..services import session_service
from ..decorators import get_request_token, require_admin, resolve_session
from ..validation import AuthFailedError, AuthLockedError, NoPinSetError


pin_bp = Blueprint("pin", __name__, url_prefix="/api/pin")


def _client_identifier() -> str:
    return f"pin:{request.remote_addr or 'unknown'}"


def _cookie_options() -> dict:
    secure = request.is_secure
    return {
        "path": "/",
        "httponly": True,
        "secure": secure,
        "samesite": "None" if secure else "Lax",
    }


@pin_bp.get("/status")
def status_route():
    """
    PIN setup status for the setup page.

    Returns:
        {"credentialCount": 1, "maxCredentials": 2,
         "setupEnabled": true, "setupLocked": false}
    """
    return jsonify(auth_service.credential_status())


@pin_bp.post("/setup")
def setup_route():
    """
    Create a PIN credential.

    Request body:
    {
        "setupSecret": "...",   // required, must equal SETUP_SECRET
        "slot": "chef",         // optional, first free slot when omitted
        "pin": "1234"           // required, exactly 4 digits
    }
    """
    data = request.get_json(silent=True) or {}
    auth_service.setup_credential(data.get("setupSecret"), data.get("slot"), data.get("pin"))
    return jsonify({
        "ok": True,
        "credentialCount": auth_service.credential_status()["credentialCount"],
    })


@pin_bp.post("/login")
def login_route():
    """
    Authenticate by PIN and create a session.

    Request body: {"pin": "1234"}

    Returns {"ok": true, "token": "..."} and sets the session cookie.

    SECURITY:
    - Checks for a lockout before attempting authentication
    - Records failed attempts for throttling
    - A malformed PIN is rejected before any hash comparison and is not
      counted as a failed attempt
    """
    data = request.get_json(silent=True) or {}
    identifier = _client_identifier()

    is_locked, seconds_remaining = throttle.is_locked(identifier)
    if is_locked:
        raise AuthLockedError(seconds_remaining)

    try:
        token = auth_service.login(data.get("pin"))
    except NoPinSetError:
        raise
    except AuthFailedError:
        failed_count = throttle.record_failed_attempt(identifier)
        current_app.logger.warning(
            "Failed PIN login from %s (%d recent failures)", request.remote_addr, failed_count
        )

        locked, seconds_remaining = throttle.is_locked(identifier)
        if locked:
            raise AuthLockedError(
                seconds_remaining,
                "PIN login locked due to too many failed attempts",
            )

        remaining = throttle.max_failed_attempts - failed_count
        if remaining <= 2:
            raise AuthFailedError(f"Invalid PIN. {remaining} attempts remaining before lockout")
        raise

    throttle.record_successful_login(identifier)

    response = jsonify({"ok": True, "token": token})
    max_age = int(current_app.config["SESSION_TTL"].total_seconds())
    response.set_cookie(
        current_app.config["SESSION_COOKIE_NAME"],
        token,
        max_age=max_age,
        **_cookie_options(),
    )
    return response


@pin_bp.post("/logout")
def logout_route():
    """
    Revoke the current session (if any) and clear the cookie.

    Idempotent: succeeds without a session.
    """
    session_service.revoke_session(get_request_token())

    response = jsonify({"ok": True})
    response.delete_cookie(current_app.config["SESSION_COOKIE_NAME"], **_cookie_options())
    return response


@pin_bp.get("/me")
def me_route():
    """{"authenticated": true|false} for the current request. Refreshes the session."""
    return jsonify({"authenticated": resolve_session() is not None})


@pin_bp.post("/reset")
@require_admin
def reset_route():
    """
    Reset another slot's PIN (owner only).

    Request body: {"slot": "chef", "pin": "5678"}

    The target's sessions are revoked.
    """
    data = request.get_json(silent=True) or {}
    auth_service.reset_other_credential(g.scope, data.get("slot"), data.get("pin"))
    return jsonify({"ok": True})


@pin_bp.get("/lockout-status")
def lockout_status_route():
    """Throttle status for the calling address."""
    return jsonify(throttle.get_lockout_status(_client_identifier()))
