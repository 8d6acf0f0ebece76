# Overview: Service-layer operations for PIN credentials; setup, login and reset.

"""
PIN Authentication Service

Each credential occupies one scope slot (PIN_SCOPES, default owner, chef)
and carries an opaque random id distinct from the scope name:

    {"id": "4be1c0...", "scope": "chef", "hash": "$2b$10$...",
     "createdAt": "...Z", "resetAt": null}

SECURITY NOTES:
- PINs hashed with bcrypt (cost factor BCRYPT_ROUNDS); there is no fast-digest path
- PINs must be exactly 4 digits
- Creating a credential requires the out-of-band SETUP_SECRET
- Login compares against every credential in a fixed order and never
  reveals which slot matched
- Throttling is applied by the caller (see login_throttle_service)
"""

import hmac
import secrets

import bcrypt
from flask import current_app

from ..extensions import store
from ..time_utils import to_utc_z, utcnow
from ..validation import (
    AuthFailedError,
    AuthForbiddenError,
    CapacityReachedError,
    DuplicatePinError,
    NoPinSetError,
    NotFoundError,
    SetupDeniedError,
    SlotTakenError,
    ValidationError,
    validate_pin_format,
)
from . import session_service


def hash_pin(pin: str) -> str:
    """Hash a validated PIN using bcrypt with the configured cost factor."""
    salt = bcrypt.gensalt(rounds=current_app.config["BCRYPT_ROUNDS"])
    hashed = bcrypt.hashpw(pin.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_pin(pin: str, pin_hash: str) -> bool:
    """
    Verify a PIN against a bcrypt hash.

    Malformed hashes (hand-edited data file) never match.
    """
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def _scopes() -> tuple:
    return tuple(current_app.config["PIN_SCOPES"])


def ordered_credentials(credentials: dict) -> list[dict]:
    """
    Credentials in deterministic match order: configured scope order, then
    creation time, then id.
    """
    scopes = _scopes()

    def sort_key(cred):
        scope = cred.get("scope")
        rank = scopes.index(scope) if scope in scopes else len(scopes)
        return rank, cred.get("createdAt") or "", cred.get("id") or ""

    return sorted(credentials.values(), key=sort_key)


def _find_by_scope(credentials: dict, scope: str) -> dict | None:
    for cred in credentials.values():
        if cred.get("scope") == scope:
            return cred
    return None


def _ensure_unique_pin(credentials: dict, pin: str, ignore_id: str | None = None) -> None:
    for cred in credentials.values():
        if cred.get("id") == ignore_id:
            continue
        if verify_pin(pin, cred.get("hash", "")):
            raise DuplicatePinError()


def setup_enabled() -> bool:
    return bool(current_app.config.get("SETUP_SECRET"))


def check_setup_secret(setup_secret) -> None:
    configured = current_app.config.get("SETUP_SECRET") or ""
    if not configured:
        raise SetupDeniedError("PIN setup is disabled (SETUP_SECRET not configured)")
    if not isinstance(setup_secret, str) or not hmac.compare_digest(
        setup_secret.encode("utf-8"), configured.encode("utf-8")
    ):
        raise SetupDeniedError("Invalid setup secret")


def create_credential(scope: str | None, pin, *, max_credentials: int | None = None) -> dict:
    """
    Create a credential in a scope slot (the first free one when scope is
    None or empty).

    Raises ValidationError, CapacityReachedError, SlotTakenError or
    DuplicatePinError. Capacity is checked before slot occupancy.
    Returns a copy of the stored credential without its hash.
    """
    pin = validate_pin_format(pin)
    scopes = _scopes()
    if not scope:
        scope = None
    if scope is not None and scope not in scopes:
        raise ValidationError(f"Unknown slot: {scope}. Expected one of: {', '.join(scopes)}")

    if max_credentials is None:
        max_credentials = current_app.config["MAX_CREDENTIALS"]

    with store.transaction() as state:
        credentials = state["credentials"]
        if len(credentials) >= max_credentials:
            raise CapacityReachedError(f"Maximum of {max_credentials} PINs reached")

        if scope is None:
            free = [s for s in scopes if _find_by_scope(credentials, s) is None]
            if not free:
                raise CapacityReachedError("Every slot already holds a PIN")
            scope = free[0]
        elif _find_by_scope(credentials, scope) is not None:
            raise SlotTakenError(f"Slot {scope} already holds a PIN")

        _ensure_unique_pin(credentials, pin)

        credential_id = secrets.token_hex(8)
        credentials[credential_id] = {
            "id": credential_id,
            "scope": scope,
            "hash": hash_pin(pin),
            "createdAt": to_utc_z(utcnow()),
            "resetAt": None,
        }
        created = dict(credentials[credential_id])

    created.pop("hash")
    current_app.logger.info("PIN credential created for slot %s", scope)
    return created


def setup_credential(setup_secret, scope: str | None, pin) -> dict:
    """
    Create a credential through the public setup endpoint.

    Check order: setup secret, PIN format, slot name, capacity, slot
    occupancy, duplicate PIN.
    """
    check_setup_secret(setup_secret)
    return create_credential(scope, pin)


def authenticate_pin(pin) -> dict:
    """
    Return the first credential (in deterministic order) matching the PIN.

    Raises ValidationError before any hash comparison when the PIN is
    malformed, NoPinSetError when no credential exists and AuthFailedError
    when nothing matches.
    """
    pin = validate_pin_format(pin)
    credentials = store.read()["credentials"]
    if not credentials:
        raise NoPinSetError()

    for cred in ordered_credentials(credentials):
        if verify_pin(pin, cred.get("hash", "")):
            return {"id": cred["id"], "scope": cred["scope"]}

    raise AuthFailedError()


def login(pin) -> str:
    """Authenticate by PIN and issue a session. Returns the plaintext token."""
    credential = authenticate_pin(pin)
    _, token = session_service.create_session(credential)
    return token


def reset_credential_pin(target_scope: str, new_pin) -> None:
    """
    Overwrite the PIN held in a slot.

    Preserves id and createdAt, sets resetAt and revokes the target's
    sessions. No caller check; routes go through reset_other_credential.
    """
    if not target_scope:
        raise ValidationError("slot is required")
    new_pin = validate_pin_format(new_pin)

    with store.transaction() as state:
        credentials = state["credentials"]
        target = _find_by_scope(credentials, target_scope)
        if target is None:
            raise NotFoundError(f"No PIN set for slot {target_scope}")

        _ensure_unique_pin(credentials, new_pin, ignore_id=target["id"])

        target["hash"] = hash_pin(new_pin)
        target["resetAt"] = to_utc_z(utcnow())
        target_id = target["id"]

    revoked = session_service.revoke_credential_sessions(target_id)
    current_app.logger.info("PIN reset for slot %s (%d sessions revoked)", target_scope, revoked)


def reset_other_credential(caller_scope: str, target_scope: str, new_pin) -> None:
    """
    Overwrite the PIN of another slot. Only ADMIN_SCOPE may do this, and
    never on its own slot.
    """
    if caller_scope != current_app.config["ADMIN_SCOPE"]:
        raise AuthForbiddenError("Only the owner can reset another PIN")
    if target_scope == caller_scope:
        raise ValidationError("Cannot reset your own slot; target another slot")

    reset_credential_pin(target_scope, new_pin)


def credential_status() -> dict:
    credentials = store.read()["credentials"]
    count = len(credentials)
    max_credentials = current_app.config["MAX_CREDENTIALS"]
    return {
        "credentialCount": count,
        "maxCredentials": max_credentials,
        "setupEnabled": setup_enabled(),
        "setupLocked": count >= max_credentials,
    }


def list_credentials() -> list[dict]:
    """Credentials in match order, without hashes."""
    credentials = store.read()["credentials"]
    return [
        {k: v for k, v in cred.items() if k != "hash"}
        for cred in ordered_credentials(credentials)
    ]
