# Overview: Service-layer operations for sessions; token issuance, validation and revocation.

"""
Session Token Management Service

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage; the plaintext is only ever
  held by the client
- Sliding expiry: every successful validation pushes expiresAt forward by
  the full SESSION_TTL
- Revocable on logout and when the owning credential's PIN is reset
- Storage backend (JSON store or memory) is chosen by SESSION_BACKEND
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..extensions import sessions
from ..time_utils import to_utc_z, utcnow


@dataclass
class SessionContext:
    """Resolved session attached to the request as g.session_context."""
    token: str
    credential_id: str
    scope: str
    expires_at: datetime


def generate_token() -> str:
    """Return a 64-character hex string (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for storage using SHA-256.

    Tokens are high-entropy, unlike PINs, so a fast digest is sufficient here.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _ttl():
    return current_app.config["SESSION_TTL"]


def create_session(credential: dict) -> tuple[dict, str]:
    """
    Create a new session bound to a credential.

    Returns (session_record, plaintext_token).
    """
    token = generate_token()
    now = utcnow()
    record = {
        "credentialId": credential["id"],
        "scope": credential["scope"],
        "createdAt": to_utc_z(now),
        "lastUsedAt": to_utc_z(now),
        "expiresAt": to_utc_z(now + _ttl()),
    }
    sessions.put(hash_token(token), record)
    return record, token


def validate_session(token: str | None) -> SessionContext | None:
    """
    Validate a session token and slide its expiry.

    Returns None if the token is missing, unknown or expired. Expired records
    are deleted on sight.
    """
    if not token:
        return None

    now = utcnow()
    ttl = _ttl()
    record = sessions.touch(hash_token(token), now, ttl)
    if record is None:
        return None

    expires_at = now + ttl
    return SessionContext(
        token=token,
        credential_id=record.get("credentialId", ""),
        scope=record.get("scope", ""),
        expires_at=expires_at,
    )


def revoke_session(token: str | None) -> bool:
    """Delete a session. Returns True if one existed; safe to repeat."""
    if not token:
        return False
    return sessions.delete(hash_token(token))


def revoke_credential_sessions(credential_id: str) -> int:
    """Delete every session issued for a credential. Returns the count."""
    return sessions.delete_for_credential(credential_id)


def cleanup_expired_sessions() -> int:
    """Delete expired sessions. Returns the count deleted."""
    return sessions.sweep(utcnow())
