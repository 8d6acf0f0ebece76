# Overview: Pluggable session storage (persisted in the JSON store, or process memory).

"""
Session storage backends.

Records are keyed by the SHA-256 hash of the session token and look like:

    {
        "credentialId": "9f2c...",
        "scope": "chef",
        "createdAt": "2026-01-05T08:00:00.000Z",
        "lastUsedAt": "2026-01-05T09:12:44.120Z",
        "expiresAt": "2026-01-05T17:12:44.120Z"
    }

Both backends return copies, never live references.
"""

from __future__ import annotations

import copy
import threading

from .storage import JsonStore, purge_expired_sessions
from .time_utils import is_past, to_utc_z, utcnow


def _slide_expiry(sessions: dict, key: str, now, ttl) -> dict | None:
    record = sessions.get(key)
    if record is None:
        return None
    if is_past(record.get("expiresAt"), now):
        del sessions[key]
        return None
    record["lastUsedAt"] = to_utc_z(now)
    record["expiresAt"] = to_utc_z(now + ttl)
    return copy.deepcopy(record)


class SessionBackend:
    """Interface implemented by every session storage backend."""

    def put(self, key: str, record: dict) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def delete_for_credential(self, credential_id: str) -> int:
        raise NotImplementedError

    def sweep(self, now=None) -> int:
        raise NotImplementedError

    def touch(self, key: str, now, ttl) -> dict | None:
        """
        Slide a live session's expiry to now + ttl in one step.

        Returns the refreshed record, or None when it is gone or expired
        (expired records are deleted).
        """
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError


class StoreSessionBackend(SessionBackend):
    """Sessions live in the "sessions" section of the JSON document."""

    def __init__(self, store: JsonStore):
        self.store = store

    def put(self, key, record):
        with self.store.transaction() as state:
            state["sessions"][key] = copy.deepcopy(record)

    def delete(self, key):
        with self.store.transaction() as state:
            return state["sessions"].pop(key, None) is not None

    def delete_for_credential(self, credential_id):
        with self.store.transaction() as state:
            keys = [k for k, r in state["sessions"].items() if r.get("credentialId") == credential_id]
            for k in keys:
                del state["sessions"][k]
            return len(keys)

    def sweep(self, now=None):
        # save() purges too; count here so the caller gets a number back
        with self.store.transaction() as state:
            return purge_expired_sessions(state["sessions"], now or utcnow())

    def count(self):
        return len(self.store.read()["sessions"])

    def touch(self, key, now, ttl):
        # Unknown tokens must not cost a write
        if key not in self.store.read()["sessions"]:
            return None
        with self.store.transaction() as state:
            return _slide_expiry(state["sessions"], key, now, ttl)


class MemorySessionBackend(SessionBackend):
    """Process-local sessions, lost on restart."""

    def __init__(self):
        self._sessions: dict[str, dict] = {}
        self._lock = threading.Lock()

    def put(self, key, record):
        with self._lock:
            purge_expired_sessions(self._sessions)
            self._sessions[key] = copy.deepcopy(record)

    def delete(self, key):
        with self._lock:
            return self._sessions.pop(key, None) is not None

    def delete_for_credential(self, credential_id):
        with self._lock:
            keys = [k for k, r in self._sessions.items() if r.get("credentialId") == credential_id]
            for k in keys:
                del self._sessions[k]
            return len(keys)

    def sweep(self, now=None):
        with self._lock:
            return purge_expired_sessions(self._sessions, now or utcnow())

    def count(self):
        with self._lock:
            return len(self._sessions)

    def touch(self, key, now, ttl):
        with self._lock:
            return _slide_expiry(self._sessions, key, now, ttl)


class SessionRegistry:
    """
    Flask-style extension selecting the session backend from SESSION_BACKEND.

    Proxies the SessionBackend interface to whichever backend is bound.
    """

    def __init__(self, backend: SessionBackend | None = None):
        self.backend = backend

    def init_app(self, app, store: JsonStore) -> None:
        kind = app.config.get("SESSION_BACKEND", "store")
        if kind == "memory":
            self.backend = MemorySessionBackend()
        elif kind == "store":
            self.backend = StoreSessionBackend(store)
        else:
            raise ValueError(f"Unknown SESSION_BACKEND: {kind!r}")
        app.extensions["orderdesk_sessions"] = self

    def _require_backend(self) -> SessionBackend:
        if self.backend is None:
            raise RuntimeError("SessionRegistry is not initialized; call init_app() first")
        return self.backend

    def put(self, key, record):
        self._require_backend().put(key, record)

    def delete(self, key):
        return self._require_backend().delete(key)

    def delete_for_credential(self, credential_id):
        return self._require_backend().delete_for_credential(credential_id)

    def sweep(self, now=None):
        return self._require_backend().sweep(now)

    def count(self):
        return self._require_backend().count()

    def touch(self, key, now, ttl):
        return self._require_backend().touch(key, now, ttl)
