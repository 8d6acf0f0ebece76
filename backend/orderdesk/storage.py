# Overview: Single-document JSON store with fail-open loads and serialized, versioned writes.

"""
JSON Document Store

The whole application state lives in one pretty-printed JSON file:

    {
      "version": 3,
      "orders": {"breakfast": null, "bar": {...}, "housekeeping": null},
      "validated": null,
      "credentials": {"<id>": {...}},
      "sessions": {"<token hash>": {...}}
    }

CONCURRENCY: Every mutation goes through `transaction()`, which holds a
per-store RLock for load -> mutate -> save. The `version` counter is bumped
on each save; a save whose state was loaded at an older version than the
file on disk (another process wrote in between) raises StaleWriteError.

FAILURE POLICY:
- load never raises; missing/empty/corrupt/unreadable files yield defaults
- save raises PersistenceError on any OS-level write failure, no retries
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Iterator

from .time_utils import is_past, utcnow
from .validation import PersistenceError, StaleWriteError


logger = logging.getLogger(__name__)

DEPARTMENTS = ("breakfast", "bar", "housekeeping")


def default_state() -> dict:
    return {
        "version": 0,
        "orders": {department: None for department in DEPARTMENTS},
        "validated": None,
        "credentials": {},
        "sessions": {},
    }


def _coerce_state(raw: dict) -> dict:
    """Fill a possibly partial document with defaults, dropping unknown keys."""
    state = default_state()

    version = raw.get("version")
    if isinstance(version, int) and not isinstance(version, bool) and version >= 0:
        state["version"] = version

    orders = raw.get("orders")
    if isinstance(orders, dict):
        for department in DEPARTMENTS:
            record = orders.get(department)
            state["orders"][department] = record if isinstance(record, dict) else None

    validated = raw.get("validated")
    if isinstance(validated, dict):
        state["validated"] = validated

    for key in ("credentials", "sessions"):
        value = raw.get(key)
        if isinstance(value, dict):
            state[key] = {k: v for k, v in value.items() if isinstance(v, dict)}

    return state


def purge_expired_sessions(sessions: dict, now=None) -> int:
    """Remove sessions whose expiresAt has passed. Returns the count removed."""
    now = now or utcnow()
    expired = [key for key, record in sessions.items() if is_past(record.get("expiresAt"), now)]
    for key in expired:
        del sessions[key]
    return len(expired)


class JsonStore:
    """
    Flask-style extension wrapping one JSON document on disk.

    Use `init_app(app)` to bind it to `DATA_FILE`, or construct it with a
    path directly (CLI scripts, unit tests).
    """

    def __init__(self, path: str | None = None):
        self.path = path
        self._lock = threading.RLock()

    def init_app(self, app) -> None:
        path = app.config["DATA_FILE"]
        if not os.path.isabs(path):
            path = os.path.join(app.instance_path, path)
        self.path = path
        app.extensions["orderdesk_store"] = self

    def _require_path(self) -> str:
        if not self.path:
            raise RuntimeError("JsonStore is not bound to a data file; call init_app() first")
        return self.path

    def _read_raw(self) -> dict | None:
        """Return the parsed document, or None when it is missing or unusable."""
        path = self._require_path()
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError:
            logger.warning("Could not read %s; using defaults", path, exc_info=True)
            return None

        if not content.strip():
            return None

        try:
            raw = json.loads(content)
        except ValueError:
            logger.warning("Data file %s is not valid JSON; using defaults", path)
            return None

        if not isinstance(raw, dict):
            logger.warning("Data file %s does not hold a JSON object; using defaults", path)
            return None
        return raw

    def load(self) -> dict:
        """
        Load the full state. Never raises.

        The returned dict is private to the caller; mutating it has no effect
        until it is passed to save().
        """
        raw = self._read_raw()
        if raw is None:
            return default_state()
        return _coerce_state(raw)

    def current_version(self) -> int:
        raw = self._read_raw()
        if raw is None:
            return 0
        return _coerce_state(raw)["version"]

    def save(self, state: dict) -> None:
        """
        Persist the full state, replacing the file atomically.

        Expired sessions are purged first. Raises StaleWriteError if the file
        was written by someone else since `state` was loaded, PersistenceError
        if the write itself fails.
        """
        path = self._require_path()
        with self._lock:
            on_disk = self.current_version()
            if state.get("version", 0) != on_disk:
                raise StaleWriteError(
                    f"Data file is at version {on_disk}, state was loaded at {state.get('version', 0)}"
                )

            purge_expired_sessions(state.setdefault("sessions", {}))
            document = dict(state)
            document["version"] = on_disk + 1

            directory = os.path.dirname(os.path.abspath(path))
            tmp_path = None
            try:
                os.makedirs(directory, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".orderdesk-", suffix=".json")
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(document, f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, path)
                tmp_path = None
            except (OSError, TypeError, ValueError) as exc:
                logger.exception("Failed to save data file %s", path)
                raise PersistenceError("Failed to save data") from exc
            finally:
                if tmp_path is not None and os.path.exists(tmp_path):
                    os.remove(tmp_path)

            state["version"] = document["version"]

    def read(self) -> dict:
        """Load under the store lock (no write)."""
        with self._lock:
            return self.load()

    @contextmanager
    def transaction(self) -> Iterator[dict]:
        """
        Serialize a load -> mutate -> save cycle.

        If the block raises, nothing is written and the exception propagates.
        """
        with self._lock:
            state = self.load()
            yield state
            self.save(state)
