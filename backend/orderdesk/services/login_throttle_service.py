"""
Login Throttling Service

A 4-digit PIN has 10,000 possible values, so PIN login is throttled per
source address. After too many failures the source is temporarily locked.

FEATURES:
- Tracks failed attempts per identifier (the client address)
- Lockout after max_failed_attempts failures within lockout_window
- Lockout duration doubles on each consecutive lockout, capped at lockout_max
- Clears the failure history on successful login
- State is process-local and resets on restart
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from ..time_utils import utcnow


# Defaults, overridden from app config in init_app()
MAX_FAILED_ATTEMPTS = 5
LOCKOUT_WINDOW = timedelta(minutes=15)
LOCKOUT_DURATION = timedelta(minutes=5)
LOCKOUT_MAX = timedelta(minutes=60)


@dataclass
class _Attempts:
    failures: list[datetime] = field(default_factory=list)
    locked_until: datetime | None = None
    lockouts: int = 0


class LoginThrottle:
    """Flask-style extension tracking failed PIN logins per identifier."""

    def __init__(
        self,
        max_failed_attempts: int = MAX_FAILED_ATTEMPTS,
        lockout_window: timedelta = LOCKOUT_WINDOW,
        lockout_duration: timedelta = LOCKOUT_DURATION,
        lockout_max: timedelta = LOCKOUT_MAX,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.max_failed_attempts = max_failed_attempts
        self.lockout_window = lockout_window
        self.lockout_duration = lockout_duration
        self.lockout_max = lockout_max
        self.clock = clock
        self._entries: dict[str, _Attempts] = {}
        self._lock = threading.Lock()

    def init_app(self, app) -> None:
        self.max_failed_attempts = app.config["LOGIN_MAX_FAILED_ATTEMPTS"]
        self.lockout_window = app.config["LOGIN_LOCKOUT_WINDOW"]
        self.lockout_duration = app.config["LOGIN_LOCKOUT_DURATION"]
        self.lockout_max = app.config["LOGIN_LOCKOUT_MAX"]
        self.reset()
        app.extensions["orderdesk_throttle"] = self

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def _recent_failures(self, entry: _Attempts, now: datetime) -> list[datetime]:
        cutoff = now - self.lockout_window
        entry.failures = [t for t in entry.failures if t >= cutoff]
        return entry.failures

    def get_recent_failed_attempts(self, identifier: str) -> int:
        """Count failed attempts for identifier within the lockout window."""
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None:
                return 0
            return len(self._recent_failures(entry, self.clock()))

    def is_locked(self, identifier: str) -> tuple[bool, int | None]:
        """
        Check if an identifier is currently locked.

        Returns:
        - (True, seconds_remaining) if locked
        - (False, None) if not locked
        """
        with self._lock:
            entry = self._entries.get(identifier)
            if entry is None or entry.locked_until is None:
                return False, None
            now = self.clock()
            if now < entry.locked_until:
                seconds = int((entry.locked_until - now).total_seconds()) + 1
                return True, seconds
            entry.locked_until = None
            return False, None

    def record_failed_attempt(self, identifier: str) -> int:
        """
        Record a failed login attempt.

        Returns the number of recent failed attempts. Reaching the limit
        starts a lockout and clears the failure list, so the next lockout
        needs another full run of failures.
        """
        with self._lock:
            now = self.clock()
            entry = self._entries.setdefault(identifier, _Attempts())
            failures = self._recent_failures(entry, now)
            failures.append(now)
            count = len(failures)

            if count >= self.max_failed_attempts:
                duration = self.lockout_duration * (2 ** entry.lockouts)
                if duration > self.lockout_max:
                    duration = self.lockout_max
                entry.locked_until = now + duration
                entry.lockouts += 1
                entry.failures = []

            return count

    def record_successful_login(self, identifier: str) -> None:
        """Forget all failures and lockout history for identifier."""
        with self._lock:
            self._entries.pop(identifier, None)

    def get_lockout_status(self, identifier: str) -> dict:
        """
        Get detailed lockout status for an identifier.

        Returns dict with:
        - locked: bool
        - failed_attempts: int
        - max_attempts: int
        - seconds_until_unlock: int | None
        """
        locked, seconds_remaining = self.is_locked(identifier)
        return {
            "locked": locked,
            "failed_attempts": self.get_recent_failed_attempts(identifier),
            "max_attempts": self.max_failed_attempts,
            "seconds_until_unlock": seconds_remaining,
            "lockout_window_minutes": int(self.lockout_window.total_seconds() / 60),
        }
