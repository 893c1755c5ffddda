"""
Brute-force protection for logins.

Failed logins are counted per normalised username. Five failures, each
less than 30 minutes after the previous one, lock the account for 15
minutes. A lock is cleared lazily, the first time it is read after it
has expired. Counters that have seen no failure for 30 minutes are
dropped. Counters live in memory only and are shared by every session
of the process.

State per username:

    Clear --failure--> Counting(1) --failure--> ... --5th failure--> Locked
      ^                    |                                           |
      |   success / gap > 30 min restarts the count                   |
      +---------------------------- lock read after expiry -----------+
"""

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from playdeck.domain.models import normalize_username


MAX_ATTEMPTS = 5
RESET_WINDOW = 30 * 60
LOCKOUT_DURATION = 15 * 60


@dataclass
class AttemptEntry:
    failure_count: int = 0
    last_attempt: float = 0.0
    lockout_until: float = 0.0


@dataclass(frozen=True)
class FailureOutcome:
    """
    Result of recording one failed login.

    Attributes:
        failure_count: Failures counted so far in the current window.
        attempts_remaining: Failures left before the account locks.
        locked: True if this failure locked the account.
    """
    failure_count: int
    attempts_remaining: int
    locked: bool


class AttemptTracker:
    """
    Thread-safe per-username failure counters.

    One lock guards the map and every entry, so concurrent failures on the
    same account never lose an increment.

    Args:
        clock: Returns the current time in seconds. Defaults to time.monotonic;
               tests inject a fake clock.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_attempts: int = MAX_ATTEMPTS,
        reset_window: float = RESET_WINDOW,
        lockout_duration: float = LOCKOUT_DURATION
    ) -> None:
        self._clock = clock
        self.max_attempts = max_attempts
        self.reset_window = reset_window
        self.lockout_duration = lockout_duration
        self._entries: dict[str, AttemptEntry] = {}
        self._lock = threading.Lock()

    def _is_stale(self, entry: AttemptEntry, now: float) -> bool:
        if entry.lockout_until:
            return now >= entry.lockout_until
        return now - entry.last_attempt > self.reset_window

    def _expire(self, key: str, now: float) -> AttemptEntry | None:
        # Caller holds self._lock
        entry = self._entries.get(key)
        if entry is not None and self._is_stale(entry, now):
            del self._entries[key]
            return None
        return entry

    def _prune(self, now: float) -> None:
        # Caller holds self._lock
        stale = [key for key, entry in self._entries.items() if self._is_stale(entry, now)]
        for key in stale:
            del self._entries[key]

    def __len__(self) -> int:
        """Number of usernames with live failure state."""
        with self._lock:
            self._prune(self._clock())
            return len(self._entries)

    def is_locked(self, username: str) -> bool:
        return self.remaining_lockout(username) > 0

    def remaining_lockout(self, username: str) -> int:
        """Whole seconds left on the lockout of username (rounded up), 0 if not locked."""
        key = normalize_username(username)
        with self._lock:
            now = self._clock()
            entry = self._expire(key, now)
            if entry is None or not entry.lockout_until:
                return 0
            remaining = entry.lockout_until - now
            return max(math.ceil(remaining), 1)

    def record_failure(self, username: str) -> FailureOutcome:
        """Count one failed login for username."""
        key = normalize_username(username)
        with self._lock:
            now = self._clock()
            self._prune(now)
            entry = self._entries.setdefault(key, AttemptEntry())

            entry.failure_count += 1
            entry.last_attempt = now

            locked = False
            if entry.failure_count >= self.max_attempts and not entry.lockout_until:
                entry.lockout_until = now + self.lockout_duration
                locked = True

            return FailureOutcome(
                failure_count=entry.failure_count,
                attempts_remaining=max(0, self.max_attempts - entry.failure_count),
                locked=locked,
            )

    def record_success(self, username: str) -> None:
        """Forget every failure of username."""
        with self._lock:
            self._entries.pop(normalize_username(username), None)

    def failure_count(self, username: str) -> int:
        with self._lock:
            entry = self._expire(normalize_username(username), self._clock())
            return entry.failure_count if entry else 0
