"""Single-slot run debouncing per (workflow, ref) and cancellation tokens.

A new run for a key cancels whichever run is already in flight for that
key. There is no queue: the superseded run is terminated outright.
"""

from __future__ import annotations

import logging
import threading
import time

from nativearch.models.runs import ConcurrencyKey

logger = logging.getLogger(__name__)

__all__ = ["CancellationToken", "ConcurrencyKey", "RunGate"]


class CancellationToken:
    """Thread-safe, one-way cancellation flag shared by a run's tasks."""

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._event = threading.Event()
        self._reason: str | None = None
        self._lock = threading.Lock()
        self._parent = parent

    def child(self) -> CancellationToken:
        """A token cancelled with this one, but cancellable on its own."""
        return CancellationToken(parent=self)

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> str | None:
        if self._event.is_set():
            return self._reason
        return self._parent.reason if self._parent is not None else None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or *timeout* elapses; return ``cancelled``."""
        if self._parent is None:
            return self._event.wait(timeout)
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self.cancelled:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                break
            self._event.wait(0.05 if remaining is None else min(0.05, remaining))
        return self.cancelled


class RunGate:
    """At most one in-flight run per concurrency key."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._slots: dict[ConcurrencyKey, tuple[str, CancellationToken]] = {}

    def admit(self, key: ConcurrencyKey, run_id: str) -> CancellationToken:
        """Register *run_id* for *key*, cancelling any run already in flight."""
        token = CancellationToken()
        with self._lock:
            previous = self._slots.get(key)
            self._slots[key] = (run_id, token)
        if previous is not None:
            prev_id, prev_token = previous
            logger.info(
                "Run %s supersedes in-flight run %s for %s", run_id, prev_id, key
            )
            prev_token.cancel(f"superseded by {run_id}")
        return token

    def release(self, key: ConcurrencyKey, run_id: str) -> None:
        """Free the slot, but only if *run_id* still owns it."""
        with self._lock:
            current = self._slots.get(key)
            if current is not None and current[0] == run_id:
                del self._slots[key]

    def active(self, key: ConcurrencyKey) -> str | None:
        with self._lock:
            current = self._slots.get(key)
            return current[0] if current else None

    def active_count(self) -> int:
        with self._lock:
            return len(self._slots)
