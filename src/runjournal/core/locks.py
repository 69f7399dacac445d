# src/runjournal/core/locks.py
"""Reader/writer lock and cancellation primitives for the registry.

ReadWriteLock:
    Many readers or one writer. Writers are preferred: once a writer is
    waiting, new readers queue behind it so registry mutations cannot be
    starved by a steady stream of invokes. Not reentrant.

CancelToken:
    Cooperative cancellation checked between subscriber calls and while
    waiting on a remote store. A running callback is never interrupted.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager


class ReadWriteLock:
    """Writer-preferring reader/writer lock built on one Condition."""

    def __init__(self) -> None:
        # Single lock protects all counters
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            if self._readers <= 0:
                raise RuntimeError("release_read() called without a matching acquire_read()")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            if not self._writer:
                raise RuntimeError("release_write() called without a matching acquire_write()")
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self) -> Iterator[None]:
        """Hold the shared lock for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        """Hold the exclusive lock for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class CancelToken:
    """Thread-safe cancellation flag with an optional reason.

    Example:
        token = CancelToken()
        threading.Timer(5.0, token.cancel, args=("shutdown",)).start()
        registry.invoke("journal.collect", JOURNAL_SIGNATURE, cancel=token)
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or timeout elapses. Returns cancelled state."""
        return self._event.wait(timeout)


class Deadline:
    """Monotonic deadline. ``None`` timeout means no deadline."""

    def __init__(self, timeout: float | None) -> None:
        if timeout is not None and timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {timeout}")
        self._expires_at = time.monotonic() + timeout if timeout is not None else None

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())


def stop_reason(cancel: CancelToken | None, deadline: Deadline) -> str | None:
    """Return why work should stop now, or None to continue."""
    if cancel is not None and cancel.cancelled:
        return cancel.reason or "cancelled"
    if deadline.expired:
        return "deadline exceeded"
    return None
