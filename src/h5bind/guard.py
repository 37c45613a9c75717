"""
Concurrency guard for the native library.

libhdf5 is not reentrant across threads, so every native call in h5bind is
issued while holding one process-wide lock. The lock may be re-acquired by
the thread that already holds it: a garbage-collection finaliser releasing a
handle can run in the middle of a guarded call on the same thread. Between
threads it is a plain mutual exclusion without fairness guarantees.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

__all__ = ["NativeGuard", "guard", "guarded"]


class NativeGuard:
    """Process-wide critical section around native calls."""

    __slots__ = ("_lock", "_acquisitions")

    def __init__(self):
        self._lock = threading.RLock()
        self._acquisitions = 0

    def acquire(self) -> None:
        self._lock.acquire()
        self._acquisitions += 1

    def release(self) -> None:
        self._lock.release()

    def __enter__(self) -> "NativeGuard":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    @property
    def held(self) -> bool:
        """True if the calling thread currently holds the guard."""
        return self._lock._is_owned()

    @property
    def acquisitions(self) -> int:
        """Number of acquisitions since process start (diagnostics)."""
        return self._acquisitions


# Global guard instance
guard = NativeGuard()


@contextmanager
def guarded() -> Iterator[NativeGuard]:
    """Hold the global guard for the duration of a ``with`` block."""
    with guard:
        yield guard
