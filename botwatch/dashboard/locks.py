"""Shared-reader / exclusive-writer lock with poisoning.

A writer that raises while holding the lock leaves the guarded store in an
unknown state. The lock is then poisoned: every later acquisition raises
``LockPoisonedError`` and callers are expected to terminate the process.
"""

import threading
from contextlib import contextmanager


class LockPoisonedError(RuntimeError):
    """Raised when acquiring a lock whose last writer failed mid-mutation."""


class RWLock:
    """Writer-preferring reader/writer lock built on ``threading.Condition``."""

    def __init__(self, name: str = "lock"):
        self.name = name
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0
        self._poisoned = False

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    def _check_poison(self):
        if self._poisoned:
            raise LockPoisonedError(f"{self.name} lock is poisoned")

    @contextmanager
    def read(self):
        """Hold the lock shared for the duration of the block."""
        with self._cond:
            self._check_poison()
            while self._writer or self._waiting_writers:
                self._cond.wait()
                self._check_poison()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        """Hold the lock exclusively; an exception inside the block poisons it."""
        with self._cond:
            self._check_poison()
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
                    self._check_poison()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        except BaseException:
            with self._cond:
                self._poisoned = True
            raise
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()
