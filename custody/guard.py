"""
custody.guard: single "operation in progress" guard for ledger entry points.

`ReentrancyGuard.enter()` is a context manager:

- a call from another thread blocks until the running operation finishes
  (operations are serialized);
- a nested call from the *same* thread, which can only happen through a
  callback fired by an external collaborator, is rejected with `Reentrant`;
- the guard is released on every exit path, including exceptions;
- `locked()` holds the same lock for readers without marking an operation.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .errors import Reentrant

log = logging.getLogger(__name__)


class ReentrancyGuard:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._active: Optional[str] = None

    @property
    def entered(self) -> bool:
        return self._active is not None

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the lock without starting an operation; reads use this to see only committed state."""
        with self._lock:
            yield

    @contextmanager
    def enter(self, operation: str) -> Iterator[None]:
        with self._lock:
            if self._active is not None:
                log.warning("re-entrant %s rejected while %s is in progress", operation, self._active)
                raise Reentrant(
                    f"{operation} called while {self._active} is in progress",
                    details={"operation": operation, "active": self._active},
                )
            self._active = operation
            log.debug("guard entered: %s", operation)
            try:
                yield
            finally:
                self._active = None
                log.debug("guard released: %s", operation)


__all__ = ["ReentrancyGuard"]
