"""
BoldMove - Single-flight guard.

Rejects a second concurrent call for the same key (session, action id)
instead of queueing it. The check and the claim happen before the first
await, so two coroutines on one event loop cannot both pass.
"""

from contextlib import contextmanager
from typing import Iterator

from boldmove.core.errors import OperationInProgressError


class SingleFlight:
    """Tracks which keys have an operation in progress."""

    def __init__(self):
        self._active: set[str] = set()

    def is_running(self, key: str) -> bool:
        return key in self._active

    @contextmanager
    def guard(self, key: str, what: str = "operation") -> Iterator[None]:
        if key in self._active:
            raise OperationInProgressError(f"{what} already in progress for {key}")
        self._active.add(key)
        try:
            yield
        finally:
            self._active.discard(key)
