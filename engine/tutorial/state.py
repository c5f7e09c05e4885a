"""
Tutorial Engine — State Store

Single source of truth for one session's mutable values.

- Flat namespace: key → value (number, boolean, or string)
- Copy-on-write: every write swaps in a new dict, so snapshots already handed
  to a render are never mutated underneath it
- One notification per write, or one per batch (last write per key wins)
- No transactions, no rollback
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from types import MappingProxyType
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[Mapping[str, Any]], None]


class StateStore:
    """Holds the current value of every named state variable for one document."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._state: dict[str, Any] = dict(initial or {})
        self._listeners: list[Listener] = []
        self._batch_depth = 0
        self._pending = False
        self._version = 0

    # -- reads ---------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Current value for key. Absent keys read as `default`; never raises."""
        return self._state.get(key, default)

    def snapshot(self) -> Mapping[str, Any]:
        """Read-only view of the current aggregate state."""
        return MappingProxyType(self._state)

    @property
    def version(self) -> int:
        """Number of writes committed so far."""
        return self._version

    def __contains__(self, key: object) -> bool:
        return key in self._state

    def __len__(self) -> int:
        return len(self._state)

    # -- writes --------------------------------------------------------------

    def set(self, key: str, value: Any) -> None:
        """
        Replace the aggregate with a shallow copy carrying the one updated key,
        then notify (or defer notification until the enclosing batch exits).
        """
        self._state = {**self._state, key: value}
        self._version += 1
        logger.debug("state: %s = %r", key, value)
        if self._batch_depth:
            self._pending = True
            return
        self._notify()

    def update(self, values: Mapping[str, Any]) -> None:
        """Write several keys as one batch (one notification)."""
        with self.batch():
            for key, value in values.items():
                self.set(key, value)

    @contextmanager
    def batch(self) -> Iterator[StateStore]:
        """
        Collapse all writes made inside the block into a single notification.
        Writes are applied immediately; only the notification is deferred.
        Nested batches notify once, when the outermost one exits.
        """
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending:
                self._pending = False
                self._notify()

    # -- notification ----------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("state: change listener %r failed", listener)
