"""
Scoped Counter Store.

Backs counter windows and block entries behind one interface so a shared
external store can replace the in-memory default without touching the
limiter algorithms.

InMemoryCounterStore locking:
- one lock per counter window; check-then-increment runs under it
- a store-level lock guards the window map and the block map
- pruning filters each window under its own lock (copy-then-swap) and
  retires empty windows so late writers re-fetch a live one
"""

import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Optional

from verigate.admission.schemas import BlockEntry, Dimension, EndpointClass


class ScopedCounterStore(ABC):
    """Storage contract for counter windows and block entries."""

    @abstractmethod
    def hit(self, key: str, now: float, max_requests: int, window_seconds: float) -> tuple[bool, int]:
        """
        Atomically prune, check and (if admitted) record one event.

        Returns:
            (admitted, count) where count includes this event when admitted
        """

    @abstractmethod
    def count(self, key: str, now: float) -> int:
        """Events currently inside the key's window."""

    @abstractmethod
    def put_block(self, entry: BlockEntry) -> None:
        """Insert or replace the block for (dimension, value_hash, endpoint_class)."""

    @abstractmethod
    def find_blocks(self, dimension: Dimension, value_hash: str) -> list[BlockEntry]:
        """All stored blocks for an entity, active or not."""

    @abstractmethod
    def delete_blocks(self, dimension: Dimension, value_hash: str) -> list[BlockEntry]:
        """Remove every block for an entity and return what was removed."""

    @abstractmethod
    def prune(self, now: float) -> tuple[int, int]:
        """Drop expired events and blocks. Returns (windows_removed, blocks_removed)."""

    @abstractmethod
    def window_count(self) -> int:
        """Number of live counter windows."""

    @abstractmethod
    def all_blocks(self) -> list[BlockEntry]:
        """Snapshot of every stored block."""


@dataclass
class _CounterWindow:
    window_seconds: float
    events: deque = field(default_factory=deque)
    lock: threading.Lock = field(default_factory=threading.Lock)
    retired: bool = False

    def trim(self, now: float) -> None:
        """Drop events outside the window. Caller holds the lock."""
        cutoff = now - self.window_seconds
        while self.events and self.events[0] <= cutoff:
            self.events.popleft()


class InMemoryCounterStore(ScopedCounterStore):
    """Process-local store (fine for single-process; use an external store for multi-process)."""

    def __init__(self):
        self._windows: dict[str, _CounterWindow] = {}
        self._windows_lock = threading.Lock()
        self._blocks: dict[tuple[Dimension, str], dict[Optional[EndpointClass], BlockEntry]] = {}
        self._blocks_lock = threading.Lock()

    def _window(self, key: str, window_seconds: float) -> _CounterWindow:
        with self._windows_lock:
            window = self._windows.get(key)
            if window is None:
                window = _CounterWindow(window_seconds=window_seconds)
                self._windows[key] = window
            return window

    def hit(self, key: str, now: float, max_requests: int, window_seconds: float) -> tuple[bool, int]:
        while True:
            window = self._window(key, window_seconds)
            with window.lock:
                if window.retired:
                    continue
                window.window_seconds = window_seconds
                window.trim(now)
                if len(window.events) >= max_requests:
                    return False, len(window.events)
                window.events.append(now)
                return True, len(window.events)

    def count(self, key: str, now: float) -> int:
        with self._windows_lock:
            window = self._windows.get(key)
        if window is None:
            return 0
        with window.lock:
            cutoff = now - window.window_seconds
            return sum(1 for ts in window.events if ts > cutoff)

    def put_block(self, entry: BlockEntry) -> None:
        with self._blocks_lock:
            entity = self._blocks.setdefault((entry.dimension, entry.value_hash), {})
            entity[entry.endpoint_class] = entry

    def find_blocks(self, dimension: Dimension, value_hash: str) -> list[BlockEntry]:
        with self._blocks_lock:
            return list(self._blocks.get((dimension, value_hash), {}).values())

    def delete_blocks(self, dimension: Dimension, value_hash: str) -> list[BlockEntry]:
        with self._blocks_lock:
            removed = self._blocks.pop((dimension, value_hash), {})
        return list(removed.values())

    def prune(self, now: float) -> tuple[int, int]:
        windows_removed = 0
        with self._windows_lock:
            items = list(self._windows.items())
        for key, window in items:
            with window.lock:
                cutoff = now - window.window_seconds
                window.events = deque(ts for ts in window.events if ts > cutoff)
                if window.events:
                    continue
                with self._windows_lock:
                    if self._windows.get(key) is window:
                        del self._windows[key]
                        window.retired = True
                        windows_removed += 1

        blocks_removed = 0
        with self._blocks_lock:
            for entity_key in list(self._blocks):
                entity = self._blocks[entity_key]
                for endpoint_class in [c for c, b in entity.items() if not b.is_active(now)]:
                    del entity[endpoint_class]
                    blocks_removed += 1
                if not entity:
                    del self._blocks[entity_key]
        return windows_removed, blocks_removed

    def window_count(self) -> int:
        with self._windows_lock:
            return len(self._windows)

    def all_blocks(self) -> list[BlockEntry]:
        with self._blocks_lock:
            return [b for entity in self._blocks.values() for b in entity.values()]


def active_blocks(blocks: Iterable[BlockEntry], now: float) -> list[BlockEntry]:
    return [b for b in blocks if b.is_active(now)]
