"""Per-slot mutual exclusion for admissions within one process."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterator, Tuple


@dataclass(frozen=True)
class SlotKey:
    station_id: str
    reservation_date: date
    reservation_hour: int


class KeyedLockRegistry:
    """Hands out one lock per key; entries are dropped once nobody holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[SlotKey, Tuple[threading.Lock, int]] = {}

    def _checkout(self, key: SlotKey) -> threading.Lock:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)
            return lock

    def _release(self, key: SlotKey) -> None:
        with self._guard:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    @contextmanager
    def hold(self, key: SlotKey) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            with lock:
                yield
        finally:
            self._release(key)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)
