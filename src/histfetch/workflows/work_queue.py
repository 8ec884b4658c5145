"""Shared queue of pending fetch targets."""

from __future__ import annotations

import threading
from typing import Generic, Iterable, List, Optional, Set, Tuple, TypeVar

from .history import HistoryItem

T = TypeVar("T")


class WorkQueue(Generic[T]):
    """Lock-guarded list consumed by worker threads.

    ``pop`` is the only mutation: it removes one element and reports how many
    remain, both observed inside the same critical section. Elements come
    off the end of the list; consumption order is not part of the contract.
    """

    def __init__(self, items: Iterable[T]) -> None:
        self._items: List[T] = list(items)
        self._lock = threading.Lock()

    @classmethod
    def from_universe(cls, universe: Iterable[HistoryItem], completed: Set[str]) -> "WorkQueue[HistoryItem]":
        return cls(item for item in universe if item.url not in completed)

    def pop(self) -> Tuple[Optional[T], int]:
        with self._lock:
            item = self._items.pop() if self._items else None
            return item, len(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
