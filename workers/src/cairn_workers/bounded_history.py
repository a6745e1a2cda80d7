"""Fixed-capacity, most-recent-first list.

Eviction of the oldest entries on push is a retention policy, not an error.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class BoundedHistory(Generic[T]):
    def __init__(self, items: Iterable[T] = (), capacity: int = 1) -> None:
        self.capacity = max(1, int(capacity))
        self._items: list[T] = list(items)[: self.capacity]

    def push_front(self, item: T) -> None:
        self._items.insert(0, item)
        del self._items[self.capacity :]

    def to_list(self) -> list[T]:
        return list(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)
