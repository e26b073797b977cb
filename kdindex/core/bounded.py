from __future__ import annotations

from bisect import bisect_right
from typing import Any, Generic, Iterator, List, Tuple, TypeVar

from kdindex.exceptions import InvalidInputError

T = TypeVar("T")


class BoundedResultList(Generic[T]):
    """Fixed-capacity list of ``(element, priority)`` pairs kept sorted by priority.

    Insertion is a binary search plus a list shift. Once the list is full,
    candidates whose priority is not strictly below the current maximum are
    rejected before any search happens. Equal priorities keep their arrival
    order.
    """

    __slots__ = ("_capacity", "_elements", "_priorities")

    def __init__(self, capacity: int) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int):
            raise InvalidInputError(f"capacity must be an integer, got {capacity!r}.")
        if capacity <= 0:
            raise InvalidInputError(f"capacity must be positive, got {capacity}.")
        self._capacity = capacity
        self._elements: List[T] = []
        self._priorities: List[Any] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_full(self) -> bool:
        return len(self._priorities) >= self._capacity

    @property
    def min_element(self) -> T:
        return self._elements[0]

    @property
    def min_priority(self) -> Any:
        return self._priorities[0]

    @property
    def max_element(self) -> T:
        return self._elements[-1]

    @property
    def max_priority(self) -> Any:
        return self._priorities[-1]

    def add(self, element: T, priority: Any) -> bool:
        """Insert ``element`` unless the list is full and ``priority`` cannot displace the worst entry.

        Returns ``True`` when the element was kept.
        """

        if len(self._priorities) >= self._capacity:
            if priority >= self._priorities[-1]:
                return False
            index = bisect_right(self._priorities, priority)
            self._priorities.insert(index, priority)
            self._elements.insert(index, element)
            self._priorities.pop()
            self._elements.pop()
            return True

        index = bisect_right(self._priorities, priority)
        self._priorities.insert(index, priority)
        self._elements.insert(index, element)
        return True

    def priorities(self) -> Tuple[Any, ...]:
        return tuple(self._priorities)

    def items(self) -> Tuple[Tuple[T, Any], ...]:
        return tuple(zip(self._elements, self._priorities))

    def __len__(self) -> int:
        return len(self._priorities)

    def __getitem__(self, index: int) -> T:
        return self._elements[index]

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._elements))

    def __repr__(self) -> str:
        return (
            f"BoundedResultList(capacity={self._capacity}, "
            f"size={len(self._priorities)})"
        )


__all__ = ["BoundedResultList"]
