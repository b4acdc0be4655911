"""Priority-ordered map.

A ``PriorityMap`` stores at most one value per numeric priority and keeps a
descending index of the priorities in use, so that traversal always runs from
the highest priority to the lowest.

## Traversal

- ``map`` walks one map.
- ``PriorityMap.map_all`` merges several maps into a single descending walk
  over every (map, priority) pair. At equal priority the map that comes first
  in the input list is visited first.

Both stop as soon as the visitor sets ``api.break_``, returning the results
collected so far.

```python
first = PriorityMap[str]().set(2, "b").set(0, "d")
second = PriorityMap[str]().set(3, "a").set(0, "e")

PriorityMap.map_all([first, second], lambda api, value: value)
# ["a", "b", "d", "e"]
```
"""

from collections.abc import Callable, Iterable
from typing import Any, Protocol

from pydantic import BaseModel

Priority = int | float


class BreakableApi(Protocol):
    """Anything carrying a mutable ``break_`` flag."""

    break_: bool


class MapApi(BaseModel):
    """Default traversal api used when the caller does not supply one."""

    break_: bool = False


def _sorted_index(priorities: list[Priority], priority: Priority) -> int:
    """Binary search in a descending list.

    Returns the index of ``priority`` if present, otherwise the index it would
    have to be inserted at to keep the list descending.
    """
    low = 0
    high = len(priorities)

    while low < high:
        mid = (low + high) >> 1
        if priorities[mid] > priority:
            low = mid + 1
        else:
            high = mid

    return low


class PriorityMap[V]:
    """Ordered map from priority to a single value, highest priority first."""

    def __init__(self) -> None:
        self._values: dict[Priority, V] = {}
        self._priorities: list[Priority] = []

    def __repr__(self) -> str:
        entries = ", ".join(f"{priority}: {self._values[priority]!r}" for priority in self._priorities)
        return f"PriorityMap({{{entries}}})"

    def __len__(self) -> int:
        return len(self._priorities)

    def __contains__(self, priority: object) -> bool:
        return priority in self._values

    def get(self, priority: Priority = 0) -> V | None:
        """Return the value stored at ``priority``, or None."""
        return self._values.get(priority)

    def get_or_default(self, priority: Priority, factory: Callable[[], V], assign: bool = False) -> V:
        """Return the value at ``priority``, creating it with ``factory`` if missing.

        Args:
            priority: The priority to look up
            factory: Called to produce a value when none is stored
            assign: If True, the produced value is stored at ``priority``

        Returns:
            The stored or freshly produced value
        """
        if priority in self._values:
            return self._values[priority]

        value = factory()
        if assign:
            self.set(priority, value)
        return value

    def set(self, priority: Priority, value: V) -> "PriorityMap[V]":
        """Store ``value`` at ``priority``, replacing any previous value."""
        if priority not in self._values:
            self._priorities.insert(_sorted_index(self._priorities, priority), priority)
        self._values[priority] = value
        return self

    def remove(self, priority: Priority = 0) -> "PriorityMap[V]":
        """Remove the value at ``priority``. Missing priorities are ignored."""
        if self._values.pop(priority, _MISSING) is not _MISSING:
            del self._priorities[_sorted_index(self._priorities, priority)]
        return self

    def clear(self) -> "PriorityMap[V]":
        self._values.clear()
        self._priorities.clear()
        return self

    def has(self, priority: Priority = 0) -> bool:
        return priority in self._values

    def has_any(self) -> bool:
        return bool(self._priorities)

    def get_priorities(self) -> tuple[Priority, ...]:
        """Return the priorities in use, highest first."""
        return tuple(self._priorities)

    def values(self) -> Iterable[V]:
        """Iterate stored values from the highest priority to the lowest."""
        for priority in tuple(self._priorities):
            if priority in self._values:
                yield self._values[priority]

    def map[R](self, visitor: Callable[[Any, V], R], api: BreakableApi | None = None) -> list[R]:
        """Visit every value from the highest priority to the lowest.

        The priority index is snapshotted first, so visitors may add or remove
        entries. Entries removed before they are reached are skipped.

        Args:
            visitor: Called as ``visitor(api, value)`` for each value
            api: Traversal api; ``api.break_`` stops the walk

        Returns:
            The visitor results, in visiting order
        """
        if api is None:
            api = MapApi()

        result: list[R] = []
        for priority in tuple(self._priorities):
            if priority not in self._values:
                continue

            result.append(visitor(api, self._values[priority]))
            if api.break_:
                break

        return result

    @staticmethod
    def map_all[T, R](
        maps: Iterable["PriorityMap[T]"],
        visitor: Callable[[Any, T], R],
        api: BreakableApi | None = None,
    ) -> list[R]:
        """Visit the values of several maps as one descending sequence.

        This is a k-way merge: at every step the highest pending priority over
        all maps is visited, and only that map's cursor advances. At equal
        priority, the map listed first wins. Empty maps take no part.

        Args:
            maps: The maps to merge, in tie-breaking order
            visitor: Called as ``visitor(api, value)`` for each value
            api: Traversal api; ``api.break_`` stops the walk

        Returns:
            The visitor results, in visiting order
        """
        if api is None:
            api = MapApi()

        # (map, priority snapshot, position) for every non-empty map
        cursors = [[priority_map, priority_map.get_priorities(), 0] for priority_map in maps if priority_map.has_any()]

        result: list[R] = []
        while cursors:
            best = 0
            for i in range(1, len(cursors)):
                _, priorities, position = cursors[i]
                _, best_priorities, best_position = cursors[best]
                if priorities[position] > best_priorities[best_position]:
                    best = i

            priority_map, priorities, position = cursors[best]
            priority = priorities[position]
            if position + 1 == len(priorities):
                del cursors[best]
            else:
                cursors[best][2] = position + 1

            if priority not in priority_map._values:
                continue

            result.append(visitor(api, priority_map._values[priority]))
            if api.break_:
                break

        return result


_MISSING = object()

__all__ = ["BreakableApi", "MapApi", "Priority", "PriorityMap"]
