"""Read-only sequence hosted once in the manager process.

Pool workers hold a proxy to it and fetch one element per call, so a task
pays for the element it reads instead of a copy of the whole sequence.
"""

from __future__ import annotations

import operator
from typing import Any, Iterable


class SharedCollection:
    """Immutable, index-addressed view over a sequence of elements."""

    def __init__(self, items: Iterable[Any]):
        self._items = tuple(items)

    def length(self) -> int:
        return len(self._items)

    def get(self, index: int) -> Any:
        """
        Return the element at index.

        Raises:
            TypeError: If index is not an integer
            IndexError: If index is outside [0, length())
        """
        if isinstance(index, bool):
            raise TypeError("Collection index must be an integer, not bool")
        index = operator.index(index)
        if index < 0 or index >= len(self._items):
            raise IndexError(
                f"Collection index {index} out of range [0, {len(self._items)})"
            )
        return self._items[index]
