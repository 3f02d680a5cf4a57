"""The value stack of a fiber."""

from __future__ import annotations

from typing import Any

from loxvm.errors import ErrorKind, VmError


class Stack:
    """A value stack addressed from the bottom by slot and from the top by depth."""

    def __init__(self, capacity: int | None = None) -> None:
        self._items: list[Any] = []
        self.capacity = capacity

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def _require(self, count: int) -> None:
        if count > len(self._items):
            raise VmError(ErrorKind.STACK_EMPTY)

    def push(self, value: Any) -> None:
        if self.capacity is not None and len(self._items) >= self.capacity:
            raise VmError(ErrorKind.STACK_OVERFLOW)
        self._items.append(value)

    def pop(self) -> Any:
        self._require(1)
        return self._items.pop()

    def peek_n(self, n: int) -> Any:
        """Return the value ``n`` slots below the top (0 is the top)."""
        self._require(n + 1)
        return self._items[-(n + 1)]

    def rset(self, n: int, value: Any) -> None:
        """Replace the value ``n`` slots below the top."""
        self._require(n + 1)
        self._items[-(n + 1)] = value

    def set(self, index: int, value: Any) -> None:
        if not 0 <= index < len(self._items):
            raise IndexError(f"stack slot {index} out of range")
        self._items[index] = value

    def get(self, index: int) -> Any:
        if not 0 <= index < len(self._items):
            raise IndexError(f"stack slot {index} out of range")
        return self._items[index]

    def truncate(self, top: int) -> None:
        """Drop every value at slot ``top`` and above."""
        if top < 0:
            raise ValueError("cannot truncate to a negative height")
        del self._items[top:]

    def pop_n(self, n: int) -> list[Any]:
        """Remove the top ``n`` values and return them bottom first."""
        if n == 0:
            return []
        self._require(n)
        popped = self._items[-n:]
        del self._items[-n:]
        return popped

    def __repr__(self) -> str:
        return f"Stack({self._items!r})"