"""String interning: maps identifier names to small integer symbols."""

from __future__ import annotations

INVALID_SYMBOL = 0


class Interner:
    """Hands out a stable integer symbol for every distinct string.

    Symbols start at 1; 0 is reserved as the invalid symbol.
    """

    def __init__(self) -> None:
        self._next = INVALID_SYMBOL + 1
        self._symbols: dict[str, int] = {}

    def intern(self, string: str) -> int:
        """Return the symbol for ``string``, allocating one if needed."""
        symbol = self._symbols.get(string)
        if symbol is None:
            symbol = self._next
            self._next += 1
            self._symbols[string] = symbol
        return symbol

    def __len__(self) -> int:
        return len(self._symbols)

    def __contains__(self, string: object) -> bool:
        return string in self._symbols