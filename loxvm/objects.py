"""Runtime values and heap objects.

Values are represented as: ``None`` for nil, ``bool``, ``float`` for
numbers, ``str`` for strings, and the object classes below.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Iterable, Iterator

from loxvm.program import Import


@dataclass(eq=False)
class Class:
    """A Lox class: a name and a table of methods."""

    name: str
    _methods: dict[int, Any] = field(default_factory=dict, init=False, repr=False)

    def method(self, symbol: int) -> Any:
        """Return the method bound to ``symbol``; raise KeyError if absent."""
        return self._methods[symbol]

    def set_method(self, symbol: int, value: Any) -> None:
        self._methods[symbol] = value

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False)
class Instance:
    """An instance of a class with its own fields."""

    cls: Class
    _fields: dict[int, Any] = field(default_factory=dict, init=False, repr=False)

    def field(self, symbol: int) -> Any:
        """Return the field bound to ``symbol``; raise KeyError if absent."""
        return self._fields[symbol]

    def set_field(self, symbol: int, value: Any) -> None:
        self._fields[symbol] = value

    def __str__(self) -> str:
        return f"{self.cls.name} instance"


class LoxList:
    """A growable list of values."""

    def __init__(self, items: Iterable[Any] = ()) -> None:
        self._data = list(items)

    def _check(self, index: int) -> None:
        if not self.is_valid(index):
            raise IndexError(f"list index {index} out of range")

    def get(self, index: int) -> Any:
        self._check(index)
        return self._data[index]

    def set(self, index: int, value: Any) -> None:
        self._check(index)
        self._data[index] = value

    def push(self, value: Any) -> None:
        self._data.append(value)

    def is_valid(self, index: int) -> bool:
        return 0 <= index < len(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._data)

    def __str__(self) -> str:
        return "[" + ", ".join(format_value(item) for item in self._data) + "]"

    def __repr__(self) -> str:
        return f"LoxList({self._data!r})"


@dataclass(eq=False)
class NativeFunction:
    """A function implemented in Python: ``code(receiver, args) -> value``."""

    name: str
    code: Callable[[Any, list], Any]

    def __str__(self) -> str:
        return "<native fn>"


@dataclass(eq=False)
class BoundMethod:
    """A method value paired with the receiver it was read from."""

    receiver: Any
    method: Any

    def __str__(self) -> str:
        return f"<bound {format_value(self.method)}>"


@dataclass(eq=False)
class Function:
    """A function ready to run: its code location and arity."""

    name: str
    chunk_index: int
    import_: Import
    arity: int


@dataclass(eq=False)
class Closure:
    """A function together with its captured upvalues."""

    function: Function
    upvalues: list["Upvalue"] = field(default_factory=list)

    @classmethod
    def with_import(cls, import_: Import) -> "Closure":
        """The top-level closure that runs the first chunk of ``import_``."""
        return cls(Function(name="top", chunk_index=0, import_=import_, arity=0))

    def __str__(self) -> str:
        return f"<fn {self.function.name}>"


class Upvalue:
    """A captured variable: open while it lives in a fiber's stack slot,
    closed once the value has been moved into the upvalue itself."""

    def __init__(self, index: int, fiber: Any) -> None:
        self.index = index
        self.fiber = fiber
        self.value: Any = None
        self._open = True

    def is_open(self) -> bool:
        return self._open

    def is_open_with_index(self, index: int) -> bool:
        return self._open and self.index == index

    def open_at_or_above(self, index: int) -> int | None:
        """Return the stack slot if open at or above ``index``, else None."""
        if self._open and self.index >= index:
            return self.index
        return None

    def close(self, value: Any) -> None:
        self.value = value
        self._open = False
        self.fiber = None

    def __repr__(self) -> str:
        if self._open:
            return f"Upvalue(open, {self.index})"
        return f"Upvalue(closed, {self.value!r})"


_PRINTABLE = (Closure, BoundMethod, NativeFunction, Class, Instance, Import, LoxList)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def format_number(number: float) -> str:
    """Format a number in shortest round-trip positional notation."""
    number = float(number)
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "inf" if number > 0 else "-inf"
    text = format(Decimal(repr(number)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_value(value: Any) -> str:
    """Render a value the way ``print`` shows it."""
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if _is_number(value):
        return format_number(value)
    if isinstance(value, str):
        return value
    if isinstance(value, _PRINTABLE):
        return str(value)
    return "<unknown>"


def is_falsey(value: Any) -> bool:
    """Only nil and false are falsey."""
    return value is None or value is False


def _kind(value: Any) -> Any:
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "bool"
    if _is_number(value):
        return "number"
    return type(value)


def is_same_type(a: Any, b: Any) -> bool:
    return _kind(a) == _kind(b)


def values_equal(a: Any, b: Any) -> bool:
    """Value equality: numeric for numbers, textual for strings,
    identity for other objects."""
    kind_a, kind_b = _kind(a), _kind(b)
    if kind_a == "number" and kind_b == "number":
        return float(a) == float(b)
    if kind_a is str and kind_b is str:
        return a == b
    if kind_a in ("nil", "bool") or kind_b in ("nil", "bool"):
        return kind_a == kind_b and a is b
    if kind_a == "number" or kind_b == "number":
        return False
    return a is b