"""Compiled module description, bytecode encoding and loaded imports."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Iterable, Union

from loxvm.interner import Interner


class Opcode(IntEnum):
    """Instruction opcodes understood by the virtual machine."""

    IMPORT = 0
    IMPORT_GLOBAL = 1
    CLOSURE = 2
    CLASS = 3
    METHOD = 4
    SET_PROPERTY = 5
    GET_PROPERTY = 6
    PRINT = 7
    NIL = 8
    RETURN = 9
    ADD = 10
    SUBTRACT = 11
    MULTIPLY = 12
    DIVIDE = 13
    POP = 14
    DEFINE_GLOBAL = 15
    GET_GLOBAL = 16
    SET_GLOBAL = 17
    GET_LOCAL = 18
    SET_LOCAL = 19
    TRUE = 20
    FALSE = 21
    JUMP_IF_FALSE = 22
    JUMP = 23
    LESS = 24
    GREATER = 25
    EQUAL = 26
    CALL = 27
    NEGATE = 28
    NOT = 29
    GET_UPVALUE = 30
    SET_UPVALUE = 31
    CLOSE_UPVALUE = 32
    INVOKE = 33
    LIST = 34
    GET_INDEX = 35
    SET_INDEX = 36
    NUMBER = 37
    STRING = 38

    @property
    def operands(self) -> str:
        """Little-endian struct format codes of the operands that follow."""
        return _OPERAND_FORMATS.get(self, "")


_OPERAND_FORMATS: dict[Opcode, str] = {
    Opcode.IMPORT: "I",
    Opcode.IMPORT_GLOBAL: "I",
    Opcode.CLOSURE: "I",
    Opcode.CLASS: "B",
    Opcode.METHOD: "I",
    Opcode.SET_PROPERTY: "I",
    Opcode.GET_PROPERTY: "I",
    Opcode.DEFINE_GLOBAL: "I",
    Opcode.GET_GLOBAL: "I",
    Opcode.SET_GLOBAL: "I",
    Opcode.GET_LOCAL: "I",
    Opcode.SET_LOCAL: "I",
    Opcode.JUMP_IF_FALSE: "h",
    Opcode.JUMP: "h",
    Opcode.CALL: "B",
    Opcode.GET_UPVALUE: "I",
    Opcode.SET_UPVALUE: "I",
    Opcode.INVOKE: "BI",
    Opcode.LIST: "B",
    Opcode.NUMBER: "H",
    Opcode.STRING: "H",
}


@dataclass(frozen=True)
class Capture:
    """How a closure captures one upvalue: a local slot of the enclosing
    frame, or an upvalue of the enclosing closure."""

    local: bool
    index: int


@dataclass(frozen=True)
class FunctionInfo:
    """Static description of a function."""

    name: str
    chunk_index: int
    arity: int


@dataclass(frozen=True)
class ClosureInfo:
    """Static description of a closure: its function and its captures."""

    function: FunctionInfo
    upvalues: tuple[Capture, ...] = ()


@dataclass(frozen=True)
class ClassInfo:
    """Static description of a class."""

    name: str


@dataclass
class Module:
    """A compiled module: code chunks and constant tables."""

    chunks: list[bytes] = field(default_factory=list)
    numbers: list[float] = field(default_factory=list)
    strings: list[str] = field(default_factory=list)
    identifiers: list[str] = field(default_factory=list)
    classes: list[ClassInfo] = field(default_factory=list)
    closures: list[ClosureInfo] = field(default_factory=list)

    def add_chunk(self, code: bytes) -> int:
        """Append a chunk of bytecode and return its index."""
        self.chunks.append(bytes(code))
        return len(self.chunks) - 1

    def chunk(self, index: int) -> bytes:
        return self.chunks[index]


Instruction = Union[Opcode, int, tuple]


def assemble(instructions: Iterable[Instruction]) -> bytes:
    """Encode instructions into bytecode.

    Each instruction is an opcode or a tuple of an opcode and its operands.
    Jump offsets are relative to the end of the jump instruction.
    """
    out = bytearray()
    for instruction in instructions:
        if isinstance(instruction, tuple):
            op, *operands = instruction
        else:
            op, operands = instruction, []
        opcode = Opcode(op)
        fmt = opcode.operands
        if len(operands) != len(fmt):
            raise ValueError(
                f"{opcode.name} takes {len(fmt)} operand(s), got {len(operands)}"
            )
        out.append(opcode)
        try:
            out += struct.pack("<" + fmt, *operands)
        except struct.error as exc:
            raise ValueError(f"bad operand for {opcode.name}: {exc}") from exc
    return bytes(out)


class Import:
    """A loaded module with its own globals and resolved constants."""

    def __init__(self, name: str, module: Module | None = None) -> None:
        self.name = name
        self.module = module if module is not None else Module()
        self._globals: dict[int, Any] = {}
        self._symbols: list[int] = []
        self._strings: list[str] = []

    @classmethod
    def with_module(cls, name: str, module: Module, interner: Interner) -> "Import":
        """Load ``module``, interning its identifiers with ``interner``."""
        loaded = cls(name, module)
        loaded._symbols = [interner.intern(ident) for ident in module.identifiers]
        loaded._strings = list(module.strings)
        return loaded

    def copy_to(self, other: "Import") -> None:
        """Copy every global of this import into ``other``, overwriting."""
        other._globals.update(self._globals)

    def symbol(self, index: int) -> int:
        return self._symbols[index]

    def chunk(self, index: int) -> bytes:
        return self.module.chunk(index)

    def number(self, index: int) -> float:
        return float(self.module.numbers[index])

    def string(self, index: int) -> str:
        return self._strings[index]

    def class_info(self, index: int) -> ClassInfo:
        return self.module.classes[index]

    def closure_info(self, index: int) -> ClosureInfo:
        return self.module.closures[index]

    def set_global(self, key: int, value: Any) -> None:
        self._globals[key] = value

    def has_global(self, key: int) -> bool:
        return key in self._globals

    def global_value(self, key: int) -> Any:
        """Return the global bound to ``key``; raise KeyError if unbound."""
        return self._globals[key]

    def __str__(self) -> str:
        return f"<import {self.name}>"

    def __repr__(self) -> str:
        return f"Import({self.name!r})"