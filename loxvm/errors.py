"""Runtime errors raised by the virtual machine."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """The kinds of runtime error; each value is its human-readable message."""

    UNKNOWN = "unknown error"
    STACK_EMPTY = "stack is empty"
    STACK_OVERFLOW = "stack overflow"
    FRAME_EMPTY = "no call frame"
    STRING_CONSTANT_EXPECTED = "string constant expected"
    GLOBAL_NOT_DEFINED = "global not defined"
    INVALID_CALLEE = "can only call functions and classes"
    INCORRECT_ARITY = "incorrect number of arguments"
    UNEXPECTED_CONSTANT = "unexpected constant"
    CLOSURE_CONSTANT_EXPECTED = "closure constant expected"
    UNEXPECTED_VALUE = "unexpected value"
    UNDEFINED_PROPERTY = "undefined property"
    UNIMPLEMENTED = "unimplemented"
    UNKNOWN_IMPORT = "unknown import"
    INDEX_OUT_OF_RANGE = "index out of range"


class VmError(Exception):
    """A runtime error carrying its :class:`ErrorKind`."""

    def __init__(self, kind: ErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind

    def __repr__(self) -> str:
        return f"VmError({self.kind.name})"