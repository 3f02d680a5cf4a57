"""Fibers: a value stack, a call-frame stack and the open upvalues."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from loxvm.errors import ErrorKind, VmError
from loxvm.objects import Closure, Function, Upvalue
from loxvm.program import Import
from loxvm.stack import Stack

MAX_FRAMES = 256
STACK_SIZE = 2048


@dataclass(eq=False)
class CallFrame:
    """One active call: the closure running, where its slots start, and
    the offset of the next instruction in its chunk."""

    closure: Closure
    base_counter: int
    ip: int = 0

    @property
    def code(self) -> bytes:
        function = self.closure.function
        return function.import_.chunk(function.chunk_index)


class Fiber:
    """A thread of execution with its own stack and call frames."""

    def __init__(self, parent: "Fiber | None" = None) -> None:
        self.parent = parent
        self.stack = Stack(STACK_SIZE)
        self._frames: list[CallFrame] = []
        self._upvalues: list[Upvalue] = []

    def begin_frame(self, closure: Closure) -> None:
        """Start a call of ``closure``; it and its arguments are on the stack."""
        if len(self._frames) >= MAX_FRAMES:
            raise VmError(ErrorKind.STACK_OVERFLOW)
        base = len(self.stack) - closure.function.arity - 1
        if base < 0:
            raise VmError(ErrorKind.STACK_EMPTY)
        self._frames.append(CallFrame(closure, base))

    def end_frame(self) -> CallFrame:
        if not self._frames:
            raise VmError(ErrorKind.FRAME_EMPTY)
        return self._frames.pop()

    def has_current_frame(self) -> bool:
        return bool(self._frames)

    def current_frame(self) -> CallFrame:
        if not self._frames:
            raise VmError(ErrorKind.FRAME_EMPTY)
        return self._frames[-1]

    def current_import(self) -> Import:
        return self.current_frame().closure.function.import_

    def push_upvalue(self, upvalue: Upvalue) -> None:
        self._upvalues.append(upvalue)

    def close_upvalues(self, index: int) -> None:
        """Close every open upvalue at stack slot ``index`` or above."""
        for upvalue in self._upvalues:
            slot = upvalue.open_at_or_above(index)
            if slot is not None:
                upvalue.close(self.stack.get(slot))
        self._upvalues = [u for u in self._upvalues if u.is_open()]

    def find_upvalue_by_index(self, index: int) -> Upvalue:
        return self.current_frame().closure.upvalues[index]

    def find_open_upvalue_with_index(self, index: int) -> Upvalue | None:
        return next(
            (u for u in reversed(self._upvalues) if u.is_open_with_index(index)),
            None,
        )

    def resolve_upvalue(self, upvalue: Upvalue) -> Any:
        if upvalue.is_open():
            return upvalue.fiber.stack.get(upvalue.index)
        return upvalue.value

    def set_upvalue(self, upvalue: Upvalue, value: Any) -> None:
        if upvalue.is_open():
            upvalue.fiber.stack.set(upvalue.index, value)
        else:
            upvalue.value = value

    def make_closure(self, index: int) -> Closure:
        """Build a live closure from closure constant ``index`` of the
        current import, capturing from the current frame."""
        import_ = self.current_import()
        info = import_.closure_info(index)
        base = self.current_frame().base_counter

        upvalues: list[Upvalue] = []
        for capture in info.upvalues:
            if capture.local:
                slot = base + capture.index
                upvalue = self.find_open_upvalue_with_index(slot)
                if upvalue is None:
                    upvalue = Upvalue(slot, self)
                    self.push_upvalue(upvalue)
            else:
                upvalue = self.find_upvalue_by_index(capture.index)
            upvalues.append(upvalue)

        function = Function(
            name=info.function.name,
            chunk_index=info.function.chunk_index,
            import_=import_,
            arity=info.function.arity,
        )
        return Closure(function, upvalues)

    def __repr__(self) -> str:
        return f"Fiber(frames={len(self._frames)}, stack={len(self.stack)})"