"""The bytecode dispatch loop."""

from __future__ import annotations

import math
import struct
from typing import Any, Callable

from loxvm.errors import ErrorKind, VmError
from loxvm.fiber import Fiber
from loxvm.objects import (
    BoundMethod,
    Class,
    Closure,
    Instance,
    LoxList,
    format_value,
    is_falsey,
    is_same_type,
    values_equal,
)
from loxvm.program import Import, Opcode
from loxvm.runtime import ImportFn, PrintFn, Runtime, Signal

_MAX_INDEX = 2**64 - 1


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_object(value: Any) -> bool:
    return value is not None and not isinstance(value, bool) and not _is_number(value)


def _to_index(number: float) -> int:
    """Convert a number to a list index, saturating like an unsigned cast."""
    if math.isnan(number) or number <= 0:
        return 0
    if number >= _MAX_INDEX:
        return _MAX_INDEX
    return int(number)


def _divide(a: float, b: float) -> float:
    try:
        return a / b
    except ZeroDivisionError:
        if math.isnan(a) or a == 0:
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


def _expect(value: Any, kind: type) -> Any:
    if not isinstance(value, kind):
        raise VmError(ErrorKind.UNEXPECTED_VALUE)
    return value


class Interpreter(Runtime):
    """Runs bytecode on the runtime's fibers until the root fiber returns."""

    def __init__(
        self,
        print_fn: PrintFn | None = None,
        import_fn: ImportFn | None = None,
    ) -> None:
        super().__init__(print_fn, import_fn)
        self._handlers: dict[Opcode, Callable[[], Signal | None]] = {
            Opcode.IMPORT: self._op_import,
            Opcode.IMPORT_GLOBAL: self._op_import_global,
            Opcode.CLOSURE: self._op_closure,
            Opcode.CLASS: self._op_class,
            Opcode.METHOD: self._op_method,
            Opcode.SET_PROPERTY: self._op_set_property,
            Opcode.GET_PROPERTY: self._op_get_property,
            Opcode.PRINT: self._op_print,
            Opcode.NIL: lambda: self.fiber.stack.push(None),
            Opcode.RETURN: self._op_return,
            Opcode.ADD: self._op_add,
            Opcode.SUBTRACT: lambda: self._binary(lambda a, b: a - b),
            Opcode.MULTIPLY: lambda: self._binary(lambda a, b: a * b),
            Opcode.DIVIDE: lambda: self._binary(_divide),
            Opcode.POP: lambda: self.fiber.stack.pop(),
            Opcode.DEFINE_GLOBAL: self._op_define_global,
            Opcode.GET_GLOBAL: self._op_get_global,
            Opcode.SET_GLOBAL: self._op_set_global,
            Opcode.GET_LOCAL: self._op_get_local,
            Opcode.SET_LOCAL: self._op_set_local,
            Opcode.TRUE: lambda: self.fiber.stack.push(True),
            Opcode.FALSE: lambda: self.fiber.stack.push(False),
            Opcode.JUMP_IF_FALSE: self._op_jump_if_false,
            Opcode.JUMP: self._op_jump,
            Opcode.LESS: lambda: self._binary(lambda a, b: a < b),
            Opcode.GREATER: lambda: self._binary(lambda a, b: a > b),
            Opcode.EQUAL: self._op_equal,
            Opcode.CALL: self._op_call,
            Opcode.NEGATE: self._op_negate,
            Opcode.NOT: self._op_not,
            Opcode.GET_UPVALUE: self._op_get_upvalue,
            Opcode.SET_UPVALUE: self._op_set_upvalue,
            Opcode.CLOSE_UPVALUE: self._op_close_upvalue,
            Opcode.INVOKE: self._op_invoke,
            Opcode.LIST: self._op_list,
            Opcode.GET_INDEX: self._op_get_index,
            Opcode.SET_INDEX: self._op_set_index,
            Opcode.NUMBER: self._op_number,
            Opcode.STRING: self._op_string,
        }

    def interpret(self) -> None:
        """Run until the root fiber returns; raise VmError on a runtime error."""
        while True:
            opcode = self._next_opcode()
            signal = self._handlers[opcode]() or Signal.MORE
            if signal is Signal.DONE:
                return
            if signal is Signal.CONTEXT_SWITCH:
                self.context_switch()

    # -- decoding ---------------------------------------------------------

    def _next_opcode(self) -> Opcode:
        frame = self.fiber.current_frame()
        code = frame.code
        if frame.ip >= len(code):
            raise VmError(ErrorKind.UNKNOWN)
        byte = code[frame.ip]
        frame.ip += 1
        try:
            return Opcode(byte)
        except ValueError:
            raise VmError(ErrorKind.UNKNOWN) from None

    def _operands(self, fmt: str) -> tuple:
        frame = self.fiber.current_frame()
        code = frame.code
        layout = "<" + fmt
        size = struct.calcsize(layout)
        if frame.ip + size > len(code):
            raise VmError(ErrorKind.UNKNOWN)
        values = struct.unpack_from(layout, code, frame.ip)
        frame.ip += size
        return values

    def _operand(self, fmt: str) -> int:
        (value,) = self._operands(fmt)
        return value

    # -- imports ----------------------------------------------------------

    def _op_import(self) -> Signal | None:
        path = self.fiber.current_import().string(self._operand("I"))
        stack = self.fiber.stack

        loaded = self.find_import(path)
        if loaded is not None:
            stack.push(loaded)
            return None

        loaded = self.load_import(path)
        stack.push(loaded)

        fiber = Fiber(self.fiber)
        closure = Closure.with_import(loaded)
        fiber.stack.push(closure)
        fiber.begin_frame(closure)
        return self.switch_to(fiber)

    def _op_import_global(self) -> None:
        identifier = self.fiber.current_import().symbol(self._operand("I"))
        stack = self.fiber.stack
        loaded = _expect(stack.peek_n(0), Import)
        if loaded.has_global(identifier):
            stack.push(loaded.global_value(identifier))
        else:
            stack.push(None)

    # -- control flow -----------------------------------------------------

    def _op_jump(self) -> None:
        offset = self._operand("h")
        self.fiber.current_frame().ip += offset

    def _op_jump_if_false(self) -> None:
        offset = self._operand("h")
        if is_falsey(self.fiber.stack.peek_n(0)):
            self.fiber.current_frame().ip += offset

    def _op_call(self) -> None:
        arity = self._operand("B")
        self.call(arity, self.fiber.stack.peek_n(arity))

    def _op_return(self) -> Signal | None:
        fiber = self.fiber
        result = fiber.stack.pop()
        base = fiber.current_frame().base_counter
        fiber.close_upvalues(base)
        fiber.stack.truncate(base)
        fiber.end_frame()

        if fiber.has_current_frame():
            fiber.stack.push(result)
            return None
        return self.switch_to(fiber.parent)

    # -- classes and properties -------------------------------------------

    def _op_class(self) -> None:
        info = self.fiber.current_import().class_info(self._operand("B"))
        self.fiber.stack.push(Class(info.name))

    def _op_method(self) -> None:
        identifier = self.fiber.current_import().symbol(self._operand("I"))
        stack = self.fiber.stack
        cls = _expect(stack.peek_n(1), Class)
        closure = _expect(stack.peek_n(0), Closure)
        cls.set_method(identifier, closure)
        stack.pop()

    def _op_set_property(self) -> None:
        prop = self.fiber.current_import().symbol(self._operand("I"))
        stack = self.fiber.stack
        instance = _expect(stack.peek_n(1), Instance)
        instance.set_field(prop, stack.peek_n(0))
        value = stack.pop()
        stack.pop()
        stack.push(value)

    def _lookup_method(self, receiver: Any, prop: int) -> Any:
        cls = self.builtins.class_for_object(receiver)
        try:
            return cls.method(prop)
        except KeyError:
            raise VmError(ErrorKind.UNDEFINED_PROPERTY) from None

    def _op_get_property(self) -> None:
        prop = self.fiber.current_import().symbol(self._operand("I"))
        stack = self.fiber.stack
        receiver = stack.pop()

        if not _is_object(receiver):
            raise VmError(ErrorKind.UNEXPECTED_VALUE)

        if isinstance(receiver, Instance):
            try:
                stack.push(receiver.field(prop))
                return
            except KeyError:
                pass

        method = self._lookup_method(receiver, prop)
        stack.push(BoundMethod(receiver, method))

    def _op_invoke(self) -> None:
        arity, index = self._operands("BI")
        prop = self.fiber.current_import().symbol(index)
        stack = self.fiber.stack
        receiver = stack.peek_n(arity)

        if not _is_object(receiver):
            raise VmError(ErrorKind.UNEXPECTED_VALUE)

        if isinstance(receiver, Instance):
            try:
                value = receiver.field(prop)
            except KeyError:
                pass
            else:
                stack.rset(arity, value)
                self.call(arity, value)
                return

        method = self._lookup_method(receiver, prop)
        if isinstance(method, Closure):
            if method.function.arity != arity:
                raise VmError(ErrorKind.INCORRECT_ARITY)
            self.fiber.begin_frame(method)
        else:
            self.call(arity, method)

    # -- closures and upvalues --------------------------------------------

    def _op_closure(self) -> None:
        closure = self.fiber.make_closure(self._operand("I"))
        self.fiber.stack.push(closure)

    def _op_get_upvalue(self) -> None:
        index = self._operand("I")
        fiber = self.fiber
        upvalue = fiber.current_frame().closure.upvalues[index]
        fiber.stack.push(fiber.resolve_upvalue(upvalue))

    def _op_set_upvalue(self) -> None:
        index = self._operand("I")
        fiber = self.fiber
        value = fiber.stack.peek_n(0)
        upvalue = fiber.current_frame().closure.upvalues[index]
        fiber.set_upvalue(upvalue, value)

    def _op_close_upvalue(self) -> None:
        fiber = self.fiber
        fiber.close_upvalues(len(fiber.stack) - 1)
        fiber.stack.pop()

    # -- variables --------------------------------------------------------

    def _local_slot(self) -> int:
        return self.fiber.current_frame().base_counter + self._operand("I")

    def _op_get_local(self) -> None:
        slot = self._local_slot()
        stack = self.fiber.stack
        stack.push(stack.get(slot))

    def _op_set_local(self) -> None:
        slot = self._local_slot()
        stack = self.fiber.stack
        stack.set(slot, stack.peek_n(0))

    def _op_define_global(self) -> None:
        current = self.fiber.current_import()
        identifier = current.symbol(self._operand("I"))
        current.set_global(identifier, self.fiber.stack.pop())

    def _op_get_global(self) -> None:
        current = self.fiber.current_import()
        identifier = current.symbol(self._operand("I"))
        if not current.has_global(identifier):
            raise VmError(ErrorKind.GLOBAL_NOT_DEFINED)
        self.fiber.stack.push(current.global_value(identifier))

    def _op_set_global(self) -> None:
        current = self.fiber.current_import()
        identifier = current.symbol(self._operand("I"))
        if not current.has_global(identifier):
            raise VmError(ErrorKind.GLOBAL_NOT_DEFINED)
        current.set_global(identifier, self.fiber.stack.peek_n(0))

    # -- constants --------------------------------------------------------

    def _op_number(self) -> None:
        value = self.fiber.current_import().number(self._operand("H"))
        self.fiber.stack.push(value)

    def _op_string(self) -> None:
        value = self.fiber.current_import().string(self._operand("H"))
        self.fiber.stack.push(value)

    # -- operators --------------------------------------------------------

    def _binary(self, operation: Callable[[Any, Any], Any]) -> None:
        stack = self.fiber.stack
        b = stack.pop()
        a = stack.pop()
        if not (_is_number(a) and _is_number(b)):
            raise VmError(ErrorKind.UNEXPECTED_VALUE)
        stack.push(operation(float(a), float(b)))

    def _op_add(self) -> None:
        stack = self.fiber.stack
        b = stack.pop()
        a = stack.pop()
        if _is_number(a) and _is_number(b):
            stack.push(float(a) + float(b))
            return
        self.concat(a, b)

    def _op_negate(self) -> None:
        stack = self.fiber.stack
        value = stack.pop()
        if not _is_number(value):
            raise VmError(ErrorKind.UNEXPECTED_VALUE)
        stack.push(-float(value))

    def _op_not(self) -> None:
        stack = self.fiber.stack
        stack.push(is_falsey(stack.pop()))

    def _op_equal(self) -> None:
        stack = self.fiber.stack
        b = stack.pop()
        a = stack.pop()
        stack.push(is_same_type(a, b) and values_equal(a, b))

    def _op_print(self) -> None:
        self.print(format_value(self.fiber.stack.pop()))

    # -- lists ------------------------------------------------------------

    def _op_list(self) -> None:
        arity = self._operand("B")
        stack = self.fiber.stack
        stack.push(LoxList(stack.pop_n(arity)))

    def _list_index(self, items: Any, index: Any) -> tuple[LoxList, int]:
        items = _expect(items, LoxList)
        if not _is_number(index):
            raise VmError(ErrorKind.UNEXPECTED_VALUE)
        position = _to_index(float(index))
        if not items.is_valid(position):
            raise VmError(ErrorKind.INDEX_OUT_OF_RANGE)
        return items, position

    def _op_get_index(self) -> None:
        stack = self.fiber.stack
        index = stack.pop()
        items, position = self._list_index(stack.pop(), index)
        stack.push(items.get(position))

    def _op_set_index(self) -> None:
        stack = self.fiber.stack
        value = stack.pop()
        index = stack.pop()
        items, position = self._list_index(stack.pop(), index)
        items.set(position, value)
        stack.push(value)