"""The runtime state shared by the interpreter: fibers, imports and calls."""

from __future__ import annotations

from enum import Enum, auto
from typing import Any, Callable

from loxvm.errors import ErrorKind, VmError
from loxvm.fiber import Fiber
from loxvm.interner import Interner
from loxvm.objects import (
    BoundMethod,
    Class,
    Closure,
    Instance,
    LoxList,
    NativeFunction,
)
from loxvm.program import Import, Module

PrintFn = Callable[[str], None]
ImportFn = Callable[[str], "Module | None"]

ROOT_IMPORT_NAME = "_root"


class Signal(Enum):
    """What the dispatch loop should do after an instruction."""

    DONE = auto()
    MORE = auto()
    CONTEXT_SWITCH = auto()


def default_print(value: str) -> None:
    print(value)


def default_import(path: str) -> Module | None:
    return None


class Builtins:
    """Classes and the globals import every program starts with."""

    def __init__(self) -> None:
        self.empty_class = Class("")
        self.globals_import = Import("globals")
        self.list_class = Class("List")
        self.string_class = Class("String")

    def class_for_object(self, obj: Any) -> Class:
        """The class whose methods apply to ``obj``."""
        if isinstance(obj, Instance):
            return obj.cls
        if isinstance(obj, LoxList):
            return self.list_class
        if isinstance(obj, str):
            return self.string_class
        return self.empty_class


class Runtime:
    """Fibers, loaded imports, the interner and the calling convention."""

    def __init__(
        self,
        print_fn: PrintFn | None = None,
        import_fn: ImportFn | None = None,
    ) -> None:
        self.interner = Interner()
        self.fiber = Fiber(None)
        self.next_fiber: Fiber | None = None
        self.init_symbol = self.interner.intern("init")
        self.imports: dict[str, Import] = {}
        self.builtins = Builtins()
        self.print_fn: PrintFn = print_fn if print_fn is not None else default_print
        self.import_fn: ImportFn = (
            import_fn if import_fn is not None else default_import
        )

    # -- fibers -----------------------------------------------------------

    def switch_to(self, fiber: Fiber | None) -> Signal:
        """Schedule ``fiber`` to run next, or finish when there is none."""
        if fiber is None:
            return Signal.DONE
        self.next_fiber = fiber
        return Signal.CONTEXT_SWITCH

    def context_switch(self) -> None:
        """Make the scheduled fiber the running one."""
        if self.next_fiber is not None:
            self.fiber = self.next_fiber
        self.next_fiber = None

    # -- output and strings -----------------------------------------------

    def print(self, value: str) -> None:
        self.print_fn(value)

    def push_string(self, string: str) -> None:
        self.fiber.stack.push(string)

    def concat(self, a: Any, b: Any) -> None:
        """Push the concatenation of two strings; anything else is an error."""
        if isinstance(a, str) and isinstance(b, str):
            self.push_string(a + b)
            return
        raise VmError(ErrorKind.UNEXPECTED_VALUE)

    # -- imports ----------------------------------------------------------

    def globals_import(self) -> Import:
        return self.builtins.globals_import

    def _register(self, name: str, module: Module) -> Import:
        import_ = Import.with_module(name, module, self.interner)
        self.imports[name] = import_
        self.globals_import().copy_to(import_)
        return import_

    def with_module(self, module: Module) -> None:
        """Prepare the running fiber to execute ``module`` as the root import."""
        import_ = self._register(ROOT_IMPORT_NAME, module)
        closure = Closure.with_import(import_)
        self.fiber.stack.push(closure)
        self.fiber.begin_frame(closure)

    def find_import(self, path: str) -> Import | None:
        """An import already loaded under ``path``, if any."""
        return self.imports.get(path)

    def load_import(self, path: str) -> Import:
        """Load ``path`` through the import hook and register it."""
        module = self.import_fn(path)
        if module is None:
            raise VmError(ErrorKind.UNKNOWN_IMPORT)
        return self._register(path, module)

    # -- calls ------------------------------------------------------------

    def call(self, arity: int, callee: Any) -> None:
        """Call ``callee``, which sits below its ``arity`` arguments on the stack."""
        if isinstance(callee, Closure):
            self.call_closure(arity, callee)
        elif isinstance(callee, NativeFunction):
            self.call_native_function(arity, callee)
        elif isinstance(callee, Class):
            self.call_class(arity, callee)
        elif isinstance(callee, BoundMethod):
            self.call_bound_method(arity, callee)
        else:
            raise VmError(ErrorKind.INVALID_CALLEE)

    def call_closure(self, arity: int, callee: Closure) -> None:
        if callee.function.arity != arity:
            raise VmError(ErrorKind.INCORRECT_ARITY)
        self.fiber.begin_frame(callee)

    def call_native_function(self, arity: int, callee: NativeFunction) -> None:
        stack = self.fiber.stack
        args = stack.pop_n(arity)
        this = stack.pop()
        stack.push(callee.code(this, args))

    def call_class(self, arity: int, cls: Class) -> None:
        instance = Instance(cls)
        self.fiber.stack.rset(arity, instance)

        try:
            initializer = cls.method(self.init_symbol)
        except KeyError:
            if arity != 0:
                raise VmError(ErrorKind.INCORRECT_ARITY) from None
            return

        if not isinstance(initializer, Closure):
            raise VmError(ErrorKind.UNEXPECTED_VALUE)
        if initializer.function.arity != arity:
            raise VmError(ErrorKind.INCORRECT_ARITY)
        self.fiber.begin_frame(initializer)

    def call_bound_method(self, arity: int, bound: BoundMethod) -> None:
        self.fiber.stack.rset(arity, bound.receiver)
        self.call(arity, bound.method)