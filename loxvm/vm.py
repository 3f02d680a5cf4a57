"""The public entry point: a virtual machine and its native-extension API."""

from __future__ import annotations

from typing import Any, Callable

from loxvm.interpreter import Interpreter
from loxvm.objects import Class, NativeFunction
from loxvm.program import Import, Module
from loxvm.runtime import ImportFn, PrintFn

NativeCode = Callable[[Any, list], Any]


class VirtualMachine:
    """Runs compiled modules; output and import loading can be replaced."""

    def __init__(self) -> None:
        self._runtime = Interpreter()

    def set_stdout(self, print_fn: PrintFn) -> None:
        """Send every printed line to ``print_fn`` instead of standard output."""
        self._runtime.print_fn = print_fn

    def set_import(self, import_fn: ImportFn) -> None:
        """Resolve import paths to modules with ``import_fn``."""
        self._runtime.import_fn = import_fn

    def interpret(self, module: Module) -> None:
        """Run ``module`` as the root import; raise VmError on a runtime error."""
        self._runtime.with_module(module)
        self._runtime.interpret()

    def native(self) -> "Native":
        """Access for defining native functions, methods and imports."""
        return Native(self._runtime)


class Native:
    """Defines Python-implemented functions and imports inside a runtime."""

    def __init__(self, runtime: Interpreter) -> None:
        self._runtime = runtime

    def intern(self, value: str) -> int:
        """The symbol the runtime uses for the identifier ``value``."""
        return self._runtime.interner.intern(value)

    def build_fn(self, identifier: str, code: NativeCode) -> NativeFunction:
        """Wrap ``code`` as a native function named ``identifier``."""
        return NativeFunction(name=identifier, code=code)

    def set_fn(self, import_: Import, identifier: str, code: NativeCode) -> None:
        """Bind a native function as a global of ``import_``."""
        function = self.build_fn(identifier, code)
        import_.set_global(self.intern(identifier), function)

    def set_method(self, cls: Class, identifier: str, code: NativeCode) -> None:
        """Bind a native function as a method of ``cls``."""
        function = self.build_fn(identifier, code)
        cls.set_method(self.intern(identifier), function)

    def set_global_fn(self, identifier: str, code: NativeCode) -> None:
        """Bind a native function as a global visible to every import."""
        self.set_fn(self.global_import(), identifier, code)

    def global_import(self) -> Import:
        return self._runtime.globals_import()

    def list_class(self) -> Class:
        return self._runtime.builtins.list_class

    def string_class(self) -> Class:
        return self._runtime.builtins.string_class

    def add_import(self, import_: Import) -> None:
        """Register ``import_`` so that importing its name finds it directly."""
        self._runtime.imports[import_.name] = import_