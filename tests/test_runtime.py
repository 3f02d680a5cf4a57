import pytest

from loxvm.errors import ErrorKind, VmError
from loxvm.fiber import Fiber
from loxvm.objects import (
    BoundMethod,
    Class,
    Closure,
    Function,
    Instance,
    LoxList,
    NativeFunction,
)
from loxvm.program import Import, Module
from loxvm.runtime import Builtins, Runtime, Signal


def make_closure(arity, name="f"):
    import_ = Import("m", Module(chunks=[b""]))
    return Closure(Function(name=name, chunk_index=0, import_=import_, arity=arity))


def test_builtins_class_for_instance():
    builtins = Builtins()
    cls = Class("Point")
    assert builtins.class_for_object(Instance(cls)) is cls


def test_builtins_class_for_list_and_string():
    builtins = Builtins()
    assert builtins.class_for_object(LoxList([1.0])) is builtins.list_class
    assert builtins.class_for_object("abc") is builtins.string_class
    assert builtins.list_class.name == "List"
    assert builtins.string_class.name == "String"


def test_builtins_class_for_other_is_empty():
    builtins = Builtins()
    assert builtins.class_for_object(1.0) is builtins.empty_class
    assert builtins.class_for_object(None) is builtins.empty_class
    assert builtins.empty_class.name == ""


def test_init_symbol_is_interned():
    runtime = Runtime()
    assert runtime.interner.intern("init") == runtime.init_symbol


def test_with_module_registers_root_and_begins_frame():
    runtime = Runtime()
    module = Module(chunks=[b"\x09"])
    runtime.with_module(module)
    root = runtime.find_import("_root")
    assert root is not None
    assert root.module is module
    frame = runtime.fiber.current_frame()
    assert frame.base_counter == 0
    assert frame.closure.function.import_ is root
    assert runtime.fiber.stack.peek_n(0) is frame.closure


def test_with_module_copies_globals():
    runtime = Runtime()
    symbol = runtime.interner.intern("clock")
    runtime.globals_import().set_global(symbol, 5.0)
    runtime.with_module(Module(chunks=[b""]))
    root = runtime.find_import("_root")
    assert root.global_value(symbol) == 5.0


def test_find_import_unknown_is_none():
    assert Runtime().find_import("missing") is None


def test_load_import_unknown_raises():
    runtime = Runtime()
    with pytest.raises(VmError) as info:
        runtime.load_import("nowhere")
    assert info.value.kind is ErrorKind.UNKNOWN_IMPORT


def test_load_import_uses_hook_and_registers():
    requested = []
    module = Module(chunks=[b""], identifiers=["x"])

    def hook(path):
        requested.append(path)
        return module

    runtime = Runtime(import_fn=hook)
    symbol = runtime.interner.intern("g")
    runtime.globals_import().set_global(symbol, True)
    loaded = runtime.load_import("lib")
    assert requested == ["lib"]
    assert loaded.name == "lib"
    assert runtime.find_import("lib") is loaded
    assert loaded.global_value(symbol) is True
    assert loaded.symbol(0) == runtime.interner.intern("x")


def test_call_native_function_pushes_result():
    runtime = Runtime()
    seen = []

    def code(this, args):
        seen.append((this, list(args)))
        return args[0] + args[1]

    native = NativeFunction("add", code)
    stack = runtime.fiber.stack
    stack.push(native)
    stack.push(2.0)
    stack.push(3.0)
    runtime.call(2, native)
    assert len(stack) == 1
    assert stack.peek_n(0) == 5.0
    assert seen == [(native, [2.0, 3.0])]


@pytest.mark.parametrize("callee", [1.0, None, True, "text", LoxList()])
def test_call_non_callable_raises(callee):
    runtime = Runtime()
    runtime.fiber.stack.push(callee)
    with pytest.raises(VmError) as info:
        runtime.call(0, callee)
    assert info.value.kind is ErrorKind.INVALID_CALLEE


def test_call_closure_begins_frame():
    runtime = Runtime()
    closure = make_closure(1)
    stack = runtime.fiber.stack
    stack.push(7.0)
    stack.push(closure)
    stack.push(4.0)
    runtime.call(1, closure)
    frame = runtime.fiber.current_frame()
    assert frame.closure is closure
    assert frame.base_counter == 1


def test_call_closure_wrong_arity():
    runtime = Runtime()
    closure = make_closure(2)
    runtime.fiber.stack.push(closure)
    runtime.fiber.stack.push(1.0)
    with pytest.raises(VmError) as info:
        runtime.call(1, closure)
    assert info.value.kind is ErrorKind.INCORRECT_ARITY
    assert runtime.fiber.has_current_frame() is False


def test_call_class_without_init_creates_instance():
    runtime = Runtime()
    cls = Class("Box")
    runtime.fiber.stack.push(cls)
    runtime.call(0, cls)
    instance = runtime.fiber.stack.peek_n(0)
    assert isinstance(instance, Instance)
    assert instance.cls is cls
    assert runtime.fiber.has_current_frame() is False


def test_call_class_without_init_rejects_arguments():
    runtime = Runtime()
    cls = Class("Box")
    runtime.fiber.stack.push(cls)
    runtime.fiber.stack.push(1.0)
    with pytest.raises(VmError) as info:
        runtime.call(1, cls)
    assert info.value.kind is ErrorKind.INCORRECT_ARITY


def test_call_class_with_initializer():
    runtime = Runtime()
    cls = Class("Box")
    init = make_closure(1, "init")
    cls.set_method(runtime.init_symbol, init)
    stack = runtime.fiber.stack
    stack.push(cls)
    stack.push(9.0)
    runtime.call(1, cls)
    frame = runtime.fiber.current_frame()
    assert frame.closure is init
    assert frame.base_counter == 0
    assert isinstance(stack.get(0), Instance)
    assert stack.get(1) == 9.0


def test_call_class_initializer_arity_mismatch():
    runtime = Runtime()
    cls = Class("Box")
    cls.set_method(runtime.init_symbol, make_closure(2, "init"))
    runtime.fiber.stack.push(cls)
    with pytest.raises(VmError) as info:
        runtime.call(0, cls)
    assert info.value.kind is ErrorKind.INCORRECT_ARITY


def test_call_class_initializer_not_closure():
    runtime = Runtime()
    cls = Class("Box")
    cls.set_method(runtime.init_symbol, NativeFunction("init", lambda t, a: None))
    runtime.fiber.stack.push(cls)
    with pytest.raises(VmError) as info:
        runtime.call(0, cls)
    assert info.value.kind is ErrorKind.UNEXPECTED_VALUE


def test_call_bound_method_passes_receiver():
    runtime = Runtime()
    receiver = Instance(Class("Thing"))
    native = NativeFunction("who", lambda this, args: this)
    bound = BoundMethod(receiver=receiver, method=native)
    runtime.fiber.stack.push(bound)
    runtime.call(0, bound)
    assert runtime.fiber.stack.peek_n(0) is receiver
    assert len(runtime.fiber.stack) == 1


def test_concat_strings():
    runtime = Runtime()
    runtime.concat("foo", "bar")
    assert runtime.fiber.stack.pop() == "foobar"


@pytest.mark.parametrize("a, b", [("a", 1.0), (1.0, "b"), (None, None), (True, "x")])
def test_concat_rejects_non_strings(a, b):
    runtime = Runtime()
    with pytest.raises(VmError) as info:
        runtime.concat(a, b)
    assert info.value.kind is ErrorKind.UNEXPECTED_VALUE
    assert len(runtime.fiber.stack) == 0


def test_switch_to_none_is_done():
    runtime = Runtime()
    assert runtime.switch_to(None) is Signal.DONE
    assert runtime.next_fiber is None


def test_switch_and_context_switch():
    runtime = Runtime()
    original = runtime.fiber
    child = Fiber(original)
    assert runtime.switch_to(child) is Signal.CONTEXT_SWITCH
    runtime.context_switch()
    assert runtime.fiber is child
    assert runtime.next_fiber is None
    runtime.context_switch()
    assert runtime.fiber is child


def test_print_uses_print_fn():
    lines = []
    runtime = Runtime(print_fn=lines.append)
    runtime.print("hello")
    assert lines == ["hello"]


def test_default_print_writes_stdout(capsys):
    Runtime().print("out")
    assert capsys.readouterr().out == "out\n"