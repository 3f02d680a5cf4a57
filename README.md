# loxvm

`loxvm` is a stack-based virtual machine that runs compiled Lox bytecode. It
supports the following:

- global and local variables
- closures with captured upvalues
- classes with methods and an `init` initialiser
- bound methods and fields on instances
- lists with indexing
- native functions written in Python
- module imports, each of which runs on its own fiber

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Building and running a module

The input is a `loxvm.program.Module`. It holds these parts:

- code chunks (`chunks`)
- number and string constants (`numbers`, `strings`)
- identifier names (`identifiers`)
- closure descriptions (`closures`, made of `ClosureInfo`, `FunctionInfo` and `Capture`)
- class descriptions (`classes`, made of `ClassInfo`)

`assemble` encodes a sequence of instructions into bytes. An instruction is
either an `Opcode` on its own or a tuple of an opcode and its operands. Jump
offsets are relative to the end of the jump instruction.

```python
from loxvm.program import Module, Opcode, assemble
from loxvm.vm import VirtualMachine

module = Module()
module.numbers.extend([1.0, 2.0])
module.add_chunk(assemble([
    (Opcode.NUMBER, 0),
    (Opcode.NUMBER, 1),
    Opcode.ADD,
    Opcode.PRINT,
    Opcode.NIL,
    Opcode.RETURN,
]))

output = []
vm = VirtualMachine()
vm.set_stdout(output.append)
vm.interpret(module)
print(output)  # ['3']
```

The first chunk of the module is its top-level code. If you do not call
`set_stdout`, printed lines go to standard output.

`print` renders values as follows:

- numbers in plain positional notation, so `3.0` prints as `3`
- nil as `nil`
- booleans as `true` and `false`
- lists as `[a, b]`
- instances as `Name instance`
- closures as `<fn name>`

`loxvm.objects.format_value` produces the same text.

## Errors

If a run fails, `VirtualMachine.interpret` raises `loxvm.errors.VmError`. Its
`kind` attribute holds an `ErrorKind`, for example:

- `GLOBAL_NOT_DEFINED`
- `UNDEFINED_PROPERTY`
- `INCORRECT_ARITY`
- `INVALID_CALLEE`
- `UNEXPECTED_VALUE`
- `INDEX_OUT_OF_RANGE`
- `UNKNOWN_IMPORT`
- `STACK_OVERFLOW`

## Native functions

`VirtualMachine.native()` returns a `Native` handle, which you use to register
functions written in Python. Each function receives the receiver and a list of
arguments, and returns a value:

```python
native = vm.native()
native.set_global_fn("clock", lambda this, args: 0.0)
native.set_method(native.list_class(), "len", lambda this, args: float(len(this)))
```

`Native` provides these calls:

- `set_fn` binds a function as a global of one `Import`.
- `set_global_fn` binds it in the shared globals import.
- `string_class` and `list_class` return the classes whose methods apply to strings and lists.
- `intern` returns the symbol used for an identifier.

Each import copies the shared globals when it is loaded, and so does the root
module. Register global functions before you call `interpret`.

## Imports

`VirtualMachine.set_import` takes a function that maps an import path to a
`Module`. The function returns `None` when no such module exists, and the
`IMPORT` instruction then raises `UNKNOWN_IMPORT`.

An imported module runs once, on a new fiber. When it returns, execution goes
back to the importing fiber. Later imports of the same path reuse the loaded
`Import`. `Native.add_import` registers a ready-made `Import` under its name, so
that importing that name finds it directly.

## What it does not do

- There is no compiler. Modules must be built with `assemble` or produced by a
  separate front end.
- There is no command-line program. The package is used as a library.
- Classes have no superclasses. There are no instructions for inheritance or
  `super`.