"""A bytecode virtual machine for the Lox language: modules, values, fibers and the interpreter."""

__version__ = "0.1.0"

__all__ = ["errors", "fiber", "interner", "interpreter", "objects", "program", "runtime", "stack", "vm"]