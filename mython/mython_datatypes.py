"""
Defines the core data types for the Mython language runtime.

This module provides the value kinds the execution engine works with
(numbers, strings, booleans, classes and their instances), the flat
`Closure` environment used for frames and instance fields, and the
exception taxonomy raised during evaluation.

A value handle is a plain Python reference to an `Object`, or `None` for
the empty state. Binding a handle never copies the object, so two names
bound to the same instance observe each other's field writes.
"""

from abc import ABC
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type, TypeVar
import collections.abc

INIT_METHOD = "__init__"
ADD_METHOD = "__add__"
STR_METHOD = "__str__"
EQ_METHOD = "__eq__"
LT_METHOD = "__lt__"
SELF_NAME = "self"


# =================================================================
# Errors
# =================================================================

class MythonError(Exception):
    """Base class for all runtime errors raised while executing a program."""
    kind = "RuntimeError"


class NameNotFound(MythonError, KeyError):
    """An identifier (or instance field) has no binding."""
    kind = "NameNotFound"

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"name '{self.key}' is not defined"


class InvalidAssignmentTarget(MythonError):
    kind = "InvalidAssignmentTarget"


class TypeMismatch(MythonError):
    """Operands of unsupported or mismatched kinds."""
    kind = "TypeError"


class DivisionByZero(MythonError):
    kind = "ZeroDivisionError"


class MethodNotFound(MythonError):
    """Dispatch could not resolve a method by name and argument count."""
    kind = "MethodNotFound"

    def __init__(self, class_name: str, method: str, argc: int):
        super().__init__(f"'{class_name}' has no method '{method}' taking {argc} argument(s)")
        self.class_name = class_name
        self.method = method
        self.argc = argc


class CallDepthExceeded(MythonError):
    kind = "RecursionError"


class InternalError(MythonError):
    """A control-flow condition the engine cannot interpret."""
    kind = "InternalError"


# =================================================================
# Environment
# =================================================================

class Closure(collections.abc.MutableMapping):
    """A flat name -> value binding scope for one evaluation frame.

    There is no parent chain: a method call gets a brand new Closure and
    cannot see the caller's bindings. Each class instance owns one Closure
    holding its fields.
    """
    def __init__(self, bindings: Optional[Dict[str, Any]] = None):
        self.bindings: Dict[str, Any] = dict(bindings or {})

    def __getitem__(self, key: str) -> Any:
        try:
            return self.bindings[key]
        except KeyError:
            raise NameNotFound(key) from None

    def __setitem__(self, key: str, value: Any):
        if not isinstance(key, str):
            raise TypeError(f"Closure key must be a str, not {type(key)}")
        self.bindings[key] = value

    def __delitem__(self, key: str):
        if key not in self.bindings:
            raise NameNotFound(key)
        del self.bindings[key]

    def __contains__(self, key: Any) -> bool:
        return key in self.bindings

    def __iter__(self) -> Iterator[str]:
        return iter(self.bindings)

    def __len__(self) -> int:
        return len(self.bindings)

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        return f"<Closure bindings=[{keys}]>"


# =================================================================
# Runtime Values
# =================================================================

class Object(ABC):
    """Abstract base class for every non-empty Mython value."""

    def __repr__(self) -> str:
        from mython.mython_printer import Printer
        return f"{type(self).__name__}<{Printer().pformat(self)}>"


class Number(Object):
    def __init__(self, value: int):
        self.value = int(value)

    def __eq__(self, other):
        return isinstance(other, Number) and self.value == other.value

    def __hash__(self):
        return hash(("Number", self.value))


class String(Object):
    def __init__(self, value: str):
        self.value = str(value)

    def __eq__(self, other):
        return isinstance(other, String) and self.value == other.value

    def __hash__(self):
        return hash(("String", self.value))


class Bool(Object):
    def __init__(self, value: bool):
        self.value = bool(value)

    def __eq__(self, other):
        return isinstance(other, Bool) and self.value == other.value

    def __hash__(self):
        return hash(("Bool", self.value))


class Method:
    """A named method: formal parameter names plus an executable body."""
    def __init__(self, name: str, formal_params: List[str], body: Any):
        self.name = name
        self.formal_params = list(formal_params)
        self.body = body

    @property
    def arity(self) -> int:
        return len(self.formal_params)

    def __repr__(self) -> str:
        return f"<Method {self.name}({', '.join(self.formal_params)})>"


class Class(Object):
    """A named class with a method table keyed by (name, arity).

    Lookups that miss in this class continue in the parent class, if any.
    """
    def __init__(self, name: str, methods: List[Method], parent: Optional['Class'] = None):
        self.name = name
        self.parent = parent
        self.methods: Dict[Tuple[str, int], Method] = {}
        for method in methods:
            key = (method.name, method.arity)
            if key in self.methods:
                raise ValueError(f"class {name} defines {method.name} with {method.arity} parameter(s) twice")
            self.methods[key] = method

    def get_method(self, name: str, argc: int) -> Optional[Method]:
        cls: Optional[Class] = self
        while cls is not None:
            method = cls.methods.get((name, argc))
            if method is not None:
                return method
            cls = cls.parent
        return None

    def has_method(self, name: str, argc: int) -> bool:
        return self.get_method(name, argc) is not None


class ClassInstance(Object):
    """An instance of a Class. The class is shared; the fields are owned."""
    def __init__(self, cls: Class):
        self.cls = cls
        self.fields = Closure()

    def has_method(self, name: str, argc: int) -> bool:
        return self.cls.has_method(name, argc)

    def call(self, name: str, args: List[Any], context: Any) -> Any:
        """Resolve `name` by argument count and run it with `self` bound."""
        method = self.cls.get_method(name, len(args))
        if method is None:
            raise MethodNotFound(self.cls.name, name, len(args))

        frame = Closure()
        frame[SELF_NAME] = self
        for param_name, arg_val in zip(method.formal_params, args):
            frame[param_name] = arg_val

        call_stack = getattr(context, 'call_stack', None)
        if call_stack is None:
            return method.body.execute(frame, context)

        config = getattr(context, 'config', None)
        max_depth = getattr(config, 'max_call_depth', None)
        if max_depth is not None and len(call_stack) >= max_depth:
            raise CallDepthExceeded(f"maximum call depth of {max_depth} exceeded calling {self.cls.name}.{name}")

        dbg = getattr(context, '_dbg', None)
        if dbg is not None:
            dbg("call", f"{self.cls.name}.{name}", "argc", len(args))
        # Frames stay on the stack when an error unwinds so the driver can report them.
        call_stack.append({'name': f"{self.cls.name}.{name}", 'args': list(args)})
        result = method.body.execute(frame, context)
        call_stack.pop()
        return result


# =================================================================
# Handle helpers
# =================================================================

T = TypeVar('T', bound=Object)


def try_as(value: Any, kind: Type[T]) -> Optional[T]:
    """Runtime-checked downcast: the value itself if it is a `kind`, else None."""
    if isinstance(value, kind):
        return value
    return None


def kind_of(value: Any) -> str:
    """Name of the runtime kind of a value, for error messages."""
    return 'None' if value is None else type(value).__name__


def is_true(value: Any) -> bool:
    """Truthiness: non-zero numbers, non-empty strings and True are true."""
    match value:
        case Bool():
            return value.value
        case Number():
            return value.value != 0
        case String():
            return len(value.value) > 0
        case _:
            return False


# =================================================================
# Control Flow
# =================================================================

class Response:
    """A tagged outcome travelling up through statement execution.

    `Return` produces `Response("return", value)`; compound statements
    forward it untouched and `MethodBody` turns it back into `value`.
    """
    def __init__(self, status: str, value: Any):
        self.status = status
        self.value = value

    def __repr__(self) -> str:
        return f"<Response {self.status} {self.value!r}>"

    def __eq__(self, other):
        if not isinstance(other, Response):
            return NotImplemented
        return self.status == other.status and self.value == other.value
