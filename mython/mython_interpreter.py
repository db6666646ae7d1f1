"""
The core Mython execution engine: the Executable node hierarchy.

Every node exposes `execute(closure, context)`. Expression nodes return a
value handle (an `Object` or None). Statement nodes may additionally
return a `Response` tagged "return", which compound statements forward
unchanged until a `MethodBody` unwraps it into the method's result.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

from mython.mython_datatypes import (
    Object, Number, String, Bool, Class, ClassInstance, Closure, Response,
    MythonError, InvalidAssignmentTarget, TypeMismatch,
    DivisionByZero, InternalError,
    try_as, is_true, kind_of, ADD_METHOD, INIT_METHOD,
)
from mython.mython_printer import Printer

RETURN = "return"


# Helper: identify and unwrap control-flow "return" responses
def is_return(x) -> bool:
    return isinstance(x, Response) and x.status == RETURN


def unwrap_return(x):
    return x.value if is_return(x) else x


def _dbg(context, *parts):
    dbg = getattr(context, '_dbg', None)
    if dbg is not None:
        dbg(*parts)


class Executable(ABC):
    """Abstract base class for all AST nodes."""

    @abstractmethod
    def execute(self, closure: Closure, context: Any) -> Any:
        raise NotImplementedError

    def eval_value(self, node: 'Executable', closure: Closure, context: Any) -> Any:
        """Executes a child in value position; a return signal there is malformed."""
        result = node.execute(closure, context)
        if is_return(result):
            raise InternalError("'return' used where a value is expected")
        return result


# =================================================================
# Constants and Lookup
# =================================================================

class Constant(Executable):
    """A fixed value. Every execution yields the same shared object."""
    def __init__(self, value: Object):
        self.value = value

    def execute(self, closure, context):
        return self.value

    def __repr__(self) -> str:
        return f"Constant({self.value!r})"


def NumericConst(n: int) -> Constant:
    return Constant(Number(n))


def StringConst(s: str) -> Constant:
    return Constant(String(s))


def BoolConst(b: bool) -> Constant:
    return Constant(Bool(b))


class NoneConst(Executable):
    def execute(self, closure, context):
        return None


class VariableValue(Executable):
    """Looks up a name, or a dotted chain of fields such as `a.b.c`."""
    def __init__(self, var_name: str | List[str]):
        if isinstance(var_name, str):
            dotted_ids = [var_name]
        else:
            dotted_ids = list(var_name)
        if not dotted_ids:
            raise ValueError("VariableValue needs at least one identifier")
        self.var_name = dotted_ids[0]
        self.dotted_ids = dotted_ids[1:]

    def execute(self, closure, context):
        current = closure[self.var_name]
        path = self.var_name
        for field_name in self.dotted_ids:
            instance = try_as(current, ClassInstance)
            if instance is None:
                raise TypeMismatch(f"cannot read field '{field_name}' of '{path}': not a class instance")
            current = instance.fields[field_name]
            path = f"{path}.{field_name}"
        return current

    def __repr__(self) -> str:
        return f"VariableValue({'.'.join([self.var_name] + self.dotted_ids)!r})"


# =================================================================
# Binding
# =================================================================

class Assignment(Executable):
    """`var = rv`: binds the handle (not a copy) in the current closure."""
    def __init__(self, var: str, rv: Executable):
        self.var = var
        self.rv = rv

    def execute(self, closure, context):
        closure[self.var] = self.eval_value(self.rv, closure, context)
        return closure[self.var]


class FieldAssignment(Executable):
    """`object.field_name = rv`"""
    def __init__(self, object: VariableValue, field_name: str, rv: Executable):
        self.object = object
        self.field_name = field_name
        self.rv = rv

    def execute(self, closure, context):
        instance = try_as(self.eval_value(self.object, closure, context), ClassInstance)
        if instance is None:
            raise InvalidAssignmentTarget(f"cannot assign field '{self.field_name}': {self.object!r} is not a class instance")
        instance.fields[self.field_name] = self.eval_value(self.rv, closure, context)
        return instance.fields[self.field_name]


# =================================================================
# Output
# =================================================================

class Print(Executable):
    """Writes its arguments separated by spaces, then a newline."""
    def __init__(self, args: Executable | List[Executable] | None = None):
        if args is None:
            self.args = []
        elif isinstance(args, Executable):
            self.args = [args]
        else:
            self.args = list(args)
        self._printer = Printer()

    @classmethod
    def variable(cls, name: str) -> 'Print':
        return cls(VariableValue(name))

    def execute(self, closure, context):
        output = context.output
        for i, arg in enumerate(self.args):
            if i > 0:
                output.write(' ')
            self._printer.write(self.eval_value(arg, closure, context), output, context)
        output.write('\n')
        return None


class Stringify(Executable):
    """`str(x)`: the printed form of x as a String."""
    def __init__(self, argument: Executable):
        self.argument = argument
        self._printer = Printer()

    def execute(self, closure, context):
        value = self.eval_value(self.argument, closure, context)
        return String(self._printer.pformat(value, context))


# =================================================================
# Arithmetic
# =================================================================

class BinaryOperation(Executable):
    def __init__(self, lhs: Executable, rhs: Executable):
        self.lhs = lhs
        self.rhs = rhs

    def _operands(self, closure, context):
        lhs = self.eval_value(self.lhs, closure, context)
        rhs = self.eval_value(self.rhs, closure, context)
        return lhs, rhs

    def _numbers(self, closure, context, op: str):
        lhs, rhs = self._operands(closure, context)
        match lhs, rhs:
            case Number(), Number():
                return lhs.value, rhs.value
        raise TypeMismatch(f"unsupported operand types for {op}: {kind_of(lhs)} and {kind_of(rhs)}")


class UnaryOperation(Executable):
    def __init__(self, argument: Executable):
        self.argument = argument


class Add(BinaryOperation):
    """number + number, string + string, or instance.__add__(rhs)."""

    def execute(self, closure, context):
        lhs, rhs = self._operands(closure, context)
        instance = try_as(lhs, ClassInstance)
        if instance is not None and instance.has_method(ADD_METHOD, 1):
            return instance.call(ADD_METHOD, [rhs], context)
        match lhs, rhs:
            case Number(), Number():
                return Number(lhs.value + rhs.value)
            case String(), String():
                return String(lhs.value + rhs.value)
        raise TypeMismatch(f"unsupported operand types for +: {kind_of(lhs)} and {kind_of(rhs)}")


class Sub(BinaryOperation):
    def execute(self, closure, context):
        a, b = self._numbers(closure, context, '-')
        return Number(a - b)


class Mult(BinaryOperation):
    def execute(self, closure, context):
        a, b = self._numbers(closure, context, '*')
        return Number(a * b)


class Div(BinaryOperation):
    """Integer division truncating toward zero."""

    def execute(self, closure, context):
        a, b = self._numbers(closure, context, '/')
        if b == 0:
            raise DivisionByZero("division by zero")
        quotient = abs(a) // abs(b)
        return Number(quotient if (a < 0) == (b < 0) else -quotient)


# =================================================================
# Logic and Comparison
# =================================================================

class Or(BinaryOperation):
    def execute(self, closure, context):
        if is_true(self.eval_value(self.lhs, closure, context)):
            return Bool(True)
        return Bool(is_true(self.eval_value(self.rhs, closure, context)))


class And(BinaryOperation):
    def execute(self, closure, context):
        if not is_true(self.eval_value(self.lhs, closure, context)):
            return Bool(False)
        return Bool(is_true(self.eval_value(self.rhs, closure, context)))


class Not(UnaryOperation):
    def execute(self, closure, context):
        return Bool(not is_true(self.eval_value(self.argument, closure, context)))


Comparator = Callable[[Any, Any, Any], bool]


class Comparison(BinaryOperation):
    """Wraps a comparator's verdict (see mython_runtime) as a Bool."""
    def __init__(self, cmp: Comparator, lhs: Executable, rhs: Executable):
        super().__init__(lhs, rhs)
        self.comparator = cmp

    def execute(self, closure, context):
        lhs, rhs = self._operands(closure, context)
        return Bool(self.comparator(lhs, rhs, context))


# =================================================================
# Control Flow
# =================================================================

class Compound(Executable):
    """A sequence of statements, e.g. a method body or an if branch."""
    def __init__(self, *statements: Executable):
        self.statements: List[Executable] = list(statements)

    def add_statement(self, stmt: Executable):
        self.statements.append(stmt)

    def execute(self, closure, context):
        for stmt in self.statements:
            result = stmt.execute(closure, context)
            if is_return(result):
                return result
        return None


class IfElse(Executable):
    def __init__(self, condition: Executable, if_body: Executable, else_body: Optional[Executable] = None):
        self.condition = condition
        self.if_body = if_body
        self.else_body = else_body

    def execute(self, closure, context):
        if is_true(self.eval_value(self.condition, closure, context)):
            return self.if_body.execute(closure, context)
        if self.else_body is not None:
            return self.else_body.execute(closure, context)
        return None


class Return(Executable):
    def __init__(self, statement: Executable):
        self.statement = statement

    def execute(self, closure, context):
        value = self.eval_value(self.statement, closure, context)
        _dbg(context, "return", kind_of(value))
        return Response(RETURN, value)


class MethodBody(Executable):
    """The boundary where a `return` inside the body becomes the call's result."""
    def __init__(self, body: Executable):
        self.body = body

    def execute(self, closure, context):
        try:
            result = self.body.execute(closure, context)
        except MythonError:
            raise
        except Exception as e:
            raise InternalError(f"unexpected {type(e).__name__} in method body: {e}") from e
        if is_return(result):
            return result.value
        if isinstance(result, Response):
            raise InternalError(f"unrecognized control-flow signal {result.status!r} reached a method boundary")
        return None


# =================================================================
# Classes
# =================================================================

class ClassDefinition(Executable):
    """Binds a class under its own name in the current closure."""
    def __init__(self, cls: Class):
        self.cls = cls

    def execute(self, closure, context):
        closure[self.cls.name] = self.cls
        return None


class NewInstance(Executable):
    """Creates a fresh instance and runs a matching `__init__`, if any.

    Without an `__init__` of the right arity the instance is returned with
    no fields set.
    """
    def __init__(self, cls: Class, args: Optional[List[Executable]] = None):
        self.cls = cls
        self.args = list(args or [])

    def execute(self, closure, context):
        instance = ClassInstance(self.cls)
        if instance.has_method(INIT_METHOD, len(self.args)):
            actual_args = [self.eval_value(arg, closure, context) for arg in self.args]
            _dbg(context, "new", self.cls.name, "init argc", len(actual_args))
            instance.call(INIT_METHOD, actual_args, context)
        else:
            _dbg(context, "new", self.cls.name, "no __init__ for argc", len(self.args))
        return instance


class MethodCall(Executable):
    """`object.method(args...)`. A non-instance receiver yields None."""
    def __init__(self, object: Executable, method: str, args: Optional[List[Executable]] = None):
        self.object = object
        self.method = method
        self.args = list(args or [])

    def execute(self, closure, context):
        instance = try_as(self.eval_value(self.object, closure, context), ClassInstance)
        if instance is None:
            return None
        actual_args = [self.eval_value(arg, closure, context) for arg in self.args]
        return instance.call(self.method, actual_args, context)
