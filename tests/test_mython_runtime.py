import io
import math

import pytest

from mython.mython_datatypes import (
    Number, String, Bool, Class, ClassInstance, Closure, Method,
    TypeMismatch, CallDepthExceeded, DivisionByZero,
)
from mython.mython_interpreter import (
    NumericConst, StringConst, VariableValue, Assignment, Print, Add, Sub, Mult, Div,
    Compound, IfElse, Return, MethodBody, MethodCall, NewInstance, Comparison,
)
from mython.mython_runtime import (
    ExecutionConfig, Context, DummyContext, ProgramRunner,
    equal, not_equal, less, greater, less_or_equal, greater_or_equal,
)


def body(*statements):
    return MethodBody(Compound(*statements))


# --- Comparators ---

@pytest.mark.parametrize("lhs, rhs, eq, lt", [
    (Number(1), Number(1), True, False),
    (Number(1), Number(2), False, True),
    (String("a"), String("b"), False, True),
    (String("b"), String("b"), True, False),
    (Bool(False), Bool(True), False, True),
])
def test_primitive_comparisons(lhs, rhs, eq, lt):
    ctx = DummyContext()
    assert equal(lhs, rhs, ctx) is eq
    assert not_equal(lhs, rhs, ctx) is (not eq)
    assert less(lhs, rhs, ctx) is lt
    assert greater(lhs, rhs, ctx) is (not lt and not eq)
    assert less_or_equal(lhs, rhs, ctx) is (lt or eq)
    assert greater_or_equal(lhs, rhs, ctx) is (not lt)


def test_none_equals_none():
    assert equal(None, None, DummyContext())


def test_mismatched_comparisons_raise():
    ctx = DummyContext()
    with pytest.raises(TypeMismatch):
        equal(Number(1), String("1"), ctx)
    with pytest.raises(TypeMismatch):
        less(None, Number(1), ctx)
    with pytest.raises(TypeMismatch):
        equal(Number(1), None, ctx)


def test_comparators_use_user_methods():
    # __eq__ and __lt__ both compare against the field `v`
    eq = Method("__eq__", ["other"], body(Return(Comparison(equal, VariableValue(["self", "v"]), VariableValue("other")))))
    lt = Method("__lt__", ["other"], body(Return(Comparison(less, VariableValue(["self", "v"]), VariableValue("other")))))
    instance = ClassInstance(Class("Wrapped", [eq, lt]))
    instance.fields["v"] = Number(5)
    ctx = DummyContext()
    assert equal(instance, Number(5), ctx)
    assert less(instance, Number(6), ctx)
    assert greater(instance, Number(4), ctx)
    assert not greater(instance, Number(5), ctx)


# --- Config ---

def test_config_defaults():
    cfg = ExecutionConfig()
    assert cfg.debug is False
    assert cfg.max_call_depth == 100


def test_config_from_env():
    cfg = ExecutionConfig.from_env({"MYTHON_DEBUG": "yes", "MYTHON_MAX_CALL_DEPTH": "12"})
    assert cfg.debug is True
    assert cfg.max_call_depth == 12
    assert ExecutionConfig.from_env({}) == ExecutionConfig()


def test_config_from_env_rejects_bad_depth():
    with pytest.raises(ValueError):
        ExecutionConfig.from_env({"MYTHON_MAX_CALL_DEPTH": "deep"})
    with pytest.raises(ValueError):
        ExecutionConfig.from_env({"MYTHON_MAX_CALL_DEPTH": "0"})


@pytest.mark.parametrize("depth", [True, 0, -3, 2.5, "10"])
def test_config_rejects_invalid_depth(depth):
    with pytest.raises(ValueError):
        ExecutionConfig(max_call_depth=depth)


def test_config_from_yaml_and_json_files(tmp_path):
    yaml_file = tmp_path / "mython.yaml"
    yaml_file.write_text("debug: true\nmax_call_depth: 7\n", encoding="utf-8")
    assert ExecutionConfig.from_file(yaml_file) == ExecutionConfig(debug=True, max_call_depth=7)

    json_file = tmp_path / "mython.json"
    json_file.write_text('{"max_call_depth": 3}', encoding="utf-8")
    assert ExecutionConfig.from_file(json_file) == ExecutionConfig(max_call_depth=3)

    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    assert ExecutionConfig.from_file(empty) == ExecutionConfig()


def test_config_rejects_unknown_keys(tmp_path):
    f = tmp_path / "bad.yaml"
    f.write_text("colour: blue\n", encoding="utf-8")
    with pytest.raises(ValueError, match="colour"):
        ExecutionConfig.from_file(f)


def test_config_dump_round_trips_through_yaml(tmp_path):
    cfg = ExecutionConfig(debug=True, max_call_depth=9)
    f = tmp_path / "dumped.yaml"
    f.write_text(cfg.dump(), encoding="utf-8")
    assert ExecutionConfig.from_file(f) == cfg


# --- Context ---

def test_context_writes_to_given_stream():
    out = io.StringIO()
    Print(StringConst("hello")).execute(Closure(), Context(out))
    assert out.getvalue() == "hello\n"


def test_debug_traces_go_to_stderr(capsys):
    ctx = DummyContext(ExecutionConfig(debug=True))
    cls = Class("C", [Method("m", [], body(Return(NumericConst(1))))])
    MethodCall(NewInstance(cls), "m").execute(Closure(), ctx)
    err = capsys.readouterr().err
    assert "[DBG] call C.m" in err
    assert "[DBG] return" in err


@pytest.mark.parametrize("flag", ["0", "false", "no", ""])
def test_debug_env_flag_off_values_stay_quiet(monkeypatch, capsys, flag):
    monkeypatch.setenv("MYTHON_DEBUG", flag)
    ctx = DummyContext()
    cls = Class("C", [Method("m", [], body(Return(NumericConst(1))))])
    MethodCall(NewInstance(cls), "m").execute(Closure(), ctx)
    assert "[DBG]" not in capsys.readouterr().err


def test_call_depth_limit():
    # def loop(): return self.loop()
    loop = Method("loop", [], body(Return(MethodCall(VariableValue("self"), "loop"))))
    ctx = DummyContext(ExecutionConfig(max_call_depth=10))
    with pytest.raises(CallDepthExceeded):
        MethodCall(NewInstance(Class("Forever", [loop])), "loop").execute(Closure(), ctx)
    assert len(ctx.call_stack) == 10


def factorial_instance():
    # def fact(n): if n < 2: return 1 else: return n * self.fact(n - 1)
    n = VariableValue("n")
    recurse = MethodCall(VariableValue("self"), "fact", [Sub(n, NumericConst(1))])
    fact = Method("fact", ["n"], body(IfElse(
        Comparison(less, n, NumericConst(2)),
        Return(NumericConst(1)),
        Return(Mult(n, recurse)),
    )))
    return ClassInstance(Class("Math", [fact]))


def test_default_depth_allows_deep_recursion():
    ctx = DummyContext()
    closure = Closure({"m": factorial_instance()})
    result = MethodCall(VariableValue("m"), "fact", [NumericConst(95)]).execute(closure, ctx)
    assert result == Number(math.factorial(95))
    assert ctx.call_stack == []


def test_default_depth_limit_raises_call_depth_exceeded():
    ctx = DummyContext()
    closure = Closure({"m": factorial_instance()})
    with pytest.raises(CallDepthExceeded):
        MethodCall(VariableValue("m"), "fact", [NumericConst(150)]).execute(closure, ctx)
    assert len(ctx.call_stack) == 100


def test_runner_reports_depth_limit_with_default_config():
    closure = Closure({"m": factorial_instance()})
    program = MethodCall(VariableValue("m"), "fact", [NumericConst(150)])
    result = ProgramRunner(ExecutionConfig()).run(program, closure)
    assert result.status == "error"
    assert result.format_error().startswith("RecursionError: maximum call depth of 100 exceeded")


# --- ProgramRunner ---

def test_runner_success_collects_output():
    program = Compound(
        Assignment("x", NumericConst(3)),
        Assignment("y", Add(VariableValue("x"), NumericConst(4))),
        Print(VariableValue("y")),
    )
    out = io.StringIO()
    result = ProgramRunner(ExecutionConfig()).run(program, output=out)
    assert result.status == 'success'
    assert result.value is None
    assert result.output == "7\n"
    assert out.getvalue() == "7\n"
    assert result.format_error() == ""


def test_runner_uses_supplied_closure():
    closure = Closure({"x": Number(2)})
    result = ProgramRunner(ExecutionConfig()).run(Assignment("y", VariableValue("x")), closure)
    assert result.status == 'success'
    assert closure["y"] == Number(2)


def test_runner_reports_error_with_partial_output():
    program = Compound(
        Print(StringConst("before")),
        Print(VariableValue("nope")),
        Print(StringConst("after")),
    )
    result = ProgramRunner(ExecutionConfig()).run(program)
    assert result.status == 'error'
    assert result.output == "before\n"
    assert result.format_error().startswith("NameNotFound: ")
    assert "nope" in result.format_error()


def test_runner_reports_stacktrace_of_method_frames():
    # boom(x) divides by zero; outer(y) calls boom
    boom = Method("boom", ["x"], body(Return(Div(VariableValue("x"), NumericConst(0)))))
    outer = Method("outer", ["y"], body(Return(MethodCall(VariableValue("self"), "boom", [VariableValue("y")]))))
    cls = Class("Calc", [boom, outer])
    program = Compound(
        Assignment("c", NewInstance(cls)),
        MethodCall(VariableValue("c"), "outer", [NumericConst(5)]),
    )
    result = ProgramRunner(ExecutionConfig()).run(program)
    assert result.status == 'error'
    assert isinstance(result.error, DivisionByZero)
    msg = result.format_error()
    assert msg.startswith("ZeroDivisionError: division by zero")
    assert "Mython stacktrace: (Calc.outer 5) (Calc.boom 5)" in msg


def test_runner_rejects_return_outside_method():
    result = ProgramRunner(ExecutionConfig()).run(Compound(Return(NumericConst(1))))
    assert result.status == 'error'
    assert result.format_error().startswith("InternalError: ")
