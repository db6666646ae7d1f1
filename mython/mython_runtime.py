# mython_runtime.py

import io
import os
import sys
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Any, List, Optional, Literal, Dict, TextIO

from mython.mython_datatypes import (
    Number, String, Bool, ClassInstance, Closure, MythonError, TypeMismatch,
    InternalError, EQ_METHOD, LT_METHOD, is_true, kind_of,
)
from mython.mython_interpreter import Executable, is_return
from mython.mython_printer import Printer
from mython.mython_serialize import deserialize, serialize

# ===================================================================
# 1. Configuration
# ===================================================================


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ExecutionConfig:
    """Settings that shape a program run."""
    debug: bool = False
    max_call_depth: int = 100

    def __post_init__(self):
        depth = self.max_call_depth
        if isinstance(depth, bool) or not isinstance(depth, int) or depth < 1:
            raise ValueError(f"max_call_depth must be a positive integer, got {depth!r}")
        self.debug = bool(self.debug)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExecutionConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'ExecutionConfig':
        """Reads MYTHON_DEBUG and MYTHON_MAX_CALL_DEPTH, falling back to defaults."""
        env = os.environ if environ is None else environ
        cfg: Dict[str, Any] = {}
        if "MYTHON_DEBUG" in env:
            cfg["debug"] = _env_flag(env["MYTHON_DEBUG"])
        if "MYTHON_MAX_CALL_DEPTH" in env:
            try:
                cfg["max_call_depth"] = int(env["MYTHON_MAX_CALL_DEPTH"])
            except ValueError:
                raise ValueError(f"MYTHON_MAX_CALL_DEPTH must be an integer, got {env['MYTHON_MAX_CALL_DEPTH']!r}") from None
        return cls.from_dict(cfg)

    @classmethod
    def from_file(cls, path: str | Path) -> 'ExecutionConfig':
        """Loads a YAML or JSON config file (format chosen by extension)."""
        p = Path(path)
        text = p.read_text(encoding="utf-8")
        fmt = 'json' if p.suffix.lower() == '.json' else 'yaml'
        data = deserialize(text, fmt=fmt)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {p} must contain a mapping")
        return cls.from_dict(data)

    def dump(self, fmt: str = 'yaml') -> str:
        return serialize(asdict(self), fmt=fmt)


# ===================================================================
# 2. Execution Context
# ===================================================================

# Python frames budgeted per nested Mython call; one call nests about a dozen.
FRAMES_PER_CALL = 30


class Context:
    """Carries the output sink and call bookkeeping through every execute call."""

    def __init__(self, output: TextIO, config: Optional[ExecutionConfig] = None):
        self.output = output
        self.config = config or ExecutionConfig()
        self.call_stack: List[Dict[str, Any]] = []
        needed = self.config.max_call_depth * FRAMES_PER_CALL + 1000
        if sys.getrecursionlimit() < needed:
            sys.setrecursionlimit(needed)

    def _dbg(self, *parts):
        if self.config.debug or _env_flag(os.environ.get("MYTHON_DEBUG")):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass


class DummyContext(Context):
    """A context whose output is captured in memory."""

    def __init__(self, config: Optional[ExecutionConfig] = None):
        super().__init__(io.StringIO(), config)

    def getvalue(self) -> str:
        return self.output.getvalue()


# ===================================================================
# 3. Comparators
# ===================================================================

def _primitive_pair(lhs, rhs):
    match lhs, rhs:
        case Number(), Number():
            return lhs.value, rhs.value
        case String(), String():
            return lhs.value, rhs.value
        case Bool(), Bool():
            return lhs.value, rhs.value
    return None


def equal(lhs: Any, rhs: Any, context: Any) -> bool:
    if lhs is None and rhs is None:
        return True
    if isinstance(lhs, ClassInstance) and lhs.has_method(EQ_METHOD, 1):
        return is_true(lhs.call(EQ_METHOD, [rhs], context))
    pair = _primitive_pair(lhs, rhs)
    if pair is None:
        raise TypeMismatch(f"cannot compare {kind_of(lhs)} and {kind_of(rhs)} for equality")
    return pair[0] == pair[1]


def less(lhs: Any, rhs: Any, context: Any) -> bool:
    if isinstance(lhs, ClassInstance) and lhs.has_method(LT_METHOD, 1):
        return is_true(lhs.call(LT_METHOD, [rhs], context))
    pair = _primitive_pair(lhs, rhs)
    if pair is None:
        raise TypeMismatch(f"cannot compare {kind_of(lhs)} and {kind_of(rhs)} for less")
    return pair[0] < pair[1]


def not_equal(lhs: Any, rhs: Any, context: Any) -> bool:
    return not equal(lhs, rhs, context)


def greater(lhs: Any, rhs: Any, context: Any) -> bool:
    return not less(lhs, rhs, context) and not equal(lhs, rhs, context)


def less_or_equal(lhs: Any, rhs: Any, context: Any) -> bool:
    return not greater(lhs, rhs, context)


def greater_or_equal(lhs: Any, rhs: Any, context: Any) -> bool:
    return not less(lhs, rhs, context)


# ===================================================================
# 4. Program Execution
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of a program execution."""
    status: Literal['success', 'error']
    value: Any = None
    output: str = ""
    error_message: Optional[str] = None
    error: Optional[BaseException] = None

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")


class ProgramRunner:
    """Executes a root node against a fresh top-level closure."""

    def __init__(self, config: Optional[ExecutionConfig] = None):
        self.config = config or ExecutionConfig.from_env()
        self.printer = Printer()
        self.context: Optional[Context] = None

    def _format_runtime_error(self, e: BaseException) -> str:
        match e:
            case MythonError():
                msg = f"{e.kind}: {e}"
            case _:
                msg = f"InternalError: {type(e).__name__}: {e}"
        st = self._format_stacktrace()
        if st:
            msg += "\n" + st
        return msg

    def _format_stacktrace(self) -> str:
        stack = getattr(self.context, 'call_stack', None) or []
        if not stack:
            return ""
        frames = []
        for frame in stack:
            args_s = " ".join(self.printer.pformat(a) for a in frame.get('args') or [])
            frames.append(f"({frame['name']} {args_s})" if args_s else f"({frame['name']})")
        return "Mython stacktrace: " + " ".join(frames)

    def run(self, root: Executable, closure: Optional[Closure] = None,
            output: Optional[TextIO] = None) -> ExecutionResult:
        """Runs `root`; errors become an error result rather than propagating."""
        buffer = io.StringIO()
        self.context = Context(buffer, self.config)
        closure = Closure() if closure is None else closure
        try:
            result = root.execute(closure, self.context)
            if is_return(result):
                raise InternalError("'return' outside of a method body")
        except Exception as e:
            message = self._format_runtime_error(e)
            self.context._dbg("error", message)
            return self._finish(ExecutionResult('error', None, buffer.getvalue(), message, e), output)
        return self._finish(ExecutionResult('success', result, buffer.getvalue()), output)

    def _finish(self, result: ExecutionResult, output: Optional[TextIO]) -> ExecutionResult:
        if output is not None:
            output.write(result.output)
        return result
