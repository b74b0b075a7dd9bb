# slate_runtime.py

import asyncio
import functools
import inspect
import keyword
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Literal, Optional

from slate.slate_errors import EmptyReferenceError, SlateError

# ===================================================================
# 1. Runtime values
# ===================================================================


class Ref:
    """A mutable single-slot cell.

    Cells are created empty by compiled code and filled in by the host before
    anything reads them; reading an empty cell is an error.
    """
    __slots__ = ("_value", "_filled")

    def __init__(self):
        self._value = None
        self._filled = False

    @property
    def filled(self) -> bool:
        return self._filled

    def get(self):
        if not self._filled:
            raise EmptyReferenceError("reference cell read before a value was injected")
        return self._value

    def set(self, value):
        self._value = value
        self._filled = True

    def __repr__(self):
        return f"<Ref {self._value!r}>" if self._filled else "<Ref empty>"


class Lazy:
    """A top-level value: computed on first access, then cached."""
    __slots__ = ("_thunk", "_value", "_state")

    _PENDING, _RUNNING, _DONE = range(3)

    def __init__(self, thunk: Callable[[], Any]):
        self._thunk = thunk
        self._value = None
        self._state = Lazy._PENDING

    @classmethod
    def of(cls, value) -> 'Lazy':
        lazy = cls(lambda: value)
        lazy.get()
        return lazy

    def get(self):
        if self._state == Lazy._DONE:
            return self._value
        if self._state == Lazy._RUNNING:
            raise RuntimeError("infinite loop: value depends on itself")
        self._state = Lazy._RUNNING
        try:
            value = self._thunk()
        except BaseException:
            self._state = Lazy._PENDING
            raise
        self._value = value
        self._state = Lazy._DONE
        self._thunk = None
        return value

    def __repr__(self):
        return f"<Lazy {self._value!r}>" if self._state == Lazy._DONE else "<Lazy pending>"


def strict(thunk: Callable[[], Any]) -> Lazy:
    lazy = Lazy(thunk)
    lazy.get()
    return lazy


def force(value):
    return value.get() if isinstance(value, Lazy) else value


def fix(make: Callable[[Callable], Callable]) -> Callable:
    """Ties the knot for a recursive local function."""
    cell: List[Callable] = []

    def self_ref(arg):
        return cell[0](arg)

    cell.append(make(self_ref))
    return cell[0]


def curry(fn: Callable, arity: int, args: tuple = ()) -> Callable:
    if len(args) == arity:
        return fn(*args)
    return lambda x: curry(fn, arity, args + (x,))


def attribute_name(method_name: str) -> str:
    """The runtime attribute a StdLib method is published under: `_and` becomes `and_`."""
    name = method_name.lstrip("_")
    return name + "_" if keyword.iskeyword(name) else name


def builtin(name: str, signature: str):
    """Marks a StdLib method as a language built-in with the given type."""
    def decorator(func):
        func._slate_builtin = (name, signature)
        return func
    return decorator


# ===================================================================
# 2. The Standard Library
# ===================================================================

class StdLib:
    """Contains Python implementations for all slate built-ins.

    Compiled code sees every built-in as a curried, one-argument function
    reached through the namespace returned by `namespace()`.
    """

    def __init__(self):
        self.side_effects: List[Dict] = []

    @classmethod
    def signatures(cls) -> List[tuple]:
        """(source name, type signature, runtime attribute) for each built-in."""
        out = []
        for attr, member in inspect.getmembers(cls, inspect.isfunction):
            info = getattr(member, "_slate_builtin", None)
            if info:
                out.append((info[0], info[1], attribute_name(attr)))
        return out

    def namespace(self) -> SimpleNamespace:
        ns = SimpleNamespace(Lazy=Lazy, strict=strict, force=force, fix=fix, quot=self._divide)
        for attr, member in inspect.getmembers(self, inspect.ismethod):
            if getattr(member, "_slate_builtin", None):
                arity = len(inspect.signature(member).parameters)
                setattr(ns, attribute_name(attr), curry(member, arity))
        return ns

    # --- Math ---
    @builtin("+", "Num a => a -> a -> a")
    def _add(self, a, b): return a + b
    @builtin("-", "Num a => a -> a -> a")
    def _sub(self, a, b): return a - b
    @builtin("*", "Num a => a -> a -> a")
    def _mul(self, a, b): return a * b

    @builtin("/", "Num a => a -> a -> a")
    def _divide(self, a, b):
        # Int division truncates toward zero
        if isinstance(a, int) and isinstance(b, int):
            q = abs(a) // abs(b)
            return q if (a >= 0) == (b >= 0) else -q
        return a / b

    @builtin("div", "Int -> Int -> Int")
    def _div(self, a, b): return a // b
    @builtin("mod", "Int -> Int -> Int")
    def _mod(self, a, b): return a % b
    @builtin("negate", "Num a => a -> a")
    def _negate(self, a): return -a
    @builtin("fromInt", "Int -> Double")
    def _from_int(self, a): return float(a)
    @builtin("truncate", "Double -> Int")
    def _truncate(self, a): return int(a)

    # --- Comparison and logic ---
    @builtin("==", "a -> a -> Bool")
    def _eq(self, a, b): return a == b
    @builtin("/=", "a -> a -> Bool")
    def _neq(self, a, b): return a != b
    @builtin("<", "a -> a -> Bool")
    def _lt(self, a, b): return a < b
    @builtin("<=", "a -> a -> Bool")
    def _lte(self, a, b): return a <= b
    @builtin(">", "a -> a -> Bool")
    def _gt(self, a, b): return a > b
    @builtin(">=", "a -> a -> Bool")
    def _gte(self, a, b): return a >= b
    @builtin("&&", "Bool -> Bool -> Bool")
    def _and(self, a, b): return a and b
    @builtin("||", "Bool -> Bool -> Bool")
    def _or(self, a, b): return a or b
    @builtin("not", "Bool -> Bool")
    def _not(self, a): return not a

    # --- Strings ---
    @builtin("++", "String -> String -> String")
    def _concat(self, a, b): return a + b

    @builtin("show", "a -> String")
    def _show(self, value):
        from slate.slate_printer import Printer
        return Printer().pformat(value)

    # --- Lists ---
    @builtin(":", "a -> [a] -> [a]")
    def _cons(self, x, xs): return [x] + list(xs)
    @builtin("length", "[a] -> Int")
    def _length(self, xs): return len(xs)
    @builtin("null", "[a] -> Bool")
    def _null(self, xs): return len(xs) == 0

    @builtin("head", "[a] -> a")
    def _head(self, xs):
        if not xs:
            raise IndexError("head: empty list")
        return xs[0]

    @builtin("tail", "[a] -> [a]")
    def _tail(self, xs):
        if not xs:
            raise IndexError("tail: empty list")
        return list(xs[1:])

    @builtin("map", "(a -> b) -> [a] -> [b]")
    def _map(self, f, xs): return [f(x) for x in xs]
    @builtin("filter", "(a -> Bool) -> [a] -> [a]")
    def _filter(self, p, xs): return [x for x in xs if p(x)]

    @builtin("foldr", "(a -> b -> b) -> b -> [a] -> b")
    def _foldr(self, f, z, xs):
        acc = z
        for x in reversed(xs):
            acc = f(x)(acc)
        return acc

    @builtin("sum", "Num a => [a] -> a")
    def _sum(self, xs): return sum(xs)

    # --- Functions ---
    @builtin("$", "(a -> b) -> a -> b")
    def _apply(self, f, x): return f(x)
    @builtin("id", "a -> a")
    def _id(self, x): return x
    @builtin("const", "a -> b -> a")
    def _const(self, x, _): return x

    # --- Effects ---
    @builtin("emit", "String -> ()")
    def _emit(self, message):
        self.side_effects.append({'topics': ['stdout'], 'message': message})
        return None

    @builtin("error", "String -> a")
    def _error(self, message):
        raise RuntimeError(message)

    # --- Reference cells ---
    @builtin("Ref.new", "() -> Ref a")
    def _ref_new(self, _): return Ref()
    @builtin("Ref.get", "Ref a -> a")
    def _ref_get(self, ref): return ref.get()


# ===================================================================
# 3. Script Execution
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of running one fragment through a ScriptRunner."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        # Compiler diagnostics already start with their own kind
        if self.error_type in (None, 'CompilationError'):
            return msg
        return f"{self.error_type}: {msg}"


class ScriptRunner:
    """Runs fragments for an asyncio host against one session, one at a time."""

    def __init__(self, session=None, settings=None):
        # Imported here to avoid a circular import during module load.
        from slate.slate_session import Session
        self.session = session or Session(settings=settings)
        self._lock = asyncio.Lock()

    async def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to evaluate a fragment."""
        return await self._run(self.session.evaluate, source_code)

    async def bind(self, key: str, value: Any) -> ExecutionResult:
        return await self._run(self.session.bind, key, value)

    async def _run(self, fn, *args) -> ExecutionResult:
        async with self._lock:
            effects = self.session.stdlib.side_effects
            effects.clear()
            loop = asyncio.get_running_loop()
            try:
                value = await loop.run_in_executor(None, functools.partial(fn, *args))
            except SlateError as e:
                result = ExecutionResult(status='error', error_message=str(e),
                                         error_type=type(e).__name__)
            except Exception as e:
                result = ExecutionResult(status='error', error_message=str(e), error_type='InternalError')
            else:
                return ExecutionResult(status='success', value=value, side_effects=list(effects))
            effects.append({'topics': ['stderr'], 'message': result.format_error()})
            result.side_effects = list(effects)
            return result
