import pytest

from slate.slate_errors import EmptyReferenceError
from slate.slate_runtime import ExecutionResult, Lazy, Ref, StdLib, curry, fix, strict


@pytest.fixture
def stdlib():
    return StdLib()


@pytest.fixture
def rt(stdlib):
    return stdlib.namespace()


# --- Ref and Lazy ---

def test_ref_starts_empty():
    ref = Ref()
    assert not ref.filled
    with pytest.raises(EmptyReferenceError):
        ref.get()


def test_ref_set_and_overwrite():
    ref = Ref()
    ref.set(1)
    ref.set(2)
    assert ref.get() == 2


def test_lazy_computes_once():
    calls = []
    lazy = Lazy(lambda: calls.append(1) or len(calls))
    assert lazy.get() == 1
    assert lazy.get() == 1
    assert calls == [1]


def test_lazy_detects_self_dependency():
    lazy = Lazy(lambda: lazy.get() + 1)
    with pytest.raises(RuntimeError, match="infinite loop"):
        lazy.get()


def test_lazy_retries_after_failure():
    attempts = []

    def thunk():
        attempts.append(1)
        if len(attempts) == 1:
            raise ValueError("first time")
        return "ok"

    lazy = Lazy(thunk)
    with pytest.raises(ValueError):
        lazy.get()
    assert lazy.get() == "ok"


def test_strict_evaluates_immediately():
    calls = []
    strict(lambda: calls.append("ran"))
    assert calls == ["ran"]


def test_fix_and_curry():
    fact = fix(lambda self: lambda n: 1 if n == 0 else n * self(n - 1))
    assert fact(5) == 120
    add3 = curry(lambda a, b, c: a + b + c, 3)
    assert add3(1)(2)(3) == 6


# --- StdLib ---

def test_signatures_publish_source_names():
    sigs = {name: (sig, attr) for name, sig, attr in StdLib.signatures()}
    assert sigs["Ref.new"] == ("() -> Ref a", "ref_new")
    assert sigs["&&"] == ("Bool -> Bool -> Bool", "and_")
    assert sigs["+"][1] == "add"


def test_namespace_exposes_curried_builtins(rt):
    assert rt.add(1)(2) == 3
    assert rt.not_(True) is False
    assert rt.concat("a")("b") == "ab"


@pytest.mark.parametrize("a, b, expected", [
    (7, 2, 3),
    (-7, 2, -3),
    (7, -2, -3),
    (7.0, 2.0, 3.5),
])
def test_division_truncates_ints_toward_zero(rt, a, b, expected):
    assert rt.quot(a, b) == expected
    assert rt.divide(a)(b) == expected


def test_div_and_mod_floor(rt):
    assert rt.div(-7)(2) == -4
    assert rt.mod(-7)(2) == 1


def test_division_by_zero_raises(rt):
    with pytest.raises(ZeroDivisionError):
        rt.quot(1, 0)


def test_list_builtins(rt):
    assert rt.cons(1)([2, 3]) == [1, 2, 3]
    assert rt.head([4, 5]) == 4
    assert rt.tail([4, 5]) == [5]
    assert rt.length([1, 2]) == 2
    assert rt.null([]) is True
    assert rt.map(lambda x: x * 2)([1, 2]) == [2, 4]
    assert rt.filter(lambda x: x > 1)([1, 2, 3]) == [2, 3]
    assert rt.foldr(lambda x: lambda acc: x - acc)(0)([1, 2, 3]) == 2
    assert rt.sum([1, 2, 3]) == 6


def test_head_of_empty_list(rt):
    with pytest.raises(IndexError, match="head: empty list"):
        rt.head([])


def test_show_uses_slate_syntax(rt):
    assert rt.show([1, 2]) == "[1, 2]"
    assert rt.show("hi") == '"hi"'
    assert rt.show(True) == "True"


def test_emit_records_side_effect(stdlib, rt):
    assert rt.emit("hello") is None
    assert stdlib.side_effects == [{'topics': ['stdout'], 'message': 'hello'}]


def test_error_raises(rt):
    with pytest.raises(RuntimeError, match="boom"):
        rt.error("boom")


def test_ref_builtins(rt):
    ref = rt.ref_new(None)
    ref.set(3)
    assert rt.ref_get(ref) == 3


# --- ExecutionResult ---

def test_format_error_keeps_compiler_diagnostics_as_is():
    res = ExecutionResult(status='error', error_message="ParseError: bad (line 1, col 1)",
                          error_type='CompilationError')
    assert res.format_error() == "ParseError: bad (line 1, col 1)"


def test_format_error_prefixes_other_kinds():
    res = ExecutionResult(status='error', error_message="IndexError: head: empty list",
                          error_type='EvaluationError')
    assert res.format_error() == "EvaluationError: IndexError: head: empty list"


def test_format_error_is_empty_on_success():
    assert ExecutionResult(status='success', value=1).format_error() == ""
