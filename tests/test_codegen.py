import pytest

from slate.slate_codegen import generate
from slate.slate_compiler import builtin_environment
from slate.slate_parser import parse_declarations
from slate.slate_runtime import StdLib
from slate.slate_types import TypeChecker


def compile_definitions(source):
    checker = TypeChecker("Gen", builtin_environment())
    checker.check_declarations(parse_declarations(source), source)
    assert not checker.diagnostics, [d.format() for d in checker.diagnostics]
    return generate("Gen", checker.definitions, checker.imports)


def run_definitions(source):
    namespace = {"_rt": StdLib().namespace(), "_load": None}
    exec(compile(compile_definitions(source), "<test>", "exec"), namespace)
    return namespace


@pytest.mark.parametrize("source, line", [
    ("inc n = n + 1", "v_inc_0 = (lambda l_n: (l_n + 1))"),
    ("add a b = a + b", "v_add_0 = (lambda l_a: (lambda l_b: (l_a + l_b)))"),
    ("x = 2", "v_x_0 = _rt.Lazy(lambda: 2)"),
    ("!y = 3", "v_y_0 = _rt.strict(lambda: 3)"),
    ("q = 7 / 2", "v_q_0 = _rt.Lazy(lambda: _rt.quot(7, 2))"),
    ("xs = map not [True]", "v_xs_0 = _rt.Lazy(lambda: _rt.map(_rt.not_)([True]))"),
    ("c = 1 : []", "v_c_0 = _rt.Lazy(lambda: ([1] + []))"),
    ("n = negate 1", "v_n_0 = _rt.Lazy(lambda: (-1))"),
    ("s = \"a\\nb\"", "v_s_0 = _rt.Lazy(lambda: 'a\\nb')"),
])
def test_generated_lines(source, line):
    assert line in compile_definitions(source).splitlines()


def test_values_are_read_through_get():
    src = compile_definitions("x = 2\ny = x * x")
    assert "v_y_0 = _rt.Lazy(lambda: (v_x_0.get() * v_x_0.get()))" in src


def test_partial_operator_application_uses_the_curried_builtin():
    src = compile_definitions("inc = (+) 1")
    assert "v_inc_0 = _rt.Lazy(lambda: _rt.add(1))" in src


def test_generated_code_runs():
    ns = run_definitions(
        "fact n = if n == 0 then 1 else n * fact (n - 1)\n"
        "ten = fact 3 + 4\n"
        "evens = filter (\\x -> mod x 2 == 0) [1, 2, 3, 4]"
    )
    assert ns["v_fact_0"](5) == 120
    assert ns["v_ten_0"].get() == 10
    assert ns["v_evens_0"].get() == [2, 4]


def test_recursive_let_runs():
    ns = run_definitions("total = let go n = if n == 0 then 0 else n + go (n - 1) in go 10")
    assert ns["v_total_0"].get() == 55


def test_lazy_values_are_not_evaluated_until_read():
    ns = run_definitions("boom = head []")
    with pytest.raises(IndexError):
        ns["v_boom_0"].get()


def test_shadowed_definitions_keep_their_own_field():
    ns = run_definitions("x = 1\ny = x + 1\nx = 10")
    assert ns["v_y_0"].get() == 2
    assert ns["v_x_1"].get() == 10
