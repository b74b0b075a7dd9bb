import pytest

from slate.slate_printer import Printer
from slate.slate_runtime import Lazy, Ref


@pytest.fixture
def printer():
    return Printer()


def filled_ref(value):
    ref = Ref()
    ref.set(value)
    return ref


# Test cases: (id, object, expected_string)
FORMAT_TEST_CASES = [
    ("int", 123, "123"),
    ("negative_float", -1.5, "-1.5"),
    ("bool_true", True, "True"),
    ("bool_false", False, "False"),
    ("unit", None, "()"),
    ("string", "hi", '"hi"'),
    ("string_escapes", 'a"b\n', '"a\\"b\\n"'),
    ("list", [1, 2, 3], "[1, 2, 3]"),
    ("nested_list", [["a"], []], '[["a"], []]'),
    ("empty_ref", Ref(), "<ref>"),
    ("filled_ref", filled_ref(3), "<ref 3>"),
    ("lazy", Lazy.of([True]), "[True]"),
    ("function", lambda x: x, "<function>"),
    ("mapping", {"hp": 100}, '{"hp": 100}'),
    ("tuple", (1, 2), "[1, 2]"),
]


@pytest.mark.parametrize("obj, expected", [c[1:] for c in FORMAT_TEST_CASES],
                         ids=[c[0] for c in FORMAT_TEST_CASES])
def test_pformat(printer, obj, expected):
    assert printer.pformat(obj) == expected


def test_unknown_host_values_use_repr(printer):
    class Thing:
        def __repr__(self):
            return "Thing()"

    assert printer.pformat(Thing()) == "Thing()"
