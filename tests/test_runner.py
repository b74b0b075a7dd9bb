import asyncio

import pytest

from slate.slate_config import PreludeConfig, Settings
from slate.slate_runtime import ExecutionResult, ScriptRunner
from slate.slate_session import Session


def assert_ok(res, expected=None):
    assert res.status == "success", f"expected success, got {res}"
    if expected is not None:
        assert res.value == expected, f"expected {expected!r}, got {res.value!r}"


def assert_error(res, error_type):
    assert res.status == "error", f"expected an error, got {res}"
    assert res.error_type == error_type, res.format_error()


@pytest.mark.asyncio
async def test_handle_script_returns_value():
    runner = ScriptRunner()
    res = await runner.handle_script("40 + 2")
    assert isinstance(res, ExecutionResult)
    assert_ok(res, 42)


@pytest.mark.asyncio
async def test_definitions_persist_between_calls():
    runner = ScriptRunner()
    assert_ok(await runner.handle_script("sq n = n * n"))
    assert_ok(await runner.handle_script("sq 9"), 81)


@pytest.mark.asyncio
async def test_compilation_errors_are_reported():
    runner = ScriptRunner()
    res = await runner.handle_script("1 +")
    assert_error(res, "CompilationError")
    assert res.format_error().startswith("ParseError: unexpected end of input")
    assert res.side_effects == [{'topics': ['stderr'], 'message': res.format_error()}]


@pytest.mark.asyncio
async def test_evaluation_errors_are_reported():
    runner = ScriptRunner()
    res = await runner.handle_script("head []")
    assert_error(res, "EvaluationError")
    assert res.format_error() == "EvaluationError: IndexError: head: empty list"


@pytest.mark.asyncio
async def test_emit_side_effects():
    runner = ScriptRunner()
    res = await runner.handle_script('emit ("hello " ++ show 42)')
    assert_ok(res)
    assert res.value is None
    assert res.side_effects == [{'topics': ['stdout'], 'message': 'hello 42'}]


@pytest.mark.asyncio
async def test_side_effects_are_per_call():
    runner = ScriptRunner()
    await runner.handle_script('emit "one"')
    res = await runner.handle_script("1")
    assert res.side_effects == []


@pytest.mark.asyncio
async def test_bind_through_the_runner():
    runner = ScriptRunner()
    assert_ok(await runner.bind("hp::Int", 100))
    assert_ok(await runner.handle_script("hp - 5"), 95)
    assert_error(await runner.bind("hp::Bool", True), "BindingError")


@pytest.mark.asyncio
async def test_runner_uses_the_given_session():
    session = Session()
    session.evaluate("k = 3")
    runner = ScriptRunner(session=session)
    assert_ok(await runner.handle_script("k * 2"), 6)


@pytest.mark.asyncio
async def test_runner_builds_a_session_from_settings():
    runner = ScriptRunner(settings=Settings(prelude=PreludeConfig(module="Host")))
    assert runner.session.state.prelude == "module Host where\n"


@pytest.mark.asyncio
async def test_concurrent_calls_are_serialized():
    runner = ScriptRunner()
    await runner.handle_script("n = 1")
    results = await asyncio.gather(*(runner.handle_script(f"n + {i}") for i in range(5)))
    assert [r.value for r in results] == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_unexpected_errors_become_internal_errors(monkeypatch):
    runner = ScriptRunner()

    def explode(text):
        raise ValueError("kaput")

    monkeypatch.setattr(runner.session, "evaluate", explode)
    res = await runner.handle_script("1")
    assert_error(res, "InternalError")
    assert "kaput" in res.format_error()
