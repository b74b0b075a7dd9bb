import importlib.util
import sys
import uuid
from pathlib import Path

import pytest


def _load_repl_module():
    """Dynamically load the top-level slate.py (REPL) as a module with a unique name."""
    repl_path = Path(__file__).resolve().parents[1] / "slate.py"
    mod_name = f"slate_repl_for_test_{uuid.uuid4().hex}"
    spec = importlib.util.spec_from_file_location(mod_name, str(repl_path))
    mod = importlib.util.module_from_spec(spec)
    sys.modules[mod_name] = mod
    assert spec.loader is not None
    spec.loader.exec_module(mod)
    return mod


@pytest.fixture(autouse=True)
def _no_config_file(monkeypatch):
    monkeypatch.delenv("SLATE_CONFIG", raising=False)


def _feed(monkeypatch, repl, lines):
    lines = iter(lines)

    async def fake_ainput(prompt: str) -> str:
        return next(lines)
    monkeypatch.setattr(repl, "ainput", fake_ainput)


@pytest.mark.asyncio
async def test_repl_exit_immediately(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ["exit"])

    await repl.main()
    out = capsys.readouterr().out
    assert "slate REPL v0.1" in out
    assert "Type 'exit' or press Ctrl+D to quit" in out


@pytest.mark.asyncio
async def test_repl_prints_side_effects_and_values(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [
        'emit "hello from slate"',
        "1 + 2",
        "exit",
    ])

    await repl.main()
    out, err = capsys.readouterr()
    assert "hello from slate" in out
    assert "\n3\n" in out
    assert err == ""


@pytest.mark.asyncio
async def test_repl_errors_print_to_stderr(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, ['1 + "a"', "exit"])

    await repl.main()
    out, err = capsys.readouterr()
    assert "slate REPL v0.1" in out
    assert "TypeError: type mismatch: expected 'Int', found 'String' (line 1" in err


@pytest.mark.asyncio
async def test_repl_bind_and_inspect(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [
        ":bind x::Int 10",
        ":bind names [ann, bob]",
        "x + 1",
        "length names",
        ":prelude",
        ":defs",
        "exit",
    ])

    await repl.main()
    out, err = capsys.readouterr()
    assert err == ""
    assert "\n11\n" in out
    assert "\n2\n" in out
    assert "xRef :: Ref (Int)" in out
    assert "x = Ref.get xRef" in out
    assert "import slate.Prelude" in out


@pytest.mark.asyncio
async def test_repl_bind_errors(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [":bind X 1", ":bind x", "exit"])

    await repl.main()
    err = capsys.readouterr().err
    assert "BindingError: 'X' is not a valid binding name" in err
    assert "Usage: :bind" in err


@pytest.mark.asyncio
async def test_repl_unknown_command_prints_help(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(monkeypatch, repl, [":help", "exit"])

    await repl.main()
    assert ":bind name[::Type] <value>" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_repl_eof_quits(monkeypatch, capsys):
    repl = _load_repl_module()

    async def fake_ainput(prompt: str) -> str:
        raise EOFError
    monkeypatch.setattr(repl, "ainput", fake_ainput)

    await repl.main()
    out = capsys.readouterr().out
    assert "slate REPL v0.1" in out
    assert "Exiting." in out


@pytest.mark.asyncio
async def test_run_script_file(tmp_path, capsys):
    repl = _load_repl_module()
    script = tmp_path / "answer.slate"
    script.write_text("40 + 2\n")

    await repl.run_script_file(str(script))
    assert capsys.readouterr().out.strip() == "42"


@pytest.mark.asyncio
async def test_run_script_file_failures_exit_nonzero(tmp_path, capsys):
    repl = _load_repl_module()
    script = tmp_path / "bad.slate"
    script.write_text("1 +\n")

    with pytest.raises(SystemExit) as exc:
        await repl.run_script_file(str(script))
    assert exc.value.code == 1
    assert "ParseError" in capsys.readouterr().err

    with pytest.raises(SystemExit):
        await repl.run_script_file(str(tmp_path / "missing.slate"))
