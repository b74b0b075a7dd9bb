import asyncio
import sys
from pathlib import Path

import yaml

from slate.slate_config import configure_logging, load_settings
from slate.slate_printer import Printer
from slate.slate_runtime import ScriptRunner

HELP = """Commands:
  exit                          quit
  :bind name[::Type] <value>    bind a host value (parsed as YAML)
  :defs                         show the session's definitions
  :prelude                      show the generated prelude module"""


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


def print_result(result, printer: Printer):
    # Print side effects (from `emit`)
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return
    if result.value is not None:
        print(printer.pformat(result.value))


async def run_script_file(file_path: str):
    """Run a slate source file non-interactively and exit with appropriate status."""
    settings = load_settings()
    configure_logging(settings)
    runner = ScriptRunner(settings=settings)
    try:
        source = Path(file_path).read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = await runner.handle_script(source)
    print_result(result, Printer())
    if result.status == 'error':
        raise SystemExit(1)


async def handle_command(line: str, runner: ScriptRunner):
    """Runs a REPL ':' command."""
    command, _, rest = line.partition(" ")
    session = runner.session
    if command == ":bind":
        key, _, raw = rest.strip().partition(" ")
        if not key or not raw.strip():
            print("Usage: :bind name[::Type] <value>", file=sys.stderr)
            return
        try:
            value = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            print(f"Error: invalid value: {e}", file=sys.stderr)
            return
        result = await runner.bind(key, value)
        if result.status == 'error':
            print(result.format_error(), file=sys.stderr)
    elif command == ":defs":
        for text in session.definitions():
            print(text.strip())
    elif command == ":prelude":
        print(session.state.prelude.rstrip())
    else:
        print(HELP)


async def main():
    """Run a source file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 1:
        arg = sys.argv[1]
        if not arg.startswith("-"):
            await run_script_file(arg)
            return

    print("slate REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit, ':help' for commands.")

    settings = load_settings()
    configure_logging(settings)
    runner = ScriptRunner(settings=settings)
    printer = Printer()

    while True:
        try:
            raw = await ainput(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break
            if line.startswith(":"):
                await handle_command(line, runner)
                continue

            result = await runner.handle_script(line)
            print_result(result, printer)

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
