import asyncio
import sys
from pathlib import Path

from moonlet.moonlet_runtime import ScriptRunner
from moonlet.moonlet_printer import Printer
from moonlet.moonlet_preprocessor import LinePreprocessor
from moonlet import moonlet_harness

# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


def _print_result(result, printer: Printer, show_value: bool = True):
    for effect in result.side_effects:
        if effect.get('topics') == ['stdout']:
            print(effect.get('message', ''))
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
    if show_value and result.value is not None:
        print(printer.pformat(result.value))


async def run_script_file(file_path: str):
    """Run a script file non-interactively and exit with appropriate status."""
    runner = ScriptRunner()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = await runner.handle_script(source)
    _print_result(result, Printer(), show_value=False)
    if result.status == 'error':
        raise SystemExit(1)


async def run_suite_file(file_path: str = None):
    """Run a YAML suite (the bundled demo suite by default) and print the report."""
    path = Path(file_path) if file_path else moonlet_harness.DEMO_SUITE
    if not path.exists():
        print(f"Error: file not found: {path}", file=sys.stderr)
        raise SystemExit(1)
    results = await moonlet_harness.run_suite(moonlet_harness.load_suite(path))
    print(moonlet_harness.format_report(results))
    if not all(r.passed for r in results):
        raise SystemExit(1)


async def main():
    """Run a script file or suite when provided, otherwise start the interactive REPL."""
    args = sys.argv[1:]
    if args:
        if args[0] == "--suite":
            await run_suite_file(args[1] if len(args) > 1 else None)
            return
        if not args[0].startswith("-"):
            await run_script_file(args[0])
            return

    print("moonlet REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner()
    printer = Printer()
    pre = LinePreprocessor()

    while True:
        try:
            raw = await ainput(".. " if pre.pending else ">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line and not pre.pending:
                continue
            if line == "exit" and not pre.pending:
                break

            logical = pre.feed(line)
            if not logical:
                continue
            result = await runner.run_logical_lines(logical)
            _print_result(result, printer)

        except EOFError:
            print("\nExiting.")
            break


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")


if __name__ == "__main__":
    cli()
