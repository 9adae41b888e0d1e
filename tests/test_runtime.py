import asyncio
import math
import threading

import pytest

from moonlet import ScriptRunner, MultiValue
from moonlet.moonlet_runtime import StdLib, LineError


def assert_ok(res, expected=None):
    assert res.status == "success", f"expected success, got {res.format_error()}"
    if expected is not None:
        assert res.value == expected, f"expected {expected!r}, got {res.value!r}"


@pytest.fixture
def runner():
    return ScriptRunner()


@pytest.mark.asyncio
async def test_print_joins_arguments_with_spaces(runner):
    res = await runner.handle_script('print("a =", 3 + 4 * 2, true, nil)')
    assert_ok(res)
    assert res.output == ["a = 11 true nil"]
    assert res.side_effects == [{'topics': ['stdout'], 'message': "a = 11 true nil"}]


@pytest.mark.asyncio
async def test_expression_value_is_returned(runner):
    assert_ok(await runner.handle_script("1 + 2"), 3.0)
    assert_ok(await runner.handle_script("x = 5"), None)
    res = await runner.handle_script("return 1, 2")
    assert_ok(res, MultiValue([1.0, 2.0]))


@pytest.mark.asyncio
async def test_bindings_survive_between_runs(runner):
    await runner.handle_script("x = 40")
    assert_ok(await runner.handle_script("x + 2"), 42.0)


@pytest.mark.asyncio
async def test_failing_line_does_not_stop_the_script(runner):
    res = await runner.handle_script('print("one")\nx = 1 .. nil\nprint("three")')
    assert res.status == "error"
    assert res.output == ["one", "three"]
    assert res.lines_run == 3
    assert len(res.errors) == 1
    err = res.errors[0]
    assert err.line == "x = 1 .. nil"
    assert err.message == "TypeCoercionError: Cannot concatenate a nil value"
    assert res.error_message == err.message
    stderr = [e for e in res.side_effects if e['topics'] == ['stderr']]
    assert stderr == [{'topics': ['stderr'],
                       'message': "Error executing line 'x = 1 .. nil': TypeCoercionError: Cannot concatenate a nil value"}]


@pytest.mark.asyncio
@pytest.mark.parametrize("line,message", [
    ("x = 1 @ 2", "LexicalError: Unexpected character: @"),
    ("if x print(x) end", "ParseError: Expected 'then' after condition."),
    ("nothing(1)", "TypeCoercionError: Called object is not a function"),
    ("sqrt(1, 2)", "ArityMismatch: Argument count mismatch for 'sqrt': expected 1, got 2"),
])
async def test_errors_are_reported_with_their_kind(runner, line, message):
    res = await runner.handle_script(line)
    assert res.status == "error"
    assert res.error_message.splitlines()[0] == message


@pytest.mark.asyncio
async def test_python_errors_from_builtins_are_runtime_errors(runner):
    res = await runner.handle_script("fmod(1)")
    assert res.status == "error"
    assert res.error_message.startswith("RuntimeError: ")


@pytest.mark.asyncio
async def test_stacktrace_lists_active_calls(runner):
    res = await runner.handle_script("\n".join([
        "local function inner(x)",
        "  return x .. nil",
        "end",
        "local function outer(y)",
        "  return inner(y)",
        "end",
        "outer(5)",
    ]))
    assert res.status == "error"
    assert res.errors[0].line == "outer(5)"
    lines = res.error_message.splitlines()
    assert lines[0] == "TypeCoercionError: Cannot concatenate a nil value"
    assert lines[1] == "moonlet stacktrace: (outer 5) (inner 5)"
    # The next run starts with a clean stack
    res2 = await runner.handle_script("outer()")
    assert "inner" not in res2.error_message
    assert res2.error_message.startswith("ArityMismatch: Argument count mismatch for 'outer'")


def test_line_error_format():
    err = LineError("x = ?", "LexicalError: Unexpected character: ?")
    assert err.format() == "Error executing line 'x = ?': LexicalError: Unexpected character: ?"


@pytest.mark.asyncio
async def test_sqrt_builtin(runner):
    assert_ok(await runner.handle_script("sqrt(16)"), 4.0)
    res = await runner.handle_script("sqrt(0 - 1)")
    assert math.isnan(res.value)


@pytest.mark.asyncio
async def test_conversion_builtins(runner):
    assert_ok(await runner.handle_script("tostring(7)"), "7")
    assert_ok(await runner.handle_script('tonumber(" 12 ")'), 12.0)
    assert_ok(await runner.handle_script('tonumber("abc")'), None)
    assert_ok(await runner.handle_script("tonumber(true)"), None)
    assert_ok(await runner.handle_script('tonumber("nan")'), None)
    assert_ok(await runner.handle_script('tonumber("1_000")'), None)
    assert_ok(await runner.handle_script('tonumber("2.5")'), 2.5)
    assert_ok(await runner.handle_script('type("x") .. type(1) .. type(nil)'), "stringnumbernil")
    assert_ok(await runner.handle_script("type(print)"), "function")


@pytest.mark.asyncio
async def test_prelude_functions_are_available(runner):
    res = await runner.handle_script("print(max(1, 2), min(1, 2), abs(0 - 3), clamp(15, 0, 10), hypot(3, 4))")
    assert_ok(res)
    assert res.output == ["2 1 3 10 5"]
    res = await runner.handle_script("q, r = divmod(7, 2)\nprint(q, r)")
    assert res.output == ["3 1"]


@pytest.mark.asyncio
async def test_call_from_python(runner):
    assert await runner.call("max", 3, 9) == 9
    assert await runner.call("hypot", 3, 4) == 5.0
    assert list(await runner.call("divmod", 7, 2)) == [3.0, 1.0]
    await runner.handle_script('local function greet(who) return "hi " .. who end')
    assert await runner.call("greet", "bob") == "hi bob"


@pytest.mark.asyncio
async def test_load_core_false_skips_prelude():
    runner = ScriptRunner(load_core=False)
    res = await runner.handle_script("max(1, 2)")
    assert res.status == "error"
    assert "not a function" in res.error_message


@pytest.mark.asyncio
async def test_builtins_mapping_replaces_the_defaults():
    seen = []
    runner = ScriptRunner(builtins={"emit": lambda *a: seen.append(a)}, load_core=False)
    res = await runner.handle_script('emit("x", 1)\nprint("gone")')
    assert seen == [("x", 1.0)]
    assert res.status == "error"
    assert res.errors[0].line == 'print("gone")'


def test_stdlib_bindings_strip_the_prefix():
    names = set(StdLib(ScriptRunner().evaluator).bindings())
    assert {"print", "sqrt", "fmod", "tostring", "tonumber", "type"} <= names
    assert "bindings" not in names


@pytest.mark.asyncio
async def test_preset_cancel_flag_runs_nothing(runner):
    flag = threading.Event()
    flag.set()
    res = await runner.handle_script('print("a")\nprint("b")', cancel=flag)
    assert res.cancelled
    assert res.lines_run == 0
    assert res.output == []
    assert res.status == "success"


@pytest.mark.asyncio
async def test_cancel_flag_is_checked_between_lines(runner):
    flag = asyncio.Event()
    runner.root_env.define("stop", lambda: flag.set())
    res = await runner.handle_script('print("a")\nstop()\nprint("b")', cancel=flag)
    assert res.cancelled
    assert res.lines_run == 2
    assert res.output == ["a"]


@pytest.mark.asyncio
async def test_background_run_returns_a_task(runner):
    task = runner.run_script(['print("bg")', "x = 2", "x * 21"])
    assert isinstance(task, asyncio.Task)
    res = await task
    assert_ok(res, 42.0)
    assert res.output == ["bg"]


@pytest.mark.asyncio
async def test_background_run_can_be_cancelled_between_lines(runner):
    flag = asyncio.Event()
    lines = [f"x{i} = {i}" for i in range(50)]
    task = runner.run_script(lines, cancel=flag)
    # Let the task start, then request a stop
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    flag.set()
    res = await task
    assert res.cancelled
    assert 0 < res.lines_run < 50
    assert runner.root_env.get("x49") is None


@pytest.mark.asyncio
async def test_background_run_honours_task_cancel(runner):
    task = runner.run_script([f"x{i} = {i}" for i in range(50)])
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert runner.root_env.get("x49") is None


@pytest.mark.asyncio
async def test_non_decimal_strings_are_not_numbers(runner):
    res = await runner.handle_script('a = "1_000" + 0\nb = "inf" + 0\nprint(a, b)')
    assert res.status == "error"
    assert [e.line for e in res.errors] == ['a = "1_000" + 0', 'b = "inf" + 0']
    assert res.errors[0].message == "TypeCoercionError: Cannot convert string '1_000' to a number"
    assert res.output == ["nil nil"]


@pytest.mark.asyncio
async def test_local_declaration_without_value(runner):
    res = await runner.handle_script("local x\nprint(x)")
    assert_ok(res)
    assert res.output == ["nil"]
