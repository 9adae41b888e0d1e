# moonlet_runtime.py

import asyncio
import inspect
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional

from moonlet.moonlet_datatypes import (
    Environment, MultiValue, ExpressionStatement, MoonletError, ArityMismatch,
)
from moonlet.moonlet_preprocessor import fix_lines
from moonlet.moonlet_lexer import Lexer
from moonlet.moonlet_parser import Parser
from moonlet.moonlet_interpreter import Evaluator, is_return, to_number, type_name
from moonlet.moonlet_printer import Printer

# ===================================================================
# 1. Host binding
# ===================================================================


def host_api(func):
    """A decorator to explicitly mark host methods as callable from scripts."""
    func._is_moonlet_api = True
    return func


class MoonletHost:
    """Base class for Python objects embedding moonlet.

    Methods marked with @host_api are bound into the root environment under
    their Python name. Background script runs started through a runner that
    carries this host are tracked so they can be cancelled together.
    """
    def __init__(self):
        self.active_tasks: set = set()

    def cancel_tasks(self) -> int:
        count = len(self.active_tasks)
        for task in list(self.active_tasks):
            task.cancel()
        self.active_tasks.clear()
        return count

    def _register_task(self, task: asyncio.Task):
        self.active_tasks.add(task)
        # Remove as soon as the task completes
        task.add_done_callback(lambda t: self.active_tasks.discard(t))


# ===================================================================
# 2. The Standard Library
# ===================================================================
class StdLib:
    """Contains Python implementations of the native built-ins.

    Every method named `_<name>` is exposed to scripts as `<name>`.
    """
    def __init__(self, evaluator: Evaluator):
        self.evaluator = evaluator
        self.printer = Printer()

    def bindings(self) -> Dict[str, Any]:
        out = {}
        for name, member in inspect.getmembers(self):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                out[name[1:]] = member
        return out

    def _print(self, *args):
        message = " ".join(self.printer.pformat(a) for a in args)
        self.evaluator.side_effects.append({'topics': ['stdout'], 'message': message})
        return None

    def _sqrt(self, *args):
        if len(args) != 1:
            raise ArityMismatch(1, len(args), "sqrt")
        x = to_number(args[0])
        if x < 0:
            return math.nan
        return math.sqrt(x)

    def _fmod(self, a, b):
        return math.fmod(to_number(a), to_number(b))

    def _tostring(self, value):
        return self.printer.pformat(value)

    def _tonumber(self, value):
        if isinstance(value, bool):
            return None
        try:
            return to_number(value) if value is not None else None
        except MoonletError:
            return None

    def _type(self, value):
        return type_name(value)


# ===================================================================
# 3. Script Execution
# ===================================================================

@dataclass
class LineError:
    """A fatal error raised by one logical line."""
    line: str
    message: str

    def format(self) -> str:
        return f"Error executing line '{self.line}': {self.message}"


@dataclass
class ExecutionResult:
    """The structured result of running a script."""
    status: Literal['success', 'error']
    value: Any = None
    errors: List[LineError] = field(default_factory=list)
    side_effects: List[Dict] = field(default_factory=list)
    lines_run: int = 0
    cancelled: bool = False

    @property
    def error_message(self) -> Optional[str]:
        if not self.errors:
            return None
        return self.errors[0].message

    @property
    def output(self) -> List[str]:
        """The messages `print` emitted, in order."""
        return [e.get('message', '') for e in self.side_effects if e.get('topics') == ['stdout']]

    def format_error(self) -> str:
        return "\n".join(err.format() for err in self.errors)


def _is_cancelled(cancel) -> bool:
    return cancel is not None and cancel.is_set()


class ScriptRunner:
    """Preprocesses, parses and executes moonlet scripts against one root environment."""

    _core_source: Optional[str] = None
    _core_lines: Optional[List[str]] = None

    def __init__(self, builtins: Optional[Mapping[str, Any]] = None,
                 host_object: Optional[MoonletHost] = None, load_core: bool = True):
        self.host_object = host_object
        self._initialized = False
        self._load_core = load_core
        self.root_env = Environment()
        self.evaluator = Evaluator()  # Each runner has its own evaluator/side_effects

        if builtins is None:
            builtins = StdLib(self.evaluator).bindings()
        for name, member in builtins.items():
            self.root_env.define(name, member)

        # Track which host API names we have bound into the root environment
        self._host_api_names: set[str] = set()

    async def _initialize(self):
        """Loads root.lua into the root environment if not already loaded."""
        if self._initialized or not self._load_core:
            self._initialized = True
            return

        # Logical lines are computed once and cached on the class
        if ScriptRunner._core_lines is None:
            core_path = Path(__file__).parent / "root.lua"
            ScriptRunner._core_source = core_path.read_text(encoding="utf-8")
            ScriptRunner._core_lines = fix_lines(ScriptRunner._core_source.splitlines())

        # Evaluation happens for each instance
        for line in ScriptRunner._core_lines:
            try:
                await self.run_line(line)
            except MoonletError as e:
                raise RuntimeError(f"Failed to load root.lua: {self._format_runtime_error(e)}\n  {line}") from e
        self._initialized = True

    def _bind_host_api_methods(self):
        """Bind @host_api methods of the host into the root environment."""
        for n in list(self._host_api_names):
            try:
                del self.root_env[n]
            except KeyError:
                pass
        self._host_api_names = set()

        host = self.host_object
        if not host:
            return

        for name, member in inspect.getmembers(host):
            if not callable(member):
                continue
            # Decorator may mark the bound method or the underlying function
            is_api = getattr(member, "_is_moonlet_api", False)
            if not is_api:
                func = getattr(member, "__func__", None)
                if func is not None:
                    is_api = getattr(func, "_is_moonlet_api", False)
            if not is_api:
                continue
            self.root_env.define(name, member)
            self._host_api_names.add(name)

    def _format_runtime_error(self, e: Exception) -> str:
        match e:
            case MoonletError():
                msg = f"{e.kind}: {e}"
            case _:
                msg = f"RuntimeError: {e}"
        st = self._format_stacktrace()
        if st:
            msg += "\n" + st
        return msg

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""
        printer = Printer()
        frames = []
        for frame in stack:
            args = " ".join(printer.pformat(a) for a in frame.get('args') or [])
            frames.append(f"({frame.get('name') or '<call>'}{' ' + args if args else ''})")
        return "moonlet stacktrace: " + " ".join(frames)

    async def run_line(self, line: str) -> Any:
        """Lexes, parses and executes one logical line; errors propagate."""
        tokens = Lexer(line).tokenize()
        stmt = Parser(tokens).parse_declaration()
        self.evaluator.last_value = None
        outcome = await self.evaluator.execute(stmt, self.root_env)
        if is_return(outcome):
            values = outcome.values
            return values[0] if len(values) == 1 else values
        if isinstance(stmt, ExpressionStatement):
            return self.evaluator.last_value
        return None

    async def run_logical_lines(self, lines: Iterable[str], cancel=None) -> ExecutionResult:
        """Runs already-merged logical lines, isolating failures line by line.

        `cancel` is any object with `is_set()`; it is checked before every line.
        """
        await self._initialize()
        # Bind host API methods after the prelude so host > root.lua > native
        self._bind_host_api_methods()
        self.evaluator.side_effects = []
        result = ExecutionResult(status='success', side_effects=self.evaluator.side_effects)

        for line in lines:
            if _is_cancelled(cancel):
                self.evaluator._dbg("Script execution cancelled before:", line)
                result.cancelled = True
                break
            self.evaluator.call_stack.clear()
            try:
                result.value = await self.run_line(line)
            except Exception as e:
                err = LineError(line, self._format_runtime_error(e))
                result.errors.append(err)
                result.value = None
                self.evaluator.side_effects.append({'topics': ['stderr'], 'message': err.format()})
                self.evaluator._dbg(err.format())
            result.lines_run += 1
            # The only suspension point: lets a cancel request land between lines.
            await asyncio.sleep(0)

        if result.errors:
            result.status = 'error'
        return result

    async def run_lines(self, lines: Iterable[str], cancel=None) -> ExecutionResult:
        """Runs raw source lines: merges blocks, then executes each logical line."""
        return await self.run_logical_lines(fix_lines(lines), cancel)

    async def handle_script(self, source_code: str, cancel=None) -> ExecutionResult:
        """The main entry point to execute a script given as one string."""
        return await self.run_lines(source_code.splitlines(), cancel)

    def run_script(self, lines: Iterable[str], cancel=None) -> asyncio.Task:
        """Starts a background run of `lines` on the running event loop."""
        task = asyncio.get_running_loop().create_task(self.run_lines(list(lines), cancel))
        host = self.host_object
        if host is not None:
            host._register_task(task)
        return task

    async def call(self, name: str, *args) -> Any:
        """Calls a script-level function from Python and returns its (collapsed) result."""
        await self._initialize()
        self._bind_host_api_methods()
        func = self.root_env.get(name)
        result = await self.evaluator.call(func, list(args), name=name)
        if isinstance(result, MultiValue) and len(result) == 1:
            return result[0]
        return result
