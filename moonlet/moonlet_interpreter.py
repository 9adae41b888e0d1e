"""
The core moonlet interpreter: the Evaluator and its value coercions.
"""
import inspect
import math
import os
import re
import sys
from typing import Any, List, Optional

from moonlet.moonlet_datatypes import (
    TokenType, Environment, LuaFunction, MultiValue, ReturnSignal, collapse, is_truthy,
    Expression, Literal, Variable, Unary, Binary, Logical, Call,
    Statement, ExpressionStatement, Assignment, Return, FunctionDeclaration, If,
    ArityMismatch, TypeCoercionError, UnknownConstruct,
)
from moonlet.moonlet_printer import Printer

_printer = Printer()

# Decimal literals only: no `_` separators, no inf or nan spellings.
NUMERIC_STRING = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*", re.ASCII)


def is_return(x) -> bool:
    return isinstance(x, ReturnSignal)


# --- Coercions ---

def to_number(value: Any) -> float:
    """Numeric view of a value, as used by arithmetic and ordering."""
    match value:
        case None:
            return 0.0
        case bool():
            return 1.0 if value else 0.0
        case int() | float():
            return float(value)
        case str():
            if not NUMERIC_STRING.fullmatch(value):
                raise TypeCoercionError(f"Cannot convert string {value!r} to a number")
            return float(value.strip())
        case MultiValue():
            raise TypeCoercionError("Cannot use multiple values as a number")
        case _:
            raise TypeCoercionError(f"Cannot convert {type_name(value)} to a number")


def to_string(value: Any) -> str:
    """Textual view of a value, as used by concatenation."""
    match value:
        case str():
            return value
        case bool() | int() | float():
            return _printer.pformat(value)
        case None:
            raise TypeCoercionError("Cannot concatenate a nil value")
        case MultiValue():
            raise TypeCoercionError("Cannot concatenate multiple values")
        case _:
            raise TypeCoercionError(f"Cannot concatenate a {type_name(value)} value")


def values_equal(left: Any, right: Any) -> bool:
    left, right = collapse(left), collapse(right)
    # bool is an int subclass in Python; keep booleans and numbers apart.
    if isinstance(left, bool) or isinstance(right, bool):
        return left is right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return float(left) == float(right)
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if left is None or right is None:
        return left is None and right is None
    return left is right


def type_name(value: Any) -> str:
    match value:
        case None:
            return "nil"
        case bool():
            return "boolean"
        case int() | float():
            return "number"
        case str():
            return "string"
        case MultiValue():
            return "multivalue"
        case LuaFunction():
            return "function"
        case _ if callable(value):
            return "function"
        case _:
            return type(value).__name__


def _arith(op: TokenType, a: float, b: float) -> float:
    match op:
        case TokenType.PLUS:
            return a + b
        case TokenType.MINUS:
            return a - b
        case TokenType.STAR:
            return a * b
        case TokenType.SLASH:
            # float64 division: x/0 is inf, -inf or nan rather than an error
            if b == 0.0:
                if a == 0.0 or math.isnan(a):
                    return math.nan
                return math.copysign(math.inf, a) * math.copysign(1.0, b)
            return a / b
    raise UnknownConstruct(f"Unknown arithmetic operator: {op.name}")


class Evaluator:
    """The moonlet execution engine."""

    def __init__(self):
        self.side_effects: List[dict] = []
        self.call_stack: List[dict] = []
        self.current_node = None
        # Value of the most recent expression statement, for interactive display.
        self.last_value: Any = None

    def _push_frame(self, name, func, args):
        self.call_stack.append({'name': name, 'func': func, 'args': args})

    def _pop_frame(self):
        if self.call_stack:
            self.call_stack.pop()

    def _dbg(self, *parts):
        if os.environ.get("MOONLET_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    # ===============================================================
    # Statements
    # ===============================================================

    async def execute(self, stmt: Statement, env: Environment) -> Optional[ReturnSignal]:
        """Runs one statement; returns a ReturnSignal when a `return` fired."""
        self.current_node = stmt
        match stmt:
            case ExpressionStatement(expr=expr):
                self.last_value = await self.evaluate(expr, env)
                return None

            case Assignment(targets=targets, expr=expr):
                value = await self.evaluate(expr, env)
                values = list(value) if isinstance(value, MultiValue) else [value]
                for i, name in enumerate(targets):
                    env.define(name, values[i] if i < len(values) else None)
                self._dbg("Assign", targets, [type(v).__name__ for v in values[:len(targets)]])
                return None

            case FunctionDeclaration(name=name, params=params, body=body):
                env.define(name, LuaFunction(name, params, body, env))
                return None

            case Return(values=exprs):
                results = []
                for i, expr in enumerate(exprs):
                    v = await self.evaluate(expr, env)
                    # Only the last expression may contribute several values.
                    results.append(v if i == len(exprs) - 1 else collapse(v))
                return ReturnSignal(MultiValue(results))

            case If(condition=condition, then_body=then_body, else_body=else_body):
                if is_truthy(await self.evaluate(condition, env)):
                    return await self.execute_block(then_body, env)
                if else_body is not None:
                    return await self.execute_block(else_body, env)
                return None

            case _:
                raise UnknownConstruct(f"Unknown statement type: {type(stmt).__name__}")

    async def execute_block(self, body: List[Statement], env: Environment) -> Optional[ReturnSignal]:
        for stmt in body:
            result = await self.execute(stmt, env)
            if is_return(result):
                return result
        return None

    # ===============================================================
    # Expressions
    # ===============================================================

    async def evaluate(self, expr: Expression, env: Environment) -> Any:
        match expr:
            case Literal(value=value):
                return value

            case Variable(name=name):
                return env.get(name)

            case Unary(operator=op, operand=operand):
                value = collapse(await self.evaluate(operand, env))
                if op.kind == TokenType.NOT:
                    return not is_truthy(value)
                if op.kind == TokenType.MINUS:
                    return -to_number(value)
                raise UnknownConstruct(f"Unknown unary operator: {op.lexeme}")

            case Binary(left=left, operator=op, right=right):
                lhs = await self.evaluate(left, env)
                rhs = await self.evaluate(right, env)
                return self._binary(op, lhs, rhs)

            case Logical(left=left, operator=op, right=right):
                lhs = collapse(await self.evaluate(left, env))
                if op.kind == TokenType.AND:
                    return lhs if not is_truthy(lhs) else await self.evaluate(right, env)
                if op.kind == TokenType.OR:
                    return lhs if is_truthy(lhs) else await self.evaluate(right, env)
                raise UnknownConstruct(f"Unknown logical operator: {op.lexeme}")

            case Call(callee=callee_expr, args=arg_exprs):
                callee = await self.evaluate(callee_expr, env)
                args = [collapse(await self.evaluate(a, env)) for a in arg_exprs]
                name = callee_expr.name if isinstance(callee_expr, Variable) else None
                result = await self.call(callee, args, name=name)
                if isinstance(result, MultiValue) and len(result) == 1:
                    return result[0]
                return result

            case _:
                raise UnknownConstruct(f"Unknown expression type: {type(expr).__name__}")

    def _binary(self, op, lhs, rhs):
        kind = op.kind
        match kind:
            case TokenType.PLUS | TokenType.MINUS | TokenType.STAR | TokenType.SLASH:
                return _arith(kind, to_number(lhs), to_number(rhs))
            case TokenType.CONCAT:
                return to_string(lhs) + to_string(rhs)
            case TokenType.EQUAL_EQUAL:
                return values_equal(lhs, rhs)
            case TokenType.NOT_EQUAL:
                return not values_equal(lhs, rhs)
            case TokenType.LESS:
                return to_number(lhs) < to_number(rhs)
            case TokenType.LESS_EQUAL:
                return to_number(lhs) <= to_number(rhs)
            case TokenType.GREATER:
                return to_number(lhs) > to_number(rhs)
            case TokenType.GREATER_EQUAL:
                return to_number(lhs) >= to_number(rhs)
        raise UnknownConstruct(f"Unknown binary operator: {op.lexeme}")

    # ===============================================================
    # Calls
    # ===============================================================

    async def call(self, func: Any, args: List[Any], name: Optional[str] = None) -> Any:
        """Calls a LuaFunction or a Python built-in with already-evaluated arguments."""
        self._dbg("Evaluator.call", name or type(func).__name__, "argc", len(args))
        match func:
            case LuaFunction():
                if len(args) != func.arity:
                    raise ArityMismatch(func.arity, len(args), func.name)
                call_env = Environment(parent=func.closure)
                for param, arg in zip(func.params, args):
                    call_env.define(param, arg)
                # Frames are left in place when an error escapes so the runner can report them.
                self._push_frame(func.name, func, args)
                outcome = await self.execute_block(func.body, call_env)
                self._pop_frame()
                if is_return(outcome):
                    return outcome.values
                return MultiValue([None])

            case _ if callable(func):
                self._push_frame(name or getattr(func, "__name__", "<builtin>"), func, args)
                result = func(*args)
                if inspect.isawaitable(result):
                    result = await result
                self._pop_frame()
                return _normalize_builtin_result(result)

            case _:
                raise TypeCoercionError("Called object is not a function")


def _normalize_builtin_result(result: Any) -> Any:
    if isinstance(result, bool):
        return result
    if isinstance(result, int):
        return float(result)
    if isinstance(result, (list, tuple)) and not isinstance(result, MultiValue):
        return MultiValue(_normalize_builtin_result(v) for v in result)
    return result
