"""
Defines the core data types for the moonlet runtime.

This module provides the token model, the AST node classes, the scope
chain (Environment), function values and the error taxonomy that the
lexer, parser and evaluator share.
"""

import collections.abc
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional


# =================================================================
# Errors
# =================================================================

class MoonletError(Exception):
    """Base class for every fatal error raised while running a logical line."""
    kind = "MoonletError"


class LexicalError(MoonletError):
    kind = "LexicalError"

    def __init__(self, message: str, char: Optional[str] = None):
        super().__init__(message)
        self.char = char


class ParseError(MoonletError):
    kind = "ParseError"

    def __init__(self, expected: str):
        super().__init__(expected)
        self.expected = expected


class UndefinedVariable(MoonletError):
    kind = "UndefinedVariable"

    def __init__(self, name: str):
        super().__init__(f"Undefined variable '{name}'.")
        self.name = name


class ArityMismatch(MoonletError):
    kind = "ArityMismatch"

    def __init__(self, expected: int, got: int, name: Optional[str] = None):
        target = f" for '{name}'" if name else ""
        super().__init__(f"Argument count mismatch{target}: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class TypeCoercionError(MoonletError):
    kind = "TypeCoercionError"


class UnknownConstruct(MoonletError):
    kind = "UnknownConstruct"


# =================================================================
# Tokens
# =================================================================

class TokenType(Enum):
    LOCAL = auto()
    IDENTIFIER = auto()
    NUMBER = auto()
    STRING = auto()
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    EQUAL = auto()
    EQUAL_EQUAL = auto()
    NOT_EQUAL = auto()
    LESS = auto()
    LESS_EQUAL = auto()
    GREATER = auto()
    GREATER_EQUAL = auto()
    COMMA = auto()
    LEFT_PAREN = auto()
    RIGHT_PAREN = auto()
    CONCAT = auto()
    FUNCTION = auto()
    RETURN = auto()
    END = auto()
    IF = auto()
    THEN = auto()
    ELSE = auto()
    TRUE = auto()
    FALSE = auto()
    NIL = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    EOF = auto()


KEYWORDS: Dict[str, TokenType] = {
    "local": TokenType.LOCAL,
    "function": TokenType.FUNCTION,
    "return": TokenType.RETURN,
    "end": TokenType.END,
    "if": TokenType.IF,
    "then": TokenType.THEN,
    "else": TokenType.ELSE,
    "true": TokenType.TRUE,
    "false": TokenType.FALSE,
    "nil": TokenType.NIL,
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,
}


@dataclass(frozen=True)
class Token:
    kind: TokenType
    lexeme: str
    literal: Any = None

    def __repr__(self) -> str:
        if self.literal is not None:
            return f"Token({self.kind.name}, {self.lexeme!r}, {self.literal!r})"
        return f"Token({self.kind.name}, {self.lexeme!r})"


# =================================================================
# Expression AST
# =================================================================

class Expression:
    """Base class for expression nodes."""
    pass


@dataclass
class Literal(Expression):
    value: Any


@dataclass
class Variable(Expression):
    name: str


@dataclass
class Unary(Expression):
    operator: Token
    operand: Expression


@dataclass
class Binary(Expression):
    left: Expression
    operator: Token
    right: Expression


@dataclass
class Logical(Expression):
    left: Expression
    operator: Token
    right: Expression


@dataclass
class Call(Expression):
    callee: Expression
    args: List[Expression] = field(default_factory=list)


# =================================================================
# Statement AST
# =================================================================

class Statement:
    """Base class for statement nodes."""
    pass


@dataclass
class ExpressionStatement(Statement):
    expr: Expression


@dataclass
class Assignment(Statement):
    targets: List[str]
    expr: Expression


@dataclass
class Return(Statement):
    values: List[Expression] = field(default_factory=list)


@dataclass
class FunctionDeclaration(Statement):
    name: str
    params: List[str]
    body: List[Statement]


@dataclass
class If(Statement):
    condition: Expression
    then_body: List[Statement]
    else_body: Optional[List[Statement]] = None


# =================================================================
# Core Runtime Types
# =================================================================

class Environment:
    """A lexical scope: name bindings plus an optional parent scope.

    Lookups walk the parent chain. Reads that miss everywhere yield None
    (nil); mutation through `assign` requires an existing binding somewhere
    in the chain. Closures keep their defining Environment alive simply by
    holding a reference to it.
    """
    def __init__(self, parent: Optional['Environment'] = None):
        self.bindings: Dict[str, Any] = {}
        self.parent = parent

    def define(self, name: str, value: Any):
        """Binds name in this scope only, overwriting any existing binding."""
        self.bindings[name] = value

    def get(self, name: str, default: Any = None) -> Any:
        owner = self.find_owner(name)
        if owner is not None:
            return owner.bindings[name]
        return default

    def assign(self, name: str, value: Any):
        """Mutates the nearest existing binding of name."""
        owner = self.find_owner(name)
        if owner is None:
            raise UndefinedVariable(name)
        owner.bindings[name] = value

    def find_owner(self, name: str) -> Optional['Environment']:
        """Finds the Environment in the chain (self, then parents) that binds name."""
        env = self
        while env is not None:
            if name in env.bindings:
                return env
            env = env.parent
        return None

    def __setitem__(self, name: str, value: Any):
        if not isinstance(name, str):
            raise TypeError(f"Environment key must be a str, not {type(name)}")
        self.define(name, value)

    def __getitem__(self, name: str) -> Any:
        owner = self.find_owner(name)
        if owner is None:
            raise KeyError(f"'{name}'")
        return owner.bindings[name]

    def __delitem__(self, name: str):
        if name not in self.bindings:
            raise KeyError(f"'{name}'")
        del self.bindings[name]

    def __contains__(self, name: Any) -> bool:
        return isinstance(name, str) and self.find_owner(name) is not None

    def keys(self) -> collections.abc.KeysView:
        """Returns a view of keys in the current scope only."""
        return self.bindings.keys()

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent is not None else ""
        return f"<Environment bindings=[{keys}]{parent_id}>"


class LuaFunction:
    """A function declared in a script.

    This is a closure, bundling the parameter names, the body statements and
    the Environment in which the declaration executed.
    """
    def __init__(self, name: str, params: List[str], body: List[Statement], closure: Environment):
        self.name = name
        self.params = list(params)
        self.body = list(body)
        self.closure = closure

    @property
    def arity(self) -> int:
        return len(self.params)

    def __repr__(self) -> str:
        return f"<LuaFunction {self.name}({', '.join(self.params)})>"


class MultiValue(collections.abc.Sequence):
    """The ordered values produced by a call or a return statement.

    Never nests: a MultiValue passed in as an element is spliced in place.
    """
    __slots__ = ("values",)

    def __init__(self, values=()):
        flat = []
        for v in values:
            if isinstance(v, MultiValue):
                flat.extend(v.values)
            else:
                flat.append(v)
        self.values = tuple(flat)

    def first(self) -> Any:
        return self.values[0] if self.values else None

    def __getitem__(self, index):
        return self.values[index]

    def __len__(self) -> int:
        return len(self.values)

    def __eq__(self, other):
        if not isinstance(other, MultiValue):
            return NotImplemented
        return self.values == other.values

    def __hash__(self):
        return hash(self.values)

    def __repr__(self) -> str:
        return f"MultiValue({list(self.values)!r})"


class ReturnSignal:
    """Outcome of executing a `return`: travels up through nested blocks until
    the enclosing function call consumes it."""
    __slots__ = ("values",)

    def __init__(self, values: MultiValue):
        self.values = values

    def __repr__(self) -> str:
        return f"ReturnSignal({self.values!r})"

    def __eq__(self, other):
        if not isinstance(other, ReturnSignal):
            return NotImplemented
        return self.values == other.values


def collapse(value: Any) -> Any:
    """Reduces a MultiValue to its first element (None when empty)."""
    if isinstance(value, MultiValue):
        return value.first()
    return value


def is_truthy(value: Any) -> bool:
    value = collapse(value)
    return value is not None and value is not False
