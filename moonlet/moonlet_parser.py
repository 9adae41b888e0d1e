"""
Recursive-descent parser: one token sequence in, one statement out.

Precedence, lowest to highest:
    or -> and -> comparison -> concat -> term (+ -) -> factor (* /)
    -> unary (not, -) -> primary
"""
from typing import List

from moonlet.moonlet_datatypes import (
    Token, TokenType, ParseError,
    Expression, Literal, Variable, Unary, Binary, Logical, Call,
    Statement, ExpressionStatement, Assignment, Return, FunctionDeclaration, If,
)

COMPARISON_OPERATORS = (
    TokenType.EQUAL_EQUAL, TokenType.NOT_EQUAL,
    TokenType.LESS, TokenType.LESS_EQUAL,
    TokenType.GREATER, TokenType.GREATER_EQUAL,
)
BLOCK_TERMINATORS = (TokenType.END, TokenType.ELSE)


class Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.current = 0

    # --- Statements ---

    def parse_declaration(self) -> Statement:
        """Parses one statement starting at the current token."""
        if self._match(TokenType.LOCAL):
            if self._match(TokenType.FUNCTION):
                return self._function_declaration()
            # `local a, b = ...` declares like a plain assignment; `local a, b` binds nil
            return self._assignment(initializer_optional=True)
        if self._match(TokenType.FUNCTION):
            return self._function_declaration()
        if self._match(TokenType.IF):
            return self._if_statement()
        return self.parse_statement()

    def parse_statement(self) -> Statement:
        if self._match(TokenType.RETURN):
            return self._return_statement()
        if self._check(TokenType.IDENTIFIER) and self._peek_next().kind in (TokenType.EQUAL, TokenType.COMMA):
            return self._assignment()
        return ExpressionStatement(self.parse_expression())

    def _if_statement(self) -> If:
        condition = self.parse_expression()
        self._consume(TokenType.THEN, "Expected 'then' after condition.")

        then_body = self._block(BLOCK_TERMINATORS)
        else_body = None
        if self._match(TokenType.ELSE):
            else_body = self._block((TokenType.END,))

        self._consume(TokenType.END, "Expected 'end' after if statement.")
        return If(condition, then_body, else_body)

    def _function_declaration(self) -> FunctionDeclaration:
        name = self._consume(TokenType.IDENTIFIER, "Expected function name.").lexeme
        self._consume(TokenType.LEFT_PAREN, "Expected '(' after function name.")
        params: List[str] = []
        if not self._check(TokenType.RIGHT_PAREN):
            params.append(self._consume(TokenType.IDENTIFIER, "Expected parameter name.").lexeme)
            while self._match(TokenType.COMMA):
                params.append(self._consume(TokenType.IDENTIFIER, "Expected parameter name.").lexeme)
        self._consume(TokenType.RIGHT_PAREN, "Expected ')' after parameters.")

        body = self._block((TokenType.END,))
        self._consume(TokenType.END, "Expected 'end' after function body.")
        return FunctionDeclaration(name, params, body)

    def _block(self, terminators) -> List[Statement]:
        body: List[Statement] = []
        while not any(self._check(t) for t in terminators) and not self._is_at_end():
            body.append(self.parse_declaration())
        return body

    def _return_statement(self) -> Return:
        if self._is_at_end() or any(self._check(t) for t in BLOCK_TERMINATORS):
            return Return([])
        values = [self.parse_expression()]
        while self._match(TokenType.COMMA):
            values.append(self.parse_expression())
        return Return(values)

    def _assignment(self, initializer_optional: bool = False) -> Assignment:
        targets = [self._consume(TokenType.IDENTIFIER, "Expected variable name.").lexeme]
        while self._match(TokenType.COMMA):
            targets.append(self._consume(TokenType.IDENTIFIER, "Expected variable name.").lexeme)
        if initializer_optional and not self._check(TokenType.EQUAL):
            return Assignment(targets, Literal(None))
        self._consume(TokenType.EQUAL, "Expected '=' after variable name(s).")
        # A single right-hand expression; multiple targets rely on it yielding several values.
        return Assignment(targets, self.parse_expression())

    # --- Expressions ---

    def parse_expression(self) -> Expression:
        return self._or()

    def _or(self) -> Expression:
        expr = self._and()
        while self._match(TokenType.OR):
            op = self._previous()
            expr = Logical(expr, op, self._and())
        return expr

    def _and(self) -> Expression:
        expr = self._comparison()
        while self._match(TokenType.AND):
            op = self._previous()
            expr = Logical(expr, op, self._comparison())
        return expr

    def _comparison(self) -> Expression:
        expr = self._concat()
        while self._match(*COMPARISON_OPERATORS):
            op = self._previous()
            expr = Binary(expr, op, self._concat())
        return expr

    def _concat(self) -> Expression:
        expr = self._term()
        while self._match(TokenType.CONCAT):
            op = self._previous()
            expr = Binary(expr, op, self._term())
        return expr

    def _term(self) -> Expression:
        expr = self._factor()
        while self._match(TokenType.PLUS, TokenType.MINUS):
            op = self._previous()
            expr = Binary(expr, op, self._factor())
        return expr

    def _factor(self) -> Expression:
        expr = self._unary()
        while self._match(TokenType.STAR, TokenType.SLASH):
            op = self._previous()
            expr = Binary(expr, op, self._unary())
        return expr

    def _unary(self) -> Expression:
        if self._match(TokenType.NOT, TokenType.MINUS):
            op = self._previous()
            return Unary(op, self._unary())
        return self._primary()

    def _primary(self) -> Expression:
        if self._match(TokenType.LEFT_PAREN):
            expr = self.parse_expression()
            self._consume(TokenType.RIGHT_PAREN, "Expected ')' after expression.")
            return expr

        if self._match(TokenType.NUMBER, TokenType.STRING):
            return Literal(self._previous().literal)
        if self._match(TokenType.TRUE):
            return Literal(True)
        if self._match(TokenType.FALSE):
            return Literal(False)
        if self._match(TokenType.NIL):
            return Literal(None)

        if self._match(TokenType.IDENTIFIER):
            expr = Variable(self._previous().lexeme)
            if self._match(TokenType.LEFT_PAREN):
                args: List[Expression] = []
                if not self._check(TokenType.RIGHT_PAREN):
                    args.append(self.parse_expression())
                    while self._match(TokenType.COMMA):
                        args.append(self.parse_expression())
                self._consume(TokenType.RIGHT_PAREN, "Expected ')' after function arguments.")
                expr = Call(expr, args)
            return expr

        raise ParseError("Unexpected token in primary expression")

    # --- Token cursor ---

    def _match(self, *kinds: TokenType) -> bool:
        for kind in kinds:
            if self._check(kind):
                self._advance()
                return True
        return False

    def _check(self, kind: TokenType) -> bool:
        if self._is_at_end():
            return False
        return self._peek().kind == kind

    def _advance(self) -> Token:
        if not self._is_at_end():
            self.current += 1
        return self._previous()

    def _is_at_end(self) -> bool:
        return self._peek().kind == TokenType.EOF

    def _peek(self) -> Token:
        return self.tokens[self.current]

    def _peek_next(self) -> Token:
        if self.current + 1 < len(self.tokens):
            return self.tokens[self.current + 1]
        return Token(TokenType.EOF, "")

    def _previous(self) -> Token:
        return self.tokens[self.current - 1]

    def _consume(self, kind: TokenType, message: str) -> Token:
        if self._check(kind):
            return self._advance()
        raise ParseError(message)


def parse(tokens: List[Token]) -> Statement:
    return Parser(tokens).parse_declaration()
