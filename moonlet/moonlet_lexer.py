"""
Tokenizer for a single logical line.
"""
from typing import List, Optional

from moonlet.moonlet_datatypes import Token, TokenType, KEYWORDS, LexicalError

SINGLE_CHAR_TOKENS = {
    "(": TokenType.LEFT_PAREN,
    ")": TokenType.RIGHT_PAREN,
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    ",": TokenType.COMMA,
}


class Lexer:
    """Turns one logical line into tokens, ending with an EOF token."""

    def __init__(self, source: str):
        self.source = source
        self.start = 0
        self.current = 0

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        while not self._is_at_end():
            self.start = self.current
            token = self._next_token()
            if token is not None:
                tokens.append(token)
        tokens.append(Token(TokenType.EOF, ""))
        return tokens

    def _next_token(self) -> Optional[Token]:
        c = self._advance()
        if c in (" ", "\t"):
            return None
        if c == '"':
            return self._string()
        if c in SINGLE_CHAR_TOKENS:
            return self._make(SINGLE_CHAR_TOKENS[c])
        match c:
            case "=":
                return self._make(TokenType.EQUAL_EQUAL if self._match("=") else TokenType.EQUAL)
            case "~":
                if self._match("="):
                    return self._make(TokenType.NOT_EQUAL)
            case "<":
                return self._make(TokenType.LESS_EQUAL if self._match("=") else TokenType.LESS)
            case ">":
                return self._make(TokenType.GREATER_EQUAL if self._match("=") else TokenType.GREATER)
            case ".":
                if self._match("."):
                    return self._make(TokenType.CONCAT)
            case _:
                if c.isdecimal():
                    return self._number()
                if c.isalpha() or c == "_":
                    return self._identifier()
        raise LexicalError(f"Unexpected character: {c}", c)

    def _string(self) -> Token:
        while not self._is_at_end() and self._peek() != '"':
            self._advance()
        if self._is_at_end():
            raise LexicalError("Unterminated string literal.")
        self._advance()
        value = self.source[self.start + 1:self.current - 1]
        return self._make(TokenType.STRING, value)

    def _number(self) -> Token:
        while not self._is_at_end() and self._peek().isdecimal():
            self._advance()
        text = self.source[self.start:self.current]
        return self._make(TokenType.NUMBER, float(text))

    def _identifier(self) -> Token:
        while not self._is_at_end() and (self._peek().isalnum() or self._peek() == "_"):
            self._advance()
        text = self.source[self.start:self.current]
        return self._make(KEYWORDS.get(text, TokenType.IDENTIFIER))

    def _is_at_end(self) -> bool:
        return self.current >= len(self.source)

    def _advance(self) -> str:
        c = self.source[self.current]
        self.current += 1
        return c

    def _peek(self) -> str:
        if self._is_at_end():
            return "\0"
        return self.source[self.current]

    def _match(self, expected: str) -> bool:
        if self._peek() != expected:
            return False
        self.current += 1
        return True

    def _make(self, kind: TokenType, literal=None) -> Token:
        return Token(kind, self.source[self.start:self.current], literal)


def tokenize(source: str) -> List[Token]:
    return Lexer(source).tokenize()
