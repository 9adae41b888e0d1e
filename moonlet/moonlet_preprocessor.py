"""
Merges raw source lines into logical lines.

A logical line is one complete top-level statement, including any nested
block, joined onto a single line so the lexer and parser can consume it
in one go. Block nesting is tracked with a simple keyword prefix test.
"""
from typing import Iterable, List

COMMENT_MARKER = "--"
BLOCK_OPENERS = ("if ", "for ", "while ", "function ", "local function")


def strip_comment(line: str) -> str:
    """Normalizes quotes and drops a trailing `--` comment.

    This is a plain textual scan: a `--` or `'` inside a string literal is
    treated the same as one outside it.
    """
    line = line.replace("'", '"')
    index = line.find(COMMENT_MARKER)
    if index >= 0:
        return line[:index]
    return line


def opens_block(trimmed_line: str) -> bool:
    return trimmed_line.startswith(BLOCK_OPENERS)


class LinePreprocessor:
    """Incremental block merger.

    Feed raw lines one at a time; each call returns the logical lines that
    the raw line completed (zero or one).
    """
    def __init__(self):
        self.depth = 0
        self._buffer: List[str] = []

    @property
    def pending(self) -> bool:
        """True while a block is open and its lines are being buffered."""
        return bool(self._buffer)

    def feed(self, raw_line: str) -> List[str]:
        trimmed = strip_comment(raw_line).strip()
        if not trimmed:
            return []

        if self.depth == 0 and opens_block(trimmed):
            self.depth = 1
            self._buffer.append(trimmed)
            return []

        if self.depth > 0:
            if opens_block(trimmed):
                self.depth += 1
            self._buffer.append(trimmed)
            # Only a line that is exactly `end` closes a block.
            if trimmed.lower() == "end":
                self.depth -= 1
                if self.depth == 0:
                    return [self._take()]
            return []

        return [trimmed]

    def flush(self) -> List[str]:
        """Returns whatever is buffered, even if its block never closed."""
        self.depth = 0
        if not self._buffer:
            return []
        return [self._take()]

    def _take(self) -> str:
        merged = " ".join(self._buffer).strip()
        self._buffer = []
        return merged


def fix_lines(lines: Iterable[str]) -> List[str]:
    """Converts raw source lines into logical lines."""
    pre = LinePreprocessor()
    out: List[str] = []
    for line in lines:
        out.extend(pre.feed(line))
    out.extend(pre.flush())
    return out
