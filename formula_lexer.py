#!/usr/bin/env python3
"""
formula_lexer.py

Left-to-right tokenizer for the supported LaTeX math subset.

Token kinds:
  COMMAND     \\frac, \\alpha, \\, ...      (text = name without backslash)
  BEGIN_ENV   \\begin{pmatrix}             (text = environment name)
  END_ENV     \\end{pmatrix}
  LBRACE / RBRACE
  SUPERSCRIPT / SUBSCRIPT                  ^ and _
  ALIGN       &                            cell separator
  ROW_SEP     \\\\                           row separator
  LETTER      a single latin letter
  NUMBER      a digit run, optionally with one decimal point
  SYMBOL      any other single character

Whitespace only separates tokens. Spans are byte offsets into the UTF-8
encoding of the source, so diagnostics line up with what a foreign caller
passed in.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from formula_errors import Span, UnbalancedEnvironment, UnknownCommand


class TokenKind(str, Enum):
    COMMAND = "command"
    BEGIN_ENV = "begin_env"
    END_ENV = "end_env"
    LBRACE = "lbrace"
    RBRACE = "rbrace"
    SUPERSCRIPT = "superscript"
    SUBSCRIPT = "subscript"
    ALIGN = "align"
    ROW_SEP = "row_sep"
    LETTER = "letter"
    NUMBER = "number"
    SYMBOL = "symbol"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    span: Span


_SINGLE_CHAR_KINDS: dict[str, TokenKind] = {
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    "^": TokenKind.SUPERSCRIPT,
    "_": TokenKind.SUBSCRIPT,
    "&": TokenKind.ALIGN,
}


def _is_latin_letter(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z")


def byte_offsets(source: str) -> list[int]:
    """
    Map every character index (and the end position) to its UTF-8 byte offset.
    """
    offsets = [0] * (len(source) + 1)
    acc = 0
    for i, ch in enumerate(source):
        offsets[i] = acc
        acc += len(ch.encode("utf-8"))
    offsets[len(source)] = acc
    return offsets


class Lexer:
    """
    Character cursor over the source. `tokenize()` drives it to completion.
    """

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self._offsets = byte_offsets(source)

    def span(self, start: int, end: int) -> Span:
        return Span(self._offsets[start], self._offsets[end])

    def _read_command_name(self) -> str:
        start = self.pos
        while self.pos < len(self.source) and _is_latin_letter(self.source[self.pos]):
            self.pos += 1
        return self.source[start:self.pos]

    def _skip_whitespace(self) -> None:
        while self.pos < len(self.source) and self.source[self.pos].isspace():
            self.pos += 1

    def _read_environment(self, kind: TokenKind, start: int) -> Token:
        """
        Read the `{name}` that must follow \\begin or \\end.
        """
        keyword = "begin" if kind is TokenKind.BEGIN_ENV else "end"
        self._skip_whitespace()
        if self.pos >= len(self.source) or self.source[self.pos] != "{":
            raise UnbalancedEnvironment(
                f"\\{keyword} must be followed by {{name}}", self.span(start, self.pos)
            )
        close = self.source.find("}", self.pos + 1)
        if close == -1:
            raise UnbalancedEnvironment(
                f"\\{keyword} name is missing its closing brace",
                self.span(start, len(self.source)),
            )
        name = self.source[self.pos + 1 : close].strip()
        self.pos = close + 1
        if not name or not all(_is_latin_letter(c) or c == "*" for c in name):
            raise UnbalancedEnvironment(
                f"invalid environment name {name!r}", self.span(start, self.pos)
            )
        return Token(kind, name, self.span(start, self.pos))

    def _read_number(self, start: int) -> Token:
        seen_point = False
        while self.pos < len(self.source):
            ch = self.source[self.pos]
            if ch.isdigit() and ch.isascii():
                self.pos += 1
                continue
            nxt = self.source[self.pos + 1] if self.pos + 1 < len(self.source) else ""
            if ch == "." and not seen_point and nxt.isascii() and nxt.isdigit():
                seen_point = True
                self.pos += 1
                continue
            break
        return Token(TokenKind.NUMBER, self.source[start:self.pos], self.span(start, self.pos))

    def next_token(self) -> Token | None:
        self._skip_whitespace()
        if self.pos >= len(self.source):
            return None

        start = self.pos
        ch = self.source[self.pos]

        if ch == "\\":
            self.pos += 1
            if self.pos >= len(self.source):
                raise UnknownCommand("lone backslash at end of input", self.span(start, self.pos))
            nxt = self.source[self.pos]
            if nxt == "\\":
                self.pos += 1
                return Token(TokenKind.ROW_SEP, "\\\\", self.span(start, self.pos))
            if _is_latin_letter(nxt):
                name = self._read_command_name()
                if name == "begin":
                    return self._read_environment(TokenKind.BEGIN_ENV, start)
                if name == "end":
                    return self._read_environment(TokenKind.END_ENV, start)
                return Token(TokenKind.COMMAND, name, self.span(start, self.pos))
            # control symbol: \, \; \{ \  ...
            self.pos += 1
            return Token(TokenKind.COMMAND, nxt, self.span(start, self.pos))

        kind = _SINGLE_CHAR_KINDS.get(ch)
        if kind is not None:
            self.pos += 1
            return Token(kind, ch, self.span(start, self.pos))

        if _is_latin_letter(ch):
            self.pos += 1
            return Token(TokenKind.LETTER, ch, self.span(start, self.pos))

        if ch.isascii() and ch.isdigit():
            return self._read_number(start)

        self.pos += 1
        return Token(TokenKind.SYMBOL, ch, self.span(start, self.pos))


def tokenize(source: str) -> list[Token]:
    """
    Tokenize the whole source. Raises UnknownCommand / UnbalancedEnvironment
    for malformed command or environment syntax.
    """
    lexer = Lexer(source)
    tokens: list[Token] = []
    while True:
        token = lexer.next_token()
        if token is None:
            return tokens
        tokens.append(token)
