#!/usr/bin/env python3
"""
formula_parser.py

Recursive-descent parser: token stream -> formula tree (formula_ast).

Entry point is `parse(source, cfg)`. It trims and size-checks the input,
undoes uniformly doubled backslashes, tokenizes, and parses. Every failure
is a ParseError subclass carrying the byte span of the offending input.

Commands are looked up in a static table of CommandSpec entries:
  arity   number of required arguments read before `build` is called
  build   callable producing the node
  custom  True when `build` reads its own arguments from the parser
          (optional [..] arguments, delimiters, raw text, ...)
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Callable, Optional

from config_loader import DEFAULT_CONFIG, FormulaConfig
from formula_ast import (
    AtomClass,
    Decoration,
    Delimiter,
    FontVariant,
    Fraction,
    Group,
    Matrix,
    Node,
    Operator,
    Radical,
    Script,
    Space,
    StyledGroup,
    Symbol,
)
from formula_errors import (
    ArityMismatch,
    DuplicateScript,
    EmptyInput,
    InputTooLong,
    MissingScriptBase,
    NestingTooDeep,
    ParseError,
    Span,
    UnbalancedEnvironment,
    UnbalancedGroup,
    UnknownCommand,
)
from formula_lexer import Token, TokenKind, tokenize
import formula_symbols as sym


# ---------------- Input normalization ----------------------------------------

_BACKSLASH_RUN = re.compile(r"\\+")
_BACKSLASH_RUN_BYTES = re.compile(rb"\\+")
_DOUBLED_COMMAND = re.compile(r"(?<!\\)\\\\[A-Za-z]")


def normalize_escaped_commands(source: str) -> str:
    """
    Undo one level of backslash escaping (`\\\\frac` -> `\\frac`).

    Only applies when every backslash run has even length and at least one
    doubled backslash introduces a command name. A formula with any single
    backslash is already unescaped, so its `\\\\` row separators are kept.
    """
    runs = _BACKSLASH_RUN.findall(source)
    if not runs or any(len(run) % 2 for run in runs):
        return source
    if not _DOUBLED_COMMAND.search(source):
        return source
    return _BACKSLASH_RUN.sub(lambda m: "\\" * (len(m.group(0)) // 2), source)


@dataclass(frozen=True)
class PreparedSource:
    """
    Parser-ready text plus the way back to the caller's input.

    `origin[i]` is the input byte offset of prepared byte i. The extra last
    entry is the input offset just past the trimmed formula, so span ends
    map the same way as starts.
    """
    text: str
    origin: tuple[int, ...]

    def input_span(self, span: Span) -> Span:
        last = len(self.origin) - 1
        return Span(self.origin[min(span.start, last)], self.origin[min(span.end, last)])


def _byte_origin(trimmed: bytes, lead: int, unescaped: bool) -> tuple[int, ...]:
    if not unescaped:
        return tuple(range(lead, lead + len(trimmed) + 1))
    # every run of 2k input backslashes became k prepared backslashes
    origin: list[int] = []
    pos = 0
    for run in _BACKSLASH_RUN_BYTES.finditer(trimmed):
        origin.extend(range(lead + pos, lead + run.start()))
        origin.extend(range(lead + run.start(), lead + run.end(), 2))
        pos = run.end()
    origin.extend(range(lead + pos, lead + len(trimmed) + 1))
    return tuple(origin)


def prepare_source(source: str, max_input_bytes: int) -> PreparedSource:
    """
    Trim, check emptiness and size, then normalize escaping.
    """
    trimmed = source.strip()
    if not trimmed:
        raise EmptyInput()
    raw = trimmed.encode("utf-8")
    if len(raw) > max_input_bytes:
        raise InputTooLong(len(raw), max_input_bytes)
    lead = len(source[: len(source) - len(source.lstrip())].encode("utf-8"))
    text = normalize_escaped_commands(trimmed)
    return PreparedSource(text, _byte_origin(raw, lead, text != trimmed))


# ---------------- Command table ----------------------------------------------

@dataclass(frozen=True)
class CommandSpec:
    arity: int
    build: Callable
    custom: bool = False


def _symbol(char: str, atom: AtomClass) -> Callable:
    def build(parser: "Parser", token: Token, args: list[Node]) -> Node:
        return Symbol(char, atom, span=token.span)
    return build


def _space(width: float) -> Callable:
    def build(parser: "Parser", token: Token, args: list[Node]) -> Node:
        return Space(width, span=token.span)
    return build


def _operator(text: str, large: bool) -> Callable:
    def build(parser: "Parser", token: Token, args: list[Node]) -> Node:
        return Operator(text, large=large, span=token.span)
    return build


def _fraction(display: Optional[bool]) -> Callable:
    def build(parser: "Parser", token: Token, args: list[Node]) -> Node:
        return Fraction(args[0], args[1], has_bar=True, display=display,
                        span=parser.span_from(token))
    return build


def _binomial(display: Optional[bool]) -> Callable:
    def build(parser: "Parser", token: Token, args: list[Node]) -> Node:
        span = parser.span_from(token)
        inner = Fraction(args[0], args[1], has_bar=False, display=display, span=span)
        return Delimiter("(", ")", inner, stretch=True, span=span)
    return build


def _decoration(kind) -> Callable:
    def build(parser: "Parser", token: Token, args: list[Node]) -> Node:
        return Decoration(args[0], kind, span=parser.span_from(token))
    return build


def _style(variant: FontVariant) -> Callable:
    def build(parser: "Parser", token: Token, args: list[Node]) -> Node:
        return StyledGroup(args[0], variant=variant, span=parser.span_from(token))
    return build


def _text(variant: FontVariant) -> Callable:
    def build(parser: "Parser", token: Token) -> Node:
        raw, span = parser.read_raw_argument(token)
        chars = tuple(
            Symbol(ch, AtomClass.ORD, variant, span=span) for ch in _clean_text(raw)
        )
        return Group(chars, span=parser.span_from(token))
    return build


def _big_delimiter(step: int, atom: AtomClass) -> Callable:
    def build(parser: "Parser", token: Token) -> Node:
        char = parser.read_delimiter(token)
        closing = atom is AtomClass.CLOSE or (
            atom is AtomClass.ORD and char in _CLOSING_DELIMITERS
        )
        left, right = (None, char) if closing else (char, None)
        return Delimiter(left, right, Group(()), stretch=False, size_step=step,
                         span=parser.span_from(token))
    return build


def _build_sqrt(parser: "Parser", token: Token) -> Node:
    index = parser.parse_optional_argument()
    body = parser.parse_argument(token)
    return Radical(body, index, span=parser.span_from(token))


def _build_left(parser: "Parser", token: Token) -> Node:
    return parser.parse_left_right(token)


def _build_operatorname(parser: "Parser", token: Token) -> Node:
    limits = None
    nxt = parser.peek()
    if nxt is not None and nxt.kind is TokenKind.SYMBOL and nxt.text == "*":
        parser.advance()
        limits = True
    raw, _ = parser.read_raw_argument(token)
    name = _clean_text(raw).strip()
    if not name:
        raise ArityMismatch("\\operatorname needs a name", parser.span_from(token))
    return Operator(name, limits=limits, span=parser.span_from(token))


def _build_plain_matrix(parser: "Parser", token: Token) -> Node:
    nxt = parser.peek()
    if nxt is None or nxt.kind is not TokenKind.LBRACE:
        raise ArityMismatch("\\matrix expects a braced body", token.span)
    parser.advance()
    rows = parser.parse_rows(token, closing=TokenKind.RBRACE, env_name="matrix")
    return Matrix(rows, span=parser.span_from(token))


_CLOSING_DELIMITERS = frozenset(")]}⟩⌉⌋")


def _clean_text(raw: str) -> str:
    """Strip grouping braces, resolve escaped characters, collapse whitespace."""
    out: list[str] = []
    i = 0
    while i < len(raw):
        ch = raw[i]
        if ch == "\\" and i + 1 < len(raw) and raw[i + 1] in "{}%$&_# ":
            out.append(raw[i + 1])
            i += 2
            continue
        if ch in "{}":
            i += 1
            continue
        if ch.isspace():
            if not out or out[-1] != " ":
                out.append(" ")
            i += 1
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _build_command_table() -> dict[str, CommandSpec]:
    table: dict[str, CommandSpec] = {}

    symbol_tables = (
        (sym.GREEK, AtomClass.ORD),
        (sym.ORDINARY_SYMBOLS, AtomClass.ORD),
        (sym.ESCAPED_CHARACTERS, AtomClass.ORD),
        (sym.BINARY_OPERATORS, AtomClass.BIN),
        (sym.RELATIONS, AtomClass.REL),
        (sym.PUNCTUATION_COMMANDS, AtomClass.PUNCT),
        (sym.OPEN_COMMANDS, AtomClass.OPEN),
        (sym.CLOSE_COMMANDS, AtomClass.CLOSE),
    )
    for mapping, atom in symbol_tables:
        for name, char in mapping.items():
            table[name] = CommandSpec(0, _symbol(char, atom))

    for name, width in sym.SPACING_COMMANDS.items():
        table[name] = CommandSpec(0, _space(width))

    for name in sym.FUNCTION_NAMES:
        table[name] = CommandSpec(0, _operator(name, False))
    for name, text in sym.LIMIT_FUNCTION_NAMES.items():
        table[name] = CommandSpec(0, _operator(text, False))
    for name, (glyph, _) in sym.LARGE_OPERATORS.items():
        table[name] = CommandSpec(0, _operator(glyph, True))

    table["frac"] = CommandSpec(2, _fraction(None))
    table["cfrac"] = CommandSpec(2, _fraction(True))
    table["dfrac"] = CommandSpec(2, _fraction(True))
    table["tfrac"] = CommandSpec(2, _fraction(False))
    table["binom"] = CommandSpec(2, _binomial(None))
    table["dbinom"] = CommandSpec(2, _binomial(True))
    table["tbinom"] = CommandSpec(2, _binomial(False))

    for name, kind in sym.DECORATION_COMMANDS.items():
        table[name] = CommandSpec(1, _decoration(kind))
    for name, variant in sym.STYLE_COMMANDS.items():
        table[name] = CommandSpec(1, _style(variant))
    for name, variant in sym.TEXT_COMMANDS.items():
        table[name] = CommandSpec(1, _text(variant), custom=True)
    for name, (step, atom) in sym.BIG_DELIMITER_COMMANDS.items():
        table[name] = CommandSpec(1, _big_delimiter(step, atom), custom=True)

    table["sqrt"] = CommandSpec(1, _build_sqrt, custom=True)
    table["left"] = CommandSpec(1, _build_left, custom=True)
    table["operatorname"] = CommandSpec(1, _build_operatorname, custom=True)
    table["matrix"] = CommandSpec(1, _build_plain_matrix, custom=True)
    return table


COMMANDS: dict[str, CommandSpec] = _build_command_table()

# Handled by the sequence loop itself, not through the table
_SEQUENCE_COMMANDS = {"limits", "nolimits", "displaystyle", "textstyle"}

_STOP_KINDS = {TokenKind.RBRACE, TokenKind.ALIGN, TokenKind.ROW_SEP, TokenKind.END_ENV}


# ---------------- Parser -----------------------------------------------------

class Parser:
    """
    Cursor over a token list. One instance parses one formula.
    """

    def __init__(
        self,
        source: str,
        tokens: list[Token],
        max_depth: int = DEFAULT_CONFIG.max_nesting_depth,
    ):
        self.source = source
        self._source_bytes = source.encode("utf-8")
        self.tokens = tokens
        self.pos = 0
        self.max_depth = max_depth
        self._depth = 0
        self._env_depth = 0

    # ---------- cursor ----------

    def peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def end_span(self) -> Span:
        n = len(self._source_bytes)
        return Span(n, n)

    def span_from(self, token: Token) -> Span:
        """Span from `token` up to the last consumed token."""
        last = self.tokens[self.pos - 1] if self.pos > 0 else token
        return Span(token.span.start, max(token.span.end, last.span.end))

    def _descend(self, span: Span) -> None:
        """Enter one nesting level; `span` is what opened it."""
        self._depth += 1
        if self._depth > self.max_depth:
            raise NestingTooDeep(f"formula nests deeper than {self.max_depth} levels", span)

    # ---------- entry ----------

    def parse_formula(self) -> Node:
        nodes = self.parse_sequence()
        token = self.peek()
        if token is not None:
            self._raise_misplaced(token)
        return _wrap(nodes, Span(0, len(self._source_bytes)))

    def _raise_misplaced(self, token: Token) -> None:
        if token.kind is TokenKind.RBRACE:
            raise UnbalancedGroup("unmatched }", token.span)
        if token.kind is TokenKind.END_ENV:
            raise UnbalancedEnvironment(f"\\end{{{token.text}}} without \\begin", token.span)
        if token.kind is TokenKind.ALIGN:
            raise UnbalancedEnvironment("& outside of an environment", token.span)
        if token.kind is TokenKind.ROW_SEP:
            raise UnbalancedEnvironment("\\\\ outside of an environment", token.span)
        if token.kind is TokenKind.COMMAND and token.text == "right":
            raise UnbalancedGroup("\\right without matching \\left", token.span)
        raise UnbalancedGroup(f"unexpected {token.text!r}", token.span)

    # ---------- sequences ----------

    def _at_stop(self, token: Token, stop_symbol: Optional[str]) -> bool:
        if token.kind in _STOP_KINDS:
            return True
        if token.kind is TokenKind.COMMAND and token.text == "right":
            return True
        return (
            stop_symbol is not None
            and token.kind is TokenKind.SYMBOL
            and token.text == stop_symbol
        )

    def parse_sequence(self, stop_symbol: Optional[str] = None) -> list[Node]:
        """
        Parse atoms until end of input, a closing token (`}`, `&`, `\\\\`,
        `\\end`, `\\right`) or `stop_symbol`. The stop token is not consumed.
        Each sequence is one nesting level.
        """
        opener = self.tokens[self.pos - 1].span if self.pos > 0 else Span(0, 0)
        self._descend(opener)
        try:
            nodes: list[Node] = []
            while True:
                token = self.peek()
                if token is None or self._at_stop(token, stop_symbol):
                    return nodes

                if token.kind in (TokenKind.SUPERSCRIPT, TokenKind.SUBSCRIPT):
                    self.advance()
                    self._attach_script(nodes, token)
                    continue

                if token.kind is TokenKind.COMMAND and token.text in _SEQUENCE_COMMANDS:
                    self.advance()
                    if token.text in ("limits", "nolimits"):
                        self._apply_limits(nodes, token)
                        continue
                    rest = self.parse_sequence(stop_symbol)
                    display = token.text == "displaystyle"
                    span = Span(token.span.start, self.span_from(token).end)
                    nodes.append(StyledGroup(_wrap(rest, span), display=display, span=span))
                    return nodes

                nodes.extend(self.parse_atom())
        finally:
            self._depth -= 1

    def _apply_limits(self, nodes: list[Node], token: Token) -> None:
        if not nodes or not isinstance(nodes[-1], Operator):
            raise ArityMismatch(f"\\{token.text} must follow an operator", token.span)
        nodes[-1] = replace(nodes[-1], limits=(token.text == "limits"))

    def _attach_script(self, nodes: list[Node], token: Token) -> None:
        is_sup = token.kind is TokenKind.SUPERSCRIPT
        if not nodes:
            raise MissingScriptBase(f"{token.text} has nothing to attach to", token.span)
        argument = self.parse_script_argument(token)
        base = nodes[-1]

        if isinstance(base, Script):
            filled = base.superscript if is_sup else base.subscript
            if filled is not None:
                raise DuplicateScript(
                    f"double {'superscript' if is_sup else 'subscript'}", token.span
                )
            span = Span(base.span.start, argument.span.end)
            if is_sup:
                nodes[-1] = replace(base, superscript=argument, span=span)
            else:
                nodes[-1] = replace(base, subscript=argument, span=span)
            return

        span = Span(base.span.start, argument.span.end)
        if is_sup:
            nodes[-1] = Script(base, superscript=argument, span=span)
        else:
            nodes[-1] = Script(base, subscript=argument, span=span)

    # ---------- arguments ----------

    def parse_script_argument(self, token: Token) -> Node:
        nxt = self.peek()
        if nxt is None or nxt.kind in _STOP_KINDS or nxt.kind in (
            TokenKind.SUPERSCRIPT, TokenKind.SUBSCRIPT
        ):
            span = nxt.span if nxt is not None else self.end_span()
            raise ArityMismatch(f"{token.text} expects an argument", span)
        return self.parse_argument(token)

    def parse_argument(self, command: Token) -> Node:
        """
        Read one required argument: a braced group or a single token.
        A group holding one node yields that node. A multi-digit number
        only contributes its first digit.
        """
        token = self.peek()
        if token is None or self._at_stop(token, None) or token.kind in (
            TokenKind.SUPERSCRIPT, TokenKind.SUBSCRIPT, TokenKind.BEGIN_ENV
        ):
            span = token.span if token is not None else self.end_span()
            raise ArityMismatch(f"{command.text} is missing an argument", span)

        if token.kind is TokenKind.LBRACE:
            group = self.parse_group()
            if len(group.children) == 1:
                return replace(group.children[0], span=group.span)
            return group

        if token.kind is TokenKind.NUMBER and len(token.text) > 1:
            first = token.text[0]
            self.tokens[self.pos] = Token(
                TokenKind.NUMBER,
                token.text[1:],
                Span(token.span.start + 1, token.span.end),
            )
            return Symbol(first, AtomClass.ORD, span=Span(token.span.start, token.span.start + 1))

        # unbraced arguments nest through here (\sqrt\sqrt x)
        self._descend(command.span)
        try:
            nodes = self.parse_atom()
        finally:
            self._depth -= 1
        return _wrap(nodes, self.span_from(token))

    def parse_optional_argument(self) -> Optional[Node]:
        """Read `[ ... ]` if present."""
        token = self.peek()
        if token is None or token.kind is not TokenKind.SYMBOL or token.text != "[":
            return None
        self.advance()
        nodes = self.parse_sequence(stop_symbol="]")
        closing = self.peek()
        if closing is None or closing.kind is not TokenKind.SYMBOL or closing.text != "]":
            raise UnbalancedGroup("optional argument is missing ]", self.span_from(token))
        self.advance()
        return _wrap(nodes, self.span_from(token))

    def parse_group(self) -> Node:
        opening = self.advance()
        nodes = self.parse_sequence()
        closing = self.peek()
        if closing is None:
            raise UnbalancedGroup("missing }", Span(opening.span.start, self.end_span().end))
        if closing.kind is not TokenKind.RBRACE:
            if closing.kind is TokenKind.COMMAND or self._env_depth > 0:
                raise UnbalancedGroup("missing } before " + closing.text, closing.span)
            self._raise_misplaced(closing)
        self.advance()
        return Group(tuple(nodes), span=self.span_from(opening))

    def read_raw_argument(self, command: Token) -> tuple[str, Span]:
        """
        Return the verbatim source text of the braced argument after `command`.
        """
        opening = self.peek()
        if opening is None or opening.kind is not TokenKind.LBRACE:
            span = opening.span if opening is not None else self.end_span()
            raise ArityMismatch(f"\\{command.text} expects a braced argument", span)
        self.advance()
        depth = 1
        while True:
            token = self.peek()
            if token is None:
                raise UnbalancedGroup(
                    "missing }", Span(opening.span.start, self.end_span().end)
                )
            self.advance()
            if token.kind is TokenKind.LBRACE:
                depth += 1
            elif token.kind is TokenKind.RBRACE:
                depth -= 1
                if depth == 0:
                    raw = self._source_bytes[opening.span.end:token.span.start]
                    return raw.decode("utf-8"), Span(opening.span.start, token.span.end)

    def read_delimiter(self, command: Token) -> Optional[str]:
        """
        Read the delimiter token after \\left, \\right or \\big.
        `.` is the null delimiter and yields None.
        """
        token = self.peek()
        if token is None:
            raise ArityMismatch(f"\\{command.text} expects a delimiter", self.end_span())
        if token.kind is TokenKind.SYMBOL and (
            token.text in sym.DELIMITER_CHARACTERS or token.text in "<>"
        ):
            self.advance()
            if token.text == ".":
                return None
            return {"<": "⟨", ">": "⟩"}.get(token.text, token.text)
        if token.kind is TokenKind.COMMAND and token.text in sym.DELIMITER_COMMANDS:
            self.advance()
            return sym.DELIMITER_COMMANDS[token.text]
        if token.kind in (TokenKind.LBRACE, TokenKind.RBRACE):
            raise UnknownCommand(
                f"use \\{token.text} for a brace delimiter", token.span
            )
        raise UnknownCommand(f"unknown delimiter {token.text!r}", token.span)

    # ---------- atoms ----------

    def parse_atom(self) -> list[Node]:
        """
        Parse one atom. Number runs expand to one symbol per character.
        """
        token = self.peek()
        kind = token.kind

        if kind is TokenKind.LBRACE:
            return [self.parse_group()]

        if kind is TokenKind.BEGIN_ENV:
            self.advance()
            return [self.parse_environment(token)]

        self.advance()

        if kind is TokenKind.LETTER:
            return [Symbol(token.text, AtomClass.ORD, span=token.span)]

        if kind is TokenKind.NUMBER:
            start = token.span.start
            return [
                Symbol(ch, AtomClass.ORD, span=Span(start + i, start + i + 1))
                for i, ch in enumerate(token.text)
            ]

        if kind is TokenKind.SYMBOL:
            if token.text == "~":
                return [Space(sym.SPACING_COMMANDS[" "], span=token.span)]
            char = sym.CHARACTER_GLYPHS.get(token.text, token.text)
            atom = sym.CHARACTER_ATOMS.get(token.text, AtomClass.ORD)
            return [Symbol(char, atom, span=token.span)]

        if kind is TokenKind.COMMAND:
            return [self.parse_command(token)]

        # stop kinds never reach here; parse_sequence filters them
        raise UnbalancedGroup(f"unexpected {token.text!r}", token.span)

    def parse_command(self, token: Token) -> Node:
        spec = COMMANDS.get(token.text)
        if spec is None:
            raise UnknownCommand(f"unknown command \\{token.text}", token.span)
        if spec.custom:
            return spec.build(self, token)
        args = [self.parse_argument(token) for _ in range(spec.arity)]
        return spec.build(self, token, args)

    def parse_left_right(self, token: Token) -> Node:
        left = self.read_delimiter(token)
        body = self.parse_sequence()
        closing = self.peek()
        if closing is None or not (
            closing.kind is TokenKind.COMMAND and closing.text == "right"
        ):
            span = closing.span if closing is not None else self.end_span()
            raise UnbalancedGroup("\\left without matching \\right", Span(token.span.start, span.end))
        self.advance()
        right = self.read_delimiter(closing)
        span = self.span_from(token)
        return Delimiter(left, right, _wrap(body, span), stretch=True, span=span)

    # ---------- environments ----------

    def parse_environment(self, begin: Token) -> Node:
        name = begin.text
        if name not in sym.ENVIRONMENTS:
            raise UnknownCommand(f"unknown environment {name!r}", begin.span)
        left, right, alignment = sym.ENVIRONMENTS[name]
        if name == "array":
            alignment = self._read_column_spec(begin)

        rows = self.parse_rows(begin, closing=TokenKind.END_ENV, env_name=name)
        span = self.span_from(begin)
        grid = Matrix(rows, alignment=alignment, span=span)
        if left is None and right is None:
            return grid
        return Delimiter(left, right, grid, stretch=True, span=span)

    def _read_column_spec(self, begin: Token) -> str:
        raw, span = self.read_raw_argument(Token(TokenKind.COMMAND, "begin{array}", begin.span))
        spec = "".join(ch for ch in raw if not ch.isspace() and ch != "|")
        if not spec or any(ch not in "lcr" for ch in spec):
            raise ArityMismatch(f"invalid array column spec {raw!r}", span)
        return spec

    def parse_rows(
        self, opening: Token, *, closing: TokenKind, env_name: str
    ) -> tuple[tuple[Node, ...], ...]:
        """
        Parse `cell & cell \\\\ cell & cell` up to the closing token
        (`\\end{name}` or `}`), which is consumed.
        """
        rows: list[tuple[Node, ...]] = []
        cells: list[Node] = []
        self._env_depth += 1
        try:
            while True:
                cell_start = self.peek()
                nodes = self.parse_sequence()
                start = cell_start.span.start if cell_start is not None else self.end_span().start
                cells.append(_wrap(nodes, Span(start, max(start, self.span_from(opening).end))))

                token = self.peek()
                if token is None:
                    raise UnbalancedEnvironment(
                        f"{env_name} is never closed", Span(opening.span.start, self.end_span().end)
                    )
                if token.kind is TokenKind.ALIGN:
                    self.advance()
                    continue
                if token.kind is TokenKind.ROW_SEP:
                    self.advance()
                    rows.append(tuple(cells))
                    cells = []
                    continue
                if token.kind is closing:
                    if closing is TokenKind.END_ENV and token.text != env_name:
                        raise UnbalancedEnvironment(
                            f"\\begin{{{env_name}}} closed by \\end{{{token.text}}}", token.span
                        )
                    self.advance()
                    break
                if token.kind is TokenKind.END_ENV:
                    raise UnbalancedEnvironment(
                        f"\\end{{{token.text}}} inside braced matrix body", token.span
                    )
                if token.kind is TokenKind.RBRACE:
                    raise UnbalancedGroup("unmatched } inside environment", token.span)
                raise UnbalancedGroup("\\right without matching \\left", token.span)
        finally:
            self._env_depth -= 1

        # a trailing \\ leaves one empty cell behind; TeX ignores it
        if not (len(cells) == 1 and _is_empty(cells[0]) and rows):
            rows.append(tuple(cells))
        return tuple(rows)


def _is_empty(node: Node) -> bool:
    return isinstance(node, Group) and not node.children


def _wrap(nodes: list[Node], span: Span) -> Node:
    """A single node stands for itself; anything else becomes a Group."""
    if len(nodes) == 1:
        return nodes[0]
    return Group(tuple(nodes), span=span)


def parse(source: str, cfg: FormulaConfig = DEFAULT_CONFIG) -> Node:
    """
    Parse a LaTeX formula into its tree.

    Raises EmptyInput, InputTooLong or a ParseError subclass. Error spans
    are byte ranges of `source` itself; node spans index the trimmed,
    unescaped text the parser saw.
    """
    prepared = prepare_source(source, cfg.max_input_bytes)
    try:
        parser = Parser(prepared.text, tokenize(prepared.text), max_depth=cfg.max_nesting_depth)
        return parser.parse_formula()
    except ParseError as err:
        err.relocate(prepared.input_span(err.span))
        raise
