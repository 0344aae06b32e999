#!/usr/bin/env python3
"""
formula_ast.py

Formula tree produced by formula_parser and consumed by formula_layout.

All nodes are frozen dataclasses that own their children exclusively, so a
parsed formula is a plain finite tree. Every node carries the byte span of the
source it came from.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from formula_errors import Span


class AtomClass(str, Enum):
    """TeX atom classes; they drive inter-atom spacing."""
    ORD = "ord"
    OP = "op"
    BIN = "bin"
    REL = "rel"
    OPEN = "open"
    CLOSE = "close"
    PUNCT = "punct"
    INNER = "inner"


class FontVariant(str, Enum):
    """
    Font style requested for a run of symbols.

    MATH is the default math style: latin letters italic, everything else
    upright. The alphabet variants (sans, mono, blackboard, ...) are realized
    through the Unicode mathematical alphanumeric block.
    """
    MATH = "math"
    ROMAN = "roman"
    ITALIC = "italic"
    BOLD = "bold"
    BOLD_ITALIC = "bold-italic"
    SANS = "sans"
    MONO = "mono"
    BLACKBOARD = "blackboard"
    CALLIGRAPHIC = "calligraphic"
    FRAKTUR = "fraktur"
    TEXT = "text"


class DecorationKind(str, Enum):
    HAT = "hat"
    WIDEHAT = "widehat"
    TILDE = "tilde"
    WIDETILDE = "widetilde"
    BAR = "bar"
    OVERLINE = "overline"
    UNDERLINE = "underline"
    DOT = "dot"
    DDOT = "ddot"
    VEC = "vec"
    OVERRIGHTARROW = "overrightarrow"
    OVERLEFTARROW = "overleftarrow"
    OVERLEFTRIGHTARROW = "overleftrightarrow"
    OVERBRACE = "overbrace"
    UNDERBRACE = "underbrace"
    CANCEL = "cancel"
    XRIGHTARROW = "xrightarrow"
    XLEFTARROW = "xleftarrow"
    XRIGHTARROW_DOUBLE = "xRightarrow"
    XLEFTARROW_DOUBLE = "xLeftarrow"
    XLEFTRIGHTARROW_DOUBLE = "xLeftrightarrow"

    @property
    def is_extensible_arrow(self) -> bool:
        return self.value.startswith("x")

    @property
    def is_below(self) -> bool:
        return self in {DecorationKind.UNDERLINE, DecorationKind.UNDERBRACE}


@dataclass(frozen=True)
class Symbol:
    """One literal glyph."""
    char: str
    atom: AtomClass = AtomClass.ORD
    variant: Optional[FontVariant] = None
    span: Span = field(default=Span(0, 0), compare=False)


@dataclass(frozen=True)
class Operator:
    """
    Named operator (`\\sin`, `\\lim`) or large operator glyph (`\\sum`).

    limits: True/False when forced by `\\limits`/`\\nolimits`; None keeps
    the operator default (limits in display style for `\\sum`, `\\lim`, ...).
    """
    text: str
    limits: Optional[bool] = None
    large: bool = False
    span: Span = field(default=Span(0, 0), compare=False)


@dataclass(frozen=True)
class Space:
    """Explicit horizontal glue (`\\,`, `\\quad`, ...), in em."""
    width: float
    span: Span = field(default=Span(0, 0), compare=False)


@dataclass(frozen=True)
class Group:
    children: tuple["Node", ...] = ()
    span: Span = field(default=Span(0, 0), compare=False)


@dataclass(frozen=True)
class Script:
    base: "Node"
    superscript: Optional["Node"] = None
    subscript: Optional["Node"] = None
    span: Span = field(default=Span(0, 0), compare=False)


@dataclass(frozen=True)
class Fraction:
    """
    numerator over denominator. `display` forces \\dfrac (True) or
    \\tfrac (False); None inherits the surrounding style.
    """
    numerator: "Node"
    denominator: "Node"
    has_bar: bool = True
    display: Optional[bool] = None
    span: Span = field(default=Span(0, 0), compare=False)


@dataclass(frozen=True)
class Delimiter:
    """
    Brackets around a body. `left`/`right` are None for a null delimiter
    (`\\left.`). Non-stretchy delimiters use the fixed ladder step
    `size_step` (0 = base size).
    """
    left: Optional[str]
    right: Optional[str]
    body: "Node"
    stretch: bool = True
    size_step: int = 0
    span: Span = field(default=Span(0, 0), compare=False)


@dataclass(frozen=True)
class Matrix:
    """
    Rows of cells. `alignment` holds one of 'l', 'c', 'r' per column;
    columns beyond its length are centered.
    """
    rows: tuple[tuple["Node", ...], ...]
    alignment: str = ""
    span: Span = field(default=Span(0, 0), compare=False)

    @property
    def column_count(self) -> int:
        return max((len(row) for row in self.rows), default=0)

    def align_for(self, column: int) -> str:
        if column < len(self.alignment):
            return self.alignment[column]
        return "c"


@dataclass(frozen=True)
class Decoration:
    base: "Node"
    kind: DecorationKind
    span: Span = field(default=Span(0, 0), compare=False)


@dataclass(frozen=True)
class Radical:
    body: "Node"
    index: Optional["Node"] = None
    span: Span = field(default=Span(0, 0), compare=False)


@dataclass(frozen=True)
class StyledGroup:
    """Font variant and/or display-style override for a subtree."""
    base: "Node"
    variant: Optional[FontVariant] = None
    display: Optional[bool] = None
    span: Span = field(default=Span(0, 0), compare=False)


Node = Union[
    Symbol,
    Operator,
    Space,
    Group,
    Script,
    Fraction,
    Delimiter,
    Matrix,
    Decoration,
    Radical,
    StyledGroup,
]


def iter_children(node: Node) -> tuple[Node, ...]:
    """Direct children of a node, in source order."""
    if isinstance(node, Group):
        return node.children
    if isinstance(node, Script):
        return tuple(n for n in (node.base, node.superscript, node.subscript) if n is not None)
    if isinstance(node, Fraction):
        return (node.numerator, node.denominator)
    if isinstance(node, (Delimiter,)):
        return (node.body,)
    if isinstance(node, Matrix):
        return tuple(cell for row in node.rows for cell in row)
    if isinstance(node, (Decoration, StyledGroup)):
        return (node.base,)
    if isinstance(node, Radical):
        return (node.body,) if node.index is None else (node.index, node.body)
    return ()


def dump_tree(node: Node, indent: int = 0) -> list[str]:
    """
    Render a node as indented debug lines, one node per line.
    """
    pad = "  " * indent
    if isinstance(node, Symbol):
        variant = f" {node.variant.value}" if node.variant else ""
        head = f"Symbol {node.char!r} {node.atom.value}{variant}"
    elif isinstance(node, Operator):
        head = f"Operator {node.text!r} limits={node.limits} large={node.large}"
    elif isinstance(node, Space):
        head = f"Space {node.width:.3f}em"
    elif isinstance(node, Script):
        head = (
            "Script"
            f" sup={'yes' if node.superscript is not None else 'no'}"
            f" sub={'yes' if node.subscript is not None else 'no'}"
        )
    elif isinstance(node, Fraction):
        head = f"Fraction bar={node.has_bar}"
    elif isinstance(node, Delimiter):
        head = f"Delimiter {node.left!r} {node.right!r} stretch={node.stretch}"
    elif isinstance(node, Matrix):
        head = f"Matrix {len(node.rows)}x{node.column_count} align={node.alignment or '-'}"
    elif isinstance(node, Decoration):
        head = f"Decoration {node.kind.value}"
    elif isinstance(node, Radical):
        head = f"Radical index={'yes' if node.index is not None else 'no'}"
    elif isinstance(node, StyledGroup):
        variant = node.variant.value if node.variant else "-"
        head = f"StyledGroup variant={variant} display={node.display}"
    else:
        head = "Group"

    lines = [f"{pad}{head}"]
    for child in iter_children(node):
        lines.extend(dump_tree(child, indent + 1))
    return lines
