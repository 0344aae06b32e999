#!/usr/bin/env python3
"""
formula_layout.py

Turns a formula tree into a tree of LayoutBox values.

Coordinates are em of the base font size. Inside a box the origin is the
left end of the baseline; `dx` grows to the right, `dy` grows downward, so
a superscript sits at a negative `dy`. Every box declares its width, ascent
and descent, and those extents bound every item it holds (`validate_box`).

Sizes: level 0 is text/display size, -1 script, -2 scriptscript (the floor).
All spacing constants are scaled by the factor of the level they are used in.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Union

from config_loader import FormulaConfig, SpacingConstants
from formula_ast import (
    AtomClass,
    Decoration,
    DecorationKind,
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
from formula_errors import LayoutInvariantError
from glyph_metrics import Face, GlyphMetrics
import formula_symbols as sym

_EPS = 1e-6


# ---------------- Boxes ------------------------------------------------------

@dataclass(frozen=True)
class GlyphItem:
    char: str
    face: Face
    scale: float          # multiple of the base font size
    dx: float
    dy: float             # baseline of the glyph
    advance: float
    ascent: float
    descent: float
    missing: bool = False


@dataclass(frozen=True)
class RuleItem:
    """Filled rectangle; `dy` is its top edge."""
    dx: float
    dy: float
    width: float
    height: float


@dataclass(frozen=True)
class PathItem:
    """
    Vector decoration. `d` is path data in em with its origin at (dx, dy);
    the drawing stays within [0, width] x [-ascent, descent] of that origin.
    """
    d: str
    dx: float
    dy: float
    width: float
    ascent: float
    descent: float
    stroke_width: float = 0.0
    fill: bool = False


@dataclass(frozen=True)
class BoxItem:
    box: "LayoutBox"
    dx: float
    dy: float


Item = Union[GlyphItem, RuleItem, PathItem, BoxItem]


@dataclass(frozen=True)
class LayoutBox:
    width: float
    ascent: float
    descent: float
    items: tuple[Item, ...] = ()
    italic_correction: float = 0.0
    leading_italic: bool = False
    # None marks glue (explicit spaces); it takes no part in atom spacing
    atom: Optional[AtomClass] = AtomClass.ORD
    limits: bool = False

    @property
    def height(self) -> float:
        return self.ascent + self.descent


def item_extent(item: Item) -> tuple[float, float, float, float]:
    """(left, right, top, bottom) of an item in its parent box, y down."""
    if isinstance(item, GlyphItem):
        return (item.dx, item.dx + item.advance, item.dy - item.ascent, item.dy + item.descent)
    if isinstance(item, RuleItem):
        return (item.dx, item.dx + item.width, item.dy, item.dy + item.height)
    if isinstance(item, PathItem):
        return (item.dx, item.dx + item.width, item.dy - item.ascent, item.dy + item.descent)
    box = item.box
    return (item.dx, item.dx + box.width, item.dy - box.ascent, item.dy + box.descent)


def validate_box(box: LayoutBox) -> None:
    """
    Check recursively that every box bounds its items.
    Raises LayoutInvariantError naming the first offending item.
    """
    for item in box.items:
        left, right, top, bottom = item_extent(item)
        if (
            left < -_EPS
            or right > box.width + _EPS
            or top < -box.ascent - _EPS
            or bottom > box.descent + _EPS
        ):
            raise LayoutInvariantError(
                f"{type(item).__name__} at ({left:.3f}, {top:.3f})-({right:.3f}, {bottom:.3f}) "
                f"escapes box {box.width:.3f} x +{box.ascent:.3f}/-{box.descent:.3f}"
            )
        if isinstance(item, BoxItem):
            validate_box(item.box)


# ---------------- Style and context ------------------------------------------

@dataclass(frozen=True)
class Style:
    size_level: int = 0
    variant: Optional[FontVariant] = None
    display: bool = True
    fraction_depth: int = 0

    def script(self, floor: int) -> "Style":
        return replace(self, size_level=max(floor, self.size_level - 1), display=False)


@dataclass(frozen=True)
class LayoutContext:
    config: FormulaConfig
    fonts: GlyphMetrics

    @property
    def spacing(self) -> SpacingConstants:
        return self.config.spacing

    def scale(self, style: Style) -> float:
        return self.config.scale_for(style.size_level)


# ---------------- Inter-atom spacing -----------------------------------------

_ATOM_ORDER = (
    AtomClass.ORD, AtomClass.OP, AtomClass.BIN, AtomClass.REL,
    AtomClass.OPEN, AtomClass.CLOSE, AtomClass.PUNCT, AtomClass.INNER,
)

# TeX's spacing table. 1 thin, 2 medium, 3 thick; negative entries are
# dropped in script sizes.
_SPACING_TABLE: dict[AtomClass, tuple[int, ...]] = {
    AtomClass.ORD:   (0, 1, -2, -3, 0, 0, 0, -1),
    AtomClass.OP:    (1, 1, 0, -3, 0, 0, 0, -1),
    AtomClass.BIN:   (-2, -2, 0, 0, -2, 0, 0, -2),
    AtomClass.REL:   (-3, -3, 0, 0, -3, 0, 0, -3),
    AtomClass.OPEN:  (0, 0, 0, 0, 0, 0, 0, 0),
    AtomClass.CLOSE: (0, 1, -2, -3, 0, 0, 0, -1),
    AtomClass.PUNCT: (-1, -1, 0, -1, -1, -1, -1, -1),
    AtomClass.INNER: (-1, 1, -2, -3, -1, 0, -1, -1),
}


def inter_atom_space(left: AtomClass, right: AtomClass, style: Style, ctx: LayoutContext) -> float:
    entry = _SPACING_TABLE[left][_ATOM_ORDER.index(right)]
    if entry < 0 and style.size_level < 0:
        return 0.0
    sp = ctx.spacing
    width = {0: 0.0, 1: sp.thin_space, 2: sp.medium_space, 3: sp.thick_space}[abs(entry)]
    return width * ctx.scale(style)


def demote_binaries(atoms: list[AtomClass]) -> list[AtomClass]:
    """
    A binary operator with nothing binary-compatible on its left, or followed
    by a relation, closing or punctuation atom, is an ordinary atom.
    """
    out = list(atoms)
    for i, atom in enumerate(atoms):
        if atom is not AtomClass.BIN:
            continue
        prev = out[i - 1] if i > 0 else None
        nxt = atoms[i + 1] if i + 1 < len(atoms) else None
        if prev is None or prev in (
            AtomClass.BIN, AtomClass.OP, AtomClass.REL, AtomClass.OPEN, AtomClass.PUNCT
        ):
            out[i] = AtomClass.ORD
        elif nxt is None or nxt in (AtomClass.REL, AtomClass.CLOSE, AtomClass.PUNCT):
            out[i] = AtomClass.ORD
    return out


# ---------------- Helpers ----------------------------------------------------

def _fmt(value: float) -> str:
    text = f"{value:.4f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _row(entries: list[tuple[float, LayoutBox]]) -> LayoutBox:
    """
    Place boxes left to right on a common baseline. Each entry is
    (kern before the box, box). Boxes without items only advance the cursor.
    """
    placed: list[tuple[float, LayoutBox]] = []
    cursor = 0.0
    for kern, box in entries:
        cursor += kern
        if box.items:
            placed.append((cursor, box))
        cursor += box.width

    shift = -min((x for x, _ in placed), default=0.0)
    shift = max(shift, 0.0)
    width = max([cursor + shift] + [x + shift + b.width for x, b in placed])
    ascent = max((b.ascent for _, b in placed), default=0.0)
    descent = max((b.descent for _, b in placed), default=0.0)
    items = tuple(BoxItem(b, x + shift, 0.0) for x, b in placed)
    return LayoutBox(width=max(width, 0.0), ascent=ascent, descent=descent, items=items)


def _glyph_box(
    char: str,
    variant: Optional[FontVariant],
    style: Style,
    ctx: LayoutContext,
    *,
    atom: Optional[AtomClass] = AtomClass.ORD,
    factor: float = 1.0,
) -> LayoutBox:
    m = ctx.fonts.metrics(char, variant, style.size_level)
    item = GlyphItem(
        char=char,
        face=m.face,
        scale=ctx.scale(style) * factor,
        dx=0.0,
        dy=0.0,
        advance=m.advance * factor,
        ascent=m.ascent * factor,
        descent=m.descent * factor,
        missing=m.missing,
    )
    return LayoutBox(
        width=item.advance,
        ascent=item.ascent,
        descent=item.descent,
        items=(item,),
        italic_correction=m.italic_correction * factor,
        leading_italic=m.face.font_style == "italic" and not m.missing,
        atom=atom,
    )


def _center_on_axis(box: LayoutBox, style: Style, ctx: LayoutContext) -> LayoutBox:
    axis = ctx.spacing.axis_height * ctx.scale(style)
    dy = (box.ascent - box.descent) / 2 - axis
    return LayoutBox(
        width=box.width,
        ascent=box.ascent - dy,
        descent=box.descent + dy,
        items=(BoxItem(box, 0.0, dy),),
        atom=box.atom,
        limits=box.limits,
    )


# ---------------- Dispatch ---------------------------------------------------

def layout(node: Node, style: Style, ctx: LayoutContext) -> LayoutBox:
    """Lay out one node under `style`."""
    if isinstance(node, Symbol):
        return _layout_symbol(node, style, ctx)
    if isinstance(node, Operator):
        return _layout_operator(node, style, ctx)
    if isinstance(node, Space):
        return LayoutBox(width=node.width * ctx.scale(style), ascent=0.0, descent=0.0, atom=None)
    if isinstance(node, Group):
        return _layout_sequence(node.children, style, ctx)
    if isinstance(node, Script):
        return _layout_script(node, style, ctx)
    if isinstance(node, Fraction):
        return _layout_fraction(node, style, ctx)
    if isinstance(node, Delimiter):
        return _layout_delimiter(node, style, ctx)
    if isinstance(node, Matrix):
        return _layout_matrix(node, style, ctx)
    if isinstance(node, Decoration):
        return _layout_decoration(node, style, ctx)
    if isinstance(node, Radical):
        return _layout_radical(node, style, ctx)
    if isinstance(node, StyledGroup):
        return _layout_styled(node, style, ctx)
    raise LayoutInvariantError(f"cannot lay out {type(node).__name__}")


def layout_formula(node: Node, ctx: LayoutContext) -> LayoutBox:
    """Lay out a whole formula in the configured root style and check bounds."""
    box = layout(node, Style(display=ctx.config.display), ctx)
    validate_box(box)
    return box


# ---------------- Atoms ------------------------------------------------------

def _layout_symbol(node: Symbol, style: Style, ctx: LayoutContext) -> LayoutBox:
    variant = node.variant or style.variant
    char = sym.map_alphanumeric(node.char, variant) if variant else node.char
    return _glyph_box(char, variant, style, ctx, atom=node.atom)


def _layout_operator(node: Operator, style: Style, ctx: LayoutContext) -> LayoutBox:
    if node.limits is None:
        limits = style.display and node.text in sym.DEFAULT_LIMIT_OPERATORS
    else:
        limits = node.limits

    if node.large:
        factor = ctx.spacing.display_operator_scale if style.display else 1.0
        glyph = _glyph_box(node.text, FontVariant.ROMAN, style, ctx, factor=factor)
        box = _center_on_axis(glyph, style, ctx)
        return replace(box, atom=AtomClass.OP, limits=limits)

    row = _row([
        (0.0, _glyph_box(ch, FontVariant.ROMAN, style, ctx)) for ch in node.text
    ])
    return replace(row, atom=AtomClass.OP, limits=limits)


def _layout_styled(node: StyledGroup, style: Style, ctx: LayoutContext) -> LayoutBox:
    inner = style
    if node.variant is not None:
        inner = replace(inner, variant=node.variant)
    if node.display is not None:
        inner = replace(inner, display=node.display, size_level=0)
    return layout(node.base, inner, ctx)


def _layout_sequence(children: tuple[Node, ...], style: Style, ctx: LayoutContext) -> LayoutBox:
    boxes = [layout(child, style, ctx) for child in children]
    atom_indexes = [i for i, box in enumerate(boxes) if box.atom is not None]
    effective = dict(zip(
        atom_indexes, demote_binaries([boxes[i].atom for i in atom_indexes])
    ))

    entries: list[tuple[float, LayoutBox]] = []
    prev: Optional[int] = None
    for i, box in enumerate(boxes):
        kern = 0.0
        if box.atom is not None:
            if prev is not None:
                kern += inter_atom_space(effective[prev], effective[i], style, ctx)
                before = boxes[prev]
                if before.italic_correction > 0 and not box.leading_italic:
                    kern += before.italic_correction
            prev = i
        entries.append((kern, box))

    row = _row(entries)
    trailing = boxes[-1].italic_correction if boxes and boxes[-1].atom is not None else 0.0
    return replace(
        row,
        italic_correction=trailing,
        leading_italic=bool(boxes) and boxes[0].leading_italic,
    )


# ---------------- Scripts ----------------------------------------------------

def _layout_script(node: Script, style: Style, ctx: LayoutContext) -> LayoutBox:
    if node.superscript is None and node.subscript is None:
        raise LayoutInvariantError("script node without superscript or subscript")

    base = layout(node.base, style, ctx)
    script_style = style.script(ctx.config.min_size_level)
    sup = layout(node.superscript, script_style, ctx) if node.superscript is not None else None
    sub = layout(node.subscript, script_style, ctx) if node.subscript is not None else None

    if base.limits:
        return _layout_limits(base, sup, sub, style, ctx)

    sp = ctx.spacing
    s = ctx.scale(style)
    items: list[Item] = [BoxItem(base, 0.0, 0.0)] if base.items else []
    ascent, descent = base.ascent, base.descent

    u = v = 0.0
    if sup is not None:
        u = max(sp.sup_min_rise * s, base.ascent - sp.sup_drop * s, sup.descent + sp.sup_bottom_min * s)
    if sub is not None:
        v = max(sp.sub_min_drop * s, base.descent + sp.sub_drop * s, sub.ascent - sp.sub_top_max * s)
    if sup is not None and sub is not None:
        gap = (u - sup.descent) - (sub.ascent - v)
        if gap < sp.script_min_gap * s:
            v += sp.script_min_gap * s - gap

    if sup is not None:
        items.append(BoxItem(sup, base.width, -u))
        ascent = max(ascent, u + sup.ascent)
        descent = max(descent, sup.descent - u)
    if sub is not None:
        items.append(BoxItem(sub, base.width, v))
        ascent = max(ascent, sub.ascent - v)
        descent = max(descent, v + sub.descent)

    script_width = max(sup.width if sup else 0.0, sub.width if sub else 0.0)
    return LayoutBox(
        width=base.width + script_width + sp.script_space * s,
        ascent=ascent,
        descent=descent,
        items=tuple(items),
        leading_italic=base.leading_italic,
        atom=base.atom,
    )


def _layout_limits(
    base: LayoutBox,
    sup: Optional[LayoutBox],
    sub: Optional[LayoutBox],
    style: Style,
    ctx: LayoutContext,
) -> LayoutBox:
    gap = ctx.spacing.limit_gap * ctx.scale(style)
    width = max(base.width, sup.width if sup else 0.0, sub.width if sub else 0.0)
    items: list[Item] = [BoxItem(base, (width - base.width) / 2, 0.0)]
    ascent, descent = base.ascent, base.descent

    if sup is not None:
        dy = -(base.ascent + gap + sup.descent)
        items.append(BoxItem(sup, (width - sup.width) / 2, dy))
        ascent = max(ascent, sup.ascent - dy)
    if sub is not None:
        dy = base.descent + gap + sub.ascent
        items.append(BoxItem(sub, (width - sub.width) / 2, dy))
        descent = max(descent, dy + sub.descent)

    return LayoutBox(
        width=width, ascent=ascent, descent=descent, items=tuple(items), atom=base.atom
    )


# ---------------- Fractions --------------------------------------------------

def _layout_fraction(node: Fraction, style: Style, ctx: LayoutContext) -> LayoutBox:
    sp = ctx.spacing
    display = style.display if node.display is None else node.display
    if display:
        part_level = style.size_level
    elif style.fraction_depth < sp.max_fraction_shrink_depth:
        part_level = max(ctx.config.min_size_level, style.size_level - 1)
    else:
        part_level = style.size_level
    part_style = replace(
        style, size_level=part_level, display=False, fraction_depth=style.fraction_depth + 1
    )

    num = layout(node.numerator, part_style, ctx)
    den = layout(node.denominator, part_style, ctx)

    s = ctx.scale(style)
    axis = sp.axis_height * s
    bar = sp.bar_thickness * s
    clearance = sp.bar_clearance * s
    pad = sp.fraction_padding * s
    width = max(num.width, den.width) + 2 * pad

    num_dy = -(axis + bar / 2 + clearance + num.descent)
    den_dy = -axis + bar / 2 + clearance + den.ascent
    items: list[Item] = [
        BoxItem(num, (width - num.width) / 2, num_dy),
        BoxItem(den, (width - den.width) / 2, den_dy),
    ]
    if node.has_bar:
        items.append(RuleItem(pad / 2, -(axis + bar / 2), width - pad, bar))

    return LayoutBox(
        width=width,
        ascent=num.ascent - num_dy,
        descent=den_dy + den.descent,
        items=tuple(items),
        atom=AtomClass.INNER,
    )


# ---------------- Delimiters -------------------------------------------------

def _layout_delimiter(node: Delimiter, style: Style, ctx: LayoutContext) -> LayoutBox:
    body = layout(node.body, style, ctx)

    if node.stretch:
        axis = ctx.spacing.axis_height * ctx.scale(style)
        needed = 2 * max(body.ascent - axis, body.descent + axis) * ctx.spacing.delimiter_factor
        left = stretchy_delimiter(node.left, needed, style, ctx)
        right = stretchy_delimiter(node.right, needed, style, ctx)
        atom = AtomClass.INNER
    else:
        left = _fixed_delimiter(node.left, node.size_step, style, ctx)
        right = _fixed_delimiter(node.right, node.size_step, style, ctx)
        if left is not None and right is None:
            atom = AtomClass.OPEN
        elif right is not None and left is None:
            atom = AtomClass.CLOSE
        else:
            atom = AtomClass.ORD

    entries = [(0.0, b) for b in (left, body, right) if b is not None]
    return replace(_row(entries), atom=atom)


def _fixed_delimiter(
    char: Optional[str], step: int, style: Style, ctx: LayoutContext
) -> Optional[LayoutBox]:
    if char is None:
        return None
    ladder = ctx.spacing.delimiter_scales
    factor = ladder[min(max(step, 0), len(ladder) - 1)]
    return _center_on_axis(_glyph_box(char, FontVariant.ROMAN, style, ctx, factor=factor), style, ctx)


def stretchy_delimiter(
    char: Optional[str], needed: float, style: Style, ctx: LayoutContext
) -> LayoutBox:
    """
    Delimiter at least `needed` em tall, centered on the math axis.

    Tries the size ladder first (smallest step that covers), then builds
    from pieces, and finally scales the glyph up uniformly.
    """
    sp = ctx.spacing
    s = ctx.scale(style)
    if char is None:
        return LayoutBox(width=sp.null_delimiter_space * s, ascent=0.0, descent=0.0)

    m = ctx.fonts.metrics(char, FontVariant.ROMAN, style.size_level)
    natural = m.ascent + m.descent
    if m.missing or natural <= 0:
        return _center_on_axis(_glyph_box(char, FontVariant.ROMAN, style, ctx), style, ctx)

    for factor in sp.delimiter_scales:
        if natural * factor >= needed - _EPS:
            glyph = _glyph_box(char, FontVariant.ROMAN, style, ctx, factor=factor)
            return _center_on_axis(glyph, style, ctx)

    if char in ("|", "‖"):
        return _rule_delimiter(char, m.advance, needed, style, ctx)
    if char in ("⟨", "⟩"):
        return _angle_delimiter(char, m.advance, needed, style, ctx)
    built = _piece_delimiter(char, needed, style, ctx)
    if built is not None:
        return built

    glyph = _glyph_box(char, FontVariant.ROMAN, style, ctx, factor=needed / natural)
    return _center_on_axis(glyph, style, ctx)


def _rule_delimiter(
    char: str, advance: float, needed: float, style: Style, ctx: LayoutContext
) -> LayoutBox:
    s = ctx.scale(style)
    axis = ctx.spacing.axis_height * s
    t = ctx.spacing.rule_thickness * s
    width = max(advance, 4 * t)
    top = -(axis + needed / 2)
    if char == "|":
        xs = [(width - t) / 2]
    else:
        xs = [width / 2 - 2 * t, width / 2 + t]
    items = tuple(RuleItem(x, top, t, needed) for x in xs)
    return LayoutBox(width=width, ascent=axis + needed / 2, descent=needed / 2 - axis, items=items)


def _angle_delimiter(
    char: str, advance: float, needed: float, style: Style, ctx: LayoutContext
) -> LayoutBox:
    s = ctx.scale(style)
    axis = ctx.spacing.axis_height * s
    t = ctx.spacing.rule_thickness * s
    width = max(advance, needed * 0.2)
    p = t / 2
    tip, tail = (p, width - p) if char == "⟨" else (width - p, p)
    d = (
        f"M {_fmt(tail)} {_fmt(p)} L {_fmt(tip)} {_fmt(needed / 2)} "
        f"L {_fmt(tail)} {_fmt(needed - p)}"
    )
    top = -(axis + needed / 2)
    path = PathItem(d, 0.0, top, width, 0.0, needed, stroke_width=t)
    return LayoutBox(width=width, ascent=axis + needed / 2, descent=needed / 2 - axis, items=(path,))


def _piece_delimiter(
    char: str, needed: float, style: Style, ctx: LayoutContext
) -> Optional[LayoutBox]:
    pieces = sym.DELIMITER_PIECES.get(char)
    if pieces is None:
        return None
    top, extender, middle, bottom = pieces
    if not all(ctx.fonts.has_glyph(c) for c in pieces if c is not None):
        return None

    def piece(c: str) -> LayoutBox:
        return _glyph_box(c, FontVariant.ROMAN, style, ctx)

    ext = piece(extender)
    if ext.height <= 0:
        return None
    ends = [piece(c) for c in (top, middle, bottom) if c is not None]
    remaining = max(0.0, needed - sum(b.height for b in ends))

    sequence: list[LayoutBox] = [piece(top)] if top is not None else []
    if middle is not None:
        half = max(1, math.ceil(remaining / 2 / ext.height))
        sequence += [ext] * half + [piece(middle)] + [ext] * half
    else:
        sequence += [ext] * max(1, math.ceil(remaining / ext.height))
    if bottom is not None:
        sequence.append(piece(bottom))

    items: list[Item] = []
    y = 0.0
    for box in sequence:
        items.append(BoxItem(box, 0.0, y + box.ascent))
        y += box.height
    stack = LayoutBox(
        width=max(b.width for b in sequence), ascent=0.0, descent=y, items=tuple(items)
    )
    return _center_on_axis(stack, style, ctx)


# ---------------- Matrices ---------------------------------------------------

def _layout_matrix(node: Matrix, style: Style, ctx: LayoutContext) -> LayoutBox:
    if not node.rows:
        raise LayoutInvariantError("matrix without rows")

    sp = ctx.spacing
    s = ctx.scale(style)
    cell_style = replace(style, display=False)
    grid = [[layout(cell, cell_style, ctx) for cell in row] for row in node.rows]

    columns = node.column_count
    col_widths = [0.0] * columns
    for row in grid:
        for j, box in enumerate(row):
            col_widths[j] = max(col_widths[j], box.width)

    row_ascents = [max([sp.array_strut_ascent * s] + [b.ascent for b in row]) for row in grid]
    row_descents = [max([sp.array_strut_descent * s] + [b.descent for b in row]) for row in grid]
    row_gap = sp.row_gap * s
    col_gap = sp.column_gap * s

    total_height = sum(row_ascents) + sum(row_descents) + row_gap * (len(grid) - 1)
    axis = sp.axis_height * s
    y = -(axis + total_height / 2)

    col_starts = []
    x = 0.0
    for w in col_widths:
        col_starts.append(x)
        x += w + col_gap

    items: list[Item] = []
    for i, row in enumerate(grid):
        baseline = y + row_ascents[i]
        for j, box in enumerate(row):
            if not box.items:
                continue
            align = node.align_for(j)
            if align == "l":
                dx = col_starts[j]
            elif align == "r":
                dx = col_starts[j] + col_widths[j] - box.width
            else:
                dx = col_starts[j] + (col_widths[j] - box.width) / 2
            items.append(BoxItem(box, dx, baseline))
        y = baseline + row_descents[i] + row_gap

    width = sum(col_widths) + col_gap * max(columns - 1, 0)
    return LayoutBox(
        width=width,
        ascent=axis + total_height / 2,
        descent=total_height / 2 - axis,
        items=tuple(items),
    )


# ---------------- Decorations ------------------------------------------------

_ARROW_HEADS: dict[DecorationKind, tuple[bool, bool, bool]] = {
    # kind: (head on the left, head on the right, double shaft)
    DecorationKind.VEC: (False, True, False),
    DecorationKind.OVERRIGHTARROW: (False, True, False),
    DecorationKind.OVERLEFTARROW: (True, False, False),
    DecorationKind.OVERLEFTRIGHTARROW: (True, True, False),
    DecorationKind.XRIGHTARROW: (False, True, False),
    DecorationKind.XLEFTARROW: (True, False, False),
    DecorationKind.XRIGHTARROW_DOUBLE: (False, True, True),
    DecorationKind.XLEFTARROW_DOUBLE: (True, False, True),
    DecorationKind.XLEFTRIGHTARROW_DOUBLE: (True, True, True),
}


def arrow_path(
    width: float, head: float, stroke: float, *, left: bool, right: bool, double: bool
) -> tuple[str, float]:
    """
    Horizontal arrow centered on y = 0. Returns (path data, half height).
    """
    p = stroke / 2
    half = head * (1.4 if double else 1.0)
    reach = half * 1.5
    parts: list[str] = []
    if double:
        g = half * 0.45
        x0 = p + (g if left else 0.0)
        x1 = width - p - (g if right else 0.0)
        parts.append(f"M {_fmt(x0)} {_fmt(-g)} L {_fmt(x1)} {_fmt(-g)}")
        parts.append(f"M {_fmt(x0)} {_fmt(g)} L {_fmt(x1)} {_fmt(g)}")
    else:
        parts.append(f"M {_fmt(p)} 0 L {_fmt(width - p)} 0")
    if right:
        tip = width - p
        parts.append(
            f"M {_fmt(tip - reach)} {_fmt(-half)} L {_fmt(tip)} 0 L {_fmt(tip - reach)} {_fmt(half)}"
        )
    if left:
        parts.append(
            f"M {_fmt(p + reach)} {_fmt(-half)} L {_fmt(p)} 0 L {_fmt(p + reach)} {_fmt(half)}"
        )
    return " ".join(parts), half + p


def brace_path(width: float, height: float, stroke: float, *, below: bool) -> str:
    """Horizontal curly brace centered on y = 0, tip up unless `below`."""
    p = stroke / 2
    sign = -1.0 if below else 1.0
    h = height / 2 - p
    r = min(h, max(width / 4 - p, 0.0))
    mid = width / 2
    end = width - p
    return (
        f"M {_fmt(p)} {_fmt(sign * h)} "
        f"Q {_fmt(p)} 0 {_fmt(p + r)} 0 "
        f"L {_fmt(mid - r)} 0 "
        f"Q {_fmt(mid)} 0 {_fmt(mid)} {_fmt(-sign * h)} "
        f"Q {_fmt(mid)} 0 {_fmt(mid + r)} 0 "
        f"L {_fmt(end - r)} 0 "
        f"Q {_fmt(end)} 0 {_fmt(end)} {_fmt(sign * h)}"
    )


def _wide_accent_path(kind: DecorationKind, width: float, height: float, stroke: float) -> tuple[str, float]:
    p = stroke / 2
    h = height / 2
    if kind is DecorationKind.WIDEHAT:
        d = f"M {_fmt(p)} {_fmt(h)} L {_fmt(width / 2)} {_fmt(-h)} L {_fmt(width - p)} {_fmt(h)}"
        return d, h + p
    d = (
        f"M {_fmt(p)} {_fmt(h * 0.5)} "
        f"C {_fmt(width * 0.3)} {_fmt(-h * 1.6)} {_fmt(width * 0.7)} {_fmt(h * 1.6)} "
        f"{_fmt(width - p)} {_fmt(-h * 0.5)}"
    )
    return d, h * 1.6 + p


def _attach_path(
    base: LayoutBox,
    d: str,
    width: float,
    half: float,
    stroke: float,
    *,
    below: bool,
    ctx: LayoutContext,
    style: Style,
) -> LayoutBox:
    clearance = ctx.spacing.decoration_clearance * ctx.scale(style)
    total = max(base.width, width)
    base_item = BoxItem(base, (total - base.width) / 2, 0.0)
    if below:
        dy = base.descent + clearance + half
        ascent, descent = base.ascent, dy + half
    else:
        dy = -(base.ascent + clearance + half)
        ascent, descent = half - dy, base.descent
    path = PathItem(d, (total - width) / 2, dy, width, half, half, stroke_width=stroke)
    return LayoutBox(
        width=total,
        ascent=ascent,
        descent=descent,
        items=(base_item, path),
        italic_correction=base.italic_correction,
        leading_italic=base.leading_italic,
        atom=base.atom,
    )


def _layout_decoration(node: Decoration, style: Style, ctx: LayoutContext) -> LayoutBox:
    kind = node.kind
    if kind.is_extensible_arrow:
        return _layout_extensible_arrow(node, style, ctx)

    base = layout(node.base, style, ctx)
    sp = ctx.spacing
    s = ctx.scale(style)
    clearance = sp.decoration_clearance * s
    t = sp.rule_thickness * s

    if kind in sym.ACCENT_GLYPHS:
        return _accent_glyph(base, sym.ACCENT_GLYPHS[kind], style, ctx)

    if kind is DecorationKind.CANCEL:
        p = t / 2
        d = (
            f"M {_fmt(p)} {_fmt(base.descent - p)} "
            f"L {_fmt(base.width - p)} {_fmt(-base.ascent + p)}"
        )
        stroke = PathItem(d, 0.0, 0.0, base.width, base.ascent, base.descent, stroke_width=t)
        return replace(base, items=(BoxItem(base, 0.0, 0.0), stroke))

    if kind in (DecorationKind.OVERLINE, DecorationKind.BAR):
        top = -(base.ascent + clearance + t)
        rule = RuleItem(0.0, top, base.width, t)
        return replace(
            base, ascent=base.ascent + clearance + 2 * t, items=(BoxItem(base, 0.0, 0.0), rule)
        )

    if kind is DecorationKind.UNDERLINE:
        rule = RuleItem(0.0, base.descent + clearance, base.width, t)
        return replace(
            base, descent=base.descent + clearance + 2 * t, items=(BoxItem(base, 0.0, 0.0), rule)
        )

    if kind in (DecorationKind.WIDEHAT, DecorationKind.WIDETILDE):
        width = max(base.width, sp.arrow_min_width * s)
        d, half = _wide_accent_path(kind, width, sp.accent_height * s, t)
        return _attach_path(base, d, width, half, t, below=False, ctx=ctx, style=style)

    if kind in (DecorationKind.OVERBRACE, DecorationKind.UNDERBRACE):
        below = kind.is_below
        height = sp.brace_height * s
        width = max(base.width, 2 * height)
        d = brace_path(width, height, t, below=below)
        box = _attach_path(base, d, width, height / 2, t, below=below, ctx=ctx, style=style)
        return replace(box, atom=AtomClass.OP, limits=True, italic_correction=0.0)

    heads = _ARROW_HEADS.get(kind)
    if heads is None:
        raise LayoutInvariantError(f"unsupported decoration {kind.value}")
    left, right, double = heads
    width = max(base.width, sp.arrow_min_width * s)
    d, half = arrow_path(width, sp.arrow_head_size * s, t, left=left, right=right, double=double)
    return _attach_path(base, d, width, half, t, below=False, ctx=ctx, style=style)


def _accent_glyph(base: LayoutBox, char: str, style: Style, ctx: LayoutContext) -> LayoutBox:
    clearance = ctx.spacing.decoration_clearance * ctx.scale(style)
    m = ctx.fonts.metrics(char, FontVariant.ROMAN, style.size_level)
    accent = _glyph_box(char, FontVariant.ROMAN, style, ctx)
    total = max(base.width, accent.width)
    raise_by = base.ascent + clearance - (0.0 if m.missing else m.ink_bottom)
    items = (
        BoxItem(base, (total - base.width) / 2, 0.0),
        BoxItem(accent, (total - accent.width) / 2, -raise_by),
    )
    return LayoutBox(
        width=total,
        ascent=max(base.ascent, raise_by + accent.ascent),
        descent=max(base.descent, accent.descent - raise_by),
        items=items,
        italic_correction=base.italic_correction,
        leading_italic=base.leading_italic,
        atom=base.atom,
    )


def _layout_extensible_arrow(node: Decoration, style: Style, ctx: LayoutContext) -> LayoutBox:
    sp = ctx.spacing
    s = ctx.scale(style)
    axis = sp.axis_height * s
    clearance = sp.decoration_clearance * s
    t = sp.rule_thickness * s
    label = layout(node.base, style.script(ctx.config.min_size_level), ctx)

    glyph_char = sym.EXTENSIBLE_ARROW_GLYPHS[node.kind]
    m = ctx.fonts.metrics(glyph_char, FontVariant.ROMAN, style.size_level)
    if not label.items and not m.missing:
        arrow = _center_on_axis(_glyph_box(glyph_char, FontVariant.ROMAN, style, ctx), style, ctx)
    else:
        width = max(label.width + 2 * sp.xarrow_padding * s, sp.xarrow_min_width * s)
        left, right, double = _ARROW_HEADS[node.kind]
        d, half = arrow_path(width, sp.arrow_head_size * s, t, left=left, right=right, double=double)
        arrow = LayoutBox(
            width=width,
            ascent=axis + half,
            descent=half - axis,
            items=(PathItem(d, 0.0, -axis, width, half, half, stroke_width=t),),
        )

    total = max(arrow.width, label.width)
    items: list[Item] = [BoxItem(arrow, (total - arrow.width) / 2, 0.0)]
    ascent = arrow.ascent
    if label.items:
        dy = -(arrow.ascent + clearance + label.descent)
        items.append(BoxItem(label, (total - label.width) / 2, dy))
        ascent = label.ascent - dy
    return LayoutBox(
        width=total,
        ascent=ascent,
        descent=max(arrow.descent, 0.0),
        items=tuple(items),
        atom=AtomClass.REL,
    )


# ---------------- Radicals ---------------------------------------------------

def _layout_radical(node: Radical, style: Style, ctx: LayoutContext) -> LayoutBox:
    sp = ctx.spacing
    s = ctx.scale(style)
    body = layout(node.body, style, ctx)
    t = sp.rule_thickness * s
    clearance = sp.radical_clearance * s

    rule_top = body.ascent + clearance + t
    needed = rule_top + body.descent
    m = ctx.fonts.metrics("√", FontVariant.ROMAN, style.size_level)
    natural = m.ascent + m.descent
    factor = 1.0
    if not m.missing and natural > 0:
        factor = next(
            (k for k in sp.delimiter_scales if natural * k >= needed - _EPS),
            needed / natural,
        )
    surd = _glyph_box("√", FontVariant.ROMAN, style, ctx, factor=factor)
    surd_dy = surd.ascent - rule_top
    radical_bottom = surd.descent + surd_dy

    index = None
    if node.index is not None:
        index_style = Style(size_level=ctx.config.min_size_level, variant=style.variant, display=False)
        index = layout(node.index, index_style, ctx)

    surd_x = 0.0
    index_x = 0.0
    if index is not None:
        kern = surd.width * 0.55
        if index.width > kern:
            surd_x = index.width - kern
        else:
            index_x = kern - index.width

    body_x = surd_x + surd.width
    rule_width = body.width + sp.thin_space * s
    items: list[Item] = [
        BoxItem(surd, surd_x, surd_dy),
        RuleItem(body_x, -rule_top, rule_width, t),
    ]
    if body.items:
        items.append(BoxItem(body, body_x, 0.0))

    ascent = rule_top
    descent = max(body.descent, radical_bottom)
    if index is not None and index.items:
        total = rule_top + radical_bottom
        index_bottom = -radical_bottom + total * sp.radical_index_raise
        index_dy = -(index_bottom + index.descent)
        items.append(BoxItem(index, index_x, index_dy))
        ascent = max(ascent, index.ascent - index_dy)
        descent = max(descent, index_dy + index.descent)

    return LayoutBox(
        width=body_x + rule_width,
        ascent=max(ascent, surd.ascent - surd_dy),
        descent=descent,
        items=tuple(items),
    )
