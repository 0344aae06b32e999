#!/usr/bin/env python3
"""
svg_renderer.py

LayoutBox tree -> standalone SVG document (UTF-8 bytes).

Two output modes:
  text   glyphs are <text> elements that reference the STIXGeneral family,
         optionally with the font files inlined as base64 @font-face rules
  paths  the text document is built first, then every <text> element is
         replaced by <path> outlines taken from the font; glyphs without
         an outline stay <text>, and embedded @font-face rules are kept
         only for the faces those leftovers use
"""
from __future__ import annotations

import html
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Optional

from config_loader import FormulaConfig, RenderMode
from formula_errors import RenderFailure
from formula_layout import BoxItem, GlyphItem, LayoutBox, PathItem, RuleItem
from glyph_metrics import Face, GlyphMetrics

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
XML_SPACE = "{http://www.w3.org/XML/1998/namespace}space"

ET.register_namespace("", SVG_NS)

_BASELINE_EPS = 1e-6


def escape_xml(text: str) -> str:
    """Escape the five XML reserved characters."""
    return html.escape(text, quote=True)


def _num(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


class RenderBuffer:
    """
    Ordered SVG fragments, joined once by getvalue().

    `capacity_hint` estimates the document size from the formula length and
    grows with the content. Python strings cannot be preallocated, so it is
    informational only.
    """

    def __init__(self, formula_length: int = 0):
        self.parts: list[str] = []
        self.capacity_hint = max(1024, formula_length * 96)
        self._size = 0

    def push(self, fragment: str) -> None:
        self.parts.append(fragment)
        self._size += len(fragment)
        if self._size > self.capacity_hint:
            self.capacity_hint = max(self.capacity_hint * 2, self._size)

    def __len__(self) -> int:
        return self._size

    def getvalue(self) -> str:
        return "".join(self.parts)

    def to_bytes(self) -> bytes:
        return self.getvalue().encode("utf-8")


# ---------------- Flattening -------------------------------------------------

@dataclass(frozen=True)
class PlacedGlyph:
    char: str
    face: Face
    scale: float
    x: float          # em, absolute
    baseline: float   # em, absolute, y down
    advance: float
    ascent: float
    missing: bool


@dataclass
class FlatScene:
    glyphs: list[PlacedGlyph] = field(default_factory=list)
    rules: list[tuple[float, float, float, float]] = field(default_factory=list)
    paths: list[tuple[PathItem, float, float]] = field(default_factory=list)


def flatten(box: LayoutBox, x: float = 0.0, y: float = 0.0, scene: Optional[FlatScene] = None) -> FlatScene:
    """
    Resolve nested offsets into absolute em coordinates, in tree order.
    """
    if scene is None:
        scene = FlatScene()
    for item in box.items:
        if isinstance(item, GlyphItem):
            scene.glyphs.append(PlacedGlyph(
                char=item.char,
                face=item.face,
                scale=item.scale,
                x=x + item.dx,
                baseline=y + item.dy,
                advance=item.advance,
                ascent=item.ascent,
                missing=item.missing,
            ))
        elif isinstance(item, RuleItem):
            scene.rules.append((x + item.dx, y + item.dy, item.width, item.height))
        elif isinstance(item, PathItem):
            scene.paths.append((item, x + item.dx, y + item.dy))
        elif isinstance(item, BoxItem):
            flatten(item.box, x + item.dx, y + item.dy, scene)
    return scene


def glyph_runs(glyphs: list[PlacedGlyph]) -> list[list[PlacedGlyph]]:
    """
    Group consecutive drawable glyphs sharing face, size and baseline.
    Missing glyphs never join a run.
    """
    runs: list[list[PlacedGlyph]] = []
    for glyph in glyphs:
        if glyph.missing:
            continue
        if runs:
            last = runs[-1][-1]
            if (
                last.face is glyph.face
                and abs(last.scale - glyph.scale) < _BASELINE_EPS
                and abs(last.baseline - glyph.baseline) < _BASELINE_EPS
            ):
                runs[-1].append(glyph)
                continue
        runs.append([glyph])
    return runs


# ---------------- Text mode --------------------------------------------------

def _font_face_css(fonts: GlyphMetrics, faces: list[Face]) -> str:
    rules = []
    for face in faces:
        rules.append(
            f'@font-face{{font-family:"{fonts.family_name}";'
            f"font-style:{face.font_style};font-weight:{face.font_weight};"
            f'src:url(data:font/ttf;base64,{fonts.font_bytes_base64(face)}) format("truetype");}}'
        )
    return "".join(rules)


def _text_element(run: list[PlacedGlyph], px: float, ox: float, oy: float) -> str:
    first = run[0]
    xs = " ".join(_num(ox + g.x * px) for g in run)
    text = "".join(g.char for g in run)
    attrs = [f'x="{xs}"', f'y="{_num(oy + first.baseline * px)}"', f'font-size="{_num(first.scale * px)}"']
    if first.face.font_style != "normal":
        attrs.append(f'font-style="{first.face.font_style}"')
    if first.face.font_weight != "normal":
        attrs.append(f'font-weight="{first.face.font_weight}"')
    if any(ch.isspace() for ch in text):
        attrs.append('xml:space="preserve"')
    return f"<text {' '.join(attrs)}>{escape_xml(text)}</text>"


def render_text_document(
    box: LayoutBox,
    *,
    cfg: FormulaConfig,
    fonts: GlyphMetrics,
    embed_font: bool,
    formula_length: int = 0,
) -> str:
    px = cfg.font_size
    pad = cfg.padding * px
    width = max(box.width, 0.0) * px + 2 * pad
    height = (max(box.ascent, 0.0) + max(box.descent, 0.0)) * px + 2 * pad
    ox = pad
    oy = pad + max(box.ascent, 0.0) * px

    scene = flatten(box)
    runs = glyph_runs(scene.glyphs)

    buf = RenderBuffer(formula_length)
    buf.push(
        f'<svg xmlns="{SVG_NS}" width="{_num(width)}" height="{_num(height)}" '
        f'viewBox="0 0 {_num(width)} {_num(height)}">'
    )

    if embed_font and runs:
        used: list[Face] = []
        for run in runs:
            if run[0].face not in used:
                used.append(run[0].face)
        buf.push(f"<defs><style>{_font_face_css(fonts, used)}</style></defs>")

    if runs:
        buf.push(f'<g font-family="{escape_xml(fonts.family_name)}" fill="currentColor">')
        for run in runs:
            buf.push(_text_element(run, px, ox, oy))
        buf.push("</g>")

    if scene.rules:
        buf.push('<g fill="currentColor">')
        for x, y, w, h in scene.rules:
            buf.push(
                f'<rect x="{_num(ox + x * px)}" y="{_num(oy + y * px)}" '
                f'width="{_num(w * px)}" height="{_num(h * px)}"/>'
            )
        buf.push("</g>")

    if scene.paths:
        buf.push('<g stroke="currentColor" stroke-linecap="round" stroke-linejoin="round">')
        for item, x, y in scene.paths:
            fill = "currentColor" if item.fill else "none"
            stroke = f' stroke-width="{_num(item.stroke_width)}"' if item.stroke_width > 0 else ' stroke="none"'
            buf.push(
                f'<path d="{item.d}" fill="{fill}"{stroke} '
                f'transform="translate({_num(ox + x * px)} {_num(oy + y * px)}) scale({_num(px)})"/>'
            )
        buf.push("</g>")

    for glyph in scene.glyphs:
        if not glyph.missing:
            continue
        w = glyph.advance * px
        h = glyph.ascent * px
        inset = min(w, h) * 0.1
        buf.push(
            f'<rect class="missing-glyph" x="{_num(ox + glyph.x * px + inset)}" '
            f'y="{_num(oy + glyph.baseline * px - h + inset)}" '
            f'width="{_num(w - 2 * inset)}" height="{_num(h - 2 * inset)}" '
            f'fill="none" stroke="currentColor" stroke-width="1"/>'
        )

    buf.push("</svg>")
    return buf.getvalue()


# ---------------- Paths mode -------------------------------------------------

def _leftover_text(text_el: ET.Element, chars: list[str], xs: list[str]) -> ET.Element:
    el = ET.Element(text_el.tag, dict(text_el.attrib))
    el.set("x", " ".join(xs))
    el.text = "".join(chars)
    return el


def _text_to_paths(text_el: ET.Element, fonts: GlyphMetrics) -> Optional[list[ET.Element]]:
    """
    Replacements for one <text> element: a <path> per outlined glyph, and
    a smaller <text> for each stretch of glyphs without an outline. None
    when the element cannot be read at all.
    """
    chars = list(text_el.text or "")
    xs = (text_el.get("x") or "").split()
    if not chars or len(xs) != len(chars):
        return None
    try:
        y = float(text_el.get("y", "0"))
        size = float(text_el.get("font-size", "0"))
        positions = [float(v) for v in xs]
    except ValueError:
        return None

    face = Face.from_style(text_el.get("font-style"), text_el.get("font-weight"))
    k = size / fonts.units_per_em(face)
    out: list[ET.Element] = []
    kept_chars: list[str] = []
    kept_xs: list[str] = []
    for char, raw_x, x in zip(chars, xs, positions):
        d = fonts.outline(char, face)
        if d is None:
            logger.debug("No outline for %r in %s face; keeping text", char, face.value)
            kept_chars.append(char)
            kept_xs.append(raw_x)
            continue
        if kept_chars:
            out.append(_leftover_text(text_el, kept_chars, kept_xs))
            kept_chars, kept_xs = [], []
        if not d:
            continue
        el = ET.Element(f"{{{SVG_NS}}}path")
        el.set("d", d)
        el.set("transform", f"translate({_num(x)} {_num(y)}) scale({k:.6g} {-k:.6g})")
        out.append(el)
    if kept_chars:
        out.append(_leftover_text(text_el, kept_chars, kept_xs))
    return out


def _prune_font_faces(root: ET.Element, fonts: GlyphMetrics) -> None:
    """
    Drop embedded @font-face rules no remaining <text> needs.
    """
    defs = root.find(f"{{{SVG_NS}}}defs")
    style = defs.find(f"{{{SVG_NS}}}style") if defs is not None else None
    if style is None:
        return
    used: list[Face] = []
    for el in root.iter(f"{{{SVG_NS}}}text"):
        face = Face.from_style(el.get("font-style"), el.get("font-weight"))
        if face not in used:
            used.append(face)
    if not used:
        root.remove(defs)
        return
    style.text = _font_face_css(fonts, used)


def convert_text_to_paths(document: str, fonts: GlyphMetrics) -> str:
    try:
        root = ET.fromstring(document)
    except ET.ParseError as exc:
        raise RenderFailure(f"generated SVG is not well-formed: {exc}") from exc

    text_tag = f"{{{SVG_NS}}}text"
    for parent in list(root.iter()):
        children = list(parent)
        if not any(child.tag == text_tag for child in children):
            continue
        rebuilt: list[ET.Element] = []
        for child in children:
            if child.tag != text_tag:
                rebuilt.append(child)
                continue
            paths = _text_to_paths(child, fonts)
            rebuilt.extend(paths if paths is not None else [child])
        for child in children:
            parent.remove(child)
        parent.extend(rebuilt)

    _prune_font_faces(root, fonts)
    return ET.tostring(root, encoding="unicode")


def render(
    box: LayoutBox,
    *,
    cfg: FormulaConfig,
    fonts: GlyphMetrics,
    mode: RenderMode,
    embed_font: bool,
    formula_length: int = 0,
) -> bytes:
    """
    Serialize a laid-out formula. Returns the SVG document as UTF-8 bytes.
    """
    document = render_text_document(
        box, cfg=cfg, fonts=fonts, embed_font=embed_font, formula_length=formula_length
    )
    if mode is RenderMode.PATHS:
        document = convert_text_to_paths(document, fonts)
    return document.encode("utf-8")
