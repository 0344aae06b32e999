#!/usr/bin/env python3
"""
glyph_metrics.py

Glyph metrics provider backed by the STIX General fonts that ship inside
matplotlib's data directory.

Font files are read and parsed with fontTools once per process (per font
directory). After that the parsed family is read-only; only the per-face
outline/bounds caches are filled in, under one lock per face.

Units: everything returned by `GlyphMetrics.metrics()` is in em of the base
font size, already multiplied by the scale of the requested size level.
`outline()` returns SVG path data in font units (y axis pointing up).
"""
from __future__ import annotations

import base64
import io
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

import matplotlib
from fontTools.pens.boundsPen import BoundsPen
from fontTools.pens.svgPathPen import SVGPathPen
from fontTools.ttLib import TTFont

from config_loader import FormulaConfig
from formula_ast import FontVariant
from formula_errors import FontLoadError

logger = logging.getLogger(__name__)

FAMILY_NAME = "STIXGeneral"

# Fallback box for glyphs no face can draw, in em
MISSING_ADVANCE = 0.5
MISSING_ASCENT = 0.7


class Face(str, Enum):
    REGULAR = "regular"
    ITALIC = "italic"
    BOLD = "bold"
    BOLD_ITALIC = "bold-italic"

    @property
    def font_style(self) -> str:
        return "italic" if self in (Face.ITALIC, Face.BOLD_ITALIC) else "normal"

    @property
    def font_weight(self) -> str:
        return "bold" if self in (Face.BOLD, Face.BOLD_ITALIC) else "normal"

    @classmethod
    def from_style(cls, font_style: Optional[str], font_weight: Optional[str]) -> "Face":
        italic = (font_style or "normal") == "italic"
        bold = (font_weight or "normal") == "bold"
        if italic and bold:
            return cls.BOLD_ITALIC
        if italic:
            return cls.ITALIC
        if bold:
            return cls.BOLD
        return cls.REGULAR


FACE_FILES: dict[Face, str] = {
    Face.REGULAR: "STIXGeneral.ttf",
    Face.ITALIC: "STIXGeneralItalic.ttf",
    Face.BOLD: "STIXGeneralBol.ttf",
    Face.BOLD_ITALIC: "STIXGeneralBolIta.ttf",
}

# Lowercase greek is set in italic by default in math mode
_ITALIC_GREEK = set("αβγδϵεζηθϑικλμνξοπϖρϱσςτυϕφχψω")


def face_for(char: str, variant: Optional[FontVariant]) -> Face:
    """
    Face a character is drawn from under a font variant.

    Alphabet variants (sans, blackboard, ...) are realized by code point
    mapping beforehand, so they use the regular face.
    """
    if variant is FontVariant.ITALIC:
        return Face.ITALIC
    if variant is FontVariant.BOLD:
        return Face.BOLD
    if variant is FontVariant.BOLD_ITALIC:
        return Face.BOLD_ITALIC
    if variant is None or variant is FontVariant.MATH:
        if char.isascii() and char.isalpha():
            return Face.ITALIC
        if char in _ITALIC_GREEK or char in "ıȷ":
            return Face.ITALIC
    return Face.REGULAR


@dataclass(frozen=True)
class GlyphMetric:
    advance: float
    ascent: float
    descent: float
    italic_correction: float
    missing: bool
    face: Face = Face.REGULAR
    # y of the lowest ink point, positive above the baseline
    ink_bottom: float = 0.0


@dataclass(frozen=True)
class _RawBounds:
    advance: int
    x_max: float
    y_min: float
    y_max: float


class LoadedFace:
    """
    One parsed font file. `cmap` and the font bytes are immutable after
    construction; fontTools objects are only touched while holding `lock`.
    """

    def __init__(self, face: Face, path: Path, data: bytes):
        self.face = face
        self.path = path
        self.data = data
        self.lock = threading.Lock()
        self._font = TTFont(io.BytesIO(data), lazy=False)
        self._glyph_set = self._font.getGlyphSet()
        self._hmtx = self._font["hmtx"]
        self.cmap: dict[int, str] = dict(self._font.getBestCmap() or {})
        self.units_per_em: int = self._font["head"].unitsPerEm
        self._bounds: dict[str, _RawBounds] = {}
        self._outlines: dict[str, str] = {}
        self._base64: Optional[str] = None

    def has_glyph(self, char: str) -> bool:
        return len(char) == 1 and ord(char) in self.cmap

    def bounds(self, char: str) -> Optional[_RawBounds]:
        name = self.cmap.get(ord(char)) if len(char) == 1 else None
        if name is None:
            return None
        cached = self._bounds.get(name)
        if cached is not None:
            return cached
        with self.lock:
            cached = self._bounds.get(name)
            if cached is None:
                pen = BoundsPen(self._glyph_set)
                self._glyph_set[name].draw(pen)
                advance = self._hmtx[name][0]
                if pen.bounds is None:
                    cached = _RawBounds(advance, 0.0, 0.0, 0.0)
                else:
                    _, y_min, x_max, y_max = pen.bounds
                    cached = _RawBounds(advance, x_max, y_min, y_max)
                self._bounds[name] = cached
        return cached

    def outline(self, char: str) -> Optional[str]:
        name = self.cmap.get(ord(char)) if len(char) == 1 else None
        if name is None:
            return None
        cached = self._outlines.get(name)
        if cached is not None:
            return cached
        with self.lock:
            cached = self._outlines.get(name)
            if cached is None:
                pen = SVGPathPen(self._glyph_set)
                self._glyph_set[name].draw(pen)
                cached = pen.getCommands()
                self._outlines[name] = cached
        return cached

    def base64_data(self) -> str:
        if self._base64 is None:
            self._base64 = base64.b64encode(self.data).decode("ascii")
        return self._base64


class FontFamily:
    """The four STIX General faces loaded from one directory."""

    def __init__(self, directory: Path, faces: dict[Face, LoadedFace]):
        self.directory = directory
        self.faces = faces
        self.name = FAMILY_NAME

    @classmethod
    def load(cls, directory: Path) -> "FontFamily":
        faces: dict[Face, LoadedFace] = {}
        for face, filename in FACE_FILES.items():
            path = directory / filename
            if not path.is_file():
                raise FontLoadError(f"font file not found: {path}")
            try:
                faces[face] = LoadedFace(face, path, path.read_bytes())
            except Exception as exc:
                raise FontLoadError(f"cannot parse font {path}: {exc}") from exc
        logger.info("Loaded %s (%d faces) from %s", FAMILY_NAME, len(faces), directory)
        return cls(directory, faces)

    def face(self, face: Face) -> LoadedFace:
        return self.faces[face]


def default_font_dir() -> Path:
    return Path(matplotlib.get_data_path()) / "fonts" / "ttf"


_FAMILIES: dict[Path, FontFamily] = {}
_FAMILY_LOCK = threading.Lock()


def load_family(font_dir: Optional[Path] = None) -> FontFamily:
    """
    Return the parsed family for `font_dir` (matplotlib's fonts by default),
    loading it on first use. Safe to call from many threads.
    """
    directory = Path(font_dir) if font_dir is not None else default_font_dir()
    family = _FAMILIES.get(directory)
    if family is not None:
        return family
    with _FAMILY_LOCK:
        family = _FAMILIES.get(directory)
        if family is None:
            family = FontFamily.load(directory)
            _FAMILIES[directory] = family
    return family


class GlyphMetrics:
    """
    Scaled per-glyph metrics with a shared cache keyed by
    (glyph, font variant, size level).
    """

    def __init__(self, family: FontFamily, size_scales: dict[int, float]):
        self.family = family
        self.size_scales = dict(size_scales)
        self._min_level = min(self.size_scales)
        self._cache: dict[tuple[str, Optional[FontVariant], int], GlyphMetric] = {}

    @property
    def family_name(self) -> str:
        return self.family.name

    def scale_for(self, size_level: int) -> float:
        return self.size_scales[max(self._min_level, min(0, size_level))]

    def has_glyph(self, char: str, face: Face = Face.REGULAR) -> bool:
        return self.family.face(face).has_glyph(char)

    def resolve_face(self, char: str, variant: Optional[FontVariant]) -> Optional[Face]:
        """Face that can draw `char`, falling back to regular; None if none can."""
        preferred = face_for(char, variant)
        if self.family.face(preferred).has_glyph(char):
            return preferred
        if preferred is not Face.REGULAR and self.family.face(Face.REGULAR).has_glyph(char):
            return Face.REGULAR
        return None

    def metrics(
        self, char: str, variant: Optional[FontVariant] = None, size_level: int = 0
    ) -> GlyphMetric:
        key = (char, variant, size_level)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        metric = self._measure(char, variant, size_level)
        # concurrent misses compute equal values, so the last write is harmless
        self._cache[key] = metric
        return self._cache[key]

    def _measure(self, char: str, variant: Optional[FontVariant], size_level: int) -> GlyphMetric:
        scale = self.scale_for(size_level)
        face = self.resolve_face(char, variant)
        if face is None:
            logger.debug("No glyph for %r (U+%04X); using fallback box", char,
                         ord(char) if len(char) == 1 else 0)
            return GlyphMetric(
                advance=MISSING_ADVANCE * scale,
                ascent=MISSING_ASCENT * scale,
                descent=0.0,
                italic_correction=0.0,
                missing=True,
            )

        loaded = self.family.face(face)
        raw = loaded.bounds(char)
        k = scale / loaded.units_per_em
        italic = 0.0
        if face.font_style == "italic":
            italic = max(0.0, raw.x_max - raw.advance) * k
        return GlyphMetric(
            advance=raw.advance * k,
            ascent=max(0.0, raw.y_max) * k,
            descent=max(0.0, -raw.y_min) * k,
            italic_correction=italic,
            missing=False,
            face=face,
            ink_bottom=raw.y_min * k,
        )

    def outline(self, char: str, face: Face) -> Optional[str]:
        """SVG path data of `char` in font units, or None if the face lacks it."""
        return self.family.face(face).outline(char)

    def units_per_em(self, face: Face) -> int:
        return self.family.face(face).units_per_em

    def font_bytes_base64(self, face: Face) -> str:
        return self.family.face(face).base64_data()


_PROVIDERS: dict[tuple, GlyphMetrics] = {}
_PROVIDER_LOCK = threading.Lock()


def metrics_for(cfg: FormulaConfig) -> GlyphMetrics:
    """
    Process-wide provider for a configuration's font directory and size
    scales. Raises FontLoadError when the fonts cannot be loaded.
    """
    key = (cfg.font_dir, tuple(sorted(cfg.size_scales.items())))
    provider = _PROVIDERS.get(key)
    if provider is not None:
        return provider
    family = load_family(cfg.font_dir)
    with _PROVIDER_LOCK:
        provider = _PROVIDERS.get(key)
        if provider is None:
            provider = GlyphMetrics(family, cfg.size_scales)
            _PROVIDERS[key] = provider
    return provider
