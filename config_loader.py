# config_loader.py
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping
import os

try:
    import yaml  # PyYAML
except ImportError as e:
    raise SystemExit(
        "Missing dependency: PyYAML\n"
        "Install with: python -m pip install pyyaml"
    ) from e


class RenderMode(str, Enum):
    """How glyphs end up in the SVG document."""
    TEXT = "text"
    PATHS = "paths"

    @classmethod
    def parse(cls, value: Any) -> "RenderMode":
        if isinstance(value, RenderMode):
            return value
        normalized = str(value).strip().lower()
        if normalized in {"path", "paths", "outline", "outlines"}:
            return cls.PATHS
        if normalized == "text":
            return cls.TEXT
        raise ValueError(f"Unknown render mode: {value!r}")


@dataclass(frozen=True)
class SpacingConstants:
    """
    Named layout constants, in em of the base font size.

    Every value is scaled by the size-level factor of the style it is used in,
    so a superscript inside a superscript gets proportionally tighter spacing.
    """
    # math axis (fraction bars, centered delimiters, large operators)
    axis_height: float = 0.25

    # inter-atom glue
    thin_space: float = 3 / 18
    medium_space: float = 4 / 18
    thick_space: float = 5 / 18

    # scripts
    sup_min_rise: float = 0.413
    sup_drop: float = 0.386
    sup_bottom_min: float = 0.108
    sub_min_drop: float = 0.15
    sub_drop: float = 0.05
    sub_top_max: float = 0.344
    script_min_gap: float = 0.16
    script_space: float = 0.05
    limit_gap: float = 0.12

    # fractions
    bar_thickness: float = 0.05
    bar_clearance: float = 0.1
    fraction_padding: float = 0.12
    max_fraction_shrink_depth: int = 2

    # delimiters and radicals
    null_delimiter_space: float = 0.12
    delimiter_factor: float = 0.9
    delimiter_scales: tuple[float, ...] = (1.0, 1.2, 1.8, 2.4, 3.0)
    radical_clearance: float = 0.1
    radical_index_raise: float = 0.6

    # matrices
    column_gap: float = 0.8
    row_gap: float = 0.3
    array_strut_ascent: float = 0.7
    array_strut_descent: float = 0.3

    # decorations
    decoration_clearance: float = 0.1
    rule_thickness: float = 0.05
    arrow_min_width: float = 0.5
    arrow_head_size: float = 0.12
    accent_height: float = 0.15
    brace_height: float = 0.2
    xarrow_min_width: float = 1.2
    xarrow_padding: float = 0.25

    # large operators in display style
    display_operator_scale: float = 1.4


class FormulaConfig:
    """
    Immutable-ish container for render configuration.
    """

    def __init__(
        self,
        *,
        font_size: float,
        padding: float,
        mode: RenderMode,
        embed_font: bool,
        display: bool,
        max_input_bytes: int,
        max_nesting_depth: int,
        font_dir: Path | None,
        size_scales: dict[int, float],
        spacing: SpacingConstants,
    ):
        self.font_size = font_size
        self.padding = padding
        self.mode = mode
        self.embed_font = embed_font
        self.display = display
        self.max_input_bytes = max_input_bytes
        self.max_nesting_depth = max_nesting_depth
        self.font_dir = font_dir
        self.size_scales = size_scales
        self.spacing = spacing

    @property
    def min_size_level(self) -> int:
        return min(self.size_scales)

    def scale_for(self, size_level: int) -> float:
        """Scale factor of a size level, clamped to the floor level."""
        level = max(self.min_size_level, min(0, size_level))
        return self.size_scales[level]

    def with_overrides(self, **changes: Any) -> "FormulaConfig":
        values = {
            "font_size": self.font_size,
            "padding": self.padding,
            "mode": self.mode,
            "embed_font": self.embed_font,
            "display": self.display,
            "max_input_bytes": self.max_input_bytes,
            "max_nesting_depth": self.max_nesting_depth,
            "font_dir": self.font_dir,
            "size_scales": dict(self.size_scales),
            "spacing": self.spacing,
        }
        unknown = set(changes) - set(values)
        if unknown:
            raise TypeError(f"Unknown config fields: {sorted(unknown)}")
        values.update(changes)
        return FormulaConfig(**values)


# ---------------- Defaults ---------------------------------------------------

DEFAULT_CONFIG = FormulaConfig(
    font_size=28.0,
    padding=0.2,
    mode=RenderMode.TEXT,
    embed_font=False,
    display=True,
    max_input_bytes=5 * 1024,
    max_nesting_depth=64,
    font_dir=None,
    size_scales={0: 1.0, -1: 0.7, -2: 0.5},
    spacing=SpacingConstants(),
)

# Parser and layout recurse once per level; deeper limits overflow the stack
MAX_NESTING_DEPTH_CEILING = 100

ENV_MODE = "FORMULA_SVG_MODE"
ENV_EMBED_FONT = "FORMULA_SVG_EMBED_FONT"

_TRUTHY = {"1", "true", "yes", "on"}

# ---------------- Loader -----------------------------------------------------


def _as_positive_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be a number")
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return float(value)


def _as_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    raise TypeError(f"{name} must be a boolean")


def _as_size_scales(value: Any) -> dict[int, float]:
    if not isinstance(value, dict) or not value:
        raise TypeError("size_scales must be a non-empty mapping of level -> scale")
    scales = {int(k): _as_positive_float(v, f"size_scales[{k}]") for k, v in value.items()}
    if 0 not in scales:
        raise ValueError("size_scales must define level 0")
    if any(level > 0 for level in scales):
        raise ValueError("size levels are 0 or negative")
    expected = set(range(min(scales), 1))
    if set(scales) != expected:
        raise ValueError("size_scales must define every level down to its floor")
    return scales


def _as_spacing(value: Any) -> SpacingConstants:
    if value is None:
        return DEFAULT_CONFIG.spacing
    if not isinstance(value, dict):
        raise TypeError("spacing must be a mapping")

    known = {f.name: f for f in fields(SpacingConstants)}
    unknown = set(value) - set(known)
    if unknown:
        raise ValueError(f"Unknown spacing constants: {sorted(unknown)}")

    changes: dict[str, Any] = {}
    for key, raw in value.items():
        default = getattr(DEFAULT_CONFIG.spacing, key)
        if isinstance(default, tuple):
            if not isinstance(raw, list) or not raw:
                raise TypeError(f"spacing.{key} must be a non-empty list of numbers")
            changes[key] = tuple(sorted(_as_positive_float(v, f"spacing.{key}") for v in raw))
        elif isinstance(default, int):
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise TypeError(f"spacing.{key} must be an integer")
            changes[key] = raw
        else:
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                raise TypeError(f"spacing.{key} must be a number")
            changes[key] = float(raw)
    return replace(DEFAULT_CONFIG.spacing, **changes)


def load_config(path: Path) -> FormulaConfig:
    """
    Load YAML config and return a FormulaConfig instance.

    Missing keys keep their DEFAULT_CONFIG values.
    """
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise TypeError("Config root must be a mapping")

    render = raw.get("render", {}) or {}
    if not isinstance(render, dict):
        raise TypeError("render must be a mapping")

    font_dir = render.get("font_dir")
    max_input = render.get("max_input_bytes", DEFAULT_CONFIG.max_input_bytes)
    if isinstance(max_input, bool) or not isinstance(max_input, int) or max_input <= 0:
        raise TypeError("render.max_input_bytes must be a positive integer")
    max_depth = render.get("max_nesting_depth", DEFAULT_CONFIG.max_nesting_depth)
    if isinstance(max_depth, bool) or not isinstance(max_depth, int) or max_depth <= 0:
        raise TypeError("render.max_nesting_depth must be a positive integer")
    if max_depth > MAX_NESTING_DEPTH_CEILING:
        raise ValueError(f"render.max_nesting_depth must be at most {MAX_NESTING_DEPTH_CEILING}")

    return FormulaConfig(
        font_size=_as_positive_float(
            render.get("font_size", DEFAULT_CONFIG.font_size), "render.font_size"
        ),
        padding=float(render.get("padding", DEFAULT_CONFIG.padding)),
        mode=RenderMode.parse(render.get("mode", DEFAULT_CONFIG.mode.value)),
        embed_font=_as_bool(
            render.get("embed_font", DEFAULT_CONFIG.embed_font), "render.embed_font"
        ),
        display=_as_bool(render.get("display", DEFAULT_CONFIG.display), "render.display"),
        max_input_bytes=max_input,
        max_nesting_depth=max_depth,
        font_dir=Path(font_dir).expanduser() if font_dir else None,
        size_scales=_as_size_scales(raw.get("size_scales", DEFAULT_CONFIG.size_scales)),
        spacing=_as_spacing(raw.get("spacing")),
    )


def apply_env_overrides(
    cfg: FormulaConfig,
    environ: Mapping[str, str] | None = None,
) -> FormulaConfig:
    """
    Apply FORMULA_SVG_MODE / FORMULA_SVG_EMBED_FONT on top of `cfg`.

    Unrecognized mode values fall back to text, like an unset variable.
    """
    env = os.environ if environ is None else environ
    changes: dict[str, Any] = {}

    raw_mode = env.get(ENV_MODE)
    if raw_mode is not None:
        try:
            changes["mode"] = RenderMode.parse(raw_mode)
        except ValueError:
            changes["mode"] = RenderMode.TEXT

    raw_embed = env.get(ENV_EMBED_FONT)
    if raw_embed is not None:
        changes["embed_font"] = raw_embed.strip().lower() in _TRUTHY

    return cfg.with_overrides(**changes) if changes else cfg
