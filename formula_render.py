#!/usr/bin/env python3
"""
formula_render.py

Public pipeline: formula string -> parse -> layout -> SVG bytes.

    svg = render_formula(r"\\frac{a}{b}")
    svg = render_formula(r"x^2", mode="paths", embed_font=False)
    results = render_formula_batch([r"a+b", r"\\sqrt{x}"])

Defaults for mode / embed_font come from the configuration, overridden by
FORMULA_SVG_MODE / FORMULA_SVG_EMBED_FONT; explicit arguments win over both.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from config_loader import DEFAULT_CONFIG, FormulaConfig, RenderMode, apply_env_overrides
from formula_errors import InternalRenderError, InvalidArgument, InvalidUtf8, RenderError
from formula_layout import LayoutContext, layout_formula
from formula_parser import parse
from glyph_metrics import metrics_for
from svg_renderer import render

logger = logging.getLogger(__name__)

FormulaInput = Union[str, bytes]


def decode_formula(formula: FormulaInput) -> str:
    if isinstance(formula, str):
        return formula
    if isinstance(formula, (bytes, bytearray, memoryview)):
        try:
            return bytes(formula).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidUtf8(f"at byte {exc.start}") from exc
    raise InvalidArgument(f"formula must be str or bytes, not {type(formula).__name__}")


def resolve_config(
    mode: Optional[Union[RenderMode, str]] = None,
    embed_font: Optional[bool] = None,
    cfg: Optional[FormulaConfig] = None,
) -> FormulaConfig:
    """Apply env overrides to `cfg`, then the explicit call arguments."""
    resolved = apply_env_overrides(cfg if cfg is not None else DEFAULT_CONFIG)
    changes = {}
    if mode is not None:
        try:
            changes["mode"] = RenderMode.parse(mode)
        except ValueError as exc:
            raise InvalidArgument(str(exc)) from exc
    if embed_font is not None:
        changes["embed_font"] = bool(embed_font)
    return resolved.with_overrides(**changes) if changes else resolved


def render_formula(
    formula: FormulaInput,
    mode: Optional[Union[RenderMode, str]] = None,
    embed_font: Optional[bool] = None,
    *,
    cfg: Optional[FormulaConfig] = None,
) -> bytes:
    """
    Render one formula to a standalone SVG document (UTF-8 bytes).

    Raises a RenderError subclass on failure. Anything unexpected is logged
    and re-raised as InternalRenderError.
    """
    resolved = resolve_config(mode, embed_font, cfg)
    text = decode_formula(formula)
    try:
        tree = parse(text, resolved)
        fonts = metrics_for(resolved)
        box = layout_formula(tree, LayoutContext(resolved, fonts))
        return render(
            box,
            cfg=resolved,
            fonts=fonts,
            mode=resolved.mode,
            embed_font=resolved.embed_font,
            formula_length=len(text),
        )
    except RenderError:
        raise
    except Exception as exc:
        logger.exception("Unexpected failure while rendering %r", text[:80])
        raise InternalRenderError(f"internal error: {exc}") from exc


@dataclass(frozen=True)
class BatchResult:
    formula: FormulaInput
    svg: Optional[bytes] = None
    error: Optional[RenderError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def render_formula_batch(
    formulas: Iterable[FormulaInput],
    mode: Optional[Union[RenderMode, str]] = None,
    embed_font: Optional[bool] = None,
    *,
    cfg: Optional[FormulaConfig] = None,
    max_workers: Optional[int] = None,
) -> list[BatchResult]:
    """
    Render many formulas on a thread pool. Results keep input order; a
    failing formula yields a BatchResult carrying its error.
    """
    items = list(formulas)
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [
            pool.submit(render_formula, formula, mode, embed_font, cfg=cfg)
            for formula in items
        ]

    results: list[BatchResult] = []
    for formula, future in zip(items, futures):
        try:
            results.append(BatchResult(formula, svg=future.result()))
        except RenderError as err:
            results.append(BatchResult(formula, error=err))
    return results
