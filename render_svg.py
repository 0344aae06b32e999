#!/usr/bin/env python3
from __future__ import annotations

import argparse
import hashlib
import logging
import os
import sys
import time
from pathlib import Path

from config_loader import DEFAULT_CONFIG, FormulaConfig, load_config
from formula_ast import dump_tree
from formula_errors import RenderError
from formula_parser import parse
from formula_render import render_formula
from helper import print_lines_gray

FORMULA_ENV = "FORMULA"

DEFAULT_FORMULA = (
    r"P_{bid} = \min\left(\max\left(P_{settle} \times \left(1 - \alpha \cdot "
    r"\frac{P_{settle} - P_{mid}}{P_{settle} + P_{mid}}\right), P_{floor}\right), "
    r"P_{settle}\right)"
)


def output_path_for(formula: str, output_dir: Path) -> Path:
    """
    Content-addressed output file: <output_dir>/<sha256 of formula>.svg
    """
    digest = hashlib.sha256(formula.encode("utf-8")).hexdigest()
    return output_dir / f"{digest}.svg"


def choose_formula(positional: str | None) -> str:
    """FORMULA env var, else the positional argument, else the sample."""
    from_env = os.environ.get(FORMULA_ENV)
    if from_env:
        return from_env
    if positional:
        return positional
    return DEFAULT_FORMULA


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="render-svg",
        description="Render a LaTeX formula to <output-dir>/<sha256>.svg.",
    )
    parser.add_argument(
        "formula",
        nargs="?",
        default=None,
        help=f"Formula to render (the {FORMULA_ENV} environment variable wins)",
    )
    parser.add_argument(
        "--mode",
        choices=["text", "paths"],
        default=None,
        help="Glyph output mode (default: config / FORMULA_SVG_MODE / text)",
    )
    parser.add_argument(
        "--embed-font",
        action="store_true",
        default=None,
        help="Inline the font as base64 @font-face",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML config (default: built-in defaults)",
    )
    parser.add_argument(
        "--output-dir",
        default="output_svg",
        help="Directory for rendered files (default: output_svg)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level and dump the parsed formula tree",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    cfg: FormulaConfig = DEFAULT_CONFIG
    if args.config:
        try:
            cfg = load_config(Path(args.config))
        except Exception as e:
            print(f"[render_svg] Failed to load config: {e}", file=sys.stderr)
            return 2

    formula = choose_formula(args.formula)
    out_path = output_path_for(formula, Path(args.output_dir))
    if out_path.exists():
        print(f"[render_svg] Already rendered, skipping: {out_path}")
        return 0

    start = time.perf_counter()
    try:
        if args.debug:
            print_lines_gray(dump_tree(parse(formula, cfg)))
        svg = render_formula(formula, args.mode, args.embed_font, cfg=cfg)
    except RenderError as e:
        print(f"[render_svg] Render failed (code {e.code}): {e.message}", file=sys.stderr)
        return 1
    elapsed_ms = (time.perf_counter() - start) * 1000

    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(svg)
    except OSError as e:
        print(f"[render_svg] Failed to write {out_path}: {e}", file=sys.stderr)
        return 1

    print(f"[render_svg] Wrote {out_path} ({elapsed_ms:.3f} ms)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
