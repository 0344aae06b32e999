#!/usr/bin/env python3
"""
formula_symbols.py

Static lookup tables for the supported command set.

formula_parser builds its command table from these; formula_layout uses the
delimiter piece table and the alphabet mapping.
"""
from __future__ import annotations

from typing import Optional

from formula_ast import AtomClass, DecorationKind, FontVariant

# ---------------- Symbols ----------------------------------------------------

GREEK: dict[str, str] = {
    "alpha": "α", "beta": "β", "gamma": "γ", "delta": "δ", "epsilon": "ϵ",
    "varepsilon": "ε", "zeta": "ζ", "eta": "η", "theta": "θ", "vartheta": "ϑ",
    "iota": "ι", "kappa": "κ", "lambda": "λ", "mu": "μ", "nu": "ν", "xi": "ξ",
    "omicron": "ο", "pi": "π", "varpi": "ϖ", "rho": "ρ", "varrho": "ϱ",
    "sigma": "σ", "varsigma": "ς", "tau": "τ", "upsilon": "υ", "phi": "ϕ",
    "varphi": "φ", "chi": "χ", "psi": "ψ", "omega": "ω",
    "Gamma": "Γ", "Delta": "Δ", "Theta": "Θ", "Lambda": "Λ", "Xi": "Ξ",
    "Pi": "Π", "Sigma": "Σ", "Upsilon": "Υ", "Phi": "Φ", "Psi": "Ψ",
    "Omega": "Ω",
}

BINARY_OPERATORS: dict[str, str] = {
    "times": "×", "cdot": "⋅", "div": "÷", "pm": "±", "mp": "∓",
    "ast": "∗", "star": "⋆", "circ": "∘", "bullet": "∙",
    "oplus": "⊕", "ominus": "⊖", "otimes": "⊗", "oslash": "⊘", "odot": "⊙",
    "wedge": "∧", "land": "∧", "vee": "∨", "lor": "∨",
    "cap": "∩", "cup": "∪", "setminus": "∖", "sqcup": "⊔", "sqcap": "⊓",
    "uplus": "⊎", "amalg": "⨿", "dagger": "†", "ddagger": "‡", "wr": "≀",
    "diamond": "⋄", "triangleleft": "◁", "triangleright": "▷",
}

RELATIONS: dict[str, str] = {
    "leq": "≤", "le": "≤", "geq": "≥", "ge": "≥", "neq": "≠", "ne": "≠",
    "leqslant": "⩽", "geqslant": "⩾", "ll": "≪", "gg": "≫",
    "approx": "≈", "equiv": "≡", "sim": "∼", "simeq": "≃", "cong": "≅",
    "asymp": "≍", "doteq": "≐", "coloneqq": "≔", "propto": "∝",
    "parallel": "∥", "perp": "⊥", "mid": "∣",
    "subset": "⊂", "supset": "⊃", "subseteq": "⊆", "supseteq": "⊇",
    "in": "∈", "ni": "∋", "notin": "∉",
    "vdash": "⊢", "dashv": "⊣", "models": "⊨",
    "prec": "≺", "succ": "≻", "preceq": "⪯", "succeq": "⪰",
    # arrows are relations in TeX
    "to": "→", "rightarrow": "→", "leftarrow": "←", "gets": "←",
    "leftrightarrow": "↔", "Rightarrow": "⇒", "Leftarrow": "⇐",
    "Leftrightarrow": "⇔", "iff": "⟺", "implies": "⟹", "impliedby": "⟸",
    "mapsto": "↦", "longmapsto": "⟼",
    "longrightarrow": "⟶", "longleftarrow": "⟵", "longleftrightarrow": "⟷",
    "Longrightarrow": "⟹", "Longleftarrow": "⟸", "Longleftrightarrow": "⟺",
    "uparrow": "↑", "downarrow": "↓", "updownarrow": "↕",
    "Uparrow": "⇑", "Downarrow": "⇓", "Updownarrow": "⇕",
    "nearrow": "↗", "searrow": "↘", "swarrow": "↙", "nwarrow": "↖",
    "hookrightarrow": "↪", "hookleftarrow": "↩",
    "rightleftharpoons": "⇌", "leftrightharpoons": "⇋",
}

ORDINARY_SYMBOLS: dict[str, str] = {
    "infty": "∞", "forall": "∀", "exists": "∃", "nexists": "∄",
    "partial": "∂", "nabla": "∇", "emptyset": "∅", "varnothing": "∅",
    "ell": "ℓ", "hbar": "ℏ", "hslash": "ℏ", "Re": "ℜ", "Im": "ℑ",
    "aleph": "ℵ", "beth": "ℶ", "wp": "℘", "angle": "∠", "triangle": "△",
    "prime": "′", "neg": "¬", "lnot": "¬", "top": "⊤", "bot": "⊥",
    "dots": "…", "ldots": "…", "cdots": "⋯", "vdots": "⋮", "ddots": "⋱",
    "surd": "√", "degree": "°", "checkmark": "✓", "S": "§", "P": "¶",
    "clubsuit": "♣", "diamondsuit": "♢", "heartsuit": "♡", "spadesuit": "♠",
    "flat": "♭", "natural": "♮", "sharp": "♯", "imath": "ı", "jmath": "ȷ",
    "backslash": "∖", "vert": "|", "Vert": "‖", "|": "‖",
}

PUNCTUATION_COMMANDS: dict[str, str] = {
    "colon": ":",
}

OPEN_COMMANDS: dict[str, str] = {
    "langle": "⟨", "lceil": "⌈", "lfloor": "⌊", "lbrace": "{",
    "lvert": "|", "lVert": "‖", "{": "{",
}

CLOSE_COMMANDS: dict[str, str] = {
    "rangle": "⟩", "rceil": "⌉", "rfloor": "⌋", "rbrace": "}",
    "rvert": "|", "rVert": "‖", "}": "}",
}

# \% \$ \& \_ \# produce the literal character
ESCAPED_CHARACTERS: dict[str, str] = {
    "%": "%", "$": "$", "&": "&", "_": "_", "#": "#",
}

# Atom class of plain (non-command) characters. Letters and digits are ORD.
CHARACTER_ATOMS: dict[str, AtomClass] = {
    "+": AtomClass.BIN, "-": AtomClass.BIN, "*": AtomClass.BIN,
    "=": AtomClass.REL, "<": AtomClass.REL, ">": AtomClass.REL,
    ":": AtomClass.REL,
    ",": AtomClass.PUNCT, ";": AtomClass.PUNCT,
    "(": AtomClass.OPEN, "[": AtomClass.OPEN,
    ")": AtomClass.CLOSE, "]": AtomClass.CLOSE,
    "!": AtomClass.CLOSE, "?": AtomClass.CLOSE,
}

# Characters whose typeset glyph differs from the ASCII input
CHARACTER_GLYPHS: dict[str, str] = {
    "-": "−",
    "*": "∗",
    "'": "′",
}

# ---------------- Spacing ----------------------------------------------------

SPACING_COMMANDS: dict[str, float] = {
    ",": 3 / 18,
    "thinspace": 3 / 18,
    ":": 4 / 18,
    ">": 4 / 18,
    "medspace": 4 / 18,
    ";": 5 / 18,
    "thickspace": 5 / 18,
    "!": -3 / 18,
    "negthinspace": -3 / 18,
    " ": 1 / 3,
    "quad": 1.0,
    "qquad": 2.0,
}

# ---------------- Operators --------------------------------------------------

# Upright function names without limits
FUNCTION_NAMES: tuple[str, ...] = (
    "sin", "cos", "tan", "sec", "csc", "cot",
    "sinh", "cosh", "tanh", "csch", "sech", "coth",
    "arcsin", "arccos", "arctan", "arccsc", "arcsec", "arccot",
    "arsinh", "arcosh", "artanh", "arcsch", "arsech", "arcoth",
    "log", "ln", "lg", "exp", "ker", "dim", "deg", "hom", "arg",
)

# Upright names that take limits in display style
LIMIT_FUNCTION_NAMES: dict[str, str] = {
    "lim": "lim",
    "limsup": "lim sup",
    "liminf": "lim inf",
    "max": "max",
    "min": "min",
    "sup": "sup",
    "inf": "inf",
    "argmax": "arg max",
    "argmin": "arg min",
    "det": "det",
    "gcd": "gcd",
    "Pr": "Pr",
}

# Large operator glyph and whether it takes limits by default
LARGE_OPERATORS: dict[str, tuple[str, bool]] = {
    "sum": ("∑", True),
    "prod": ("∏", True),
    "coprod": ("∐", True),
    "bigcup": ("⋃", True),
    "bigcap": ("⋂", True),
    "bigsqcup": ("⨆", True),
    "bigvee": ("⋁", True),
    "bigwedge": ("⋀", True),
    "bigoplus": ("⨁", True),
    "bigotimes": ("⨂", True),
    "bigodot": ("⨀", True),
    "biguplus": ("⨄", True),
    "int": ("∫", False),
    "iint": ("∬", False),
    "iiint": ("∭", False),
    "oint": ("∮", False),
}

# ---------------- Delimiters -------------------------------------------------

DELIMITER_COMMANDS: dict[str, Optional[str]] = {
    "langle": "⟨", "rangle": "⟩",
    "lceil": "⌈", "rceil": "⌉",
    "lfloor": "⌊", "rfloor": "⌋",
    "lbrace": "{", "rbrace": "}", "{": "{", "}": "}",
    "lvert": "|", "rvert": "|", "vert": "|",
    "lVert": "‖", "rVert": "‖", "Vert": "‖", "|": "‖",
    "backslash": "∖",
    "uparrow": "↑", "downarrow": "↓", "updownarrow": "↕",
}

DELIMITER_CHARACTERS: frozenset[str] = frozenset("()[]|/.")

# \big( and friends: ladder step and the atom class they produce
BIG_DELIMITER_COMMANDS: dict[str, tuple[int, AtomClass]] = {
    "big": (1, AtomClass.ORD), "Big": (2, AtomClass.ORD),
    "bigg": (3, AtomClass.ORD), "Bigg": (4, AtomClass.ORD),
    "bigl": (1, AtomClass.OPEN), "Bigl": (2, AtomClass.OPEN),
    "biggl": (3, AtomClass.OPEN), "Biggl": (4, AtomClass.OPEN),
    "bigr": (1, AtomClass.CLOSE), "Bigr": (2, AtomClass.CLOSE),
    "biggr": (3, AtomClass.CLOSE), "Biggr": (4, AtomClass.CLOSE),
}

# Unicode bracket pieces used to build delimiters taller than the ladder:
# (top, extender, middle, bottom); None means "use the extender there".
DELIMITER_PIECES: dict[str, tuple[Optional[str], str, Optional[str], Optional[str]]] = {
    "(": ("⎛", "⎜", None, "⎝"),
    ")": ("⎞", "⎟", None, "⎠"),
    "[": ("⎡", "⎢", None, "⎣"),
    "]": ("⎤", "⎥", None, "⎦"),
    "{": ("⎧", "⎪", "⎨", "⎩"),
    "}": ("⎫", "⎪", "⎬", "⎭"),
    "⌈": ("⎡", "⎢", None, None),
    "⌉": ("⎤", "⎥", None, None),
    "⌊": (None, "⎢", None, "⎣"),
    "⌋": (None, "⎥", None, "⎦"),
}

# ---------------- Environments -----------------------------------------------

# name -> (left delimiter, right delimiter, default column alignment)
ENVIRONMENTS: dict[str, tuple[Optional[str], Optional[str], str]] = {
    "matrix": (None, None, ""),
    "smallmatrix": (None, None, ""),
    "pmatrix": ("(", ")", ""),
    "bmatrix": ("[", "]", ""),
    "Bmatrix": ("{", "}", ""),
    "vmatrix": ("|", "|", ""),
    "Vmatrix": ("‖", "‖", ""),
    "cases": ("{", None, "ll"),
    "aligned": (None, None, "rlrlrlrl"),
    "align": (None, None, "rlrlrlrl"),
    "align*": (None, None, "rlrlrlrl"),
    "gathered": (None, None, ""),
    "array": (None, None, ""),
}

# ---------------- Decorations and styles -------------------------------------

DECORATION_COMMANDS: dict[str, DecorationKind] = {
    "hat": DecorationKind.HAT,
    "widehat": DecorationKind.WIDEHAT,
    "tilde": DecorationKind.TILDE,
    "widetilde": DecorationKind.WIDETILDE,
    "bar": DecorationKind.BAR,
    "overline": DecorationKind.OVERLINE,
    "underline": DecorationKind.UNDERLINE,
    "dot": DecorationKind.DOT,
    "ddot": DecorationKind.DDOT,
    "vec": DecorationKind.VEC,
    "overrightarrow": DecorationKind.OVERRIGHTARROW,
    "overleftarrow": DecorationKind.OVERLEFTARROW,
    "overleftrightarrow": DecorationKind.OVERLEFTRIGHTARROW,
    "overbrace": DecorationKind.OVERBRACE,
    "underbrace": DecorationKind.UNDERBRACE,
    "cancel": DecorationKind.CANCEL,
    "xrightarrow": DecorationKind.XRIGHTARROW,
    "xleftarrow": DecorationKind.XLEFTARROW,
    "xRightarrow": DecorationKind.XRIGHTARROW_DOUBLE,
    "xLeftarrow": DecorationKind.XLEFTARROW_DOUBLE,
    "xLeftrightarrow": DecorationKind.XLEFTRIGHTARROW_DOUBLE,
}

# Accents drawn with a glyph from the font
ACCENT_GLYPHS: dict[DecorationKind, str] = {
    DecorationKind.HAT: "ˆ",
    DecorationKind.TILDE: "˜",
    DecorationKind.DOT: "˙",
    DecorationKind.DDOT: "¨",
}

# Arrow glyph of each extensible arrow, used when it is short enough
EXTENSIBLE_ARROW_GLYPHS: dict[DecorationKind, str] = {
    DecorationKind.XRIGHTARROW: "→",
    DecorationKind.XLEFTARROW: "←",
    DecorationKind.XRIGHTARROW_DOUBLE: "⇒",
    DecorationKind.XLEFTARROW_DOUBLE: "⇐",
    DecorationKind.XLEFTRIGHTARROW_DOUBLE: "⇔",
}

STYLE_COMMANDS: dict[str, FontVariant] = {
    "mathbf": FontVariant.BOLD,
    "mathit": FontVariant.ITALIC,
    "mathrm": FontVariant.ROMAN,
    "mathsf": FontVariant.SANS,
    "mathtt": FontVariant.MONO,
    "mathbb": FontVariant.BLACKBOARD,
    "mathcal": FontVariant.CALLIGRAPHIC,
    "mathscr": FontVariant.CALLIGRAPHIC,
    "mathfrak": FontVariant.FRAKTUR,
    "boldsymbol": FontVariant.BOLD_ITALIC,
    "mathnormal": FontVariant.MATH,
}

# Commands whose braced argument is taken verbatim, spaces included
TEXT_COMMANDS: dict[str, FontVariant] = {
    "text": FontVariant.TEXT,
    "textrm": FontVariant.TEXT,
    "mbox": FontVariant.TEXT,
    "textbf": FontVariant.BOLD,
    "textit": FontVariant.ITALIC,
}

# ---------------- Alphabets --------------------------------------------------

# (capital A, small a, digit 0) code points per alphabet; None = unsupported
_ALPHABET_BASES: dict[FontVariant, tuple[int, Optional[int], Optional[int]]] = {
    FontVariant.SANS: (0x1D5A0, 0x1D5BA, 0x1D7E2),
    FontVariant.MONO: (0x1D670, 0x1D68A, 0x1D7F6),
    FontVariant.BLACKBOARD: (0x1D538, 0x1D552, 0x1D7D8),
    FontVariant.CALLIGRAPHIC: (0x1D49C, 0x1D4B6, None),
    FontVariant.FRAKTUR: (0x1D504, 0x1D51E, None),
}

# Letters that live in the Letterlike Symbols block instead
_ALPHABET_HOLES: dict[FontVariant, dict[str, str]] = {
    FontVariant.BLACKBOARD: {
        "C": "ℂ", "H": "ℍ", "N": "ℕ", "P": "ℙ", "Q": "ℚ", "R": "ℝ", "Z": "ℤ",
    },
    FontVariant.CALLIGRAPHIC: {
        "B": "ℬ", "E": "ℰ", "F": "ℱ", "H": "ℋ", "I": "ℐ", "L": "ℒ",
        "M": "ℳ", "R": "ℛ", "e": "ℯ", "g": "ℊ", "o": "ℴ",
    },
    FontVariant.FRAKTUR: {
        "C": "ℭ", "H": "ℌ", "I": "ℑ", "R": "ℜ", "Z": "ℨ",
    },
}


def map_alphanumeric(ch: str, variant: FontVariant) -> str:
    """
    Map an ASCII letter or digit to its Mathematical Alphanumeric Symbol for
    the alphabet variants. Any other character is returned unchanged.
    """
    bases = _ALPHABET_BASES.get(variant)
    if bases is None or len(ch) != 1 or not ch.isascii():
        return ch

    hole = _ALPHABET_HOLES.get(variant, {}).get(ch)
    if hole is not None:
        return hole

    capital, small, digit = bases
    if "A" <= ch <= "Z":
        return chr(capital + ord(ch) - ord("A"))
    if "a" <= ch <= "z" and small is not None:
        return chr(small + ord(ch) - ord("a"))
    if "0" <= ch <= "9" and digit is not None:
        return chr(digit + ord(ch) - ord("0"))
    return ch


# Operators whose scripts become limits in display style unless overridden
DEFAULT_LIMIT_OPERATORS: frozenset[str] = frozenset(
    [glyph for glyph, limits in LARGE_OPERATORS.values() if limits]
    + list(LIMIT_FUNCTION_NAMES.values())
)
