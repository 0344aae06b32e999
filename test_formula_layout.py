# test_formula_layout.py
#
# Run:
#   python -m unittest -v

import unittest

import formula_layout as m
from config_loader import DEFAULT_CONFIG
from formula_ast import AtomClass
from formula_errors import LayoutInvariantError
from formula_parser import parse
from glyph_metrics import metrics_for

A = AtomClass


def glyphs(box: m.LayoutBox) -> list:
    """All glyph items of a box tree, in tree order."""
    found = []
    for item in box.items:
        if isinstance(item, m.GlyphItem):
            found.append(item)
        elif isinstance(item, m.BoxItem):
            found.extend(glyphs(item.box))
    return found


COMPLEX_FORMULAS = [
    r"\sum_{i=1}^{n} \frac{x_i^2}{\sqrt[3]{1+y_i}}",
    r"\left( \begin{matrix} a & b \\ c & d \end{matrix} \right)",
    r"\overbrace{a+b}^{n} \xrightarrow{f} \hat{x} \vec{v} \cancel{z}",
    r"\int\limits_0^\infty e^{-x^2} dx = \frac{\sqrt{\pi}}{2}",
    r"\left\langle \frac{\frac{a}{b}}{\frac{c}{d}} \right\rangle \left\| y \right\|",
    r"\begin{cases} x & x \geq 0 \\ -x & x < 0 \end{cases}",
    r"\mathbb{R} \to \mathcal{L} \quad \text{for all } x",
    r"\lim_{x \to 0} \frac{\sin x}{x} = 1",
]


class TestLayout(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx = m.LayoutContext(DEFAULT_CONFIG, metrics_for(DEFAULT_CONFIG))
        self.sp = DEFAULT_CONFIG.spacing

    # ---------- helpers ----------
    def lay(self, source: str, display: bool = True) -> m.LayoutBox:
        return m.layout(parse(source), m.Style(display=display), self.ctx)

    def width_of(self, source: str, display: bool = False) -> float:
        return self.lay(source, display).width

    # ---------- spacing ----------
    def test_demote_leading_binary(self):
        self.assertEqual(m.demote_binaries([A.BIN, A.ORD]), [A.ORD, A.ORD])

    def test_demote_binary_before_relation(self):
        self.assertEqual(
            m.demote_binaries([A.ORD, A.BIN, A.REL, A.ORD]), [A.ORD, A.ORD, A.REL, A.ORD]
        )

    def test_binary_between_ordinaries_stays(self):
        self.assertEqual(m.demote_binaries([A.ORD, A.BIN, A.ORD]), [A.ORD, A.BIN, A.ORD])

    def test_inter_atom_space(self):
        self.assertAlmostEqual(
            m.inter_atom_space(A.ORD, A.REL, m.Style(), self.ctx), self.sp.thick_space
        )
        self.assertEqual(m.inter_atom_space(A.ORD, A.REL, m.Style(size_level=-1), self.ctx), 0.0)
        self.assertAlmostEqual(
            m.inter_atom_space(A.ORD, A.OP, m.Style(size_level=-1), self.ctx),
            self.sp.thin_space * 0.7,
        )

    def test_relation_is_spaced(self):
        tight = self.width_of("1") + self.width_of("=") + self.width_of("2")
        self.assertAlmostEqual(self.width_of("1=2"), tight + 2 * self.sp.thick_space, places=6)

    def test_explicit_space(self):
        plain = self.width_of("1") + self.width_of("2")
        self.assertAlmostEqual(self.width_of(r"1\quad 2"), plain + 1.0, places=6)

    # ---------- italic correction ----------
    def test_italic_correction_before_upright_atom(self):
        f = self.lay("f", display=False)
        self.assertGreater(f.italic_correction, 0.0)
        for upright in (")", "1"):
            tight = f.width + self.width_of(upright)
            self.assertAlmostEqual(
                self.width_of("f" + upright), tight + f.italic_correction, places=6, msg=upright
            )

    def test_no_italic_correction_between_italic_glyphs(self):
        f = self.lay("f", display=False)
        self.assertTrue(f.leading_italic)
        self.assertAlmostEqual(self.width_of("ff"), 2 * f.width, places=6)

    # ---------- scripts ----------
    def test_superscript_is_raised(self):
        box = self.lay("x^2")
        sup = box.items[1]
        self.assertLess(sup.dy, 0)
        self.assertEqual(sup.dx, box.items[0].box.width)
        self.assertAlmostEqual(sup.box.items[0].scale, 0.7)

    def test_script_gap(self):
        for source in ("x_i^2", r"x^{\frac{a}{b}}_{\frac{c}{d}}", r"\Gamma^{y_j}_{k^2}"):
            box = self.lay(source)
            _, sup, sub = box.items
            gap = (sub.dy - sub.box.ascent) - (sup.dy + sup.box.descent)
            self.assertGreaterEqual(gap, self.sp.script_min_gap - 1e-9, source)

    def test_nested_script_floor(self):
        scales = {g.char: g.scale for g in glyphs(self.lay("x^{y^{z^w}}"))}
        self.assertEqual(
            [scales[c] for c in "xyzw"], [1.0, 0.7, 0.5, 0.5]
        )

    def test_display_limits_are_stacked(self):
        box = self.lay(r"\sum_{i}^{n}", display=True)
        base, sup, sub = box.items
        self.assertLess(sup.dy + sup.box.descent, base.dy - base.box.ascent + 1e-9)
        self.assertGreater(sub.dy - sub.box.ascent, base.box.descent - 1e-9)

    def test_text_style_limits_go_right(self):
        box = self.lay(r"\sum_{i}^{n}", display=False)
        base, sup, _ = box.items
        self.assertEqual(sup.dx, base.box.width)

    # ---------- fractions ----------
    def test_fraction_height(self):
        box = self.lay(r"\frac{a}{b}")
        num, den, bar = box.items
        expected = (
            num.box.height + den.box.height
            + 2 * self.sp.bar_clearance + self.sp.bar_thickness
        )
        self.assertAlmostEqual(box.height, expected, places=9)

    def test_fraction_parts_are_centered(self):
        box = self.lay(r"\frac{a}{bbb}")
        num, den, _ = box.items
        self.assertAlmostEqual(num.dx + num.box.width / 2, den.dx + den.box.width / 2)
        self.assertAlmostEqual(num.dx + num.box.width / 2, box.width / 2)

    def test_fraction_bar_on_axis(self):
        box = self.lay(r"\frac{a}{b}")
        bar = box.items[2]
        self.assertIsInstance(bar, m.RuleItem)
        self.assertAlmostEqual(bar.dy + bar.height / 2, -self.sp.axis_height)

    def test_text_fraction_shrinks(self):
        box = self.lay(r"\frac{a}{b}", display=False)
        self.assertAlmostEqual(box.items[0].box.items[0].scale, 0.7)
        box = self.lay(r"\frac{a}{b}", display=True)
        self.assertAlmostEqual(box.items[0].box.items[0].scale, 1.0)

    # ---------- matrices ----------
    def test_matrix_width(self):
        box = self.lay(r"\begin{matrix}a&bb\\ccc&d\end{matrix}")
        col0 = max(self.width_of("a"), self.width_of("ccc"))
        col1 = max(self.width_of("bb"), self.width_of("d"))
        self.assertAlmostEqual(box.width, col0 + col1 + self.sp.column_gap, places=9)

    def test_matrix_ragged_rows(self):
        box = self.lay(r"\begin{matrix}a&b&c\\d\end{matrix}")
        widths = [
            max(self.width_of("a"), self.width_of("d")),
            self.width_of("b"),
            self.width_of("c"),
        ]
        self.assertAlmostEqual(box.width, sum(widths) + 2 * self.sp.column_gap, places=9)

    # ---------- delimiters ----------
    def test_stretchy_delimiter_covers_body(self):
        for source in (
            r"\left( \frac{\frac{a}{b}}{\frac{c}{d}} \right)",
            r"\left[ \begin{matrix} a\\b\\c\\d\\e\\f \end{matrix} \right]",
            r"\left| \begin{matrix} a\\b\\c\\d\\e\\f \end{matrix} \right|",
            r"\left\langle \begin{matrix} a\\b\\c\\d \end{matrix} \right\rangle",
        ):
            box = self.lay(source)
            left, body, _ = box.items
            axis = self.sp.axis_height
            needed = 2 * max(body.box.ascent - axis, body.box.descent + axis) * self.sp.delimiter_factor
            self.assertGreaterEqual(left.box.height, needed - 1e-6, source)

    def test_null_delimiter_takes_space(self):
        box = self.lay(r"\left. x \right)")
        self.assertEqual(len(box.items), 2)
        self.assertAlmostEqual(box.items[0].dx, self.sp.null_delimiter_space)

    def test_big_delimiter_is_larger(self):
        plain = self.lay("(")
        big = self.lay(r"\Big(")
        self.assertGreater(big.height, plain.height)

    # ---------- decorations and radicals ----------
    def test_overline_adds_height(self):
        self.assertGreater(self.lay(r"\overline{x}").ascent, self.lay("x").ascent)

    def test_radical_rule_clears_body(self):
        box = self.lay(r"\sqrt{x}")
        rule = next(item for item in box.items if isinstance(item, m.RuleItem))
        body = self.lay("x")
        self.assertLessEqual(rule.dy + rule.height, -body.ascent - self.sp.radical_clearance + 1e-9)

    def test_arrow_path_has_head(self):
        d, half = m.arrow_path(1.0, 0.1, 0.05, left=False, right=True, double=False)
        self.assertEqual(d.count("M"), 2)
        self.assertGreater(half, 0.1)

    # ---------- missing glyphs ----------
    def test_missing_glyph_keeps_a_box(self):
        box = self.lay("a中b")
        glyph = box.items[1].box.items[0]
        self.assertTrue(glyph.missing)
        self.assertGreater(glyph.advance, 0)

    # ---------- bounds ----------
    def test_boxes_bound_their_items(self):
        for source in COMPLEX_FORMULAS:
            box = m.layout_formula(parse(source), self.ctx)
            self.assertGreater(box.width, 0, source)

    def test_validate_box_rejects_escaping_item(self):
        inner = m.LayoutBox(width=1.0, ascent=0.5, descent=0.1)
        outer = m.LayoutBox(
            width=0.5, ascent=0.5, descent=0.1, items=(m.BoxItem(inner, 0.0, 0.0),)
        )
        with self.assertRaises(LayoutInvariantError):
            m.validate_box(outer)


if __name__ == "__main__":
    unittest.main()
