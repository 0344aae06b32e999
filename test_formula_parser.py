# test_formula_parser.py
#
# Run:
#   python -m unittest -v

import unittest

import formula_parser as m
from config_loader import DEFAULT_CONFIG
from formula_ast import (
    AtomClass,
    Decoration,
    DecorationKind,
    Delimiter,
    FontVariant,
    Fraction,
    Group,
    Matrix,
    Operator,
    Radical,
    Script,
    Space,
    StyledGroup,
    Symbol,
    dump_tree,
)
from formula_errors import (
    ArityMismatch,
    DuplicateScript,
    EmptyInput,
    InputTooLong,
    MissingScriptBase,
    NestingTooDeep,
    Span,
    UnbalancedEnvironment,
    UnbalancedGroup,
    UnknownCommand,
)


def S(char, atom=AtomClass.ORD, variant=None):
    return Symbol(char, atom, variant)


class TestParser(unittest.TestCase):
    # ---------- input preparation ----------
    def test_blank_input_is_empty(self):
        with self.assertRaises(EmptyInput):
            m.parse("   \n\t")

    def test_oversized_input(self):
        with self.assertRaises(InputTooLong) as ctx:
            m.parse("x" * 6000)
        self.assertEqual(ctx.exception.limit, 5 * 1024)

    def test_doubled_backslashes_are_undone(self):
        self.assertEqual(m.parse(r"\\frac{a}{b}"), m.parse(r"\frac{a}{b}"))

    def test_row_separator_survives_normalization(self):
        source = r"\begin{matrix}a&bb\\ccc&d\end{matrix}"
        self.assertEqual(m.normalize_escaped_commands(source), source)

    def test_normalization_needs_a_doubled_command(self):
        self.assertEqual(m.normalize_escaped_commands(r"a \\ b"), r"a \\ b")

    def test_fully_escaped_matrix(self):
        escaped = r"\\begin{matrix}a&b\\\\c&d\\end{matrix}"
        self.assertEqual(
            m.normalize_escaped_commands(escaped), r"\begin{matrix}a&b\\c&d\end{matrix}"
        )

    # ---------- atoms ----------
    def test_plain_characters(self):
        self.assertEqual(
            m.parse("a-b"), Group((S("a"), S("−", AtomClass.BIN), S("b")))
        )

    def test_command_symbols(self):
        self.assertEqual(m.parse(r"\alpha"), S("α"))
        self.assertEqual(m.parse(r"\leq"), S("≤", AtomClass.REL))
        self.assertEqual(m.parse(r"\cdot"), S("⋅", AtomClass.BIN))

    def test_prime(self):
        self.assertEqual(m.parse("f'"), Group((S("f"), S("′"))))

    def test_number_expands_per_digit(self):
        self.assertEqual(m.parse("12"), Group((S("1"), S("2"))))

    def test_tilde_is_a_space(self):
        node = m.parse("a~b")
        self.assertIsInstance(node.children[1], Space)

    def test_spacing_command(self):
        node = m.parse(r"a\quad b")
        self.assertEqual(node.children[1], Space(1.0))

    # ---------- scripts ----------
    def test_superscript(self):
        self.assertEqual(m.parse("x^2"), Script(S("x"), superscript=S("2")))

    def test_script_order_does_not_matter(self):
        self.assertEqual(m.parse("x^a_b"), m.parse("x_b^a"))

    def test_double_superscript(self):
        with self.assertRaises(DuplicateScript):
            m.parse("x^a^b")

    def test_double_subscript(self):
        with self.assertRaises(DuplicateScript):
            m.parse("x_a_b")

    def test_script_without_base(self):
        with self.assertRaises(MissingScriptBase):
            m.parse("^2")

    def test_script_without_argument(self):
        with self.assertRaises(ArityMismatch):
            m.parse("x^")
        with self.assertRaises(ArityMismatch):
            m.parse("{x^}")

    def test_script_takes_first_digit_only(self):
        node = m.parse("x^10")
        self.assertEqual(node.children[0], Script(S("x"), superscript=S("1")))
        self.assertEqual(node.children[1], S("0"))

    def test_script_span(self):
        node = m.parse("x^{ab}")
        self.assertEqual(node.span, Span(0, 6))

    # ---------- commands ----------
    def test_unknown_command(self):
        with self.assertRaises(UnknownCommand) as ctx:
            m.parse(r"\unknowncmd{x}")
        self.assertEqual(ctx.exception.span, Span(0, 11))
        self.assertEqual(ctx.exception.code, -4)

    def test_error_span_counts_leading_whitespace(self):
        source = "   \\unknowncmd{x}"
        with self.assertRaises(UnknownCommand) as ctx:
            m.parse(source)
        span = ctx.exception.span
        self.assertEqual(span, Span(3, 14))
        self.assertEqual(source.encode()[span.start:span.end], b"\\unknowncmd")
        self.assertIn("3..14", str(ctx.exception))

    def test_error_span_counts_multibyte_whitespace(self):
        source = "\u3000\\bad"
        with self.assertRaises(UnknownCommand) as ctx:
            m.parse(source)
        self.assertEqual(ctx.exception.span, Span(3, 7))

    def test_error_span_points_into_escaped_input(self):
        source = "a+\\\\frac{1}{2}+\\\\foo"
        with self.assertRaises(UnknownCommand) as ctx:
            m.parse(source)
        span = ctx.exception.span
        self.assertEqual(span, Span(15, 20))
        self.assertEqual(source.encode()[span.start:span.end], b"\\\\foo")

    def test_prepared_source_origin(self):
        prepared = m.prepare_source("  \\\\alpha\\\\beta ", 100)
        self.assertEqual(prepared.text, "\\alpha\\beta")
        self.assertEqual(len(prepared.origin), len(prepared.text) + 1)
        self.assertEqual(prepared.input_span(Span(6, 11)), Span(9, 15))
        self.assertEqual(prepared.origin[-1], 15)

    # ---------- nesting depth ----------
    def test_nesting_at_limit(self):
        depth = DEFAULT_CONFIG.max_nesting_depth - 1
        node = m.parse("{" * depth + "x" + "}" * depth)
        while isinstance(node, Group):
            node = node.children[0]
        self.assertEqual(node, S("x"))

    def test_nesting_past_limit(self):
        depth = DEFAULT_CONFIG.max_nesting_depth
        with self.assertRaises(NestingTooDeep) as ctx:
            m.parse("{" * depth + "x" + "}" * depth)
        self.assertEqual(ctx.exception.span, Span(depth - 1, depth))
        self.assertEqual(ctx.exception.code, -14)

    def test_deep_radicals_are_rejected(self):
        with self.assertRaises(NestingTooDeep):
            m.parse("\\sqrt{" * 200 + "x" + "}" * 200)

    def test_unbraced_arguments_count_as_levels(self):
        cfg = DEFAULT_CONFIG.with_overrides(max_nesting_depth=3)
        m.parse("\\sqrt\\sqrt x", cfg)
        with self.assertRaises(NestingTooDeep) as ctx:
            m.parse("\\sqrt\\sqrt\\sqrt x", cfg)
        self.assertEqual(ctx.exception.span, Span(10, 15))

    def test_repeated_style_switches_are_limited(self):
        with self.assertRaises(NestingTooDeep):
            m.parse("\\textstyle " * 100 + "x")

    def test_fraction(self):
        self.assertEqual(m.parse(r"\frac{a}{b}"), Fraction(S("a"), S("b")))

    def test_fraction_with_bare_digits(self):
        self.assertEqual(m.parse(r"\frac12"), Fraction(S("1"), S("2")))

    def test_fraction_missing_argument(self):
        with self.assertRaises(ArityMismatch):
            m.parse(r"\frac{a}")

    def test_binomial(self):
        self.assertEqual(
            m.parse(r"\binom{n}{k}"),
            Delimiter("(", ")", Fraction(S("n"), S("k"), has_bar=False)),
        )

    def test_sqrt_with_index(self):
        self.assertEqual(m.parse(r"\sqrt[3]{x}"), Radical(S("x"), S("3")))

    def test_sqrt_without_index(self):
        self.assertEqual(m.parse(r"\sqrt{x}"), Radical(S("x")))

    def test_text_keeps_spaces(self):
        node = m.parse(r"\text{a b}")
        self.assertEqual(
            node,
            Group(tuple(S(c, variant=FontVariant.TEXT) for c in "a b")),
        )

    def test_style_command(self):
        self.assertEqual(
            m.parse(r"\mathbb{R}"), StyledGroup(S("R"), variant=FontVariant.BLACKBOARD)
        )

    def test_displaystyle_wraps_the_rest(self):
        self.assertEqual(
            m.parse(r"\displaystyle\frac{a}{b}"),
            StyledGroup(Fraction(S("a"), S("b")), display=True),
        )

    def test_operatorname(self):
        self.assertEqual(m.parse(r"\operatorname{sgn}"), Operator("sgn"))
        self.assertEqual(m.parse(r"\operatorname*{argmax}"), Operator("argmax", limits=True))

    def test_decoration_with_script(self):
        node = m.parse(r"\overbrace{abc}^{n}")
        self.assertIsInstance(node, Script)
        self.assertEqual(node.base.kind, DecorationKind.OVERBRACE)
        self.assertEqual(node.superscript, S("n"))

    def test_extensible_arrow(self):
        self.assertEqual(
            m.parse(r"\xrightarrow{f}"), Decoration(S("f"), DecorationKind.XRIGHTARROW)
        )

    # ---------- limits ----------
    def test_limits_forces_operator_limits(self):
        node = m.parse(r"\sum\limits_{i=1}^n")
        self.assertEqual(
            node,
            Script(
                Operator("∑", limits=True, large=True),
                superscript=S("n"),
                subscript=Group((S("i"), S("=", AtomClass.REL), S("1"))),
            ),
        )

    def test_nolimits(self):
        node = m.parse(r"\int\nolimits_0^1")
        self.assertIs(node.base.limits, False)

    def test_limits_after_non_operator(self):
        with self.assertRaises(ArityMismatch):
            m.parse(r"x\limits")

    # ---------- groups and delimiters ----------
    def test_unclosed_group(self):
        with self.assertRaises(UnbalancedGroup):
            m.parse("{a")

    def test_unopened_group(self):
        with self.assertRaises(UnbalancedGroup):
            m.parse("a}")

    def test_left_right(self):
        self.assertEqual(
            m.parse(r"\left(x\right)"), Delimiter("(", ")", S("x"))
        )

    def test_null_delimiter(self):
        node = m.parse(r"\left.\frac{a}{b}\right|")
        self.assertEqual(node, Delimiter(None, "|", Fraction(S("a"), S("b"))))

    def test_angle_delimiters(self):
        node = m.parse(r"\left<x\right>")
        self.assertEqual((node.left, node.right), ("⟨", "⟩"))

    def test_left_without_right(self):
        with self.assertRaises(UnbalancedGroup):
            m.parse(r"\left( x")

    def test_right_without_left(self):
        with self.assertRaises(UnbalancedGroup):
            m.parse(r"x \right)")

    def test_unknown_delimiter(self):
        with self.assertRaises(UnknownCommand):
            m.parse(r"\left\alpha x\right)")

    def test_big_delimiter(self):
        self.assertEqual(
            m.parse(r"\big("), Delimiter("(", None, Group(()), stretch=False, size_step=1)
        )
        self.assertEqual(
            m.parse(r"\Big)"), Delimiter(None, ")", Group(()), stretch=False, size_step=2)
        )

    # ---------- environments ----------
    def test_matrix_cells(self):
        node = m.parse(r"\begin{matrix}a&bb\\ccc&d\end{matrix}")
        self.assertEqual(
            node,
            Matrix((
                (S("a"), Group((S("b"), S("b")))),
                (Group((S("c"), S("c"), S("c"))), S("d")),
            )),
        )

    def test_trailing_row_separator_is_ignored(self):
        node = m.parse(r"\begin{matrix}a\\b\\\end{matrix}")
        self.assertEqual(len(node.rows), 2)

    def test_pmatrix_gets_parentheses(self):
        node = m.parse(r"\begin{pmatrix}a\end{pmatrix}")
        self.assertEqual(node, Delimiter("(", ")", Matrix(((S("a"),),))))

    def test_cases_alignment(self):
        node = m.parse(r"\begin{cases}1&x>0\\0&x\le 0\end{cases}")
        self.assertEqual((node.left, node.right), ("{", None))
        self.assertEqual(node.body.alignment, "ll")

    def test_array_column_spec(self):
        node = m.parse(r"\begin{array}{l|cr}a&b&c\end{array}")
        self.assertEqual(node.alignment, "lcr")

    def test_plain_matrix_command(self):
        node = m.parse(r"\matrix{a&b\\c&d}")
        self.assertEqual(node.column_count, 2)
        self.assertEqual(len(node.rows), 2)

    def test_unknown_environment(self):
        with self.assertRaises(UnknownCommand):
            m.parse(r"\begin{foo}x\end{foo}")

    def test_mismatched_end(self):
        with self.assertRaises(UnbalancedEnvironment):
            m.parse(r"\begin{matrix}a\end{pmatrix}")

    def test_unclosed_environment(self):
        with self.assertRaises(UnbalancedEnvironment):
            m.parse(r"\begin{matrix}a")

    def test_align_outside_environment(self):
        with self.assertRaises(UnbalancedEnvironment):
            m.parse("a & b")

    def test_row_separator_outside_environment(self):
        with self.assertRaises(UnbalancedEnvironment):
            m.parse(r"a \\ b")

    def test_group_cannot_span_cells(self):
        with self.assertRaises(UnbalancedGroup):
            m.parse(r"\begin{matrix}{a&b}\end{matrix}")

    # ---------- debug dump ----------
    def test_dump_tree_indents_children(self):
        lines = dump_tree(m.parse(r"\frac{a}{b}"))
        self.assertEqual(lines[0], "Fraction bar=True")
        self.assertEqual(lines[1], "  Symbol 'a' ord")


if __name__ == "__main__":
    unittest.main()
