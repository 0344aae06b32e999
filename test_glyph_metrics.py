# test_glyph_metrics.py
#
# Run:
#   python -m unittest -v
#
# Uses the STIX General fonts bundled with matplotlib.

import base64
import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import glyph_metrics as m
from config_loader import DEFAULT_CONFIG
from formula_ast import FontVariant
from formula_errors import FontLoadError


class TestFaceSelection(unittest.TestCase):
    def test_math_letters_are_italic(self):
        self.assertIs(m.face_for("x", None), m.Face.ITALIC)
        self.assertIs(m.face_for("α", FontVariant.MATH), m.Face.ITALIC)

    def test_digits_and_capital_greek_are_upright(self):
        self.assertIs(m.face_for("1", None), m.Face.REGULAR)
        self.assertIs(m.face_for("Γ", None), m.Face.REGULAR)

    def test_explicit_variants(self):
        self.assertIs(m.face_for("x", FontVariant.ROMAN), m.Face.REGULAR)
        self.assertIs(m.face_for("a", FontVariant.BOLD), m.Face.BOLD)
        self.assertIs(m.face_for("a", FontVariant.BOLD_ITALIC), m.Face.BOLD_ITALIC)

    def test_face_from_style(self):
        self.assertIs(m.Face.from_style("italic", "bold"), m.Face.BOLD_ITALIC)
        self.assertIs(m.Face.from_style(None, None), m.Face.REGULAR)


class TestGlyphMetrics(unittest.TestCase):
    def setUp(self) -> None:
        self.fonts = m.metrics_for(DEFAULT_CONFIG)

    # ---------- provider ----------
    def test_provider_is_shared(self):
        self.assertIs(m.metrics_for(DEFAULT_CONFIG), self.fonts)
        self.assertEqual(self.fonts.family_name, "STIXGeneral")

    def test_missing_font_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(FontLoadError):
                m.load_family(Path(tmp))

    def test_unparseable_font_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            for filename in m.FACE_FILES.values():
                (Path(tmp) / filename).write_bytes(b"not a font")
            with self.assertRaises(FontLoadError) as ctx:
                m.load_family(Path(tmp))
            self.assertIsNotNone(ctx.exception.__cause__)

    # ---------- metrics ----------
    def test_letter_metrics(self):
        metric = self.fonts.metrics("x")
        self.assertFalse(metric.missing)
        self.assertIs(metric.face, m.Face.ITALIC)
        self.assertGreater(metric.advance, 0)
        self.assertGreater(metric.ascent, 0)

    def test_metrics_are_cached(self):
        self.assertIs(self.fonts.metrics("x", None, 0), self.fonts.metrics("x", None, 0))

    def test_size_level_scales_metrics(self):
        base = self.fonts.metrics("x", None, 0)
        script = self.fonts.metrics("x", None, -1)
        self.assertAlmostEqual(script.advance, base.advance * 0.7, places=9)
        self.assertAlmostEqual(script.ascent, base.ascent * 0.7, places=9)

    def test_descender(self):
        self.assertGreater(self.fonts.metrics("p").descent, 0)

    def test_missing_glyph_fallback_box(self):
        metric = self.fonts.metrics("中")
        self.assertTrue(metric.missing)
        self.assertEqual(metric.advance, m.MISSING_ADVANCE)
        self.assertEqual(metric.ascent, m.MISSING_ASCENT)
        self.assertIsNone(self.fonts.resolve_face("中", FontVariant.BOLD))

    def test_concurrent_lookups_agree(self):
        chars = list("abcdefghijklmnopqrstuvwxyz0123456789+=()∑∫√")
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda c: self.fonts.metrics(c, FontVariant.BOLD, -2), chars * 4))
        for char, metric in zip(chars * 4, results):
            self.assertEqual(metric, self.fonts.metrics(char, FontVariant.BOLD, -2))

    # ---------- outlines and font data ----------
    def test_outline_is_path_data(self):
        d = self.fonts.outline("x", m.Face.ITALIC)
        self.assertTrue(d.startswith("M"))

    def test_outline_for_missing_glyph(self):
        self.assertIsNone(self.fonts.outline("中", m.Face.REGULAR))

    def test_font_bytes_base64(self):
        face = self.fonts.family.face(m.Face.REGULAR)
        decoded = base64.b64decode(self.fonts.font_bytes_base64(m.Face.REGULAR))
        self.assertEqual(decoded, face.path.read_bytes())

    def test_units_per_em(self):
        self.assertGreater(self.fonts.units_per_em(m.Face.REGULAR), 0)


if __name__ == "__main__":
    unittest.main()
