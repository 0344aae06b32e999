# test_config_loader.py
#
# Run:
#   python -m unittest -v

import tempfile
import unittest
from pathlib import Path

import config_loader as m


class TestConfigLoader(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    # ---------- helpers ----------
    def write(self, content: str) -> Path:
        p = self.root / "config.yml"
        p.write_text(content, encoding="utf-8")
        return p

    # ---------- load_config ----------
    def test_empty_file_gives_defaults(self):
        cfg = m.load_config(self.write(""))
        self.assertEqual(cfg.font_size, m.DEFAULT_CONFIG.font_size)
        self.assertIs(cfg.mode, m.RenderMode.TEXT)
        self.assertEqual(cfg.spacing, m.SpacingConstants())

    def test_render_section(self):
        cfg = m.load_config(self.write(
            "render:\n"
            "  font_size: 16\n"
            "  mode: paths\n"
            "  embed_font: yes\n"
            "  font_dir: ~/fonts\n"
        ))
        self.assertEqual(cfg.font_size, 16.0)
        self.assertIs(cfg.mode, m.RenderMode.PATHS)
        self.assertTrue(cfg.embed_font)
        self.assertEqual(cfg.font_dir, Path("~/fonts").expanduser())

    def test_spacing_overrides_keep_other_defaults(self):
        cfg = m.load_config(self.write(
            "spacing:\n"
            "  column_gap: 1.0\n"
            "  delimiter_scales: [2.0, 1.0]\n"
        ))
        self.assertEqual(cfg.spacing.column_gap, 1.0)
        self.assertEqual(cfg.spacing.delimiter_scales, (1.0, 2.0))
        self.assertEqual(cfg.spacing.row_gap, m.SpacingConstants().row_gap)

    def test_unknown_spacing_constant(self):
        with self.assertRaises(ValueError):
            m.load_config(self.write("spacing:\n  wiggle_room: 1\n"))

    def test_font_size_must_be_number(self):
        with self.assertRaises(TypeError):
            m.load_config(self.write("render:\n  font_size: big\n"))

    def test_nesting_depth(self):
        cfg = m.load_config(self.write("render:\n  max_nesting_depth: 12\n"))
        self.assertEqual(cfg.max_nesting_depth, 12)
        with self.assertRaises(TypeError):
            m.load_config(self.write("render:\n  max_nesting_depth: 0\n"))
        with self.assertRaises(ValueError):
            m.load_config(self.write(
                f"render:\n  max_nesting_depth: {m.MAX_NESTING_DEPTH_CEILING + 1}\n"
            ))

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            m.load_config(self.write("render:\n  mode: bitmap\n"))

    def test_size_scales_must_be_contiguous(self):
        with self.assertRaises(ValueError):
            m.load_config(self.write("size_scales:\n  0: 1.0\n  -2: 0.5\n"))

    def test_size_scales_floor(self):
        cfg = m.load_config(self.write("size_scales:\n  0: 1.0\n  -1: 0.8\n"))
        self.assertEqual(cfg.min_size_level, -1)
        self.assertEqual(cfg.scale_for(-3), 0.8)

    def test_root_must_be_mapping(self):
        with self.assertRaises(TypeError):
            m.load_config(self.write("- a\n- b\n"))

    def test_sample_config_loads(self):
        cfg = m.load_config(Path(__file__).with_name("config.yml"))
        self.assertIsInstance(cfg, m.FormulaConfig)

    # ---------- FormulaConfig ----------
    def test_scale_for_clamps(self):
        cfg = m.DEFAULT_CONFIG
        self.assertEqual(cfg.scale_for(0), 1.0)
        self.assertEqual(cfg.scale_for(-1), 0.7)
        self.assertEqual(cfg.scale_for(-5), 0.5)

    def test_with_overrides_rejects_unknown_fields(self):
        with self.assertRaises(TypeError):
            m.DEFAULT_CONFIG.with_overrides(colour="red")

    def test_with_overrides_leaves_original(self):
        cfg = m.DEFAULT_CONFIG.with_overrides(mode=m.RenderMode.PATHS)
        self.assertIs(cfg.mode, m.RenderMode.PATHS)
        self.assertIs(m.DEFAULT_CONFIG.mode, m.RenderMode.TEXT)

    # ---------- RenderMode ----------
    def test_render_mode_aliases(self):
        self.assertIs(m.RenderMode.parse("Outline"), m.RenderMode.PATHS)
        self.assertIs(m.RenderMode.parse(" text "), m.RenderMode.TEXT)
        with self.assertRaises(ValueError):
            m.RenderMode.parse("nope")

    # ---------- apply_env_overrides ----------
    def test_env_overrides(self):
        cfg = m.apply_env_overrides(
            m.DEFAULT_CONFIG,
            {m.ENV_MODE: "paths", m.ENV_EMBED_FONT: "1"},
        )
        self.assertIs(cfg.mode, m.RenderMode.PATHS)
        self.assertTrue(cfg.embed_font)

    def test_env_unknown_mode_falls_back_to_text(self):
        base = m.DEFAULT_CONFIG.with_overrides(mode=m.RenderMode.PATHS)
        cfg = m.apply_env_overrides(base, {m.ENV_MODE: "bogus"})
        self.assertIs(cfg.mode, m.RenderMode.TEXT)

    def test_env_unset_returns_same_config(self):
        self.assertIs(m.apply_env_overrides(m.DEFAULT_CONFIG, {}), m.DEFAULT_CONFIG)


if __name__ == "__main__":
    unittest.main()
