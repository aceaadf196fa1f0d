import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from cvtsudoers.config import DEFAULT_MAX_INCLUDE_DEPTH, DEFAULT_RUN_ID, DriverConfig, load_config
from cvtsudoers.core.errors import ValidationError
from cvtsudoers.engine import parser as parser_module


class TestLoadConfig(unittest.TestCase):
    def test_absent_default_config_uses_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with patch("cvtsudoers.config.DEFAULT_CONFIG_PATH", Path(td) / "absent.yml"):
                cfg = load_config(environ={})
        self.assertEqual(cfg, DriverConfig())

    def test_explicit_missing_config_is_error(self) -> None:
        with self.assertRaises(ValidationError) as cm:
            load_config(environ={"CVTSUDOERS_CONF": "/nonexistent/cvtsudoers.yml"})
        self.assertEqual(cm.exception.code, "config.not_found")

    def test_full_config(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "c.yml"
            p.write_text(
                "debug:\n  trace_path: {}/t.jsonl\n  run_id: nightly\nparser:\n  max_include_depth: 8\n".format(td),
                encoding="utf-8",
            )
            cfg = load_config(p)
        self.assertEqual(cfg.trace_path, Path(td) / "t.jsonl")
        self.assertEqual(cfg.run_id, "nightly")
        self.assertEqual(cfg.max_include_depth, 8)
        self.assertEqual(cfg.source, p)

    def test_empty_config(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "c.yml"
            p.write_text("", encoding="utf-8")
            cfg = load_config(p)
        self.assertIsNone(cfg.trace_path)
        self.assertEqual(cfg.run_id, DEFAULT_RUN_ID)
        self.assertEqual(cfg.max_include_depth, DEFAULT_MAX_INCLUDE_DEPTH)

    def test_default_depth_matches_parser(self) -> None:
        self.assertEqual(DriverConfig().max_include_depth, parser_module.DEFAULT_MAX_INCLUDE_DEPTH)

    def test_invalid_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "c.yml"
            p.write_text("debug: [unclosed\n", encoding="utf-8")
            with self.assertRaises(ValidationError) as cm:
                load_config(p)
        self.assertEqual(cm.exception.code, "config.invalid_yaml")

    def test_not_a_mapping(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "c.yml"
            p.write_text("- a\n- b\n", encoding="utf-8")
            with self.assertRaises(ValidationError) as cm:
                load_config(p)
        self.assertEqual(cm.exception.code, "config.invalid")

    def test_schema_violation(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "c.yml"
            p.write_text("parser:\n  max_include_depth: 0\n", encoding="utf-8")
            with self.assertRaises(ValidationError) as cm:
                load_config(p)
        self.assertEqual(cm.exception.code, "config.schema_invalid")
        self.assertTrue(cm.exception.data["errors"])


if __name__ == "__main__":
    unittest.main()
