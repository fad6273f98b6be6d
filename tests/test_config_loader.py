from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from cargo_tasks.core.config_loader import find_config_file, load_config_file, normalize_string_list, parse_flag


class ConfigurationLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_supports_toml_json_and_yaml(self) -> None:
        (self.root / "a.toml").write_text('[tasks]\ntargets = ["x"]\n')
        (self.root / "b.json").write_text('{"tasks": {"targets": ["x"]}}')
        (self.root / "c.yaml").write_text(
            textwrap.dedent(
                """
                tasks:
                  targets:
                    - x
                """
            )
        )

        for name in ("a.toml", "b.json", "c.yaml"):
            with self.subTest(name=name):
                self.assertEqual(load_config_file(self.root / name), {"tasks": {"targets": ["x"]}})

    def test_empty_yaml_is_an_empty_mapping(self) -> None:
        path = self.root / "empty.yml"
        path.write_text("")

        self.assertEqual(load_config_file(path), {})

    def test_rejects_unknown_suffix_and_non_mapping(self) -> None:
        ini = self.root / "config.ini"
        ini.write_text("[tasks]\n")
        listing = self.root / "config.json"
        listing.write_text("[1, 2]")

        with self.assertRaises(ValueError):
            load_config_file(ini)
        with self.assertRaises(TypeError):
            load_config_file(listing)

    def test_find_config_file_refuses_multiple_formats(self) -> None:
        self.assertIsNone(find_config_file(self.root, "cargo-tasks"))

        (self.root / "cargo-tasks.toml").write_text("")
        self.assertEqual(find_config_file(self.root, "cargo-tasks"), self.root / "cargo-tasks.toml")

        (self.root / "cargo-tasks.yaml").write_text("")
        with self.assertRaisesRegex(ValueError, "Multiple configuration files"):
            find_config_file(self.root, "cargo-tasks")


class ValueParsingTests(unittest.TestCase):
    def test_normalize_string_list(self) -> None:
        self.assertEqual(normalize_string_list("a, b;c  d"), ["a", "b", "c", "d"])
        self.assertEqual(normalize_string_list([" a ", "", "b"]), ["a", "b"])
        self.assertEqual(normalize_string_list(None), [])
        with self.assertRaisesRegex(TypeError, "targets must be"):
            normalize_string_list(5, field_name="targets")

    def test_parse_flag(self) -> None:
        for value in ("1", "true", "yes", "ON", True, 1):
            with self.subTest(value=value):
                self.assertTrue(parse_flag(value))
        for value in (None, "", "0", "false", "No", "off", False, 0):
            with self.subTest(value=value):
                self.assertFalse(parse_flag(value))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
