"""Tests for top-level package lazy exports."""

from __future__ import annotations

import unittest

import ollama_stream


class PackageExportTests(unittest.TestCase):
    """Ensure __getattr__ and exported symbols behave as expected."""

    def test_lazy_exports_resolve_known_symbols(self) -> None:
        self.assertTrue(callable(ollama_stream.load_config))
        self.assertTrue(callable(ollama_stream.ensure_config_dir))
        for name in ollama_stream.__all__:
            with self.subTest(name=name):
                self.assertIsNotNone(getattr(ollama_stream, name))

    def test_unknown_symbol_raises_attribute_error(self) -> None:
        with self.assertRaises(AttributeError):
            getattr(ollama_stream, "THIS_DOES_NOT_EXIST")


if __name__ == "__main__":
    unittest.main()
