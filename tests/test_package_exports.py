"""Tests for top-level package lazy exports."""

from __future__ import annotations

import unittest

import gemini_chat


class PackageExportTests(unittest.TestCase):
    """Ensure __getattr__ and exported symbols behave as expected."""

    def test_lazy_exports_resolve_known_symbols(self) -> None:
        self.assertTrue(callable(gemini_chat.load_config))
        self.assertTrue(callable(gemini_chat.ensure_config_dir))
        for name in gemini_chat.__all__:
            self.assertIsNotNone(getattr(gemini_chat, name))

    def test_unknown_symbol_raises_attribute_error(self) -> None:
        with self.assertRaises(AttributeError):
            getattr(gemini_chat, "THIS_DOES_NOT_EXIST")


if __name__ == "__main__":
    unittest.main()
