"""Tests for domain exception hierarchy."""

from __future__ import annotations

import unittest

from gemini_chat.exceptions import (
    AuthenticationError,
    BackendConnectionError,
    ConfigurationError,
    ConfigurationReason,
    ConfigValidationError,
    EmptyExportError,
    EncodingError,
    EncodingReason,
    GeminiChatError,
    GenerationInProgressError,
    QuotaExceededError,
    TransportError,
)


class ExceptionHierarchyTests(unittest.TestCase):
    """Validate exception inheritance contract."""

    def test_exception_hierarchy(self) -> None:
        for exc_type in (
            EncodingError,
            ConfigurationError,
            ConfigValidationError,
            TransportError,
            GenerationInProgressError,
            EmptyExportError,
        ):
            self.assertTrue(issubclass(exc_type, GeminiChatError))
        for exc_type in (AuthenticationError, QuotaExceededError, BackendConnectionError):
            self.assertTrue(issubclass(exc_type, TransportError))

    def test_encoding_error_carries_reason_and_name(self) -> None:
        exc = EncodingError(EncodingReason.TOO_LARGE, "cat.png")
        self.assertEqual(exc.reason, EncodingReason.TOO_LARGE)
        self.assertEqual(exc.name, "cat.png")
        self.assertIn("too_large", str(exc))

    def test_configuration_error_carries_reason(self) -> None:
        exc = ConfigurationError(ConfigurationReason.MISSING_CREDENTIAL, "no key")
        self.assertEqual(exc.reason, ConfigurationReason.MISSING_CREDENTIAL)
        self.assertEqual(str(exc), "no key")


if __name__ == "__main__":
    unittest.main()
