"""Tests for domain exception hierarchy."""

from __future__ import annotations

import unittest

from ollama_stream.exceptions import (
    ConfigValidationError,
    DecodingError,
    HTTPStatusError,
    InvalidEndpointError,
    NetworkError,
    OllamaChatError,
    OllamaConnectionError,
    OllamaModelNotFoundError,
    OllamaStreamingError,
    SendRejectedError,
)


class ExceptionHierarchyTests(unittest.TestCase):
    """Validate exception inheritance contract."""

    def test_exception_hierarchy(self) -> None:
        for error_cls in (
            ConfigValidationError,
            DecodingError,
            HTTPStatusError,
            InvalidEndpointError,
            NetworkError,
            OllamaConnectionError,
            OllamaStreamingError,
            SendRejectedError,
        ):
            with self.subTest(error=error_cls.__name__):
                self.assertTrue(issubclass(error_cls, OllamaChatError))
        self.assertTrue(issubclass(OllamaModelNotFoundError, HTTPStatusError))

    def test_http_status_message(self) -> None:
        self.assertEqual(str(HTTPStatusError(500)), "HTTP error: 500")
        error = OllamaModelNotFoundError(404, "model 'x' not found")
        self.assertEqual(str(error), "HTTP error: 404 (model 'x' not found)")
        self.assertEqual(error.status_code, 404)
        self.assertEqual(error.detail, "model 'x' not found")


if __name__ == "__main__":
    unittest.main()
