"""Domain exception hierarchy for the Ollama streaming chat core."""

from __future__ import annotations


class OllamaChatError(RuntimeError):
    """Base class for all domain-level chat errors."""


class InvalidEndpointError(OllamaChatError):
    """Raised when the configured endpoint URL cannot be used."""


class OllamaConnectionError(OllamaChatError):
    """Raised when the Ollama host cannot be reached."""


class HTTPStatusError(OllamaChatError):
    """Raised when the server answers with a non-success status."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        message = f"HTTP error: {status_code}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class OllamaModelNotFoundError(HTTPStatusError):
    """Raised when the requested model is unavailable on the server."""


class DecodingError(OllamaChatError):
    """Raised when a non-streamed response body has an unexpected shape."""


class NetworkError(OllamaChatError):
    """Raised for transport-level I/O failures after the connection was made."""


class OllamaStreamingError(OllamaChatError):
    """Raised when the server reports an error inside a streamed response."""


class ConfigValidationError(OllamaChatError):
    """Raised when configuration cannot be validated safely."""


class SendRejectedError(OllamaChatError):
    """User-facing validation failure for a message that was not sent."""
