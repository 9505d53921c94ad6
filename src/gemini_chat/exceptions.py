"""Domain exception hierarchy for the Gemini chat session manager."""

from __future__ import annotations

from enum import Enum


class GeminiChatError(RuntimeError):
    """Base class for all domain-level chat errors."""


class EncodingReason(str, Enum):
    """Why an attachment was rejected by the encoder."""

    TOO_LARGE = "too_large"
    UNSUPPORTED_TYPE = "unsupported_type"
    UNREADABLE = "unreadable"


class EncodingError(GeminiChatError):
    """Raised when a single attachment cannot be encoded for transport."""

    def __init__(self, reason: EncodingReason, name: str, message: str = "") -> None:
        self.reason = reason
        self.name = name
        super().__init__(message or f"{name}: {reason.value}")


class ConfigurationReason(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    MISSING_DEPENDENCY = "missing_dependency"


class ConfigurationError(GeminiChatError):
    """Raised when a send cannot start because required settings are absent."""

    def __init__(self, reason: ConfigurationReason, message: str) -> None:
        self.reason = reason
        super().__init__(message)


class ConfigValidationError(GeminiChatError):
    """Raised when configuration cannot be validated safely."""


class TransportError(GeminiChatError):
    """Raised when the backend request or stream fails."""


class AuthenticationError(TransportError):
    """Raised when the backend rejects the configured credential."""


class QuotaExceededError(TransportError):
    """Raised when the backend reports rate limiting or an exhausted quota."""


class BackendConnectionError(TransportError):
    """Raised when the backend host cannot be reached."""


class GenerationInProgressError(GeminiChatError):
    """Raised when a send is attempted while a response is still streaming."""


class EmptyExportError(GeminiChatError):
    """Raised when exporting a conversation that has no turns."""
