"""Top-level package for gemini-chat."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import ChatSettings, ensure_config_dir, load_config
    from .exceptions import (
        ConfigurationError,
        ConfigValidationError,
        EmptyExportError,
        EncodingError,
        GeminiChatError,
        TransportError,
    )
    from .models import Conversation, InlineBinary, Role, TextPart, Turn
    from .session import ChatSession, SendOutcome
    from .state import GenerationState

__all__ = [
    "ChatSession",
    "ChatSettings",
    "ConfigValidationError",
    "ConfigurationError",
    "Conversation",
    "EmptyExportError",
    "EncodingError",
    "GeminiChatError",
    "GenerationState",
    "InlineBinary",
    "Role",
    "SendOutcome",
    "TextPart",
    "TransportError",
    "Turn",
    "ensure_config_dir",
    "load_config",
]

_LAZY_EXPORTS = {
    "ChatSettings": ".config",
    "ensure_config_dir": ".config",
    "load_config": ".config",
    "ConfigurationError": ".exceptions",
    "ConfigValidationError": ".exceptions",
    "EmptyExportError": ".exceptions",
    "EncodingError": ".exceptions",
    "GeminiChatError": ".exceptions",
    "TransportError": ".exceptions",
    "Conversation": ".models",
    "InlineBinary": ".models",
    "Role": ".models",
    "TextPart": ".models",
    "Turn": ".models",
    "ChatSession": ".session",
    "SendOutcome": ".session",
    "GenerationState": ".state",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols so importing the package does not load vendor SDKs."""
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(module_name, __name__), name)
