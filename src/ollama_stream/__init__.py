"""Top-level package for ollama-stream."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import ensure_config_dir, load_config
    from .conversation import Conversation
    from .exceptions import (
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
    from .framing import LineFrameDecoder
    from .message import Message, MessageRole, MessageState
    from .registry import ModelRegistry
    from .session import ChatSession
    from .transport import ChatStream, ChatTransport, TransportEvent
    from .wire import EventDecoder, ModelTag, PullStatus

_EXPORTS: dict[str, str] = {
    "ChatSession": ".session",
    "ChatStream": ".transport",
    "ChatTransport": ".transport",
    "ConfigValidationError": ".exceptions",
    "Conversation": ".conversation",
    "DecodingError": ".exceptions",
    "EventDecoder": ".wire",
    "HTTPStatusError": ".exceptions",
    "InvalidEndpointError": ".exceptions",
    "LineFrameDecoder": ".framing",
    "Message": ".message",
    "MessageRole": ".message",
    "MessageState": ".message",
    "ModelRegistry": ".registry",
    "ModelTag": ".wire",
    "NetworkError": ".exceptions",
    "OllamaChatError": ".exceptions",
    "OllamaConnectionError": ".exceptions",
    "OllamaModelNotFoundError": ".exceptions",
    "OllamaStreamingError": ".exceptions",
    "PullStatus": ".wire",
    "SendRejectedError": ".exceptions",
    "TransportEvent": ".transport",
    "ensure_config_dir": ".config",
    "load_config": ".config",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import symbols so importing the package stays cheap."""
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    return getattr(import_module(module_name, __name__), name)
