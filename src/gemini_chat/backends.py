"""Generative backend adapters: Gemini (default) and a local Ollama host.

Both adapters take the same ordered ``TransportTurn`` payload, stream the
reply as plain text fragments, and map vendor exceptions onto the domain
``TransportError`` hierarchy.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence
import logging
from typing import Any, Protocol

from .config import ChatSettings
from .exceptions import (
    AuthenticationError,
    BackendConnectionError,
    ConfigurationError,
    ConfigurationReason,
    GeminiChatError,
    QuotaExceededError,
    TransportError,
)
from .models import Role
from .prompt import TransportTurn
from .tokens import approximate_tokens

try:
    import httpx
except ModuleNotFoundError:  # pragma: no cover - optional transport dependency.
    httpx = None  # type: ignore[assignment]

try:
    from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
    from langchain_google_genai import ChatGoogleGenerativeAI
except ModuleNotFoundError:  # pragma: no cover - exercised only without the gemini extra.
    ChatGoogleGenerativeAI = None  # type: ignore[misc,assignment]

try:
    from ollama import AsyncClient as _OllamaAsyncClient
except ModuleNotFoundError:  # pragma: no cover - exercised only in missing dependency environments.
    _OllamaAsyncClient = None  # type: ignore[misc,assignment]

LOGGER = logging.getLogger(__name__)

_AUTH_MARKERS = ("api key", "api_key", "permission denied", "unauthenticated", "401", "403")
_QUOTA_MARKERS = ("quota", "resource exhausted", "resource_exhausted", "rate limit", "429")


class GenerativeBackend(Protocol):
    """What the session manager needs from a model provider."""

    requires_credential: bool

    def stream_generate(
        self,
        model: str,
        turns: Sequence[TransportTurn],
        max_output_tokens: int,
    ) -> AsyncIterator[str]: ...

    async def count_tokens(self, model: str, turns: Sequence[TransportTurn]) -> int: ...


def map_backend_exception(exc: BaseException, target: str) -> GeminiChatError:
    """Translate a vendor/transport exception into the domain hierarchy."""
    if isinstance(exc, GeminiChatError):
        return exc

    if httpx is not None and isinstance(
        exc,
        (
            httpx.ConnectError,
            httpx.ConnectTimeout,
            httpx.ReadTimeout,
            httpx.NetworkError,
        ),
    ):
        return BackendConnectionError(f"Unable to connect to {target}.")
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return BackendConnectionError(f"Unable to connect to {target}: {exc}")

    lower_message = str(exc).lower()
    if any(marker in lower_message for marker in _AUTH_MARKERS):
        return AuthenticationError(f"{target} rejected the credential: {exc}")
    if any(marker in lower_message for marker in _QUOTA_MARKERS):
        return QuotaExceededError(f"{target} quota exceeded: {exc}")
    return TransportError(f"Failed to stream response from {target}: {exc}")


def _chunk_text(content: Any) -> str:
    """Extract text from a streamed message chunk's ``content``."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        pieces: list[str] = []
        for item in content:
            if isinstance(item, str):
                pieces.append(item)
            elif isinstance(item, dict) and item.get("type") == "text":
                text = item.get("text")
                if isinstance(text, str):
                    pieces.append(text)
        return "".join(pieces)
    return ""


class GeminiBackend:
    """Google Gemini through ``langchain-google-genai``."""

    requires_credential = True

    def __init__(
        self,
        api_key: str,
        timeout: int = 120,
        llm: Any | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._llm = llm

    def _model_for(self, model: str, max_output_tokens: int | None = None) -> Any:
        if self._llm is not None:
            return self._llm
        if ChatGoogleGenerativeAI is None:
            raise ConfigurationError(
                ConfigurationReason.MISSING_DEPENDENCY,
                "The langchain-google-genai package is not installed. "
                "Install dependencies with pip install -e .",
            )
        kwargs: dict[str, Any] = {
            "model": model,
            "google_api_key": self._api_key,
            "timeout": self._timeout,
        }
        if max_output_tokens is not None:
            kwargs["max_output_tokens"] = max_output_tokens
        return ChatGoogleGenerativeAI(**kwargs)

    @staticmethod
    def to_messages(turns: Sequence[TransportTurn]) -> list[BaseMessage]:
        """Convert transport turns to LangChain messages, images as data URLs."""
        messages: list[BaseMessage] = []
        for turn in turns:
            if turn.role is Role.ASSISTANT:
                messages.append(AIMessage(content=turn.text))
                continue
            content: list[dict[str, Any]] = []
            for image in turn.images:
                content.append(
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:{image.mime_type};base64,{image.data}"
                        },
                    }
                )
            if turn.text:
                content.append({"type": "text", "text": turn.text})
            messages.append(HumanMessage(content=content))
        return messages

    async def stream_generate(
        self,
        model: str,
        turns: Sequence[TransportTurn],
        max_output_tokens: int,
    ) -> AsyncIterator[str]:
        llm = self._model_for(model, max_output_tokens)
        messages = self.to_messages(turns)
        try:
            async for chunk in llm.astream(messages):
                text = _chunk_text(getattr(chunk, "content", chunk))
                if text:
                    yield text
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - external API can fail in many ways.
            raise map_backend_exception(exc, "Gemini API") from exc

    async def count_tokens(self, model: str, turns: Sequence[TransportTurn]) -> int:
        llm = self._model_for(model)
        messages = self.to_messages(turns)
        try:
            return int(await asyncio.to_thread(llm.get_num_tokens_from_messages, messages))
        except Exception as exc:  # noqa: BLE001
            raise map_backend_exception(exc, "Gemini API") from exc


class OllamaBackend:
    """A local Ollama host; token counts use the local approximation."""

    requires_credential = False

    def __init__(
        self,
        host: str = "http://localhost:11434",
        timeout: int = 120,
        client: Any | None = None,
    ) -> None:
        self.host = host
        if client is not None:
            self._client = client
        elif _OllamaAsyncClient is not None:
            self._client = _OllamaAsyncClient(host=host, timeout=timeout)
        else:
            raise ConfigurationError(
                ConfigurationReason.MISSING_DEPENDENCY,
                "The ollama package is not installed. Install dependencies with pip install -e .",
            )

    @staticmethod
    def to_messages(turns: Sequence[TransportTurn]) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        for turn in turns:
            message: dict[str, Any] = {"role": turn.role.value, "content": turn.text}
            images = [image.data for image in turn.images]
            if images:
                message["images"] = images
            messages.append(message)
        return messages

    @staticmethod
    def _extract_chunk_text(chunk: Any) -> str:
        """Extract streamed token text from an SDK object or dict chunk."""
        message_obj = getattr(chunk, "message", None)
        if message_obj is not None:
            value = getattr(message_obj, "content", None)
            if isinstance(value, str):
                return value
        if isinstance(chunk, dict):
            message = chunk.get("message")
            if isinstance(message, dict):
                value = message.get("content")
                if isinstance(value, str):
                    return value
            value = chunk.get("response")
            if isinstance(value, str):
                return value
        return ""

    async def stream_generate(
        self,
        model: str,
        turns: Sequence[TransportTurn],
        max_output_tokens: int,
    ) -> AsyncIterator[str]:
        try:
            stream = await self._client.chat(
                model=model,
                messages=self.to_messages(turns),
                stream=True,
                options={"num_predict": max_output_tokens},
            )
            async for chunk in stream:
                text = self._extract_chunk_text(chunk)
                if text:
                    yield text
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise map_backend_exception(exc, f"Ollama host {self.host}") from exc

    async def count_tokens(self, model: str, turns: Sequence[TransportTurn]) -> int:
        return approximate_tokens(turns)


def create_backend(settings: ChatSettings) -> GenerativeBackend:
    """Build the backend named by ``settings.provider``."""
    if settings.provider == "ollama":
        return OllamaBackend(host=settings.ollama_host, timeout=settings.timeout)
    return GeminiBackend(api_key=settings.api_key, timeout=settings.timeout)
