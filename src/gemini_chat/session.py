"""Conversation session manager: send, stream-merge, retry, cancel, export.

A ``ChatSession`` owns one ``Conversation``. History is mutated only at
reaction points (send start, chunk arrival, stream end, failure, cancel),
and at most one generation is active at a time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Literal

from .attachments import MAX_ATTACHMENT_BYTES, AttachmentSource, encode_batch
from .backends import GenerativeBackend, create_backend, map_backend_exception
from .config import ChatSettings
from .exceptions import (
    AuthenticationError,
    BackendConnectionError,
    ConfigurationError,
    ConfigurationReason,
    EmptyExportError,
    GeminiChatError,
    GenerationInProgressError,
    QuotaExceededError,
)
from .export import DEFAULT_EXPORT_FILENAME, build_export, write_export
from .models import Conversation, InlineBinary, Role, Turn
from .prompt import DEFAULT_IMAGE_CAPTION, TransportPayload, assemble, build_user_turn
from .state import GenerationState, StateManager
from .tokens import TokenAccountant, TokenEstimate

LOGGER = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "(No response from model.)"
CANCELLED_MESSAGE = "Response cancelled."

_STREAM_ERROR_MESSAGES: dict[type[GeminiChatError], str] = {
    AuthenticationError: "Gemini API rejected the request. Check your API key. ({exc})",
    QuotaExceededError: "Gemini API quota exceeded. Try again later. ({exc})",
    BackendConnectionError: "Unable to reach the model backend. ({exc})",
    GeminiChatError: "Error communicating with Gemini API: {exc}",
}


def _error_message(exc: GeminiChatError) -> str:
    for cls in type(exc).__mro__:
        template = _STREAM_ERROR_MESSAGES.get(cls)
        if template is not None:
            return template.format(exc=exc)
    return str(exc)


@dataclass
class GenerationSession:
    """Ephemeral state of the in-flight streamed reply."""

    draft_text: str
    accumulated_chunks: str = ""
    active: bool = True
    chunk_count: int = 0


@dataclass(frozen=True)
class SendOutcome:
    """What happened to a send request once it reached a terminal point."""

    status: Literal["completed", "failed", "rejected", "skipped"]
    text: str = ""
    error: str = ""


class ChatSession:
    """Owns the conversation and drives the Idle → Sending → Streaming state machine."""

    def __init__(
        self,
        system_instruction: str = "",
        *,
        backend_factory: Callable[[ChatSettings], GenerativeBackend] | None = None,
        accountant: TokenAccountant | None = None,
        max_attachment_bytes: int = MAX_ATTACHMENT_BYTES,
        default_caption: str = DEFAULT_IMAGE_CAPTION,
    ) -> None:
        self.conversation = Conversation()
        self.conversation.reset(system_instruction)
        self._system_instruction = system_instruction.strip()
        self._backend_factory = backend_factory or create_backend
        self.accountant = accountant or TokenAccountant(self._backend_factory)
        self.max_attachment_bytes = max_attachment_bytes
        self.default_caption = default_caption
        self.state_manager = StateManager()
        self.generation: GenerationSession | None = None
        self._stream_task: asyncio.Task[str] | None = None
        self._cancel_requested = False
        self._on_update: Callable[[str], None] | None = None
        self._on_notify: Callable[[str], None] | None = None

    # Observers

    def on_update(self, callback: Callable[[str], None]) -> None:
        """Register a callback receiving the cumulative reply text on every chunk."""
        self._on_update = callback

    def on_notify(self, callback: Callable[[str], None]) -> None:
        """Register a callback for user-facing notifications."""
        self._on_notify = callback

    def _notify(self, message: str) -> None:
        if self._on_notify is not None:
            self._on_notify(message)

    @property
    def state(self) -> GenerationState:
        return self.state_manager.state

    @property
    def is_generating(self) -> bool:
        return self.state.is_active

    # Settings and history

    def apply_settings(self, settings: ChatSettings) -> None:
        """Update the system turn in place when the system instruction changes."""
        instruction = settings.system_instruction.strip()
        if instruction == self._system_instruction:
            return
        self._system_instruction = instruction
        self.conversation.set_system_instruction(instruction)
        LOGGER.info(
            "session.system_instruction.updated",
            extra={
                "event": "session.system_instruction.updated",
                "present": bool(instruction),
            },
        )

    async def clear(self, settings: ChatSettings | None = None) -> bool:
        """Reset history to the system turn only. Refused while streaming."""
        if self.is_generating:
            self._notify("Wait for the current response to finish before clearing.")
            return False
        if settings is not None:
            self._system_instruction = settings.system_instruction.strip()
        self.conversation.reset(self._system_instruction)
        if self.state is not GenerationState.IDLE:
            await self.state_manager.transition_to(GenerationState.IDLE)
        return True

    def _orphan_user_turn(self) -> Turn | None:
        """Return the trailing user turn left unanswered by a failed send."""
        last = self.conversation.last
        if last is not None and last.role is Role.USER and not last.is_system_prompt:
            return last
        return None

    # Sending

    async def send(
        self,
        text: str,
        settings: ChatSettings,
        attachments: Sequence[AttachmentSource] = (),
    ) -> SendOutcome:
        """Send a user turn and stream the reply into history.

        Never raises for backend, configuration, or encoding problems: they
        become a ``SendOutcome`` plus a notification.
        """
        caption = text.strip()
        if not caption and not attachments:
            return SendOutcome(status="skipped")

        if settings.requires_credential and not settings.has_credential:
            exc = ConfigurationError(
                ConfigurationReason.MISSING_CREDENTIAL,
                "Please enter your Gemini API key in the settings.",
            )
            LOGGER.warning(
                "session.send.rejected",
                extra={"event": "session.send.rejected", "reason": exc.reason.value},
            )
            self._notify(str(exc))
            return SendOutcome(status="rejected", error=str(exc))

        if not await self.state_manager.can_send_message():
            return self._reject_busy()

        images: list[InlineBinary] = []
        if attachments:
            batch = await encode_batch(attachments, self.max_attachment_bytes)
            for error in batch.errors:
                self._notify(str(error))
            if batch.all_failed:
                message = "No valid images were uploaded."
                self._notify(message)
                return SendOutcome(status="rejected", error=message)
            images = batch.parts

        new_turn = build_user_turn(caption, images, self.default_caption)
        return await self._generate(new_turn, settings)

    async def retry(self, settings: ChatSettings) -> SendOutcome:
        """Resend the unanswered user turn left by a failure, without duplicating it."""
        if self.is_generating:
            return self._reject_busy()
        if self._orphan_user_turn() is None:
            self._notify("Nothing to retry.")
            return SendOutcome(status="skipped")
        if settings.requires_credential and not settings.has_credential:
            message = "Please enter your Gemini API key in the settings."
            self._notify(message)
            return SendOutcome(status="rejected", error=message)
        return await self._generate(None, settings)

    def _reject_busy(self) -> SendOutcome:
        exc = GenerationInProgressError(
            "A response is still being generated. Wait for it to finish."
        )
        LOGGER.info(
            "session.send.rejected",
            extra={"event": "session.send.rejected", "reason": "busy"},
        )
        self._notify(str(exc))
        return SendOutcome(status="rejected", error=str(exc))

    async def _generate(self, new_turn: Turn | None, settings: ChatSettings) -> SendOutcome:
        orphan = self._orphan_user_turn()
        reuse = orphan is not None and (new_turn is None or orphan.parts == new_turn.parts)
        if reuse:
            user_turn = orphan
            history = self.conversation.snapshot()[:-1]
        else:
            user_turn = new_turn
            history = self.conversation.snapshot()
        if user_turn is None:
            self._notify("Nothing to retry.")
            return SendOutcome(status="skipped")

        if not await self.state_manager.begin_send():
            return self._reject_busy()

        payload = assemble(history, user_turn, settings.system_instruction)
        if not reuse:
            self.conversation.append(user_turn)
        self.conversation.append(Turn.assistant(""))
        self.generation = GenerationSession(draft_text=user_turn.text)
        self._cancel_requested = False

        LOGGER.info(
            "session.send.start",
            extra={
                "event": "session.send.start",
                "model": settings.model,
                "provider": settings.provider,
                "turns": len(payload),
                "images": len(user_turn.binaries),
                "reused_user_turn": reuse,
            },
        )

        self._stream_task = asyncio.create_task(self._consume(payload, settings))
        try:
            text = await self._stream_task
        except asyncio.CancelledError:
            outcome = await self._fail(GeminiChatError(CANCELLED_MESSAGE), CANCELLED_MESSAGE)
            if self._cancel_requested:
                return outcome
            raise
        except GeminiChatError as exc:
            return await self._fail(exc)
        except Exception as exc:  # noqa: BLE001 - backend adapters may leak vendor errors.
            return await self._fail(map_backend_exception(exc, "Gemini API"))
        finally:
            self._stream_task = None

        self.generation = None
        await self.state_manager.transition_to(GenerationState.COMPLETED)
        LOGGER.info(
            "session.stream.completed",
            extra={"event": "session.stream.completed", "characters": len(text)},
        )
        return SendOutcome(status="completed", text=text)

    async def _consume(self, payload: TransportPayload, settings: ChatSettings) -> str:
        """Open the stream, then merge chunks in arrival order into the placeholder."""
        backend = self._backend_factory(settings)
        stream = backend.stream_generate(
            settings.model, payload, settings.max_output_tokens
        ).__aiter__()

        # The stream counts as open once the backend answers with its first chunk.
        first = await anext(stream, None)
        await self.state_manager.transition_to(GenerationState.STREAMING)

        if first is None:
            self.conversation.replace_last_text(NO_RESPONSE_TEXT)
            return NO_RESPONSE_TEXT

        self._merge_chunk(first)
        async for chunk in stream:
            self._merge_chunk(chunk)

        session = self.generation
        if session is None or not session.accumulated_chunks:
            self.conversation.replace_last_text(NO_RESPONSE_TEXT)
            return NO_RESPONSE_TEXT
        session.active = False
        return session.accumulated_chunks

    def _merge_chunk(self, chunk: str) -> None:
        """Extend the accumulated text and replace the placeholder text in full."""
        session = self.generation
        last = self.conversation.last
        if session is None or last is None or last.role is not Role.ASSISTANT:
            raise GeminiChatError("Streaming placeholder turn is missing.")
        session.accumulated_chunks += chunk
        session.chunk_count += 1
        self.conversation.replace_last_text(session.accumulated_chunks)
        if self._on_update is not None:
            self._on_update(session.accumulated_chunks)

    async def _fail(self, exc: GeminiChatError, message: str | None = None) -> SendOutcome:
        """Drop the placeholder, keep the user turn, and surface the error."""
        if self.generation is not None:
            last = self.conversation.last
            if last is not None and last.role is Role.ASSISTANT:
                self.conversation.pop_last()
            self.generation.active = False
            self.generation = None
        await self.state_manager.transition_to(GenerationState.FAILED)

        notification = message or _error_message(exc)
        LOGGER.warning(
            "session.stream.failed",
            extra={
                "event": "session.stream.failed",
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        self._notify(notification)
        return SendOutcome(status="failed", error=notification)

    async def cancel(self) -> bool:
        """Stop the active stream; the send then resolves as failed."""
        task = self._stream_task
        if task is None or task.done():
            return False
        self._cancel_requested = True
        task.cancel()
        await asyncio.wait([task])
        return True

    # Token accounting and export

    async def estimate_tokens(self, draft_input: str, settings: ChatSettings) -> TokenEstimate:
        return await self.accountant.estimate(
            self.conversation.snapshot(), draft_input, settings
        )

    def export(
        self,
        directory: str | Path,
        filename: str = DEFAULT_EXPORT_FILENAME,
    ) -> Path | None:
        """Write the transcript to ``directory``; an empty history is a no-op notice."""
        try:
            artifact = build_export(self.conversation, filename)
        except EmptyExportError as exc:
            self._notify(str(exc))
            return None
        target = write_export(artifact, directory)
        LOGGER.info(
            "session.export.written",
            extra={"event": "session.export.written", "path": str(target)},
        )
        self._notify("Chat history saved!")
        return target
