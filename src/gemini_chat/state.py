"""Generation state machine and lock-protected transitions."""

from __future__ import annotations

import asyncio
from enum import Enum
import logging

LOGGER = logging.getLogger(__name__)


class GenerationState(str, Enum):
    """Lifecycle of one send: request, streamed reply, terminal outcome."""

    IDLE = "IDLE"
    SENDING = "SENDING"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_active(self) -> bool:
        return self in (GenerationState.SENDING, GenerationState.STREAMING)


_ALLOWED_TRANSITIONS: dict[GenerationState, frozenset[GenerationState]] = {
    GenerationState.IDLE: frozenset({GenerationState.SENDING}),
    GenerationState.SENDING: frozenset(
        {GenerationState.STREAMING, GenerationState.FAILED}
    ),
    GenerationState.STREAMING: frozenset(
        {GenerationState.COMPLETED, GenerationState.FAILED}
    ),
    GenerationState.COMPLETED: frozenset(
        {GenerationState.SENDING, GenerationState.IDLE}
    ),
    GenerationState.FAILED: frozenset({GenerationState.SENDING, GenerationState.IDLE}),
}


class StateManager:
    """Manage state transitions with async lock semantics."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._state = GenerationState.IDLE

    @property
    def state(self) -> GenerationState:
        """Return the current state without locking (for synchronous readers)."""
        return self._state

    async def get_state(self) -> GenerationState:
        async with self._lock:
            return self._state

    async def transition_to(self, new_state: GenerationState) -> GenerationState:
        """Move to ``new_state``; invalid transitions raise ``ValueError``."""
        async with self._lock:
            self._apply(new_state)
            return self._state

    async def begin_send(self) -> bool:
        """Atomically enter SENDING unless a generation is already active."""
        async with self._lock:
            if self._state.is_active:
                return False
            self._apply(GenerationState.SENDING)
            return True

    async def can_send_message(self) -> bool:
        async with self._lock:
            return not self._state.is_active

    def _apply(self, new_state: GenerationState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self._state]:
            raise ValueError(
                f"Invalid generation transition {self._state.value} -> {new_state.value}"
            )
        LOGGER.info(
            "session.state.transition",
            extra={
                "event": "session.state.transition",
                "from_state": self._state.value,
                "to_state": new_state.value,
            },
        )
        self._state = new_state
