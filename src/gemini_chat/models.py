"""Conversation turns, content parts and the ordered history container."""

from __future__ import annotations

import base64
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Union


class Role(str, Enum):
    """Speaker attribution for a turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TextPart:
    """Plain text content within a turn."""

    text: str


@dataclass(frozen=True)
class InlineBinary:
    """Binary payload embedded in the request as base64 text."""

    mime_type: str
    data: str

    @property
    def media_category(self) -> str:
        """Return the MIME major type, e.g. ``image`` for ``image/png``."""
        return self.mime_type.split("/", 1)[0] or "binary"

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.data)


ContentPart = Union[TextPart, InlineBinary]


@dataclass(frozen=True)
class Turn:
    """One message in the conversation: a role and its ordered content parts."""

    role: Role
    parts: tuple[ContentPart, ...]
    is_system_prompt: bool = False

    def __post_init__(self) -> None:
        if not self.parts:
            raise ValueError("A turn must contain at least one content part.")
        if self.is_system_prompt and self.role is not Role.USER:
            raise ValueError("The system-prompt turn is always attributed to the user role.")

    @classmethod
    def user(cls, *parts: ContentPart) -> Turn:
        return cls(role=Role.USER, parts=tuple(parts))

    @classmethod
    def assistant(cls, text: str) -> Turn:
        return cls(role=Role.ASSISTANT, parts=(TextPart(text),))

    @classmethod
    def system(cls, instruction: str) -> Turn:
        return cls(role=Role.USER, parts=(TextPart(instruction),), is_system_prompt=True)

    @property
    def text(self) -> str:
        """Concatenate the text parts, ignoring binaries."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def binaries(self) -> tuple[InlineBinary, ...]:
        return tuple(part for part in self.parts if isinstance(part, InlineBinary))

    def with_text(self, text: str) -> Turn:
        """Return a copy whose parts are replaced by a single text part."""
        return replace(self, parts=(TextPart(text),))


@dataclass
class Conversation:
    """Ordered sequence of turns owned by a single session manager."""

    _turns: list[Turn] = field(default_factory=list)

    @classmethod
    def from_turns(cls, turns: Iterable[Turn]) -> Conversation:
        conversation = cls()
        conversation.extend(turns)
        return conversation

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    @property
    def turns(self) -> tuple[Turn, ...]:
        """Return an immutable snapshot of the history."""
        return tuple(self._turns)

    def snapshot(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def append(self, turn: Turn) -> None:
        if turn.is_system_prompt:
            if self.system_turn() is not None:
                raise ValueError("Conversation already has a system-prompt turn.")
            self._turns.insert(0, turn)
            return
        self._turns.append(turn)

    def extend(self, turns: Iterable[Turn]) -> None:
        for turn in turns:
            self.append(turn)

    def pop_last(self) -> Turn:
        return self._turns.pop()

    def replace_last_text(self, text: str) -> Turn:
        """Replace the text of the trailing turn in full and return the new turn."""
        if not self._turns:
            raise IndexError("Conversation is empty.")
        updated = self._turns[-1].with_text(text)
        self._turns[-1] = updated
        return updated

    def system_turn(self) -> Turn | None:
        for turn in self._turns:
            if turn.is_system_prompt:
                return turn
        return None

    def set_system_instruction(self, instruction: str) -> None:
        """Insert, update, or drop the system turn, keeping it at index 0."""
        normalized = instruction.strip()
        remaining = [turn for turn in self._turns if not turn.is_system_prompt]
        if normalized:
            remaining.insert(0, Turn.system(normalized))
        self._turns = remaining

    def reset(self, system_instruction: str = "") -> None:
        """Drop all turns, keeping only a fresh system turn when one is configured."""
        self._turns = []
        self.set_system_instruction(system_instruction)

    def non_system_turns(self) -> list[Turn]:
        return [turn for turn in self._turns if not turn.is_system_prompt]
