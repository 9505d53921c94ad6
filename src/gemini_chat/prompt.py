"""Outbound request assembly with system-instruction placement."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from .models import ContentPart, InlineBinary, Role, TextPart, Turn

DEFAULT_IMAGE_CAPTION = "Please describe this image."

# Gemini's wire name for the assistant role.
_WIRE_ROLES = {Role.USER: "user", Role.ASSISTANT: "model"}


@dataclass(frozen=True)
class TransportTurn:
    """A ``{role, parts}`` pair exactly as it is sent to the backend."""

    role: Role
    parts: tuple[ContentPart, ...]

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def images(self) -> list[InlineBinary]:
        return [part for part in self.parts if isinstance(part, InlineBinary)]


TransportPayload = tuple[TransportTurn, ...]


def build_user_turn(
    caption: str,
    attachments: Sequence[InlineBinary] = (),
    default_caption: str = DEFAULT_IMAGE_CAPTION,
) -> Turn | None:
    """Build the new user turn, or ``None`` when there is nothing to send.

    Images come first, followed by the caption. When only images were
    supplied the caption falls back to ``default_caption``.
    """
    text = caption.strip()
    if not text and not attachments:
        return None
    parts: list[ContentPart] = list(attachments)
    if attachments:
        parts.append(TextPart(text or default_caption))
    else:
        parts.append(TextPart(text))
    return Turn.user(*parts)


def order_for_transport(turns: Iterable[Turn]) -> list[Turn]:
    """Return the turns with any system-prompt turn moved to the front."""
    items = list(turns)
    system = [turn for turn in items if turn.is_system_prompt]
    return system[:1] + [turn for turn in items if not turn.is_system_prompt]


def assemble(
    history: Iterable[Turn],
    new_turn: Turn | None,
    system_instruction: str = "",
) -> TransportPayload:
    """Build the transport payload from a working copy of ``history``.

    The caller's history is never mutated. When ``system_instruction`` is set
    and the history has no system turn, one is synthesized. Either way the
    system turn is first in the result.
    """
    working = list(history)
    if new_turn is not None:
        working.append(new_turn)

    instruction = system_instruction.strip()
    if instruction and not any(turn.is_system_prompt for turn in working):
        working.insert(0, Turn.system(instruction))

    return tuple(
        TransportTurn(role=turn.role, parts=turn.parts)
        for turn in order_for_transport(working)
    )


def _part_payload(part: ContentPart) -> dict[str, Any]:
    if isinstance(part, InlineBinary):
        return {"inline_data": {"mime_type": part.mime_type, "data": part.data}}
    return {"text": part.text}


def to_payload(turns: Iterable[TransportTurn]) -> list[dict[str, Any]]:
    """Convert transport turns to the plain ``contents`` dict form."""
    return [
        {
            "role": _WIRE_ROLES[turn.role],
            "parts": [_part_payload(part) for part in turn.parts],
        }
        for turn in turns
    ]
