"""Plain-text transcript rendering and the downloadable export artifact."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import os
from pathlib import Path

from .exceptions import EmptyExportError
from .models import InlineBinary, Turn

DEFAULT_EXPORT_FILENAME = "gemini-chat.txt"
EXPORT_MIME_TYPE = "text/plain"


@dataclass(frozen=True)
class ExportArtifact:
    filename: str
    mime_type: str
    content: str


def _label(turn: Turn) -> str:
    return "SYSTEM" if turn.is_system_prompt else turn.role.value.upper()


def render_turn(turn: Turn) -> str:
    pieces: list[str] = []
    for part in turn.parts:
        if isinstance(part, InlineBinary):
            pieces.append(f"[{part.media_category}]")
        else:
            pieces.append(part.text)
    return f"{_label(turn)}: {''.join(pieces)}"


def render(history: Iterable[Turn]) -> str:
    """Render one ``ROLE: text`` line per turn, in history order.

    Inline binaries appear as ``[image]``-style placeholders. An empty history
    renders as the empty string.
    """
    return "".join(f"{render_turn(turn)}\n" for turn in history)


def build_export(
    history: Iterable[Turn], filename: str = DEFAULT_EXPORT_FILENAME
) -> ExportArtifact:
    """Build the export artifact; an empty conversation raises ``EmptyExportError``."""
    turns = list(history)
    if not turns:
        raise EmptyExportError("Chat history is empty!")
    return ExportArtifact(
        filename=filename, mime_type=EXPORT_MIME_TYPE, content=render(turns)
    )


def write_export(artifact: ExportArtifact, directory: str | Path) -> Path:
    """Write the artifact into ``directory`` and return the file path."""
    target_dir = Path(directory).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / artifact.filename
    target.write_text(artifact.content, encoding="utf-8")
    if os.name == "posix":
        try:
            target.chmod(0o600)
        except OSError:
            pass
    return target
