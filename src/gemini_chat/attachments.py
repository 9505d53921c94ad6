"""Image attachment validation and base64 encoding for inline transport."""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
import mimetypes
from pathlib import Path

from .exceptions import EncodingError, EncodingReason
from .models import InlineBinary

LOGGER = logging.getLogger(__name__)

MAX_ATTACHMENT_BYTES = 15 * 1024 * 1024
SUPPORTED_MIME_PREFIX = "image/"


@dataclass(frozen=True)
class AttachmentSource:
    """A file selected by the user, either already in memory or on disk.

    Exactly one of ``data`` and ``path`` is set. ``mime_type`` may be empty,
    in which case it is guessed from the name.
    """

    name: str
    mime_type: str = ""
    data: bytes | None = None
    path: Path | None = None

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str = "") -> AttachmentSource:
        resolved = Path(path).expanduser()
        return cls(name=resolved.name, mime_type=mime_type, path=resolved)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: str = "") -> AttachmentSource:
        return cls(name=name, mime_type=mime_type, data=data)

    @property
    def resolved_mime_type(self) -> str:
        if self.mime_type.strip():
            return self.mime_type.strip().lower()
        guessed, _ = mimetypes.guess_type(self.name)
        return (guessed or "application/octet-stream").lower()

    def size(self) -> int:
        if self.data is not None:
            return len(self.data)
        if self.path is None:
            return 0
        return self.path.stat().st_size

    def read(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            return b""
        return self.path.read_bytes()


@dataclass
class EncodedBatch:
    """Result of encoding several attachments: successes in input order plus failures."""

    parts: list[InlineBinary] = field(default_factory=list)
    errors: list[EncodingError] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return not self.parts and bool(self.errors)


def _too_large(source: AttachmentSource, max_bytes: int) -> EncodingError:
    return EncodingError(
        EncodingReason.TOO_LARGE,
        source.name,
        f"File {source.name} exceeds {max_bytes // (1024 * 1024)}MB limit "
        "and will be skipped.",
    )


def _unreadable(source: AttachmentSource, exc: OSError) -> EncodingError:
    return EncodingError(
        EncodingReason.UNREADABLE,
        source.name,
        f"File {source.name} could not be read: {exc}",
    )


def encode_attachment(
    source: AttachmentSource, max_bytes: int = MAX_ATTACHMENT_BYTES
) -> InlineBinary:
    """Validate one attachment and return it as an inline binary part.

    Raises:
        EncodingError: the file is too large, not an image, or unreadable.
    """
    # Size is checked before type.
    try:
        size = source.size()
    except OSError as exc:
        raise _unreadable(source, exc) from exc
    if size > max_bytes:
        raise _too_large(source, max_bytes)

    mime_type = source.resolved_mime_type
    if not mime_type.startswith(SUPPORTED_MIME_PREFIX):
        raise EncodingError(
            EncodingReason.UNSUPPORTED_TYPE,
            source.name,
            f"File {source.name} is not an image and will be skipped.",
        )

    try:
        payload = source.read()
    except OSError as exc:
        raise _unreadable(source, exc) from exc
    # The file may have grown between stat and read.
    if len(payload) > max_bytes:
        raise _too_large(source, max_bytes)

    return InlineBinary(
        mime_type=mime_type, data=base64.b64encode(payload).decode("ascii")
    )


async def _encode_one(
    source: AttachmentSource, max_bytes: int
) -> InlineBinary | EncodingError:
    try:
        return await asyncio.to_thread(encode_attachment, source, max_bytes)
    except EncodingError as exc:
        LOGGER.warning(
            "attachment.rejected",
            extra={
                "event": "attachment.rejected",
                "attachment": source.name,
                "reason": exc.reason.value,
            },
        )
        return exc


async def encode_batch(
    sources: Iterable[AttachmentSource], max_bytes: int = MAX_ATTACHMENT_BYTES
) -> EncodedBatch:
    """Encode every source concurrently and join the results.

    A rejected file is reported in ``errors`` and never aborts its siblings.
    """
    items = list(sources)
    batch = EncodedBatch()
    if not items:
        return batch

    results = await asyncio.gather(*(_encode_one(item, max_bytes) for item in items))
    for result in results:
        if isinstance(result, EncodingError):
            batch.errors.append(result)
        else:
            batch.parts.append(result)

    LOGGER.info(
        "attachment.batch.encoded",
        extra={
            "event": "attachment.batch.encoded",
            "accepted": len(batch.parts),
            "rejected": len(batch.errors),
        },
    )
    return batch
